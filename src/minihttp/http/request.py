"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Reads one HTTP/1.1 request off a byte stream and turns it into a structured
HTTPRequest.

=============================================================================
HTTP REQUEST ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  REQUEST LINE                                                        │
    │     POST /files/notes.txt HTTP/1.1\r\n                               │
    │     ─┬── ────────┬─────── ────┬───                                   │
    │    Method       Path       Version                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │  HEADERS                                                             │
    │     Host: localhost:4221\r\n                                         │
    │     Content-Length: 5\r\n      ← tells us how many body bytes follow │
    │     \r\n                       ← empty line = end of headers         │
    ├─────────────────────────────────────────────────────────────────────┤
    │  BODY                                                                │
    │     hello                      ← exactly Content-Length bytes        │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STREAM, NOT BUFFER
=============================================================================

The parser does not get "the request bytes". TCP has no message boundaries,
so there is no such thing until we have parsed it. Instead the parser pulls
from a stream with two operations:

    readline(limit)   → up to `limit` bytes, ending at the first \n
    read(n)           → up to `n` bytes (may return fewer!)

core.connection.Connection implements these over a socket with deadlines.
io.BytesIO implements them over a bytes object (handy in tests).

Reading stops exactly at the end of the body, so whatever the client sends
next stays in the stream for the next parse() call. That is what makes
keep-alive work.

=============================================================================
LENIENCY
=============================================================================

Header lines without a colon are skipped rather than rejected, the way
many real-world servers behave. Everything that affects framing
(the request line and Content-Length) is strict.

Lines are UTF-8, the same encoding HTTPResponse.to_bytes() writes, so a
serialized response parses back to the same headers. Bytes that are not
valid UTF-8 are a parse error, never silently replaced.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Protocol, Union
import io
import re

from .errors import (
    BodyTooLarge,
    ConnectionClosed,
    HTTPParseError,
    InvalidContentLength,
    LineTooLong,
    MalformedRequestLine,
)
from .headers import Headers
from .response import HTTPResponse


MAX_BODY_SIZE = 10 * 1024 * 1024  # 10 MiB
MAX_LINE_SIZE = 64 * 1024


class ByteStream(Protocol):
    """What the parser needs from its input."""

    def readline(self, limit: int = -1) -> bytes: ...

    def read(self, size: int = -1) -> bytes: ...


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Header names are stored lowercase (see Headers), so
    request.headers["user-agent"] and request.get_header("User-Agent")
    return the same value.

    Created fresh for every request on a connection and thrown away once
    the response has been written.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
    client_address: tuple = ("", 0)

    def __post_init__(self):
        # Allow plain dicts from handler tests and callers
        if not isinstance(self.headers, Headers):
            self.headers = Headers(self.headers)

    @property
    def content_length(self) -> int:
        """Declared body length, or 0 if the header is missing or unusable."""
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def user_agent(self) -> Optional[str]:
        return self.headers.get("user-agent")

    @property
    def wants_close(self) -> bool:
        """
        True if the client asked to close the connection after this request.

        HTTP/1.1 connections are persistent by default; only an explicit
        "Connection: close" ends them.
        """
        return self.headers.get("connection", "").strip().lower() == "close"

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        return self.headers.get(name, default)


class RequestParser:
    """
    Parses one HTTP request at a time from a ByteStream.

        Stream
          │
          ├──► _read_line()          "GET /echo/hi HTTP/1.1"
          │        └──► _parse_request_line()   → method, path, version
          │
          ├──► _parse_headers()      until the empty line
          │
          └──► _read_body()          exactly Content-Length bytes
                   │
                   ▼
              HTTPRequest

    A parser holds only its limits, so one instance can be shared by every
    connection.
    """

    CONTENT_LENGTH_PATTERN = re.compile(r"[+-]?[0-9]+")

    def __init__(
        self,
        max_body_size: int = MAX_BODY_SIZE,
        max_line_size: int = MAX_LINE_SIZE,
    ):
        self.max_body_size = max_body_size
        self.max_line_size = max_line_size

    def parse(self, stream: ByteStream, client_address: tuple = ("", 0)) -> HTTPRequest:
        """
        Read and parse the next request from the stream.

        Raises:
            ConnectionClosed: The stream ended before a full request arrived.
            MalformedRequestLine: The request line is not three tokens.
            LineTooLong: A line exceeded max_line_size.
            InvalidContentLength: Content-Length is not a non-negative integer.
            BodyTooLarge: Content-Length exceeds max_body_size.
            HTTPParseError: A line is not valid UTF-8.
            Timeout: Raised by the stream when its read deadline elapses.
        """
        method, path, version = self._parse_request_line(self._read_line(stream))
        headers = self._parse_headers(stream)
        body = self._read_body(stream, headers)

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            body=body,
            client_address=client_address,
        )

    def parse_response(self, stream: ByteStream) -> HTTPResponse:
        """
        Read a response written by HTTPResponse.to_bytes().

        Same framing rules as parse(), with a status line in place of the
        request line. The reason phrase may contain spaces or be empty.

        Raises:
            HTTPParseError: The status line is not "VERSION CODE [REASON]".
            Plus everything parse() raises for headers and body.
        """
        line = self._read_line(stream)
        version, _, rest = line.partition(" ")
        code, _, reason = rest.partition(" ")
        if not version or not code.isdigit():
            raise HTTPParseError(f"Invalid status line: {line!r}")

        headers = self._parse_headers(stream)
        body = self._read_body(stream, headers)

        return HTTPResponse(
            status=int(code),
            headers=headers,
            body=body,
            reason=reason,
            version=version,
        )

    def _read_line(self, stream: ByteStream) -> str:
        """
        Read one line and strip its terminator and surrounding whitespace.

        We ask for one byte more than the limit: if we get it, the line is
        too long. A line with no trailing \\n means the stream ended midway.
        """
        line = stream.readline(self.max_line_size + 1)
        if not line:
            raise ConnectionClosed("Connection closed by peer")
        if len(line) > self.max_line_size:
            raise LineTooLong(f"Line exceeds {self.max_line_size} bytes")
        if not line.endswith(b"\n"):
            raise ConnectionClosed("Connection closed in the middle of a line")
        try:
            return line.decode("utf-8").strip()
        except UnicodeDecodeError as e:
            raise HTTPParseError(f"Line is not valid UTF-8: {line[:40]!r}") from e

    def _parse_request_line(self, line: str) -> tuple:
        """Split "METHOD PATH VERSION" into its three tokens."""
        parts = line.split()
        if len(parts) != 3:
            raise MalformedRequestLine(f"Invalid request line: {line!r}")
        method, path, version = parts
        return method, path, version

    def _parse_headers(self, stream: ByteStream) -> Headers:
        """
        Read "Name: Value" lines until the empty line.

        - Only the FIRST colon separates name and value, so
          "Host: localhost:4221" keeps the port.
        - Names and values are trimmed; names are case-normalized by Headers.
        - A repeated name overwrites the earlier value.
        - Lines without a colon are skipped.
        """
        headers = Headers()
        while True:
            line = self._read_line(stream)
            if not line:
                return headers

            name, sep, value = line.partition(":")
            if not sep:
                continue
            headers[name.strip()] = value.strip()

    def _read_body(self, stream: ByteStream, headers: Headers) -> bytes:
        """Read exactly Content-Length bytes, or nothing if it is absent."""
        raw_length = headers.get("content-length")
        if raw_length is None:
            return b""

        if not self.CONTENT_LENGTH_PATTERN.fullmatch(raw_length):
            raise InvalidContentLength(f"Invalid Content-Length: {raw_length!r}")

        length = int(raw_length)
        if length < 0:
            raise InvalidContentLength(f"Negative Content-Length: {length}")
        if length > self.max_body_size:
            raise BodyTooLarge(f"Content-Length too large: {length}")
        if length == 0:
            return b""

        return read_exact(stream, length)


def read_exact(stream: ByteStream, size: int) -> bytes:
    """
    Read exactly `size` bytes from the stream.

    read(n) is allowed to return fewer than n bytes (a 20-byte body can
    arrive as two 10-byte TCP segments), so we keep asking until we have
    everything. If the stream ends first we fail rather than hand back a
    truncated body.
    """
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            raise ConnectionClosed(
                f"Connection closed after {size - remaining} of {size} body bytes"
            )
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def parse_request(
    data: Union[bytes, bytearray],
    client_address: tuple = ("", 0),
    max_body_size: int = MAX_BODY_SIZE,
) -> HTTPRequest:
    """
    Parse a complete request held in memory.

    Convenience wrapper over RequestParser for callers that already have
    the bytes (tests, tools). Extra bytes after the request are ignored.
    """
    parser = RequestParser(max_body_size=max_body_size)
    return parser.parse(io.BytesIO(bytes(data)), client_address)


def parse_response(
    data: Union[bytes, bytearray],
    max_body_size: int = MAX_BODY_SIZE,
) -> HTTPResponse:
    """Parse a complete response held in memory."""
    parser = RequestParser(max_body_size=max_body_size)
    return parser.parse_response(io.BytesIO(bytes(data)))
