"""
=============================================================================
HTTP RESPONSE MODEL & SERIALIZER
=============================================================================

Builds HTTP/1.1 responses and writes them onto the wire with correct framing.

=============================================================================
HTTP RESPONSE ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  STATUS LINE                                                         │
    │     HTTP/1.1 200 OK\r\n                                              │
    │     ────┬─── ─┬─ ─┬─                                                 │
    │      Version Code Reason                                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │  HEADERS                                                             │
    │     Content-Type: text/plain\r\n                                     │
    │     Content-Length: 3\r\n        ← auto-added for non-empty bodies   │
    │     \r\n                         ← empty line = end of headers       │
    ├─────────────────────────────────────────────────────────────────────┤
    │  BODY                                                                │
    │     abc                                                              │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
FRAMING
=============================================================================

On a persistent connection the client has only one way to know where this
response ends and the next one begins: Content-Length. If it is wrong the
client either hangs waiting for bytes that never come, or reads the start
of the next response as part of this body.

So the rule is simple:

    Content-Length, when present, MUST equal len(body).

to_bytes() adds it when it is missing and the body is non-empty. It never
overrides a value that a handler or the compression step set explicitly.

An empty body with no Content-Length is written as-is. Our clients treat a
missing Content-Length as zero.

=============================================================================
THE BUILDER PATTERN
=============================================================================

    response = (ResponseBuilder()
        .status(HTTPStatus.OK)
        .text("hello")
        .build())

Handlers mostly use the one-line shortcuts at the bottom of this module:

    return ok("hello")
    return not_found()
    return method_not_allowed(["GET", "POST"])

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Union

from .headers import Headers
from .status_codes import HTTPStatus, reason_phrase


class BufferedWriter(Protocol):
    """What write_response() needs from its output."""

    def write(self, data: bytes) -> None: ...

    def flush(self) -> None: ...


@dataclass
class HTTPResponse:
    """
    An HTTP response to be sent to the client.

    A plain data container. Handlers usually build one through
    ResponseBuilder or the shortcut functions.

        Handler returns         to_bytes()            write_response()
        HTTPResponse   ─────►   serializes   ─────►   write + flush
    """

    status: int = HTTPStatus.OK
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
    reason: Optional[str] = None
    version: str = "HTTP/1.1"

    def __post_init__(self):
        if not isinstance(self.headers, Headers):
            self.headers = Headers(self.headers)
        if isinstance(self.body, str):
            self.body = self.body.encode("utf-8")
        if self.reason is None:
            self.reason = reason_phrase(self.status)

    @property
    def status_line(self) -> str:
        """
        Format: HTTP-VERSION SP STATUS-CODE SP REASON-PHRASE
        Example: "HTTP/1.1 404 Not Found"
        """
        return f"{self.version} {int(self.status)} {self.reason}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a header, returning self for chaining."""
        self.headers[name] = value
        return self

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name, default)

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        """Replace the body. Strings are encoded as UTF-8."""
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.body = body
        return self

    def to_bytes(self) -> bytes:
        """
        Serialize the response to wire bytes.

            HTTP/1.1 200 OK\\r\\n          ← status line
            Content-Type: text/plain\\r\\n
            Content-Length: 3\\r\\n        ← added if missing and body non-empty
            \\r\\n                         ← empty line
            abc                          ← body bytes

        Does not mutate the response.
        """
        headers = self.headers.copy()

        if self.body and "content-length" not in headers:
            headers["Content-Length"] = str(len(self.body))

        lines = [self.status_line]
        for name, value in headers.wire_items():
            lines.append(f"{name}: {value}")
        lines.append("")

        head = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        return head + self.body


def write_response(writer: BufferedWriter, response: HTTPResponse) -> None:
    """
    Serialize a response into a buffered writer and flush it.

    The flush happens exactly once per response, so a response is never
    left sitting half-written in the buffer while we wait for the next
    request.

    Raises:
        WriteFailure: The transport reported an I/O error.
        Timeout: The write deadline elapsed.
    """
    writer.write(response.to_bytes())
    writer.flush()


class ResponseBuilder:
    """
    Fluent builder for HTTP responses.

    Each setter returns self, so calls chain:

        (ResponseBuilder()
            .status(HTTPStatus.CREATED)
            .header("Location", "/files/a.txt")
            .build())
    """

    def __init__(self):
        self._status: int = HTTPStatus.OK
        self._reason: Optional[str] = None
        self._headers = Headers()
        self._body = b""

    def status(self, status: int, reason: Optional[str] = None) -> "ResponseBuilder":
        """Set the status code, and optionally a non-standard reason phrase."""
        self._status = status
        self._reason = reason
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Set the raw body. Strings are encoded as UTF-8."""
        if isinstance(body, str):
            body = body.encode("utf-8")
        self._body = body
        return self

    def text(self, text: str, content_type: str = "text/plain") -> "ResponseBuilder":
        """Set a text body and its Content-Type."""
        return self.body(text).content_type(content_type)

    def binary(self, data: bytes) -> "ResponseBuilder":
        """Set an opaque binary body (application/octet-stream)."""
        return self.body(data).content_type("application/octet-stream")

    def close_connection(self) -> "ResponseBuilder":
        """Ask the client to close the connection after this response."""
        return self.header("Connection", "close")

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers.copy(),
            body=self._body,
            reason=self._reason,
        )

    def to_bytes(self) -> bytes:
        return self.build().to_bytes()


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
# One-liners for the responses handlers return most often.
#
#     return ok("hello")
#     return not_found()
#
# =============================================================================

def ok(body: Union[str, bytes] = b"", content_type: Optional[str] = None) -> HTTPResponse:
    """
    200 OK.

    A str body defaults to text/plain, a bytes body gets no Content-Type
    unless one is given.
    """
    builder = ResponseBuilder().status(HTTPStatus.OK)
    if isinstance(body, str):
        builder.text(body, content_type or "text/plain")
    else:
        builder.body(body)
        if content_type:
            builder.content_type(content_type)
    return builder.build()


def created(body: Union[str, bytes] = b"", location: Optional[str] = None) -> HTTPResponse:
    """201 Created, with an optional Location header."""
    builder = ResponseBuilder().status(HTTPStatus.CREATED).body(body)
    if location:
        builder.header("Location", location)
    return builder.build()


def bad_request(message: str = "") -> HTTPResponse:
    return _error(HTTPStatus.BAD_REQUEST, message)


def forbidden(message: str = "") -> HTTPResponse:
    return _error(HTTPStatus.FORBIDDEN, message)


def not_found(message: str = "") -> HTTPResponse:
    """404 Not Found. The body is empty unless a message is given."""
    return _error(HTTPStatus.NOT_FOUND, message)


def method_not_allowed(allowed_methods: List[str]) -> HTTPResponse:
    """
    405 Method Not Allowed.

    RFC 7231 requires an Allow header listing the methods the resource
    does support.
    """
    return (ResponseBuilder()
        .status(HTTPStatus.METHOD_NOT_ALLOWED)
        .header("Allow", ", ".join(allowed_methods))
        .build())


def internal_error(message: str = "") -> HTTPResponse:
    """500 Internal Server Error. Keep the message generic."""
    return _error(HTTPStatus.INTERNAL_SERVER_ERROR, message)


def _error(status: HTTPStatus, message: str) -> HTTPResponse:
    builder = ResponseBuilder().status(status)
    if message:
        builder.text(message)
    return builder.build()
