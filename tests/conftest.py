"""
pytest configuration and fixtures.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Generator, List, Optional
import socket
import threading

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from minihttp import HTTPServer, ServerConfig
from minihttp.handlers import register_default_routes


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /echo/hello HTTP/1.1\r\n"
        b"Host: localhost:4221\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept-Encoding: gzip\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a body."""
    body = b"file contents"
    return (
        b"POST /files/notes.txt HTTP/1.1\r\n"
        b"Host: localhost:4221\r\n"
        b"Content-Type: application/octet-stream\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
        + body
    )


# =============================================================================
# RAW HTTP CLIENT
# =============================================================================
#
# Tests talk to the server over plain sockets so they see exactly what
# goes on the wire: header spelling, Content-Length framing, and whether
# the server closed the connection.
#
# =============================================================================

@dataclass
class RawResponse:
    status: int
    reason: str
    headers: Dict[str, str]     # lowercase names
    body: bytes
    head: str = ""              # status line + headers exactly as sent
    header_names: List[str] = field(default_factory=list)


class RawClient:
    """Minimal HTTP/1.1 client over a connected socket."""

    def __init__(self, sock: socket.socket, timeout: float = 5.0):
        self.sock = sock
        self.sock.settimeout(timeout)
        self._buffer = b""

    def send(self, data: bytes) -> None:
        self.sock.sendall(data)

    def request(
        self,
        method: str,
        path: str,
        headers: Optional[Dict[str, str]] = None,
        body: bytes = b"",
    ) -> RawResponse:
        lines = [f"{method} {path} HTTP/1.1", "Host: localhost"]
        for name, value in (headers or {}).items():
            lines.append(f"{name}: {value}")
        if body:
            lines.append(f"Content-Length: {len(body)}")
        self.send(("\r\n".join(lines) + "\r\n\r\n").encode() + body)
        return self.read_response()

    def _fill(self) -> None:
        chunk = self.sock.recv(65536)
        if not chunk:
            raise ConnectionError("Server closed the connection")
        self._buffer += chunk

    def read_response(self) -> RawResponse:
        """Read one response: headers, then Content-Length bytes (0 if absent)."""
        while b"\r\n\r\n" not in self._buffer:
            self._fill()
        head, _, rest = self._buffer.partition(b"\r\n\r\n")
        self._buffer = rest

        lines = head.decode("utf-8").split("\r\n")
        _version, status, reason = lines[0].split(" ", 2)
        headers = {}
        names = []
        for line in lines[1:]:
            name, _, value = line.partition(":")
            names.append(name.strip())
            headers[name.strip().lower()] = value.strip()

        length = int(headers.get("content-length", 0))
        while len(self._buffer) < length:
            self._fill()
        body, self._buffer = self._buffer[:length], self._buffer[length:]

        return RawResponse(
            status=int(status),
            reason=reason,
            headers=headers,
            body=body,
            head=head.decode("utf-8"),
            header_names=names,
        )

    def is_closed(self, timeout: float = 3.0) -> bool:
        """True if the server closes the connection within `timeout`."""
        self.sock.settimeout(timeout)
        try:
            return self.sock.recv(1) == b""
        except socket.timeout:
            return False
        except ConnectionResetError:
            return True

    def close(self) -> None:
        try:
            self.sock.close()
        except OSError:
            pass


@pytest.fixture
def client() -> Generator[Callable[..., RawClient], None, None]:
    """
    Factory for raw clients, closed at teardown.

        c = client(port=server.port)        # TCP connect
        c = client(sock=existing_socket)    # wrap a socketpair end
    """
    created: List[RawClient] = []

    def _client(port: Optional[int] = None, sock: Optional[socket.socket] = None,
                timeout: float = 5.0) -> RawClient:
        if sock is None:
            sock = socket.create_connection(("127.0.0.1", port), timeout=timeout)
        raw = RawClient(sock, timeout=timeout)
        created.append(raw)
        return raw

    yield _client

    for raw in created:
        raw.close()


# =============================================================================
# RUNNING SERVER
# =============================================================================

class ServerThread:
    """Runs an HTTPServer's serve_forever() in a background thread."""

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self) -> "ServerThread":
        # Bind in the calling thread so the port is ready when this returns
        self.server.start()
        self._thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self._thread.start()
        return self

    def stop(self, timeout: float = 10.0) -> None:
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def is_alive(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def join(self, timeout: float) -> None:
        if self._thread:
            self._thread.join(timeout=timeout)


@pytest.fixture
def serve() -> Generator[Callable[..., ServerThread], None, None]:
    """
    Start a server on a free port with the default routes.

        srv = serve()                              # /, /echo/, /user-agent
        srv = serve(directory=str(tmp_path))       # + /files/
        srv = serve(setup=lambda s: s.router.add_exact("/x", handler))
        srv = serve(read_timeout=0.5)              # any ServerConfig field
    """
    started: List[ServerThread] = []

    def _serve(directory: Optional[str] = None,
               setup: Optional[Callable[[HTTPServer], None]] = None,
               **overrides) -> ServerThread:
        options = {"host": "127.0.0.1", "port": 0, "drain_timeout": 5.0, "log_level": "WARNING"}
        options.update(overrides)
        config = ServerConfig(directory=directory, **options)

        server = HTTPServer(config)
        register_default_routes(server.router, config.directory)
        if setup is not None:
            setup(server)

        thread = ServerThread(server).start()
        started.append(thread)
        return thread

    yield _serve

    for thread in started:
        thread.stop()
