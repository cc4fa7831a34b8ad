"""
=============================================================================
CONNECTION: THE TRANSPORT
=============================================================================

Wraps one accepted client socket with:

- a READ BUFFER, so the parser can ask for "one line" or "n bytes" even
  though TCP delivers arbitrary chunks;
- an OUTPUT BUFFER, so a whole response leaves in one sendall();
- absolute READ and WRITE DEADLINES.

=============================================================================
DEADLINES VS TIMEOUTS
=============================================================================

socket.settimeout(5) limits EACH recv() to 5 seconds. A client that sends
one byte every 4 seconds would never trip it and could hold a worker
thread forever.

A deadline is an absolute point in time. Before every recv() we set the
socket timeout to whatever is LEFT until the deadline:

    set_deadlines(read_timeout=5)       deadline = now + 5s
         │
         ├── recv()   timeout = 5.0s    (client sends request line)
         ├── recv()   timeout = 3.2s    (client sends headers)
         ├── recv()   timeout = 0.4s    (client is slow...)
         └── recv()   remaining <= 0 →  Timeout

The session refreshes both deadlines at the start of every request, so
a keep-alive connection gets a fresh budget per request.

=============================================================================
ERROR TRANSLATION
=============================================================================

Low-level socket errors never leave this class as OSError. They are
translated into the protocol taxonomy:

    socket.timeout during recv       → Timeout
    socket.timeout during sendall    → Timeout
    reset / broken pipe during recv  → b"" (treated as end of stream)
    other OSError during recv        → ConnectionClosed
    other OSError during sendall     → WriteFailure

=============================================================================
"""

from dataclasses import dataclass, field
from typing import ClassVar, Optional
import logging
import socket
import time
import uuid

from ..http.errors import ConnectionClosed, Timeout, WriteFailure


logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """
    A client connection with buffered, deadline-bound I/O.

    Satisfies both stream contracts used by the protocol engine:

        readline(limit) / read(n)   ← RequestParser
        write(data) / flush()       ← write_response()

    Attributes:
        socket: The accepted client socket.
        address: Client's (ip, port) tuple.
        id: Short connection identifier used as a log prefix.
        requests_handled: Responses successfully written on this connection.
    """

    # Upper bound on discarding client bytes in close()
    DRAIN_TIMEOUT: ClassVar[float] = 0.5

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    buffer_size: int = 8192
    requests_handled: int = 0

    read_deadline: Optional[float] = None
    write_deadline: Optional[float] = None

    _buffer: bytearray = field(default_factory=bytearray, repr=False)
    _out: bytearray = field(default_factory=bytearray, repr=False)
    _closed: bool = field(default=False, repr=False)

    def __post_init__(self):
        # Blocking mode; timeouts are recomputed before every call
        self.socket.setblocking(True)

    @property
    def client_ip(self) -> str:
        return self.address[0] if self.address else ""

    @property
    def client_port(self) -> int:
        return self.address[1] if self.address else 0

    @property
    def closed(self) -> bool:
        return self._closed

    # =========================================================================
    # DEADLINES
    # =========================================================================

    def set_deadlines(self, read_timeout: Optional[float], write_timeout: Optional[float]) -> None:
        """
        Set both deadlines relative to now. None means no deadline.

        Raises:
            OSError: The socket is already closed.
        """
        if self._closed or self.socket.fileno() < 0:
            raise OSError("Cannot set deadlines on a closed connection")

        now = time.monotonic()
        self.read_deadline = now + read_timeout if read_timeout else None
        self.write_deadline = now + write_timeout if write_timeout else None

    @staticmethod
    def _remaining(deadline: Optional[float], what: str) -> Optional[float]:
        if deadline is None:
            return None
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise Timeout(f"{what} deadline elapsed")
        return remaining

    # =========================================================================
    # READING
    # =========================================================================

    def _recv(self) -> bytes:
        """
        Receive one chunk within the read deadline.

        Returns b"" when the peer has closed its side.
        """
        self.socket.settimeout(self._remaining(self.read_deadline, "Read"))
        try:
            return self.socket.recv(self.buffer_size)
        except socket.timeout as e:
            raise Timeout("Read deadline elapsed") from e
        except (ConnectionResetError, BrokenPipeError):
            # Client disconnected abruptly
            return b""
        except OSError as e:
            raise ConnectionClosed(f"Read failed: {e}") from e

    def readline(self, limit: int = -1) -> bytes:
        """
        Return bytes up to and including the next \\n.

        Stops early, without a \\n, if `limit` bytes have been collected
        or the peer closes the stream. Bytes past the line stay buffered
        for the next call.
        """
        while True:
            newline = self._buffer.find(b"\n")
            if newline >= 0:
                end = newline + 1
                break
            if 0 <= limit <= len(self._buffer):
                end = limit
                break
            chunk = self._recv()
            if not chunk:
                end = len(self._buffer)
                break
            self._buffer += chunk

        if limit >= 0:
            end = min(end, limit)
        line = bytes(self._buffer[:end])
        del self._buffer[:end]
        return line

    def read(self, size: int = -1) -> bytes:
        """
        Return up to `size` bytes, receiving at most once.

        Like socket.recv(), may return fewer bytes than asked for.
        Returns b"" at end of stream.
        """
        if not self._buffer:
            chunk = self._recv()
            if not chunk:
                return b""
            self._buffer += chunk

        end = len(self._buffer) if size < 0 else min(size, len(self._buffer))
        data = bytes(self._buffer[:end])
        del self._buffer[:end]
        return data

    # =========================================================================
    # WRITING
    # =========================================================================

    def write(self, data: bytes) -> None:
        """Append to the output buffer. Nothing is sent until flush()."""
        self._out += data

    def flush(self) -> None:
        """
        Send everything buffered within the write deadline.

        Uses sendall(): plain send() may only send part of the data if the
        kernel buffer is full. The buffer is emptied whether or not the
        send succeeds; a failed connection is never reused.

        Raises:
            Timeout: The write deadline elapsed.
            WriteFailure: Any other socket error.
        """
        if not self._out:
            return

        data = bytes(self._out)
        self._out.clear()

        timeout = self._remaining(self.write_deadline, "Write")
        try:
            self.socket.settimeout(timeout)
            self.socket.sendall(data)
        except socket.timeout as e:
            raise Timeout("Write deadline elapsed") from e
        except OSError as e:
            raise WriteFailure(f"Send failed: {e}") from e

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self) -> None:
        """
        Close the connection gracefully. Safe to call more than once.

        1. shutdown(SHUT_WR): send FIN, telling the client we're done.
        2. Drain briefly: anything the client still sends is discarded,
           so the kernel doesn't answer it with a RST that could destroy
           the response still in flight.
        3. close(): release the file descriptor.
        """
        if self._closed:
            return
        self._closed = True

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Already disconnected

        drain_until = time.monotonic() + self.DRAIN_TIMEOUT
        try:
            while True:
                remaining = drain_until - time.monotonic()
                if remaining <= 0:
                    break
                self.socket.settimeout(remaining)
                if not self.socket.recv(1024):
                    break
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")
