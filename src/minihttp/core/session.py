"""
=============================================================================
CONNECTION LIFECYCLE
=============================================================================

A Session owns exactly one Connection and drives it through the
request/response cycle until the connection ends.

=============================================================================
STATE MACHINE
=============================================================================

    ┌──────────────────┐
    │ AWAITING_REQUEST │◄──────────────────────────────────────────┐
    └────────┬─────────┘  refresh read/write deadlines             │
             │                                                     │
             ▼                                                     │
    ┌──────────────────┐  ConnectionClosed ─► (debug) ─┐           │
    │     PARSING      │  Timeout          ─► (debug) ─┤           │
    └────────┬─────────┘  HTTPParseError   ─► (warn)  ─┤           │
             │                                         │           │
             ▼                                         │           │
    ┌──────────────────┐  handler raised               │           │
    │     ROUTING      │  ─► log + 500 response        │           │
    └────────┬─────────┘     (never propagated)        │           │
             │                                         │           │
             ▼                                         │           │
    ┌──────────────────┐  negotiate encoding           │           │
    │   COMPRESSING    │  + common headers             │           │
    └────────┬─────────┘                               │           │
             │                                         │           │
             ▼                                         │           │
    ┌──────────────────┐  WriteFailure / Timeout       │           │
    │     WRITING      │  ─► (warn) ───────────────────┤           │
    └────────┬─────────┘                               │           │
             │  "Connection: close"? ──── yes ─────────┤           │
             │                                         │           │
             └──── no ─────────────────────────────────┼───────────┘
                                                       ▼
                                              ┌──────────────────┐
                                              │      CLOSED      │
                                              └──────────────────┘
                                              transport released in
                                              `finally`, always

A malformed request never gets a response: we could not safely interpret
it, so we cannot know where the next request would start either.

=============================================================================
"""

from enum import Enum
from typing import Callable, Optional
import logging

from ..http.compression import CompressionNegotiator
from ..http.errors import ConnectionClosed, HTTPParseError, Timeout, WriteFailure
from ..http.request import HTTPRequest, RequestParser
from ..http.response import HTTPResponse, internal_error, write_response
from ..http.router import Router
from .connection import Connection


logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Where a session is in the request/response cycle."""

    AWAITING_REQUEST = "awaiting_request"
    PARSING = "parsing"
    ROUTING = "routing"
    COMPRESSING = "compressing"
    WRITING = "writing"
    CLOSED = "closed"


def process_common_headers(request: HTTPRequest, response: HTTPResponse) -> None:
    """
    Headers every response gets regardless of handler.

    - Content-Length for a non-empty body, if nothing set it already.
    - "Connection: close" echoed back when the client asked for it.
    """
    if response.body and "content-length" not in response.headers:
        response.headers["Content-Length"] = str(len(response.body))

    if request.wants_close:
        response.headers["Connection"] = "close"


class Session:
    """
    Runs the keep-alive loop for one connection.

        session = Session(conn, router)
        session.run()      # returns when the connection is closed

    Args:
        connection: The accepted transport. The session closes it.
        router: Frozen route table shared by all sessions.
        negotiator: Compression negotiator shared by all sessions.
        parser: Request parser (holds only limits).
        read_timeout: Seconds allowed to receive each request.
        write_timeout: Seconds allowed to send each response.
        keep_running: Checked after every response; when it returns False
                      the connection is closed instead of awaiting the next
                      request. The server uses this during shutdown.
    """

    def __init__(
        self,
        connection: Connection,
        router: Router,
        negotiator: Optional[CompressionNegotiator] = None,
        parser: Optional[RequestParser] = None,
        read_timeout: Optional[float] = 5.0,
        write_timeout: Optional[float] = 5.0,
        keep_running: Optional[Callable[[], bool]] = None,
    ):
        self.connection = connection
        self.router = router
        self.negotiator = negotiator or CompressionNegotiator()
        self.parser = parser or RequestParser()
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self._keep_running = keep_running or (lambda: True)
        self.state = SessionState.AWAITING_REQUEST

    @property
    def _tag(self) -> str:
        return f"[{self.connection.id}]"

    def run(self) -> None:
        """Serve requests until the connection ends. Never raises protocol errors."""
        conn = self.connection
        try:
            while True:
                self.state = SessionState.AWAITING_REQUEST
                try:
                    conn.set_deadlines(self.read_timeout, self.write_timeout)
                except OSError as e:
                    logger.debug(f"{self._tag} Could not set deadlines: {e}")
                    return

                self.state = SessionState.PARSING
                request = self._read_request()
                if request is None:
                    return

                self.state = SessionState.ROUTING
                response = self._dispatch(request)

                self.state = SessionState.COMPRESSING
                self.negotiator.negotiate(request, response)
                process_common_headers(request, response)

                self.state = SessionState.WRITING
                if not self._write(response):
                    return
                conn.requests_handled += 1

                if request.wants_close:
                    return
                if not self._keep_running():
                    logger.debug(f"{self._tag} Server shutting down, closing connection")
                    return
        finally:
            self.state = SessionState.CLOSED
            conn.close()

    def _read_request(self) -> Optional[HTTPRequest]:
        """Parse the next request, or return None if the session must end."""
        try:
            return self.parser.parse(self.connection, self.connection.address)
        except ConnectionClosed:
            logger.debug(f"{self._tag} Client disconnected")
        except Timeout:
            logger.debug(f"{self._tag} Read deadline elapsed, closing idle connection")
        except HTTPParseError as e:
            logger.warning(f"{self._tag} Malformed request ({e.status_code}): {e}")
        return None

    def _dispatch(self, request: HTTPRequest) -> HTTPResponse:
        """Call the matching handler. A handler that raises yields a 500."""
        try:
            response = self.router.handle(request)
        except Exception as e:
            logger.exception(f"{self._tag} Handler error for {request.method} {request.path}: {e}")
            response = internal_error()

        logger.info(f"{self._tag} {request.method} {request.path} -> {int(response.status)}")
        return response

    def _write(self, response: HTTPResponse) -> bool:
        """Send the response. False means the connection is unusable."""
        try:
            write_response(self.connection, response)
            return True
        except Timeout as e:
            logger.warning(f"{self._tag} Write timed out: {e}")
        except WriteFailure as e:
            logger.warning(f"{self._tag} Write failed: {e}")
        return False
