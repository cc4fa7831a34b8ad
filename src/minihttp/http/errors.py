"""
=============================================================================
PROTOCOL ERRORS
=============================================================================

Every failure the protocol engine can hit while serving a connection has a
class here. They all stay local to ONE connection: the session catches them,
logs them, and tears that connection down. Nothing here ever reaches the
acceptor or another connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ERROR TAXONOMY                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ProtocolError                                                      │
    │   ├── HTTPParseError          (request could not be interpreted)    │
    │   │   ├── MalformedRequestLine   "GET /" - not 3 tokens             │
    │   │   ├── LineTooLong            request/header line over limit     │
    │   │   ├── InvalidContentLength   "abc", "-1"                        │
    │   │   └── BodyTooLarge           Content-Length over the cap        │
    │   ├── ConnectionClosed        (clean EOF - client hung up)          │
    │   ├── Timeout                 (read or write deadline elapsed)      │
    │   └── WriteFailure            (I/O error while sending)             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A parse error never produces a response: the request could not be safely
interpreted, so the connection is simply closed. The status_code carried by
HTTPParseError is for logs only.

Handler failures are NOT exceptions. A handler reports failure by returning
a 4xx/5xx response.

=============================================================================
"""

from typing import Optional

from .status_codes import HTTPStatus


class ProtocolError(Exception):
    """Base class for all per-connection protocol failures."""


class HTTPParseError(ProtocolError):
    """
    Raised when a request cannot be parsed.

    Carries the HTTP status code that best describes the problem:

        400 Bad Request              - malformed syntax
        413 Payload Too Large        - declared body over the cap
        431 Header Fields Too Large  - a single line over the limit
    """

    status_code = HTTPStatus.BAD_REQUEST

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class MalformedRequestLine(HTTPParseError):
    """The request line did not split into METHOD, PATH and VERSION."""


class LineTooLong(HTTPParseError):
    """A request or header line exceeded the configured line limit."""

    status_code = HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE


class InvalidContentLength(HTTPParseError):
    """Content-Length was not a non-negative integer."""


class BodyTooLarge(HTTPParseError):
    """Content-Length exceeded the maximum body size."""

    status_code = HTTPStatus.PAYLOAD_TOO_LARGE


class ConnectionClosed(ProtocolError):
    """The peer closed the stream before a complete request arrived."""


class Timeout(ProtocolError, TimeoutError):
    """A read or write deadline elapsed before the operation completed."""


class WriteFailure(ProtocolError):
    """Sending a response failed. The connection cannot be reused."""
