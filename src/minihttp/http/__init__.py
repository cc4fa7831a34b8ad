"""
=============================================================================
HTTP PROTOCOL ENGINE
=============================================================================

Everything that turns bytes into requests and responses into bytes:

    bytes ──► RequestParser ──► HTTPRequest
                                    │
                                    ▼
                               Router.handle()
                                    │
                                    ▼
                               HTTPResponse ──► CompressionNegotiator
                                                        │
                                                        ▼
                                               write_response() ──► bytes

Nothing in this package touches sockets. The parser reads from any stream
with readline()/read(), and write_response() writes to anything with
write()/flush().

=============================================================================
"""

from .compression import CompressionNegotiator, gzip_transform
from .errors import (
    BodyTooLarge,
    ConnectionClosed,
    HTTPParseError,
    InvalidContentLength,
    LineTooLong,
    MalformedRequestLine,
    ProtocolError,
    Timeout,
    WriteFailure,
)
from .headers import Headers
from .request import HTTPRequest, RequestParser, parse_request, parse_response
from .response import (
    HTTPResponse,
    ResponseBuilder,
    write_response,
    # Convenience functions for common responses
    ok,                  # 200 OK
    created,             # 201 Created
    bad_request,         # 400 Bad Request
    forbidden,           # 403 Forbidden
    not_found,           # 404 Not Found
    method_not_allowed,  # 405 Method Not Allowed
    internal_error,      # 500 Internal Server Error
)
from .router import Handler, Route, Router
from .status_codes import HTTPStatus, reason_phrase

__all__ = [
    # Headers
    "Headers",

    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "parse_request",
    "parse_response",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "write_response",
    "ok",
    "created",
    "bad_request",
    "forbidden",
    "not_found",
    "method_not_allowed",
    "internal_error",

    # Compression
    "CompressionNegotiator",
    "gzip_transform",

    # Routing
    "Handler",
    "Route",
    "Router",

    # Status codes
    "HTTPStatus",
    "reason_phrase",

    # Errors
    "ProtocolError",
    "HTTPParseError",
    "MalformedRequestLine",
    "LineTooLong",
    "InvalidContentLength",
    "BodyTooLarge",
    "ConnectionClosed",
    "Timeout",
    "WriteFailure",
]
