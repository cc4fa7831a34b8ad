"""
=============================================================================
minihttp
=============================================================================

A minimal HTTP/1.1 server built directly on sockets and threads.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   minihttp/                                                          │
    │   ├── http/          protocol engine (no sockets)                    │
    │   │   ├── headers        case-insensitive header mapping             │
    │   │   ├── request        stream → HTTPRequest                        │
    │   │   ├── response       HTTPResponse → bytes                        │
    │   │   ├── compression    Accept-Encoding negotiation (gzip)          │
    │   │   ├── router         exact + longest-prefix routing              │
    │   │   └── errors         protocol error taxonomy                     │
    │   ├── core/          sockets, threads, per-connection loop           │
    │   ├── handlers/      root, echo, user-agent, files                   │
    │   ├── config         ServerConfig                                    │
    │   └── server         HTTPServer facade                               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Quick start:

    from minihttp import HTTPServer, ServerConfig
    from minihttp.http import ok

    server = HTTPServer(ServerConfig(port=4221))

    @server.exact("/hello")
    def hello(request):
        return ok("hello")

    server.serve_forever()

Features:
    - HTTP/1.1 keep-alive with per-request read/write deadlines
    - gzip compression negotiated from Accept-Encoding
    - Graceful shutdown on SIGINT/SIGTERM

Not supported: TLS, HTTP/2, chunked transfer-encoding, middleware chains.

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import HTTPServer, setup_logging

__all__ = ["HTTPServer", "ServerConfig", "setup_logging", "__version__"]
