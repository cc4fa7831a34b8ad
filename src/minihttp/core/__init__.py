"""
Networking layer: sockets, threads, and the per-connection loop.

    SocketServer   accept loop, one thread per connection, WaitGroup drain
    Connection     buffered socket I/O with read/write deadlines
    Session        parse → route → compress → write, until the connection ends
"""

from .connection import Connection
from .session import Session, SessionState, process_common_headers
from .socket_server import SocketServer, WaitGroup

__all__ = [
    "Connection",
    "Session",
    "SessionState",
    "process_common_headers",
    "SocketServer",
    "WaitGroup",
]
