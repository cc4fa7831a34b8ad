"""
=============================================================================
TCP LISTENER & ACCEPTOR
=============================================================================

Owns the listening socket and hands every accepted connection to its own
worker thread.

=============================================================================
THREAD-PER-CONNECTION
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Acceptor thread                    Worker threads                  │
    │   ───────────────                    ──────────────                  │
    │                                                                      │
    │   while running:                                                     │
    │       accept()  ── 1s timeout ──┐                                    │
    │          │                      │ (poll running flag)                │
    │          ▼                      │                                    │
    │       workers.add(1)            │                                    │
    │       Thread(...).start() ──────┼──►  handler(conn)                  │
    │          │                      │        ...keep-alive loop...       │
    │          └──────────────────────┘     finally: workers.done()        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A slow client only ever blocks its own thread. Workers are daemon threads
so a stuck client can never keep the process alive once the drain gives up.

=============================================================================
GRACEFUL SHUTDOWN
=============================================================================

    shutdown()                   ← signal handler or any thread
        │
        ├──► running = False     accept loop exits within 1s
        ├──► close listener      no new connections (exactly once)
        │
    wait(drain_timeout)          ← the thread that called serve()
        │
        └──► blocks until every worker has called done()

In-flight requests are never interrupted: each worker finishes the
response it is writing, notices the shutdown, and closes its connection.

=============================================================================
"""

from typing import Callable, Optional, Tuple
import logging
import socket
import threading

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


ConnectionHandler = Callable[[Connection], None]


class WaitGroup:
    """
    Counts live workers and lets a thread wait for the count to hit zero.

        wg = WaitGroup()
        wg.add(1)              # before starting a worker
        ...                    # worker calls wg.done() in `finally`
        wg.wait(timeout=30)    # True once every worker is done
    """

    def __init__(self):
        self._count = 0
        self._cond = threading.Condition()

    @property
    def count(self) -> int:
        with self._cond:
            return self._count

    def add(self, delta: int = 1) -> None:
        with self._cond:
            if self._count + delta < 0:
                raise ValueError("WaitGroup counter cannot go negative")
            self._count += delta
            if self._count == 0:
                self._cond.notify_all()

    def done(self) -> None:
        self.add(-1)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the counter is zero.

        Returns:
            True if it reached zero, False if the timeout expired first.
        """
        with self._cond:
            return self._cond.wait_for(lambda: self._count == 0, timeout)


class SocketServer:
    """
    Low-level TCP server: bind, accept, spawn.

        server = SocketServer(config)
        server.bind()                  # raises OSError if the port is taken
        server.serve(handle)           # blocks until shutdown()
        server.wait(timeout=30)        # drain in-flight connections

    Knows nothing about HTTP. Each accepted socket is wrapped in a
    Connection and passed to the handler on a fresh thread.
    """

    ACCEPT_POLL_INTERVAL = 1.0

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._shutdown_called = False
        self._lock = threading.RLock()
        self._workers = WaitGroup()
        self._bound_address: Optional[Tuple[str, int]] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); resolves port 0 to the real port."""
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    @property
    def active_connections(self) -> int:
        return self._workers.count

    def _create_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.config.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)

        # Avoid "Address already in use" while old sockets sit in TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Responses are written in one sendall(); don't let Nagle delay them
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up every second so the loop can see shutdown()
        sock.settimeout(self.ACCEPT_POLL_INTERVAL)
        return sock

    def bind(self) -> Tuple[str, int]:
        """
        Create, bind and listen on the server socket.

        Raises:
            OSError: The address could not be bound (port in use,
                     permission denied). This is the only fatal error.
        """
        sock = self._create_socket()
        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            raise

        with self._lock:
            self._socket = sock
            self._bound_address = tuple(sock.getsockname()[:2])
            self._running = True
            self._shutdown_called = False

        host, port = self.address
        logger.info(f"Server listening on {host}:{port}")
        return host, port

    def serve(self, connection_handler: ConnectionHandler) -> None:
        """
        Accept connections until shutdown() is called.

        Binds first if bind() has not been called. Returns immediately if
        shutdown() already ran.
        """
        if self._shutdown_called:
            return
        if self._socket is None:
            self.bind()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._close_listener()
            logger.info("Socket server stopped accepting connections")

    def _accept_loop(self, connection_handler: ConnectionHandler) -> None:
        listener = self._socket
        while self._running:
            try:
                client_socket, client_address = listener.accept()
            except socket.timeout:
                continue  # Poll the running flag
            except OSError as e:
                # Listener closed by shutdown(), or a real error
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
            )
            logger.debug(f"[{conn.id}] Accepted connection from {conn.client_ip}:{conn.client_port}")
            self._spawn(connection_handler, conn)

    def _spawn(self, connection_handler: ConnectionHandler, conn: Connection) -> None:
        self._workers.add(1)
        worker = threading.Thread(
            target=self._run_worker,
            args=(connection_handler, conn),
            name=f"conn-{conn.id}",
            daemon=True,
        )
        try:
            worker.start()
        except RuntimeError as e:
            # Out of threads
            self._workers.done()
            logger.error(f"[{conn.id}] Could not start worker thread: {e}")
            conn.close()

    def _run_worker(self, connection_handler: ConnectionHandler, conn: Connection) -> None:
        try:
            connection_handler(conn)
        except Exception as e:
            logger.exception(f"[{conn.id}] Unhandled error in connection worker: {e}")
            conn.close()
        finally:
            self._workers.done()

    def shutdown(self) -> None:
        """
        Stop accepting connections. Safe to call more than once and from
        any thread, including a signal handler.
        """
        with self._lock:
            if self._shutdown_called:
                return
            self._shutdown_called = True
            self._running = False

        logger.info("Shutting down socket server...")
        self._close_listener()

    def _close_listener(self) -> None:
        with self._lock:
            sock, self._socket = self._socket, None
        if sock is None:
            return
        try:
            # Wakes a thread blocked in accept() and stops the listen queue
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            sock.close()
        except OSError:
            pass

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for all connection workers to finish.

        Returns:
            True if every worker finished, False if the timeout expired.
        """
        return self._workers.wait(timeout)
