"""
=============================================================================
HTTP SERVER
=============================================================================

The facade that wires the pieces together:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │   HTTPServer    │                          │
    │                        └────────┬────────┘                          │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────────┐     │
    │    │ SocketServer │    │    Router    │    │ Compression      │     │
    │    │ (accept +    │    │  (frozen at  │    │ Negotiator       │     │
    │    │  WaitGroup)  │    │   start)     │    │ (stateless)      │     │
    │    └──────┬───────┘    └──────────────┘    └──────────────────┘     │
    │           │ one thread per connection                               │
    │           ▼                                                          │
    │    ┌──────────────┐                                                  │
    │    │   Session    │  parse → route → compress → write → repeat      │
    │    └──────────────┘                                                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
LIFECYCLE
=============================================================================

    server = HTTPServer(ServerConfig(port=4221))

    @server.exact("/")
    def root(request):
        return ok()

    server.start()           # bind + listen; OSError if the port is taken
    server.serve_forever()   # blocks; SIGINT/SIGTERM → graceful drain

Once start() returns the route table is frozen. Registering a route after
that raises RuntimeError.

=============================================================================
"""

from typing import Callable, Optional, Tuple
import logging
import signal
import threading

from .config import ServerConfig
from .core import Connection, Session, SocketServer
from .http import CompressionNegotiator, Handler, RequestParser, Router


logger = logging.getLogger(__name__)


class HTTPServer:
    """
    Minimal HTTP/1.1 server.

    Args:
        config: Server configuration. Defaults to ServerConfig().
        router: Route table to serve. A new, empty one if not given.
        negotiator: Compression negotiator. gzip-only if not given.

    Raises:
        ValueError: The config fails validation.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        router: Optional[Router] = None,
        negotiator: Optional[CompressionNegotiator] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()  # Fail fast on invalid config

        self._router = router or Router()
        self._negotiator = negotiator or CompressionNegotiator()
        self._parser = RequestParser(
            max_body_size=self.config.max_body_size,
            max_line_size=self.config.max_line_size,
        )
        self._socket_server = SocketServer(self.config)

        self._started = False
        self._stopped = threading.Event()
        self._original_handlers: dict = {}

    # =========================================================================
    # ROUTES
    # =========================================================================

    @property
    def router(self) -> Router:
        return self._router

    def exact(self, path: str) -> Callable[[Handler], Handler]:
        """Decorator: register a handler for one exact path."""
        return self._router.exact(path)

    def prefix(self, prefix: str) -> Callable[[Handler], Handler]:
        """Decorator: register a handler for a path prefix."""
        return self._router.prefix(prefix)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port). With port 0 this is the port the OS chose."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._socket_server.is_running

    def start(self) -> Tuple[str, int]:
        """
        Bind the listening socket and freeze the route table.

        Raises:
            OSError: The address could not be bound.
        """
        if self._started:
            return self.address

        address = self._socket_server.bind()
        self._router.freeze()
        self._started = True

        for route in self._router.routes():
            logger.debug(f"Route {route.kind:<6} {route.path} -> {route.handler_name}")
        return address

    def serve_forever(self) -> None:
        """
        Accept and serve connections until shutdown().

        Calls start() first if needed. On the way out, waits up to
        config.drain_timeout for in-flight connections to finish.
        """
        self.start()
        self._setup_signals()

        try:
            self._socket_server.serve(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
            self._socket_server.shutdown()
        finally:
            self._restore_signals()
            self._drain()
            self._stopped.set()

    def shutdown(self) -> None:
        """
        Stop accepting connections. Idempotent and thread-safe.

        serve_forever() returns once the in-flight connections drain.
        """
        self._socket_server.shutdown()

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until serve_forever() has returned. False on timeout."""
        return self._stopped.wait(timeout)

    def _drain(self) -> None:
        active = self._socket_server.active_connections
        if active:
            logger.info(f"Waiting for {active} connection(s) to finish...")
        if not self._socket_server.wait(self.config.drain_timeout):
            logger.warning(
                f"Drain timed out with {self._socket_server.active_connections} connection(s) still open"
            )
        logger.info("Server stopped")

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def _setup_signals(self) -> None:
        """
        SIGINT (Ctrl+C) and SIGTERM (docker stop, systemd) → shutdown().

        Python only allows signal handlers on the main thread, so a server
        running in a background thread (tests, embedding) skips this.
        """
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            self.shutdown()

        for sig in (signal.SIGINT, signal.SIGTERM):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self) -> None:
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    def _handle_connection(self, conn: Connection) -> None:
        """Runs on the connection's worker thread."""
        Session(
            conn,
            self._router,
            negotiator=self._negotiator,
            parser=self._parser,
            read_timeout=self.config.read_timeout,
            write_timeout=self.config.write_timeout,
            keep_running=lambda: self._socket_server.is_running,
        ).run()

    # =========================================================================
    # LOGGING
    # =========================================================================

    def setup_logging(self) -> None:
        """Configure root logging from config.log_level."""
        setup_logging(self.config.log_level)


def setup_logging(log_level: str = "INFO") -> None:
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("minihttp").setLevel(level)
