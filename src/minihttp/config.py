"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every tunable the server reads, in one frozen dataclass.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m minihttp --port 3000                             │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── MINIHTTP_PORT=3000 python -m minihttp                      │
    │                                                                      │
    │   3. Default values (in this dataclass)                             │
    └─────────────────────────────────────────────────────────────────────┘

The config is FROZEN. Every connection thread reads it concurrently, and
nothing may change it once the server is running. To change a value,
build a new one:

    config = dataclasses.replace(config, port=8080)

=============================================================================
"""

from dataclasses import dataclass
from typing import Optional
import logging
import os


SUPPORTED_PROTOCOLS = ("tcp",)


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the HTTP server.

    NETWORK
    - host, port, protocol, backlog, buffer_size

    DEADLINES
    - read_timeout: seconds to receive each request (also the keep-alive
      idle limit, since the deadline starts when we begin waiting)
    - write_timeout: seconds to send each response
    - drain_timeout: seconds shutdown waits for in-flight connections
      (None = wait as long as it takes)

    LIMITS
    - max_body_size, max_line_size

    FILES
    - directory: root for the /files/ handler (None = not registered)

    LOGGING
    - log_level
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    The IP address to bind to.
    - "0.0.0.0" - All network interfaces
    - "127.0.0.1" - Localhost only
    """

    port: int = 4221
    """Port to listen on. 0 asks the OS for any free port."""

    protocol: str = "tcp"
    """Transport protocol. Only "tcp" is supported."""

    backlog: int = 128
    """Maximum number of queued, not yet accepted connections."""

    buffer_size: int = 8192
    """Bytes requested per recv() call."""

    # ─────────────────────────────────────────────────────────────────────
    # DEADLINES
    # ─────────────────────────────────────────────────────────────────────

    read_timeout: Optional[float] = 5.0
    write_timeout: Optional[float] = 5.0
    drain_timeout: Optional[float] = None

    # ─────────────────────────────────────────────────────────────────────
    # LIMITS
    # ─────────────────────────────────────────────────────────────────────

    max_body_size: int = 10 * 1024 * 1024  # 10 MiB
    """Largest Content-Length accepted. Bigger requests are dropped."""

    max_line_size: int = 64 * 1024
    """Longest request or header line accepted, in bytes."""

    # ─────────────────────────────────────────────────────────────────────
    # FILES & LOGGING
    # ─────────────────────────────────────────────────────────────────────

    directory: Optional[str] = None
    log_level: str = "INFO"

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "ServerConfig":
        """
        Create configuration from environment variables.

            MINIHTTP_HOST           Bind address   (default: 0.0.0.0)
            MINIHTTP_PORT           Port           (default: 4221)
            MINIHTTP_READ_TIMEOUT   Seconds        (default: 5)
            MINIHTTP_WRITE_TIMEOUT  Seconds        (default: 5)
            MINIHTTP_DIRECTORY      Files root     (default: none)
            MINIHTTP_LOG_LEVEL      Logging level  (default: INFO)

        Raises:
            ValueError: A numeric variable does not parse.
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            host=env.get("MINIHTTP_HOST", defaults.host),
            port=int(env.get("MINIHTTP_PORT", defaults.port)),
            read_timeout=float(env.get("MINIHTTP_READ_TIMEOUT", defaults.read_timeout)),
            write_timeout=float(env.get("MINIHTTP_WRITE_TIMEOUT", defaults.write_timeout)),
            directory=env.get("MINIHTTP_DIRECTORY") or None,
            log_level=env.get("MINIHTTP_LOG_LEVEL", defaults.log_level),
        )

    def validate(self) -> None:
        """
        Fail fast on values the server cannot run with.

        Raises:
            ValueError: Describing the first invalid field.
        """
        if self.protocol not in SUPPORTED_PROTOCOLS:
            raise ValueError(f"Unsupported protocol: {self.protocol!r}. Only 'tcp' is supported.")

        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        for name in ("read_timeout", "write_timeout", "drain_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be > 0")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.max_body_size < 0:
            raise ValueError("max_body_size must be >= 0")

        if self.max_line_size < 1:
            raise ValueError("max_line_size must be >= 1")

        if self.directory is not None and not os.path.isdir(self.directory):
            raise ValueError(f"directory does not exist: {self.directory}")

        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level: {self.log_level}")
