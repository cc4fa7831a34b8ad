"""
=============================================================================
CLI ENTRY POINT
=============================================================================

    # Defaults: 0.0.0.0:4221
    python -m minihttp

    # Serve and accept uploads under /tmp/data at /files/<name>
    python -m minihttp --directory /tmp/data

    # Custom port and shorter deadlines
    python -m minihttp --port 8080 --read-timeout 2 --write-timeout 2

Values not given on the command line come from MINIHTTP_* environment
variables, then from the ServerConfig defaults.

Exit status: 0 after a clean shutdown, 1 if the server could not start
(bad arguments, port in use), 2 for argparse usage errors.

=============================================================================
"""

from dataclasses import replace
from typing import List, Optional
import argparse
import logging
import os
import sys

from . import __version__
from .config import ServerConfig
from .handlers import register_default_routes
from .server import HTTPServer, setup_logging


logger = logging.getLogger("minihttp")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="minihttp",
        description="Minimal HTTP/1.1 server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m minihttp                          # 0.0.0.0:4221
  python -m minihttp --port 8080              # Custom port
  python -m minihttp --directory /tmp/data    # Enable /files/
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", default=None, help="Host to bind to (default: 0.0.0.0)")
    parser.add_argument("--port", "-p", type=int, default=None, help="Port to listen on (default: 4221)")

    # ─────────────────────────────────────────────────────────────────────
    # DEADLINES
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--read-timeout",
        type=float,
        default=None,
        help="Seconds allowed to receive each request (default: 5)",
    )
    parser.add_argument(
        "--write-timeout",
        type=float,
        default=None,
        help="Seconds allowed to send each response (default: 5)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # FEATURES & META
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--directory", "-d",
        default=None,
        help="Directory served and written by /files/<name>",
    )
    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--version", "-v", action="version", version=f"minihttp {__version__}")

    return parser


def config_from_args(args: argparse.Namespace, base: Optional[ServerConfig] = None) -> ServerConfig:
    """Overlay the arguments that were given on top of `base`."""
    config = base or ServerConfig()
    overrides = {
        "host": args.host,
        "port": args.port,
        "read_timeout": args.read_timeout,
        "write_timeout": args.write_timeout,
        "directory": args.directory,
        "log_level": args.log_level,
    }
    return replace(config, **{k: v for k, v in overrides.items() if v is not None})


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.directory is not None and not os.path.isdir(args.directory):
        parser.error(f"--directory is not a directory: {args.directory}")

    try:
        config = config_from_args(args, ServerConfig.from_env())
        server = HTTPServer(config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    server.setup_logging()
    register_default_routes(server.router, config.directory)

    try:
        server.start()
    except OSError as e:
        logger.error(f"Could not start server on {config.address}: {e}")
        return 1

    server.serve_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
