"""
=============================================================================
PRODUCT SERVER CLI ENTRY POINT
=============================================================================

    # Defaults: 127.0.0.1:8000, 3 second grace period
    python -m productserver

    # Custom port, all interfaces
    python -m productserver --host 0.0.0.0 --port 9000

    # Longer grace period for slow clients
    python -m productserver --grace-period 10

The installed `productserver` console script runs the same main().

Settings come from, highest priority first: command-line flags, HTTP_*
environment variables (see ServerConfig.from_env), ServerConfig defaults.

Exit status: 0 after Ctrl+C, 1 when the server cannot start.

=============================================================================
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

from . import __version__
from .config import ServerConfig
from .lifecycle import Lifecycle
from .server import create_app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="productserver",
        description="Minimal product catalog HTTP server with graceful shutdown",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m productserver                     # 127.0.0.1:8000
  python -m productserver --port 9000         # Custom port
  python -m productserver --grace-period 10   # Wait up to 10s on Ctrl+C
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 127.0.0.1)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 8000)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # SHUTDOWN AND CONCURRENCY
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--grace-period", "-g",
        type=float,
        default=None,
        help="Seconds in-flight requests get after Ctrl+C (default: 3)"
    )

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum worker threads, i.e. concurrent connections (default: 64)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--no-access-log",
        action="store_true",
        help="Do not log one line per request"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"productserver {__version__}"
    )

    return parser


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Environment first, then any flag that was given on top."""
    config = ServerConfig.from_env()

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.grace_period is not None:
        config.shutdown_timeout = args.grace_period
    if args.workers is not None:
        config.max_workers = args.workers
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.no_access_log:
        config.access_log = False

    config.min_workers = min(config.min_workers, config.max_workers)
    return config


def setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Parse arguments, build the server, run it until Ctrl+C.

    Returns the exit status; the module entry point passes it to sys.exit().
    """
    args = build_parser().parse_args(argv)

    try:
        config = build_config(args)
        config.validate()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    setup_logging(config.log_level)

    server = create_app(config)
    return Lifecycle(server).run()


if __name__ == "__main__":
    sys.exit(main())
