"""
=============================================================================
ECHOHTTP CLI ENTRY POINT
=============================================================================

    # Run with defaults (localhost:8080)
    python -m echohttp

    # Custom port, all interfaces
    python -m echohttp --host 0.0.0.0 --port 3000

    # Answer malformed requests with 400 before closing
    python -m echohttp --send-400

    # JSON logs, verbose
    python -m echohttp --log-format json --log-level DEBUG

=============================================================================
"""

import argparse
import sys

from . import __version__
from .config import LOG_FORMATS, LOG_LEVELS, ServerConfig
from .server import HTTPServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="echohttp",
        description="Keep-alive HTTP/1.x server that echoes each request back as HTML",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m echohttp                        # Run with defaults
  python -m echohttp --port 3000            # Custom port
  python -m echohttp --host 0.0.0.0         # Listen on all interfaces
  python -m echohttp --idle-timeout 5       # Drop idle clients after 5s
  python -m echohttp --send-400             # Reply 400 to malformed input
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        help="Host to bind to (default: $ECHOHTTP_HOST or 127.0.0.1)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        help="Port to listen on (default: $ECHOHTTP_PORT or 8080, 0 picks a free port)"
    )

    parser.add_argument(
        "--idle-timeout",
        type=float,
        help="Close connections idle for this many seconds (default: 30)"
    )

    parser.add_argument(
        "--max-body-size",
        type=int,
        help="Reject requests declaring a larger Content-Length (default: 10 MB)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # BEHAVIOUR ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--send-400",
        action="store_true",
        help="Send 400 Bad Request before closing on malformed input"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        help="Log output format (default: text)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"echohttp {__version__}"
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """
    Build the server configuration.

    Environment variables (ServerConfig.from_env) form the base; any flag
    given on the command line overrides them.
    """
    config = ServerConfig.from_env()

    overrides = {
        "host": args.host,
        "port": args.port,
        "idle_timeout": args.idle_timeout,
        "max_body_size": args.max_body_size,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)

    if args.send_400:
        config.send_error_response = True
    return config


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        server = HTTPServer(config_from_args(args))
        server.run()
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
