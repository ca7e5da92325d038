"""
=============================================================================
WEB SERVER CLI ENTRY POINT
=============================================================================

    web                        # serve ./www on localhost:80
    web 8080                   # custom port
    web 8080 --root ./public   # custom served directory
    web 8080 --workers 16      # cap concurrent connections
    python -m webserver 8080   # same, without the console script

Command-line values override environment variables (see
ServerConfig.from_env), which override the defaults.

Exit status:
    0   stopped by SIGINT/SIGTERM
    1   could not start (bad config, name not resolvable, port in use, ...)
    2   invalid command-line arguments

=============================================================================
"""

import argparse
import sys
from dataclasses import replace
from typing import List, Optional

from . import __version__
from .config import ServerConfig
from .errors import WebServerError
from .server import WebServer


def port_number(value: str) -> int:
    """argparse type for a TCP port."""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}")
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range (0-65535): {port}")
    return port


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="web",
        description="Serve the files of a directory over HTTP/1.1",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  web                          # localhost:80, serving ./www
  web 8080                     # custom port
  web 8080 --host 0.0.0.0      # listen on all interfaces
  web 8080 --root ./public     # serve another directory
  web 8080 --workers 16        # at most 16 connections at once
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "port",
        nargs="?",
        type=port_number,
        default=None,
        help="Port to listen on (default: 80)",
    )

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to listen on (default: localhost)",
    )

    parser.add_argument(
        "--timeout", "-t",
        type=float,
        default=None,
        help="Per-connection socket timeout in seconds (default: none)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT / CONCURRENCY
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--root", "-r",
        default=None,
        help="Directory to serve (default: www)",
    )

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Worker pool size (default: one thread per connection)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # META
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"web_server {__version__}",
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment-derived config with every given CLI option applied on top."""
    config = ServerConfig.from_env()

    overrides = {
        "port": args.port,
        "host": args.host,
        "root_dir": args.root,
        "max_workers": args.workers,
        "connection_timeout": args.timeout,
        "log_level": args.log_level,
    }
    return replace(config, **{k: v for k, v in overrides.items() if v is not None})


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args)
        server = WebServer(config)
        server.run()
    except (ValueError, WebServerError) as e:
        print(f"web: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
