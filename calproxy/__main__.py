"""Command-line entry for calproxy."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import NoReturn, Optional

from . import run_server
from .exceptions import ConfigError


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the calproxy CLI.

    Every flag defaults to None so unset flags fall through to the
    environment and .env values.
    """
    parser = argparse.ArgumentParser(
        prog="calproxy",
        description="Serve the calendar feeds listed on an index page as one merged calendar",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  TARGET=https://cal.example.com/feeds/ python -m calproxy
  python -m calproxy --target https://cal.example.com/feeds/ --user bot --pass s3cret
        """,
    )

    parser.add_argument("--target", help="index page URL (env: TARGET)")
    parser.add_argument("--user", help="user for basic auth (env: AUTH_USER)")
    parser.add_argument("--pass", dest="password", help="password for basic auth (env: AUTH_PASS)")
    parser.add_argument("--host", help="address to bind (env: CALPROXY_WEB_HOST, default 0.0.0.0)")
    parser.add_argument(
        "--port", type=int, metavar="PORT", help="port to listen on (env: CALPROXY_WEB_PORT, default 8080)"
    )
    parser.add_argument(
        "--refresh-interval",
        type=int,
        metavar="SECONDS",
        help="seconds between refreshes (env: CALPROXY_REFRESH_INTERVAL, default 7200)",
    )
    parser.add_argument("--env-file", metavar="PATH", help="path to .env file (default ./.env)")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")

    return parser


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the calproxy CLI. Exits 2 on configuration errors."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    try:
        run_server(args)
    except ConfigError as exc:
        logging.getLogger("calproxy").error("configuration error: %s", exc)
        print(f"calproxy: {exc}", file=sys.stderr)
        sys.exit(2)
    sys.exit(0)


if __name__ == "__main__":
    main()
