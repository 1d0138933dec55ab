"""Command-line interface for termrelay.

Provides the main entry point for running the terminal server and for
inspecting or killing sessions on a running server.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="termrelay",
        description="Pty-backed shell sessions over HTTP",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/termrelay.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--url", type=str, default=None,
        help="Base URL of a running server (default: from config host/port)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the terminal server")
    serve_parser.add_argument("--host", type=str, default=None)
    serve_parser.add_argument("--port", type=int, default=None)

    subparsers.add_parser("list", help="List sessions on a running server")

    kill_parser = subparsers.add_parser("kill", help="Kill a session on a running server")
    kill_parser.add_argument("session", type=str, help="Session id")

    return parser.parse_args(argv)


def _base_url(settings, args) -> str:
    if args.url:
        return args.url
    host = settings.server.host
    if host in ("0.0.0.0", "::"):
        host = "127.0.0.1"
    return f"http://{host}:{settings.server.port}"


async def _list_sessions(settings, args) -> None:
    from termrelay.client import TerminalClient

    async with TerminalClient(
        _base_url(settings, args), route_prefix=settings.server.route_prefix
    ) as client:
        sessions = await client.list_sessions()

    if not sessions:
        print("No sessions")
        return
    print(f"{'ID':<10} {'STATE':<8} {'AGE':>7}  {'VIEWERS':>7}  CWD")
    for s in sessions:
        print(f"{s.id:<10} {s.state.value:<8} {s.age_seconds:>6}s  {s.listeners:>7}  {s.cwd}")


async def _kill_session(settings, args) -> None:
    from termrelay.client import TerminalClient

    async with TerminalClient(
        _base_url(settings, args), route_prefix=settings.server.route_prefix
    ) as client:
        await client.kill(args.session)
    print(f"Killed {args.session}")


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the termrelay CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from termrelay.config.settings import load_settings
    from termrelay.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "serve":
        if args.host:
            settings.server.host = args.host
        if args.port:
            settings.server.port = args.port
        logger.info("Starting terminal server on %s:%d", settings.server.host, settings.server.port)
        from termrelay.endpoint.server import main as serve
        serve(settings)

    elif args.command == "list":
        asyncio.run(_list_sessions(settings, args))

    elif args.command == "kill":
        asyncio.run(_kill_session(settings, args))


if __name__ == "__main__":
    main()
