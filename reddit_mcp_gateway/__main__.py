"""Entry point for running the Reddit MCP Gateway and CLI commands."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import NoReturn

from reddit_mcp_gateway.config import Settings

logger = logging.getLogger(__name__)


def _load_settings(args: argparse.Namespace) -> Settings | None:
    """Load settings from --config or the environment, printing errors."""
    from reddit_mcp_gateway.config import (
        ConfigurationError,
        get_settings,
        load_settings_file,
        override_settings,
    )

    try:
        if args.config:
            settings = load_settings_file(args.config)
            override_settings(settings)
            return settings
        return get_settings()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return None


def run_server(args: argparse.Namespace) -> None:
    """Run the Reddit MCP Gateway server."""
    from reddit_mcp_gateway.server import main as server_main

    asyncio.run(server_main(args.config))


def run_status(args: argparse.Namespace) -> int:
    """Print the status payload without contacting the child server.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    from reddit_mcp_gateway.core.errors import LaunchResolutionError
    from reddit_mcp_gateway.factory import ServiceFactory
    from reddit_mcp_gateway.gateway import RedditGateway

    settings = _load_settings(args)
    if settings is None:
        return 1

    try:
        services = ServiceFactory(settings, environ=dict(os.environ)).create_all()
    except LaunchResolutionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    payload = RedditGateway(services).status_payload()
    print(json.dumps(payload, indent=2, default=str))
    return 0


async def _run_check(settings: Settings) -> int:
    from reddit_mcp_gateway.factory import ServiceFactory
    from reddit_mcp_gateway.gateway import RedditGateway

    services = ServiceFactory(
        settings.model_copy(update={"strict_startup": False}),
        environ=dict(os.environ),
    ).create_all()
    gateway = RedditGateway(services)
    try:
        parity = await gateway.start()
    finally:
        await gateway.stop()

    print(json.dumps(parity.to_dict(), indent=2))
    if parity.error is not None:
        print(f"\nStartup check failed: {parity.error}")
        return 1
    if parity.missing_expected_tools:
        print(f"\nMissing expected tools: {', '.join(parity.missing_expected_tools)}")
        return 1
    print(f"\nOK: {parity.upstream_tool_count} upstream tools, all expected tools present.")
    return 0


def run_check(args: argparse.Namespace) -> int:
    """Connect to the child server and compare its tool catalog.

    Returns:
        Exit code (0 when every expected tool is present, 1 otherwise).
    """
    from reddit_mcp_gateway.core.errors import LaunchResolutionError

    settings = _load_settings(args)
    if settings is None:
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    try:
        return asyncio.run(_run_check(settings))
    except LaunchResolutionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def run_tools() -> int:
    """Print the tool catalog with read/write classification."""
    from reddit_mcp_gateway.tools import ALL_TOOL_NAMES, TOOL_SPECS

    width = max(len(name) for name in ALL_TOOL_NAMES)
    for name in ALL_TOOL_NAMES:
        spec = TOOL_SPECS[name]
        print(f"{name:<{width}}  {spec.mode:<5}  {spec.description}")
    return 0


def run_version() -> None:
    """Print version information."""
    from reddit_mcp_gateway import __version__

    print(f"reddit-mcp-gateway {__version__}")


def main() -> NoReturn:
    """Main entry point with subcommand support."""
    parser = argparse.ArgumentParser(
        prog="reddit-mcp-gateway",
        description="Policy-enforcing MCP gateway for the Reddit MCP server",
    )
    parser.add_argument(
        "--version",
        "-V",
        action="store_true",
        help="Show version and exit",
    )
    parser.add_argument(
        "--config",
        "-c",
        metavar="FILE",
        help="JSON settings file (default: REDDIT_GATEWAY_* environment variables)",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Available commands",
    )

    # Server command (default)
    subparsers.add_parser(
        "serve",
        help="Start the MCP server (default if no command given)",
    )

    subparsers.add_parser(
        "status",
        help="Print the gateway status payload without starting the child server",
    )

    check_parser = subparsers.add_parser(
        "check",
        help="Start the child server and verify its tool catalog",
    )
    check_parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show debug logging",
    )

    subparsers.add_parser(
        "tools",
        help="List the Reddit tools and their read/write classification",
    )

    args = parser.parse_args()

    if args.version:
        run_version()
        sys.exit(0)

    if args.command == "status":
        sys.exit(run_status(args))
    elif args.command == "check":
        sys.exit(run_check(args))
    elif args.command == "tools":
        sys.exit(run_tools())
    elif args.command == "serve" or args.command is None:
        # Default to running the server
        run_server(args)
        sys.exit(0)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
