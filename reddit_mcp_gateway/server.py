"""MCP Server for the Reddit MCP Gateway.

This module exposes the Reddit tool catalog over MCP stdio and forwards every
call to RedditGateway, which applies the write policy and rate limits before
the child reddit-mcp-server is contacted.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from reddit_mcp_gateway import __version__
from reddit_mcp_gateway.config import (
    ConfigurationError,
    Settings,
    get_settings,
    load_settings_file,
    override_settings,
)
from reddit_mcp_gateway.core.errors import LaunchResolutionError, StartupParityError
from reddit_mcp_gateway.core.logging import configure_logging
from reddit_mcp_gateway.core.models import ParitySnapshot, ToolResult
from reddit_mcp_gateway.factory import ServiceFactory
from reddit_mcp_gateway.gateway import RedditGateway
from reddit_mcp_gateway.ports.bridge import ToolBridgePort
from reddit_mcp_gateway.tools import TOOLS

logger = logging.getLogger(__name__)

STATUS_TOOL_NAME = "reddit_gateway_status"

STATUS_TOOL = Tool(
    name=STATUS_TOOL_NAME,
    description=(
        "Show gateway status: write mode, allowlists, MCP bridge state "
        "and rate-limit window usage."
    ),
    inputSchema={"type": "object", "additionalProperties": False, "properties": {}},
)

SERVER_INSTRUCTIONS = """## Reddit Gateway

Reddit read tools are always available, subject to a per-minute rate limit.

Write tools (create_post, reply_to_post, edit_post, edit_comment, delete_post,
delete_comment) only run when the operator has enabled write mode, and only
for allowlisted tools and subreddits. Blocked calls return an error explaining
why; do not retry a policy denial.

A rate-limit error includes the number of milliseconds to wait before retrying.
Use `reddit_gateway_status` to inspect the current mode and limits."""


def render_tool_result(result: ToolResult) -> list[TextContent]:
    """Render a ToolResult as MCP text content.

    Failures become a JSON object with ``error``, ``message`` and
    ``isError: true``, plus any structured details (reason, retry_after_ms,
    error_id).
    """
    if not result.is_error:
        return [TextContent(type="text", text=result.content_text)]

    metadata = result.metadata
    response: dict[str, Any] = {
        "error": metadata.get("error_type", "UpstreamToolError"),
        "message": metadata.get("error", result.content_text),
        "isError": True,
    }
    for key in ("reason", "retry_after_ms", "error_id", "tool", "request_id"):
        if key in metadata:
            response[key] = metadata[key]
    return [TextContent(type="text", text=json.dumps(response))]


class RedditGatewayServer:
    """MCP Server for policy-enforced Reddit operations.

    Uses dependency injection for testability.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        environ: Mapping[str, str] | None = None,
        bridge: ToolBridgePort | None = None,
        search_from: str | Path | None = None,
    ) -> None:
        """Initialize the server.

        Args:
            settings: Settings to use (defaults to get_settings()).
            environ: Environment for credential resolution (defaults to os.environ).
            bridge: Optional bridge (spawns the child MCP server if not provided).
            search_from: Directory to locate the npm package from.
        """
        self._settings = settings or get_settings()

        factory = ServiceFactory(
            settings=self._settings,
            environ=environ if environ is not None else dict(os.environ),
            bridge=bridge,
            search_from=search_from,
        )
        services = factory.create_all()
        self._gateway = RedditGateway(services)

        self._server = Server(
            name="reddit-mcp-gateway",
            version=__version__,
            instructions=SERVER_INSTRUCTIONS,
        )
        self._setup_handlers()

    @property
    def gateway(self) -> RedditGateway:
        return self._gateway

    def list_tools(self) -> list[Tool]:
        return [*TOOLS, STATUS_TOOL]

    async def handle_call_tool(self, name: str, arguments: Any) -> list[TextContent]:
        """Dispatch one MCP tool call.

        Args:
            name: Tool name.
            arguments: Tool arguments as sent by the client.

        Returns:
            Text content for the MCP response.
        """
        if name == STATUS_TOOL_NAME:
            payload = self._gateway.status_payload()
            return [TextContent(type="text", text=json.dumps(payload, indent=2, default=str))]

        result = await self._gateway.execute_tool(name, arguments)
        return render_tool_result(result)

    def _setup_handlers(self) -> None:
        """Set up MCP tool handlers."""

        @self._server.list_tools()  # type: ignore[no-untyped-call, untyped-decorator]
        async def list_tools() -> list[Tool]:
            """Return the list of available tools."""
            return self.list_tools()

        @self._server.call_tool()  # type: ignore[untyped-decorator]
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            """Handle tool calls through the gateway."""
            return await self.handle_call_tool(name, arguments)

    async def start(self) -> ParitySnapshot:
        """Run the startup parity check against the child MCP server."""
        return await self._gateway.start()

    async def run(self) -> None:
        """Run the MCP server using stdio transport."""
        async with stdio_server() as (read_stream, write_stream):
            await self._server.run(
                read_stream,
                write_stream,
                self._server.create_initialization_options(),
            )

    async def close(self) -> None:
        """Shut down the child MCP server."""
        await self._gateway.stop()


def create_server(
    settings: Settings | None = None,
    environ: Mapping[str, str] | None = None,
    bridge: ToolBridgePort | None = None,
) -> RedditGatewayServer:
    """Create a new RedditGatewayServer instance.

    This factory function allows dependency injection for testing.
    """
    return RedditGatewayServer(settings=settings, environ=environ, bridge=bridge)


async def main(config_path: str | Path | None = None) -> None:
    """Main entry point for the MCP server.

    Args:
        config_path: Optional JSON settings file; environment variables are
            used when omitted.
    """
    try:
        if config_path is not None:
            settings = load_settings_file(config_path)
            override_settings(settings)
        else:
            settings = get_settings()
    except ConfigurationError as e:
        # Use basic logging for error
        logging.basicConfig(level=logging.ERROR)
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    configure_logging(
        level=settings.log_level,
        json_format=settings.log_format == "json",
    )

    try:
        server = create_server(settings)
    except LaunchResolutionError as e:
        logger.error(f"Cannot start Reddit MCP server: {e}")
        sys.exit(1)

    try:
        await server.start()
        await server.run()
    except StartupParityError as e:
        logger.error(f"Strict startup failed: {e}")
        sys.exit(1)
    except asyncio.CancelledError:
        logger.info("Server task cancelled")
    finally:
        logger.info("Shutting down MCP bridge...")
        await server.close()
        logger.info("Server shutdown complete")
