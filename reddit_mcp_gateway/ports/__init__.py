"""Port interfaces for the Reddit MCP Gateway."""

from reddit_mcp_gateway.ports.bridge import (
    ConnectionFactory,
    ToolBridgePort,
    ToolSessionPort,
    TransportCloseHandler,
    TransportConnectionPort,
    TransportErrorHandler,
)

__all__ = [
    "ConnectionFactory",
    "ToolBridgePort",
    "ToolSessionPort",
    "TransportCloseHandler",
    "TransportConnectionPort",
    "TransportErrorHandler",
]
