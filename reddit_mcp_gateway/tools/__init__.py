"""Tool catalog for the Reddit MCP Gateway."""

from reddit_mcp_gateway.tools.definitions import (
    ALL_TOOL_NAMES,
    DELETE_TOOL_NAMES,
    READ_TOOL_NAMES,
    TOOL_SPECS,
    TOOLS,
    WRITE_TOOL_NAMES,
    ToolSpec,
    is_delete_tool,
    is_write_tool,
    tool_mode,
)

__all__ = [
    "ALL_TOOL_NAMES",
    "DELETE_TOOL_NAMES",
    "READ_TOOL_NAMES",
    "TOOL_SPECS",
    "TOOLS",
    "WRITE_TOOL_NAMES",
    "ToolSpec",
    "is_delete_tool",
    "is_write_tool",
    "tool_mode",
]
