"""MCP tool definitions for the Reddit MCP Gateway.

This module is the static catalog of Reddit tools the gateway forwards to
the child reddit-mcp-server, together with their read/write classification.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from mcp.types import Tool

ToolMode = Literal["read", "write"]

READ_TOOL_NAMES: tuple[str, ...] = (
    "test_reddit_mcp_server",
    "get_reddit_post",
    "get_top_posts",
    "get_user_info",
    "get_user_posts",
    "get_user_comments",
    "get_subreddit_info",
    "get_trending_subreddits",
    "get_post_comments",
    "search_reddit",
)

WRITE_TOOL_NAMES: tuple[str, ...] = (
    "create_post",
    "reply_to_post",
    "edit_post",
    "edit_comment",
    "delete_post",
    "delete_comment",
)

DELETE_TOOL_NAMES = frozenset({"delete_post", "delete_comment"})

ALL_TOOL_NAMES: tuple[str, ...] = READ_TOOL_NAMES + WRITE_TOOL_NAMES

WriteToolName = Literal[
    "create_post",
    "reply_to_post",
    "edit_post",
    "edit_comment",
    "delete_post",
    "delete_comment",
]

_WRITE_TOOLS = frozenset(WRITE_TOOL_NAMES)


def is_write_tool(name: str) -> bool:
    """Return True if the tool mutates remote state."""
    return name in _WRITE_TOOLS


def is_delete_tool(name: str) -> bool:
    """Return True if the tool removes remote content."""
    return name in DELETE_TOOL_NAMES


def tool_mode(name: str) -> ToolMode:
    return "write" if is_write_tool(name) else "read"


@dataclass(frozen=True)
class ToolSpec:
    """Catalog entry for one Reddit tool."""

    name: str
    description: str
    parameters: dict[str, Any]
    mode: ToolMode


def _object_schema(
    properties: dict[str, Any] | None = None,
    required: list[str] | None = None,
) -> dict[str, Any]:
    """Build a closed JSON object schema."""
    schema: dict[str, Any] = {
        "type": "object",
        "additionalProperties": False,
        "properties": properties or {},
    }
    if required:
        schema["required"] = required
    return schema


_TIME_FILTER: dict[str, Any] = {
    "type": "string",
    "enum": ["hour", "day", "week", "month", "year", "all"],
}

_USER_LISTING_PARAMS: dict[str, Any] = {
    "username": {"type": "string"},
    "sort": {"type": "string", "enum": ["new", "hot", "top"]},
    "time_filter": _TIME_FILTER,
    "limit": {"type": "number", "minimum": 1, "maximum": 100},
}

_THING_EDIT_PARAMS: dict[str, Any] = {
    "thing_id": {"type": "string"},
    "new_text": {"type": "string"},
}


_SPECS: list[ToolSpec] = [
    ToolSpec(
        name="test_reddit_mcp_server",
        description="Validate Reddit MCP server reachability and active configuration.",
        parameters=_object_schema(),
        mode="read",
    ),
    ToolSpec(
        name="get_reddit_post",
        description="Fetch a Reddit post with metadata and engagement fields.",
        parameters=_object_schema(
            {"subreddit": {"type": "string"}, "post_id": {"type": "string"}},
            required=["subreddit", "post_id"],
        ),
        mode="read",
    ),
    ToolSpec(
        name="get_top_posts",
        description="Retrieve top posts from a subreddit or Reddit home feed.",
        parameters=_object_schema(
            {
                "subreddit": {"type": "string"},
                "time_filter": _TIME_FILTER,
                "limit": {"type": "number", "minimum": 1, "maximum": 100},
            }
        ),
        mode="read",
    ),
    ToolSpec(
        name="get_user_info",
        description="Fetch profile and karma information for a Reddit user.",
        parameters=_object_schema({"username": {"type": "string"}}, required=["username"]),
        mode="read",
    ),
    ToolSpec(
        name="get_user_posts",
        description="List recent posts for a Reddit user.",
        parameters=_object_schema(dict(_USER_LISTING_PARAMS), required=["username"]),
        mode="read",
    ),
    ToolSpec(
        name="get_user_comments",
        description="List recent comments for a Reddit user.",
        parameters=_object_schema(dict(_USER_LISTING_PARAMS), required=["username"]),
        mode="read",
    ),
    ToolSpec(
        name="get_subreddit_info",
        description="Fetch subreddit description and community statistics.",
        parameters=_object_schema(
            {"subreddit_name": {"type": "string"}}, required=["subreddit_name"]
        ),
        mode="read",
    ),
    ToolSpec(
        name="get_trending_subreddits",
        description="List currently trending subreddits.",
        parameters=_object_schema(),
        mode="read",
    ),
    ToolSpec(
        name="get_post_comments",
        description="Fetch comments for a subreddit post.",
        parameters=_object_schema(
            {
                "post_id": {"type": "string"},
                "subreddit": {"type": "string"},
                "sort": {
                    "type": "string",
                    "enum": ["best", "top", "new", "controversial", "old", "qa"],
                },
                "limit": {"type": "number", "minimum": 1, "maximum": 500},
            },
            required=["post_id", "subreddit"],
        ),
        mode="read",
    ),
    ToolSpec(
        name="search_reddit",
        description="Search Reddit posts with optional subreddit and sorting filters.",
        parameters=_object_schema(
            {
                "query": {"type": "string"},
                "subreddit": {"type": "string"},
                "sort": {
                    "type": "string",
                    "enum": ["relevance", "hot", "top", "new", "comments"],
                },
                "time_filter": _TIME_FILTER,
                "limit": {"type": "number", "minimum": 1, "maximum": 100},
                "type": {"type": "string", "enum": ["link", "sr", "user"]},
            },
            required=["query"],
        ),
        mode="read",
    ),
    ToolSpec(
        name="create_post",
        description="Create a new post in a subreddit (write mode required).",
        parameters=_object_schema(
            {
                "subreddit": {"type": "string"},
                "title": {"type": "string"},
                "content": {"type": "string"},
                "is_self": {"type": "boolean"},
            },
            required=["subreddit", "title", "content"],
        ),
        mode="write",
    ),
    ToolSpec(
        name="reply_to_post",
        description="Reply to a post or comment by thing id (write mode required).",
        parameters=_object_schema(
            {"post_id": {"type": "string"}, "content": {"type": "string"}},
            required=["post_id", "content"],
        ),
        mode="write",
    ),
    ToolSpec(
        name="edit_post",
        description="Edit a self post text body (write mode required).",
        parameters=_object_schema(dict(_THING_EDIT_PARAMS), required=["thing_id", "new_text"]),
        mode="write",
    ),
    ToolSpec(
        name="edit_comment",
        description="Edit a comment body (write mode required).",
        parameters=_object_schema(dict(_THING_EDIT_PARAMS), required=["thing_id", "new_text"]),
        mode="write",
    ),
    ToolSpec(
        name="delete_post",
        description="Delete a post (write + delete mode required).",
        parameters=_object_schema({"thing_id": {"type": "string"}}, required=["thing_id"]),
        mode="write",
    ),
    ToolSpec(
        name="delete_comment",
        description="Delete a comment (write + delete mode required).",
        parameters=_object_schema({"thing_id": {"type": "string"}}, required=["thing_id"]),
        mode="write",
    ),
]

TOOL_SPECS: dict[str, ToolSpec] = {spec.name: spec for spec in _SPECS}

# Tool definitions for MCP
TOOLS = [
    Tool(name=spec.name, description=spec.description, inputSchema=spec.parameters)
    for spec in _SPECS
]
