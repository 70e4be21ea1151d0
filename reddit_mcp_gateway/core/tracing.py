"""Request tracing for the Reddit MCP Gateway.

Each tool call runs inside a RequestContext held in a contextvar, so log lines
emitted anywhere below the dispatcher (policy, bridge, reconnects) carry the
same request id. contextvars propagate correctly across await points.

Usage:
    from reddit_mcp_gateway.core.tracing import request_context

    with request_context("get_top_posts", "read") as ctx:
        logger.info("dispatching")  # -> "[req=ab12cd34ef56][tool=get_top_posts] dispatching"
        print(ctx.elapsed_ms())
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from contextvars import Token

    from reddit_mcp_gateway.tools.definitions import ToolMode

from reddit_mcp_gateway.core.utils import utc_now


@dataclass
class RequestContext:
    """Context information for a tool call.

    Attributes:
        request_id: Unique identifier for the call (first 12 chars of a UUID).
        tool_name: Name of the tool being called.
        mode: ``read`` or ``write`` classification of the tool, if known.
        started_at: When the call started.
    """

    request_id: str
    tool_name: str
    mode: ToolMode | None
    started_at: datetime

    @classmethod
    def create(cls, tool_name: str, mode: ToolMode | None = None) -> RequestContext:
        """Create a new context with a generated request id."""
        return cls(
            request_id=uuid.uuid4().hex[:12],
            tool_name=tool_name,
            mode=mode,
            started_at=utc_now(),
        )

    def elapsed_ms(self) -> float:
        return (utc_now() - self.started_at).total_seconds() * 1000


_context: contextvars.ContextVar[RequestContext | None] = contextvars.ContextVar(
    "request_context", default=None
)


def get_current_context() -> RequestContext | None:
    """Return the current RequestContext, or None outside a tool call."""
    return _context.get()


def set_context(ctx: RequestContext) -> Token[RequestContext | None]:
    return _context.set(ctx)


def clear_context(token: Token[RequestContext | None]) -> None:
    _context.reset(token)


@contextmanager
def request_context(
    tool_name: str,
    mode: ToolMode | None = None,
) -> Generator[RequestContext, None, None]:
    """Set a fresh RequestContext for the duration of the block.

    Args:
        tool_name: Name of the tool being called.
        mode: Read/write classification, if the tool is known.

    Yields:
        The created RequestContext.
    """
    ctx = RequestContext.create(tool_name, mode)
    token = set_context(ctx)
    try:
        yield ctx
    finally:
        clear_context(token)


def format_context_prefix() -> str:
    """Format the current context as ``[req=...][tool=...]``, or "" outside a call."""
    ctx = get_current_context()
    if ctx is None:
        return ""
    return f"[req={ctx.request_id}][tool={ctx.tool_name}]"
