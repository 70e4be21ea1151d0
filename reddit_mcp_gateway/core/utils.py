"""Shared time helpers for the Reddit MCP Gateway."""

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get current UTC datetime (timezone-aware).

    Returns:
        A timezone-aware datetime object representing the current time in UTC.

    Example:
        >>> from reddit_mcp_gateway.core.utils import utc_now
        >>> now = utc_now()
        >>> now.tzinfo is not None
        True
    """
    return datetime.now(timezone.utc)


def now_ms() -> float:
    """Wall-clock time in milliseconds, the default clock for rate limiting."""
    return time.time() * 1000
