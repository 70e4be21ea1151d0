"""Write policy enforcement for Reddit write tools.

The guard is a pure check over immutable configuration and the parameters of
a single call. Rules are evaluated in a fixed order and the first failing
rule raises PolicyDeniedError:

    1. Read tools always pass.
    2. Write mode must be enabled.
    3. The tool must be in the allowed-tools set (skipped when the profile
       has no tool allowlist).
    4. Delete tools need explicit opt-in.
    5. With subreddit allowlisting on, the call must name an allowlisted
       subreddit.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from reddit_mcp_gateway.core.errors import PolicyDeniedError
from reddit_mcp_gateway.tools.definitions import is_delete_tool, is_write_tool

if TYPE_CHECKING:
    from reddit_mcp_gateway.config import WriteSettings

logger = logging.getLogger(__name__)


def normalize_subreddit(value: str) -> str:
    """Lower-case a subreddit name and strip an optional ``r/`` prefix.

    Example:
        >>> normalize_subreddit("  R/AskReddit ")
        'askreddit'
    """
    trimmed = value.strip().lower()
    return trimmed[2:] if trimmed.startswith("r/") else trimmed


@dataclass(frozen=True)
class WritePolicyConfig:
    """Immutable write policy.

    Attributes:
        enabled: Global write switch.
        allow_delete: Whether delete tools may run.
        allowed_tools: Permitted write tools, or None for a profile without
            a tool allowlist.
        require_subreddit_allowlist: Whether writes must name an allowed subreddit.
        allowed_subreddits: Normalized subreddit names.
        verbose_errors: Name the failing config knob in messages.
    """

    enabled: bool = False
    allow_delete: bool = False
    allowed_tools: frozenset[str] | None = frozenset()
    require_subreddit_allowlist: bool = True
    allowed_subreddits: frozenset[str] = frozenset()
    verbose_errors: bool = False

    @classmethod
    def create(
        cls,
        *,
        enabled: bool = False,
        allow_delete: bool = False,
        allowed_tools: Iterable[str] | None = (),
        require_subreddit_allowlist: bool = True,
        allowed_subreddits: Iterable[str] = (),
        verbose_errors: bool = False,
    ) -> WritePolicyConfig:
        """Build a config, normalizing subreddit names."""
        subreddits = frozenset(
            name for name in (normalize_subreddit(s) for s in allowed_subreddits) if name
        )
        return cls(
            enabled=enabled,
            allow_delete=allow_delete,
            allowed_tools=None if allowed_tools is None else frozenset(allowed_tools),
            require_subreddit_allowlist=require_subreddit_allowlist,
            allowed_subreddits=subreddits,
            verbose_errors=verbose_errors,
        )

    @classmethod
    def from_settings(cls, write: WriteSettings, verbose_errors: bool = False) -> WritePolicyConfig:
        return cls.create(
            enabled=write.enabled,
            allow_delete=write.allow_delete,
            allowed_tools=write.allowed_tools,
            require_subreddit_allowlist=write.require_subreddit_allowlist,
            allowed_subreddits=write.allowed_subreddits,
            verbose_errors=verbose_errors,
        )


def read_subreddit(params: Any) -> str | None:
    """Extract and normalize a ``subreddit`` string field from call params.

    Anything other than a mapping with a string ``subreddit`` value counts
    as absent.
    """
    if not isinstance(params, Mapping):
        return None
    value = params.get("subreddit")
    if not isinstance(value, str):
        return None
    return normalize_subreddit(value) or None


class WritePolicyGuard:
    """Decides whether a tool call may proceed under the write policy.

    Example:
        guard = WritePolicyGuard(WritePolicyConfig.create(enabled=True,
                                                          allowed_tools=["create_post"],
                                                          allowed_subreddits=["python"]))
        guard.ensure_tool_allowed("create_post", {"subreddit": "r/Python"})
    """

    def __init__(self, config: WritePolicyConfig) -> None:
        self._config = config

    @property
    def config(self) -> WritePolicyConfig:
        return self._config

    def _deny(self, tool: str, reason: str, terse: str, verbose: str) -> PolicyDeniedError:
        message = verbose if self._config.verbose_errors else terse
        logger.info("Write policy denied %s (%s)", tool, reason)
        return PolicyDeniedError(tool, reason, message)

    def ensure_tool_allowed(self, tool_name: str, params: Any) -> None:
        """Raise PolicyDeniedError if the call is not permitted.

        Args:
            tool_name: Catalog tool name.
            params: Call parameters of any shape; only ``subreddit`` is read.

        Raises:
            PolicyDeniedError: With a reason code from PolicyDeniedError.
        """
        if not is_write_tool(tool_name):
            return

        config = self._config

        if not config.enabled:
            raise self._deny(
                tool_name,
                PolicyDeniedError.WRITE_DISABLED,
                "Write operation blocked: write mode is disabled.",
                f"Write tool '{tool_name}' is blocked: write mode is disabled. "
                "Enable write mode explicitly with write.enabled=true.",
            )

        if config.allowed_tools is not None and tool_name not in config.allowed_tools:
            raise self._deny(
                tool_name,
                PolicyDeniedError.TOOL_NOT_ALLOWLISTED,
                "Write operation blocked: tool not in allowlist.",
                f"Write tool '{tool_name}' is blocked: it is not listed in write.allowed_tools.",
            )

        if is_delete_tool(tool_name) and not config.allow_delete:
            raise self._deny(
                tool_name,
                PolicyDeniedError.DELETE_NOT_ENABLED,
                "Delete operation blocked: explicit opt-in required.",
                f"Write tool '{tool_name}' is blocked: delete operations require "
                "write.allow_delete=true.",
            )

        if not config.require_subreddit_allowlist:
            return

        subreddit = read_subreddit(params)
        if subreddit is None:
            raise self._deny(
                tool_name,
                PolicyDeniedError.SUBREDDIT_REQUIRED,
                "Write operation blocked: subreddit is required for allowlist validation.",
                f"Write tool '{tool_name}' blocked: subreddit is required for allowlist "
                "validation when write.require_subreddit_allowlist=true.",
            )

        if subreddit not in config.allowed_subreddits:
            raise self._deny(
                tool_name,
                PolicyDeniedError.SUBREDDIT_NOT_ALLOWLISTED,
                "Write operation blocked: subreddit not in allowlist.",
                f"Write tool '{tool_name}' blocked: subreddit '{subreddit}' is not in "
                "write.allowed_subreddits allowlist.",
            )
