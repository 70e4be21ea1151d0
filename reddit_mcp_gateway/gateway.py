"""Dispatch orchestrator for Reddit tool calls.

Every call passes the gates in a fixed order before the child process is
contacted:

    write tool: credential readiness -> write policy -> write rate limit
    read tool:  read rate limit

Any gate failure, and any failure of the bridge itself, is converted into an
error ToolResult here so one failing call never escapes to the host.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from reddit_mcp_gateway.core.bridge import (
    extract_text_from_tool_result,
    result_is_error,
    to_plain,
)
from reddit_mcp_gateway.core.errors import (
    BridgeError,
    BridgeTimeoutError,
    ConfigurationError,
    CredentialError,
    PolicyDeniedError,
    RateLimitExceededError,
    RedditGatewayError,
    StartupParityError,
    UnknownToolError,
)
from reddit_mcp_gateway.core.models import ParitySnapshot, ToolResult
from reddit_mcp_gateway.core.tracing import request_context
from reddit_mcp_gateway.core.utils import utc_now
from reddit_mcp_gateway.factory import ServiceContainer
from reddit_mcp_gateway.tools.definitions import ALL_TOOL_NAMES, TOOL_SPECS, tool_mode

logger = logging.getLogger(__name__)

# Error type to response name mapping, most specific first
ERROR_MAPPINGS: dict[type[Exception], str] = {
    UnknownToolError: "UnknownTool",
    CredentialError: "CredentialError",
    PolicyDeniedError: "PolicyDenied",
    RateLimitExceededError: "RateLimitExceeded",
    BridgeTimeoutError: "BridgeTimeout",
    BridgeError: "BridgeError",
    ConfigurationError: "ConfigurationError",
    RedditGatewayError: "RedditGatewayError",
}


def error_name(error: Exception) -> str:
    """Map an exception to its response name (first matching base class)."""
    for error_type, name in ERROR_MAPPINGS.items():
        if isinstance(error, error_type):
            return name
    return "UnknownError"


def error_result(error: Exception, error_id: str | None = None) -> ToolResult:
    """Build the failure ToolResult for `error`."""
    message = str(error)
    metadata: dict[str, Any] = {"error": message, "error_type": error_name(error)}
    if isinstance(error, PolicyDeniedError):
        metadata["reason"] = error.reason
    elif isinstance(error, RateLimitExceededError):
        metadata["retry_after_ms"] = error.retry_after_ms
    elif isinstance(error, CredentialError):
        metadata["problems"] = list(error.problems)
    if error_id:
        metadata["error_id"] = error_id
    return ToolResult(content_text=f"Error: {message}", is_error=True, metadata=metadata)


class RedditGateway:
    """Policy-enforcing front for the child Reddit MCP server.

    Concurrency:
        Multiple execute_tool() calls may be in flight at once on one event
        loop. Gate checks run synchronously before the first await, so two
        calls can never both take the last rate-limit slot.
    """

    def __init__(self, services: ServiceContainer) -> None:
        self._settings = services.settings
        self._credential_errors = list(services.credential_errors)
        self._bridge = services.bridge
        self._rate_policy = services.rate_policy
        self._write_guard = services.write_guard
        self._parity = ParitySnapshot()

    @property
    def parity(self) -> ParitySnapshot:
        return self._parity

    async def execute_tool(self, name: str, params: Any) -> ToolResult:
        """Run one tool call through the gates and the bridge.

        Args:
            name: Catalog tool name.
            params: Caller-supplied arguments of any shape.

        Returns:
            ToolResult; is_error is set for gate failures, bridge failures
            and upstream results flagged isError.
        """
        mode = tool_mode(name) if name in TOOL_SPECS else None
        with request_context(name, mode) as ctx:
            try:
                if mode is None:
                    raise UnknownToolError(name)
                self._check_gates(name, mode, params)

                logger.debug("Forwarding %s call to MCP server", mode)
                result = await self._bridge.call_tool(name, params)

                is_error = result_is_error(result)
                if is_error:
                    logger.info("MCP server returned an error result")
                return ToolResult(
                    content_text=extract_text_from_tool_result(result),
                    is_error=is_error,
                    metadata={
                        "tool": name,
                        "mode": mode,
                        "raw": to_plain(result),
                        "request_id": ctx.request_id,
                        "elapsed_ms": round(ctx.elapsed_ms(), 2),
                    },
                )
            except RedditGatewayError as e:
                logger.info("Tool call failed: %s", e)
                return error_result(e)
            except Exception as e:
                error_id = str(uuid.uuid4())[:8]
                logger.error(f"Unexpected error [{error_id}] in {name}: {e}", exc_info=True)
                return error_result(e, error_id)

    def _check_gates(self, name: str, mode: str, params: Any) -> None:
        if mode == "write":
            if self._credential_errors:
                raise CredentialError(self._credential_errors)
            self._write_guard.ensure_tool_allowed(name, params)
            decision = self._rate_policy.check_write()
        else:
            decision = self._rate_policy.check_read()

        if not decision.ok:
            raise RateLimitExceededError(name, mode, decision.retry_after_ms)

    def status_payload(self) -> dict[str, Any]:
        """Read-only view of write mode, bridge, rate windows and parity."""
        write = self._write_guard.config
        allowed_tools = sorted(write.allowed_tools) if write.allowed_tools is not None else None
        return {
            "mode": {
                "write_enabled": write.enabled,
                "delete_enabled": write.allow_delete,
                "require_subreddit_allowlist": write.require_subreddit_allowlist,
                "allowed_tools": allowed_tools,
                "allowed_subreddits": sorted(write.allowed_subreddits),
                "credentials_ready": not self._credential_errors,
            },
            "bridge": self._bridge.status(),
            "rate_limit": self._rate_policy.snapshot(),
            "parity": self._parity.to_dict(),
        }

    async def start(self) -> ParitySnapshot:
        """Connect to the child and compare its tool catalog with ours.

        Mismatches and connection failures are logged as warnings and kept
        in the parity snapshot.

        Raises:
            StartupParityError: Under strict_startup, if the check failed or
                expected tools are missing.
        """
        parity = ParitySnapshot()
        try:
            tools = await self._bridge.list_tools()
        except Exception as e:
            parity.checked_at = utc_now().isoformat()
            parity.error = str(e)
            self._parity = parity
            logger.error("Startup bridge check failed: %s", e)
            if self._settings.strict_startup:
                raise StartupParityError([], [], error=parity.error) from e
            return parity

        upstream_names = [tool.name for tool in tools]
        available = set(upstream_names)
        expected = set(ALL_TOOL_NAMES)

        parity.checked_at = utc_now().isoformat()
        parity.upstream_tool_count = len(upstream_names)
        parity.missing_expected_tools = [n for n in ALL_TOOL_NAMES if n not in available]
        parity.unexpected_upstream_tools = [n for n in upstream_names if n not in expected]
        self._parity = parity

        if parity.missing_expected_tools:
            logger.warning(
                "MCP server missing expected tools: %s",
                ", ".join(parity.missing_expected_tools),
            )
        if parity.unexpected_upstream_tools:
            logger.warning(
                "MCP server exposes unwrapped tools: %s",
                ", ".join(parity.unexpected_upstream_tools),
            )

        if self._settings.strict_startup and parity.missing_expected_tools:
            raise StartupParityError(
                parity.missing_expected_tools, parity.unexpected_upstream_tools
            )

        bridge_status = self._bridge.status()
        logger.info(
            "Gateway ready. bridge=%s args=%s",
            bridge_status.get("command"),
            " ".join(bridge_status.get("args", [])),
        )
        return parity

    async def stop(self) -> None:
        await self._bridge.close()
