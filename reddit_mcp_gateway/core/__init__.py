"""Core components for the Reddit MCP Gateway."""

from reddit_mcp_gateway.core.errors import (
    BridgeClosedError,
    BridgeError,
    BridgeNotConnectedError,
    BridgeTimeoutError,
    ConfigurationError,
    CredentialError,
    LaunchResolutionError,
    PolicyDeniedError,
    RateLimitExceededError,
    RedditGatewayError,
    StartupParityError,
    UnknownToolError,
)
from reddit_mcp_gateway.core.models import (
    BridgeLifecycle,
    BridgeState,
    LaunchSpec,
    ParitySnapshot,
    ToolResult,
)
from reddit_mcp_gateway.core.policy import WritePolicyConfig, WritePolicyGuard
from reddit_mcp_gateway.core.rate_limiter import (
    RateLimitResult,
    RedditRatePolicy,
    SlidingWindowRateLimiter,
)
from reddit_mcp_gateway.core.utils import now_ms, utc_now

__all__ = [
    # Errors - Base
    "RedditGatewayError",
    "ConfigurationError",
    "CredentialError",
    "UnknownToolError",
    # Errors - Gates
    "PolicyDeniedError",
    "RateLimitExceededError",
    # Errors - Bridge
    "BridgeError",
    "BridgeTimeoutError",
    "BridgeNotConnectedError",
    "BridgeClosedError",
    "LaunchResolutionError",
    "StartupParityError",
    # Models
    "BridgeLifecycle",
    "BridgeState",
    "LaunchSpec",
    "ParitySnapshot",
    "ToolResult",
    # Gates
    "RateLimitResult",
    "RedditRatePolicy",
    "SlidingWindowRateLimiter",
    "WritePolicyConfig",
    "WritePolicyGuard",
    # Utils
    "now_ms",
    "utc_now",
]
