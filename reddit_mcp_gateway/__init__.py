"""Reddit MCP Gateway - policy-enforcing front for the Reddit MCP server."""

__version__ = "0.1.0"

# Re-export core components for convenience
from reddit_mcp_gateway.config import Settings, get_settings, load_settings
from reddit_mcp_gateway.core import (
    BridgeError,
    ConfigurationError,
    CredentialError,
    LaunchSpec,
    PolicyDeniedError,
    RateLimitExceededError,
    RedditGatewayError,
    RedditRatePolicy,
    SlidingWindowRateLimiter,
    ToolResult,
    UnknownToolError,
    WritePolicyConfig,
    WritePolicyGuard,
)

__all__ = [
    # Version info
    "__version__",
    # Configuration
    "Settings",
    "get_settings",
    "load_settings",
    # Errors
    "RedditGatewayError",
    "ConfigurationError",
    "CredentialError",
    "UnknownToolError",
    "PolicyDeniedError",
    "RateLimitExceededError",
    "BridgeError",
    # Models
    "LaunchSpec",
    "ToolResult",
    # Gates
    "RedditRatePolicy",
    "SlidingWindowRateLimiter",
    "WritePolicyConfig",
    "WritePolicyGuard",
]
