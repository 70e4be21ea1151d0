"""Custom exceptions for the Reddit MCP Gateway."""


class RedditGatewayError(Exception):
    """Base exception for all gateway errors."""

    pass


class ConfigurationError(RedditGatewayError):
    """Raised when configuration is invalid."""

    pass


class CredentialError(RedditGatewayError):
    """Raised when write tools are requested without the credentials they need."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__(f"Write blocked: {' '.join(self.problems)}")


class UnknownToolError(RedditGatewayError):
    """Raised when a tool name is not part of the catalog."""

    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(f"Unknown tool: {tool}")


class PolicyDeniedError(RedditGatewayError):
    """Raised when the write policy refuses a tool call.

    The ``reason`` attribute is a stable machine-readable code; the message
    is either the terse or the verbose variant depending on configuration.
    """

    WRITE_DISABLED = "write_disabled"
    TOOL_NOT_ALLOWLISTED = "tool_not_allowlisted"
    DELETE_NOT_ENABLED = "delete_not_enabled"
    SUBREDDIT_REQUIRED = "subreddit_required"
    SUBREDDIT_NOT_ALLOWLISTED = "subreddit_not_allowlisted"

    def __init__(self, tool: str, reason: str, message: str) -> None:
        self.tool = tool
        self.reason = reason
        super().__init__(message)


class RateLimitExceededError(RedditGatewayError):
    """Raised when a read or write slot is not available."""

    def __init__(self, tool: str, mode: str, retry_after_ms: int) -> None:
        self.tool = tool
        self.mode = mode
        self.retry_after_ms = retry_after_ms
        super().__init__(
            f"Rate limit: {mode} tool '{tool}' blocked. Retry in {retry_after_ms}ms."
        )


# =============================================================================
# Bridge Errors
# =============================================================================


class BridgeError(RedditGatewayError):
    """Raised when the child MCP process cannot be reached."""

    pass


class BridgeTimeoutError(BridgeError):
    """Raised when the child handshake does not finish within the startup timeout."""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"MCP connect timeout after {timeout_ms}ms")


class BridgeNotConnectedError(BridgeError):
    """Raised when a call is attempted without a live client session."""

    def __init__(self, message: str = "MCP client is not connected") -> None:
        super().__init__(message)


class BridgeClosedError(BridgeError):
    """Raised when the bridge has been shut down."""

    def __init__(self, message: str = "MCP bridge is closed") -> None:
        super().__init__(message)


class LaunchResolutionError(BridgeError):
    """Raised when no launch command for the child process can be found."""

    pass


class StartupParityError(RedditGatewayError):
    """Raised in strict startup when the child tool catalog does not match.

    Carries the tool names that were expected but missing, and any upstream
    error that prevented the check from completing.
    """

    def __init__(
        self,
        missing: list[str],
        unexpected: list[str],
        error: str | None = None,
    ) -> None:
        self.missing = list(missing)
        self.unexpected = list(unexpected)
        self.error = error
        if error is not None:
            message = f"Startup check failed: {error}"
        else:
            message = f"MCP server missing expected tools: {', '.join(self.missing)}"
        super().__init__(message)
