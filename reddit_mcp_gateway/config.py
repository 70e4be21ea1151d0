"""Configuration system for the Reddit MCP Gateway."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from reddit_mcp_gateway.core.errors import ConfigurationError
from reddit_mcp_gateway.core.policy import normalize_subreddit
from reddit_mcp_gateway.tools.definitions import WriteToolName

AuthMode = Literal["auto", "authenticated", "anonymous"]
SafeMode = Literal["off", "standard", "strict"]

__all__ = [
    "ConfigurationError",
    "RateLimitSettings",
    "RedditEnvNames",
    "RedditSettings",
    "ResolvedRedditEnv",
    "Settings",
    "WriteSettings",
    "get_settings",
    "load_settings",
    "load_settings_file",
    "normalize_subreddit",
    "normalize_subreddits",
    "override_settings",
    "reset_settings",
    "resolve_reddit_environment",
    "resolve_safe_mode",
    "validate_credential_readiness",
]


def normalize_subreddits(values: list[str]) -> list[str]:
    """Normalize, drop empties and deduplicate while keeping first-seen order."""
    seen: dict[str, None] = {}
    for value in values:
        normalized = normalize_subreddit(value)
        if normalized:
            seen.setdefault(normalized, None)
    return list(seen)


class RedditEnvNames(BaseModel):
    """Names of the environment variables holding Reddit credentials."""

    model_config = {"extra": "forbid"}

    client_id: str = Field(default="REDDIT_CLIENT_ID", min_length=1)
    client_secret: str = Field(default="REDDIT_CLIENT_SECRET", min_length=1)
    username: str = Field(default="REDDIT_USERNAME", min_length=1)
    password: str = Field(default="REDDIT_PASSWORD", min_length=1)
    user_agent: str = Field(default="REDDIT_USER_AGENT", min_length=1)

    @field_validator("*", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class RedditSettings(BaseModel):
    """How the child server authenticates and which safe mode it runs in."""

    model_config = {"extra": "forbid"}

    auth_mode: AuthMode = Field(
        default="auto",
        description="Reddit auth mode passed to the child server",
    )
    safe_mode_read_only: SafeMode = Field(
        default="off",
        description="Child safe mode while write mode is disabled",
    )
    safe_mode_write_enabled: SafeMode = Field(
        default="strict",
        description="Child safe mode while write mode is enabled",
    )
    env: RedditEnvNames = Field(default_factory=RedditEnvNames)


class WriteSettings(BaseModel):
    """Write policy knobs."""

    model_config = {"extra": "forbid"}

    enabled: bool = Field(default=False, description="Allow write tools at all")
    allow_delete: bool = Field(default=False, description="Allow delete_post/delete_comment")
    allowed_tools: list[WriteToolName] = Field(
        default_factory=list,
        description="Write tools permitted when write mode is enabled",
    )
    require_subreddit_allowlist: bool = Field(
        default=True,
        description="Require every write to name an allowlisted subreddit",
    )
    allowed_subreddits: list[str] = Field(
        default_factory=list,
        description="Subreddits writes may target (normalized)",
    )

    @field_validator("allowed_tools")
    @classmethod
    def _dedupe_tools(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @field_validator("allowed_subreddits")
    @classmethod
    def _normalize_subreddits(cls, value: list[str]) -> list[str]:
        return normalize_subreddits(value)


class RateLimitSettings(BaseModel):
    """Per-minute caps and write spacing."""

    model_config = {"extra": "forbid"}

    read_per_minute: int = Field(default=60, ge=1, le=10_000)
    write_per_minute: int = Field(default=6, ge=1, le=1_000)
    min_write_interval_ms: int = Field(default=5_000, ge=0, le=600_000)


class Settings(BaseSettings):
    """Reddit MCP Gateway Configuration."""

    # Child process launch
    command: str | None = Field(
        default=None,
        min_length=1,
        description="Override command used to start the Reddit MCP server",
    )
    args: list[str] | None = Field(
        default=None,
        description="Arguments for the override command",
    )
    startup_timeout_ms: int = Field(
        default=15_000,
        ge=1_000,
        le=120_000,
        description="Maximum time for the child MCP handshake",
    )
    call_timeout_ms: int = Field(
        default=60_000,
        ge=1_000,
        le=600_000,
        description="Maximum time to wait for a single child response",
    )

    # Behavior
    verbose_errors: bool = Field(
        default=False,
        description="Name the failing config knob in policy error messages",
    )
    strict_startup: bool = Field(
        default=False,
        description="Fail startup when the child tool catalog does not match",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_format: Literal["text", "json"] = Field(
        default="text",
        description="Log output format",
    )

    reddit: RedditSettings = Field(default_factory=RedditSettings)
    write: WriteSettings = Field(default_factory=WriteSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)

    model_config = {
        "env_prefix": "REDDIT_GATEWAY_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "forbid",
    }

    @field_validator("command", mode="before")
    @classmethod
    def _strip_command(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


def load_settings(raw: Mapping[str, Any] | None = None) -> Settings:
    """Build validated settings from a raw mapping (plus environment).

    Args:
        raw: Plugin-style configuration mapping. None means defaults.

    Returns:
        The validated Settings.

    Raises:
        ConfigurationError: If any value is malformed or unknown.
    """
    try:
        return Settings(**dict(raw or {}))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid gateway configuration: {e}") from e


def load_settings_file(path: str | Path) -> Settings:
    """Load settings from a JSON file.

    Raises:
        ConfigurationError: If the file is unreadable, not a JSON object, or invalid.
    """
    config_path = Path(path)
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read config file {config_path.name}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path.name} must contain a JSON object")
    return load_settings(data)


# =============================================================================
# Credential resolution
# =============================================================================


@dataclass(frozen=True)
class ResolvedRedditEnv:
    """Reddit credentials resolved from the environment (None when absent)."""

    client_id: str | None = None
    client_secret: str | None = None
    username: str | None = None
    password: str | None = None
    user_agent: str | None = None


def resolve_reddit_environment(
    settings: Settings,
    environ: Mapping[str, str],
) -> ResolvedRedditEnv:
    """Read the configured credential variables out of `environ`.

    Values are trimmed; blank values count as absent.
    """

    def read(name: str) -> str | None:
        value = environ.get(name)
        if not value:
            return None
        trimmed = value.strip()
        return trimmed or None

    names = settings.reddit.env
    return ResolvedRedditEnv(
        client_id=read(names.client_id),
        client_secret=read(names.client_secret),
        username=read(names.username),
        password=read(names.password),
        user_agent=read(names.user_agent),
    )


def resolve_safe_mode(settings: Settings) -> SafeMode:
    """Pick the child safe mode for the current write setting."""
    if settings.write.enabled:
        return settings.reddit.safe_mode_write_enabled
    return settings.reddit.safe_mode_read_only


def validate_credential_readiness(settings: Settings, env: ResolvedRedditEnv) -> list[str]:
    """List credential problems that would make write tools fail.

    Returns:
        Human-readable problems; empty when ready.
    """
    errors: list[str] = []

    if settings.reddit.auth_mode == "authenticated":
        if not env.client_id:
            errors.append("Missing Reddit client ID for authenticated mode.")
        if not env.client_secret:
            errors.append("Missing Reddit client secret for authenticated mode.")

    if settings.write.enabled:
        if not env.username:
            errors.append("Write mode enabled but Reddit username is missing.")
        if not env.password:
            errors.append("Write mode enabled but Reddit password is missing.")

    return errors


# Settings singleton with dependency injection support
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the settings instance (lazy-loaded singleton).

    Returns:
        The Settings instance.

    Example:
        from reddit_mcp_gateway.config import get_settings
        settings = get_settings()
        print(settings.rate_limit.read_per_minute)
    """
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def override_settings(new_settings: Settings) -> None:
    """Override the settings instance (for testing and --config).

    Args:
        new_settings: The new Settings instance to use.
    """
    global _settings
    _settings = new_settings


def reset_settings() -> None:
    """Reset settings to None (forces reload on next get_settings call)."""
    global _settings
    _settings = None
