"""Pytest fixtures for Reddit MCP Gateway tests."""

from __future__ import annotations

import os
import sys
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from mcp.types import CallToolResult, TextContent

from reddit_mcp_gateway.config import Settings, load_settings, override_settings, reset_settings
from reddit_mcp_gateway.core.models import LaunchSpec
from reddit_mcp_gateway.factory import ServiceFactory
from reddit_mcp_gateway.gateway import RedditGateway

FIXTURES_DIR = Path(__file__).parent / "fixtures"
MOCK_SERVER_SCRIPT = FIXTURES_DIR / "mock_reddit_server.py"

# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Keep REDDIT_GATEWAY_* variables and the settings singleton out of tests."""
    for key in list(os.environ):
        if key.startswith("REDDIT_GATEWAY_"):
            monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def reddit_environ() -> dict[str, str]:
    """A complete set of Reddit credentials plus runtime variables."""
    return {
        "PATH": "/usr/bin",
        "HOME": "/home/tester",
        "REDDIT_CLIENT_ID": "client-id",
        "REDDIT_CLIENT_SECRET": "client-secret",
        "REDDIT_USERNAME": "bot_user",
        "REDDIT_PASSWORD": "hunter2",
        "REDDIT_USER_AGENT": "gateway-tests/1.0",
        "AWS_SECRET_ACCESS_KEY": "must-not-leak",
    }


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Factory fixture building Settings from plugin-style keyword data.

    Example:
        def test_something(make_settings):
            settings = make_settings(write={"enabled": True})
    """

    def _make_settings(**raw: Any) -> Settings:
        raw.setdefault("command", sys.executable)
        raw.setdefault("args", [str(MOCK_SERVER_SCRIPT)])
        return load_settings(raw)

    return _make_settings


@pytest.fixture
def test_settings(make_settings: Callable[..., Settings]) -> Generator[Settings, None, None]:
    """Provide default settings registered as the singleton."""
    settings = make_settings(log_level="DEBUG")
    override_settings(settings)
    yield settings
    reset_settings()


@pytest.fixture
def launch_spec() -> LaunchSpec:
    """Launch spec for the Python mock Reddit MCP server."""
    return LaunchSpec(
        command=sys.executable,
        args=(str(MOCK_SERVER_SCRIPT),),
        env={"PATH": "/usr/bin", "REDDIT_AUTH_MODE": "auto", "REDDIT_SAFE_MODE": "off"},
    )


# ---------------------------------------------------------------------------
# Mock fixtures for unit testing
# ---------------------------------------------------------------------------


def text_result(text: str, is_error: bool = False) -> CallToolResult:
    """Build an MCP tool result with a single text chunk."""
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=is_error)


@pytest.fixture
def make_text_result() -> Callable[..., CallToolResult]:
    """Factory fixture for single-chunk MCP tool results."""
    return text_result


@pytest.fixture
def mock_bridge() -> MagicMock:
    """Mock ToolBridgePort that answers every call with 'ok'."""
    bridge = MagicMock()
    bridge.call_tool = AsyncMock(return_value=text_result("ok"))
    bridge.list_tools = AsyncMock(return_value=[])
    bridge.close = AsyncMock()
    bridge.status.return_value = {
        "connected": False,
        "state": "disconnected",
        "command": "node",
        "args": ["dist/bin.js"],
        "lifecycle": {
            "disconnect_count": 0,
            "reconnect_count": 0,
            "pending_reconnect": False,
            "last_disconnect_reason": None,
            "last_disconnect_code": None,
        },
    }
    return bridge


@pytest.fixture
def make_gateway(
    make_settings: Callable[..., Settings],
    mock_bridge: MagicMock,
    reddit_environ: dict[str, str],
) -> Callable[..., RedditGateway]:
    """Factory fixture building a RedditGateway around `mock_bridge`.

    Keyword arguments are settings data; pass ``environ=`` to replace the
    credential environment.
    """

    def _make_gateway(environ: dict[str, str] | None = None, **raw: Any) -> RedditGateway:
        settings = make_settings(**raw)
        factory = ServiceFactory(
            settings,
            environ=reddit_environ if environ is None else environ,
            bridge=mock_bridge,
        )
        return RedditGateway(factory.create_all())

    return _make_gateway
