"""Unit tests for the process bridge.

The stdio transport is replaced by an in-memory connection factory so that
reconnect, retry and lifecycle bookkeeping can be driven deterministically.
"""

from __future__ import annotations

import asyncio
import errno
import json
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any

import anyio
import pytest
from mcp.shared.exceptions import McpError
from mcp.types import CONNECTION_CLOSED, CallToolResult, ErrorData, TextContent, Tool

from reddit_mcp_gateway.core.bridge import (
    RedditMcpBridge,
    as_arguments,
    extract_text_from_tool_result,
    is_recoverable_transport_error,
    recoverable_error_code,
    result_is_error,
)
from reddit_mcp_gateway.core.errors import BridgeClosedError, BridgeTimeoutError
from reddit_mcp_gateway.core.models import BridgeState, LaunchSpec

# ===========================================================================
# Fakes
# ===========================================================================

Step = Any  # a result, an exception, or a callable(connection) returning either


class FakeSession:
    """Session that replays scripted steps for call_tool."""

    def __init__(self, connection: FakeConnection, steps: list[Step]) -> None:
        self._connection = connection
        self._steps = list(steps)
        self.calls: list[tuple[str, dict[str, Any] | None]] = []

    async def list_tools(self) -> Any:
        return SimpleNamespace(
            tools=[Tool(name="get_top_posts", inputSchema={"type": "object"})]
        )

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        self.calls.append((name, arguments))
        step: Step = self._steps.pop(0) if self._steps else ok_result(f"{name} ok")
        if callable(step):
            step = step(self._connection)
        if isinstance(step, BaseException):
            raise step
        return step


class FakeConnection:
    def __init__(
        self,
        on_close: Callable[[], None],
        on_error: Callable[[BaseException], None],
        steps: list[Step],
        open_delay: float = 0.0,
        hang: bool = False,
        close_error: Exception | None = None,
    ) -> None:
        self.on_close = on_close
        self.on_error = on_error
        self.session = FakeSession(self, steps)
        self.open_delay = open_delay
        self.hang = hang
        self.close_error = close_error
        self.opened = False
        self.closed = False

    async def open(self, timeout: float) -> FakeSession:
        if self.hang:
            await asyncio.wait_for(asyncio.sleep(3600), timeout)
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        self.opened = True
        return self.session

    async def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class FakeConnectionFactory:
    """Hands out FakeConnections; the n-th connection replays scripts[n]."""

    def __init__(self, *scripts: list[Step], **connection_options: Any) -> None:
        self._scripts = list(scripts)
        self._options = connection_options
        self.connections: list[FakeConnection] = []

    def __call__(
        self,
        launch_spec: LaunchSpec,
        on_close: Callable[[], None],
        on_error: Callable[[BaseException], None],
    ) -> FakeConnection:
        index = len(self.connections)
        steps = self._scripts[index] if index < len(self._scripts) else []
        connection = FakeConnection(on_close, on_error, steps, **self._options)
        self.connections.append(connection)
        return connection


def ok_result(text: str) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=text)])


def connection_closed() -> McpError:
    return McpError(ErrorData(code=CONNECTION_CLOSED, message="Connection closed"))


SPEC = LaunchSpec(command="node", args=("dist/bin.js",), env={"PATH": "/usr/bin"})


def make_bridge(factory: FakeConnectionFactory, timeout_ms: int = 1_000) -> RedditMcpBridge:
    return RedditMcpBridge(SPEC, startup_timeout_ms=timeout_ms, connection_factory=factory)


# ===========================================================================
# Connect
# ===========================================================================


@pytest.mark.unit
class TestConnect:
    @pytest.mark.asyncio
    async def test_initial_state(self) -> None:
        bridge = make_bridge(FakeConnectionFactory())
        assert bridge.state is BridgeState.DISCONNECTED
        assert bridge.status()["connected"] is False

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(self) -> None:
        factory = FakeConnectionFactory()
        bridge = make_bridge(factory)

        await bridge.connect()
        await bridge.connect()

        assert len(factory.connections) == 1
        assert bridge.state is BridgeState.CONNECTED

    @pytest.mark.asyncio
    async def test_concurrent_connects_spawn_once(self) -> None:
        factory = FakeConnectionFactory(open_delay=0.01)
        bridge = make_bridge(factory)

        await asyncio.gather(*(bridge.connect() for _ in range(5)))

        assert len(factory.connections) == 1

    @pytest.mark.asyncio
    async def test_handshake_timeout(self) -> None:
        factory = FakeConnectionFactory(hang=True)
        bridge = make_bridge(factory, timeout_ms=50)

        with pytest.raises(BridgeTimeoutError, match="MCP connect timeout after 50ms"):
            await bridge.connect()
        assert bridge.state is BridgeState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_list_tools(self) -> None:
        bridge = make_bridge(FakeConnectionFactory())
        tools = await bridge.list_tools()
        assert [tool.name for tool in tools] == ["get_top_posts"]


# ===========================================================================
# Call and recovery
# ===========================================================================


@pytest.mark.unit
class TestCallTool:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("params", [None, [], ["a"], "text", 42])
    async def test_non_mapping_params_become_empty(self, params: Any) -> None:
        factory = FakeConnectionFactory()
        bridge = make_bridge(factory)

        await bridge.call_tool("get_top_posts", params)

        assert factory.connections[0].session.calls == [("get_top_posts", {})]

    @pytest.mark.asyncio
    async def test_mapping_params_are_copied(self) -> None:
        factory = FakeConnectionFactory()
        bridge = make_bridge(factory)
        params = {"subreddit": "python"}

        await bridge.call_tool("get_top_posts", params)

        sent = factory.connections[0].session.calls[0][1]
        assert sent == params
        assert sent is not params

    @pytest.mark.asyncio
    async def test_recoverable_error_reconnects_once_and_retries(self) -> None:
        factory = FakeConnectionFactory([connection_closed()], [ok_result("second")])
        bridge = make_bridge(factory)

        result = await bridge.call_tool("get_top_posts", {"subreddit": "python"})

        assert extract_text_from_tool_result(result) == "second"
        assert len(factory.connections) == 2
        assert factory.connections[0].closed is True
        assert factory.connections[1].session.calls == [("get_top_posts", {"subreddit": "python"})]
        assert bridge.status()["lifecycle"]["reconnect_count"] == 1
        assert bridge.state is BridgeState.CONNECTED

    @pytest.mark.asyncio
    async def test_message_marker_is_recoverable(self) -> None:
        factory = FakeConnectionFactory([RuntimeError("Transport closed unexpectedly")])
        bridge = make_bridge(factory)

        await bridge.call_tool("get_top_posts", {})

        assert bridge.status()["lifecycle"]["reconnect_count"] == 1

    @pytest.mark.asyncio
    async def test_non_recoverable_error_propagates_without_reconnect(self) -> None:
        error = ValueError("unrelated failure")
        factory = FakeConnectionFactory([error])
        bridge = make_bridge(factory)

        with pytest.raises(ValueError) as exc_info:
            await bridge.call_tool("get_top_posts", {})

        assert exc_info.value is error
        assert len(factory.connections) == 1
        assert bridge.status()["lifecycle"]["reconnect_count"] == 0

    @pytest.mark.asyncio
    async def test_retry_failure_propagates_without_third_attempt(self) -> None:
        second_error = BrokenPipeError(errno.EPIPE, "Broken pipe")
        factory = FakeConnectionFactory([connection_closed()], [second_error])
        bridge = make_bridge(factory)

        with pytest.raises(BrokenPipeError) as exc_info:
            await bridge.call_tool("get_top_posts", {})

        assert exc_info.value is second_error
        assert len(factory.connections) == 2
        assert bridge.status()["lifecycle"]["reconnect_count"] == 1

    @pytest.mark.asyncio
    async def test_observed_disconnect_makes_any_error_recoverable(self) -> None:
        def close_then_fail(connection: FakeConnection) -> Exception:
            connection.on_close()
            return RuntimeError("bad frame")

        factory = FakeConnectionFactory([close_then_fail], [ok_result("recovered")])
        bridge = make_bridge(factory)

        result = await bridge.call_tool("search_reddit", {"query": "mcp"})

        assert extract_text_from_tool_result(result) == "recovered"
        lifecycle = bridge.status()["lifecycle"]
        assert lifecycle["disconnect_count"] == 1
        assert lifecycle["reconnect_count"] == 1


# ===========================================================================
# Transport events
# ===========================================================================


@pytest.mark.unit
class TestTransportEvents:
    @pytest.mark.asyncio
    async def test_close_event_marks_pending_reconnect(self) -> None:
        factory = FakeConnectionFactory()
        bridge = make_bridge(factory)
        await bridge.connect()

        factory.connections[0].on_close()

        status = bridge.status()
        assert bridge.state is BridgeState.DISCONNECTED
        assert status["connected"] is False
        assert status["lifecycle"]["disconnect_count"] == 1
        assert status["lifecycle"]["pending_reconnect"] is True
        assert status["lifecycle"]["last_disconnect_reason"] == "close"
        assert status["lifecycle"]["last_disconnect_code"] is None

    @pytest.mark.asyncio
    async def test_next_call_reconnects_after_close_event(self) -> None:
        factory = FakeConnectionFactory()
        bridge = make_bridge(factory)
        await bridge.connect()
        factory.connections[0].on_close()

        await bridge.call_tool("get_top_posts", {})

        assert len(factory.connections) == 2
        assert factory.connections[1].session.calls == [("get_top_posts", {})]
        assert bridge.status()["lifecycle"]["pending_reconnect"] is False

    @pytest.mark.asyncio
    async def test_error_event_records_code(self) -> None:
        factory = FakeConnectionFactory()
        bridge = make_bridge(factory)
        await bridge.connect()

        factory.connections[0].on_error(BrokenPipeError(errno.EPIPE, "Broken pipe"))

        lifecycle = bridge.status()["lifecycle"]
        assert lifecycle["last_disconnect_reason"] == "error"
        assert lifecycle["last_disconnect_code"] == "EPIPE"

    @pytest.mark.asyncio
    async def test_repeated_events_count_one_disconnect(self) -> None:
        factory = FakeConnectionFactory()
        bridge = make_bridge(factory)
        await bridge.connect()

        factory.connections[0].on_error(ConnectionResetError())
        factory.connections[0].on_close()

        lifecycle = bridge.status()["lifecycle"]
        assert lifecycle["disconnect_count"] == 1
        assert lifecycle["last_disconnect_reason"] == "error"

    @pytest.mark.asyncio
    async def test_events_from_replaced_connection_are_ignored(self) -> None:
        factory = FakeConnectionFactory([connection_closed()])
        bridge = make_bridge(factory)
        await bridge.call_tool("get_top_posts", {})

        factory.connections[0].on_close()

        assert bridge.state is BridgeState.CONNECTED
        assert bridge.status()["lifecycle"]["disconnect_count"] == 0


# ===========================================================================
# Status and close
# ===========================================================================


@pytest.mark.unit
class TestStatusAndClose:
    @pytest.mark.asyncio
    async def test_status_returns_copies(self) -> None:
        bridge = make_bridge(FakeConnectionFactory())
        status = bridge.status()
        status["args"].append("--evil")
        status["lifecycle"]["reconnect_count"] = 99

        fresh = bridge.status()
        assert fresh["command"] == "node"
        assert fresh["args"] == ["dist/bin.js"]
        assert fresh["lifecycle"]["reconnect_count"] == 0

    @pytest.mark.asyncio
    async def test_close_before_connect(self) -> None:
        bridge = make_bridge(FakeConnectionFactory())
        await bridge.close()
        await bridge.close()
        assert bridge.state is BridgeState.CLOSED

    @pytest.mark.asyncio
    async def test_close_is_idempotent_and_swallows_transport_errors(self) -> None:
        factory = FakeConnectionFactory(close_error=BrokenPipeError())
        bridge = make_bridge(factory)
        await bridge.connect()

        await bridge.close()
        await bridge.close()

        assert factory.connections[0].closed is True
        assert bridge.state is BridgeState.CLOSED
        assert bridge.status()["connected"] is False

    @pytest.mark.asyncio
    async def test_calls_after_close_fail(self) -> None:
        factory = FakeConnectionFactory()
        bridge = make_bridge(factory)
        await bridge.connect()
        await bridge.close()

        with pytest.raises(BridgeClosedError):
            await bridge.call_tool("get_top_posts", {})
        assert len(factory.connections) == 1


# ===========================================================================
# Error classification
# ===========================================================================


def wrap(error: BaseException, depth: int) -> BaseException:
    for i in range(depth):
        wrapper = RuntimeError(f"wrapper {i}")
        wrapper.__cause__ = error
        error = wrapper
    return error


class CodedError(Exception):
    def __init__(self, code: str) -> None:
        super().__init__("stream failure")
        self.code = code


@pytest.mark.unit
class TestRecoverableErrorCode:
    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (connection_closed(), "CONNECTION_CLOSED"),
            (BrokenPipeError(), "EPIPE"),
            (ConnectionResetError(), "ECONNRESET"),
            (ConnectionRefusedError(), "ECONNREFUSED"),
            (OSError(errno.EPIPE, "pipe"), "EPIPE"),
            (anyio.ClosedResourceError(), "ERR_STREAM_DESTROYED"),
            (anyio.BrokenResourceError(), "ERR_IPC_CHANNEL_CLOSED"),
            (CodedError("ERR_IPC_CHANNEL_CLOSED"), "ERR_IPC_CHANNEL_CLOSED"),
            (CodedError("econnreset"), "ECONNRESET"),
            (RuntimeError("MCP client is not connected"), "NOT_CONNECTED"),
            (RuntimeError("Connection closed"), "CONNECTION_CLOSED"),
        ],
    )
    def test_direct_codes(self, error: BaseException, code: str) -> None:
        assert recoverable_error_code(error) == code
        assert is_recoverable_transport_error(error) is True

    @pytest.mark.parametrize(
        "error",
        [
            ValueError("unrelated failure"),
            McpError(ErrorData(code=-32602, message="Invalid params")),
            CodedError("ENOENT"),
            OSError(errno.ENOENT, "No such file"),
        ],
    )
    def test_not_recoverable(self, error: BaseException) -> None:
        assert recoverable_error_code(error) is None
        assert is_recoverable_transport_error(error) is False

    def test_follows_cause_chain(self) -> None:
        assert recoverable_error_code(wrap(BrokenPipeError(), 3)) == "EPIPE"

    def test_follows_context(self) -> None:
        try:
            try:
                raise ConnectionResetError()
            except ConnectionResetError:
                raise RuntimeError("handler failed")
        except RuntimeError as e:
            assert recoverable_error_code(e) == "ECONNRESET"

    def test_depth_limit(self) -> None:
        assert recoverable_error_code(wrap(BrokenPipeError(), 5)) == "EPIPE"
        assert recoverable_error_code(wrap(BrokenPipeError(), 6)) is None

    def test_cyclic_chain_terminates(self) -> None:
        first = RuntimeError("first")
        second = RuntimeError("second")
        first.__cause__ = second
        second.__cause__ = first
        assert recoverable_error_code(first) is None

    def test_exception_group_members(self) -> None:
        group = ExceptionGroup("task group failed", [ValueError("x"), ConnectionResetError()])
        assert recoverable_error_code(group) == "ECONNRESET"


# ===========================================================================
# Result helpers
# ===========================================================================


@pytest.mark.unit
class TestResultHelpers:
    def test_joins_text_chunks(self) -> None:
        result = CallToolResult(
            content=[
                TextContent(type="text", text="first"),
                TextContent(type="text", text="second"),
            ]
        )
        assert extract_text_from_tool_result(result) == "first\nsecond"

    def test_uses_data_and_skips_empty_text(self) -> None:
        result = {
            "content": [
                {"type": "text", "text": ""},
                {"type": "image", "data": "aGVsbG8=", "mimeType": "image/png"},
                "garbage",
            ]
        }
        assert extract_text_from_tool_result(result) == "aGVsbG8="

    def test_falls_back_to_json(self) -> None:
        assert extract_text_from_tool_result({"ok": True}) == json.dumps({"ok": True}, indent=2)
        assert extract_text_from_tool_result("hello") == '"hello"'

    def test_empty_content_falls_back_to_json(self) -> None:
        text = extract_text_from_tool_result(CallToolResult(content=[]))
        assert json.loads(text)["content"] == []

    def test_result_is_error(self) -> None:
        assert result_is_error(CallToolResult(content=[], isError=True)) is True
        assert result_is_error(CallToolResult(content=[])) is False
        assert result_is_error({"isError": 1}) is True
        assert result_is_error("text") is False

    def test_as_arguments(self) -> None:
        assert as_arguments({"a": 1}) == {"a": 1}
        assert as_arguments([("a", 1)]) == {}
        assert as_arguments(None) == {}
