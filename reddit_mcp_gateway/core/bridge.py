"""Process bridge to the child reddit-mcp-server.

The bridge keeps one MCP client session to a child process alive across
failures. Transport close/error events observed by the connection mark the
bridge disconnected; the next call reconnects first. A call that fails with
a recoverable transport error (or while the bridge already knows it is
disconnected) triggers exactly one reconnect and one retry.

State transitions:
    DISCONNECTED -> CONNECTING -> CONNECTED
    CONNECTED -> DISCONNECTED (transport close/error event, pending reconnect)
    any -> CLOSED (explicit close(), terminal)
"""

from __future__ import annotations

import asyncio
import errno
import json
import logging
from collections.abc import Mapping
from datetime import timedelta
from functools import partial
from typing import Any

import anyio
from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.shared.exceptions import McpError
from mcp.types import CONNECTION_CLOSED

from reddit_mcp_gateway.core.errors import (
    BridgeClosedError,
    BridgeNotConnectedError,
    BridgeTimeoutError,
)
from reddit_mcp_gateway.core.models import (
    BridgeLifecycle,
    BridgeState,
    DisconnectReason,
    LaunchSpec,
)
from reddit_mcp_gateway.ports.bridge import (
    ConnectionFactory,
    ToolSessionPort,
    TransportCloseHandler,
    TransportConnectionPort,
    TransportErrorHandler,
)

logger = logging.getLogger(__name__)

CLIENT_NAME = "reddit-mcp-gateway"

# Seconds allowed for a child to exit after its session is closed
CLOSE_TIMEOUT = 5.0

# How far to follow __cause__/__context__ links when classifying errors
MAX_CAUSE_DEPTH = 5

RECOVERABLE_ERROR_CODES = frozenset(
    {
        "CONNECTION_CLOSED",
        "NOT_CONNECTED",
        "EPIPE",
        "ECONNRESET",
        "ECONNREFUSED",
        "ERR_STREAM_DESTROYED",
        "ERR_IPC_CHANNEL_CLOSED",
    }
)

_RECOVERABLE_ERRNOS = {
    errno.EPIPE: "EPIPE",
    errno.ECONNRESET: "ECONNRESET",
    errno.ECONNREFUSED: "ECONNREFUSED",
}

_RECOVERABLE_TYPES: tuple[tuple[type[BaseException], str], ...] = (
    (BrokenPipeError, "EPIPE"),
    (ConnectionResetError, "ECONNRESET"),
    (ConnectionRefusedError, "ECONNREFUSED"),
    (anyio.ClosedResourceError, "ERR_STREAM_DESTROYED"),
    (anyio.EndOfStream, "ERR_STREAM_DESTROYED"),
    (anyio.BrokenResourceError, "ERR_IPC_CHANNEL_CLOSED"),
)

_MESSAGE_MARKERS = (
    ("not connected", "NOT_CONNECTED"),
    ("broken pipe", "EPIPE"),
    ("epipe", "EPIPE"),
    ("connection reset", "ECONNRESET"),
    ("econnreset", "ECONNRESET"),
    ("connection refused", "ECONNREFUSED"),
    ("econnrefused", "ECONNREFUSED"),
    ("closed", "CONNECTION_CLOSED"),
)


def _direct_error_code(error: BaseException) -> str | None:
    """Classify a single exception without following its chain."""
    if isinstance(error, McpError):
        if getattr(getattr(error, "error", None), "code", None) == CONNECTION_CLOSED:
            return "CONNECTION_CLOSED"

    for error_type, code in _RECOVERABLE_TYPES:
        if isinstance(error, error_type):
            return code

    err_no = getattr(error, "errno", None)
    if err_no in _RECOVERABLE_ERRNOS:
        return _RECOVERABLE_ERRNOS[err_no]

    code_attr = getattr(error, "code", None)
    if isinstance(code_attr, str) and code_attr.upper() in RECOVERABLE_ERROR_CODES:
        return code_attr.upper()

    message = str(error).lower()
    for marker, code in _MESSAGE_MARKERS:
        if marker in message:
            return code
    return None


def recoverable_error_code(error: BaseException) -> str | None:
    """Return the recoverable transport code for `error`, or None.

    Checks the error itself, then its ``__cause__``/``__context__`` chain and
    any exception-group members, breadth first, up to MAX_CAUSE_DEPTH levels.
    Already-visited errors are skipped so cyclic chains terminate.
    """
    level: list[BaseException] = [error]
    seen: set[int] = set()
    for _ in range(MAX_CAUSE_DEPTH + 1):
        next_level: list[BaseException] = []
        for current in level:
            if id(current) in seen:
                continue
            seen.add(id(current))
            code = _direct_error_code(current)
            if code is not None:
                return code
            if isinstance(current, BaseExceptionGroup):
                next_level.extend(current.exceptions)
            linked = current.__cause__ or current.__context__
            if linked is not None:
                next_level.append(linked)
        if not next_level:
            break
        level = next_level
    return None


def is_recoverable_transport_error(error: BaseException) -> bool:
    """True if a fresh connection is expected to fix `error`."""
    return recoverable_error_code(error) is not None


def as_arguments(params: Any) -> dict[str, Any]:
    """Coerce call params to a dict; non-mappings become ``{}``."""
    if not isinstance(params, Mapping):
        return {}
    return dict(params)


def to_plain(value: Any) -> Any:
    """Convert an MCP result model to plain JSON-compatible data."""
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json", exclude_none=True)
    return value


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def extract_text_from_tool_result(result: Any) -> str:
    """Join the text (or data) chunks of a tool result.

    Falls back to a JSON rendering of the whole result when there is no
    usable content.
    """
    payload = to_plain(result)
    content = payload.get("content") if isinstance(payload, Mapping) else None
    if not isinstance(content, list):
        return _dump(payload)

    texts: list[str] = []
    for chunk in content:
        chunk = to_plain(chunk)
        if not isinstance(chunk, Mapping):
            continue
        text = chunk.get("text")
        data = chunk.get("data")
        if isinstance(text, str) and text:
            texts.append(text)
        elif isinstance(data, str) and data:
            texts.append(data)

    if not texts:
        return _dump(payload)
    return "\n".join(texts)


def result_is_error(result: Any) -> bool:
    """True if an upstream result carries an explicit isError flag."""
    payload = to_plain(result)
    return isinstance(payload, Mapping) and bool(payload.get("isError"))


class StdioConnection:
    """A child MCP server spoken to over stdio.

    The stdio transport and client session are entered and exited inside a
    single background task, because their anyio cancel scopes must not be
    crossed between tasks. The transport read stream is relayed to the
    session so that end-of-stream fires `on_close` and in-band exceptions
    fire `on_error`, before pending requests are failed by the session.
    """

    def __init__(
        self,
        launch_spec: LaunchSpec,
        on_close: TransportCloseHandler,
        on_error: TransportErrorHandler,
        call_timeout_ms: int | None = None,
    ) -> None:
        self._launch_spec = launch_spec
        self._on_close = on_close
        self._on_error = on_error
        self._call_timeout = (
            timedelta(milliseconds=call_timeout_ms) if call_timeout_ms is not None else None
        )
        self._stopping = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._ready: asyncio.Future[ClientSession] | None = None

    async def open(self, timeout: float) -> ClientSession:
        """Spawn the child and run the MCP handshake.

        Args:
            timeout: Seconds allowed for spawn plus initialize.

        Returns:
            The initialized ClientSession.

        Raises:
            TimeoutError: If the handshake did not finish in time; the child
                is torn down before this is raised.
        """
        if self._task is not None:
            raise RuntimeError("StdioConnection can only be opened once")

        ready: asyncio.Future[ClientSession] = asyncio.get_running_loop().create_future()
        self._ready = ready
        self._task = asyncio.create_task(
            self._run(ready), name=f"mcp-stdio:{self._launch_spec.command}"
        )
        try:
            return await asyncio.wait_for(asyncio.shield(ready), timeout)
        except BaseException:
            await self._abort()
            raise

    async def close(self) -> None:
        """Close the session and wait for the child to exit."""
        self._stopping.set()
        task = self._task
        if task is None or task.done():
            return
        try:
            await asyncio.wait_for(task, CLOSE_TIMEOUT)
        except TimeoutError:
            logger.warning(
                "MCP child did not shut down within %.1fs, transport task cancelled",
                CLOSE_TIMEOUT,
            )

    async def _abort(self) -> None:
        self._stopping.set()
        ready = self._ready
        if ready is not None:
            if not ready.done():
                ready.cancel()
            elif not ready.cancelled():
                ready.exception()
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _run(self, ready: asyncio.Future[ClientSession]) -> None:
        spec = self._launch_spec
        params = StdioServerParameters(command=spec.command, args=list(spec.args), env=dict(spec.env))
        try:
            async with stdio_client(params) as (read_stream, write_stream):
                relay_send, relay_recv = anyio.create_memory_object_stream(0)
                async with anyio.create_task_group() as tg:
                    tg.start_soon(self._relay, read_stream, relay_send)
                    try:
                        async with ClientSession(
                            relay_recv,
                            write_stream,
                            read_timeout_seconds=self._call_timeout,
                        ) as session:
                            await session.initialize()
                            if not ready.done():
                                ready.set_result(session)
                            await self._stopping.wait()
                    finally:
                        tg.cancel_scope.cancel()
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
            elif not self._stopping.is_set():
                logger.warning("MCP transport task failed: %s", e)
                self._on_error(e)
            else:
                logger.debug("MCP transport shutdown raised: %s", e)

        if not ready.done():
            ready.set_exception(BridgeNotConnectedError("MCP transport closed during handshake"))

    async def _relay(self, source: Any, sink: Any) -> None:
        try:
            async for item in source:
                if isinstance(item, Exception) and not self._stopping.is_set():
                    self._on_error(item)
                await sink.send(item)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError) as e:
            if not self._stopping.is_set():
                self._on_error(e)
        else:
            if not self._stopping.is_set():
                self._on_close()
        finally:
            await sink.aclose()


class RedditMcpBridge:
    """Persistent connection to the child MCP server with one-shot recovery.

    Example:
        bridge = RedditMcpBridge(launch_spec, startup_timeout_ms=15_000)
        result = await bridge.call_tool("get_top_posts", {"subreddit": "python"})
        await bridge.close()

    Concurrency:
        Concurrent connect() calls are serialized by a lock so only one child
        process is ever spawned per (re)connect. Lifecycle counters are only
        mutated by the transport event handlers and the reconnect routine,
        and are exposed through status() as a copy.
    """

    def __init__(
        self,
        launch_spec: LaunchSpec,
        startup_timeout_ms: int,
        call_timeout_ms: int | None = None,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        """Initialize the bridge.

        Args:
            launch_spec: Resolved command line and environment for the child.
            startup_timeout_ms: Limit for spawn plus handshake.
            call_timeout_ms: Per-request read timeout on the session.
            connection_factory: Builds a TransportConnectionPort (for tests).
        """
        self._launch_spec = launch_spec
        self._startup_timeout_ms = startup_timeout_ms
        self._call_timeout_ms = call_timeout_ms
        self._connection_factory = connection_factory or self._stdio_connection

        self._connection: TransportConnectionPort | None = None
        self._session: ToolSessionPort | None = None
        self._connected = False
        self._connecting = False
        self._closed = False
        self._generation = 0
        self._lifecycle = BridgeLifecycle()
        self._connect_lock = asyncio.Lock()

    def _stdio_connection(
        self,
        launch_spec: LaunchSpec,
        on_close: TransportCloseHandler,
        on_error: TransportErrorHandler,
    ) -> TransportConnectionPort:
        return StdioConnection(launch_spec, on_close, on_error, call_timeout_ms=self._call_timeout_ms)

    @property
    def state(self) -> BridgeState:
        if self._closed:
            return BridgeState.CLOSED
        if self._connecting:
            return BridgeState.CONNECTING
        if self._is_ready():
            return BridgeState.CONNECTED
        return BridgeState.DISCONNECTED

    def _is_ready(self) -> bool:
        return (
            not self._closed
            and self._connected
            and self._session is not None
            and not self._lifecycle.pending_reconnect
        )

    async def connect(self) -> None:
        """Ensure a live session, spawning the child if needed.

        Raises:
            BridgeTimeoutError: If the handshake exceeds the startup timeout.
            BridgeClosedError: If the bridge was closed.
        """
        if self._is_ready():
            return
        async with self._connect_lock:
            if self._is_ready():
                return
            await self._open_locked()

    async def list_tools(self) -> list[Any]:
        """Return the child's advertised tool catalog."""
        await self.connect()
        result = await self._require_session().list_tools()
        return list(result.tools)

    async def call_tool(self, name: str, params: Any) -> Any:
        """Call a tool on the child, reconnecting and retrying once if needed.

        Args:
            name: Tool name.
            params: Arguments; anything but a mapping is sent as ``{}``.

        Returns:
            The child's tool result.

        Raises:
            Exception: The original error for non-recoverable failures, or
                whatever the single retry raises.
        """
        await self.connect()
        arguments = as_arguments(params)
        generation = self._generation

        try:
            return await self._require_session().call_tool(name, arguments)
        except Exception as e:
            if not is_recoverable_transport_error(e) and not self._disconnect_observed(generation):
                raise
            logger.warning(
                "Call to %s failed (%s), reconnecting once: %s",
                name,
                recoverable_error_code(e) or "transport disconnected",
                e,
            )
            await self._reconnect(generation)
            return await self._require_session().call_tool(name, arguments)

    def status(self) -> dict[str, Any]:
        """Connection flag, launch command and a copy of lifecycle counters."""
        return {
            "connected": self._is_ready(),
            "state": self.state.value,
            "command": self._launch_spec.command,
            "args": list(self._launch_spec.args),
            "lifecycle": self._lifecycle.snapshot(),
        }

    async def close(self) -> None:
        """Shut the bridge down. Safe to call repeatedly or before connecting."""
        self._closed = True
        await self._teardown()

    def _require_session(self) -> ToolSessionPort:
        if self._session is None:
            raise BridgeNotConnectedError()
        return self._session

    def _disconnect_observed(self, generation: int) -> bool:
        return (
            generation != self._generation
            or not self._connected
            or self._lifecycle.pending_reconnect
        )

    async def _reconnect(self, observed_generation: int) -> None:
        async with self._connect_lock:
            if self._generation != observed_generation and self._is_ready():
                logger.debug("Skipping reconnect, another caller already reconnected")
                return
            await self._open_locked()
            self._lifecycle.reconnect_count += 1

    async def _open_locked(self) -> None:
        """Replace any existing connection with a new one (lock must be held)."""
        if self._closed:
            raise BridgeClosedError()

        await self._teardown()
        self._generation += 1
        generation = self._generation
        connection = self._connection_factory(
            self._launch_spec,
            partial(self._handle_transport_close, generation),
            partial(self._handle_transport_error, generation),
        )

        self._connecting = True
        try:
            session = await connection.open(self._startup_timeout_ms / 1000)
        except TimeoutError as e:
            raise BridgeTimeoutError(self._startup_timeout_ms) from e
        finally:
            self._connecting = False

        if self._closed or generation != self._generation:
            await connection.close()
            raise BridgeClosedError()

        self._connection = connection
        self._session = session
        self._connected = True
        self._lifecycle.pending_reconnect = False
        logger.info("Connected to MCP server: %s", self._launch_spec.command)

    async def _teardown(self) -> None:
        """Drop the current connection, ignoring errors from a dead transport."""
        self._generation += 1
        connection = self._connection
        self._connection = None
        self._session = None
        self._connected = False
        if connection is None:
            return
        try:
            await connection.close()
        except Exception as e:
            logger.debug("Ignoring error while closing MCP transport: %s", e)

    def _handle_transport_close(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._mark_disconnected("close", None)

    def _handle_transport_error(self, generation: int, error: BaseException) -> None:
        if generation != self._generation:
            return
        self._mark_disconnected("error", recoverable_error_code(error))

    def _mark_disconnected(self, reason: DisconnectReason, code: str | None) -> None:
        lifecycle = self._lifecycle
        lifecycle.pending_reconnect = True
        if not self._connected:
            return
        self._connected = False
        lifecycle.disconnect_count += 1
        lifecycle.last_disconnect_reason = reason
        lifecycle.last_disconnect_code = code
        logger.warning(
            "MCP transport disconnected (%s%s), will reconnect on next call",
            reason,
            f": {code}" if code else "",
        )
