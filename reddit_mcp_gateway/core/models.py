"""Data models for the Reddit MCP Gateway."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Literal

DisconnectReason = Literal["close", "error"]


@dataclass(frozen=True)
class LaunchSpec:
    """Fully resolved command line and environment for the child MCP server.

    Attributes:
        command: Executable to spawn.
        args: Arguments passed to the executable.
        env: Complete environment for the child (nothing is inherited).
    """

    command: str
    args: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))


class BridgeState(Enum):
    """Connection states of the process bridge.

    DISCONNECTED: No live session (initial state, or after a transport event).
    CONNECTING: Spawning the child and running the handshake.
    CONNECTED: Session ready for calls.
    CLOSED: Shut down explicitly; terminal.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


@dataclass
class BridgeLifecycle:
    """Mutable transport telemetry owned by the bridge.

    Attributes:
        disconnect_count: Transport close/error events observed while connected.
        reconnect_count: Reconnects performed to recover a failed call.
        pending_reconnect: A disconnect was observed and no connect has run since.
        last_disconnect_reason: ``close`` or ``error`` for the latest event.
        last_disconnect_code: Recoverable error code of the latest error event.
    """

    disconnect_count: int = 0
    reconnect_count: int = 0
    pending_reconnect: bool = False
    last_disconnect_reason: DisconnectReason | None = None
    last_disconnect_code: str | None = None

    def snapshot(self) -> dict[str, Any]:
        """Return a detached copy for status reporting."""
        return asdict(self)


@dataclass
class ToolResult:
    """Externally visible outcome of one tool invocation.

    Attributes:
        content_text: Primary text for the caller.
        is_error: True for blocked or failed calls and upstream error results.
        metadata: ``tool``, ``mode`` and ``raw`` on success; ``error`` details on failure.
    """

    content_text: str
    is_error: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ParitySnapshot:
    """Result of comparing the child's tool catalog with the expected one."""

    checked_at: str | None = None
    upstream_tool_count: int | None = None
    missing_expected_tools: list[str] = field(default_factory=list)
    unexpected_upstream_tools: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
