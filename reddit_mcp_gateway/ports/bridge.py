"""Protocol interfaces for the child MCP connection.

The dispatcher depends on ToolBridgePort and the bridge depends on
TransportConnectionPort / ToolSessionPort, not on the concrete stdio
classes, so tests can swap in fakes.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

from reddit_mcp_gateway.core.models import LaunchSpec

TransportCloseHandler = Callable[[], None]
TransportErrorHandler = Callable[[BaseException], None]


class ToolSessionPort(Protocol):
    """A live tool-calling session with the child.

    Consumer: RedditMcpBridge
    """

    async def list_tools(self) -> Any:
        """Return an object with a ``tools`` sequence (name, description, inputSchema)."""
        ...

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Invoke a tool and return its result (content chunks plus isError)."""
        ...


class TransportConnectionPort(Protocol):
    """One spawned child process and its session.

    Consumer: RedditMcpBridge
    """

    async def open(self, timeout: float) -> ToolSessionPort:
        """Spawn the child and complete the handshake within `timeout` seconds.

        Raises:
            TimeoutError: If the handshake does not finish in time. The
                connection must release the child before raising.
        """
        ...

    async def close(self) -> None:
        """Terminate the session and the child process."""
        ...


ConnectionFactory = Callable[
    [LaunchSpec, TransportCloseHandler, TransportErrorHandler],
    TransportConnectionPort,
]


class ToolBridgePort(Protocol):
    """What the dispatcher needs from the process bridge.

    Consumer: RedditGateway
    """

    async def list_tools(self) -> list[Any]:
        ...

    async def call_tool(self, name: str, params: Any) -> Any:
        ...

    def status(self) -> dict[str, Any]:
        ...

    async def close(self) -> None:
        ...
