"""Service factory for dependency injection and initialization.

This module wires every collaborator the RedditGateway needs from a single
Settings object and an explicit environment mapping, so the gateway itself
never reads process state.

Usage:
    from reddit_mcp_gateway.factory import ServiceFactory

    factory = ServiceFactory(settings, environ=os.environ)
    services = factory.create_all()
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from reddit_mcp_gateway.config import (
    ResolvedRedditEnv,
    Settings,
    resolve_reddit_environment,
    validate_credential_readiness,
)
from reddit_mcp_gateway.core.bridge import RedditMcpBridge
from reddit_mcp_gateway.core.launch import build_launch_spec
from reddit_mcp_gateway.core.models import LaunchSpec
from reddit_mcp_gateway.core.policy import WritePolicyConfig, WritePolicyGuard
from reddit_mcp_gateway.core.rate_limiter import RedditRatePolicy
from reddit_mcp_gateway.ports.bridge import ToolBridgePort

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Container for all initialized services.

    Attributes:
        settings: Validated settings the services were built from.
        reddit_env: Credentials resolved from the environment.
        credential_errors: Credential problems found at startup (cached).
        launch_spec: Child launch spec, or None when a bridge was injected.
        bridge: Process bridge to the child MCP server.
        rate_policy: Read/write rate policy.
        write_guard: Write policy guard.
    """

    settings: Settings
    reddit_env: ResolvedRedditEnv
    credential_errors: list[str]
    launch_spec: LaunchSpec | None
    bridge: ToolBridgePort
    rate_policy: RedditRatePolicy
    write_guard: WritePolicyGuard


class ServiceFactory:
    """Factory for creating and wiring all gateway services.

    Example:
        factory = ServiceFactory(settings, environ={"REDDIT_CLIENT_ID": "..."})
        services = factory.create_all()
    """

    def __init__(
        self,
        settings: Settings,
        environ: Mapping[str, str] | None = None,
        bridge: ToolBridgePort | None = None,
        search_from: str | Path | None = None,
    ) -> None:
        """Initialize the factory.

        Args:
            settings: Application settings.
            environ: Environment mapping to resolve credentials from
                (defaults to a snapshot of os.environ).
            bridge: Optional bridge override for testing.
            search_from: Directory to locate the npm package from.
        """
        self._settings = settings
        self._environ: Mapping[str, str] = dict(os.environ) if environ is None else environ
        self._injected_bridge = bridge
        self._search_from = search_from

    def create_reddit_env(self) -> ResolvedRedditEnv:
        return resolve_reddit_environment(self._settings, self._environ)

    def create_launch_spec(self, reddit_env: ResolvedRedditEnv) -> LaunchSpec:
        """Resolve the child command line and environment.

        Raises:
            LaunchResolutionError: If the child server cannot be located.
        """
        return build_launch_spec(self._settings, reddit_env, self._environ, self._search_from)

    def create_bridge(self, launch_spec: LaunchSpec) -> RedditMcpBridge:
        return RedditMcpBridge(
            launch_spec,
            startup_timeout_ms=self._settings.startup_timeout_ms,
            call_timeout_ms=self._settings.call_timeout_ms,
        )

    def create_rate_policy(self) -> RedditRatePolicy:
        limits = self._settings.rate_limit
        return RedditRatePolicy(
            read_per_minute=limits.read_per_minute,
            write_per_minute=limits.write_per_minute,
            min_write_interval_ms=limits.min_write_interval_ms,
        )

    def create_write_guard(self) -> WritePolicyGuard:
        config = WritePolicyConfig.from_settings(
            self._settings.write, verbose_errors=self._settings.verbose_errors
        )
        return WritePolicyGuard(config)

    def create_all(self) -> ServiceContainer:
        """Create and wire all services.

        Returns:
            ServiceContainer with all services initialized.

        Raises:
            LaunchResolutionError: If no bridge was injected and the child
                server cannot be located.
        """
        reddit_env = self.create_reddit_env()
        credential_errors = validate_credential_readiness(self._settings, reddit_env)
        for problem in credential_errors:
            logger.warning("Credential check: %s", problem)

        launch_spec: LaunchSpec | None = None
        if self._injected_bridge is not None:
            bridge = self._injected_bridge
        else:
            launch_spec = self.create_launch_spec(reddit_env)
            bridge = self.create_bridge(launch_spec)

        return ServiceContainer(
            settings=self._settings,
            reddit_env=reddit_env,
            credential_errors=credential_errors,
            launch_spec=launch_spec,
            bridge=bridge,
            rate_policy=self.create_rate_policy(),
            write_guard=self.create_write_guard(),
        )
