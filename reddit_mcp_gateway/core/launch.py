"""Launch resolution for the child reddit-mcp-server process.

The child receives an explicit environment: only an allowlist of runtime
variables from the parent, plus the Reddit settings and credentials the
gateway resolved. Secrets unrelated to Reddit never reach it.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Mapping, Sequence
from pathlib import Path

from reddit_mcp_gateway.config import ResolvedRedditEnv, Settings, resolve_safe_mode
from reddit_mcp_gateway.core.errors import LaunchResolutionError
from reddit_mcp_gateway.core.models import LaunchSpec

logger = logging.getLogger(__name__)

REDDIT_MCP_PACKAGE = "reddit-mcp-server"
OVERRIDE_PACKAGE_DIR = "<override>"

CHILD_ENV_ALLOW_EXACT = frozenset(
    {
        "PATH",
        "HOME",
        "USER",
        "SHELL",
        "TMPDIR",
        "TEMP",
        "TMP",
        "LANG",
        "TERM",
        "TZ",
        "SYSTEMROOT",
        "COMSPEC",
        "PATHEXT",
        "WINDIR",
        "HTTP_PROXY",
        "HTTPS_PROXY",
        "NO_PROXY",
        "http_proxy",
        "https_proxy",
        "no_proxy",
        "ALL_PROXY",
        "all_proxy",
        "NODE_EXTRA_CA_CERTS",
        "SSL_CERT_FILE",
        "SSL_CERT_DIR",
        "OPENSSL_CONF",
    }
)

CHILD_ENV_ALLOW_PREFIXES = ("LC_",)


def build_child_process_env(environ: Mapping[str, str]) -> dict[str, str]:
    """Filter `environ` down to the runtime variables the child may see."""
    result: dict[str, str] = {}
    for key, value in environ.items():
        if not isinstance(value, str):
            continue
        if key in CHILD_ENV_ALLOW_EXACT or key.startswith(CHILD_ENV_ALLOW_PREFIXES):
            result[key] = value
    return result


def find_installed_package_dir(package_name: str, from_dir: str | Path) -> Path:
    """Find ``node_modules/<package_name>`` in `from_dir` or any ancestor.

    Raises:
        LaunchResolutionError: If no ancestor has the package installed.
    """
    start = Path(from_dir).resolve()
    for current in (start, *start.parents):
        candidate = current / "node_modules" / package_name
        if (candidate / "package.json").is_file():
            return candidate
    raise LaunchResolutionError(
        f"Unable to resolve package directory for '{package_name}' from '{start}'"
    )


def _node_executable() -> str:
    node = shutil.which("node")
    if node is None:
        raise LaunchResolutionError("Node.js executable 'node' not found on PATH")
    return node


def resolve_reddit_mcp_launch(
    command: str | None = None,
    args: Sequence[str] | None = None,
    search_from: str | Path | None = None,
) -> tuple[str, list[str], str]:
    """Work out how to start the Reddit MCP server.

    An explicit command always wins. Otherwise the installed npm package is
    located and started with node, preferring the built ``dist/bin.js`` over
    running ``src/index.ts`` through tsx.

    Args:
        command: Override executable.
        args: Arguments for the override executable.
        search_from: Directory to start the node_modules search from
            (defaults to the current working directory).

    Returns:
        Tuple of (command, args, package_dir).

    Raises:
        LaunchResolutionError: If no entry point can be found.
    """
    if command:
        return command, list(args or []), OVERRIDE_PACKAGE_DIR

    package_dir = find_installed_package_dir(REDDIT_MCP_PACKAGE, search_from or Path.cwd())

    dist_bin = package_dir / "dist" / "bin.js"
    if dist_bin.is_file():
        return _node_executable(), [str(dist_bin)], str(package_dir)

    src_index = package_dir / "src" / "index.ts"
    if src_index.is_file():
        return _node_executable(), ["--import", "tsx", str(src_index)], str(package_dir)

    raise LaunchResolutionError(
        f"{REDDIT_MCP_PACKAGE} entrypoint not found in {package_dir}. "
        "Expected dist/bin.js or src/index.ts."
    )


def build_launch_spec(
    settings: Settings,
    resolved_env: ResolvedRedditEnv,
    environ: Mapping[str, str],
    search_from: str | Path | None = None,
) -> LaunchSpec:
    """Assemble the immutable LaunchSpec for the bridge.

    Args:
        settings: Validated gateway settings.
        resolved_env: Credentials already read from the environment.
        environ: Parent environment to filter for the child.
        search_from: Start directory for locating the npm package.

    Returns:
        The LaunchSpec.
    """
    env = build_child_process_env(environ)
    env["REDDIT_AUTH_MODE"] = settings.reddit.auth_mode
    env["REDDIT_SAFE_MODE"] = resolve_safe_mode(settings)

    credentials = {
        "REDDIT_CLIENT_ID": resolved_env.client_id,
        "REDDIT_CLIENT_SECRET": resolved_env.client_secret,
        "REDDIT_USERNAME": resolved_env.username,
        "REDDIT_PASSWORD": resolved_env.password,
        "REDDIT_USER_AGENT": resolved_env.user_agent,
    }
    env.update({key: value for key, value in credentials.items() if value})

    command, args, package_dir = resolve_reddit_mcp_launch(
        settings.command, settings.args, search_from
    )
    logger.debug("Resolved child launch: %s %s (package: %s)", command, args, package_dir)
    return LaunchSpec(command=command, args=tuple(args), env=env)
