"""MCP server for todo lists using stdio transport.

Exposes the local todo lists and their Dropbox sync to AI agents.  The
server never prompts: conflicts configured as ``interactive`` are
deferred (local changes stay pending) until a human resolves them with
the CLI.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..app import Services, app_lifespan, load_logging_config
from ..core.async_utils import run_sync
from ..logger import DEFAULT_MCP_LOG_FILE, setup_logging
from .tools import (
    ALL_SPECS,
    ToolRegistry,
    build_error_response,
    load_permissions_file,
)
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

server = Server("todo-sync")

# Initialized in main()
_services: Services | None = None
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available, no permission required)
# ---------------------------------------------------------------------------


async def _handle_ping(
    services: Services, args: dict
) -> types.CallToolResult:
    """Report connection state and reachability of Dropbox."""
    reachable = await run_sync(services.monitor.probe)
    connected = services.credentials.is_authenticated
    text = (
        f"todo-sync {__version__}: "
        f"{'connected to' if connected else 'not connected to'} Dropbox, "
        f"{'online' if reachable else 'offline'}. "
        f"Active file: {services.files.active_path}"
    )
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent={
            "version": __version__,
            "connected": connected,
            "online": reachable,
            "active_file": services.files.active_path,
        },
    )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Check the todo-sync server, Dropbox login and network reachability",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    permissions=frozenset(),
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_services() -> Services:
    """Get the global Services bundle.

    Raises:
        RuntimeError: If the lifespan has not started.
    """
    if _services is None:
        raise RuntimeError("Services not initialized. Server lifespan not started.")
    return _services


def set_services(services: Services | None) -> None:
    global _services
    _services = services


def get_registry() -> ToolRegistry:
    """Registry built by main().

    Raises:
        RuntimeError: Before main() has built it.
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized; main() has not run.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Dispatch to the registry; unregistered names become unknown_tool."""
    services = get_services()
    try:
        return await get_registry().call_tool(name, arguments, services)
    except ValueError as e:
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


def build_registry(permissions_file: str | None = None) -> ToolRegistry:
    """Register ``ping`` plus every todo tool the permissions file grants."""
    granted = load_permissions_file(permissions_file) if permissions_file else None
    if granted is not None:
        logger.info("Granted %s by %s", ", ".join(sorted(granted)), permissions_file)
    candidates = [PING_SPEC, *ALL_SPECS]
    registry = ToolRegistry(candidates, granted)
    logger.info("Exposing %d of %d tools", registry.tool_count(), len(candidates))
    return registry


async def _serve() -> None:
    options = InitializationOptions(
        server_name="todo-sync",
        server_version=__version__,
        capabilities=server.get_capabilities(
            notification_options=NotificationOptions(),
            experimental_capabilities={},
        ),
    )
    async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, options)


async def main(config_overrides: dict | None = None):
    """Serve MCP over stdio until the client disconnects.

    Args:
        config_overrides: ``app_key``, ``state_dir``, ``conflict_strategy``
            and ``debug`` go to the config loader; ``log_file`` and
            ``permissions_file`` are consumed here.
    """
    overrides = dict(config_overrides or {})
    log_file = overrides.pop("log_file", None)
    permissions_file = overrides.pop("permissions_file", None)

    # stdout belongs to JSON-RPC from here on
    logging_config = load_logging_config()
    setup_logging(
        mode="mcp",
        log_file=log_file,
        debug=overrides.get("debug", False),
        level=logging_config.level,
        config_log_file=logging_config.file,
    )

    registry = build_registry(permissions_file)
    set_registry(registry)
    if permissions_file:
        print(
            f"{registry.tool_count()} tool(s) enabled by {permissions_file}",
            file=sys.stderr,
        )

    # Set here, not in the lifespan, so running as __main__ fills this
    # module's globals.
    try:
        async with app_lifespan(
            config_overrides=overrides,
            watch_connectivity=True,
            quiet=False,
            unattended=True,
        ) as services:
            set_services(services)
            print("todo-sync MCP server ready on stdio", file=sys.stderr)
            await _serve()
    finally:
        set_services(None)
        set_registry(None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="todo-sync-mcp",
        description="MCP server giving AI agents access to Dropbox-synced todo.txt lists",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Use the config from .env / .todo_sync/config.yml
  todo-sync-mcp

  # Keep the agent's state apart from your own
  todo-sync-mcp --state-dir ~/.local/share/todo_sync_agent

  # Let the agent read lists but not change them
  todo-sync-mcp --permissions-file ~/.config/todo_sync/read-only.permissions

Log in once with 'todo-sync login' first; the server never prompts.
Messages for humans go to stderr.
        """,
    )
    parser.add_argument("--app-key", help="Dropbox app key (overrides TODO_SYNC_APP_KEY)")
    parser.add_argument("--state-dir", help="Directory holding state.json")
    parser.add_argument(
        "--conflict-strategy",
        choices=("defer", "local-wins", "remote-wins"),
        help="What to do on a conflict (default: defer)",
    )
    parser.add_argument(
        "--log-file",
        help="Log file (default: LOG_FILE, then logging.file from the config, "
        f"then {DEFAULT_MCP_LOG_FILE})",
    )
    parser.add_argument(
        "--permissions-file",
        help="File granting TODO_VIEW, TODO_EDIT and/or TODO_SYNC; "
        "without it every tool is exposed",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--version", action="version", version=f"todo-sync-mcp version {__version__}"
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> dict:
    keys = ("app_key", "state_dir", "conflict_strategy", "log_file", "permissions_file")
    overrides = {key: getattr(args, key) for key in keys if getattr(args, key)}
    if args.debug:
        overrides["debug"] = True
    return overrides


def run(argv: list[str] | None = None) -> None:
    """Console entry point."""
    args = build_parser().parse_args(argv)
    try:
        asyncio.run(main(config_overrides=overrides_from_args(args) or None))
    except RuntimeError:
        # lifespan already reported it on stderr
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nStopped.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
