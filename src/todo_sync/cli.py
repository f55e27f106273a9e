"""Command-line front end: ``todo-sync``.

Every command runs inside ``app_lifespan()`` so it sees the same wiring
as the MCP server.  Local edits (``add``, ``done``, ``edit``,
``remove``, ``import``) mark the file pending and are followed by an
immediate sync pass unless ``--no-sync`` is given; offline or logged
out, the edit simply stays pending.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import webbrowser
from collections.abc import Awaitable, Callable

from . import __version__
from .app import Services, app_lifespan, load_logging_config
from .config import CONFLICT_STRATEGIES
from .config_loader import ensure_config
from .core.async_utils import run_sync
from .core.timestamps import format_timestamp
from .file_handler import read_file_async
from .logger import setup_logging
from .store.models import TaskItem
from .store.todotxt import sort_key
from .sync.models import (
    ConflictChoice,
    ConflictPrompt,
    FileOperationResult,
    LoginOutcome,
    StatusUpdate,
    SyncStatus,
)
from .sync.reporter import format_file_list, format_pass_result, result_to_json

logger = logging.getLogger(__name__)

CommandHandler = Callable[[Services, argparse.Namespace], Awaitable[int]]


# ---------------------------------------------------------------------------
# Console helpers
# ---------------------------------------------------------------------------


def _err(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


async def console_prompt(prompt: ConflictPrompt) -> ConflictChoice:
    """Ask on the terminal which side of a conflict to keep."""
    _err(f"Conflict on {prompt.path}:")
    _err(f"  Local changes:  {format_timestamp(prompt.local_modified_at)}")
    _err(f"  Dropbox version: {format_timestamp(prompt.remote_modified_at)}")
    while True:
        try:
            answer = await run_sync(
                input, "Keep [l]ocal, keep [r]emote, or [c]ancel? "
            )
        except EOFError:
            return ConflictChoice.CANCELLED
        answer = answer.strip().lower()
        if answer in ("l", "local"):
            return ConflictChoice.LOCAL
        if answer in ("r", "remote"):
            return ConflictChoice.REMOTE
        if answer in ("", "c", "cancel"):
            return ConflictChoice.CANCELLED


def _print_status(update: StatusUpdate) -> None:
    _err(f"[{update.path}] {update.text} {update.tooltip.splitlines()[0]}")


def _resolve_task(tasks: list[TaskItem], ref: str) -> TaskItem:
    """Find a task by 1-based list number or by id.

    Raises:
        KeyError: If nothing matches.
    """
    if ref.isdigit() and 1 <= int(ref) <= len(tasks):
        return tasks[int(ref) - 1]
    for task in tasks:
        if task.id == ref:
            return task
    raise KeyError(ref)


def _target_path(services: Services, args: argparse.Namespace) -> str:
    name = getattr(args, "file", None)
    if not name:
        return services.files.active_path
    return services.files.resolve(name)


def _report_file_op(result: FileOperationResult) -> int:
    if not result.success:
        _err(f"Error: {result.message}")
        return 1
    print(result.message)
    if result.warning:
        _err(f"Warning: {result.warning}")
    return 0


async def _sync_after_edit(services: Services, args: argparse.Namespace, path: str) -> None:
    coordinator = services.coordinator
    coordinator.cancel_debounce()
    if args.no_sync or path != services.files.active_path:
        return
    if services.credentials.is_authenticated and services.network.online:
        result = await coordinator.run_sync_pass(path)
        if result.status == SyncStatus.ERROR:
            _err(format_pass_result(result))


# ---------------------------------------------------------------------------
# Commands: connection
# ---------------------------------------------------------------------------


async def _cmd_login(services: Services, args: argparse.Namespace) -> int:
    url = services.credentials.begin_login()
    _err("Open this URL, approve access, then paste the address you were redirected to:")
    _err(f"  {url}")
    try:
        landing = await run_sync(input, "Redirect URL: ")
    except EOFError:
        _err("Login aborted.")
        return 1
    result = await services.credentials.complete_login_from_redirect(landing.strip())
    if result.outcome == LoginOutcome.NOT_A_REDIRECT:
        _err("That URL carries no authorization response.")
        return 1
    if result.outcome == LoginOutcome.FAILED:
        _err(f"Login failed: {result.message}")
        return 1
    print("Connected to Dropbox.")
    pass_result = await services.coordinator.handle_login()
    if pass_result is not None:
        print(format_pass_result(pass_result))
    return 0


async def _cmd_logout(services: Services, args: argparse.Namespace) -> int:
    services.credentials.logout()
    print("Disconnected from Dropbox.")
    return 0


async def _cmd_status(services: Services, args: argparse.Namespace) -> int:
    snapshot = services.status.snapshot()
    if args.json:
        data = snapshot.model_dump(mode="json")
        data["pending"] = sorted(services.ledger.pending_paths())
        print(json.dumps(data, indent=2))
        return 0
    print(f"File:   {snapshot.path}")
    print(f"Status: {snapshot.status.value} {snapshot.text}")
    print(snapshot.tooltip)
    return 0


async def _cmd_sync(services: Services, args: argparse.Namespace) -> int:
    path = _target_path(services, args)
    result = await services.coordinator.run_sync_pass(path)
    if args.json:
        print(json.dumps(result_to_json(result), indent=2))
    else:
        print(format_pass_result(result))
    return 1 if result.status == SyncStatus.ERROR else 0


async def _cmd_watch(services: Services, args: argparse.Namespace) -> int:
    services.status.add_sink(_print_status)
    _err(f"Watching {services.files.active_path} (Ctrl-C to stop)")
    while True:
        path = services.files.active_path
        if services.credentials.is_authenticated and services.network.online:
            await services.coordinator.run_sync_pass(path)
        await asyncio.sleep(args.interval)


# ---------------------------------------------------------------------------
# Commands: files
# ---------------------------------------------------------------------------


async def _cmd_files(services: Services, args: argparse.Namespace) -> int:
    if args.discover:
        added = await services.coordinator.discover_remote_files()
        for path in added:
            _err(f"Discovered {path}")
    print(
        format_file_list(
            services.files.list_files(), services.ledger.pending_paths()
        )
    )
    return 0


async def _cmd_use(services: Services, args: argparse.Namespace) -> int:
    path = _target_path(services, args)
    result = await services.coordinator.switch_file(path)
    print(f"Active file: {path}")
    if result is not None:
        print(format_pass_result(result))
    return 0


async def _cmd_add_file(services: Services, args: argparse.Namespace) -> int:
    return _report_file_op(await services.coordinator.create_file(args.name))


async def _cmd_rename_file(services: Services, args: argparse.Namespace) -> int:
    return _report_file_op(
        await services.coordinator.rename_active_file(args.name)
    )


async def _cmd_delete_file(services: Services, args: argparse.Namespace) -> int:
    path = _target_path(services, args)
    if not args.yes:
        answer = await run_sync(input, f"Delete {path} locally and in Dropbox? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            _err("Cancelled.")
            return 1
    return _report_file_op(await services.coordinator.delete_file(path))


# ---------------------------------------------------------------------------
# Commands: tasks
# ---------------------------------------------------------------------------


async def _cmd_list(services: Services, args: argparse.Namespace) -> int:
    path = _target_path(services, args)
    tasks = services.tasks.read_all_tasks(path)
    numbered = list(enumerate(tasks, start=1))
    if args.sort:
        numbered.sort(key=lambda pair: sort_key(pair[1].text))
    for number, task in numbered:
        print(f"{number:>3}  {task.text}")
    if not tasks:
        _err(f"{path} has no tasks.")
    return 0


async def _cmd_add(services: Services, args: argparse.Namespace) -> int:
    path = _target_path(services, args)
    task = services.tasks.add_task(path, " ".join(args.text))
    print(f"Added: {task.text}")
    await _sync_after_edit(services, args, path)
    return 0


async def _cmd_done(services: Services, args: argparse.Namespace) -> int:
    path = _target_path(services, args)
    task = _resolve_task(services.tasks.read_all_tasks(path), args.task)
    updated = services.tasks.toggle_task(path, task.id)
    print(updated.text)
    await _sync_after_edit(services, args, path)
    return 0


async def _cmd_edit(services: Services, args: argparse.Namespace) -> int:
    path = _target_path(services, args)
    task = _resolve_task(services.tasks.read_all_tasks(path), args.task)
    updated = services.tasks.update_task(path, task.id, " ".join(args.text))
    print(updated.text)
    await _sync_after_edit(services, args, path)
    return 0


async def _cmd_remove(services: Services, args: argparse.Namespace) -> int:
    path = _target_path(services, args)
    task = _resolve_task(services.tasks.read_all_tasks(path), args.task)
    services.tasks.remove_task(path, task.id)
    print(f"Removed: {task.text}")
    await _sync_after_edit(services, args, path)
    return 0


async def _cmd_import(services: Services, args: argparse.Namespace) -> int:
    path = _target_path(services, args)
    content, encoding, resolved = await read_file_async(args.source)
    added = services.tasks.import_text(path, content)
    print(f"Imported {len(added)} task(s) from {resolved} ({encoding})")
    if added:
        await _sync_after_edit(services, args, path)
    return 0


_COMMANDS: dict[str, CommandHandler] = {
    "login": _cmd_login,
    "logout": _cmd_logout,
    "status": _cmd_status,
    "sync": _cmd_sync,
    "watch": _cmd_watch,
    "files": _cmd_files,
    "use": _cmd_use,
    "add-file": _cmd_add_file,
    "rename-file": _cmd_rename_file,
    "delete-file": _cmd_delete_file,
    "list": _cmd_list,
    "add": _cmd_add,
    "done": _cmd_done,
    "edit": _cmd_edit,
    "remove": _cmd_remove,
    "import": _cmd_import,
}


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="todo-sync",
        description="Offline-first todo.txt lists mirrored to Dropbox",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Connect to Dropbox (PKCE, no app secret needed)
  todo-sync login

  # Add a task to the active file and sync it
  todo-sync add "(A) Call the bank +finance"

  # Work offline; changes stay pending until the next sync
  todo-sync add --no-sync "Buy milk"
  todo-sync sync

  # Switch to another list
  todo-sync add-file groceries
  todo-sync use groceries.txt
        """,
    )
    parser.add_argument("--app-key", help="Dropbox app key (overrides TODO_SYNC_APP_KEY)")
    parser.add_argument("--state-dir", help="Directory holding state.json")
    parser.add_argument(
        "--conflict-strategy",
        choices=CONFLICT_STRATEGIES,
        help="How to resolve conflicts (default: interactive)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--debug-format",
        choices=("text", "json"),
        default="text",
        help="Log output format",
    )
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--version", action="version", version=f"todo-sync version {__version__}"
    )

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    sub.add_parser("login", help="Connect to Dropbox")
    sub.add_parser("logout", help="Forget Dropbox tokens")
    sub.add_parser("init", help="Write a starter config file")

    p = sub.add_parser("status", help="Show the sync status of the active file")
    p.add_argument("--json", action="store_true")

    p = sub.add_parser("sync", help="Run one sync pass")
    p.add_argument("--file", help="File to sync (default: active file)")
    p.add_argument("--json", action="store_true")

    p = sub.add_parser("watch", help="Keep syncing the active file")
    p.add_argument("--interval", type=float, default=30.0, help="Seconds between passes")

    p = sub.add_parser("files", help="List tracked files")
    p.add_argument("--discover", action="store_true", help="Look for new files in Dropbox first")

    p = sub.add_parser("use", help="Make a file active")
    p.add_argument("file")

    p = sub.add_parser("add-file", help="Create a new todo file")
    p.add_argument("name")

    p = sub.add_parser("rename-file", help="Rename the active file")
    p.add_argument("name")

    p = sub.add_parser("delete-file", help="Delete a tracked file")
    p.add_argument("file")
    p.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")

    p = sub.add_parser("list", help="Show tasks")
    p.add_argument("--file")
    p.add_argument("--sort", action="store_true", help="Open tasks first, by priority")

    def _edit_parser(name: str, help_text: str) -> argparse.ArgumentParser:
        ep = sub.add_parser(name, help=help_text)
        ep.add_argument("--file")
        ep.add_argument("--no-sync", action="store_true", help="Leave the change pending")
        return ep

    p = _edit_parser("add", "Add a task")
    p.add_argument("text", nargs="+")
    p = _edit_parser("done", "Toggle a task's completion")
    p.add_argument("task", help="Task number from 'list' or task id")
    p = _edit_parser("edit", "Replace a task's text")
    p.add_argument("task")
    p.add_argument("text", nargs="+")
    p = _edit_parser("remove", "Delete a task")
    p.add_argument("task")
    p = _edit_parser("import", "Append tasks from a text file")
    p.add_argument("source", help="Path of the file to import")

    return parser


def _config_overrides(args: argparse.Namespace) -> dict:
    overrides: dict = {}
    if args.app_key:
        overrides["app_key"] = args.app_key
    if args.state_dir:
        overrides["state_dir"] = args.state_dir
    if args.conflict_strategy:
        overrides["conflict_strategy"] = args.conflict_strategy
    if args.debug:
        overrides["debug"] = True
    return overrides


async def run_command(args: argparse.Namespace) -> int:
    """Run one parsed command inside the application lifespan."""
    handler = _COMMANDS[args.command]
    async with app_lifespan(
        config_overrides=_config_overrides(args),
        resolver_prompt=console_prompt,
        open_url=webbrowser.open,
        watch_connectivity=args.command == "watch",
    ) as services:
        try:
            return await handler(services, args)
        except KeyError as e:
            _err(f"Error: not found: {e.args[0] if e.args else e}")
            return 1
        except ValueError as e:
            _err(f"Error: {e}")
            return 1


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 2

    logging_config = load_logging_config()
    setup_logging(
        mode="cli",
        debug=args.debug,
        log_file=args.log_file,
        debug_format=args.debug_format,
        level=logging_config.level or "WARNING",
        config_log_file=logging_config.file,
    )

    if args.command == "init":
        path = ensure_config()
        print(f"Config file: {path}")
        return 0

    try:
        return asyncio.run(run_command(args))
    except RuntimeError as e:
        # lifespan already printed configuration errors
        logger.debug("Command failed: %s", e)
        return 1
    except KeyboardInterrupt:
        _err("\nInterrupted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
