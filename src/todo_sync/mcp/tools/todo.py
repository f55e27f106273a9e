"""MCP tool handlers for todo lists and their Dropbox sync.

Defines five tools:

- ``todo_sync`` -- run one sync pass for a file.
- ``todo_sync_status`` -- status indicator, pending uploads, connection.
- ``todo_list`` -- tasks of a file.
- ``todo_add`` -- append a task (and sync it when possible).
- ``todo_files`` -- tracked files, optionally discovering new ones.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...store.todotxt import is_complete, sort_key
from ...sync.reporter import format_file_list, format_pass_result, result_to_json
from .errors import translate_pass_error
from .registry import ToolSpec

if TYPE_CHECKING:
    from ...app import Services

logger = logging.getLogger(__name__)

_FILE_PROPERTY = {
    "type": "string",
    "description": "Tracked file name, e.g. 'todo.txt' (default: the active file)",
}


def _target_path(services: Services, args: dict[str, Any]) -> str:
    name = args.get("file")
    if not name:
        return services.files.active_path
    return services.files.resolve(name)


def _text_result(text: str, structured: dict[str, Any]) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_todo_sync(
    services: Services, args: dict[str, Any]
) -> types.CallToolResult:
    path = _target_path(services, args)
    result = await services.coordinator.run_sync_pass(path)
    error = translate_pass_error(result)
    if error is not None:
        return error
    return _text_result(format_pass_result(result), result_to_json(result))


async def _handle_todo_sync_status(
    services: Services, args: dict[str, Any]
) -> types.CallToolResult:
    snapshot = services.status.snapshot()
    pending = sorted(services.ledger.pending_paths())
    structured = {
        "status": snapshot.status.value,
        "path": snapshot.path,
        "message": snapshot.message,
        "tooltip": snapshot.tooltip,
        "connected": services.credentials.is_authenticated,
        "online": services.network.online,
        "pending": pending,
    }
    lines = [
        f"File: {snapshot.path}",
        f"Status: {snapshot.status.value}",
        snapshot.tooltip,
    ]
    if pending:
        lines.append(f"Pending upload: {', '.join(pending)}")
    return _text_result("\n".join(lines), structured)


async def _handle_todo_list(
    services: Services, args: dict[str, Any]
) -> types.CallToolResult:
    path = _target_path(services, args)
    tasks = services.tasks.read_all_tasks(path)
    if args.get("sorted", False):
        tasks = sorted(tasks, key=lambda t: sort_key(t.text))
    items = [
        {"id": t.id, "text": t.text, "complete": is_complete(t.text)}
        for t in tasks
    ]
    if items:
        text = "\n".join(f"[{i['id']}] {i['text']}" for i in items)
    else:
        text = f"{path} has no tasks."
    return _text_result(text, {"path": path, "tasks": items})


async def _handle_todo_add(
    services: Services, args: dict[str, Any]
) -> types.CallToolResult:
    text = args.get("text")
    if not text:
        raise ValueError("text is required")
    path = _target_path(services, args)
    task = services.tasks.add_task(path, text)

    coordinator = services.coordinator
    structured: dict[str, Any] = {"path": path, "id": task.id, "text": task.text}
    message = f"Added to {path}: {task.text}"
    if (
        args.get("sync", True)
        and path == services.files.active_path
        and services.credentials.is_authenticated
        and services.network.online
    ):
        coordinator.cancel_debounce()
        result = await coordinator.run_sync_pass(path)
        structured["sync"] = result_to_json(result)
        message += f"\nSync: {result.status.value}"
    elif path != services.files.active_path:
        message += f"\n(not synced; {path} syncs once it is the active file)"
    else:
        message += "\n(pending upload)"
    return _text_result(message, structured)


async def _handle_todo_files(
    services: Services, args: dict[str, Any]
) -> types.CallToolResult:
    discovered: list[str] = []
    if args.get("discover", False):
        discovered = await services.coordinator.discover_remote_files()
    files = services.files.list_files()
    pending = services.ledger.pending_paths()
    structured = {
        "files": [
            {
                "path": f.path,
                "display_name": f.display_name,
                "active": f.is_active,
                "pending": f.path in pending,
            }
            for f in files
        ],
        "discovered": discovered,
    }
    return _text_result(format_file_list(files, pending), structured)


# ---------------------------------------------------------------------------
# Specs
# ---------------------------------------------------------------------------


TODO_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=types.Tool(
            name="todo_sync",
            description=(
                "Sync a todo file with Dropbox now. Uploads local changes or "
                "downloads a newer Dropbox version; unresolved conflicts keep "
                "local changes pending."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {"file": _FILE_PROPERTY},
                "required": [],
            },
        ),
        permissions=frozenset({"TODO_SYNC"}),
        handler=_handle_todo_sync,
    ),
    ToolSpec(
        tool=types.Tool(
            name="todo_sync_status",
            description="Show sync status of the active file and any files with pending uploads.",
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        permissions=frozenset({"TODO_VIEW"}),
        handler=_handle_todo_sync_status,
    ),
    ToolSpec(
        tool=types.Tool(
            name="todo_list",
            description="List the tasks of a todo file (todo.txt format lines).",
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "file": _FILE_PROPERTY,
                    "sorted": {
                        "type": "boolean",
                        "default": False,
                        "description": "Open tasks first, by priority",
                    },
                },
                "required": [],
            },
        ),
        permissions=frozenset({"TODO_VIEW"}),
        handler=_handle_todo_list,
    ),
    ToolSpec(
        tool=types.Tool(
            name="todo_add",
            description=(
                "Add a task line to a todo file, e.g. '(A) Call Mom +family @phone'. "
                "Syncs immediately when connected; otherwise the change stays pending."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=False,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "text": {"type": "string", "description": "Task text (single line)"},
                    "file": _FILE_PROPERTY,
                    "sync": {
                        "type": "boolean",
                        "default": True,
                        "description": "Sync right after adding",
                    },
                },
                "required": ["text"],
            },
        ),
        permissions=frozenset({"TODO_EDIT"}),
        handler=_handle_todo_add,
    ),
    ToolSpec(
        tool=types.Tool(
            name="todo_files",
            description="List tracked todo files, marking the active one and pending uploads.",
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "discover": {
                        "type": "boolean",
                        "default": False,
                        "description": "Look for new .txt files in Dropbox first",
                    },
                },
                "required": [],
            },
        ),
        permissions=frozenset({"TODO_VIEW"}),
        handler=_handle_todo_files,
    ),
]
