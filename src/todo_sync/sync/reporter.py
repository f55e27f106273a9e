"""Status and sync-result formatting.

- ``status_text`` / ``format_status_tooltip`` -- indicator label and
  hover text for each ``SyncStatus``.
- ``format_pass_result`` -- one-paragraph summary of a sync pass.
- ``format_file_list`` -- tracked files with pending markers.
- ``result_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..core.timestamps import format_timestamp
from .models import ConflictChoice, SyncAction, SyncStatus

if TYPE_CHECKING:
    from .models import SyncPassResult, TrackedFile

_STATUS_TEXT: dict[SyncStatus, str] = {
    SyncStatus.IDLE: "",
    SyncStatus.SYNCING: "Syncing...",
    SyncStatus.PENDING: "Pending",
    SyncStatus.OFFLINE: "Offline",
    SyncStatus.ERROR: "Error",
    SyncStatus.NOT_CONNECTED: "",
}

_STATUS_GLYPH: dict[SyncStatus, str] = {
    SyncStatus.IDLE: "✓",
    SyncStatus.SYNCING: "↻",
    SyncStatus.PENDING: "↑",
    SyncStatus.OFFLINE: "⊘",
    SyncStatus.ERROR: "!",
    SyncStatus.NOT_CONNECTED: "⏻",
}

_ACTION_TEXT: dict[SyncAction, str] = {
    SyncAction.SKIP: "Already in sync",
    SyncAction.PUSH: "Uploaded local changes",
    SyncAction.CREATE_REMOTE: "Created file in Dropbox",
    SyncAction.PULL: "Downloaded newer Dropbox version",
    SyncAction.CREATE_LOCAL: "Downloaded file from Dropbox",
    SyncAction.CONFLICT: "Conflict",
}


# ------------------------------------------------------------------
# Indicator
# ------------------------------------------------------------------


def status_text(status: SyncStatus) -> str:
    """Return glyph plus short label, e.g. ``"↑ Pending"``."""
    label = _STATUS_TEXT[status]
    glyph = _STATUS_GLYPH[status]
    return f"{glyph} {label}" if label else glyph


def format_status_tooltip(
    status: SyncStatus,
    message: str = "",
    path: str | None = None,
    last_sync: datetime | None = None,
) -> str:
    """Return the hover text for the status indicator.

    Only ``IDLE`` shows the file name and last sync time; only
    ``ERROR`` shows *message*.
    """
    match status:
        case SyncStatus.IDLE:
            name = (path or "").rsplit("/", 1)[-1]
            return f"File: {name}\nLast Sync: {format_timestamp(last_sync)}"
        case SyncStatus.SYNCING:
            return "Syncing with Dropbox..."
        case SyncStatus.PENDING:
            return "Upload pending (will sync when online)"
        case SyncStatus.OFFLINE:
            return "Application is offline"
        case SyncStatus.ERROR:
            return f"Sync Error: {message or 'Unknown error'}"
        case _:
            return "Not connected to Dropbox"


# ------------------------------------------------------------------
# Pass results
# ------------------------------------------------------------------


def format_pass_result(result: SyncPassResult) -> str:
    """Format a sync pass outcome as human-readable text."""
    if result.absorbed:
        return f"{result.path}: sync already in progress"

    if result.action is None:
        headline = {
            SyncStatus.OFFLINE: "offline, sync deferred",
            SyncStatus.NOT_CONNECTED: "not connected to Dropbox",
        }.get(result.status, "sync failed")
    elif result.action == SyncAction.CONFLICT and result.conflict_choice in (
        None,
        ConflictChoice.CANCELLED,
    ):
        headline = "conflict left unresolved, local changes kept pending"
    else:
        headline = _ACTION_TEXT[result.action]
        if result.conflict_choice is not None:
            headline += f" (conflict resolved: keep {result.conflict_choice.value})"
        if not result.success:
            headline += " -- failed"

    lines = [f"{result.path}: {headline}", f"Status: {status_text(result.status)}"]
    if result.message:
        lines.append(f"Message: {result.message}")
    return "\n".join(lines)


def format_file_list(files: list[TrackedFile], pending: set[str]) -> str:
    """List tracked files, marking the active one and pending uploads."""
    lines = []
    for f in files:
        marker = "*" if f.is_active else " "
        suffix = "  (pending upload)" if f.path in pending else ""
        lines.append(f"{marker} {f.display_name}{suffix}")
    return "\n".join(lines)


def result_to_json(result: SyncPassResult) -> dict[str, Any]:
    """Convert a pass result into a JSON-serialisable dict."""
    return {
        "path": result.path,
        "action": result.action.value if result.action else None,
        "success": result.success,
        "status": result.status.value,
        "message": result.message,
        "conflict_choice": (
            result.conflict_choice.value if result.conflict_choice else None
        ),
        "absorbed": result.absorbed,
    }
