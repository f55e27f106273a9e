"""Tests for status and sync-result formatting.

Covers:
- status_text glyphs and labels
- format_status_tooltip per status
- format_pass_result for decided, undecided, conflict and absorbed passes
- format_file_list markers
- result_to_json structure
"""

from __future__ import annotations

import json

import pytest

from todo_sync.store.models import TrackedFile
from todo_sync.sync.models import (
    ConflictChoice,
    SyncAction,
    SyncPassResult,
    SyncStatus,
)
from todo_sync.sync.reporter import (
    format_file_list,
    format_pass_result,
    format_status_tooltip,
    result_to_json,
    status_text,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _result(
    action: SyncAction | None = SyncAction.PUSH,
    status: SyncStatus = SyncStatus.IDLE,
    success: bool = True,
    message: str = "",
    choice: ConflictChoice | None = None,
    path: str = "/todo.txt",
) -> SyncPassResult:
    return SyncPassResult(
        path=path,
        action=action,
        status=status,
        success=success,
        message=message,
        conflict_choice=choice,
    )


# ---------------------------------------------------------------------------
# Indicator
# ---------------------------------------------------------------------------


class TestStatusText:
    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            (SyncStatus.IDLE, "✓"),
            (SyncStatus.SYNCING, "↻ Syncing..."),
            (SyncStatus.PENDING, "↑ Pending"),
            (SyncStatus.OFFLINE, "⊘ Offline"),
            (SyncStatus.ERROR, "! Error"),
            (SyncStatus.NOT_CONNECTED, "⏻"),
        ],
    )
    def test_every_status_has_text(self, status, expected):
        assert status_text(status) == expected


class TestFormatStatusTooltip:
    def test_idle_shows_file_and_never_synced(self):
        text = format_status_tooltip(SyncStatus.IDLE, path="/work.txt")
        assert text == "File: work.txt\nLast Sync: Never"

    def test_idle_shows_last_sync_time(self, t0):
        text = format_status_tooltip(SyncStatus.IDLE, path="/todo.txt", last_sync=t0)
        assert "Never" not in text
        assert t0.astimezone().strftime("%Y-%m-%d %H:%M:%S") in text

    def test_error_includes_message(self):
        text = format_status_tooltip(SyncStatus.ERROR, "quota exceeded")
        assert text == "Sync Error: quota exceeded"

    def test_error_without_message(self):
        assert format_status_tooltip(SyncStatus.ERROR) == "Sync Error: Unknown error"

    def test_message_ignored_outside_error(self):
        text = format_status_tooltip(SyncStatus.PENDING, "ignored")
        assert "ignored" not in text

    def test_not_connected(self):
        assert format_status_tooltip(SyncStatus.NOT_CONNECTED) == (
            "Not connected to Dropbox"
        )


# ---------------------------------------------------------------------------
# Pass results
# ---------------------------------------------------------------------------


class TestFormatPassResult:
    def test_push(self):
        text = format_pass_result(_result(SyncAction.PUSH))
        assert text.startswith("/todo.txt: Uploaded local changes")
        assert "Status: ✓" in text

    def test_failed_action_is_marked(self):
        text = format_pass_result(
            _result(
                SyncAction.PUSH,
                status=SyncStatus.ERROR,
                success=False,
                message="Dropbox API error 500: internal_error",
            )
        )
        assert "Uploaded local changes -- failed" in text
        assert "Message: Dropbox API error 500: internal_error" in text

    def test_offline_before_deciding(self):
        text = format_pass_result(
            _result(None, status=SyncStatus.OFFLINE, success=False)
        )
        assert "offline, sync deferred" in text

    def test_not_connected_before_deciding(self):
        text = format_pass_result(
            _result(None, status=SyncStatus.NOT_CONNECTED, success=False)
        )
        assert "not connected to Dropbox" in text

    def test_cancelled_conflict(self):
        text = format_pass_result(
            _result(SyncAction.CONFLICT, choice=ConflictChoice.CANCELLED)
        )
        assert "conflict left unresolved" in text

    def test_resolved_conflict_names_choice(self):
        text = format_pass_result(
            _result(SyncAction.PULL, choice=ConflictChoice.REMOTE)
        )
        assert "Downloaded newer Dropbox version" in text
        assert "(conflict resolved: keep remote)" in text

    def test_absorbed(self):
        result = SyncPassResult(
            path="/todo.txt", status=SyncStatus.SYNCING, absorbed=True
        )
        assert format_pass_result(result) == "/todo.txt: sync already in progress"


class TestFormatFileList:
    def test_marks_active_and_pending(self):
        files = [
            TrackedFile(path="/todo.txt", display_name="todo.txt", is_active=False),
            TrackedFile(path="/work.txt", display_name="work.txt", is_active=True),
        ]
        text = format_file_list(files, {"/todo.txt"})
        assert text.splitlines() == [
            "  todo.txt  (pending upload)",
            "* work.txt",
        ]


class TestResultToJson:
    def test_structure(self):
        data = result_to_json(
            _result(SyncAction.PUSH, choice=ConflictChoice.LOCAL)
        )
        assert data == {
            "path": "/todo.txt",
            "action": "push",
            "success": True,
            "status": "idle",
            "message": "",
            "conflict_choice": "local",
            "absorbed": False,
        }

    def test_undecided_pass_is_serialisable(self):
        data = result_to_json(
            _result(None, status=SyncStatus.OFFLINE, success=False)
        )
        assert data["action"] is None
        assert data["conflict_choice"] is None
        json.dumps(data)
