"""Local task-list storage.

Each tracked file owns an ordered list of tasks (one per line of the
Dropbox file) plus two timestamps: the last local write and the last
successful sync.  Every operation takes the file path explicitly; there
is no notion of an "active" file at this layer.

Writes notify change listeners with the file path.  The sync
coordinator subscribes to that notification to mark the file pending
and arm its debounce timer.  Writes that come from a pull pass
``notify=False`` so downloaded content is not mistaken for an edit.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime

from ..core.timestamps import parse_timestamp, to_iso, utc_now
from ..validators import validate_task_text
from .models import TaskItem
from .state import StateStore
from .todotxt import toggle_complete

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str], None]


def _new_task_id() -> str:
    return secrets.token_hex(6)


def parse_task_lines(text: str) -> list[str]:
    """Split file content into task texts, dropping blank lines."""
    return [line.strip() for line in text.splitlines() if line.strip()]


class LocalTaskStore:
    """Task lists and per-file timestamps backed by a ``StateStore``."""

    def __init__(self, state: StateStore) -> None:
        self._state = state
        self._listeners: list[ChangeListener] = []

    def add_change_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def _notify(self, path: str) -> None:
        for listener in list(self._listeners):
            listener(path)

    # ------------------------------------------------------------------
    # Whole-file access
    # ------------------------------------------------------------------

    def read_all_tasks(self, path: str) -> list[TaskItem]:
        """Return the tasks of *path* in file order.

        Lists saved by older versions as plain strings are upgraded to
        ``{id, text}`` records in place.
        """
        raw = self._state.get(f"tasks:{path}") or []
        tasks: list[TaskItem] = []
        migrated = False
        for entry in raw:
            if isinstance(entry, str):
                tasks.append(TaskItem(id=_new_task_id(), text=entry))
                migrated = True
            elif isinstance(entry, dict) and "text" in entry:
                tasks.append(
                    TaskItem(
                        id=str(entry.get("id") or _new_task_id()),
                        text=str(entry["text"]),
                    )
                )
        if migrated:
            logger.info("Upgraded legacy task list for %s", path)
            self._state.set(
                f"tasks:{path}", [t.model_dump() for t in tasks]
            )
        return tasks

    def write_all_tasks(
        self,
        path: str,
        tasks: list[TaskItem],
        *,
        modified_at: datetime | None = None,
        notify: bool = True,
    ) -> None:
        """Replace the task list of *path* and stamp its last-modified time.

        Args:
            path: Tracked file path.
            tasks: New task list.
            modified_at: Timestamp to record; defaults to now.
            notify: Whether change listeners are told about the write.
        """
        self._state.delete(f"text:{path}")
        self._state.set(f"tasks:{path}", [t.model_dump() for t in tasks])
        self._stamp(path, modified_at)
        if notify:
            self._notify(path)

    def read_text(self, path: str) -> str:
        """Return the file content as uploaded to Dropbox.

        Content written by ``write_text`` is returned byte for byte
        until the task list is edited; otherwise tasks are joined with
        newlines.
        """
        raw = self._state.get(f"text:{path}")
        if raw is not None:
            return raw
        return "\n".join(t.text for t in self.read_all_tasks(path))

    def write_text(
        self,
        path: str,
        text: str,
        *,
        modified_at: datetime | None = None,
        notify: bool = True,
    ) -> None:
        """Replace the content of *path* with *text*."""
        tasks = [
            TaskItem(id=_new_task_id(), text=line)
            for line in parse_task_lines(text)
        ]
        self._state.set(f"tasks:{path}", [t.model_dump() for t in tasks])
        self._state.set(f"text:{path}", text)
        self._stamp(path, modified_at)
        if notify:
            self._notify(path)

    # ------------------------------------------------------------------
    # Task operations
    # ------------------------------------------------------------------

    def add_task(self, path: str, text: str) -> TaskItem:
        is_valid, error = validate_task_text(text)
        if not is_valid:
            raise ValueError(error)
        task = TaskItem(id=_new_task_id(), text=text.strip())
        self.write_all_tasks(path, [*self.read_all_tasks(path), task])
        return task

    def update_task(self, path: str, task_id: str, text: str) -> TaskItem:
        """Change the text of one task.

        Raises:
            KeyError: If no task with *task_id* exists in *path*.
            ValueError: If *text* is not a valid task.
        """
        is_valid, error = validate_task_text(text)
        if not is_valid:
            raise ValueError(error)
        tasks = self.read_all_tasks(path)
        for index, task in enumerate(tasks):
            if task.id == task_id:
                updated = task.model_copy(update={"text": text.strip()})
                tasks[index] = updated
                self.write_all_tasks(path, tasks)
                return updated
        raise KeyError(task_id)

    def toggle_task(self, path: str, task_id: str) -> TaskItem:
        """Mark a task done, or reopen it if it already is.

        Raises:
            KeyError: If no task with *task_id* exists in *path*.
        """
        for task in self.read_all_tasks(path):
            if task.id == task_id:
                return self.update_task(path, task_id, toggle_complete(task.text))
        raise KeyError(task_id)

    def remove_task(self, path: str, task_id: str) -> TaskItem:
        tasks = self.read_all_tasks(path)
        for task in tasks:
            if task.id == task_id:
                self.write_all_tasks(
                    path, [t for t in tasks if t.id != task_id]
                )
                return task
        raise KeyError(task_id)

    def import_text(self, path: str, text: str) -> list[TaskItem]:
        """Append every non-blank line of *text* as a new task."""
        new_tasks = [
            TaskItem(id=_new_task_id(), text=line)
            for line in parse_task_lines(text)
        ]
        if new_tasks:
            self.write_all_tasks(
                path, [*self.read_all_tasks(path), *new_tasks]
            )
        return new_tasks

    # ------------------------------------------------------------------
    # Timestamps
    # ------------------------------------------------------------------

    def read_last_modified(self, path: str) -> datetime | None:
        return parse_timestamp(self._state.get(f"last_modified:{path}"))

    def touch(self, path: str, modified_at: datetime) -> None:
        """Set the last-modified stamp without changing content or notifying."""
        self._state.set(f"last_modified:{path}", to_iso(modified_at))

    def get_last_sync_time(self, path: str) -> datetime | None:
        return parse_timestamp(self._state.get(f"last_sync:{path}"))

    def set_last_sync_time(self, path: str, synced_at: datetime) -> None:
        self._state.set(f"last_sync:{path}", to_iso(synced_at))

    def _stamp(self, path: str, modified_at: datetime | None) -> None:
        self._state.set(
            f"last_modified:{path}", to_iso(modified_at or utc_now())
        )

    # ------------------------------------------------------------------
    # File lifecycle
    # ------------------------------------------------------------------

    def move(self, old_path: str, new_path: str) -> None:
        """Carry tasks and timestamps of *old_path* over to *new_path*."""
        for prefix in ("tasks", "text", "last_modified", "last_sync"):
            value = self._state.get(f"{prefix}:{old_path}")
            if value is not None:
                self._state.set(f"{prefix}:{new_path}", value)
            self._state.delete(f"{prefix}:{old_path}")

    def remove_file(self, path: str) -> None:
        for prefix in ("tasks", "text", "last_modified", "last_sync"):
            self._state.delete(f"{prefix}:{path}")
