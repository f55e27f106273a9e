"""Status indicator state.

``StatusReporter`` holds the one ``SyncStatus`` shown for the active
file and fans every change out to registered sinks (the CLI prints it,
the MCP server reports it on request).  Repeating the current status
for the same file is a no-op, except for ``ERROR`` whose message may
differ.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..store.files import TrackedFiles
from ..store.tasks import LocalTaskStore
from .models import StatusUpdate, SyncStatus
from .reporter import format_status_tooltip, status_text

logger = logging.getLogger(__name__)

StatusSink = Callable[[StatusUpdate], None]


class StatusReporter:
    def __init__(
        self,
        files: TrackedFiles,
        tasks: LocalTaskStore,
        initial: SyncStatus = SyncStatus.NOT_CONNECTED,
    ) -> None:
        self._files = files
        self._tasks = tasks
        self._status = initial
        self._path: str | None = None
        self._message = ""
        self._sinks: list[StatusSink] = []

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def path(self) -> str | None:
        return self._path

    @property
    def message(self) -> str:
        return self._message

    def add_sink(self, sink: StatusSink) -> None:
        self._sinks.append(sink)

    def set_status(
        self,
        status: SyncStatus,
        message: str = "",
        path: str | None = None,
    ) -> bool:
        """Show *status* for *path* (default: the active file).

        Returns:
            ``True`` if the indicator changed.
        """
        path = path or self._files.active_path
        if (
            status == self._status
            and path == self._path
            and status != SyncStatus.ERROR
        ):
            return False

        logger.debug("Status %s -> %s for %s %s", self._status.value, status.value, path, message)
        self._status = status
        self._path = path
        self._message = message
        update = self.snapshot()
        for sink in list(self._sinks):
            try:
                sink(update)
            except Exception:
                logger.exception("Status sink %r failed", sink)
        return True

    def snapshot(self) -> StatusUpdate:
        """Return the current indicator state."""
        last_sync = (
            self._tasks.get_last_sync_time(self._path) if self._path else None
        )
        return StatusUpdate(
            status=self._status,
            path=self._path,
            message=self._message,
            text=status_text(self._status),
            tooltip=format_status_tooltip(
                self._status, self._message, self._path, last_sync
            ),
        )
