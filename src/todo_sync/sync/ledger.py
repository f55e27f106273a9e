"""Per-file "pending upload" flags.

A set flag means local content may be ahead of Dropbox.  Flags are
persisted (``pending:<path>`` keys) so they survive restarts.

Each ``set_pending`` also bumps an in-memory revision counter for the
file.  A sync pass snapshots the revision when it starts and hands it
back to ``clear_pending``; if an edit arrived meanwhile the revision no
longer matches and the flag stays set.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from ..store.files import TrackedFiles
from ..store.state import StateStore
from .models import SyncStatus
from .status import StatusReporter

logger = logging.getLogger(__name__)


class PendingChangeLedger:
    def __init__(
        self,
        state: StateStore,
        files: TrackedFiles,
        status: StatusReporter,
    ) -> None:
        self._state = state
        self._files = files
        self._status = status
        self._revisions: defaultdict[str, int] = defaultdict(int)

    def is_pending(self, path: str) -> bool:
        if not path:
            return False
        return bool(self._state.get(f"pending:{path}", False))

    def revision(self, path: str) -> int:
        return self._revisions[path]

    def set_pending(self, path: str, *, update_status: bool = True) -> None:
        """Flag *path* as having unpushed local changes.

        Untracked or empty paths are ignored.  For the active file the
        indicator moves to ``PENDING`` unless it shows ``OFFLINE``.
        """
        if not path or not self._files.contains(path):
            logger.debug("Ignoring pending flag for untracked path %r", path)
            return
        self._revisions[path] += 1
        if not self.is_pending(path):
            self._state.set(f"pending:{path}", True)
            logger.info("Marked %s as pending upload", path)
        if (
            update_status
            and path == self._files.active_path
            and self._status.status != SyncStatus.OFFLINE
        ):
            self._status.set_status(SyncStatus.PENDING, path=path)

    def clear_pending(self, path: str, revision: int | None = None) -> bool:
        """Clear the flag for *path*.

        Args:
            path: File path.
            revision: Revision observed when the pass started.  When
                given and a newer ``set_pending`` has happened since, the
                flag is kept.

        Returns:
            ``True`` if the flag is now clear.
        """
        if not path:
            return True
        if revision is not None and revision != self._revisions[path]:
            logger.info(
                "Keeping %s pending: edited during sync (rev %d -> %d)",
                path,
                revision,
                self._revisions[path],
            )
            return False
        self._state.delete(f"pending:{path}")
        return True

    def pending_paths(self) -> set[str]:
        return {
            key.removeprefix("pending:")
            for key in self._state.keys("pending:")
            if self._state.get(key)
        }

    def move(self, old_path: str, new_path: str) -> None:
        """Carry the flag and revision over to a renamed file."""
        if self.is_pending(old_path):
            self._state.set(f"pending:{new_path}", True)
        self._state.delete(f"pending:{old_path}")
        self._revisions[new_path] = self._revisions.pop(old_path, 0)

    def forget(self, path: str) -> None:
        self._state.delete(f"pending:{path}")
        self._revisions.pop(path, None)
