"""Registry of tracked todo files and the active-file pointer.

``/todo.txt`` is always tracked: it is recreated on load if missing and
can be neither renamed nor removed.  Paths are compared
case-insensitively, matching Dropbox's path semantics.
"""

from __future__ import annotations

import logging

from .models import TrackedFile
from .state import StateStore

logger = logging.getLogger(__name__)

DEFAULT_FILE_PATH = "/todo.txt"


def display_name_for(path: str) -> str:
    return path.rsplit("/", 1)[-1] or path


class TrackedFiles:
    """Persisted list of known files (``files`` key) and the active one
    (``active_file`` key)."""

    def __init__(self, state: StateStore) -> None:
        self._state = state

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _entries(self) -> list[dict]:
        entries = list(self._state.get("files") or [])
        if not any(
            e.get("path", "").lower() == DEFAULT_FILE_PATH for e in entries
        ):
            entries.insert(
                0,
                {
                    "path": DEFAULT_FILE_PATH,
                    "display_name": display_name_for(DEFAULT_FILE_PATH),
                },
            )
            self._state.set("files", entries)
        return entries

    def list_files(self) -> list[TrackedFile]:
        active = self.active_path
        return [
            TrackedFile(
                path=e["path"],
                display_name=e.get("display_name") or display_name_for(e["path"]),
                is_active=e["path"] == active,
            )
            for e in self._entries()
        ]

    def find(self, path: str) -> str | None:
        """Return the stored spelling of *path*, or ``None`` if untracked."""
        if not path:
            return None
        wanted = path.lower()
        for entry in self._entries():
            if entry["path"].lower() == wanted:
                return entry["path"]
        return None

    def contains(self, path: str) -> bool:
        return self.find(path) is not None

    def resolve(self, name: str) -> str:
        """Look up a file by path or by user-typed name.

        ``"work"``, ``"work.txt"`` and ``"/work.txt"`` all find
        ``/work.txt``.

        Raises:
            KeyError: If no tracked file matches.
        """
        path = "/" + name.strip().lstrip("/")
        stored = self.find(path)
        if stored is None and not path.lower().endswith(".txt"):
            stored = self.find(f"{path}.txt")
        if stored is None:
            raise KeyError(name)
        return stored

    @property
    def active_path(self) -> str:
        active = self._state.get("active_file")
        if active and self.find(active) == active:
            return active
        return DEFAULT_FILE_PATH

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_active(self, path: str) -> str:
        """Make *path* the active file.

        Raises:
            KeyError: If *path* is not tracked.
        """
        stored = self.find(path)
        if stored is None:
            raise KeyError(path)
        self._state.set("active_file", stored)
        logger.info("Active file is now %s", stored)
        return stored

    def add(self, path: str, display_name: str | None = None) -> TrackedFile:
        """Track *path*.  Returns the existing record when already tracked."""
        existing = self.find(path)
        if existing is not None:
            return next(f for f in self.list_files() if f.path == existing)
        entries = self._entries()
        entries.append(
            {
                "path": path,
                "display_name": display_name or display_name_for(path),
            }
        )
        self._state.set("files", entries)
        logger.info("Tracking new file %s", path)
        return TrackedFile(
            path=path,
            display_name=display_name or display_name_for(path),
            is_active=False,
        )

    def rename(self, old_path: str, new_path: str) -> TrackedFile:
        """Rename a tracked file in place, keeping its position and
        active status.

        Raises:
            ValueError: For the default file or when *new_path* is taken.
            KeyError: If *old_path* is not tracked.
        """
        stored = self.find(old_path)
        if stored is None:
            raise KeyError(old_path)
        if stored.lower() == DEFAULT_FILE_PATH:
            raise ValueError("The default file cannot be renamed")
        taken = self.find(new_path)
        if taken is not None and taken != stored:
            raise ValueError(f"File {new_path} already exists")

        was_active = self.active_path == stored
        entries = [
            {"path": new_path, "display_name": display_name_for(new_path)}
            if e["path"] == stored
            else e
            for e in self._entries()
        ]
        self._state.set("files", entries)
        if was_active:
            self._state.set("active_file", new_path)
        return TrackedFile(
            path=new_path,
            display_name=display_name_for(new_path),
            is_active=was_active,
        )

    def remove(self, path: str) -> None:
        """Stop tracking *path*; the default file becomes active if
        *path* was.

        Raises:
            ValueError: For the default file.
            KeyError: If *path* is not tracked.
        """
        stored = self.find(path)
        if stored is None:
            raise KeyError(path)
        if stored.lower() == DEFAULT_FILE_PATH:
            raise ValueError("The default file cannot be deleted")
        was_active = self.active_path == stored
        self._state.set(
            "files", [e for e in self._entries() if e["path"] != stored]
        )
        if was_active:
            self._state.set("active_file", DEFAULT_FILE_PATH)
