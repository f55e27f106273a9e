"""Persistent key-value state.

All durable client state lives in one JSON document, ``state.json``,
inside the configured state directory: task lists, per-file timestamps,
pending flags, the tracked file list, Dropbox credentials and the PKCE
verifier of an unfinished login.  Keys are namespaced strings such as
``pending:/todo.txt``.

Key design choices:

* **Atomic writes** -- every mutation rewrites the document through a
  temp file and ``os.replace()`` so a crash never leaves partial JSON.
* **Write-through** -- there is no batching; a value returned by
  ``get()`` has always already been persisted.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.json"
STATE_VERSION = 1


class StateStore:
    """Load, query and persist the state document.

    Args:
        state_dir: Directory where ``state.json`` is kept.  Created on
            first write.
    """

    def __init__(self, state_dir: Path) -> None:
        self._state_dir = Path(state_dir)
        self._data: dict[str, Any] | None = None

    @property
    def path(self) -> Path:
        return self._state_dir / STATE_FILENAME

    # ------------------------------------------------------------------
    # Key-value access
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        return self._values().get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Store *value* under *key* and persist immediately."""
        self._values()[key] = value
        self.save()

    def delete(self, key: str) -> None:
        """Remove *key*.  No-op (and no write) if absent."""
        values = self._values()
        if key in values:
            del values[key]
            self.save()

    def keys(self, prefix: str = "") -> list[str]:
        return [k for k in self._values() if k.startswith(prefix)]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> dict[str, Any]:
        """Read the document from disk, replacing the in-memory copy.

        A missing file yields an empty state.  A corrupt file is logged
        and treated as empty so the app can still start; it is
        overwritten by the next save.
        """
        data: dict[str, Any] = {"version": STATE_VERSION, "values": {}}
        if self.path.exists():
            try:
                with open(self.path, encoding="utf-8") as fh:
                    loaded = json.load(fh)
            except (OSError, json.JSONDecodeError) as exc:
                logger.error("Unreadable state file %s: %s", self.path, exc)
            else:
                if isinstance(loaded, dict) and isinstance(
                    loaded.get("values"), dict
                ):
                    data = loaded
        self._data = data
        return data

    def save(self) -> None:
        """Persist the document atomically."""
        data = self._data if self._data is not None else self.load()
        self._state_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._state_dir), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def _values(self) -> dict[str, Any]:
        if self._data is None:
            self.load()
        assert self._data is not None
        return self._data["values"]
