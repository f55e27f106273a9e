"""Records persisted by the local store."""

from __future__ import annotations

from pydantic import BaseModel


class TaskItem(BaseModel):
    id: str
    text: str

    model_config = {"frozen": True}


class TrackedFile(BaseModel):
    """A todo file known to this installation.

    Attributes:
        path: Dropbox path, the file's identity (``/todo.txt``).
        display_name: Name shown to the user.
        is_active: Whether this is the file being shown and synced.
    """

    path: str
    display_name: str
    is_active: bool = False

    model_config = {"frozen": True}
