"""Pydantic models and enums shared by the sync layer.

- ``SyncStatus``: the status indicator state machine values.
- ``SyncAction``: what a sync pass decided to do.
- ``ConflictChoice``: the three outcomes of a conflict prompt.
- ``GatewayErrorKind`` / ``GatewayResult``: typed remote outcomes.
- ``Credential``, ``RemoteMetadata``; ``TaskItem`` and ``TrackedFile`` are
  re-exported from the store.
- ``SyncPassResult``, ``FileOperationResult``, ``StatusUpdate``,
  ``ConflictPrompt``, ``LoginResult``.

All models are frozen.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel

from ..store.models import TaskItem, TrackedFile  # noqa: F401


class SyncStatus(str, Enum):
    """Value shown by the status indicator for the active file."""

    NOT_CONNECTED = "not_connected"
    IDLE = "idle"
    SYNCING = "syncing"
    PENDING = "pending"
    OFFLINE = "offline"
    ERROR = "error"


class SyncAction(str, Enum):
    """Decision taken by one sync pass."""

    SKIP = "skip"
    PUSH = "push"
    PULL = "pull"
    CREATE_REMOTE = "create_remote"
    CREATE_LOCAL = "create_local"
    CONFLICT = "conflict"


class ConflictChoice(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"
    CANCELLED = "cancelled"


class GatewayErrorKind(str, Enum):
    """Classification of a failed remote call."""

    NOT_FOUND = "not_found"
    AUTH = "auth"
    OFFLINE = "offline"
    CONFLICT = "conflict"
    OTHER = "other"


class LoginOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    NOT_A_REDIRECT = "not_a_redirect"


# ---------------------------------------------------------------------------
# Data records
# ---------------------------------------------------------------------------


class Credential(BaseModel):
    """Dropbox token pair.

    Attributes:
        access_token: Short-lived bearer token, may be absent.
        refresh_token: Long-lived token from the offline PKCE flow.
        expires_at: When ``access_token`` stops working, if known.
    """

    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: datetime | None = None

    model_config = {"frozen": True}

    def is_expired(self, skew_seconds: int = 60) -> bool:
        if self.expires_at is None:
            return False
        now = datetime.now(timezone.utc)
        return now + timedelta(seconds=skew_seconds) >= self.expires_at


class RemoteMetadata(BaseModel):
    exists: bool
    server_modified_at: datetime | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class GatewayResult(BaseModel):
    """Outcome of one remote file operation.

    Attributes:
        success: Whether the call achieved its purpose.  A missing file
            on ``get_metadata``/``download`` is a success.
        error_kind: Failure classification when ``success`` is False.
        message: Human-readable failure description.
        metadata: File metadata from ``get_metadata`` or ``upload``.
        content: Downloaded text, ``None`` when the file does not exist.
        files: Paths returned by ``list_files``.
        auth_recovered: An auth failure was followed by a successful
            token refresh; the caller may retry once.
    """

    success: bool
    error_kind: GatewayErrorKind | None = None
    message: str = ""
    metadata: RemoteMetadata | None = None
    content: str | None = None
    files: list[str] = []
    auth_recovered: bool = False

    model_config = {"frozen": True}


class SyncPassResult(BaseModel):
    """Outcome of ``SyncCoordinator.run_sync_pass``.

    Attributes:
        path: File the pass ran for.
        action: Decision taken, ``None`` when the pass stopped before
            deciding (offline, not connected, metadata failure).
        success: Whether the decided action completed.
        status: Status left on the indicator by the pass.
        message: Error or informational text.
        conflict_choice: The user's answer when a conflict was presented.
        absorbed: The trigger arrived while a pass for the same file was
            already in flight and was folded into it.
    """

    path: str
    action: SyncAction | None = None
    success: bool = False
    status: SyncStatus
    message: str = ""
    conflict_choice: ConflictChoice | None = None
    absorbed: bool = False

    model_config = {"frozen": True}


class FileOperationResult(BaseModel):
    """Outcome of creating, renaming or deleting a tracked file."""

    success: bool
    path: str
    message: str = ""
    warning: str | None = None

    model_config = {"frozen": True}


class StatusUpdate(BaseModel):
    """What status listeners receive when the indicator changes."""

    status: SyncStatus
    path: str | None
    message: str = ""
    text: str = ""
    tooltip: str = ""

    model_config = {"frozen": True}


class ConflictPrompt(BaseModel):
    path: str
    local_modified_at: datetime | None
    remote_modified_at: datetime | None

    model_config = {"frozen": True}


class LoginResult(BaseModel):
    outcome: LoginOutcome
    message: str = ""
    cleaned_url: str = ""

    model_config = {"frozen": True}
