"""Sync coordinator: decides and runs sync passes for the active file.

The ``SyncCoordinator`` ties the ledger, gateway, resolver and status
reporter together.  A pass:

1. Checks there is a tracked active file, a credential and a network.
2. Marks the indicator ``SYNCING``.
3. Compares the local last-modified stamp with Dropbox's
   ``server_modified`` (``decide_action``).
4. Pushes, pulls, does nothing, or asks the resolver.
5. Clears the pending flag on success, keeps it on failure.
6. Leaves the indicator in a terminal state whatever happened.

Local edits reach the coordinator through the task store's change
notification; a burst of edits arms one debounce timer and results in
a single pass.  At most one pass per file is in flight; a trigger that
arrives meanwhile is absorbed and re-arms the timer when the running
pass finishes.

The coordinator is also the single place that turns gateway outcomes
into status and ledger changes, which is why file create/rename/delete
live here too.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from ..core.timestamps import utc_now
from ..store.files import DEFAULT_FILE_PATH, TrackedFiles
from ..store.tasks import LocalTaskStore
from ..validators import normalize_file_name
from .connectivity import NetworkState
from .credentials import CredentialManager
from .gateway import RemoteFileGateway
from .ledger import PendingChangeLedger
from .models import (
    ConflictChoice,
    FileOperationResult,
    GatewayErrorKind,
    GatewayResult,
    RemoteMetadata,
    SyncAction,
    SyncPassResult,
    SyncStatus,
)
from .resolver import ConflictResolver
from .status import StatusReporter

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_MS = 2000
DEFAULT_DEBOUNCE_SECONDS = 3.0


def decide_action(
    local_modified_at: datetime | None,
    remote: RemoteMetadata,
    pending: bool,
    tolerance: timedelta = timedelta(milliseconds=DEFAULT_TOLERANCE_MS),
) -> SyncAction:
    """Pure decision table for one file.

    Args:
        local_modified_at: Last local write, ``None`` if never written.
        remote: Dropbox metadata for the file.
        pending: Whether unpushed local edits exist.
        tolerance: Timestamps closer than this are the same moment.

    Returns:
        ``SKIP``, ``CREATE_REMOTE``/``PUSH`` (upload),
        ``CREATE_LOCAL``/``PULL`` (download) or ``CONFLICT``.
    """
    if not remote.exists:
        if local_modified_at is None:
            return SyncAction.SKIP
        return SyncAction.CREATE_REMOTE

    if local_modified_at is None:
        return SyncAction.CREATE_LOCAL

    remote_at = remote.server_modified_at
    if remote_at is None:
        # Existing file without a timestamp: trust the local copy.
        return SyncAction.PUSH

    delta = remote_at - local_modified_at
    if abs(delta) <= tolerance:
        return SyncAction.SKIP
    if delta > timedelta(0):
        return SyncAction.CONFLICT if pending else SyncAction.PULL
    return SyncAction.PUSH


class SyncCoordinator:
    """Orchestrate sync passes, triggers and file lifecycle.

    Args:
        files: Tracked files and the active-file pointer.
        tasks: Local task store.
        ledger: Pending-change flags.
        gateway: Remote file access.
        credentials: Token owner; consulted for ``is_authenticated``.
        status: Status indicator.
        resolver: Conflict resolver.
        network: Shared online flag.
        debounce_seconds: Quiet period after the last edit.
        tolerance_ms: Timestamp equality window.
    """

    def __init__(
        self,
        *,
        files: TrackedFiles,
        tasks: LocalTaskStore,
        ledger: PendingChangeLedger,
        gateway: RemoteFileGateway,
        credentials: CredentialManager,
        status: StatusReporter,
        resolver: ConflictResolver,
        network: NetworkState | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        tolerance_ms: int = DEFAULT_TOLERANCE_MS,
    ) -> None:
        self.files = files
        self.tasks = tasks
        self.ledger = ledger
        self.gateway = gateway
        self.credentials = credentials
        self.status = status
        self.resolver = resolver
        self.network = network or NetworkState()
        self.debounce_seconds = debounce_seconds
        self.tolerance = timedelta(milliseconds=tolerance_ms)

        self._timer: asyncio.TimerHandle | None = None
        self._in_flight: set[str] = set()
        self._rerun_requested: set[str] = set()
        self._background: set[asyncio.Task] = set()
        self._reload_listeners: list[Callable[[str], None]] = []

        tasks.add_change_listener(self.notify_local_change)
        credentials.add_logout_listener(self._on_logout)

    def add_reload_listener(self, listener: Callable[[str], None]) -> None:
        """Register a callback run after a pull replaced a file's tasks."""
        self._reload_listeners.append(listener)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def refresh_status(self) -> SyncStatus:
        """Derive the resting status for the active file without any
        network call."""
        path = self.files.active_path
        if not self.credentials.is_authenticated:
            status = SyncStatus.NOT_CONNECTED
        elif not self.network.online:
            status = SyncStatus.OFFLINE
        elif self.ledger.is_pending(path):
            status = SyncStatus.PENDING
        else:
            status = SyncStatus.IDLE
        self.status.set_status(status, path=path)
        return status

    def _on_logout(self) -> None:
        self.cancel_debounce()
        self.status.set_status(SyncStatus.NOT_CONNECTED)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def notify_local_change(self, path: str) -> None:
        """React to a local write of *path*.

        The active file is flagged pending and the debounce timer is
        (re)armed.  Other files are only flagged, and only while offline.
        """
        if not path:
            return
        if path != self.files.active_path:
            if not self.network.online:
                self.ledger.set_pending(path)
            return
        self.ledger.set_pending(path)
        self._arm_debounce()

    def _arm_debounce(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; change will sync on next trigger")
            return
        self.cancel_debounce()
        self._timer = loop.call_later(self.debounce_seconds, self._on_debounce)

    def cancel_debounce(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @property
    def debounce_armed(self) -> bool:
        return self._timer is not None

    def _on_debounce(self) -> None:
        self._timer = None
        self._spawn(self.run_sync_pass())

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_for_background(self) -> None:
        """Wait for passes started in the background."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def handle_online(self) -> asyncio.Task | None:
        """Connectivity restored: sync the active file if it is pending.

        The pass runs as a background task so the caller can keep
        watching connectivity; the task is returned for callers that
        want its result.
        """
        self.network.online = True
        path = self.files.active_path
        if not self.credentials.is_authenticated:
            self.status.set_status(SyncStatus.NOT_CONNECTED, path=path)
            return None
        if self.ledger.is_pending(path):
            return self._spawn(self.run_sync_pass(path))
        self.status.set_status(SyncStatus.IDLE, path=path)
        return None

    def handle_offline(self) -> None:
        self.network.online = False
        self.status.set_status(SyncStatus.OFFLINE)

    async def handle_login(self) -> SyncPassResult | None:
        """Run after a successful login: discover files, then sync."""
        self.refresh_status()
        if not self.network.online:
            return None
        await self.discover_remote_files()
        return await self.run_sync_pass()

    async def switch_file(self, path: str) -> SyncPassResult | None:
        """Make *path* active and sync it if possible.

        Raises:
            KeyError: If *path* is not tracked.
        """
        self.cancel_debounce()
        self.files.set_active(path)
        status = self.refresh_status()
        if status in (SyncStatus.NOT_CONNECTED, SyncStatus.OFFLINE):
            return None
        return await self.run_sync_pass()

    # ------------------------------------------------------------------
    # Sync pass
    # ------------------------------------------------------------------

    async def run_sync_pass(self, path: str | None = None) -> SyncPassResult:
        """Run one sync pass for *path* (default: the active file)."""
        path = path or self.files.active_path
        if path in self._in_flight:
            logger.debug("Sync of %s already running; will re-check after", path)
            self._rerun_requested.add(path)
            return SyncPassResult(
                path=path,
                status=self.status.status,
                message="Sync already in progress",
                absorbed=True,
            )

        self._in_flight.add(path)
        try:
            return await self._run_pass(path)
        finally:
            self._in_flight.discard(path)
            if path in self._rerun_requested:
                self._rerun_requested.discard(path)
                if self.ledger.is_pending(path) and path == self.files.active_path:
                    self._arm_debounce()

    async def _run_pass(self, path: str) -> SyncPassResult:
        if not self.files.contains(path):
            self.status.set_status(SyncStatus.ERROR, "No active file", path)
            return SyncPassResult(
                path=path, status=SyncStatus.ERROR, message="No active file"
            )
        if not self.credentials.is_authenticated:
            self.status.set_status(SyncStatus.NOT_CONNECTED, path=path)
            return SyncPassResult(path=path, status=SyncStatus.NOT_CONNECTED)
        if not self.network.online:
            self.status.set_status(SyncStatus.OFFLINE, path=path)
            return SyncPassResult(path=path, status=SyncStatus.OFFLINE)

        self.status.set_status(SyncStatus.SYNCING, path=path)
        result = SyncPassResult(
            path=path, status=SyncStatus.ERROR, message="Sync interrupted"
        )
        try:
            result = await self._reconcile(path)
        except Exception as exc:
            logger.exception("Sync pass for %s failed", path)
            result = SyncPassResult(
                path=path,
                status=SyncStatus.ERROR,
                message=str(exc) or type(exc).__name__,
            )
        finally:
            result = self._settle(result)
        return result

    def _settle(self, result: SyncPassResult) -> SyncPassResult:
        """Write the pass outcome to the indicator.

        Logout and loss of connectivity during the pass win over the
        pass's own result.  Nothing is written if the user switched to
        another file meanwhile.
        """
        final, message = result.status, result.message
        if not self.credentials.is_authenticated:
            final, message = SyncStatus.NOT_CONNECTED, ""
        elif not self.network.online:
            final = SyncStatus.OFFLINE
        if final == SyncStatus.SYNCING:
            final = SyncStatus.ERROR
        if result.path == self.files.active_path:
            self.status.set_status(final, message, result.path)
        logger.info(
            "Sync pass for %s: action=%s status=%s %s",
            result.path,
            result.action.value if result.action else None,
            final.value,
            message,
            extra={"path": result.path},
        )
        return result.model_copy(update={"status": final, "message": message})

    async def _reconcile(self, path: str) -> SyncPassResult:
        revision = self.ledger.revision(path)
        local_at = self.tasks.read_last_modified(path)

        meta = await self.gateway.get_metadata(path)
        if not meta.success and meta.auth_recovered:
            logger.info("Retrying metadata for %s with refreshed token", path)
            meta = await self.gateway.get_metadata(path)
        if not meta.success:
            return self._failure(path, None, meta)

        remote = meta.metadata or RemoteMetadata(exists=False)
        pending = self.ledger.is_pending(path)
        action = decide_action(local_at, remote, pending, self.tolerance)
        logger.debug(
            "Decide %s: local=%s remote=%s pending=%s -> %s",
            path,
            local_at,
            remote.server_modified_at,
            pending,
            action.value,
        )

        match action:
            case SyncAction.SKIP:
                self.ledger.clear_pending(path, revision)
                return SyncPassResult(
                    path=path, action=action, success=True, status=SyncStatus.IDLE
                )
            case SyncAction.PUSH | SyncAction.CREATE_REMOTE:
                return await self._do_push(path, action, revision)
            case SyncAction.PULL | SyncAction.CREATE_LOCAL:
                return await self._do_pull(path, action, remote, revision)
            case _:
                return await self._do_conflict(path, local_at, remote, revision)

    async def _do_push(
        self, path: str, action: SyncAction, revision: int
    ) -> SyncPassResult:
        content = self.tasks.read_text(path)
        local_at = self.tasks.read_last_modified(path)

        outcome = await self.gateway.upload(path, content)
        if not outcome.success and outcome.auth_recovered:
            outcome = await self.gateway.upload(path, content)
        if not outcome.success:
            # Local content is now known to be ahead of Dropbox.
            self.ledger.set_pending(path, update_status=False)
            return self._failure(path, action, outcome)

        self.tasks.set_last_sync_time(path, utc_now())
        server_at = outcome.metadata.server_modified_at if outcome.metadata else None
        if server_at is not None and self.tasks.read_last_modified(path) == local_at:
            # Align with Dropbox so the next pass sees the file as in sync.
            self.tasks.touch(path, server_at)
        cleared = self.ledger.clear_pending(path, revision)
        return SyncPassResult(
            path=path,
            action=action,
            success=True,
            status=SyncStatus.IDLE if cleared else SyncStatus.PENDING,
        )

    async def _do_pull(
        self,
        path: str,
        action: SyncAction,
        remote: RemoteMetadata,
        revision: int,
    ) -> SyncPassResult:
        outcome = await self.gateway.download(path)
        if not outcome.success and outcome.auth_recovered:
            outcome = await self.gateway.download(path)
        if not outcome.success:
            return self._failure(path, action, outcome)
        if outcome.content is None:
            return SyncPassResult(
                path=path,
                action=action,
                status=SyncStatus.ERROR,
                message=f"{path} disappeared from Dropbox during download",
            )
        if self.ledger.revision(path) != revision:
            logger.info("Local edit of %s arrived during download; not overwriting", path)
            return SyncPassResult(
                path=path,
                action=action,
                status=SyncStatus.PENDING,
                message="Local changes made during download",
            )

        remote_at = remote.server_modified_at
        if outcome.metadata is not None and outcome.metadata.server_modified_at:
            remote_at = outcome.metadata.server_modified_at
        self.tasks.write_text(
            path, outcome.content, modified_at=remote_at or utc_now(), notify=False
        )
        self.tasks.set_last_sync_time(path, utc_now())
        self.ledger.clear_pending(path, revision)
        for listener in list(self._reload_listeners):
            listener(path)
        return SyncPassResult(
            path=path, action=action, success=True, status=SyncStatus.IDLE
        )

    async def _do_conflict(
        self,
        path: str,
        local_at: datetime | None,
        remote: RemoteMetadata,
        revision: int,
    ) -> SyncPassResult:
        choice = await self.resolver.present_conflict(
            local_at, remote.server_modified_at, path
        )
        logger.info("Conflict on %s resolved as %s", path, choice.value)
        match choice:
            case ConflictChoice.LOCAL:
                result = await self._do_push(path, SyncAction.PUSH, revision)
            case ConflictChoice.REMOTE:
                result = await self._do_pull(path, SyncAction.PULL, remote, revision)
            case _:
                result = SyncPassResult(
                    path=path,
                    action=SyncAction.CONFLICT,
                    success=True,
                    status=SyncStatus.IDLE,
                    message="Conflict left unresolved",
                )
        return result.model_copy(update={"conflict_choice": choice})

    def _failure(
        self, path: str, action: SyncAction | None, outcome: GatewayResult
    ) -> SyncPassResult:
        if outcome.error_kind == GatewayErrorKind.OFFLINE:
            status = SyncStatus.OFFLINE
        elif (
            outcome.error_kind == GatewayErrorKind.AUTH
            and not self.credentials.is_authenticated
        ):
            status = SyncStatus.NOT_CONNECTED
        else:
            status = SyncStatus.ERROR
        return SyncPassResult(
            path=path,
            action=action,
            status=status,
            message=outcome.message or "Unknown error",
        )

    # ------------------------------------------------------------------
    # File lifecycle
    # ------------------------------------------------------------------

    async def discover_remote_files(self) -> list[str]:
        """Track ``.txt`` files found in Dropbox that are not yet known.

        Returns:
            Newly tracked paths.
        """
        outcome = await self.gateway.list_files()
        if not outcome.success and outcome.auth_recovered:
            outcome = await self.gateway.list_files()
        if not outcome.success:
            logger.warning("Could not list Dropbox files: %s", outcome.message)
            return []
        added = []
        for path in outcome.files:
            if not self.files.contains(path):
                self.files.add(path)
                added.append(path)
        if added:
            logger.info("Discovered %d new file(s) in Dropbox", len(added))
        return added

    async def create_file(self, name: str) -> FileOperationResult:
        """Create a new empty todo file and make it active.

        When connected, the empty document is uploaded before the file is
        tracked; if that upload fails the file is not created.  Without a
        connection the file is created locally and left pending.

        Raises:
            ValueError: If the name is invalid or already tracked.
        """
        path = normalize_file_name(name)
        if self.files.contains(path):
            raise ValueError(f'File "{path.lstrip("/")}" already exists')

        connected = self.credentials.is_authenticated and self.network.online
        warning = None
        if connected:
            outcome = await self.gateway.upload(path, "")
            if not outcome.success and outcome.auth_recovered:
                outcome = await self.gateway.upload(path, "")
            if not outcome.success:
                logger.error("Could not create %s in Dropbox: %s", path, outcome.message)
                return FileOperationResult(
                    success=False,
                    path=path,
                    message=f"Failed to create {path} in Dropbox: {outcome.message}",
                )

        self.tasks.write_all_tasks(path, [], notify=False)
        if connected:
            self.tasks.set_last_sync_time(path, utc_now())
        self.files.add(path)
        if not connected:
            self.ledger.set_pending(path, update_status=False)
            warning = f"{path} will be uploaded once connected to Dropbox"
        self.cancel_debounce()
        self.files.set_active(path)
        self.refresh_status()
        return FileOperationResult(
            success=True, path=path, message=f"Created {path}", warning=warning
        )

    async def rename_active_file(self, new_name: str) -> FileOperationResult:
        """Rename the active file locally, then in Dropbox.

        A Dropbox failure only produces a warning; the local rename is
        kept.

        Raises:
            ValueError: For the default file, an invalid name, or a name
                that is already taken.
        """
        old_path = self.files.active_path
        if old_path.lower() == DEFAULT_FILE_PATH:
            raise ValueError("The default file cannot be renamed")
        new_path = normalize_file_name(new_name)
        if new_path == old_path:
            return FileOperationResult(success=True, path=old_path, message="Name unchanged")
        taken = self.files.find(new_path)
        if taken is not None and taken != old_path:
            raise ValueError(f'File "{new_path.lstrip("/")}" already exists')

        self.cancel_debounce()
        self.files.rename(old_path, new_path)
        self.tasks.move(old_path, new_path)
        self.ledger.move(old_path, new_path)
        logger.info("Renamed %s to %s locally", old_path, new_path)

        warning = None
        if self.credentials.is_authenticated:
            outcome = await self.gateway.rename(old_path, new_path)
            if not outcome.success and outcome.auth_recovered:
                outcome = await self.gateway.rename(old_path, new_path)
            if not outcome.success:
                warning = f"Renamed locally, but Dropbox rename failed: {outcome.message}"
                logger.warning(warning)
        self.refresh_status()
        return FileOperationResult(
            success=True,
            path=new_path,
            message=f"Renamed {old_path} to {new_path}",
            warning=warning,
        )

    async def delete_file(self, path: str) -> FileOperationResult:
        """Delete *path* from Dropbox and locally.

        Local removal always happens; a Dropbox failure (other than the
        file already being gone) only produces a warning.

        Raises:
            ValueError: For the default file.
            KeyError: If *path* is not tracked.
        """
        stored = self.files.find(path)
        if stored is None:
            raise KeyError(path)
        if stored.lower() == DEFAULT_FILE_PATH:
            raise ValueError("The default file cannot be deleted")

        warning = None
        if self.credentials.is_authenticated:
            outcome = await self.gateway.delete(stored)
            if not outcome.success and outcome.auth_recovered:
                outcome = await self.gateway.delete(stored)
            if not outcome.success and outcome.error_kind != GatewayErrorKind.NOT_FOUND:
                warning = f"Deleted locally, but Dropbox delete failed: {outcome.message}"
                logger.warning(warning)

        was_active = stored == self.files.active_path
        if was_active:
            self.cancel_debounce()
        self.files.remove(stored)
        self.tasks.remove_file(stored)
        self.ledger.forget(stored)
        self.refresh_status()
        return FileOperationResult(
            success=True, path=stored, message=f"Deleted {stored}", warning=warning
        )

    async def close(self) -> None:
        """Stop the debounce timer and wait for running passes."""
        self.cancel_debounce()
        await self.wait_for_background()
