"""Shared pytest fixtures for todo-sync tests."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from todo_sync.config import Config
from todo_sync.exceptions import DropboxApiError
from todo_sync.store.files import TrackedFiles
from todo_sync.store.state import StateStore
from todo_sync.store.tasks import LocalTaskStore
from todo_sync.sync.connectivity import NetworkState
from todo_sync.sync.coordinator import SyncCoordinator
from todo_sync.sync.credentials import CredentialManager
from todo_sync.sync.gateway import RemoteFileGateway
from todo_sync.sync.ledger import PendingChangeLedger
from todo_sync.sync.models import ConflictChoice
from todo_sync.sync.status import StatusReporter

T0 = datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)


def _dropbox_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class FakeDropbox:
    """In-memory stand-in for ``DropboxClient`` with the same signatures.

    Attributes:
        files: ``path_lower -> (content, server_modified)``.
        calls: ``(method, path)`` for every call, in order.
        errors: Per-method queues of exceptions raised by the next calls.
        clock: ``server_modified`` given to uploads (default: now).
        hooks: One-shot callables run when a method is next called,
            before it does anything else.
    """

    def __init__(self) -> None:
        self.files: dict[str, tuple[str, datetime]] = {}
        self.calls: list[tuple[str, str]] = []
        self.errors: dict[str, list[Exception]] = {}
        self.valid_tokens = {"access-1"}
        self.clock: datetime | None = None
        self.refresh_error: Exception | None = None
        self.exchanged: tuple[str, str] | None = None
        self._token_counter = 1
        self.hooks: dict[str, Callable[[], None]] = {}

    # -- helpers -------------------------------------------------------

    def put(self, path: str, content: str, modified: datetime) -> None:
        self.files[path.lower()] = (content, modified.replace(microsecond=0))

    def content_of(self, path: str) -> str | None:
        entry = self.files.get(path.lower())
        return entry[0] if entry else None

    def fail_next(self, method: str, exc: Exception) -> None:
        self.errors.setdefault(method, []).append(exc)

    def count(self, method: str) -> int:
        return sum(1 for m, _ in self.calls if m == method)

    def _check(self, method: str, token: str | None, path: str = "") -> None:
        self.calls.append((method, path))
        hook = self.hooks.pop(method, None)
        if hook is not None:
            hook()
        queued = self.errors.get(method)
        if queued:
            raise queued.pop(0)
        if token is not None and token not in self.valid_tokens:
            raise DropboxApiError(401, "invalid_access_token/..")

    def _meta(self, path: str) -> dict:
        content, modified = self.files[path.lower()]
        return {
            ".tag": "file",
            "name": path.rsplit("/", 1)[-1],
            "path_lower": path.lower(),
            "path_display": path,
            "server_modified": _dropbox_time(modified),
            "size": len(content.encode("utf-8")),
        }

    # -- OAuth ---------------------------------------------------------

    def authorize_url(self, code_challenge: str) -> str:
        return (
            "https://www.dropbox.com/oauth2/authorize"
            f"?code_challenge={code_challenge}&code_challenge_method=S256"
        )

    def exchange_code(self, code: str, code_verifier: str) -> dict:
        self._check("exchange_code", None)
        if code == "bad-code":
            raise DropboxApiError(400, "invalid_grant", "code doesn't exist or has expired")
        self.exchanged = (code, code_verifier)
        return {
            "access_token": "access-1",
            "refresh_token": "refresh-1",
            "expires_in": 14400,
            "token_type": "bearer",
        }

    def refresh_access_token(self, refresh_token: str) -> dict:
        self._check("refresh", None, refresh_token)
        if self.refresh_error is not None:
            raise self.refresh_error
        self._token_counter += 1
        token = f"access-{self._token_counter}"
        self.valid_tokens.add(token)
        return {"access_token": token, "expires_in": 14400}

    # -- Files ---------------------------------------------------------

    def get_metadata(self, token: str, path: str) -> dict:
        self._check("get_metadata", token, path)
        if path.lower() not in self.files:
            raise DropboxApiError(409, "path/not_found/..")
        return self._meta(path)

    def download(self, token: str, path: str) -> tuple[str, dict]:
        self._check("download", token, path)
        if path.lower() not in self.files:
            raise DropboxApiError(409, "path/not_found/..")
        return self.files[path.lower()][0], self._meta(path)

    def upload(self, token: str, path: str, content: str) -> dict:
        self._check("upload", token, path)
        modified = self.clock or datetime.now(timezone.utc)
        self.put(path, content, modified)
        return self._meta(path)

    def move(self, token: str, from_path: str, to_path: str) -> dict:
        self._check("move", token, from_path)
        if from_path.lower() not in self.files:
            raise DropboxApiError(409, "from_lookup/not_found/..")
        if to_path.lower() in self.files:
            raise DropboxApiError(409, "to/conflict/file/..")
        self.files[to_path.lower()] = self.files.pop(from_path.lower())
        return {"metadata": self._meta(to_path)}

    def delete(self, token: str, path: str) -> dict:
        self._check("delete", token, path)
        if path.lower() not in self.files:
            raise DropboxApiError(409, "path_lookup/not_found/..")
        self.files.pop(path.lower())
        return {"metadata": {".tag": "file", "path_lower": path.lower()}}

    def list_folder(self, token: str, path: str = "") -> list[dict]:
        self._check("list_folder", token, path)
        return [self._meta(p) for p in self.files]


class ScriptedResolver:
    """Resolver returning a fixed choice and recording each call."""

    def __init__(self, choice: ConflictChoice = ConflictChoice.CANCELLED) -> None:
        self.choice = choice
        self.calls: list[tuple[datetime | None, datetime | None, str]] = []

    async def present_conflict(self, local_modified_at, remote_modified_at, path):
        self.calls.append((local_modified_at, remote_modified_at, path))
        return self.choice


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def later():
    """Offset helper: ``later(10)`` is T0 + 10 s."""
    return lambda seconds: T0 + timedelta(seconds=seconds)


@pytest.fixture
def mock_config(tmp_path):
    """Create a Config pointing at a temporary state directory."""
    return Config(
        app_key="test-app-key",
        redirect_uri="http://localhost:8765/",
        state_dir=str(tmp_path / "state"),
    )


@pytest.fixture
def state(tmp_path):
    return StateStore(tmp_path / "state")


@pytest.fixture
def fake_dropbox():
    return FakeDropbox()


@pytest.fixture
def make_stack(tmp_path, fake_dropbox):
    """Factory wiring the real sync stack around ``FakeDropbox``.

    Returns a namespace with every service plus ``dropbox`` and
    ``resolver``.
    """

    def _make(
        resolver=None,
        authenticated: bool = True,
        refresh_token: str | None = "refresh-1",
        online: bool = True,
        debounce_seconds: float = 0.01,
    ) -> SimpleNamespace:
        state = StateStore(tmp_path / "state")
        if authenticated:
            state.set(
                "credential",
                {
                    "access_token": "access-1",
                    "refresh_token": refresh_token,
                    "expires_at": None,
                },
            )
        credentials = CredentialManager(fake_dropbox, state)
        files = TrackedFiles(state)
        tasks = LocalTaskStore(state)
        status = StatusReporter(files, tasks)
        ledger = PendingChangeLedger(state, files, status)
        network = NetworkState(online=online)
        gateway = RemoteFileGateway(
            fake_dropbox, credentials, is_online=lambda: network.online
        )
        resolver = resolver or ScriptedResolver()
        coordinator = SyncCoordinator(
            files=files,
            tasks=tasks,
            ledger=ledger,
            gateway=gateway,
            credentials=credentials,
            status=status,
            resolver=resolver,
            network=network,
            debounce_seconds=debounce_seconds,
        )
        return SimpleNamespace(
            state=state,
            dropbox=fake_dropbox,
            credentials=credentials,
            files=files,
            tasks=tasks,
            status=status,
            ledger=ledger,
            network=network,
            gateway=gateway,
            resolver=resolver,
            coordinator=coordinator,
        )

    return _make


@pytest.fixture
def scripted_resolver():
    return ScriptedResolver
