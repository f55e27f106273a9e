"""Offline-first sync of todo files with Dropbox.

Modules:

- ``coordinator`` -- ``SyncCoordinator``: decides and runs sync passes,
  debounces local edits, creates/renames/deletes tracked files.
- ``credentials`` -- ``CredentialManager``: PKCE login, token refresh,
  logout.
- ``gateway``     -- ``RemoteFileGateway``: typed outcomes over the
  Dropbox client.
- ``ledger``      -- ``PendingChangeLedger``: persisted "pending upload"
  flags with edit revisions.
- ``status``      -- ``StatusReporter``: the status indicator.
- ``resolver``    -- Conflict resolution strategies (interactive,
  local-wins, remote-wins, defer).
- ``connectivity``-- Online/offline probing.
- ``reporter``    -- Human-readable and JSON formatting.
- ``models``      -- Enums and pydantic records shared by the above.

Usage example
-------------
::

    from todo_sync.app import build_services
    from todo_sync.config import load_config

    services = build_services(load_config())
    result = await services.coordinator.run_sync_pass()
    print(format_pass_result(result))
"""

from .connectivity import ConnectivityMonitor, NetworkState
from .coordinator import SyncCoordinator, decide_action
from .credentials import CredentialManager
from .gateway import RemoteFileGateway
from .ledger import PendingChangeLedger
from .models import (
    ConflictChoice,
    FileOperationResult,
    GatewayErrorKind,
    GatewayResult,
    SyncAction,
    SyncPassResult,
    SyncStatus,
)
from .reporter import format_pass_result, result_to_json
from .resolver import create_resolver
from .status import StatusReporter

__all__ = [
    "ConflictChoice",
    "ConnectivityMonitor",
    "CredentialManager",
    "FileOperationResult",
    "GatewayErrorKind",
    "GatewayResult",
    "NetworkState",
    "PendingChangeLedger",
    "RemoteFileGateway",
    "StatusReporter",
    "SyncAction",
    "SyncCoordinator",
    "SyncPassResult",
    "SyncStatus",
    "create_resolver",
    "decide_action",
    "format_pass_result",
    "result_to_json",
]
