"""Service wiring and application lifespan.

``build_services()`` creates every long-lived object exactly once and
injects them into each other; both the CLI and the MCP server go
through ``app_lifespan()`` to get a ready ``Services`` bundle.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .config import Config, load_config
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import LoggingConfig, UnifiedConfig, build_config, yaml_fallbacks
from .core.client import DropboxClient
from .store.files import TrackedFiles
from .store.state import StateStore
from .store.tasks import LocalTaskStore
from .sync.connectivity import ConnectivityMonitor, NetworkState
from .sync.coordinator import SyncCoordinator
from .sync.credentials import CredentialManager
from .sync.gateway import RemoteFileGateway
from .sync.ledger import PendingChangeLedger
from .sync.resolver import ConflictResolver, PromptCallback, create_resolver
from .sync.status import StatusReporter

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a front end needs, created once per process."""

    config: Config
    state: StateStore
    client: DropboxClient
    credentials: CredentialManager
    files: TrackedFiles
    tasks: LocalTaskStore
    status: StatusReporter
    ledger: PendingChangeLedger
    network: NetworkState
    gateway: RemoteFileGateway
    resolver: ConflictResolver
    coordinator: SyncCoordinator
    monitor: ConnectivityMonitor


def build_services(
    config: Config,
    resolver_prompt: PromptCallback | None = None,
    open_url: Callable[[str], object] | None = None,
    conflict_strategy: str | None = None,
    unattended: bool = False,
) -> Services:
    """Create and wire all services for *config*.

    Args:
        config: Validated configuration.
        resolver_prompt: Prompt coroutine for the interactive strategy.
        open_url: Browser opener used by ``begin_login``.
        conflict_strategy: Overrides ``config.conflict_strategy``.
        unattended: Nobody can answer a prompt; ``interactive`` becomes
            ``defer``.
    """
    strategy = conflict_strategy or config.conflict_strategy
    if unattended and strategy == "interactive":
        logger.info("No one to ask about conflicts; deferring them instead")
        strategy = "defer"

    state = StateStore(Path(config.state_dir))
    client = DropboxClient(config)
    credentials = CredentialManager(client, state, open_url=open_url)
    files = TrackedFiles(state)
    tasks = LocalTaskStore(state)
    status = StatusReporter(files, tasks)
    ledger = PendingChangeLedger(state, files, status)
    network = NetworkState()
    gateway = RemoteFileGateway(client, credentials, is_online=lambda: network.online)
    resolver = create_resolver(strategy, prompt=resolver_prompt)
    coordinator = SyncCoordinator(
        files=files,
        tasks=tasks,
        ledger=ledger,
        gateway=gateway,
        credentials=credentials,
        status=status,
        resolver=resolver,
        network=network,
        debounce_seconds=config.debounce_seconds,
        tolerance_ms=config.tolerance_ms,
    )
    monitor = ConnectivityMonitor(
        coordinator,
        network,
        config.connectivity_url,
        interval=config.connectivity_interval,
    )
    return Services(
        config=config,
        state=state,
        client=client,
        credentials=credentials,
        files=files,
        tasks=tasks,
        status=status,
        ledger=ledger,
        network=network,
        gateway=gateway,
        resolver=resolver,
        coordinator=coordinator,
        monitor=monitor,
    )


def _stderr_print(msg: str) -> None:
    """Print message to stderr (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


def load_app_config(
    config_overrides: dict[str, Any] | None = None,
) -> tuple[Config, UnifiedConfig]:
    """Merge CLI overrides, env, .env and YAML into a ``Config``.

    Raises:
        ValueError: If the configuration is incomplete or invalid.
    """
    # .env first so YAML ${VAR} interpolation can see its values
    load_dotenv()

    unified = UnifiedConfig()
    if discover_config_files():
        unified = build_config(load_hierarchical_config())

    overrides = config_overrides or {}
    config = load_config(
        app_key=overrides.get("app_key"),
        redirect_uri=overrides.get("redirect_uri"),
        state_dir=overrides.get("state_dir"),
        conflict_strategy=overrides.get("conflict_strategy"),
        debug=overrides.get("debug", False),
        yaml_fallbacks=yaml_fallbacks(unified),
    )
    return config, unified


def load_logging_config() -> LoggingConfig:
    """Read the ``logging`` section before logging is set up.

    A broken config gives the defaults here; ``app_lifespan`` reports
    the error once logging is in place.
    """
    load_dotenv()
    if not discover_config_files():
        return LoggingConfig()
    try:
        return build_config(load_hierarchical_config()).logging
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.debug("Using default logging settings: %s", e)
        return LoggingConfig()


@asynccontextmanager
async def app_lifespan(
    config_overrides: dict[str, Any] | None = None,
    resolver_prompt: PromptCallback | None = None,
    open_url: Callable[[str], object] | None = None,
    watch_connectivity: bool = False,
    quiet: bool = True,
    unattended: bool = False,
) -> AsyncIterator[Services]:
    """Manage startup and shutdown.

    On startup: load configuration, build services, probe connectivity
    once, and restore the status indicator (not connected, offline,
    pending or idle) from persisted state.  With *watch_connectivity* a
    background monitor keeps probing.

    On shutdown: stop the monitor, cancel the debounce timer and wait
    for running sync passes.

    Raises:
        RuntimeError: If the configuration is invalid.
    """
    logger.info("todo-sync starting...")
    try:
        config, _ = load_app_config(config_overrides)
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    if not quiet:
        _stderr_print(f"  State directory: {config.state_dir}")
    services = build_services(
        config,
        resolver_prompt=resolver_prompt,
        open_url=open_url,
        conflict_strategy=(config_overrides or {}).get("conflict_strategy"),
        unattended=unattended,
    )
    await services.monitor.check_once()
    status = services.coordinator.refresh_status()
    logger.info(
        "Active file %s, initial status %s",
        services.files.active_path,
        status.value,
    )

    monitor_task: asyncio.Task | None = None
    if watch_connectivity:
        monitor_task = asyncio.create_task(services.monitor.run())

    try:
        yield services
    finally:
        if monitor_task is not None:
            monitor_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await monitor_task
        await services.coordinator.close()
        logger.info("todo-sync shut down")
