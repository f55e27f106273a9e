"""Unified configuration schema for todo_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the Dropbox app, sync tuning and logging, plus an adapter
that flattens them into the fallback dict consumed by ``load_config()``.

Usage:
    from todo_sync.config_schema import build_config, yaml_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=yaml_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class DropboxConfig(BaseModel):
    """Dropbox app settings.

    Both fields are optional so env vars and CLI args can supply them.
    """

    app_key: str | None = Field(
        default=None, description="Dropbox app key (PKCE, no secret)"
    )
    redirect_uri: str | None = Field(
        default=None,
        description="Redirect URI registered in the Dropbox app console",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Sync coordinator tuning."""

    state_dir: str | None = Field(
        default=None, description="Directory holding state.json"
    )
    debounce_seconds: float = Field(
        default=3.0,
        ge=0.1,
        le=300,
        description="Quiet period after the last edit before syncing",
    )
    tolerance_ms: int = Field(
        default=2000,
        ge=0,
        le=60000,
        description="Window within which two timestamps count as equal",
    )
    conflict_strategy: Literal[
        "interactive", "local-wins", "remote-wins", "defer"
    ] = Field(default="interactive", description="Conflict resolution")
    connectivity_url: str | None = Field(
        default=None, description="URL probed to detect connectivity"
    )
    connectivity_interval: float = Field(
        default=15.0,
        ge=1,
        le=3600,
        description="Seconds between connectivity probes",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Unset means WARNING, so commands only print their results.
        file: Optional log file path.  The MCP server logs there instead
            of its default file; the CLI mirrors stderr into it.
    """

    level: str | None = Field(default=None, description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` is always valid.
    """

    dropbox: DropboxConfig = Field(default_factory=DropboxConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory and adapter
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def yaml_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten the ``dropbox`` and ``sync`` sections into one dict.

    ``None`` values are dropped so they never shadow built-in defaults.
    """
    merged: dict[str, Any] = {}
    for section in (unified.dropbox, unified.sync):
        merged.update(
            {k: v for k, v in section.model_dump().items() if v is not None}
        )
    return merged
