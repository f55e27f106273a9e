"""Timestamp helpers.

Timestamps are timezone-aware UTC datetimes in memory and ISO 8601
strings on disk.  Dropbox reports ``server_modified`` as
``2024-05-01T10:00:00Z`` with one-second granularity.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO 8601 string, treating naive values as UTC.

    Returns ``None`` for empty or unparseable input.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime | None, default: str = "Never") -> str:
    """Format for display in local time (YYYY-MM-DD HH:MM:SS)."""
    if value is None:
        return default
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")
