"""Minimal todo.txt line handling.

Only what listing and completing tasks need: the ``x`` completion
marker, ``(A)`` priorities and the optional dates that follow them.
Lines are otherwise treated as opaque text.
"""

from __future__ import annotations

import re
from datetime import date

_COMPLETE_RE = re.compile(r"^x (?:(\d{4}-\d{2}-\d{2}) )?")
_PRIORITY_RE = re.compile(r"^\(([A-Z])\) ")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}(?: |$)")


def is_complete(text: str) -> bool:
    return text.startswith("x ")


def priority(text: str) -> str | None:
    match = _PRIORITY_RE.match(text)
    return match.group(1) if match else None


def toggle_complete(text: str, today: date | None = None) -> str:
    """Flip the completion state of one task line.

    Completing drops the priority and, when the task carries a creation
    date, inserts today's completion date before it.  Reopening removes
    the marker and the completion date.
    """
    if is_complete(text):
        return _COMPLETE_RE.sub("", text, count=1)

    body = _PRIORITY_RE.sub("", text, count=1)
    if _DATE_RE.match(body):
        stamp = (today or date.today()).isoformat()
        return f"x {stamp} {body}"
    return f"x {body}"


def sort_key(text: str) -> tuple[bool, str]:
    """Open tasks first, then by priority (A highest, none last)."""
    return (is_complete(text), priority(text) or "~")
