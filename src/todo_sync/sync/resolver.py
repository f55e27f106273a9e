"""Conflict resolution strategies for the sync coordinator.

A conflict is raised when Dropbox holds a newer version of the active
file while local edits are still pending.  Resolution is a wholesale
choice of one side; there is no merging.

- ``PromptResolver``: waits for an answer delivered through ``choose()``
  or ``dismiss()``, optionally asking a prompt coroutine for it.
- ``LocalWinsResolver`` / ``RemoteWinsResolver``: fixed answers.
- ``DeferResolver``: always cancels, leaving the file pending.  Used
  when nobody is around to answer.

The ``create_resolver()`` factory maps config strategy strings to
resolver instances.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Protocol

from .models import ConflictChoice, ConflictPrompt

logger = logging.getLogger(__name__)

PromptCallback = Callable[[ConflictPrompt], Awaitable[ConflictChoice]]


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ConflictResolver(Protocol):
    """Protocol that all conflict resolvers must satisfy."""

    async def present_conflict(
        self,
        local_modified_at: datetime | None,
        remote_modified_at: datetime | None,
        path: str,
    ) -> ConflictChoice:
        """Ask which side of a conflict to keep.

        Returns:
            ``LOCAL``, ``REMOTE`` or ``CANCELLED``.
        """
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Interactive resolver
# ---------------------------------------------------------------------------


class PromptResolver:
    """Suspend until the user picks a side.

    Only one prompt may be outstanding: the coordinator serialises sync
    passes, so a second concurrent ``present_conflict`` is a bug and
    raises ``RuntimeError``.

    Args:
        prompt: Optional coroutine asked for the answer (for example a
            console prompt).  Without it the answer must come from
            ``choose()`` or ``dismiss()``.
    """

    def __init__(self, prompt: PromptCallback | None = None) -> None:
        self._prompt = prompt
        self._future: asyncio.Future[ConflictChoice] | None = None
        self.current: ConflictPrompt | None = None

    @property
    def is_waiting(self) -> bool:
        return self._future is not None and not self._future.done()

    async def present_conflict(
        self,
        local_modified_at: datetime | None,
        remote_modified_at: datetime | None,
        path: str,
    ) -> ConflictChoice:
        if self._future is not None:
            raise RuntimeError(
                f"A conflict prompt is already open for {self.current.path if self.current else '?'}"
            )
        loop = asyncio.get_running_loop()
        self._future = loop.create_future()
        self.current = ConflictPrompt(
            path=path,
            local_modified_at=local_modified_at,
            remote_modified_at=remote_modified_at,
        )
        logger.info(
            "Conflict on %s: local %s, Dropbox %s",
            path,
            local_modified_at,
            remote_modified_at,
        )
        asker = None
        if self._prompt is not None:
            asker = asyncio.ensure_future(self._ask(self.current))
        try:
            return await self._future
        finally:
            if asker is not None and not asker.done():
                asker.cancel()
            self._future = None
            self.current = None

    async def _ask(self, prompt: ConflictPrompt) -> None:
        assert self._prompt is not None
        try:
            choice = await self._prompt(prompt)
        except Exception:
            logger.exception("Conflict prompt failed, treating as cancel")
            choice = ConflictChoice.CANCELLED
        self.choose(choice)

    def choose(self, choice: ConflictChoice) -> None:
        """Answer the open prompt.  Ignored when nothing is open."""
        if self._future is None or self._future.done():
            logger.debug("No open conflict prompt for choice %s", choice)
            return
        self._future.set_result(choice)

    def dismiss(self) -> None:
        self.choose(ConflictChoice.CANCELLED)


# ---------------------------------------------------------------------------
# Unattended resolvers
# ---------------------------------------------------------------------------


class LocalWinsResolver:
    """Always keep the local version."""

    async def present_conflict(self, local_modified_at, remote_modified_at, path):
        logger.info("Conflict on %s resolved: keep local", path)
        return ConflictChoice.LOCAL


class RemoteWinsResolver:
    """Always keep the Dropbox version."""

    async def present_conflict(self, local_modified_at, remote_modified_at, path):
        logger.info("Conflict on %s resolved: keep Dropbox", path)
        return ConflictChoice.REMOTE


class DeferResolver:
    """Never decide; the file stays pending until someone resolves it."""

    async def present_conflict(self, local_modified_at, remote_modified_at, path):
        logger.warning("Conflict on %s left unresolved", path)
        return ConflictChoice.CANCELLED


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[str, type] = {
    "interactive": PromptResolver,
    "local-wins": LocalWinsResolver,
    "remote-wins": RemoteWinsResolver,
    "defer": DeferResolver,
}


def create_resolver(
    strategy: str, prompt: PromptCallback | None = None
) -> ConflictResolver:
    """Create a conflict resolver for the given strategy string.

    Args:
        strategy: One of ``"interactive"``, ``"local-wins"``,
            ``"remote-wins"``, ``"defer"``.
        prompt: Prompt coroutine for the interactive strategy.

    Returns:
        A ``ConflictResolver`` implementation instance.

    Raises:
        ValueError: If the strategy string is not recognised.
    """
    cls = _STRATEGY_MAP.get(strategy)
    if cls is None:
        raise ValueError(
            f"Unknown conflict strategy: '{strategy}'. Valid strategies: {sorted(_STRATEGY_MAP.keys())}"
        )
    if cls is PromptResolver:
        return PromptResolver(prompt)
    return cls()  # type: ignore[return-value]
