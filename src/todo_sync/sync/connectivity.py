"""Online/offline detection.

``NetworkState`` is the shared online flag read by the gateway and the
coordinator.  ``ConnectivityMonitor`` probes a URL periodically and
calls the coordinator's ``handle_online`` / ``handle_offline`` on each
transition; those handlers are the only writers of the flag.  Neither
handler waits for a sync pass, so the monitor keeps probing while one
runs.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import requests

from ..core.async_utils import run_sync

if TYPE_CHECKING:
    from .coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


@dataclass
class NetworkState:
    online: bool = True


class ConnectivityMonitor:
    """Poll *url* every *interval* seconds.

    Any HTTP response, whatever its status, counts as online; only
    connection failures and timeouts count as offline.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        network: NetworkState,
        url: str,
        interval: float = 15.0,
    ) -> None:
        self._coordinator = coordinator
        self._network = network
        self._url = url
        self._interval = interval

    def probe(self) -> bool:
        try:
            requests.head(self._url, timeout=5, allow_redirects=False)
        except requests.RequestException as exc:
            logger.debug("Connectivity probe failed: %s", exc)
            return False
        return True

    async def check_once(self) -> bool:
        """Probe once and dispatch a transition if the state changed."""
        online = await run_sync(self.probe)
        if online and not self._network.online:
            logger.info("Connectivity restored")
            self._coordinator.handle_online()
        elif not online and self._network.online:
            logger.warning("Connectivity lost")
            self._coordinator.handle_offline()
        return online

    async def run(self) -> None:
        """Probe until cancelled."""
        while True:
            await self.check_once()
            await asyncio.sleep(self._interval)
