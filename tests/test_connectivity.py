"""Tests for ConnectivityMonitor."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
import requests

from todo_sync.sync.connectivity import ConnectivityMonitor, NetworkState
from todo_sync.sync.models import ConflictChoice, SyncStatus
from todo_sync.sync.resolver import PromptResolver


@pytest.fixture
def coordinator():
    coord = MagicMock()
    coord.handle_online.return_value = None
    return coord


def _monitor(coordinator, network, interval=15.0):
    return ConnectivityMonitor(
        coordinator, network, "https://api.dropboxapi.com", interval=interval
    )


class TestProbe:
    @patch("todo_sync.sync.connectivity.requests.head")
    def test_any_response_is_online(self, mock_head, coordinator):
        mock_head.return_value = MagicMock(status_code=404)
        assert _monitor(coordinator, NetworkState()).probe()
        mock_head.assert_called_once_with(
            "https://api.dropboxapi.com", timeout=5, allow_redirects=False
        )

    @pytest.mark.parametrize(
        "exc", [requests.ConnectionError("dns"), requests.Timeout("slow")]
    )
    @patch("todo_sync.sync.connectivity.requests.head")
    def test_failure_is_offline(self, mock_head, exc, coordinator):
        mock_head.side_effect = exc
        assert not _monitor(coordinator, NetworkState()).probe()


class TestTransitions:
    async def test_going_offline(self, coordinator):
        network = NetworkState(online=True)
        monitor = _monitor(coordinator, network)
        with patch.object(monitor, "probe", return_value=False):
            assert await monitor.check_once() is False
        coordinator.handle_offline.assert_called_once_with()
        coordinator.handle_online.assert_not_called()

    async def test_coming_back_online(self, coordinator):
        network = NetworkState(online=False)
        monitor = _monitor(coordinator, network)
        with patch.object(monitor, "probe", return_value=True):
            assert await monitor.check_once() is True
        coordinator.handle_online.assert_called_once_with()

    async def test_no_transition_no_dispatch(self, coordinator):
        network = NetworkState(online=True)
        monitor = _monitor(coordinator, network)
        with patch.object(monitor, "probe", return_value=True):
            await monitor.check_once()
        coordinator.handle_online.assert_not_called()
        coordinator.handle_offline.assert_not_called()

    async def test_real_coordinator_syncs_when_back_online(self, make_stack, t0):
        stack = make_stack(online=False)
        stack.tasks.write_text("/todo.txt", "offline edit", modified_at=t0, notify=False)
        stack.ledger.set_pending("/todo.txt")
        monitor = ConnectivityMonitor(stack.coordinator, stack.network, "https://x")

        with patch.object(monitor, "probe", return_value=True):
            await monitor.check_once()
        await stack.coordinator.wait_for_background()

        assert stack.network.online
        assert stack.dropbox.content_of("/todo.txt") == "offline edit"
        assert not stack.ledger.is_pending("/todo.txt")


class TestOfflineDuringPass:
    async def test_offline_noticed_while_conflict_prompt_open(self, make_stack, t0):
        resolver = PromptResolver()
        stack = make_stack(resolver=resolver, online=False)
        stack.tasks.write_text("/todo.txt", "local edit", modified_at=t0, notify=False)
        stack.ledger.set_pending("/todo.txt")
        stack.dropbox.put("/todo.txt", "remote edit", t0 + timedelta(seconds=10))

        # The network drops as soon as the pass is waiting on the user.
        monitor = _monitor(stack.coordinator, stack.network, interval=0.01)
        with patch.object(monitor, "probe", side_effect=lambda: not resolver.is_waiting):
            runner = asyncio.ensure_future(monitor.run())
            try:
                for _ in range(100):
                    await asyncio.sleep(0.01)
                    if resolver.is_waiting and not stack.network.online:
                        break
                assert resolver.is_waiting
                assert not stack.network.online
                assert stack.status.status == SyncStatus.OFFLINE
            finally:
                runner.cancel()
                resolver.choose(ConflictChoice.CANCELLED)
                await stack.coordinator.wait_for_background()

        assert stack.ledger.is_pending("/todo.txt")
        assert stack.status.status == SyncStatus.OFFLINE
