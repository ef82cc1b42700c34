"""
Tests for the connectivity monitor.

Probes run against a throwaway asyncio server on localhost.
"""

import asyncio
import dataclasses
import socket

import pytest

from churchthrive_sync.events import TOPIC_CONNECTIVITY
from churchthrive_sync.records import EntityType, SyncStatus, new_record
from churchthrive_sync.sync.monitor import (
    ConnectionStatus,
    ConnectivityMonitor,
    endpoint_from_url,
)


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def monitor(manager, bus):
    return ConnectivityMonitor(manager, bus=bus)


class TestTransitions:
    """Tests for status transitions and sync triggering."""

    @pytest.mark.asyncio
    async def test_reconnect_triggers_one_sync(self, monitor, manager, store, remote):
        created = await store.insert(new_record(EntityType.NOTES, {"title": "offline"}))
        monitor.set_online(False)

        assert monitor.set_online(True) is True
        await monitor.wait_idle()

        assert monitor.is_online
        assert len(remote.calls_of("upsert")) == 1
        assert (await store.get(EntityType.NOTES, created.id)).sync_status == SyncStatus.SYNCED

    @pytest.mark.asyncio
    async def test_startup_online_triggers_sync(self, monitor, manager):
        assert monitor.status == ConnectionStatus.UNKNOWN
        assert monitor.set_online(True) is True
        await monitor.wait_idle()
        assert manager.last_report is not None

    @pytest.mark.asyncio
    async def test_staying_online_does_not_trigger(self, monitor):
        monitor.set_online(True)
        await monitor.wait_idle()

        assert monitor.set_online(True) is False
        assert monitor.is_syncing is False

    @pytest.mark.asyncio
    async def test_going_offline_does_not_trigger(self, monitor, remote):
        assert monitor.set_online(False) is False
        assert monitor.status == ConnectionStatus.OFFLINE
        assert remote.calls == []

    @pytest.mark.asyncio
    async def test_triggers_while_syncing_are_dropped(self, monitor, store, remote):
        await store.insert(new_record(EntityType.NOTES, {"title": "n"}))
        remote.upsert_delay = 0.1

        assert monitor.set_online(True) is True
        monitor.set_online(False)
        assert monitor.set_online(True) is False
        assert monitor.is_syncing is True

        await monitor.wait_idle()
        assert len(remote.calls_of("upsert")) == 1

    @pytest.mark.asyncio
    async def test_trigger_sync_returns_report(self, monitor, store):
        await store.insert(new_record(EntityType.NOTES, {"title": "n"}))
        report = await monitor.trigger_sync()
        assert report is not None
        assert report.total_synced == 1

    @pytest.mark.asyncio
    async def test_trigger_sync_dropped_while_running(self, monitor, store, remote):
        await store.insert(new_record(EntityType.NOTES, {"title": "n"}))
        remote.upsert_delay = 0.05
        monitor.set_online(True)

        assert await monitor.trigger_sync() is None
        await monitor.wait_idle()

    @pytest.mark.asyncio
    async def test_sync_failure_is_contained(self, manager, bus):
        async def broken_sync_all(church_id=None):
            raise RuntimeError("boom")

        manager.sync_all = broken_sync_all
        monitor = ConnectivityMonitor(manager, bus=bus)

        assert await monitor.trigger_sync() is None
        assert monitor.state.is_syncing is False


class TestNotifications:
    """Tests for callbacks and bus events."""

    @pytest.mark.asyncio
    async def test_callbacks_and_bus_see_changes(self, monitor, bus):
        seen = []
        events = []
        monitor.register_callback(lambda state: seen.append(state.status))
        bus.subscribe(TOPIC_CONNECTIVITY, events.append)

        monitor.set_online(False)

        assert seen == [ConnectionStatus.OFFLINE]
        assert events[-1]["status"] == "offline"
        assert events[-1]["is_online"] is False

    @pytest.mark.asyncio
    async def test_syncing_flag_is_published(self, monitor, bus):
        flags = []
        bus.subscribe(TOPIC_CONNECTIVITY, lambda e: flags.append(e["is_syncing"]))

        monitor.set_online(True)
        await monitor.wait_idle()

        assert True in flags
        assert flags[-1] is False

    @pytest.mark.asyncio
    async def test_callbacks_receive_snapshots(self, monitor):
        kept = []
        monitor.register_callback(kept.append)

        monitor.set_online(False)
        monitor.set_online(True)
        await monitor.wait_idle()

        first = kept[0]
        assert first.status == ConnectionStatus.OFFLINE
        assert first.is_syncing is False
        assert any(state.is_syncing for state in kept)
        assert len({id(state) for state in kept}) == len(kept)
        with pytest.raises(dataclasses.FrozenInstanceError):
            first.is_syncing = True

    @pytest.mark.asyncio
    async def test_unregister_and_bad_callback(self, monitor):
        seen = []

        def broken(state):
            raise ValueError("bad")

        def record(state):
            seen.append(state.status)

        monitor.register_callback(broken)
        monitor.register_callback(record)
        monitor.set_online(False)
        monitor.unregister_callback(record)
        monitor.set_online(True)
        await monitor.wait_idle()

        assert seen == [ConnectionStatus.OFFLINE]


class TestProbe:
    """Tests for TCP reachability probes."""

    @pytest.mark.asyncio
    async def test_probe_without_host_is_online(self, monitor):
        assert await monitor.probe() is True

    @pytest.mark.asyncio
    async def test_probe_reachable_host(self, manager, bus):
        async def handle(reader, writer):
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            monitor = ConnectivityMonitor(manager, bus=bus, host="127.0.0.1", port=port)
            assert await monitor.probe() is True
        finally:
            server.close()
            await server.wait_closed()

    @pytest.mark.asyncio
    async def test_probe_closed_port(self, manager, bus):
        monitor = ConnectivityMonitor(
            manager, bus=bus, host="127.0.0.1", port=free_port(), timeout=1.0
        )
        assert await monitor.probe() is False
        assert await monitor.check_now() is False
        assert monitor.status == ConnectionStatus.OFFLINE

    @pytest.mark.asyncio
    async def test_start_and_stop(self, manager, bus):
        monitor = ConnectivityMonitor(manager, bus=bus, check_interval_online=0.01)
        await monitor.start()
        await asyncio.sleep(0.05)
        await monitor.stop()

        assert monitor.is_online
        assert monitor.state.last_check is not None
        assert monitor.is_syncing is False


class TestEndpointFromUrl:
    def test_default_port(self):
        assert endpoint_from_url("https://abc.supabase.co") == ("abc.supabase.co", 443)

    def test_explicit_port(self):
        assert endpoint_from_url("http://localhost:54321/rest") == ("localhost", 54321)

    def test_no_host(self):
        with pytest.raises(ValueError):
            endpoint_from_url("not a url")
