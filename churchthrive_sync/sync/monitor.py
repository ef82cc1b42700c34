"""
Connectivity monitor: triggers a sync pass when the device comes back online.

Status changes come in through set_online(), either from a platform
listener or from the built-in probe loop, which opens a TCP connection to
the backend host at an interval that depends on the current status.

Only a transition into online (from offline, or from unknown at startup)
launches sync_all(). While a launched pass is running, further triggers
are dropped, not queued.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from urllib.parse import urlparse

from ..events import TOPIC_CONNECTIVITY, EventBus
from ..records import utc_now
from .manager import SyncManager, SyncReport

logger = logging.getLogger(__name__)

CHECK_INTERVAL_ONLINE = 30.0
CHECK_INTERVAL_OFFLINE = 10.0
CONNECTION_TIMEOUT = 5.0


class ConnectionStatus(Enum):
    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass(frozen=True)
class ConnectivityState:
    """What an online/offline/syncing indicator needs to render."""

    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    is_syncing: bool = False
    last_check: datetime | None = None
    last_online: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "is_online": self.status == ConnectionStatus.ONLINE,
            "is_syncing": self.is_syncing,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "last_online": self.last_online.isoformat() if self.last_online else None,
        }


def endpoint_from_url(url: str, default_port: int = 443) -> tuple[str, int]:
    """Host and port to probe for a backend URL."""
    parsed = urlparse(url)
    if not parsed.hostname:
        raise ValueError(f"URL has no host: {url!r}")
    return parsed.hostname, parsed.port or default_port


class ConnectivityMonitor:
    """Watches reachability and runs one sync per reconnection.

    Usage:
        monitor = ConnectivityMonitor(manager, host="xyz.supabase.co")
        await monitor.start()
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        manager: SyncManager,
        bus: EventBus | None = None,
        host: str | None = None,
        port: int = 443,
        timeout: float = CONNECTION_TIMEOUT,
        check_interval_online: float = CHECK_INTERVAL_ONLINE,
        check_interval_offline: float = CHECK_INTERVAL_OFFLINE,
        church_id: str | None = None,
    ):
        self.manager = manager
        self.bus = bus or manager.bus
        self.host = host
        self.port = port
        self.timeout = timeout
        self.check_interval_online = check_interval_online
        self.check_interval_offline = check_interval_offline
        self.church_id = church_id

        self._state = ConnectivityState()
        self._sync_task: asyncio.Task[SyncReport | None] | None = None
        self._probe_task: asyncio.Task[None] | None = None
        self._callbacks: list[Callable[[ConnectivityState], None]] = []

    @property
    def state(self) -> ConnectivityState:
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_online(self) -> bool:
        return self._state.status == ConnectionStatus.ONLINE

    @property
    def is_syncing(self) -> bool:
        return self._sync_task is not None and not self._sync_task.done()

    def register_callback(self, callback: Callable[[ConnectivityState], None]) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[ConnectivityState], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify(self) -> None:
        for callback in self._callbacks:
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in connectivity callback: {e}")
        self.bus.publish(TOPIC_CONNECTIVITY, self._state.to_dict())

    # =========================================================================
    # Transitions
    # =========================================================================

    def set_online(self, online: bool) -> bool:
        """Record a reachability observation.

        Must be called from the event loop thread. A transition into online
        from offline or unknown launches a sync pass.

        Returns:
            True if a sync pass was launched
        """
        previous = self._state.status
        current = ConnectionStatus.ONLINE if online else ConnectionStatus.OFFLINE
        now = utc_now()
        observed = {"last_check": now}
        if online:
            observed["last_online"] = now

        if current == previous:
            self._state = dataclasses.replace(self._state, **observed)
            return False

        self._state = dataclasses.replace(self._state, status=current, **observed)
        logger.info(f"Connection status changed: {previous.value} -> {current.value}")
        self._notify()

        if current == ConnectionStatus.ONLINE:
            return self._launch_sync() is not None
        return False

    def _launch_sync(self) -> asyncio.Task[SyncReport | None] | None:
        """Start a sync pass, or return None if one is already running."""
        if self.is_syncing:
            logger.debug("Sync already running, trigger dropped")
            return None
        self._sync_task = asyncio.get_running_loop().create_task(self._run_sync())
        return self._sync_task

    async def _run_sync(self) -> SyncReport | None:
        self._state = dataclasses.replace(self._state, is_syncing=True)
        self._notify()
        try:
            return await self.manager.sync_all(self.church_id)
        except Exception as e:
            logger.error(f"Triggered sync failed: {e}")
            return None
        finally:
            self._state = dataclasses.replace(self._state, is_syncing=False)
            self._notify()

    async def trigger_sync(self) -> SyncReport | None:
        """Run a sync now unless one is already running.

        Returns:
            The sync report, or None if the trigger was dropped
        """
        task = self._launch_sync()
        if task is None:
            return None
        return await task

    async def wait_idle(self) -> None:
        """Wait for a launched sync pass to finish."""
        task = self._sync_task
        if task is not None and not task.done():
            await asyncio.wait({task})

    # =========================================================================
    # Probing
    # =========================================================================

    async def probe(self) -> bool:
        """Check whether the backend host accepts TCP connections."""
        if not self.host:
            # Nothing configured to probe: treat the network as reachable
            return True
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"Probe of {self.host}:{self.port} failed: {e}")
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    async def check_now(self) -> bool:
        """Probe once and feed the result to set_online()."""
        online = await self.probe()
        self.set_online(online)
        return online

    async def start(self) -> None:
        """Start the background probe loop (probes immediately)."""
        if self._probe_task is not None and not self._probe_task.done():
            return

        async def probe_loop() -> None:
            while True:
                try:
                    await self.check_now()
                except Exception as e:
                    logger.error(f"Error in connection check: {e}")
                interval = (
                    self.check_interval_online if self.is_online else self.check_interval_offline
                )
                await asyncio.sleep(interval)

        self._probe_task = asyncio.create_task(probe_loop())
        logger.debug("Connection monitoring started")

    async def stop(self) -> None:
        """Stop probing and wait for an in-flight sync pass to finish."""
        if self._probe_task is not None:
            self._probe_task.cancel()
            try:
                await self._probe_task
            except asyncio.CancelledError:
                pass
            self._probe_task = None
        await self.wait_idle()
        logger.debug("Connection monitoring stopped")
