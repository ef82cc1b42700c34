"""
Sync layer: entity registry, sync manager and connectivity monitor.
"""

from .entities import (
    ATTENDANCE_PUSH,
    NOTES_PUSH,
    PULL_SPECS,
    PUSH_SPECS,
    PullSpec,
    PushSpec,
)
from .manager import (
    EntitySyncResult,
    SyncManager,
    SyncPhase,
    SyncReport,
    SyncState,
)
from .monitor import ConnectionStatus, ConnectivityMonitor, ConnectivityState

__all__ = [
    "SyncManager",
    "SyncPhase",
    "SyncState",
    "SyncReport",
    "EntitySyncResult",
    "ConnectivityMonitor",
    "ConnectivityState",
    "ConnectionStatus",
    "PushSpec",
    "PullSpec",
    "PUSH_SPECS",
    "PULL_SPECS",
    "NOTES_PUSH",
    "ATTENDANCE_PUSH",
]
