"""
ChurchThrive Sync

Offline-first synchronization core for the ChurchThrive client.

Provides:
- Durable local record store (SQLite) with per-record sync status
- Audio chunk storage for sermon notes recorded offline
- Remote data service interface with a Supabase implementation
- Sync manager uploading pending records and refreshing read-only caches
- Connectivity monitor running one sync per reconnection

Usage:

    >>> from churchthrive_sync import (
    ...     EntityType, LocalStore, RemoteConfig, SupabaseDataService, SyncManager, new_record
    ... )
    >>> store = await LocalStore.create("~/.churchthrive/offline.db")
    >>> note = await store.insert(new_record(EntityType.NOTES, {"title": "주일 설교"}))
    >>> async with SupabaseDataService(RemoteConfig.from_env()) as remote:
    ...     manager = SyncManager(store, remote)
    ...     report = await manager.sync_all()
    ...     print(report.total_synced, report.total_failed)
"""

# Access control
from .access import (
    ADMIN_MENU,
    MEMBER_MENU,
    ROLE_HIERARCHY,
    ROLE_PERMISSIONS,
    MenuItem,
    Role,
    filter_menu,
    get_permissions,
    has_permission,
    is_role_at_least,
    menu_for,
    require_permission,
)

# Configuration
from .config import ClientSettings, SyncConfig

# Events
from .events import EventBus, Toast, ToastCenter, ToastType

# Exceptions
from .exceptions import (
    AuthenticationError,
    PermissionDeniedError,
    RecordNotFoundError,
    RemoteError,
    SchemaMigrationError,
    StorageConnectionError,
    StorageFailure,
    SyncStorageError,
    ValidationFailure,
)

# Local persistence
from .local import AudioChunkStore, LocalStore

# Logging
from .logging_utils import (
    StructuredJsonFormatter,
    SyncLoggerAdapter,
    configure_logging_from_env,
    configure_structured_logging,
    get_sync_logger,
)

# Push notifications
from .notifications import NotificationRequest, NotificationResult, PushNotifier, TokenResult

# Records
from .records import EntityType, SyncableRecord, SyncStatus, new_record

# Remote
from .remote import RemoteConfig, RemoteDataService, ServerRecord, SupabaseDataService

# Search
from .search import get_chosung, is_chosung_only, matches_chosung, search_cached_members

# Sync
from .sync import (
    ConnectionStatus,
    ConnectivityMonitor,
    EntitySyncResult,
    SyncManager,
    SyncPhase,
    SyncReport,
    SyncState,
)

__version__ = "0.1.0"

__all__ = [
    # Records
    "EntityType",
    "SyncStatus",
    "SyncableRecord",
    "new_record",
    # Local persistence
    "LocalStore",
    "AudioChunkStore",
    # Remote
    "RemoteDataService",
    "ServerRecord",
    "RemoteConfig",
    "SupabaseDataService",
    # Sync
    "SyncManager",
    "SyncPhase",
    "SyncState",
    "SyncReport",
    "EntitySyncResult",
    "ConnectivityMonitor",
    "ConnectionStatus",
    # Configuration
    "SyncConfig",
    "ClientSettings",
    # Events
    "EventBus",
    "ToastCenter",
    "Toast",
    "ToastType",
    # Access control
    "Role",
    "ROLE_HIERARCHY",
    "ROLE_PERMISSIONS",
    "MenuItem",
    "ADMIN_MENU",
    "MEMBER_MENU",
    "filter_menu",
    "menu_for",
    "get_permissions",
    "has_permission",
    "is_role_at_least",
    "require_permission",
    # Search
    "get_chosung",
    "is_chosung_only",
    "matches_chosung",
    "search_cached_members",
    # Push notifications
    "PushNotifier",
    "NotificationRequest",
    "NotificationResult",
    "TokenResult",
    # Exceptions
    "SyncStorageError",
    "StorageFailure",
    "RecordNotFoundError",
    "SchemaMigrationError",
    "RemoteError",
    "StorageConnectionError",
    "AuthenticationError",
    "ValidationFailure",
    "PermissionDeniedError",
    # Logging
    "StructuredJsonFormatter",
    "SyncLoggerAdapter",
    "configure_logging_from_env",
    "configure_structured_logging",
    "get_sync_logger",
]
