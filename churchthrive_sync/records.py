"""
Syncable record types.

Every locally cached entity (sermon notes, attendance, read-only caches
of the member directory, sermons and announcements) is stored as a
SyncableRecord carrying its own sync status.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class SyncStatus(Enum):
    """Per-record sync status.

    CONFLICT is part of the stored vocabulary but no transition in this
    package ever produces it.
    """

    PENDING = "pending"
    SYNCED = "synced"
    CONFLICT = "conflict"


class EntityType(Enum):
    """Local tables holding syncable records."""

    NOTES = "notes"
    ATTENDANCE = "attendance"
    MEMBERS = "members"
    SERMONS = "sermons"
    ANNOUNCEMENTS = "announcements"


# Entity types created locally and pushed to the server
PUSHED_ENTITY_TYPES = (EntityType.NOTES, EntityType.ATTENDANCE)

# Read-only caches refreshed wholesale from the server
CACHED_ENTITY_TYPES = (EntityType.MEMBERS, EntityType.SERMONS, EntityType.ANNOUNCEMENTS)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def generate_record_id() -> str:
    """Generate a stable record id usable as the server primary key."""
    return str(uuid.uuid4())


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


@dataclass
class SyncableRecord:
    """A locally stored record with its sync bookkeeping.

    Attributes:
        id: Locally generated id, reused as the server primary key
        entity_type: Table the record lives in
        payload: Entity-specific fields
        sync_status: pending, synced or conflict
        created_at: Local creation time (display ordering only)
        updated_at: Local modification time (display ordering only)
        server_updated_at: Last server write time known locally, None if never confirmed
    """

    id: str
    entity_type: EntityType
    payload: dict[str, Any] = field(default_factory=dict)
    sync_status: SyncStatus = SyncStatus.PENDING
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    server_updated_at: datetime | None = None

    @classmethod
    def new(cls, entity_type: EntityType, payload: dict[str, Any]) -> SyncableRecord:
        """Create a fresh pending record with a new id."""
        now = utc_now()
        return cls(
            id=generate_record_id(),
            entity_type=entity_type,
            payload=dict(payload),
            sync_status=SyncStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_pending(self) -> bool:
        return self.sync_status == SyncStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "entity_type": self.entity_type.value,
            "payload": self.payload,
            "sync_status": self.sync_status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "server_updated_at": (
                self.server_updated_at.isoformat() if self.server_updated_at else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncableRecord:
        """Create from dictionary."""
        return cls(
            id=data["id"],
            entity_type=EntityType(data["entity_type"]),
            payload=dict(data.get("payload") or {}),
            sync_status=SyncStatus(data.get("sync_status", SyncStatus.PENDING.value)),
            created_at=_parse_datetime(data.get("created_at")) or utc_now(),
            updated_at=_parse_datetime(data.get("updated_at")) or utc_now(),
            server_updated_at=_parse_datetime(data.get("server_updated_at")),
        )


def new_record(entity_type: EntityType, payload: dict[str, Any]) -> SyncableRecord:
    """Shorthand for SyncableRecord.new."""
    return SyncableRecord.new(entity_type, payload)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO timestamp from the server (accepts a trailing Z)."""
    return _parse_datetime(value)
