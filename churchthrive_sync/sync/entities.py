"""
Per-entity sync descriptions.

PushSpec describes how a locally created entity is written to the server
(remote table, row mapping, optional audio attachment). PullSpec describes
how a read-only cache is fetched (filters, time window, ordering) and how
server rows become local records.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from ..records import EntityType, SyncableRecord, SyncStatus, parse_timestamp, utc_now
from ..search import get_chosung

RowMapper = Callable[[SyncableRecord], dict[str, Any]]
RowTransform = Callable[[dict[str, Any]], dict[str, Any]]


# =============================================================================
# Push
# =============================================================================


@dataclass(frozen=True)
class PushSpec:
    """How pending records of one entity type are uploaded.

    Attributes:
        entity_type: Local table
        table: Remote table receiving the upsert
        to_row: Maps a local record to the remote row (must include id)
        has_audio: Whether records may carry recorded audio
        audio_path: Object path template, formatted with id
        audio_field: Remote column patched with the uploaded URL
        audio_content_type: MIME type of the uploaded audio
    """

    entity_type: EntityType
    table: str
    to_row: RowMapper
    has_audio: bool = False
    audio_path: str = "notes/{id}/audio.webm"
    audio_field: str = "audio_url"
    audio_content_type: str = "audio/webm"

    def blob_path(self, record_id: str) -> str:
        return self.audio_path.format(id=record_id)


def note_row(record: SyncableRecord) -> dict[str, Any]:
    payload = record.payload
    return {
        "id": record.id,
        "title": payload.get("title", ""),
        "content": payload.get("content"),
        "sermon_id": payload.get("sermon_id") or None,
        "is_shared": bool(payload.get("is_shared", False)),
    }


def attendance_row(record: SyncableRecord) -> dict[str, Any]:
    payload = record.payload
    return {
        "id": record.id,
        "member_id": payload.get("member_id"),
        "event_type": payload.get("event_type"),
        "event_date": payload.get("event_date"),
        "status": payload.get("status"),
    }


NOTES_PUSH = PushSpec(
    entity_type=EntityType.NOTES,
    table="sermon_notes",
    to_row=note_row,
    has_audio=True,
)

ATTENDANCE_PUSH = PushSpec(
    entity_type=EntityType.ATTENDANCE,
    table="attendances",
    to_row=attendance_row,
)

PUSH_SPECS: dict[EntityType, PushSpec] = {
    NOTES_PUSH.entity_type: NOTES_PUSH,
    ATTENDANCE_PUSH.entity_type: ATTENDANCE_PUSH,
}


# =============================================================================
# Pull
# =============================================================================


@dataclass(frozen=True)
class PullSpec:
    """How a read-only cache is refreshed from the server.

    Attributes:
        entity_type: Local cache table
        table: Remote table
        filters: Fixed equality filters
        church_scoped: Whether rows are filtered by church_id
        order_by: Remote sort column
        descending: Sort direction
        window_days: Only rows whose window_column is within this many days
        window_column: Column the window applies to
        window_date_only: Compare against a YYYY-MM-DD date instead of a timestamp
        transform: Adjusts each row before caching
    """

    entity_type: EntityType
    table: str
    filters: dict[str, Any] = field(default_factory=dict)
    church_scoped: bool = True
    order_by: str | None = None
    descending: bool = False
    window_days: int | None = None
    window_column: str | None = None
    window_date_only: bool = False
    transform: RowTransform | None = None

    def query_filters(self, church_id: str | None) -> dict[str, Any]:
        filters = dict(self.filters)
        if self.church_scoped and church_id:
            filters["church_id"] = church_id
        return filters

    def lower_bounds(self, now: datetime | None = None) -> dict[str, Any] | None:
        if self.window_days is None or self.window_column is None:
            return None
        since = (now or utc_now()) - timedelta(days=self.window_days)
        value = since.date().isoformat() if self.window_date_only else since.isoformat()
        return {self.window_column: value}

    def to_record(self, row: dict[str, Any]) -> SyncableRecord:
        """Turn a server row into a synced cache record."""
        data = self.transform(dict(row)) if self.transform else dict(row)
        now = utc_now()
        server_updated_at = parse_timestamp(data.get("updated_at"))
        return SyncableRecord(
            id=str(data["id"]),
            entity_type=self.entity_type,
            payload=data,
            sync_status=SyncStatus.SYNCED,
            created_at=parse_timestamp(data.get("created_at")) or now,
            updated_at=server_updated_at or now,
            server_updated_at=server_updated_at or now,
        )


def with_name_chosung(row: dict[str, Any]) -> dict[str, Any]:
    """Fill name_chosung from the name when the server left it empty."""
    if not row.get("name_chosung"):
        row["name_chosung"] = get_chosung(str(row.get("name") or ""))
    return row


MEMBERS_PULL = PullSpec(
    entity_type=EntityType.MEMBERS,
    table="members",
    filters={"status": "active"},
    order_by="name",
    transform=with_name_chosung,
)

SERMONS_PULL = PullSpec(
    entity_type=EntityType.SERMONS,
    table="sermons",
    order_by="date",
    descending=True,
    window_days=30,
    window_column="date",
    window_date_only=True,
)

ANNOUNCEMENTS_PULL = PullSpec(
    entity_type=EntityType.ANNOUNCEMENTS,
    table="announcements",
    filters={"is_published": True},
    order_by="created_at",
    descending=True,
    window_days=14,
    window_column="created_at",
)

PULL_SPECS: dict[EntityType, PullSpec] = {
    MEMBERS_PULL.entity_type: MEMBERS_PULL,
    SERMONS_PULL.entity_type: SERMONS_PULL,
    ANNOUNCEMENTS_PULL.entity_type: ANNOUNCEMENTS_PULL,
}
