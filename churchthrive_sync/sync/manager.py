"""
Sync manager: uploads pending local records and refreshes read-only caches.

One pass per pushed entity type:
- Read pending records from the local store
- Upload each record (upsert, then optional audio upload and URL patch)
- Flip successfully uploaded records to synced; failures stay pending and
  are retried on the next pass

Records are processed concurrently; each record's own steps run in order.
A failing record never blocks the others and nothing in a pass is fatal.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..events import TOPIC_SYNC_STATE, EventBus, Unsubscribe
from ..exceptions import RemoteError, StorageFailure, ValidationFailure
from ..local.blobs import AudioChunkStore
from ..local.store import LocalStore
from ..logging_utils import SyncLoggerAdapter, get_sync_logger
from ..records import EntityType, SyncableRecord, utc_now
from ..remote.base import DEFAULT_AUDIO_BUCKET, RemoteDataService
from .entities import MEMBERS_PULL, PULL_SPECS, PUSH_SPECS, PullSpec, PushSpec

logger = get_sync_logger("manager")

ALREADY_SYNCING = "Sync already in progress"


class SyncPhase(Enum):
    """Lifecycle of the most recent sync_all call."""

    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class SyncState:
    """Snapshot published to subscribers on every phase change."""

    status: SyncPhase = SyncPhase.IDLE
    last_sync: datetime | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "last_sync": self.last_sync.isoformat() if self.last_sync else None,
            "error": self.error,
        }


@dataclass
class EntitySyncResult:
    """Outcome of one entity pass.

    Attributes:
        entity_type: Entity that was pushed
        synced_count: Records uploaded and marked synced
        failed_count: Records whose upload failed (still pending)
        failed_ids: Ids of the failed records
        requeued_ids: Records uploaded but edited locally meanwhile (still pending)
    """

    entity_type: EntityType
    synced_count: int = 0
    failed_count: int = 0
    failed_ids: list[str] = field(default_factory=list)
    requeued_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type.value,
            "synced": self.synced_count,
            "failed": self.failed_count,
            "failed_ids": list(self.failed_ids),
            "requeued_ids": list(self.requeued_ids),
        }


@dataclass
class SyncReport:
    """Aggregate result of sync_all."""

    results: dict[EntityType, EntitySyncResult] = field(default_factory=dict)
    pulled: dict[EntityType, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    skipped: bool = False
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime | None = None

    @classmethod
    def already_syncing(cls) -> SyncReport:
        now = utc_now()
        return cls(errors=[ALREADY_SYNCING], skipped=True, started_at=now, finished_at=now)

    @property
    def total_synced(self) -> int:
        return sum(r.synced_count for r in self.results.values())

    @property
    def total_failed(self) -> int:
        return sum(r.failed_count for r in self.results.values())

    @property
    def success(self) -> bool:
        """True when the pass ran, raised nothing and every upload succeeded."""
        return not self.skipped and not self.errors and self.total_failed == 0

    @property
    def duration_ms(self) -> int:
        if self.finished_at is None:
            return 0
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": {t.value: r.to_dict() for t, r in self.results.items()},
            "pulled": {t.value: n for t, n in self.pulled.items()},
            "errors": list(self.errors),
            "skipped": self.skipped,
            "total_synced": self.total_synced,
            "total_failed": self.total_failed,
            "duration_ms": self.duration_ms,
        }


class SyncManager:
    """Reconciles the local store with the remote backend.

    Usage:
        manager = SyncManager(store, remote, audio_store=chunks)
        report = await manager.sync_all(church_id="...")
    """

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteDataService,
        bus: EventBus | None = None,
        audio_store: AudioChunkStore | None = None,
        audio_bucket: str = DEFAULT_AUDIO_BUCKET,
        church_id: str | None = None,
        pull_on_sync: bool = True,
        push_specs: dict[EntityType, PushSpec] | None = None,
        pull_specs: dict[EntityType, PullSpec] | None = None,
    ):
        """
        Args:
            store: Open local store
            remote: Remote data service
            bus: Event bus for state changes (a private one if omitted)
            audio_store: Source of recorded note audio
            audio_bucket: Storage bucket receiving audio uploads
            church_id: Default church for cache pulls
            pull_on_sync: Refresh read-only caches after pushing when a church is known
            push_specs: Pushed entity registry (defaults to notes and attendance)
            pull_specs: Pulled cache registry (defaults to members, sermons, announcements)
        """
        self.store = store
        self.remote = remote
        self.bus = bus or EventBus()
        self.audio_store = audio_store
        self.audio_bucket = audio_bucket
        self.church_id = church_id
        self.pull_on_sync = pull_on_sync
        self.push_specs = push_specs if push_specs is not None else dict(PUSH_SPECS)
        self.pull_specs = pull_specs if pull_specs is not None else dict(PULL_SPECS)

        self._state = SyncState()
        self._syncing = False
        self._last_report: SyncReport | None = None

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def last_report(self) -> SyncReport | None:
        return self._last_report

    def subscribe(self, listener: Callable[[SyncState], None]) -> Unsubscribe:
        """Call listener with the new SyncState on every change."""
        return self.bus.subscribe(TOPIC_SYNC_STATE, lambda event: listener(event["state"]))

    def _update_state(self, **changes: Any) -> None:
        self._state = dataclasses.replace(self._state, **changes)
        self.bus.publish(TOPIC_SYNC_STATE, {"state": self._state})

    # =========================================================================
    # Push
    # =========================================================================

    async def sync_entity(self, entity_type: EntityType) -> EntitySyncResult:
        """Run one upload pass for an entity type.

        Raises:
            ValidationFailure: If the entity type is not pushed
            StorageFailure: If pending records cannot be read
        """
        spec = self.push_specs.get(entity_type)
        if spec is None:
            raise ValidationFailure("entity_type", "not a pushed entity type", entity_type.value)

        log = SyncLoggerAdapter(logger, {"entity_type": entity_type.value})
        pending = await self.store.pending(entity_type)
        result = EntitySyncResult(entity_type=entity_type)
        if not pending:
            return result

        outcomes = await asyncio.gather(
            *(self._push_record(spec, r, log) for r in pending),
            return_exceptions=True,
        )

        for record, outcome in zip(pending, outcomes, strict=True):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
            if outcome == "synced":
                result.synced_count += 1
            elif outcome == "requeued":
                result.requeued_ids.append(record.id)
            else:
                result.failed_count += 1
                result.failed_ids.append(record.id)

        log.info(
            f"{entity_type.value}: {result.synced_count} synced, "
            f"{result.failed_count} failed of {len(pending)} pending"
        )
        return result

    async def _push_record(
        self,
        spec: PushSpec,
        record: SyncableRecord,
        log: SyncLoggerAdapter,
    ) -> str:
        """Upload one record. Returns "synced", "requeued" or "failed"."""
        try:
            server = await self.remote.upsert(spec.table, spec.to_row(record))
        except Exception as e:
            log.warning(f"Failed to sync {spec.entity_type.value} {record.id}: {e}")
            return "failed"

        if spec.has_audio and self.audio_store is not None:
            await self._push_audio(spec, record, self.audio_store, log)

        try:
            flipped = await self.store.mark_synced(record, server.updated_at)
        except Exception as e:
            log.warning(f"Uploaded {record.id} but could not mark it synced: {e}")
            return "failed"

        if not flipped:
            log.info(f"{record.id} changed during upload, leaving it pending")
            return "requeued"
        return "synced"

    async def _push_audio(
        self,
        spec: PushSpec,
        record: SyncableRecord,
        audio_store: AudioChunkStore,
        log: SyncLoggerAdapter,
    ) -> None:
        """Upload recorded audio and patch its URL onto the row.

        Failures of any kind are logged only: the record is still marked
        synced and the row keeps no audio URL.
        """
        try:
            blob = await audio_store.get_blob(record.id)
            if blob is None:
                return
            url = await self.remote.upload_blob(
                self.audio_bucket,
                spec.blob_path(record.id),
                blob,
                spec.audio_content_type,
            )
            await self.remote.update_fields(spec.table, record.id, {spec.audio_field: url})
            await self.store.update(
                spec.entity_type, record.id, {"payload": {spec.audio_field: url}}
            )
        except Exception as e:
            log.warning(f"Audio upload failed for {record.id}, synced without audio: {e}")

    async def sync_all(self, church_id: str | None = None) -> SyncReport:
        """Push every pushed entity type concurrently, then refresh caches.

        While a pass is in flight, further calls return an "already syncing"
        report without starting a second pass.
        """
        if self._syncing:
            logger.info(ALREADY_SYNCING)
            return SyncReport.already_syncing()

        self._syncing = True
        report = SyncReport()
        self._update_state(status=SyncPhase.SYNCING, error=None)

        try:
            entity_types = list(self.push_specs)
            outcomes = await asyncio.gather(
                *(self.sync_entity(t) for t in entity_types),
                return_exceptions=True,
            )
            for entity_type, outcome in zip(entity_types, outcomes, strict=True):
                if isinstance(outcome, EntitySyncResult):
                    report.results[entity_type] = outcome
                elif isinstance(outcome, Exception):
                    logger.error(f"{entity_type.value} pass failed: {outcome}")
                    report.results[entity_type] = EntitySyncResult(entity_type=entity_type)
                    report.errors.append(f"{entity_type.value}: {outcome}")
                else:
                    raise outcome

            church = church_id or self.church_id
            if church and self.pull_on_sync:
                try:
                    report.pulled = await self.pull_server_data(church)
                except (RemoteError, StorageFailure) as e:
                    logger.error(f"Pull server data failed: {e}")
                    report.errors.append(f"pull: {e}")

            report.finished_at = utc_now()
            self._last_report = report
            if report.errors:
                self._update_state(status=SyncPhase.ERROR, error="; ".join(report.errors))
            else:
                self._update_state(status=SyncPhase.SUCCESS, last_sync=report.finished_at)
        finally:
            self._syncing = False
            if self._state.status == SyncPhase.SYNCING:
                self._update_state(status=SyncPhase.ERROR, error="Sync interrupted")

        logger.info(
            f"Sync complete: {report.total_synced} synced, {report.total_failed} failed, "
            f"{sum(report.pulled.values())} pulled in {report.duration_ms}ms"
        )
        return report

    # =========================================================================
    # Pull
    # =========================================================================

    async def _pull(self, spec: PullSpec, church_id: str | None) -> int:
        rows = await self.remote.select_all(
            spec.table,
            filters=spec.query_filters(church_id),
            order_by=spec.order_by,
            descending=spec.descending,
            gte=spec.lower_bounds(),
        )
        records = [spec.to_record(row) for row in rows if row.get("id")]
        return await self.store.bulk_replace(spec.entity_type, records)

    async def cache_members_for_offline(self, church_id: str | None = None) -> int:
        """Refresh the offline member directory.

        Returns:
            Number of members cached (0 when the server cannot be reached)
        """
        spec = self.pull_specs.get(EntityType.MEMBERS, MEMBERS_PULL)
        try:
            count = await self._pull(spec, church_id or self.church_id)
        except RemoteError as e:
            logger.error(f"Failed to cache members: {e}")
            return 0
        logger.info(f"Cached {count} members for offline use")
        return count

    async def pull_server_data(self, church_id: str) -> dict[EntityType, int]:
        """Refresh every read-only cache for a church.

        Returns:
            Cached record count per entity type

        Raises:
            RemoteError: If any select fails
        """
        log = SyncLoggerAdapter(logger, {"church_id": church_id})
        counts: dict[EntityType, int] = {}
        for entity_type, spec in self.pull_specs.items():
            counts[entity_type] = await self._pull(spec, church_id)
            log.debug(f"Pulled {counts[entity_type]} {entity_type.value}")
        return counts
