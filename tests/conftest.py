"""
Shared test configuration and fixtures.

Provides an in-memory remote data service with failure switches, and
fixtures for a real SQLite local store in a temp directory, an audio chunk
store, an event bus and a sync manager wired to all of them.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any

import pytest

from churchthrive_sync.events import EventBus
from churchthrive_sync.exceptions import RemoteError
from churchthrive_sync.local.blobs import AudioChunkStore
from churchthrive_sync.local.store import LocalStore
from churchthrive_sync.records import utc_now
from churchthrive_sync.remote.base import RemoteDataService, ServerRecord
from churchthrive_sync.sync.manager import SyncManager

logger = logging.getLogger(__name__)


class FakeRemoteDataService(RemoteDataService):
    """
    In-memory remote backend for testing without a Supabase project.

    Tables are dicts keyed by row id, so upserts are idempotent the way the
    real backend's are. Failures are switched on per table, per id or per
    operation.
    """

    def __init__(self):
        self.tables: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self.blobs: dict[tuple[str, str], bytes] = {}
        self.calls: list[tuple[str, str, Any]] = []

        self.fail_upsert_tables: set[str] = set()
        self.fail_upsert_ids: set[str] = set()
        self.fail_uploads = False
        self.fail_updates = False
        self.fail_selects = False
        self.upsert_delay = 0.0
        self.closed = False

    def seed(self, table: str, rows: list[dict[str, Any]]) -> None:
        for row in rows:
            self.tables[table][row["id"]] = dict(row)

    def calls_of(self, operation: str) -> list[tuple[str, str, Any]]:
        return [c for c in self.calls if c[0] == operation]

    async def upsert(self, table: str, row: dict[str, Any]) -> ServerRecord:
        self.calls.append(("upsert", table, dict(row)))
        if self.upsert_delay:
            await asyncio.sleep(self.upsert_delay)
        if table in self.fail_upsert_tables or row.get("id") in self.fail_upsert_ids:
            raise RemoteError("upsert", table, RuntimeError("simulated upsert failure"))
        stored = {**self.tables[table].get(row["id"], {}), **row, "updated_at": utc_now().isoformat()}
        self.tables[table][row["id"]] = stored
        return ServerRecord.from_row(stored)

    async def update_fields(
        self,
        table: str,
        record_id: str,
        fields: dict[str, Any],
    ) -> ServerRecord:
        self.calls.append(("update", table, {"id": record_id, **fields}))
        if self.fail_updates:
            raise RemoteError("update", table, RuntimeError("simulated update failure"))
        if record_id not in self.tables[table]:
            raise RemoteError("update", table, KeyError(record_id))
        self.tables[table][record_id].update(fields)
        return ServerRecord.from_row(self.tables[table][record_id])

    async def upload_blob(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        self.calls.append(("upload", bucket, path))
        if self.fail_uploads:
            raise RemoteError("upload", bucket, RuntimeError("simulated upload failure"))
        self.blobs[(bucket, path)] = data
        return f"https://storage.test/{bucket}/{path}"

    async def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        range_start: int | None = None,
        range_end: int | None = None,
        gte: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        self.calls.append(("select", table, {"filters": filters, "gte": gte}))
        if self.fail_selects:
            raise RemoteError("select", table, RuntimeError("simulated select failure"))

        rows = [dict(r) for r in self.tables[table].values()]
        for column, value in (filters or {}).items():
            rows = [r for r in rows if r.get(column) == value]
        for column, value in (gte or {}).items():
            rows = [r for r in rows if r.get(column) is not None and str(r[column]) >= str(value)]
        if order_by:
            rows.sort(key=lambda r: str(r.get(order_by) or ""), reverse=descending)
        if range_start is not None and range_end is not None:
            rows = rows[range_start : range_end + 1]
        return rows

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def remote():
    """Fresh in-memory remote backend."""
    return FakeRemoteDataService()


@pytest.fixture
async def store(tmp_path):
    """Local store on a real SQLite file in a temp directory."""
    local = await LocalStore.create(tmp_path / "offline.db")
    yield local
    await local.close()


@pytest.fixture
def audio_store(tmp_path):
    return AudioChunkStore(tmp_path / "audio")


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def manager(store, remote, bus, audio_store):
    """Sync manager wired to the local store, fake remote and audio chunks."""
    return SyncManager(store, remote, bus=bus, audio_store=audio_store)
