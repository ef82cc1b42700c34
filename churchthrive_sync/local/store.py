"""
SQLite-backed local store for syncable records.

One table per entity type. Every write commits before returning, so a
query issued afterwards in the same process observes it. SQLite and I/O
errors surface as StorageFailure.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import sqlite3
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from ..exceptions import (
    RecordNotFoundError,
    SchemaMigrationError,
    StorageFailure,
    ValidationFailure,
)
from ..records import EntityType, SyncableRecord, SyncStatus, parse_timestamp, utc_now
from .schema import DEFAULT_SCHEMA, RECORD_COLUMNS, AppSchema, TableSchema

logger = logging.getLogger(__name__)

# Patch keys that address record columns rather than payload fields
_RECORD_FIELDS = {"payload", "sync_status", "created_at", "updated_at", "server_updated_at"}

_SELECT_COLUMNS = ", ".join(RECORD_COLUMNS)

RecordPredicate = Callable[[SyncableRecord], bool]


class LocalStore:
    """Durable local persistence of syncable records.

    Usage:
        store = await LocalStore.create("~/.churchthrive/offline.db")
        note = await store.insert(SyncableRecord.new(EntityType.NOTES, {"title": "t"}))
        pending = await store.pending(EntityType.NOTES)
        await store.close()
    """

    def __init__(self, db_path: str | Path = ":memory:", schema: AppSchema = DEFAULT_SCHEMA):
        """
        Initialize the store (call open() or use create()).

        Args:
            db_path: SQLite database file, or ":memory:"
            schema: Table declarations and migration history
        """
        self.db_path = db_path
        self.schema = schema
        self.conn: aiosqlite.Connection | None = None
        self._initialized = False
        # Serializes read-modify-write sequences on the shared connection
        self._write_lock = asyncio.Lock()

    @classmethod
    async def create(
        cls,
        db_path: str | Path = ":memory:",
        schema: AppSchema = DEFAULT_SCHEMA,
    ) -> LocalStore:
        """Create and open a store."""
        store = cls(db_path, schema)
        await store.open()
        return store

    async def __aenter__(self) -> LocalStore:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # =========================================================================
    # Lifecycle & schema
    # =========================================================================

    async def open(self) -> None:
        """Open the database, creating or migrating the schema."""
        if self._initialized:
            return

        path = str(self.db_path)
        try:
            if path != ":memory:":
                Path(path).expanduser().parent.mkdir(parents=True, exist_ok=True)
                path = str(Path(path).expanduser())
            self.conn = await aiosqlite.connect(path)
            await self._ensure_schema()
        except SchemaMigrationError:
            await self.close()
            raise
        except (sqlite3.Error, OSError) as e:
            await self.close()
            raise StorageFailure("open", path, e) from e

        self._initialized = True
        logger.info(f"Local store opened: {path} (schema v{self.schema.version})")

    async def close(self) -> None:
        """Close the database connection."""
        if self.conn is not None:
            await self.conn.close()
            self.conn = None
        self._initialized = False

    async def _ensure_schema(self) -> None:
        conn = self._require_conn("open")
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_meta (
                key TEXT PRIMARY KEY,
                value TEXT
            )
        """)

        stored_version = await self._get_schema_version()
        try:
            if stored_version is None:
                for table in self.schema.tables:
                    for statement in table.create_statements():
                        await conn.execute(statement)
                await self._set_schema_version(self.schema.version)
            else:
                for migration in self.schema.migrations_after(stored_version):
                    logger.info(f"Migrating local schema to v{migration.to_version}")
                    for step in migration.steps:
                        for statement in step.statements():
                            await conn.execute(statement)
                    await self._set_schema_version(migration.to_version)
            await conn.commit()
        except sqlite3.Error as e:
            await conn.rollback()
            raise SchemaMigrationError(str(e), stored_version, self.schema.version) from e

    async def _get_schema_version(self) -> int | None:
        """Get the stored schema version (None for a fresh database)."""
        conn = self._require_conn("schema_version")
        async with conn.execute("SELECT value FROM schema_meta WHERE key = 'version'") as cursor:
            row = await cursor.fetchone()
            return int(row[0]) if row else None

    async def _set_schema_version(self, version: int) -> None:
        conn = self._require_conn("schema_version")
        await conn.execute(
            """
            INSERT INTO schema_meta (key, value) VALUES ('version', ?)
            ON CONFLICT (key) DO UPDATE SET value = excluded.value
            """,
            (str(version),),
        )

    async def schema_version(self) -> int | None:
        """Schema version recorded in the database."""
        return await self._get_schema_version()

    # =========================================================================
    # Record operations
    # =========================================================================

    async def insert(self, record: SyncableRecord) -> SyncableRecord:
        """Insert a new record as pending.

        Raises:
            StorageFailure: If the id already exists or the write fails
        """
        stored = dataclasses.replace(record, sync_status=SyncStatus.PENDING)
        table = self._table(stored.entity_type)
        columns = RECORD_COLUMNS + table.column_names
        placeholders = ", ".join("?" for _ in columns)
        conn = self._require_conn("insert")

        async with self._write_lock:
            try:
                await conn.execute(
                    f"INSERT INTO {table.name} ({', '.join(columns)}) VALUES ({placeholders})",
                    self._row_values(stored, table),
                )
                await conn.commit()
            except sqlite3.Error as e:
                await conn.rollback()
                raise StorageFailure("insert", f"{table.name}/{stored.id}", e) from e

        return stored

    async def get(self, entity_type: EntityType, record_id: str) -> SyncableRecord | None:
        """Get a record by id."""
        table = self._table(entity_type)
        conn = self._require_conn("get")
        try:
            async with conn.execute(
                f"SELECT {_SELECT_COLUMNS} FROM {table.name} WHERE id = ?",
                (record_id,),
            ) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageFailure("get", f"{table.name}/{record_id}", e) from e
        return self._row_to_record(entity_type, row) if row else None

    async def update(
        self,
        entity_type: EntityType,
        record_id: str,
        patch: dict[str, Any],
    ) -> SyncableRecord:
        """Merge a patch into an existing record.

        Keys naming record fields (sync_status, updated_at, server_updated_at,
        created_at) replace them; a "payload" dict is shallow-merged into the
        payload; any other key is merged into the payload directly.
        sync_status only changes when the patch sets it.

        Raises:
            RecordNotFoundError: If the record does not exist
            StorageFailure: If the write fails
        """
        async with self._write_lock:
            existing = await self.get(entity_type, record_id)
            if existing is None:
                raise RecordNotFoundError(entity_type.value, record_id)
            updated = _apply_patch(existing, patch)
            await self._write(updated, "update")
        return updated

    async def touch(
        self,
        entity_type: EntityType,
        record_id: str,
        payload_patch: dict[str, Any],
    ) -> SyncableRecord:
        """Apply a user edit: merge payload, bump updated_at, mark pending."""
        return await self.update(
            entity_type,
            record_id,
            {
                "payload": payload_patch,
                "updated_at": utc_now(),
                "sync_status": SyncStatus.PENDING,
            },
        )

    async def mark_synced(
        self,
        record: SyncableRecord,
        server_updated_at: Any = None,
    ) -> bool:
        """Flip a record to synced if it was not edited since it was read.

        The flip only applies while the stored updated_at still equals the
        one on `record`, so an edit made during the upload stays pending.

        Returns:
            True if the record is now synced
        """
        table = self._table(record.entity_type)
        conn = self._require_conn("mark_synced")
        confirmed = parse_timestamp(server_updated_at) or utc_now()

        async with self._write_lock:
            try:
                cursor = await conn.execute(
                    f"""
                    UPDATE {table.name}
                    SET sync_status = ?, server_updated_at = ?
                    WHERE id = ? AND updated_at = ?
                    """,
                    (
                        SyncStatus.SYNCED.value,
                        _timestamp(confirmed),
                        record.id,
                        _timestamp(record.updated_at),
                    ),
                )
                changed = cursor.rowcount
                await conn.commit()
            except sqlite3.Error as e:
                await conn.rollback()
                raise StorageFailure("mark_synced", f"{table.name}/{record.id}", e) from e

        return changed > 0

    async def delete(self, entity_type: EntityType, record_id: str) -> bool:
        """Delete a record. Returns False if it did not exist."""
        table = self._table(entity_type)
        conn = self._require_conn("delete")
        async with self._write_lock:
            try:
                cursor = await conn.execute(
                    f"DELETE FROM {table.name} WHERE id = ?", (record_id,)
                )
                deleted = cursor.rowcount
                await conn.commit()
            except sqlite3.Error as e:
                await conn.rollback()
                raise StorageFailure("delete", f"{table.name}/{record_id}", e) from e
        return deleted > 0

    async def query(
        self,
        entity_type: EntityType,
        predicate: RecordPredicate | None = None,
        sync_status: SyncStatus | None = None,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[SyncableRecord]:
        """Return records matching the filters, oldest first.

        Args:
            entity_type: Table to query
            predicate: Python filter applied after the SQL filters
            sync_status: Only records in this status
            where: Equality filters on id or projected columns
            limit: Maximum rows read from SQL
        """
        table = self._table(entity_type)
        where_parts: list[str] = []
        params: list[Any] = []

        if sync_status is not None:
            where_parts.append("sync_status = ?")
            params.append(sync_status.value)

        for column, value in (where or {}).items():
            if column != "id" and column not in table.column_names:
                raise ValidationFailure(column, f"not a filterable column of {table.name}")
            where_parts.append(f"{column} = ?")
            params.append(_column_value(value))

        sql = f"SELECT {_SELECT_COLUMNS} FROM {table.name}"
        if where_parts:
            sql += " WHERE " + " AND ".join(where_parts)
        sql += " ORDER BY created_at ASC, id ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        conn = self._require_conn("query")
        try:
            async with conn.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StorageFailure("query", table.name, e) from e

        records = [self._row_to_record(entity_type, row) for row in rows]
        if predicate is not None:
            records = [r for r in records if predicate(r)]
        return records

    async def pending(self, entity_type: EntityType) -> list[SyncableRecord]:
        """All records of a type waiting for upload."""
        return await self.query(entity_type, sync_status=SyncStatus.PENDING)

    async def count(self, entity_type: EntityType, sync_status: SyncStatus | None = None) -> int:
        """Count records, optionally in one status."""
        table = self._table(entity_type)
        sql = f"SELECT COUNT(*) FROM {table.name}"
        params: tuple[Any, ...] = ()
        if sync_status is not None:
            sql += " WHERE sync_status = ?"
            params = (sync_status.value,)

        conn = self._require_conn("count")
        try:
            async with conn.execute(sql, params) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageFailure("count", table.name, e) from e
        return int(row[0]) if row else 0

    async def bulk_replace(
        self,
        entity_type: EntityType,
        records: Iterable[SyncableRecord],
    ) -> int:
        """Clear a table and repopulate it in one transaction.

        Used for read-only caches refreshed wholesale from the server.
        Records keep the sync status they carry.

        Returns:
            Number of records written
        """
        table = self._table(entity_type)
        records = list(records)
        for record in records:
            if record.entity_type != entity_type:
                raise ValidationFailure(
                    "entity_type",
                    f"expected {entity_type.value}",
                    record.entity_type.value,
                )

        columns = RECORD_COLUMNS + table.column_names
        placeholders = ", ".join("?" for _ in columns)
        conn = self._require_conn("bulk_replace")

        async with self._write_lock:
            try:
                await conn.execute(f"DELETE FROM {table.name}")
                await conn.executemany(
                    f"INSERT INTO {table.name} ({', '.join(columns)}) VALUES ({placeholders})",
                    [self._row_values(r, table) for r in records],
                )
                await conn.commit()
            except sqlite3.Error as e:
                await conn.rollback()
                raise StorageFailure("bulk_replace", table.name, e) from e

        logger.debug(f"Replaced {table.name} cache with {len(records)} records")
        return len(records)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_conn(self, operation: str) -> aiosqlite.Connection:
        if self.conn is None:
            raise StorageFailure(operation, str(self.db_path), RuntimeError("Not initialized"))
        return self.conn

    def _table(self, entity_type: EntityType) -> TableSchema:
        return self.schema.table(entity_type.value)

    async def _write(self, record: SyncableRecord, operation: str) -> None:
        table = self._table(record.entity_type)
        columns = RECORD_COLUMNS[1:] + table.column_names
        assignments = ", ".join(f"{c} = ?" for c in columns)
        values = self._row_values(record, table)[1:]
        conn = self._require_conn(operation)
        try:
            await conn.execute(
                f"UPDATE {table.name} SET {assignments} WHERE id = ?",
                (*values, record.id),
            )
            await conn.commit()
        except sqlite3.Error as e:
            await conn.rollback()
            raise StorageFailure(operation, f"{table.name}/{record.id}", e) from e

    @staticmethod
    def _row_values(record: SyncableRecord, table: TableSchema) -> tuple[Any, ...]:
        values: list[Any] = [
            record.id,
            json.dumps(record.payload, ensure_ascii=False, default=str),
            record.sync_status.value,
            _timestamp(record.created_at),
            _timestamp(record.updated_at),
            _timestamp(record.server_updated_at) if record.server_updated_at else None,
        ]
        for column in table.columns:
            value = _column_value(record.payload.get(column.name))
            if value is not None and column.type == "boolean":
                value = int(bool(value))
            values.append(value)
        return tuple(values)

    @staticmethod
    def _row_to_record(entity_type: EntityType, row: Any) -> SyncableRecord:
        record_id, payload, sync_status, created_at, updated_at, server_updated_at = row[:6]
        return SyncableRecord(
            id=record_id,
            entity_type=entity_type,
            payload=json.loads(payload) if payload else {},
            sync_status=SyncStatus(sync_status),
            created_at=parse_timestamp(created_at) or utc_now(),
            updated_at=parse_timestamp(updated_at) or utc_now(),
            server_updated_at=parse_timestamp(server_updated_at),
        )


def _timestamp(value: datetime) -> str:
    """Fixed-width UTC ISO string, so text order matches time order."""
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _column_value(value: Any) -> Any:
    """Convert a payload value into something SQLite can bind."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return value


def _apply_patch(record: SyncableRecord, patch: dict[str, Any]) -> SyncableRecord:
    payload = dict(record.payload)
    changes: dict[str, Any] = {}

    for key, value in patch.items():
        if key == "payload":
            payload.update(value or {})
        elif key == "sync_status":
            changes[key] = value if isinstance(value, SyncStatus) else SyncStatus(value)
        elif key in _RECORD_FIELDS:
            changes[key] = parse_timestamp(value)
        else:
            payload[key] = value

    if changes.get("created_at") is None:
        changes.pop("created_at", None)
    if changes.get("updated_at") is None:
        changes.pop("updated_at", None)

    return dataclasses.replace(record, payload=payload, **changes)
