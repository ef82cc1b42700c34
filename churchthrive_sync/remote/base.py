"""
Abstract remote data service interface.

Defines the contract the sync manager needs from the backend: idempotent
upserts keyed by id, field patches, blob uploads and filtered selects.
Implementations raise RemoteError for every failure; callers never branch
on backend error codes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..records import parse_timestamp

DEFAULT_AUDIO_BUCKET = "audio"

# Supabase (PostgREST) caps a single select at 1000 rows
DEFAULT_PAGE_SIZE = 1000


@dataclass
class ServerRecord:
    """A row as acknowledged by the server."""

    id: str
    data: dict[str, Any] = field(default_factory=dict)
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any], fallback_id: str | None = None) -> ServerRecord:
        """Build from a returned row, reading updated_at when present."""
        return cls(
            id=str(row.get("id") or fallback_id or ""),
            data=dict(row),
            updated_at=parse_timestamp(row.get("updated_at")),
        )


class RemoteDataService(ABC):
    """Remote relational backend plus object storage."""

    @abstractmethod
    async def upsert(self, table: str, row: dict[str, Any]) -> ServerRecord:
        """Insert or update a row keyed by row["id"].

        Repeating the call with the same row leaves one row on the server.

        Raises:
            RemoteError: On any backend failure
        """
        ...

    @abstractmethod
    async def update_fields(
        self,
        table: str,
        record_id: str,
        fields: dict[str, Any],
    ) -> ServerRecord:
        """Patch fields of an existing row."""
        ...

    @abstractmethod
    async def upload_blob(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Upload (overwriting) an object and return its public URL."""
        ...

    @abstractmethod
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
        """Select rows.

        Args:
            table: Remote table name
            filters: Column equality filters
            order_by: Sort column
            descending: Sort direction
            range_start: First row index (inclusive)
            range_end: Last row index (inclusive)
            gte: Column lower bounds (column >= value)

        Returns:
            Rows as dictionaries
        """
        ...

    async def select_all(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        gte: dict[str, Any] | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> list[dict[str, Any]]:
        """Select every matching row, paging past the backend row limit."""
        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            batch = await self.select(
                table,
                filters=filters,
                order_by=order_by,
                descending=descending,
                range_start=offset,
                range_end=offset + page_size - 1,
                gte=gte,
            )
            rows.extend(batch)
            if len(batch) < page_size:
                return rows
            offset += page_size

    async def close(self) -> None:
        """Release network resources."""
        return None

    async def __aenter__(self) -> RemoteDataService:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
