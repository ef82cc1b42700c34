"""
Supabase implementation of the remote data service.

Wraps the async supabase client (PostgREST tables plus Storage buckets).
Every failure, whatever its origin (HTTP transport, PostgREST API error,
storage error), is re-raised as RemoteError.
"""

import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from supabase import AsyncClient, acreate_client

from ..exceptions import AuthenticationError, RemoteError, StorageConnectionError
from .base import DEFAULT_AUDIO_BUCKET, RemoteDataService, ServerRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RemoteConfig:
    """Configuration for the Supabase connection.

    Attributes:
        url: Project URL (https://<project>.supabase.co)
        key: Anon or service-role key
        bucket: Storage bucket for note audio
    """

    url: str
    key: str
    bucket: str = DEFAULT_AUDIO_BUCKET

    @classmethod
    def from_env(cls) -> "RemoteConfig":
        """Create config from environment variables.

        Expected environment variables:
        - SUPABASE_URL: Project URL
        - SUPABASE_KEY: API key
        - CHURCHTHRIVE_AUDIO_BUCKET: Audio bucket (default: audio)

        Raises:
            AuthenticationError: If required environment variables are missing
        """
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_KEY")

        if not url:
            raise AuthenticationError("supabase", "SUPABASE_URL environment variable not set")
        if not key:
            raise AuthenticationError("supabase", "SUPABASE_KEY environment variable not set")

        return cls(
            url=url,
            key=key,
            bucket=os.environ.get("CHURCHTHRIVE_AUDIO_BUCKET", DEFAULT_AUDIO_BUCKET),
        )


class SupabaseDataService(RemoteDataService):
    """RemoteDataService backed by a Supabase project.

    Usage:
        async with SupabaseDataService(RemoteConfig.from_env()) as remote:
            await remote.upsert("sermon_notes", {"id": "...", "title": "..."})
    """

    def __init__(self, config: RemoteConfig, client: AsyncClient | None = None):
        """
        Args:
            config: Connection settings
            client: Pre-built client (skips acreate_client)
        """
        if not config.url or not config.key:
            raise AuthenticationError(config.url or "supabase", "url and key are required")
        self.config = config
        self._client: AsyncClient | None = client
        self._initialized = client is not None

    @classmethod
    async def create(cls, config: RemoteConfig | None = None) -> "SupabaseDataService":
        """Create a connected service (config defaults to the environment)."""
        service = cls(config or RemoteConfig.from_env())
        await service.initialize()
        return service

    async def initialize(self) -> None:
        if self._initialized:
            return
        try:
            self._client = await acreate_client(self.config.url, self.config.key)
        except Exception as e:
            raise StorageConnectionError(self.config.url, e) from e
        self._initialized = True
        logger.info(f"Connected to Supabase at {self.config.url}")

    async def close(self) -> None:
        """Close the PostgREST HTTP session."""
        if self._client is not None:
            await self._client.postgrest.aclose()
            self._client = None
            self._initialized = False

    async def __aenter__(self) -> "SupabaseDataService":
        await self.initialize()
        return self

    @property
    def client(self) -> AsyncClient:
        if self._client is None:
            raise RemoteError("connect", cause=RuntimeError("Client not initialized"))
        return self._client

    async def _call(
        self,
        operation: str,
        table: str,
        action: Callable[[], Awaitable[T]],
    ) -> T:
        """Run one backend call, normalizing every failure to RemoteError."""
        try:
            return await action()
        except RemoteError:
            raise
        except Exception as e:
            raise RemoteError(operation, table, e) from e

    # =========================================================================
    # Tables
    # =========================================================================

    async def upsert(self, table: str, row: dict[str, Any]) -> ServerRecord:
        if not row.get("id"):
            raise RemoteError("upsert", table, ValueError("row has no id"))

        async def action() -> Any:
            return await self.client.table(table).upsert(row, on_conflict="id").execute()

        response = await self._call("upsert", table, action)
        rows = response.data or []
        return ServerRecord.from_row(rows[0] if rows else row, fallback_id=row["id"])

    async def update_fields(
        self,
        table: str,
        record_id: str,
        fields: dict[str, Any],
    ) -> ServerRecord:
        async def action() -> Any:
            return await self.client.table(table).update(fields).eq("id", record_id).execute()

        response = await self._call("update", table, action)
        rows = response.data or []
        if not rows:
            return ServerRecord(id=record_id, data=dict(fields))
        return ServerRecord.from_row(rows[0], fallback_id=record_id)

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
        async def action() -> Any:
            query = self.client.table(table).select("*")
            for column, value in (filters or {}).items():
                query = query.eq(column, value)
            for column, value in (gte or {}).items():
                query = query.gte(column, value)
            if order_by:
                query = query.order(order_by, desc=descending)
            if range_start is not None and range_end is not None:
                query = query.range(range_start, range_end)
            return await query.execute()

        response = await self._call("select", table, action)
        return list(response.data or [])

    # =========================================================================
    # Storage
    # =========================================================================

    async def upload_blob(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        async def action() -> str:
            storage = self.client.storage.from_(bucket)
            await storage.upload(
                path,
                data,
                {"content-type": content_type, "upsert": "true"},
            )
            return await storage.get_public_url(path)

        url = await self._call("upload", bucket, action)
        logger.debug(f"Uploaded {len(data)} bytes to {bucket}/{path}")
        return url
