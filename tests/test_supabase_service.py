"""
Tests for the Supabase remote data service.

The supabase client is replaced by a mock; these tests check the calls
made on it and the error normalization.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from churchthrive_sync.exceptions import AuthenticationError, RemoteError
from churchthrive_sync.remote.supabase import RemoteConfig, SupabaseDataService


def make_client(data=None, execute_error=None):
    """Mock client whose query builder returns itself for every chained call."""
    builder = MagicMock()
    for method in ("select", "upsert", "update", "eq", "gte", "order", "range"):
        getattr(builder, method).return_value = builder
    builder.execute = AsyncMock(
        return_value=SimpleNamespace(data=data if data is not None else []),
        side_effect=execute_error,
    )

    bucket = MagicMock()
    bucket.upload = AsyncMock()
    bucket.get_public_url = AsyncMock(side_effect=lambda path: f"https://cdn.test/{path}")

    client = MagicMock()
    client.table.return_value = builder
    client.storage.from_.return_value = bucket
    client.postgrest.aclose = AsyncMock()
    return client, builder, bucket


def make_service(**kwargs):
    client, builder, bucket = make_client(**kwargs)
    service = SupabaseDataService(RemoteConfig(url="https://p.supabase.co", key="k"), client=client)
    return service, client, builder, bucket


class TestRemoteConfig:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://p.supabase.co")
        monkeypatch.setenv("SUPABASE_KEY", "anon")
        monkeypatch.delenv("CHURCHTHRIVE_AUDIO_BUCKET", raising=False)

        config = RemoteConfig.from_env()

        assert config.url == "https://p.supabase.co"
        assert config.bucket == "audio"

    def test_missing_env(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.setenv("SUPABASE_KEY", "anon")
        with pytest.raises(AuthenticationError):
            RemoteConfig.from_env()


class TestTables:
    """Tests for table operations."""

    @pytest.mark.asyncio
    async def test_upsert_on_id(self):
        service, client, builder, _ = make_service(
            data=[{"id": "n1", "updated_at": "2026-10-19T08:00:00+00:00"}]
        )
        row = {"id": "n1", "title": "t"}

        record = await service.upsert("sermon_notes", row)

        client.table.assert_called_with("sermon_notes")
        builder.upsert.assert_called_once_with(row, on_conflict="id")
        assert record.id == "n1"
        assert record.updated_at.isoformat() == "2026-10-19T08:00:00+00:00"

    @pytest.mark.asyncio
    async def test_upsert_without_returned_rows(self):
        service, *_ = make_service(data=[])
        record = await service.upsert("attendances", {"id": "a1"})
        assert record.id == "a1"
        assert record.updated_at is None

    @pytest.mark.asyncio
    async def test_upsert_requires_id(self):
        service, *_ = make_service()
        with pytest.raises(RemoteError):
            await service.upsert("sermon_notes", {"title": "no id"})

    @pytest.mark.asyncio
    async def test_backend_errors_become_remote_error(self):
        service, *_ = make_service(execute_error=RuntimeError("HTTP 503"))
        with pytest.raises(RemoteError) as exc_info:
            await service.upsert("sermon_notes", {"id": "n1"})
        assert exc_info.value.table == "sermon_notes"
        assert "HTTP 503" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_update_fields(self):
        service, _, builder, _ = make_service(data=[{"id": "n1", "audio_url": "u"}])

        record = await service.update_fields("sermon_notes", "n1", {"audio_url": "u"})

        builder.update.assert_called_once_with({"audio_url": "u"})
        builder.eq.assert_called_once_with("id", "n1")
        assert record.data["audio_url"] == "u"

    @pytest.mark.asyncio
    async def test_select_builds_query(self):
        rows = [{"id": "s1"}]
        service, _, builder, _ = make_service(data=rows)

        result = await service.select(
            "sermons",
            filters={"church_id": "c1"},
            order_by="date",
            descending=True,
            range_start=0,
            range_end=999,
            gte={"date": "2026-09-19"},
        )

        assert result == rows
        builder.select.assert_called_once_with("*")
        builder.eq.assert_called_once_with("church_id", "c1")
        builder.gte.assert_called_once_with("date", "2026-09-19")
        builder.order.assert_called_once_with("date", desc=True)
        builder.range.assert_called_once_with(0, 999)

    @pytest.mark.asyncio
    async def test_select_all_pages(self):
        service, _, builder, _ = make_service()
        builder.execute.side_effect = [
            SimpleNamespace(data=[{"id": "1"}, {"id": "2"}]),
            SimpleNamespace(data=[{"id": "3"}]),
        ]

        rows = await service.select_all("members", page_size=2)

        assert [r["id"] for r in rows] == ["1", "2", "3"]
        assert [c.args for c in builder.range.call_args_list] == [(0, 1), (2, 3)]


class TestStorage:
    """Tests for blob uploads."""

    @pytest.mark.asyncio
    async def test_upload_returns_public_url(self):
        service, client, _, bucket = make_service()

        url = await service.upload_blob("audio", "notes/n1/audio.webm", b"data", "audio/webm")

        client.storage.from_.assert_called_with("audio")
        bucket.upload.assert_awaited_once_with(
            "notes/n1/audio.webm",
            b"data",
            {"content-type": "audio/webm", "upsert": "true"},
        )
        assert url == "https://cdn.test/notes/n1/audio.webm"

    @pytest.mark.asyncio
    async def test_upload_error(self):
        service, _, _, bucket = make_service()
        bucket.upload.side_effect = RuntimeError("bucket not found")
        with pytest.raises(RemoteError):
            await service.upload_blob("audio", "p", b"x")


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_close(self):
        service, client, _, _ = make_service()
        async with service:
            pass
        client.postgrest.aclose.assert_awaited_once()
        with pytest.raises(RemoteError):
            _ = service.client

    def test_requires_credentials(self):
        with pytest.raises(AuthenticationError):
            SupabaseDataService(RemoteConfig(url="", key=""))
