"""Tests for the progress store."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from common.progress_store import ProgressStore
from common.redis_client import RedisClient, StoreUnavailableError
from common.schemas import ErrorRecord, LogMetadata


def _metadata():
    now = datetime.now(timezone.utc)
    return LogMetadata(
        project_id=7,
        set_id=12,
        translated_items=3,
        total_items=3,
        started_at=now,
        finished_at=now,
        duration_seconds=0.0,
    )


@pytest.mark.asyncio
class TestProgressStore:
    """Reading, writing and expiring progress records."""

    async def test_read_missing_record_is_zero(self, progress_store):
        record = await progress_store.read(7, 12)

        assert record.translated == 0
        assert record.total == 0
        assert record.completed is False
        assert record.log_url is None
        assert record.success is None

    async def test_write_then_read_in_flight(self, progress_store):
        await progress_store.write(7, 12, 50, 120)

        record = await progress_store.read(7, 12)

        assert (record.translated, record.total, record.completed) == (50, 120, False)
        assert record.log_id is None
        assert record.success is None

    async def test_write_sets_expiry(self, progress_store, fake_redis_client):
        await progress_store.write(7, 12, 0, 10)

        ttl = await fake_redis_client.ttl("translation_progress:7:12")
        assert 0 < ttl <= 3600

    async def test_rewrite_resets_expiry(self, progress_store, fake_redis_client):
        key = "translation_progress:7:12"
        await progress_store.write(7, 12, 0, 10)
        await fake_redis_client.expire(key, 5)

        await progress_store.write(7, 12, 5, 10)

        assert await fake_redis_client.ttl(key) > 5

    async def test_log_id_is_stored_only_when_present(self, progress_store, fake_redis_client):
        await progress_store.write(7, 12, 0, 10)
        assert "log_id" not in await fake_redis_client.get("translation_progress:7:12")

        await progress_store.write(7, 12, 10, 10, completed=True, log_id=4)
        assert '"log_id": 4' in await fake_redis_client.get("translation_progress:7:12")

    async def test_completed_record_with_clean_log_is_successful(self, progress_store, log_store):
        log_id = await log_store.add("run", [], [], _metadata())
        await progress_store.write(7, 12, 3, 3, completed=True, log_id=log_id)

        record = await progress_store.read(7, 12)

        assert record.completed is True
        assert record.success is True
        assert record.log_url == f"/logs/{log_id}"

    async def test_completed_record_with_errors_is_not_successful(self, progress_store, log_store):
        log_id = await log_store.add(
            "run", [ErrorRecord(message="boom", code="api_error")], [], _metadata()
        )
        await progress_store.write(7, 12, 0, 3, completed=True, log_id=log_id)

        record = await progress_store.read(7, 12)

        assert record.success is False

    async def test_completed_record_with_missing_log_is_not_successful(self, progress_store):
        await progress_store.write(7, 12, 0, 3, completed=True, log_id=999)

        record = await progress_store.read(7, 12)

        assert record.success is False
        assert record.log_url == "/logs/999"

    async def test_delete_is_idempotent(self, progress_store):
        await progress_store.write(7, 12, 1, 2)

        await progress_store.delete(7, 12)
        await progress_store.delete(7, 12)

        assert await progress_store.get(7, 12) is None

    async def test_records_are_keyed_per_project_and_set(self, progress_store):
        await progress_store.write(7, 12, 1, 2)
        await progress_store.write(7, 13, 2, 4)

        assert (await progress_store.read(7, 12)).translated == 1
        assert (await progress_store.read(7, 13)).translated == 2
        assert (await progress_store.read(8, 12)).translated == 0

    async def test_unavailable_redis_raises(self):
        client = RedisClient(url="redis://unused")
        store = ProgressStore(client)

        with patch.object(client, "connect", AsyncMock()):
            with pytest.raises(StoreUnavailableError):
                await store.write(7, 12, 0, 0)
