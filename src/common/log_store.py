"""Durable translation run logs with age-based retention."""

import logging
from datetime import datetime
from typing import List, Optional, Sequence

from redis.exceptions import RedisError

from common.config import settings
from common.redis_client import RedisClient
from common.schemas import ApiCallInfo, ErrorRecord, LogEntry, LogMetadata
from common.utils import DateTimeUtils, StringUtils

logger = logging.getLogger(__name__)

LOG_INDEX_KEY = "translation_logs:index"
LOG_ID_COUNTER_KEY = "translation_logs:next_id"


class LogStore:
    """
    Append-only store of LogEntry documents.

    Entries live under ``translation_log:{id}`` and are indexed in a sorted
    set scored by the time they were logged. Retention is by age only: every
    ``add`` first drops entries older than ``retention_days``.
    """

    def __init__(self, redis_client: RedisClient, retention_days: Optional[int] = None):
        self.redis_client = redis_client
        self.retention_days = (
            retention_days if retention_days is not None else settings.log_retention_days
        )

    async def add(
        self,
        title: str,
        errors: Sequence[ErrorRecord],
        api_calls: Sequence[ApiCallInfo],
        metadata: LogMetadata,
        logged_at: Optional[datetime] = None,
    ) -> int:
        """
        Write one log entry after evicting expired ones.

        Args:
            title: Human readable title
            errors: Errors collected during the run
            api_calls: One record per successful API call
            metadata: Run metadata (counts and timing)
            logged_at: Override for the entry timestamp

        Returns:
            Id of the new entry

        Raises:
            StoreUnavailableError: If Redis is not reachable
            RedisError: If the write fails
        """
        client = await self.redis_client.require()
        logged_at = logged_at or DateTimeUtils.get_current_utc_datetime()

        try:
            await self.evict_expired(now=logged_at)

            log_id = int(await client.incr(LOG_ID_COUNTER_KEY))
            entry = LogEntry(
                id=log_id,
                title=title,
                errors=list(errors),
                api_calls=list(api_calls),
                metadata=metadata,
                tokens_used=sum(call.tokens_used for call in api_calls),
                logged_at=logged_at,
            )

            async with client.pipeline(transaction=True) as pipe:
                pipe.set(StringUtils.generate_log_key(log_id), entry.model_dump_json())
                pipe.zadd(LOG_INDEX_KEY, {str(log_id): logged_at.timestamp()})
                await pipe.execute()
        except RedisError as e:
            logger.error(f"Failed to write translation log '{title}': {e}")
            raise

        logger.info(
            f"📝 Saved translation log {log_id} ({len(entry.errors)} errors, "
            f"{entry.tokens_used} tokens)"
        )
        return log_id

    async def evict_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete entries logged before the retention horizon.

        Returns:
            Number of entries removed
        """
        client = await self.redis_client.require()
        cutoff = DateTimeUtils.get_retention_cutoff(self.retention_days, now=now)

        expired_ids = await client.zrangebyscore(LOG_INDEX_KEY, "-inf", f"({cutoff}")
        if not expired_ids:
            return 0

        async with client.pipeline(transaction=True) as pipe:
            pipe.delete(*[StringUtils.generate_log_key(log_id) for log_id in expired_ids])
            pipe.zrem(LOG_INDEX_KEY, *expired_ids)
            await pipe.execute()

        logger.info(f"🧹 Evicted {len(expired_ids)} translation logs older than {self.retention_days} days")
        return len(expired_ids)

    async def get(self, log_id: int) -> Optional[LogEntry]:
        client = await self.redis_client.require()
        raw = await client.get(StringUtils.generate_log_key(log_id))
        if not raw:
            return None
        return LogEntry.model_validate_json(raw)

    async def get_latest(self) -> Optional[LogEntry]:
        """Most recently logged entry, or None when the store is empty."""
        latest = await self.list_logs(limit=1)
        return latest[0] if latest else None

    async def list_logs(self, limit: Optional[int] = None) -> List[LogEntry]:
        """
        Entries ordered newest first.

        Args:
            limit: Maximum number of entries, all entries when None
        """
        client = await self.redis_client.require()
        end = -1 if limit is None else limit - 1
        log_ids = await client.zrevrange(LOG_INDEX_KEY, 0, end)
        if not log_ids:
            return []

        raw_entries = await client.mget([StringUtils.generate_log_key(log_id) for log_id in log_ids])
        return [LogEntry.model_validate_json(raw) for raw in raw_entries if raw]

    async def clear_all(self) -> int:
        """
        Delete every stored log. The id counter keeps counting.

        Returns:
            Number of entries removed
        """
        client = await self.redis_client.require()
        log_ids = await client.zrange(LOG_INDEX_KEY, 0, -1)

        async with client.pipeline(transaction=True) as pipe:
            if log_ids:
                pipe.delete(*[StringUtils.generate_log_key(log_id) for log_id in log_ids])
            pipe.delete(LOG_INDEX_KEY)
            await pipe.execute()

        logger.info(f"🗑️ Cleared {len(log_ids)} translation logs")
        return len(log_ids)
