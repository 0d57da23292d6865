"""Process-wide translation statistics stored in a Redis hash."""

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Dict, Optional

from common.redis_client import RedisClient
from common.schemas import StatsSnapshot
from common.utils import DateTimeUtils

if TYPE_CHECKING:
    from common.log_store import LogStore

logger = logging.getLogger(__name__)

STATS_KEY = "translation_stats"
COUNTER_FIELDS = ("translations_started", "tokens_used")


class StatsCounter:
    """Running totals of runs started and tokens used across all runs."""

    def __init__(self, redis_client: RedisClient):
        self.redis_client = redis_client

    async def get_stats(self) -> StatsSnapshot:
        client = await self.redis_client.require()
        raw = await client.hgetall(STATS_KEY)
        return StatsSnapshot(
            translations_started=int(raw.get("translations_started", 0)),
            tokens_used=int(raw.get("tokens_used", 0)),
            last_reset=_parse_datetime(raw.get("last_reset")),
            last_updated=_parse_datetime(raw.get("last_updated")),
        )

    async def increment_translations_started(self, count: int = 1) -> int:
        client = await self.redis_client.require()
        async with client.pipeline(transaction=True) as pipe:
            pipe.hincrby(STATS_KEY, "translations_started", count)
            pipe.hset(STATS_KEY, "last_updated", _now_iso())
            new_value, _ = await pipe.execute()
        return int(new_value)

    async def add_tokens_used(self, tokens: int) -> Optional[int]:
        """
        Add tokens to the running total.

        Non-positive amounts are ignored.

        Returns:
            New total, or None when nothing was added
        """
        if tokens <= 0:
            return None

        client = await self.redis_client.require()
        async with client.pipeline(transaction=True) as pipe:
            pipe.hincrby(STATS_KEY, "tokens_used", tokens)
            pipe.hset(STATS_KEY, "last_updated", _now_iso())
            new_value, _ = await pipe.execute()
        return int(new_value)

    async def record_run(self, tokens_used: int) -> None:
        """Account for one finished run."""
        await self.increment_translations_started()
        await self.add_tokens_used(tokens_used)
        logger.debug(f"Stats updated: +1 run, +{tokens_used} tokens")

    async def get_stat(self, stat_name: str) -> int:
        """
        Read a single counter.

        Raises:
            ValueError: If stat_name is not a known counter
        """
        if stat_name not in COUNTER_FIELDS:
            raise ValueError(f"Unknown stat '{stat_name}'")
        client = await self.redis_client.require()
        return int(await client.hget(STATS_KEY, stat_name) or 0)

    async def set_stat(self, stat_name: str, value: int) -> None:
        """
        Overwrite a single counter.

        Raises:
            ValueError: If stat_name is not a known counter or value is negative
        """
        if stat_name not in COUNTER_FIELDS:
            raise ValueError(f"Unknown stat '{stat_name}'")
        if value < 0:
            raise ValueError(f"Stat '{stat_name}' cannot be negative")

        client = await self.redis_client.require()
        await client.hset(
            STATS_KEY, mapping={stat_name: int(value), "last_updated": _now_iso()}
        )

    async def update_stats(self, values: Dict[str, int]) -> StatsSnapshot:
        """Overwrite several counters at once; unknown names are rejected."""
        unknown = set(values) - set(COUNTER_FIELDS)
        if unknown:
            raise ValueError(f"Unknown stats: {', '.join(sorted(unknown))}")

        client = await self.redis_client.require()
        mapping = {name: int(value) for name, value in values.items()}
        mapping["last_updated"] = _now_iso()
        await client.hset(STATS_KEY, mapping=mapping)
        return await self.get_stats()

    async def reset_stats(self) -> StatsSnapshot:
        client = await self.redis_client.require()
        now = _now_iso()
        await client.hset(
            STATS_KEY,
            mapping={
                "translations_started": 0,
                "tokens_used": 0,
                "last_reset": now,
                "last_updated": now,
            },
        )
        logger.info("🔄 Translation stats reset")
        return await self.get_stats()

    @staticmethod
    async def calculate_stats_from_logs(log_store: "LogStore") -> Dict[str, int]:
        """
        Recompute totals from retained logs: one run per log entry and the
        sum of their token counts.
        """
        entries = await log_store.list_logs()
        return {
            "translations_started": len(entries),
            "tokens_used": sum(entry.tokens_used for entry in entries),
        }

    async def sync_stats_with_logs(self, log_store: "LogStore") -> StatsSnapshot:
        """Replace the counters with values recomputed from the log store."""
        calculated = await self.calculate_stats_from_logs(log_store)
        snapshot = await self.update_stats(calculated)
        logger.info(
            f"🔄 Stats synced from logs: {snapshot.translations_started} runs, "
            f"{snapshot.tokens_used} tokens"
        )
        return snapshot


def _now_iso() -> str:
    return DateTimeUtils.get_current_utc_datetime().isoformat()


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)
