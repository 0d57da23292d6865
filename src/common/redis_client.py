"""Shared async Redis connection used by every store."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from common.config import settings

logger = logging.getLogger(__name__)

# A successful ping is trusted for this long before pinging again
HEALTH_CHECK_INTERVAL_SECONDS = 10
PING_TIMEOUT_SECONDS = 5.0


class StoreUnavailableError(RuntimeError):
    """Raised when a store operation runs without a usable Redis connection."""


class RedisClient:
    """
    Async Redis connection shared by the progress, log, stats, settings and
    translation stores.

    Stores never talk to ``self.client`` directly; they call ``require()``,
    which reconnects when the last ping is stale or failed and raises
    StoreUnavailableError when Redis stays unreachable.
    """

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.redis_url
        self.client: Optional[Redis] = None
        self.connected: bool = False
        self._reconnect_lock: Optional[asyncio.Lock] = None
        self._last_health_check: Optional[datetime] = None

    @property
    def reconnect_lock(self) -> asyncio.Lock:
        # Created lazily so it binds to the running event loop
        if self._reconnect_lock is None:
            self._reconnect_lock = asyncio.Lock()
        return self._reconnect_lock

    @staticmethod
    def _backoff_delay(attempt: int) -> float:
        return min(
            settings.redis_reconnect_initial_delay * (2**attempt),
            settings.redis_reconnect_max_delay,
        )

    async def _ping(self) -> None:
        await asyncio.wait_for(self.client.ping(), timeout=PING_TIMEOUT_SECONDS)
        self._last_health_check = datetime.now(timezone.utc)

    def _recently_checked(self) -> bool:
        if self._last_health_check is None:
            return False
        age = datetime.now(timezone.utc) - self._last_health_check
        return age.total_seconds() < HEALTH_CHECK_INTERVAL_SECONDS

    async def connect(self) -> None:
        """
        Open the connection pool, retrying with exponential backoff.

        Leaves ``connected`` False when every attempt fails.
        """
        attempts = settings.redis_reconnect_max_retries
        for attempt in range(attempts):
            try:
                self.client = redis.from_url(
                    self.url,
                    encoding="utf-8",
                    decode_responses=True,
                    max_connections=10,
                )
                await self._ping()
                self.connected = True
                logger.info(f"✅ Connected to Redis at {self.url}")
                return
            except (RedisError, asyncio.TimeoutError) as e:
                self.connected = False
                if attempt == attempts - 1:
                    logger.error(f"❌ Redis unreachable after {attempts} attempts: {e}")
                    return
                delay = self._backoff_delay(attempt)
                logger.warning(
                    f"Redis connect attempt {attempt + 1}/{attempts} failed: {e}. "
                    f"Retrying in {delay}s..."
                )
                await asyncio.sleep(delay)

    async def disconnect(self) -> None:
        if not self.client:
            return
        try:
            await self.client.aclose()
        except RedisError as e:
            logger.warning(f"Error closing Redis client: {e}")
        finally:
            self.connected = False
            logger.info("Disconnected from Redis")

    async def ensure_connected(self) -> bool:
        """
        Check the connection and reconnect when it is gone.

        Returns:
            True if Redis is usable
        """
        if self.connected and self.client:
            if self._recently_checked():
                return True
            try:
                await self._ping()
                return True
            except (RedisError, asyncio.TimeoutError) as e:
                logger.warning(f"⚠️ Redis connection lost ({e}), reconnecting...")
                self.connected = False

        async with self.reconnect_lock:
            if not (self.connected and self.client):
                await self.connect()

        return self.connected

    async def require(self) -> Redis:
        """
        Return the live Redis connection.

        Raises:
            StoreUnavailableError: If Redis cannot be reached
        """
        if not await self.ensure_connected():
            raise StoreUnavailableError("Redis unavailable")
        return self.client

    async def health_check(self) -> Dict[str, Any]:
        """Connection status for the health endpoint."""
        if not self.client:
            return {"connected": False, "status": "disconnected"}

        try:
            await self.client.ping()
        except RedisError as e:
            return {"connected": False, "status": "unhealthy", "error": str(e)}
        return {"connected": True, "status": "healthy"}


# Global Redis client instance
redis_client = RedisClient()
