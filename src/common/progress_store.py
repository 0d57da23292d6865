"""Pollable progress records for translation runs, kept in Redis with an expiry."""

import json
import logging
from typing import TYPE_CHECKING, Optional

from redis.exceptions import RedisError

from common.config import settings
from common.redis_client import RedisClient
from common.schemas import ProgressRecord
from common.utils import StringUtils

if TYPE_CHECKING:
    from common.log_store import LogStore

logger = logging.getLogger(__name__)


class ProgressStore:
    """
    Key-value store of ProgressRecord keyed by (project_id, set_id).

    Every write resets the key's expiry, so progress left behind by an
    abandoned run disappears on its own. ``success`` and ``log_url`` are never
    stored; ``read`` derives them from the referenced log entry.
    """

    def __init__(
        self,
        redis_client: RedisClient,
        log_store: Optional["LogStore"] = None,
        ttl_seconds: Optional[int] = None,
        log_url_template: Optional[str] = None,
    ):
        self.redis_client = redis_client
        self.log_store = log_store
        self.ttl_seconds = ttl_seconds or settings.progress_ttl_seconds
        self.log_url_template = log_url_template or settings.log_url_template

    async def write(
        self,
        project_id: int,
        set_id: int,
        translated: int,
        total: int,
        completed: bool = False,
        log_id: Optional[int] = None,
    ) -> None:
        """
        Upsert the progress record and reset its expiry.

        Raises:
            StoreUnavailableError: If Redis is not reachable
            RedisError: If the write fails
        """
        client = await self.redis_client.require()
        record = {"translated": translated, "total": total, "completed": completed}
        if log_id is not None:
            record["log_id"] = log_id

        key = StringUtils.generate_progress_key(project_id, set_id)
        try:
            await client.set(key, json.dumps(record), ex=self.ttl_seconds)
        except RedisError as e:
            logger.error(f"Failed to write progress {key}: {e}")
            raise

        logger.debug(f"Progress {key}: {translated}/{total} completed={completed}")

    async def get(self, project_id: int, set_id: int) -> Optional[ProgressRecord]:
        """Stored record as written, or None when absent or expired."""
        client = await self.redis_client.require()
        key = StringUtils.generate_progress_key(project_id, set_id)
        raw = await client.get(key)
        if not raw:
            return None
        return ProgressRecord.model_validate(json.loads(raw))

    async def read(self, project_id: int, set_id: int) -> ProgressRecord:
        """
        Read progress for polling clients.

        An absent record reads as ``{translated: 0, total: 0, completed: false}``.
        A completed record that references a log also carries ``success``
        (the log has no errors) and ``log_url``.

        Args:
            project_id: Project identifier
            set_id: Translation set identifier

        Returns:
            ProgressRecord, never None
        """
        record = await self.get(project_id, set_id)
        if record is None:
            return ProgressRecord()

        if record.completed and record.log_id is not None:
            record.log_url = self.log_url_template.format(log_id=record.log_id)
            if self.log_store is not None:
                entry = await self.log_store.get(record.log_id)
                record.success = entry is not None and not entry.has_errors
            else:
                record.success = None

        return record

    async def delete(self, project_id: int, set_id: int) -> None:
        """Remove the record. Deleting a missing record is not an error."""
        client = await self.redis_client.require()
        await client.delete(StringUtils.generate_progress_key(project_id, set_id))
