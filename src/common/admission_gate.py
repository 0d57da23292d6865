"""Single-flight admission gate for background translation runs."""

import logging
from typing import Optional
from uuid import UUID

from pydantic import BaseModel
from redis.exceptions import RedisError

from common.config import settings
from common.redis_client import RedisClient
from common.utils import StringUtils

logger = logging.getLogger(__name__)


class AdmissionResult(BaseModel):
    """Result of an admission attempt."""

    admitted: bool
    existing_job_id: Optional[UUID] = None
    message: str


class SingleFlightGate:
    """
    Allow at most one in-flight run per trigger name.

    The gate is keyed by trigger (e.g. ``translate_set``), not by translation
    set, so a run for one set blocks requests for every other set until it is
    released. The key carries a TTL so a worker that dies without releasing
    cannot block the trigger forever.
    """

    # Lua script for atomic check-and-register operation
    TRY_START_SCRIPT = """
    local run_key = KEYS[1]
    local job_id = ARGV[1]
    local ttl = tonumber(ARGV[2])

    local existing_job_id = redis.call('GET', run_key)
    if existing_job_id then
        return existing_job_id
    end

    redis.call('SET', run_key, job_id, 'EX', ttl)
    return nil
    """

    # Only the holder (or an unconditional release) may clear the key
    RELEASE_SCRIPT = """
    local run_key = KEYS[1]
    local job_id = ARGV[1]

    local current = redis.call('GET', run_key)
    if not current then
        return 0
    end
    if job_id ~= '' and current ~= job_id then
        return -1
    end

    redis.call('DEL', run_key)
    return 1
    """

    def __init__(self, redis_client: RedisClient, ttl_seconds: Optional[int] = None):
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds or settings.admission_gate_ttl_seconds
        self._try_start_script = None
        self._release_script = None

    def _ensure_scripts_loaded(self, client) -> None:
        if self._try_start_script is None:
            self._try_start_script = client.register_script(self.TRY_START_SCRIPT)
            self._release_script = client.register_script(self.RELEASE_SCRIPT)
            logger.debug("Single-flight Lua scripts registered")

    async def try_start(self, run_key: str, job_id: UUID) -> AdmissionResult:
        """
        Register ``job_id`` as the in-flight run for ``run_key`` unless one exists.

        Args:
            run_key: Trigger name
            job_id: Id of the job that would be scheduled

        Returns:
            AdmissionResult, ``admitted`` is False when another run holds the gate

        Raises:
            StoreUnavailableError: If Redis is not reachable
            RedisError: If the check fails
        """
        client = await self.redis_client.require()
        self._ensure_scripts_loaded(client)
        key = StringUtils.generate_run_key(run_key)

        try:
            existing = await self._try_start_script(
                keys=[key], args=[str(job_id), self.ttl_seconds]
            )
        except RedisError as e:
            logger.error(f"Redis error during admission check for {run_key}: {e}")
            raise

        if existing:
            try:
                existing_job_id = UUID(existing)
            except ValueError:
                logger.error(f"Invalid job id in gate {key}: {existing}")
                existing_job_id = None
            logger.info(f"⏳ {run_key} already running as job {existing}")
            return AdmissionResult(
                admitted=False,
                existing_job_id=existing_job_id,
                message="Another translation is already running. Please try again later.",
            )

        logger.info(f"🚦 Admitted job {job_id} for {run_key}")
        return AdmissionResult(
            admitted=True,
            message=f"Job {job_id} admitted",
        )

    async def is_running(self, run_key: str) -> bool:
        client = await self.redis_client.require()
        return bool(await client.exists(StringUtils.generate_run_key(run_key)))

    async def current_job_id(self, run_key: str) -> Optional[str]:
        client = await self.redis_client.require()
        return await client.get(StringUtils.generate_run_key(run_key))

    async def release(self, run_key: str, job_id: Optional[UUID] = None) -> bool:
        """
        Clear the gate.

        Args:
            run_key: Trigger name
            job_id: When given, only release if this job holds the gate

        Returns:
            True if the gate was cleared
        """
        client = await self.redis_client.require()
        self._ensure_scripts_loaded(client)
        key = StringUtils.generate_run_key(run_key)

        result = await self._release_script(
            keys=[key], args=[str(job_id) if job_id else ""]
        )
        if int(result) == -1:
            logger.warning(f"⚠️ Gate {key} is held by another job, not releasing for {job_id}")
            return False

        logger.debug(f"Released gate {key}")
        return int(result) == 1
