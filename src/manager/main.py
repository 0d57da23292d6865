"""FastAPI application triggering and monitoring AI translation runs."""

from contextlib import asynccontextmanager
from typing import List, Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from redis.exceptions import RedisError

from common.admission_gate import SingleFlightGate
from common.config import settings
from common.log_store import LogStore
from common.logging_config import setup_service_logging
from common.progress_store import ProgressStore
from common.redis_client import StoreUnavailableError, redis_client
from common.schemas import (
    LogEntry,
    ProgressRecord,
    StatsSnapshot,
    TranslateSetTask,
    TriggerStatus,
)
from common.security import (
    ACTIONS,
    PROGRESS_ACTION,
    SETTINGS_ACTION,
    TRANSLATE_ACTION,
    create_action_token,
    verify_access_token,
    verify_action_token,
)
from common.settings_store import AISettings, AISettingsStore
from common.stats import StatsCounter
from common.translation_store import RedisTranslationStore, TranslationStore
from manager.orchestrator import TranslationOrchestrator, orchestrator
from manager.schemas import (
    ClearLogsResponse,
    HealthResponse,
    RunningStatusResponse,
    SettingsUpdate,
    TokenResponse,
    TranslateRequest,
    TriggerResponse,
)

# Configure logging
service_logger = setup_service_logging("manager", enable_file_logging=True)
logger = service_logger.logger

# Gate key shared by every translate request
TRANSLATE_RUN_KEY = "translate_set"

bearer_scheme = HTTPBearer(auto_error=False)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    logger.info("Starting GlotPress AI translation API...")
    await redis_client.connect()
    await orchestrator.connect()
    logger.info("API startup complete")

    yield

    await orchestrator.disconnect()
    await redis_client.disconnect()


app = FastAPI(
    title="GlotPress AI Translation API",
    description="Trigger AI batch translation of translation sets and poll their progress",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(StoreUnavailableError)
@app.exception_handler(RedisError)
async def storage_unavailable_handler(request: Request, exc: Exception):
    logger.error(f"❌ Storage error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage unavailable"},
    )


# Dependencies


def get_log_store() -> LogStore:
    return LogStore(redis_client)


def get_progress_store(log_store: LogStore = Depends(get_log_store)) -> ProgressStore:
    return ProgressStore(redis_client, log_store=log_store)


def get_stats() -> StatsCounter:
    return StatsCounter(redis_client)


def get_settings_store() -> AISettingsStore:
    return AISettingsStore(redis_client)


def get_translation_store() -> TranslationStore:
    return RedisTranslationStore(redis_client)


def get_gate() -> SingleFlightGate:
    return SingleFlightGate(redis_client)


def get_orchestrator() -> TranslationOrchestrator:
    return orchestrator


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> int:
    """User id from the bearer access token issued by the host application."""
    user_id = verify_access_token(credentials.credentials if credentials else None)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


async def require_admin(
    user_id: int = Depends(get_current_user_id),
    x_request_token: Optional[str] = Header(None),
    translation_store: TranslationStore = Depends(get_translation_store),
) -> int:
    """Settings action token plus the manage permission."""
    if not verify_action_token(x_request_token, SETTINGS_ACTION, user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid request token")
    if not await translation_store.user_can_manage(user_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not allowed to manage AI translation settings",
        )
    return user_id


def _trigger_response(
    http_status: int, trigger_status: TriggerStatus, message: str, job_id=None
) -> JSONResponse:
    body = TriggerResponse(status=trigger_status, message=message, job_id=job_id)
    return JSONResponse(status_code=http_status, content=body.model_dump(mode="json"))


@app.get("/", response_model=dict)
async def root():
    """Root endpoint with API information."""
    return {
        "message": "GlotPress AI Translation API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


@app.get("/health", response_model=HealthResponse)
async def health_check(
    response: Response,
    publisher: TranslationOrchestrator = Depends(get_orchestrator),
):
    """Redis and RabbitMQ connectivity."""
    redis_health = await redis_client.health_check()
    health = HealthResponse(
        redis=bool(redis_health.get("connected")),
        rabbitmq=await publisher.is_healthy(),
    )
    if not health.redis or not health.rabbitmq:
        health.status = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return health


@app.get("/tokens/{action}", response_model=TokenResponse)
async def issue_action_token(action: str, user_id: int = Depends(get_current_user_id)):
    """Issue a request token for one action and the authenticated user."""
    if action not in ACTIONS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown action")
    return TokenResponse(action=action, token=create_action_token(action, user_id))


@app.post("/translate", response_model=TriggerResponse)
async def trigger_translation(
    request: TranslateRequest,
    user_id: int = Depends(get_current_user_id),
    x_request_token: Optional[str] = Header(None),
    translation_store: TranslationStore = Depends(get_translation_store),
    gate: SingleFlightGate = Depends(get_gate),
    publisher: TranslationOrchestrator = Depends(get_orchestrator),
):
    """
    Start a background translation of one translation set.

    Only one run may be in flight at a time, across all sets. A request made
    while a run is active is answered with ``already_running``.
    """
    if not verify_action_token(x_request_token, TRANSLATE_ACTION, user_id):
        return _trigger_response(
            status.HTTP_403_FORBIDDEN, TriggerStatus.FORBIDDEN, "Invalid request token"
        )

    target_language = (request.target_language or "").strip()
    if not request.set_id or request.set_id <= 0 or not target_language:
        return _trigger_response(
            status.HTTP_400_BAD_REQUEST,
            TriggerStatus.INVALID_INPUT,
            "Missing set_id or target_language",
        )

    if not await translation_store.user_can_approve(user_id, request.set_id):
        return _trigger_response(
            status.HTTP_403_FORBIDDEN,
            TriggerStatus.FORBIDDEN,
            "You are not allowed to approve translations in this set",
        )

    if await translation_store.get_translation_set(request.set_id) is None:
        return _trigger_response(
            status.HTTP_404_NOT_FOUND,
            TriggerStatus.NOT_FOUND,
            "Translation set could not be found",
        )

    task = TranslateSetTask(
        job_id=uuid4(),
        set_id=request.set_id,
        target_language=target_language,
        user_id=user_id,
        run_key=TRANSLATE_RUN_KEY,
    )

    admission = await gate.try_start(TRANSLATE_RUN_KEY, task.job_id)
    if not admission.admitted:
        return _trigger_response(
            status.HTTP_200_OK,
            TriggerStatus.ALREADY_RUNNING,
            admission.message,
            job_id=admission.existing_job_id,
        )

    if not await publisher.enqueue_translate_task(task):
        await gate.release(TRANSLATE_RUN_KEY, task.job_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to enqueue translation job",
        )

    logger.info(f"Translation job {task.job_id} enqueued for set {task.set_id}")
    return _trigger_response(
        status.HTTP_200_OK,
        TriggerStatus.ENQUEUED,
        "Translation process started",
        job_id=task.job_id,
    )


@app.get(
    "/translate/progress",
    response_model=ProgressRecord,
    response_model_exclude_none=True,
)
async def get_translation_progress(
    project_id: Optional[int] = None,
    set_id: Optional[int] = None,
    user_id: int = Depends(get_current_user_id),
    x_request_token: Optional[str] = Header(None),
    progress_store: ProgressStore = Depends(get_progress_store),
):
    """
    Current progress of a run. A completed record is returned once and then deleted.
    """
    if not verify_action_token(x_request_token, PROGRESS_ACTION, user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid request token")

    if not project_id or not set_id or project_id <= 0 or set_id <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid parameters")

    record = await progress_store.read(project_id, set_id)
    if record.completed:
        await progress_store.delete(project_id, set_id)
    return record


@app.get(
    "/translate/status",
    response_model=RunningStatusResponse,
    dependencies=[Depends(get_current_user_id)],
)
async def get_running_status(gate: SingleFlightGate = Depends(get_gate)):
    """Whether a translation run currently holds the gate."""
    job_id = await gate.current_job_id(TRANSLATE_RUN_KEY)
    return RunningStatusResponse(running=job_id is not None, job_id=job_id)


# Administration, guarded like the settings page


@app.get("/logs", response_model=List[LogEntry], dependencies=[Depends(require_admin)])
async def list_logs(limit: int = 20, log_store: LogStore = Depends(get_log_store)):
    return await log_store.list_logs(limit=max(limit, 1))


@app.get("/logs/latest", response_model=LogEntry, dependencies=[Depends(require_admin)])
async def get_latest_log(log_store: LogStore = Depends(get_log_store)):
    entry = await log_store.get_latest()
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No logs yet")
    return entry


@app.get("/logs/{log_id}", response_model=LogEntry, dependencies=[Depends(require_admin)])
async def get_log(log_id: int, log_store: LogStore = Depends(get_log_store)):
    entry = await log_store.get(log_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Log not found")
    return entry


@app.delete("/logs", response_model=ClearLogsResponse)
async def clear_logs(
    user_id: int = Depends(require_admin),
    log_store: LogStore = Depends(get_log_store),
):
    deleted = await log_store.clear_all()
    logger.info(f"User {user_id} cleared {deleted} translation logs")
    return ClearLogsResponse(deleted=deleted)


@app.get("/stats", response_model=StatsSnapshot, dependencies=[Depends(require_admin)])
async def get_stats_snapshot(stats: StatsCounter = Depends(get_stats)):
    return await stats.get_stats()


@app.post("/stats/sync", response_model=StatsSnapshot, dependencies=[Depends(require_admin)])
async def sync_stats(
    stats: StatsCounter = Depends(get_stats),
    log_store: LogStore = Depends(get_log_store),
):
    """Recompute the counters from the retained logs."""
    return await stats.sync_stats_with_logs(log_store)


@app.post("/stats/reset", response_model=StatsSnapshot)
async def reset_stats(
    user_id: int = Depends(require_admin),
    stats: StatsCounter = Depends(get_stats),
):
    logger.info(f"User {user_id} reset translation stats")
    return await stats.reset_stats()


@app.get("/settings", response_model=AISettings, dependencies=[Depends(require_admin)])
async def get_ai_settings(settings_store: AISettingsStore = Depends(get_settings_store)):
    """AI settings with the API key masked."""
    return await settings_store.get_for_display()


@app.post("/settings", response_model=AISettings, dependencies=[Depends(require_admin)])
async def update_ai_settings(
    update: SettingsUpdate,
    settings_store: AISettingsStore = Depends(get_settings_store),
):
    """Update the API key and/or model. Sending the masked key keeps the stored one."""
    if update.open_ai_key is not None and not settings_store.validate_api_key(
        update.open_ai_key.strip()
    ):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid OpenAI API key")
    if update.open_ai_model is not None and not settings_store.validate_model(update.open_ai_model):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unsupported model")

    await settings_store.update(update.model_dump(exclude_none=True))
    return await settings_store.get_for_display()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("manager.main:app", host=settings.api_host, port=settings.api_port)
