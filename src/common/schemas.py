"""Shared Pydantic schemas for the AI translation service."""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from common.utils import DateTimeUtils

UNKNOWN_TOTAL = -1


class TranslationStatus(str, Enum):
    """Status of a persisted translation."""

    CURRENT = "current"
    WAITING = "waiting"
    FUZZY = "fuzzy"
    OLD = "old"
    REJECTED = "rejected"


class TriggerStatus(str, Enum):
    """Outcome of a translate trigger request."""

    ENQUEUED = "enqueued"
    ALREADY_RUNNING = "already_running"
    INVALID_INPUT = "invalid_input"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"


class Project(BaseModel):
    """Project owning one or more translation sets."""

    id: int
    name: str


class TranslationSet(BaseModel):
    """A (project, locale) pair whose untranslated strings are translated in one run."""

    id: int
    project_id: int
    name: str
    locale: str


class TranslationEntry(BaseModel):
    """Untranslated original string as returned by the translation store."""

    original_id: int
    singular: str
    translator_comments: Optional[str] = None
    translation_id: Optional[int] = Field(
        None, description="Existing persisted translation, if any"
    )


class PersistedTranslation(BaseModel):
    """Translation record owned by the translation store."""

    id: int
    original_id: int
    translation_set_id: int
    translation_0: str
    status: TranslationStatus = TranslationStatus.WAITING
    user_id: Optional[int] = None


class BatchItem(BaseModel):
    """Item sent to the translation API. `id` only correlates results."""

    id: str
    text: str
    comment: str = ""


class TranslationResult(BaseModel):
    """Item returned by the translation API."""

    id: str
    translated_text: str = ""


class ApiCallInfo(BaseModel):
    """Accounting for one successful API call."""

    model: str
    tokens_used: int = 0


class ErrorRecord(BaseModel):
    """Error captured during a run."""

    message: str
    code: Optional[str] = None


class ProgressRecord(BaseModel):
    """Pollable snapshot of an in-flight or just finished run."""

    translated: int = 0
    total: int = 0
    completed: bool = False
    log_id: Optional[int] = None
    success: Optional[bool] = None
    log_url: Optional[str] = None


class LogMetadata(BaseModel):
    """Run metadata stored on every log entry."""

    project_id: int
    set_id: int
    translated_items: int = 0
    total_items: int = 0
    started_at: datetime
    finished_at: datetime
    duration_seconds: float = 0.0


class LogEntry(BaseModel):
    """Durable record of one finished run."""

    id: int
    title: str
    errors: List[ErrorRecord] = Field(default_factory=list)
    api_calls: List[ApiCallInfo] = Field(default_factory=list)
    metadata: LogMetadata
    tokens_used: int = 0
    logged_at: datetime = Field(default_factory=DateTimeUtils.get_current_utc_datetime)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0


class StatsSnapshot(BaseModel):
    """Process-wide totals across all runs."""

    translations_started: int = 0
    tokens_used: int = 0
    last_reset: Optional[datetime] = None
    last_updated: Optional[datetime] = None


class TranslateSetTask(BaseModel):
    """Queue message asking the translator worker to run one job."""

    job_id: UUID = Field(default_factory=uuid4)
    set_id: int
    target_language: str
    user_id: Optional[int] = None
    run_key: str = "translate_set"
