"""Data structures for batch translation runs."""

from datetime import datetime
from typing import List, Optional

from common.schemas import UNKNOWN_TOTAL, ApiCallInfo, ErrorRecord


class RunState:
    """Mutable state accumulated while one run pages through a translation set."""

    def __init__(self, started_at: datetime):
        self.started_at = started_at
        self.translated = 0
        self.total = UNKNOWN_TOTAL
        self.translated_items = 0
        self.errors: List[ErrorRecord] = []
        self.api_calls: List[ApiCallInfo] = []

    @property
    def tokens_used(self) -> int:
        return sum(call.tokens_used for call in self.api_calls)


class JobResult:
    """Outcome of one BatchTranslationJob.run call."""

    def __init__(
        self,
        set_id: int,
        errors: List[ErrorRecord],
        project_id: Optional[int] = None,
        log_id: Optional[int] = None,
        translated: int = 0,
        total: int = 0,
        translated_items: int = 0,
        started: bool = True,
    ):
        self.set_id = set_id
        self.project_id = project_id
        self.log_id = log_id
        self.translated = translated
        self.total = total
        self.translated_items = translated_items
        self.errors = errors
        self.started = started

    @property
    def success(self) -> bool:
        return self.started and not self.errors

    @classmethod
    def rejected(cls, set_id: int, error: ErrorRecord, project_id: Optional[int] = None) -> "JobResult":
        """Result for a run that failed validation before any state was written."""
        return cls(set_id=set_id, errors=[error], project_id=project_id, started=False)
