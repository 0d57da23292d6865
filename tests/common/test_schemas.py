"""Tests for shared schemas."""

from datetime import datetime, timezone
from uuid import UUID

import pytest
from pydantic import ValidationError

from common.schemas import (
    ErrorRecord,
    LogEntry,
    LogMetadata,
    PersistedTranslation,
    ProgressRecord,
    TranslateSetTask,
    TranslationStatus,
)


def _metadata():
    now = datetime.now(timezone.utc)
    return LogMetadata(project_id=1, set_id=2, started_at=now, finished_at=now)


class TestProgressRecord:
    def test_defaults(self):
        record = ProgressRecord()

        assert (record.translated, record.total, record.completed) == (0, 0, False)
        assert record.log_id is None

    def test_exclude_none_dump_hides_derived_fields(self):
        dumped = ProgressRecord(translated=50, total=120).model_dump(exclude_none=True)

        assert dumped == {"translated": 50, "total": 120, "completed": False}


class TestLogEntry:
    @pytest.mark.parametrize(
        "errors,expected",
        [
            ([], False),
            ([ErrorRecord(message="boom", code="api_error")], True),
        ],
    )
    def test_has_errors(self, errors, expected):
        entry = LogEntry(id=1, title="run", errors=errors, metadata=_metadata())

        assert entry.has_errors is expected

    def test_json_round_trip_keeps_timezone(self):
        entry = LogEntry(id=1, title="run", metadata=_metadata())

        restored = LogEntry.model_validate_json(entry.model_dump_json())

        assert restored.logged_at.tzinfo is not None
        assert restored == entry


class TestTranslateSetTask:
    def test_job_id_is_generated(self):
        task = TranslateSetTask(set_id=12, target_language="de")

        assert isinstance(task.job_id, UUID)
        assert task.run_key == "translate_set"
        assert task.user_id is None

    def test_missing_fields_are_rejected(self):
        with pytest.raises(ValidationError):
            TranslateSetTask.model_validate({"target_language": "de"})


class TestPersistedTranslation:
    def test_default_status_is_waiting(self):
        translation = PersistedTranslation(
            id=1, original_id=2, translation_set_id=3, translation_0="Hallo"
        )

        assert translation.status == TranslationStatus.WAITING
        assert translation.model_dump(mode="json")["status"] == "waiting"
