"""Tests for the translator worker."""

import json
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from common.schemas import ErrorRecord, TranslateSetTask
from translator.batch_translator import BatchTranslationJob
from translator.schemas import JobResult
from translator.translation_service import OpenAITranslationClient
from translator.worker import build_job, parse_task, process_translate_message


def make_message(body) -> MagicMock:
    message = MagicMock()
    message.body = body if isinstance(body, bytes) else json.dumps(body).encode()
    return message


@pytest.fixture
def task():
    return TranslateSetTask(job_id=uuid4(), set_id=12, target_language="de", user_id=3)


@pytest.fixture
def mock_job():
    job = MagicMock(spec=BatchTranslationJob)
    job.run = AsyncMock(
        return_value=JobResult(set_id=12, errors=[], project_id=7, log_id=1, translated=10, total=10)
    )
    return job


class TestParseTask:
    def test_parse_valid_task(self, task):
        parsed = parse_task(make_message(task.model_dump(mode="json")))

        assert parsed == task

    def test_parse_invalid_json(self):
        with pytest.raises(json.JSONDecodeError):
            parse_task(make_message(b"{not json"))


@pytest.mark.asyncio
class TestProcessTranslateMessage:
    """Running a task and releasing the gate."""

    async def test_runs_job_and_releases_gate(self, task, mock_job, single_flight_gate):
        await single_flight_gate.try_start(task.run_key, task.job_id)

        await process_translate_message(
            make_message(task.model_dump(mode="json")), mock_job, single_flight_gate
        )

        mock_job.run.assert_awaited_once_with(12, "de", 3)
        assert not await single_flight_gate.is_running(task.run_key)

    async def test_gate_released_when_job_raises(self, task, mock_job, single_flight_gate):
        await single_flight_gate.try_start(task.run_key, task.job_id)
        mock_job.run.side_effect = RuntimeError("redis went away")

        with pytest.raises(RuntimeError):
            await process_translate_message(
                make_message(task.model_dump(mode="json")), mock_job, single_flight_gate
            )

        assert not await single_flight_gate.is_running(task.run_key)

    async def test_rejected_run_releases_gate(self, task, mock_job, single_flight_gate):
        await single_flight_gate.try_start(task.run_key, task.job_id)
        mock_job.run.return_value = JobResult.rejected(
            12, ErrorRecord(message="gone", code="no-translation-set-found")
        )

        await process_translate_message(
            make_message(task.model_dump(mode="json")), mock_job, single_flight_gate
        )

        assert not await single_flight_gate.is_running(task.run_key)

    async def test_does_not_release_gate_held_by_other_job(
        self, task, mock_job, single_flight_gate
    ):
        other_job = uuid4()
        await single_flight_gate.try_start(task.run_key, other_job)

        await process_translate_message(
            make_message(task.model_dump(mode="json")), mock_job, single_flight_gate
        )

        assert await single_flight_gate.current_job_id(task.run_key) == str(other_job)

    @pytest.mark.parametrize(
        "body",
        [b"{not json", json.dumps({"target_language": "de"}).encode()],
    )
    async def test_malformed_task_is_dropped(self, body, mock_job, single_flight_gate):
        await process_translate_message(make_message(body), mock_job, single_flight_gate)

        mock_job.run.assert_not_called()


class TestBuildJob:
    def test_build_job_wires_stores(self, redis_store_client):
        job = build_job(redis_store_client)

        assert isinstance(job, BatchTranslationJob)
        assert isinstance(job.api_client, OpenAITranslationClient)
        assert job.progress_store.log_store is job.log_store
        assert job.page_size == 50
        assert job.max_pages == 3
