"""Pytest configuration and shared fixtures."""

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple
from unittest.mock import AsyncMock, MagicMock

import aio_pika
import fakeredis.aioredis
import pytest
import pytest_asyncio

# Add src directory to Python path for imports
project_root = Path(__file__).parent.parent
src_path = project_root / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from common.admission_gate import SingleFlightGate
from common.log_store import LogStore
from common.progress_store import ProgressStore
from common.redis_client import RedisClient
from common.schemas import (
    BatchItem,
    PersistedTranslation,
    Project,
    TranslationEntry,
    TranslationResult,
    TranslationSet,
)
from common.settings_store import AISettingsStore
from common.stats import StatsCounter
from common.translation_store import RedisTranslationStore


@pytest_asyncio.fixture
async def fake_redis_client():
    """
    Fake Redis client using fakeredis for realistic Redis behavior.

    Provides a real Redis-like interface (including Lua scripts) without a
    Redis server.
    """
    fake_redis = fakeredis.aioredis.FakeRedis(decode_responses=True, encoding="utf-8")
    yield fake_redis
    await fake_redis.flushall()
    await fake_redis.aclose()


@pytest_asyncio.fixture
async def redis_store_client(fake_redis_client):
    """RedisClient wired to fakeredis, as every store expects."""
    client = RedisClient(url="redis://fake")
    client.client = fake_redis_client
    client.connected = True
    client._last_health_check = datetime.now(timezone.utc)
    yield client
    client.connected = False


@pytest.fixture
def log_store(redis_store_client):
    return LogStore(redis_store_client, retention_days=180)


@pytest.fixture
def progress_store(redis_store_client, log_store):
    return ProgressStore(
        redis_store_client,
        log_store=log_store,
        ttl_seconds=3600,
        log_url_template="/logs/{log_id}",
    )


@pytest.fixture
def stats_counter(redis_store_client):
    return StatsCounter(redis_store_client)


@pytest.fixture
def settings_store(redis_store_client):
    return AISettingsStore(
        redis_store_client,
        default_api_key="",
        default_model="gpt-4.1-mini",
        allowed_models=["gpt-4.1-mini", "gpt-4.1-nano"],
    )


@pytest.fixture
def single_flight_gate(redis_store_client):
    return SingleFlightGate(redis_store_client, ttl_seconds=600)


@pytest.fixture
def redis_translation_store(redis_store_client):
    return RedisTranslationStore(redis_store_client)


class StaticTranslationStore:
    """
    In-memory translation store whose pages do not shift while a run
    translates them.
    """

    def __init__(
        self,
        entries: Sequence[TranslationEntry] = (),
        translation_set: Optional[TranslationSet] = None,
        project: Optional[Project] = None,
        existing: Sequence[PersistedTranslation] = (),
    ):
        self.entries = list(entries)
        self.translation_set = translation_set
        self.project = project
        self.translations: Dict[int, PersistedTranslation] = {t.id: t for t in existing}
        self.created: List[PersistedTranslation] = []
        self.updated: List[PersistedTranslation] = []
        self.fetched_pages: List[int] = []
        self.fail_on_page: Optional[int] = None
        self._next_id = max(self.translations, default=0) + 1

    async def get_translation_set(self, set_id: int) -> Optional[TranslationSet]:
        if self.translation_set and self.translation_set.id == set_id:
            return self.translation_set
        return None

    async def get_project(self, project_id: int) -> Optional[Project]:
        if self.project and self.project.id == project_id:
            return self.project
        return None

    async def for_translation(
        self, project, translation_set, page, per_page, filters=None
    ) -> Tuple[List[TranslationEntry], int]:
        self.fetched_pages.append(page)
        if self.fail_on_page == page:
            raise RuntimeError(f"database went away on page {page}")
        offset = (page - 1) * per_page
        return self.entries[offset : offset + per_page], len(self.entries)

    async def get(self, translation_id: int) -> Optional[PersistedTranslation]:
        return self.translations.get(translation_id)

    async def update(self, translation: PersistedTranslation) -> PersistedTranslation:
        self.translations[translation.id] = translation
        self.updated.append(translation)
        return translation

    async def create(self, **fields: Any) -> PersistedTranslation:
        translation = PersistedTranslation(id=self._next_id, **fields)
        self._next_id += 1
        self.translations[translation.id] = translation
        self.created.append(translation)
        return translation

    async def user_can_approve(self, user_id, set_id) -> bool:
        return user_id is not None

    async def user_can_manage(self, user_id) -> bool:
        return user_id is not None


class ScriptedApiClient:
    """
    Translation API stand-in replaying one scripted outcome per call.

    Each outcome is a list of results, an exception to raise, or ``"echo"``
    to translate every item as ``"<text> [locale]"``.
    """

    def __init__(self, outcomes: Sequence[Any] = (), tokens_per_call: int = 100):
        self.outcomes = list(outcomes)
        self.tokens_per_call = tokens_per_call
        self.calls: List[Tuple[List[BatchItem], str]] = []
        self._last_info: Dict[str, Any] = {}

    async def translate_batch(self, items, target_language) -> List[TranslationResult]:
        self.calls.append((list(items), target_language))
        outcome = self.outcomes.pop(0) if self.outcomes else "echo"
        if isinstance(outcome, Exception):
            raise outcome

        self._last_info = {"tokens_used": self.tokens_per_call, "model": "gpt-4.1-mini"}
        if outcome == "echo":
            return [
                TranslationResult(id=item.id, translated_text=f"{item.text} [{target_language}]")
                for item in items
            ]
        return list(outcome)

    def get_last_response_info(self) -> Dict[str, Any]:
        return dict(self._last_info)


def make_entries(count: int, start: int = 1) -> List[TranslationEntry]:
    return [
        TranslationEntry(original_id=i, singular=f"String {i}")
        for i in range(start, start + count)
    ]


@pytest.fixture
def sample_project():
    return Project(id=7, name="Acme Plugin")


@pytest.fixture
def sample_translation_set(sample_project):
    return TranslationSet(id=12, project_id=sample_project.id, name="German", locale="de")


@pytest.fixture
def mock_rabbitmq_channel():
    """Mock RabbitMQ channel for testing."""
    mock_channel = AsyncMock(spec=aio_pika.abc.AbstractChannel)

    mock_queue = AsyncMock(spec=aio_pika.abc.AbstractQueue)
    mock_queue.declaration_result = MagicMock()
    mock_queue.declaration_result.message_count = 0
    mock_queue.declaration_result.consumer_count = 1
    mock_channel.declare_queue = AsyncMock(return_value=mock_queue)

    mock_exchange = AsyncMock(spec=aio_pika.abc.AbstractExchange)
    mock_exchange.publish = AsyncMock()
    mock_channel.default_exchange = mock_exchange

    return mock_channel


@pytest.fixture
def mock_rabbitmq_connection(mock_rabbitmq_channel):
    """Mock RabbitMQ connection for testing."""
    mock_connection = AsyncMock(spec=aio_pika.abc.AbstractConnection)
    mock_connection.is_closed = False
    mock_connection.close = AsyncMock()
    mock_connection.channel = AsyncMock(return_value=mock_rabbitmq_channel)
    return mock_connection


@pytest.fixture
def make_translation_store(sample_project, sample_translation_set):
    """Factory for StaticTranslationStore bound to the sample project and set."""

    def factory(entry_count: int = 0, entries=None, existing=()):
        return StaticTranslationStore(
            entries=entries if entries is not None else make_entries(entry_count),
            translation_set=sample_translation_set,
            project=sample_project,
            existing=existing,
        )

    return factory


@pytest.fixture
def make_api_client():
    """Factory for ScriptedApiClient."""

    def factory(*outcomes, tokens_per_call: int = 100):
        return ScriptedApiClient(outcomes, tokens_per_call=tokens_per_call)

    return factory
