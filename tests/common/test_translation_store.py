"""Tests for the Redis backed translation store."""

import pytest
import pytest_asyncio

from common.schemas import TranslationStatus
from common.translation_store import UNTRANSLATED_FILTER


@pytest_asyncio.fixture
async def seeded_store(redis_translation_store, sample_project, sample_translation_set):
    """Project with five originals; original 2 is already translated."""
    store = redis_translation_store
    await store.add_project(sample_project)
    await store.add_translation_set(sample_translation_set)
    for original_id in range(1, 6):
        await store.add_original(
            sample_project.id,
            original_id,
            f"String {original_id}",
            comment="Menu label" if original_id == 3 else None,
        )
    await store.create(
        original_id=2,
        translation_set_id=sample_translation_set.id,
        translation_0="Zeichenkette 2",
        status=TranslationStatus.CURRENT,
    )
    return store


@pytest.mark.asyncio
class TestRedisTranslationStore:
    """Lookups, paging and writes."""

    async def test_lookup_set_and_project(self, seeded_store, sample_project, sample_translation_set):
        assert await seeded_store.get_translation_set(sample_translation_set.id) == sample_translation_set
        assert await seeded_store.get_project(sample_project.id) == sample_project
        assert await seeded_store.get_translation_set(999) is None
        assert await seeded_store.get_project(999) is None

    async def test_untranslated_filter_skips_current(
        self, seeded_store, sample_project, sample_translation_set
    ):
        entries, found = await seeded_store.for_translation(
            sample_project, sample_translation_set, 1, 10, UNTRANSLATED_FILTER
        )

        assert found == 4
        assert [e.original_id for e in entries] == [1, 3, 4, 5]
        assert entries[1].translator_comments == "Menu label"
        assert entries[0].translator_comments is None

    async def test_no_filter_returns_everything(
        self, seeded_store, sample_project, sample_translation_set
    ):
        entries, found = await seeded_store.for_translation(
            sample_project, sample_translation_set, 1, 10
        )

        assert found == 5
        translated = next(e for e in entries if e.original_id == 2)
        assert translated.translation_id is not None

    async def test_paging(self, seeded_store, sample_project, sample_translation_set):
        page_two, found = await seeded_store.for_translation(
            sample_project, sample_translation_set, 2, 3, UNTRANSLATED_FILTER
        )

        assert found == 4
        assert [e.original_id for e in page_two] == [5]

    async def test_waiting_translation_is_still_untranslated(
        self, seeded_store, sample_project, sample_translation_set
    ):
        created = await seeded_store.create(
            original_id=4,
            translation_set_id=sample_translation_set.id,
            translation_0="Vorschlag",
        )

        entries, _ = await seeded_store.for_translation(
            sample_project, sample_translation_set, 1, 10, UNTRANSLATED_FILTER
        )

        entry = next(e for e in entries if e.original_id == 4)
        assert entry.translation_id == created.id

    async def test_update_marks_current(self, seeded_store, sample_project, sample_translation_set):
        created = await seeded_store.create(
            original_id=1,
            translation_set_id=sample_translation_set.id,
            translation_0="Entwurf",
            status=TranslationStatus.FUZZY,
        )
        created.status = TranslationStatus.CURRENT
        created.translation_0 = "Zeichenkette 1"

        await seeded_store.update(created)

        stored = await seeded_store.get(created.id)
        assert stored.status == TranslationStatus.CURRENT
        assert stored.translation_0 == "Zeichenkette 1"
        _, found = await seeded_store.for_translation(
            sample_project, sample_translation_set, 1, 10, UNTRANSLATED_FILTER
        )
        assert found == 3

    async def test_create_assigns_ids(self, seeded_store, sample_translation_set):
        first = await seeded_store.create(
            original_id=3, translation_set_id=sample_translation_set.id, translation_0="a"
        )
        second = await seeded_store.create(
            original_id=4, translation_set_id=sample_translation_set.id, translation_0="b"
        )

        assert second.id == first.id + 1
        assert first.status == TranslationStatus.WAITING

    async def test_empty_project(self, redis_translation_store, sample_project, sample_translation_set):
        entries, found = await redis_translation_store.for_translation(
            sample_project, sample_translation_set, 1, 50, UNTRANSLATED_FILTER
        )

        assert (entries, found) == ([], 0)


@pytest.mark.asyncio
class TestApprovalPermissions:
    """user_can_approve and user_can_manage."""

    async def test_anonymous_user_cannot_approve(self, redis_translation_store):
        assert await redis_translation_store.user_can_approve(None, 12) is False

    async def test_set_approver(self, redis_translation_store):
        await redis_translation_store.grant_approver(5, set_id=12)

        assert await redis_translation_store.user_can_approve(5, 12) is True
        assert await redis_translation_store.user_can_approve(5, 13) is False

    async def test_admin_can_approve_everywhere(self, redis_translation_store):
        await redis_translation_store.grant_approver(1)

        assert await redis_translation_store.user_can_approve(1, 12) is True
        assert await redis_translation_store.user_can_approve(1, 99) is True

    async def test_only_admins_can_manage(self, redis_translation_store):
        await redis_translation_store.grant_approver(1)
        await redis_translation_store.grant_approver(5, set_id=12)

        assert await redis_translation_store.user_can_manage(1) is True
        assert await redis_translation_store.user_can_manage(5) is False
        assert await redis_translation_store.user_can_manage(None) is False
