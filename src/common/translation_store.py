"""Translation data store consumed by the batch translation job."""

import json
import logging
from typing import Any, Dict, List, Optional, Protocol, Tuple

from common.redis_client import RedisClient
from common.schemas import (
    PersistedTranslation,
    Project,
    TranslationEntry,
    TranslationSet,
    TranslationStatus,
)

logger = logging.getLogger(__name__)

UNTRANSLATED_FILTER = {"status": "untranslated"}


class TranslationStore(Protocol):
    """Shape of the persisted translation store the job works against."""

    async def get_translation_set(self, set_id: int) -> Optional[TranslationSet]: ...

    async def get_project(self, project_id: int) -> Optional[Project]: ...

    async def for_translation(
        self,
        project: Project,
        translation_set: TranslationSet,
        page: int,
        per_page: int,
        filters: Optional[Dict[str, Any]] = None,
    ) -> Tuple[List[TranslationEntry], int]: ...

    async def get(self, translation_id: int) -> Optional[PersistedTranslation]: ...

    async def update(self, translation: PersistedTranslation) -> PersistedTranslation: ...

    async def create(self, **fields: Any) -> PersistedTranslation: ...

    async def user_can_approve(self, user_id: Optional[int], set_id: int) -> bool: ...

    async def user_can_manage(self, user_id: Optional[int]) -> bool: ...


class RedisTranslationStore:
    """
    GlotPress shaped translation store kept in Redis.

    Layout:
        project:{id}                      JSON Project
        translation_set:{id}              JSON TranslationSet
        project:{id}:originals            sorted set of original ids
        original:{id}                     JSON {id, project_id, singular, comment}
        translation:{id}                  JSON PersistedTranslation
        translation_set:{id}:translations hash original_id -> translation id
        translation_set:{id}:approvers    set of user ids allowed to approve
        translation_admins                set of user ids allowed everywhere

    The ``untranslated`` filter matches originals with no translation in the
    set or whose translation is not ``current``. Pages are offsets into that
    filtered list at call time, so rows translated by an earlier page shift
    the following pages.
    """

    ID_COUNTER_KEY = "translations:next_id"
    ADMINS_KEY = "translation_admins"

    def __init__(self, redis_client: RedisClient):
        self.redis_client = redis_client

    async def get_translation_set(self, set_id: int) -> Optional[TranslationSet]:
        client = await self.redis_client.require()
        raw = await client.get(f"translation_set:{set_id}")
        return TranslationSet.model_validate_json(raw) if raw else None

    async def get_project(self, project_id: int) -> Optional[Project]:
        client = await self.redis_client.require()
        raw = await client.get(f"project:{project_id}")
        return Project.model_validate_json(raw) if raw else None

    async def for_translation(
        self,
        project: Project,
        translation_set: TranslationSet,
        page: int,
        per_page: int,
        filters: Optional[Dict[str, Any]] = None,
    ) -> Tuple[List[TranslationEntry], int]:
        """
        One page of entries for a translation set.

        Args:
            project: Project owning the originals
            translation_set: Set the translations belong to
            page: 1-based page number
            per_page: Page size
            filters: ``{"status": "untranslated"}`` restricts the result to
                entries without a current translation

        Returns:
            Tuple of (entries on this page, total matching rows)
        """
        client = await self.redis_client.require()
        only_untranslated = (filters or {}).get("status") == "untranslated"

        original_ids = await client.zrange(f"project:{project.id}:originals", 0, -1)
        if not original_ids:
            return [], 0

        originals = await client.mget([f"original:{oid}" for oid in original_ids])
        translation_ids = await client.hgetall(
            f"translation_set:{translation_set.id}:translations"
        )
        translations = await self._load_translations(client, translation_ids.values())

        matching: List[TranslationEntry] = []
        for raw_original in originals:
            if not raw_original:
                continue
            original = json.loads(raw_original)
            translation = translations.get(translation_ids.get(str(original["id"])))

            if only_untranslated and translation and translation.status == TranslationStatus.CURRENT:
                continue

            matching.append(
                TranslationEntry(
                    original_id=original["id"],
                    singular=original["singular"],
                    translator_comments=original.get("comment") or None,
                    translation_id=translation.id if translation else None,
                )
            )

        offset = max(page - 1, 0) * per_page
        return matching[offset : offset + per_page], len(matching)

    async def _load_translations(self, client, ids) -> Dict[str, PersistedTranslation]:
        ids = list(ids)
        if not ids:
            return {}
        raw_items = await client.mget([f"translation:{tid}" for tid in ids])
        return {
            tid: PersistedTranslation.model_validate_json(raw)
            for tid, raw in zip(ids, raw_items)
            if raw
        }

    async def get(self, translation_id: int) -> Optional[PersistedTranslation]:
        client = await self.redis_client.require()
        raw = await client.get(f"translation:{translation_id}")
        return PersistedTranslation.model_validate_json(raw) if raw else None

    async def update(self, translation: PersistedTranslation) -> PersistedTranslation:
        client = await self.redis_client.require()
        await self._save(client, translation)
        return translation

    async def create(self, **fields: Any) -> PersistedTranslation:
        """
        Create a translation and make it the set's translation for its original.

        Raises:
            pydantic.ValidationError: If required fields are missing
        """
        client = await self.redis_client.require()
        translation_id = int(await client.incr(self.ID_COUNTER_KEY))
        translation = PersistedTranslation(id=translation_id, **fields)
        await self._save(client, translation)
        return translation

    async def _save(self, client, translation: PersistedTranslation) -> None:
        async with client.pipeline(transaction=True) as pipe:
            pipe.set(f"translation:{translation.id}", translation.model_dump_json())
            pipe.hset(
                f"translation_set:{translation.translation_set_id}:translations",
                str(translation.original_id),
                str(translation.id),
            )
            await pipe.execute()

    async def user_can_approve(self, user_id: Optional[int], set_id: int) -> bool:
        """Whether the user may approve translations in the set."""
        if user_id is None:
            return False
        client = await self.redis_client.require()
        if await client.sismember(self.ADMINS_KEY, str(user_id)):
            return True
        return bool(await client.sismember(f"translation_set:{set_id}:approvers", str(user_id)))

    async def user_can_manage(self, user_id: Optional[int]) -> bool:
        """Whether the user may change AI settings and administer logs and stats."""
        if user_id is None:
            return False
        client = await self.redis_client.require()
        return bool(await client.sismember(self.ADMINS_KEY, str(user_id)))

    # Seeding helpers used by fixtures and local setups

    async def add_project(self, project: Project) -> None:
        client = await self.redis_client.require()
        await client.set(f"project:{project.id}", project.model_dump_json())

    async def add_translation_set(self, translation_set: TranslationSet) -> None:
        client = await self.redis_client.require()
        await client.set(f"translation_set:{translation_set.id}", translation_set.model_dump_json())

    async def add_original(
        self, project_id: int, original_id: int, singular: str, comment: Optional[str] = None
    ) -> None:
        client = await self.redis_client.require()
        document = {
            "id": original_id,
            "project_id": project_id,
            "singular": singular,
            "comment": comment or "",
        }
        async with client.pipeline(transaction=True) as pipe:
            pipe.set(f"original:{original_id}", json.dumps(document))
            pipe.zadd(f"project:{project_id}:originals", {str(original_id): original_id})
            await pipe.execute()

    async def grant_approver(self, user_id: int, set_id: Optional[int] = None) -> None:
        """Allow a user to approve one set, or every set when set_id is None."""
        client = await self.redis_client.require()
        if set_id is None:
            await client.sadd(self.ADMINS_KEY, str(user_id))
        else:
            await client.sadd(f"translation_set:{set_id}:approvers", str(user_id))
