"""Batch translation job: pages through a translation set and translates it."""

import logging
import traceback
from typing import Dict, List, Optional, Protocol, Sequence

from common.config import settings
from common.log_store import LogStore
from common.progress_store import ProgressStore
from common.schemas import (
    ApiCallInfo,
    BatchItem,
    ErrorRecord,
    LogMetadata,
    Project,
    TranslationEntry,
    TranslationResult,
    TranslationSet,
    TranslationStatus,
)
from common.stats import StatsCounter
from common.translation_store import UNTRANSLATED_FILTER, TranslationStore
from common.utils import DateTimeUtils
from translator.exceptions import TranslationApiError
from translator.schemas import JobResult, RunState

logger = logging.getLogger(__name__)


class TranslationApiClient(Protocol):
    async def translate_batch(
        self, items: Sequence[BatchItem], target_language: str
    ) -> List[TranslationResult]: ...

    def get_last_response_info(self) -> Dict: ...


class BatchTranslationJob:
    """
    Translate the untranslated entries of one translation set.

    Pages are processed strictly in order. Before each page's API call the
    progress record is rewritten, so pollers always see the page in flight.
    Whatever ends the loop (no more entries, an API error, the page cap or an
    unexpected exception), the run finishes the same way: one log entry, a
    final ``completed`` progress write and a stats update.
    """

    def __init__(
        self,
        translation_store: TranslationStore,
        api_client: TranslationApiClient,
        progress_store: ProgressStore,
        log_store: LogStore,
        stats: StatsCounter,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
    ):
        self.translation_store = translation_store
        self.api_client = api_client
        self.progress_store = progress_store
        self.log_store = log_store
        self.stats = stats
        self.page_size = page_size or settings.translation_page_size
        self.max_pages = max_pages or settings.translation_max_pages

    async def run(
        self, set_id: int, target_language: str, user_id: Optional[int] = None
    ) -> JobResult:
        """
        Run the job for one translation set.

        A missing set or project fails validation: the error is returned and
        no progress, log or stats are written.

        Args:
            set_id: Translation set to translate
            target_language: Locale passed to the translation API
            user_id: User recorded on newly created translations

        Returns:
            JobResult describing the run
        """
        translation_set = await self.translation_store.get_translation_set(set_id)
        if translation_set is None:
            logger.warning(f"❌ Translation set {set_id} not found, nothing to do")
            return JobResult.rejected(
                set_id,
                ErrorRecord(
                    message="Translation set could not be found. Maybe it was deleted!",
                    code="no-translation-set-found",
                ),
            )

        project = await self.translation_store.get_project(translation_set.project_id)
        if project is None:
            logger.warning(
                f"❌ Project {translation_set.project_id} of set {set_id} not found"
            )
            return JobResult.rejected(
                set_id,
                ErrorRecord(
                    message="Translation project could not be found. Maybe it was deleted!",
                    code="no-translation-project-found",
                ),
                project_id=translation_set.project_id,
            )

        state = RunState(started_at=DateTimeUtils.get_current_utc_datetime())
        logger.info(
            f"🚀 Translating set '{translation_set.name}' of project '{project.name}' "
            f"to {target_language}"
        )

        log_id = None
        try:
            await self._translate_pages(project, translation_set, target_language, user_id, state)
        except Exception as e:
            logger.exception(f"❌ Unexpected error while translating set {set_id}: {e}")
            state.errors.append(
                ErrorRecord(
                    message=f"{e} | {traceback.format_exc()}",
                    code="unexpected_error",
                )
            )
        finally:
            log_id = await self._finish(project, translation_set, state)

        return JobResult(
            set_id=translation_set.id,
            project_id=project.id,
            log_id=log_id,
            translated=state.translated,
            total=max(state.total, 0),
            translated_items=state.translated_items,
            errors=state.errors,
        )

    async def _translate_pages(
        self,
        project: Project,
        translation_set: TranslationSet,
        target_language: str,
        user_id: Optional[int],
        state: RunState,
    ) -> None:
        page = 1
        while page <= self.max_pages:
            entries, found_rows = await self.translation_store.for_translation(
                project, translation_set, page, self.page_size, UNTRANSLATED_FILTER
            )

            # Fixed once; rows discovered later in the run are not counted
            if state.total < 0:
                state.total = min(found_rows, self.page_size * self.max_pages)

            await self.progress_store.write(
                project.id, translation_set.id, state.translated, state.total
            )

            batch = self.build_batch(entries)
            if not batch:
                logger.info(f"No untranslated entries left on page {page}")
                break

            try:
                results = await self.api_client.translate_batch(batch, target_language)
            except TranslationApiError as e:
                logger.error(f"❌ Translation API error on page {page} [{e.code}]: {e.message}")
                state.errors.append(ErrorRecord(message=e.message, code=e.code))
                break

            if not results:
                logger.warning(f"⚠️ Page {page} returned no translations, moving on")
                page += 1
                continue

            state.api_calls.append(ApiCallInfo(**self.api_client.get_last_response_info()))
            applied = await self._apply_results(entries, results, translation_set, user_id)
            state.translated_items += applied

            state.translated = min(state.translated + self.page_size, state.total)
            logger.info(
                f"📄 Page {page}: applied {applied}/{len(entries)} translations "
                f"({state.translated}/{state.total})"
            )
            page += 1

    @staticmethod
    def build_batch(entries: Sequence[TranslationEntry]) -> List[BatchItem]:
        return [
            BatchItem(
                id=str(entry.original_id),
                text=entry.singular,
                comment=entry.translator_comments or "",
            )
            for entry in entries
        ]

    async def _apply_results(
        self,
        entries: Sequence[TranslationEntry],
        results: Sequence[TranslationResult],
        translation_set: TranslationSet,
        user_id: Optional[int],
    ) -> int:
        """
        Write matched translations back to the store.

        Entries without a matching result, or whose result is blank, are left
        untouched.

        Returns:
            Number of translations written
        """
        by_id = {result.id: result for result in results}
        applied = 0

        for entry in entries:
            result = by_id.get(str(entry.original_id))
            if result is None or not result.translated_text.strip():
                continue

            existing = None
            if entry.translation_id is not None:
                existing = await self.translation_store.get(entry.translation_id)

            if existing is not None:
                existing.translation_0 = result.translated_text
                existing.status = TranslationStatus.CURRENT
                await self.translation_store.update(existing)
            else:
                await self.translation_store.create(
                    original_id=entry.original_id,
                    translation_set_id=translation_set.id,
                    user_id=user_id,
                    status=TranslationStatus.CURRENT,
                    translation_0=result.translated_text,
                )
            applied += 1

        return applied

    async def _finish(
        self, project: Project, translation_set: TranslationSet, state: RunState
    ) -> Optional[int]:
        """Write the run log, the final progress record and the stats."""
        finished_at = DateTimeUtils.get_current_utc_datetime()
        total = max(state.total, 0)

        log_id = None
        try:
            log_id = await self.log_store.add(
                f'Translate translation set "{translation_set.name}" for project "{project.name}"',
                state.errors,
                state.api_calls,
                LogMetadata(
                    project_id=project.id,
                    set_id=translation_set.id,
                    translated_items=state.translated_items,
                    total_items=total,
                    started_at=state.started_at,
                    finished_at=finished_at,
                    duration_seconds=(finished_at - state.started_at).total_seconds(),
                ),
            )
        except Exception as e:
            logger.exception(f"❌ Failed to write translation log for set {translation_set.id}: {e}")
            state.errors.append(ErrorRecord(message=f"Failed to write log: {e}", code="log_failed"))

        await self.progress_store.write(
            project.id,
            translation_set.id,
            min(state.translated, total),
            total,
            completed=True,
            log_id=log_id,
        )
        await self.stats.record_run(state.tokens_used)

        status = "with errors" if state.errors else "successfully"
        logger.info(
            f"🏁 Set {translation_set.id} finished {status}: {state.translated_items} items, "
            f"{state.tokens_used} tokens, log {log_id}"
        )
        return log_id
