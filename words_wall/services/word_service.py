"""
Word enrichment orchestrator.

Turns a requested word into a fully enriched, persisted record:

    requested ─┬─ cache hit ──────────────────────────────────────► done
               └─ fast section → insert (in-progress) → enqueue
                     → [detailedMeaning → usageExamples → synonyms → collocations]
                        (each appended + persisted as soon as it is generated)
                     → final rebuild → completed
                                     ╲
                                      → failed (persistence error escaped the run)

Model-call failures never reach this module: the LLM client resolves them
to canned fallback text.  What can fail here is persistence, and those
errors are re-raised so the job queue retries the run.

Public API
----------
WordEnrichmentService.get_or_create(word)                          -> Word
WordEnrichmentService.get_or_create_with_flag(word)                -> (Word, created)
WordEnrichmentService.run_deep_enrichment(word_id, word_text, cb)  -> None
WordEnrichmentService.handle_job(job)            (JobQueue handler)
WordEnrichmentService.handle_exhausted(job, exc) (JobQueue exhaustion hook)
WordEnrichmentService.status(word) / status_by_id(word_id)         -> WordStatus
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Callable, Dict, List, Optional, Set, Tuple

from words_wall.config import settings
from words_wall.models.database_models import ProcessingStatus, Word
from words_wall.services.content_assembler import (
    COMPLETED_MARKERS,
    DEEP_SECTIONS,
    FAILED_MARKER,
    FAST_PATH_MARKER,
    SectionKey,
    append_section,
    assemble_full,
    assemble_initial,
    completed_sections,
    extract_basic_meaning,
    parse_sections,
)
from words_wall.services.job_queue import (
    EnrichWordPayload,
    Job,
    JobKind,
    JobQueue,
    QueueUnavailableError,
)
from words_wall.services.llm_client import OllamaWordClient
from words_wall.services.word_store import WordAlreadyExistsError, WordStore
from words_wall.utils.helpers import first_meaningful_line, normalize_word

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class WordNotFoundError(LookupError):
    """The word record an enrichment run was started for does not exist."""


@dataclasses.dataclass
class WordStatus:
    word_id: int
    word: str
    is_processing: bool
    processing_status: ProcessingStatus
    scenarios: List[str]
    sections_completed: List[str]


class WordEnrichmentService:
    """
    Orchestrates fast generation, persistence and queued deep enrichment.

    The service is the sole writer of a word's processing-state fields.
    It is built once at startup with its store, model client and queue;
    without a running queue it falls back to detached background tasks.
    """

    def __init__(
        self,
        store: WordStore,
        llm: OllamaWordClient,
        queue: Optional[JobQueue] = None,
        section_delay: Optional[float] = None,
    ) -> None:
        self._store = store
        self._llm = llm
        self._queue = queue
        self.section_delay = (
            section_delay if section_delay is not None else settings.ENRICHMENT_SECTION_DELAY
        )
        # Detached enrichment runs (queue-unavailable fallback)
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Synchronous-feeling entry point
    # ------------------------------------------------------------------

    async def get_or_create(self, word: str) -> Word:
        """
        Return the stored record for *word*, creating it on a cache miss.

        A hit returns the record untouched (no model call, no job).  A miss
        generates the fast basic-meaning section, stores an ``in-progress``
        record, schedules deep enrichment once and returns immediately.

        Raises:
            ValueError: If *word* is empty after normalisation.
        """
        record, _ = await self.get_or_create_with_flag(word)
        return record

    async def get_or_create_with_flag(self, word: str) -> Tuple[Word, bool]:
        """
        Same as ``get_or_create`` but also report whether this call created
        the record.  A request that loses the insert race gets ``False``.
        """
        normalized = normalize_word(word)
        if not normalized:
            raise ValueError("word must not be empty")

        existing = await self._store.find_by_normalized_text(normalized)
        if existing is not None:
            logger.info(
                "Word %r already exists (id=%d, %s), returning cached version",
                normalized, existing.id, existing.processing_status,
            )
            return existing, False

        logger.info("Word %r not found, generating immediate content", normalized)
        fast_text = await self._llm.request_fast_section(normalized)
        document = assemble_initial(fast_text)

        if fast_text == self._llm.get_fallback_for_section(SectionKey.BASIC_MEANING):
            chinese_meaning = ""
        else:
            chinese_meaning = first_meaningful_line(fast_text) or ""

        try:
            record = await self._store.insert(
                word=normalized,
                meaning=document,
                usage=document,
                chinese_meaning=chinese_meaning,
                scenarios=[FAST_PATH_MARKER],
                rating=5,
                is_processing=True,
                processing_status=ProcessingStatus.IN_PROGRESS,
            )
        except WordAlreadyExistsError:
            # Lost a race with a concurrent request for the same word
            winner = await self._store.find_by_normalized_text(normalized)
            if winner is None:
                raise
            logger.info("Word %r was created concurrently (id=%d)", normalized, winner.id)
            return winner, False

        logger.info("Saved immediate word %r with id=%d", normalized, record.id)
        self._schedule_enrichment(record.id, normalized)
        return record, True

    def _schedule_enrichment(self, word_id: int, word_text: str) -> None:
        if self._queue is not None:
            try:
                self._queue.enqueue(
                    JobKind.ENRICH_WORD,
                    EnrichWordPayload(word_id=word_id, word_text=word_text),
                )
                return
            except QueueUnavailableError as exc:
                logger.warning(
                    "Queue unavailable (%s) — enriching %r in a detached task "
                    "(no retry)", exc, word_text,
                )
        else:
            logger.warning("No job queue configured — enriching %r in a detached task", word_text)

        task = asyncio.create_task(self._run_detached(word_id, word_text))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run_detached(self, word_id: int, word_text: str) -> None:
        try:
            await self.run_deep_enrichment(word_id, word_text)
        except Exception as exc:
            logger.error("Detached enrichment for %r failed: %s", word_text, exc)

    async def wait_for_background(self) -> None:
        """Wait for detached enrichment tasks (queue-unavailable fallback)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Queue integration
    # ------------------------------------------------------------------

    async def handle_job(self, job: Job) -> None:
        payload: EnrichWordPayload = job.payload
        await self.run_deep_enrichment(
            payload.word_id, payload.word_text, progress=job.report_progress
        )

    async def handle_exhausted(self, job: Job, exc: BaseException) -> None:
        """Force ``failed`` once the queue gives up on a word."""
        payload: EnrichWordPayload = job.payload
        logger.error(
            "Enrichment of %r abandoned after %d attempts: %s",
            payload.word_text, job.attempts, exc,
        )
        await self._mark_failed(payload.word_id)

    # ------------------------------------------------------------------
    # Deep enrichment
    # ------------------------------------------------------------------

    async def run_deep_enrichment(
        self,
        word_id: int,
        word_text: str,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Generate and persist the four deep sections, then finalise.

        Any error escaping the run marks the word ``failed`` and is
        re-raised so the queue's retry counter advances.
        """
        logger.info("Processing enhanced details for word %r (id=%d)", word_text, word_id)
        try:
            await self._enrich(word_id, word_text, progress)
        except Exception as exc:
            logger.error(
                "Failed to process word %r (id=%d): %s", word_text, word_id, exc, exc_info=True
            )
            await self._mark_failed(word_id)
            raise

    async def _enrich(
        self,
        word_id: int,
        word_text: str,
        progress: Optional[ProgressCallback],
    ) -> None:
        record = await self._store.find_by_id(word_id)
        if record is None:
            raise WordNotFoundError(f"Word id={word_id} not found")

        self._report(progress, 10)
        stored = parse_sections(record.meaning)
        results: Dict[SectionKey, str] = {
            SectionKey.BASIC_MEANING: extract_basic_meaning(record.meaning),
        }

        # Sections a previous (failed) attempt already persisted are reused
        resumed = [key for key in DEEP_SECTIONS if stored[key] is not None]
        if resumed or record.processing_status != ProcessingStatus.IN_PROGRESS:
            ledger = [FAST_PATH_MARKER] + [key.value for key in resumed]
            updated = await self._store.update(
                word_id,
                is_processing=True,
                processing_status=ProcessingStatus.IN_PROGRESS,
                scenarios=ledger,
            )
            if updated is None:
                raise WordNotFoundError(f"Word id={word_id} not found")
            if resumed:
                logger.info(
                    "Resuming %r with %d section(s) already stored: %s",
                    word_text, len(resumed), [key.value for key in resumed],
                )

        total = len(DEEP_SECTIONS)
        requested_any = False
        for index, key in enumerate(DEEP_SECTIONS, start=1):
            if stored[key] is not None:
                results[key] = stored[key]
                self._report(progress, round(index / total * 80) + 10)
                continue

            if requested_any and self.section_delay > 0:
                logger.debug("Waiting %.1fs before next request", self.section_delay)
                await asyncio.sleep(self.section_delay)

            logger.info("Processing section %d/%d for %r: %s", index, total, word_text, key.value)
            text = await self._llm.request_section(self._llm.build_prompt(key, word_text), key)
            requested_any = True
            results[key] = text

            if not await self._persist_section(word_id, key, text):
                logger.warning(
                    "Word id=%d (%r) no longer exists — stopping enrichment without further writes",
                    word_id, word_text,
                )
                return
            self._report(progress, round(index / total * 80) + 10)

        await self._finalize(word_id, word_text, results)
        self._report(progress, 100)

    async def _persist_section(self, word_id: int, key: SectionKey, text: str) -> bool:
        """Append one section to the stored document.  False if the word is gone."""
        current = await self._store.find_by_id(word_id)
        if current is None:
            logger.error("Word id=%d not found while saving section %s", word_id, key.value)
            return False

        document = append_section(current.meaning or "", key, text)
        scenarios = list(current.scenarios or []) + [key.value]
        updated = await self._store.update(
            word_id,
            meaning=document,
            usage=document,
            scenarios=scenarios,
            processing_status=ProcessingStatus.IN_PROGRESS,
        )
        if updated is None:
            logger.error("Word id=%d not found while saving section %s", word_id, key.value)
            return False

        logger.info("Updated word %r with section: %s", current.word, key.value)
        return True

    async def _finalize(
        self,
        word_id: int,
        word_text: str,
        results: Dict[SectionKey, str],
    ) -> None:
        # Rebuilt from the in-memory results, not from the appended document,
        # so the stored layout is always canonical
        final_document = assemble_full(word_text, results)
        updated = await self._store.update(
            word_id,
            meaning=final_document,
            usage=final_document,
            scenarios=list(COMPLETED_MARKERS),
            is_processing=False,
            processing_status=ProcessingStatus.COMPLETED,
        )
        if updated is None:
            logger.warning("Word id=%d not found for finalization", word_id)
            return
        logger.info("Finalized processing for word %r", word_text)

    async def _mark_failed(self, word_id: int) -> None:
        try:
            updated = await self._store.update(
                word_id,
                is_processing=False,
                processing_status=ProcessingStatus.FAILED,
                scenarios=[FAILED_MARKER],
            )
        except Exception as exc:
            logger.error("Could not mark word id=%d as failed: %s", word_id, exc)
            return
        if updated is None:
            logger.warning("Word id=%d not found when marking it failed", word_id)

    @staticmethod
    def _report(progress: Optional[ProgressCallback], percent: float) -> None:
        if progress is not None:
            progress(percent)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def status(self, word: str) -> Optional[WordStatus]:
        record = await self._store.find_by_normalized_text(normalize_word(word))
        return self._to_status(record) if record is not None else None

    async def status_by_id(self, word_id: int) -> Optional[WordStatus]:
        record = await self._store.find_by_id(word_id)
        return self._to_status(record) if record is not None else None

    @staticmethod
    def _to_status(record: Word) -> WordStatus:
        return WordStatus(
            word_id=record.id,
            word=record.word,
            is_processing=bool(record.is_processing),
            processing_status=ProcessingStatus(record.processing_status),
            scenarios=list(record.scenarios or []),
            sections_completed=[key.value for key in completed_sections(record.meaning)],
        )
