"""
Tests for WordEnrichmentService: get-or-create, queued deep enrichment,
progressive persistence and failure handling.
"""
import asyncio

import pytest

from words_wall.models.database_models import ProcessingStatus
from words_wall.services.content_assembler import (
    CANONICAL_ORDER,
    COMPLETED_MARKERS,
    DEEP_SECTIONS,
    FAILED_MARKER,
    FAST_PATH_MARKER,
    SECTION_HEADINGS,
    SectionKey,
    append_section,
    assemble_initial,
    parse_sections,
)
from words_wall.services.job_queue import JobQueue
from words_wall.services.word_service import WordEnrichmentService, WordNotFoundError

from tests.fakes import FakeWordClient, InMemoryWordStore


# ---------------------------------------------------------------------------
# get_or_create
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_miss_stores_fast_section_and_returns_in_progress(
    service: WordEnrichmentService, llm: FakeWordClient, store: InMemoryWordStore
):
    word = await service.get_or_create("Apple")

    assert word.word == "apple"
    assert word.processing_status == ProcessingStatus.IN_PROGRESS
    assert word.is_processing is True
    assert word.scenarios == [FAST_PATH_MARKER]
    assert word.rating == 5
    assert word.meaning == assemble_initial("n. apple 的中文含义\nThe apple example.")
    assert word.usage == word.meaning
    assert word.chinese_meaning == "n. apple 的中文含义"
    assert llm.fast_calls == ["apple"]
    assert len(store.rows) == 1


@pytest.mark.asyncio
async def test_cache_hit_makes_no_model_calls_and_no_jobs(
    service: WordEnrichmentService,
    llm: FakeWordClient,
    queue: JobQueue,
    monkeypatch,
):
    enqueued = []
    original_enqueue = queue.enqueue

    def spy(*args, **kwargs):
        enqueued.append(args)
        return original_enqueue(*args, **kwargs)

    monkeypatch.setattr(queue, "enqueue", spy)

    first = await service.get_or_create("Apple")
    await queue.drain()
    calls_after_first = llm.call_count

    second = await service.get_or_create("Apple")

    assert second.id == first.id
    assert llm.call_count == calls_after_first
    assert len(enqueued) == 1
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_normalisation_resolves_to_one_record(
    service: WordEnrichmentService, store: InMemoryWordStore, llm: FakeWordClient
):
    records = [await service.get_or_create(text) for text in ("Run", "run", " RUN ")]

    assert {r.id for r in records} == {records[0].id}
    assert [r.word for r in store.rows.values()] == ["run"]
    assert llm.fast_calls == ["run"]


@pytest.mark.asyncio
async def test_created_flag_is_false_for_the_request_that_loses_the_race(
    service: WordEnrichmentService,
    store: InMemoryWordStore,
    queue: JobQueue,
    monkeypatch,
):
    first, created = await service.get_or_create_with_flag("apple")
    assert created is True
    await queue.drain()

    original_find = store.find_by_normalized_text
    lookups = []

    async def stale_first_lookup(text):
        lookups.append(text)
        if len(lookups) == 1:
            return None
        return await original_find(text)

    monkeypatch.setattr(store, "find_by_normalized_text", stale_first_lookup)

    second, created = await service.get_or_create_with_flag("apple")
    assert created is False
    assert second.id == first.id
    assert len(store.rows) == 1
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_blank_word_is_rejected(service: WordEnrichmentService):
    with pytest.raises(ValueError):
        await service.get_or_create("   ")


@pytest.mark.asyncio
async def test_fast_fallback_leaves_chinese_meaning_empty(
    service: WordEnrichmentService, llm: FakeWordClient
):
    llm.fail_sections.add(SectionKey.BASIC_MEANING)
    word = await service.get_or_create("zyzzyva")

    assert word.chinese_meaning == ""
    assert parse_sections(word.meaning)[SectionKey.BASIC_MEANING] == (
        llm.get_fallback_for_section(SectionKey.BASIC_MEANING)
    )


# ---------------------------------------------------------------------------
# Deep enrichment
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_queued_enrichment_completes_word(
    service: WordEnrichmentService,
    llm: FakeWordClient,
    store: InMemoryWordStore,
    queue: JobQueue,
):
    word = await service.get_or_create("apple")
    await queue.drain()

    stored = store.rows[word.id]
    assert stored.processing_status == ProcessingStatus.COMPLETED
    assert stored.is_processing is False
    assert stored.scenarios == COMPLETED_MARKERS
    assert llm.section_calls == list(DEEP_SECTIONS)

    positions = [stored.meaning.index(SECTION_HEADINGS[key]) for key in CANONICAL_ORDER]
    assert positions == sorted(positions)
    sections = parse_sections(stored.meaning)
    assert sections[SectionKey.SYNONYMS] == "synonyms content (synonyms:apple)"
    assert stored.meaning.rstrip().endswith('"apple" - 记住这个单词的关键是理解其核心含义和使用场景')
    assert stored.usage == stored.meaning


@pytest.mark.asyncio
async def test_failing_section_gets_fallback_and_still_completes(
    service: WordEnrichmentService,
    llm: FakeWordClient,
    store: InMemoryWordStore,
    queue: JobQueue,
):
    llm.fail_sections.add(SectionKey.SYNONYMS)
    word = await service.get_or_create("apple")
    await queue.drain()

    stored = store.rows[word.id]
    assert stored.processing_status == ProcessingStatus.COMPLETED
    assert parse_sections(stored.meaning)[SectionKey.SYNONYMS] == (
        llm.get_fallback_for_section(SectionKey.SYNONYMS)
    )


@pytest.mark.asyncio
async def test_partial_progress_is_persisted_while_in_progress(
    service: WordEnrichmentService,
    llm: FakeWordClient,
    store: InMemoryWordStore,
    queue: JobQueue,
):
    llm.block_on = SectionKey.SYNONYMS
    word = await service.get_or_create("apple")
    fast_document = word.meaning

    run = asyncio.create_task(queue.drain())
    await asyncio.wait_for(llm.reached.wait(), timeout=5)

    # Two of the four deep sections are done; the third is still generating
    stored = store.rows[word.id]
    expected = append_section(
        append_section(fast_document, "detailedMeaning", "detailedMeaning content (detailedMeaning:apple)"),
        "usageExamples",
        "usageExamples content (usageExamples:apple)",
    )
    assert stored.meaning == expected
    assert stored.processing_status == ProcessingStatus.IN_PROGRESS
    assert stored.is_processing is True
    assert stored.scenarios == [FAST_PATH_MARKER, "detailedMeaning", "usageExamples"]

    llm.release.set()
    await asyncio.wait_for(run, timeout=5)
    assert store.rows[word.id].processing_status == ProcessingStatus.COMPLETED


@pytest.mark.asyncio
async def test_progress_is_reported_to_the_job(
    service: WordEnrichmentService, store: InMemoryWordStore
):
    word = await store.insert(
        word="apple",
        meaning=assemble_initial("n. 苹果"),
        is_processing=True,
        processing_status=ProcessingStatus.IN_PROGRESS,
        scenarios=[FAST_PATH_MARKER],
    )
    reported = []

    await service.run_deep_enrichment(word.id, "apple", progress=reported.append)

    assert reported == [10, 30, 50, 70, 90, 100]


@pytest.mark.asyncio
async def test_sections_are_spaced_by_the_configured_delay(
    store: InMemoryWordStore, llm: FakeWordClient, monkeypatch
):
    service = WordEnrichmentService(store=store, llm=llm, queue=None, section_delay=1.5)
    word = await store.insert(
        word="apple",
        meaning=assemble_initial("n. 苹果"),
        is_processing=True,
        processing_status=ProcessingStatus.IN_PROGRESS,
        scenarios=[FAST_PATH_MARKER],
    )
    delays = []
    real_sleep = asyncio.sleep

    async def recording_sleep(delay, *args, **kwargs):
        if delay:
            delays.append(delay)
        await real_sleep(0)

    monkeypatch.setattr("words_wall.services.word_service.asyncio.sleep", recording_sleep)

    await service.run_deep_enrichment(word.id, "apple")

    # No wait before the first model call, one between each later pair
    assert delays == [1.5] * (len(DEEP_SECTIONS) - 1)
    assert store.rows[word.id].processing_status == ProcessingStatus.COMPLETED


@pytest.mark.asyncio
async def test_model_calls_are_serialised(
    service: WordEnrichmentService, llm: FakeWordClient, queue: JobQueue
):
    for text in ("apple", "banana", "cherry"):
        await service.get_or_create(text)
    await queue.drain()

    assert llm.max_in_flight == 1
    assert len(llm.section_calls) == 3 * len(DEEP_SECTIONS)


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_persistent_store_failure_marks_word_failed_after_retries(
    service: WordEnrichmentService,
    llm: FakeWordClient,
    store: InMemoryWordStore,
    queue: JobQueue,
):
    word = await service.get_or_create("apple")
    # Every section write fails; status-only writes still go through
    store.fail_update_when = lambda word_id, fields: "meaning" in fields

    await queue.drain()

    stored = store.rows[word.id]
    assert stored.processing_status == ProcessingStatus.FAILED
    assert stored.is_processing is False
    assert stored.scenarios == [FAILED_MARKER]
    # One section attempted per run, three runs
    assert llm.section_calls == [SectionKey.DETAILED_MEANING] * 3
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_retry_resumes_without_duplicating_sections(
    service: WordEnrichmentService,
    llm: FakeWordClient,
    store: InMemoryWordStore,
    queue: JobQueue,
):
    failures = []

    def fail_first_synonyms_write(word_id, fields):
        if "synonyms" in fields.get("scenarios", []) and not failures:
            failures.append(word_id)
            return True
        return False

    store.fail_update_when = fail_first_synonyms_write
    word = await service.get_or_create("apple")
    await queue.drain()

    stored = store.rows[word.id]
    assert failures == [word.id]
    assert stored.processing_status == ProcessingStatus.COMPLETED
    assert stored.scenarios == COMPLETED_MARKERS
    for key in CANONICAL_ORDER:
        assert stored.meaning.count(SECTION_HEADINGS[key]) == 1
    assert llm.section_calls == [
        SectionKey.DETAILED_MEANING,
        SectionKey.USAGE_EXAMPLES,
        SectionKey.SYNONYMS,
        SectionKey.SYNONYMS,
        SectionKey.COLLOCATIONS,
    ]


@pytest.mark.asyncio
async def test_heading_in_model_reply_does_not_skip_a_section_on_retry(
    service: WordEnrichmentService,
    llm: FakeWordClient,
    store: InMemoryWordStore,
    queue: JobQueue,
):
    detail = f"detail part\n{SECTION_HEADINGS[SectionKey.SYNONYMS]}\nmodel-written synonyms"
    llm.replies[SectionKey.DETAILED_MEANING] = detail
    failures = []

    def fail_first_usage_write(word_id, fields):
        if "usageExamples" in fields.get("scenarios", []) and not failures:
            failures.append(word_id)
            return True
        return False

    store.fail_update_when = fail_first_usage_write
    word = await service.get_or_create("apple")
    await queue.drain()

    stored = store.rows[word.id]
    assert failures == [word.id]
    assert stored.processing_status == ProcessingStatus.COMPLETED
    assert llm.section_calls == [
        SectionKey.DETAILED_MEANING,
        SectionKey.USAGE_EXAMPLES,
        SectionKey.USAGE_EXAMPLES,
        SectionKey.SYNONYMS,
        SectionKey.COLLOCATIONS,
    ]
    sections = parse_sections(stored.meaning)
    assert sections[SectionKey.DETAILED_MEANING] == (
        "detail part\n#### 🔄 近义词对比\nmodel-written synonyms"
    )
    assert sections[SectionKey.SYNONYMS] == "synonyms content (synonyms:apple)"
    for key in CANONICAL_ORDER:
        assert stored.meaning.splitlines().count(SECTION_HEADINGS[key]) == 1


@pytest.mark.asyncio
async def test_missing_word_fails_the_run(service: WordEnrichmentService):
    with pytest.raises(WordNotFoundError):
        await service.run_deep_enrichment(999, "ghost")


@pytest.mark.asyncio
async def test_word_deleted_mid_run_stops_without_further_writes(
    service: WordEnrichmentService,
    llm: FakeWordClient,
    store: InMemoryWordStore,
    queue: JobQueue,
):
    llm.block_on = SectionKey.USAGE_EXAMPLES
    word = await service.get_or_create("apple")

    run = asyncio.create_task(queue.drain())
    await asyncio.wait_for(llm.reached.wait(), timeout=5)
    await store.delete(word.id)
    writes_before = len(store.updates)

    llm.release.set()
    await asyncio.wait_for(run, timeout=5)

    assert word.id not in store.rows
    # The run stops at the missed write: no later sections, no failed mark
    assert llm.section_calls == [SectionKey.DETAILED_MEANING, SectionKey.USAGE_EXAMPLES]
    assert store.updates[writes_before:] == []
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_unavailable_queue_falls_back_to_detached_task(
    store: InMemoryWordStore, llm: FakeWordClient
):
    stopped = JobQueue(tick_interval=3600)
    service = WordEnrichmentService(store=store, llm=llm, queue=stopped, section_delay=0)

    word = await service.get_or_create("apple")
    assert word.processing_status == ProcessingStatus.IN_PROGRESS

    await service.wait_for_background()
    assert store.rows[word.id].processing_status == ProcessingStatus.COMPLETED


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_status_lists_completed_sections(
    service: WordEnrichmentService, queue: JobQueue
):
    word = await service.get_or_create("Apple")
    early = await service.status("apple")
    assert early.processing_status == ProcessingStatus.IN_PROGRESS
    assert early.sections_completed == ["basicMeaning"]

    await queue.drain()
    done = await service.status_by_id(word.id)
    assert done.is_processing is False
    assert done.sections_completed == [key.value for key in CANONICAL_ORDER]
    assert await service.status("unknown") is None
