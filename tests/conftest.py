"""
Shared fixtures for Words Wall backend tests.

The orchestrator, queue and routes run against the in-memory store and
fake model client from ``tests.fakes``.  The app's service dependencies
are overridden so no PostgreSQL or Ollama instance is needed; the SQL
store has its own integration test (``test_word_store.py``).
"""
from __future__ import annotations

from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from words_wall.dependencies.services import (
    get_import_manager,
    get_job_queue,
    get_llm_client,
    get_word_service,
    get_word_store,
)
from words_wall.main import app
from words_wall.services.import_manager import ImportManager
from words_wall.services.job_queue import JobKind, JobQueue
from words_wall.services.word_service import WordEnrichmentService

from tests.fakes import FakeWordClient, InMemoryWordStore


# ---------------------------------------------------------------------------
# Per-test fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def store() -> InMemoryWordStore:
    return InMemoryWordStore()


@pytest_asyncio.fixture
async def llm() -> FakeWordClient:
    return FakeWordClient()


@pytest_asyncio.fixture
async def queue() -> AsyncGenerator[JobQueue, None]:
    """
    A running queue whose ticker never fires during a test.  Tests drive it
    with ``await queue.drain()``.
    """
    job_queue = JobQueue(tick_interval=3600, max_attempts=3)
    job_queue.start()
    yield job_queue
    await job_queue.shutdown(timeout=5)


@pytest_asyncio.fixture
async def service(
    store: InMemoryWordStore, llm: FakeWordClient, queue: JobQueue
) -> AsyncGenerator[WordEnrichmentService, None]:
    word_service = WordEnrichmentService(store=store, llm=llm, queue=queue, section_delay=0)
    queue.register(
        JobKind.ENRICH_WORD,
        word_service.handle_job,
        on_exhausted=word_service.handle_exhausted,
    )
    yield word_service
    await word_service.wait_for_background()


@pytest_asyncio.fixture
async def import_manager(service: WordEnrichmentService) -> ImportManager:
    return ImportManager(service, word_delay=0)


@pytest_asyncio.fixture
async def client(
    store: InMemoryWordStore,
    llm: FakeWordClient,
    queue: JobQueue,
    service: WordEnrichmentService,
    import_manager: ImportManager,
) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with every service
    dependency overridden to use the per-test fakes.
    """
    app.dependency_overrides[get_word_store] = lambda: store
    app.dependency_overrides[get_llm_client] = lambda: llm
    app.dependency_overrides[get_job_queue] = lambda: queue
    app.dependency_overrides[get_word_service] = lambda: service
    app.dependency_overrides[get_import_manager] = lambda: import_manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    await import_manager.wait()
