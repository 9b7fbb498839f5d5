"""
Service dependencies for FastAPI routes.

The long-lived services (store, model client, job queue, orchestrator,
import manager) are built once in the application lifespan and kept on
``app.state``.  These functions hand them to route handlers and are the
seams tests override.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request, status

from words_wall.services.import_manager import ImportManager
from words_wall.services.job_queue import JobQueue
from words_wall.services.llm_client import OllamaWordClient
from words_wall.services.word_service import WordEnrichmentService
from words_wall.services.word_store import WordStore

logger = logging.getLogger(__name__)


def _from_state(request: Request, name: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        logger.error("Service %r requested before application startup completed", name)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Service '{name}' is not available.",
        )
    return service


def get_word_store(request: Request) -> WordStore:
    return _from_state(request, "word_store")


def get_llm_client(request: Request) -> OllamaWordClient:
    return _from_state(request, "llm_client")


def get_job_queue(request: Request) -> JobQueue:
    return _from_state(request, "job_queue")


def get_word_service(request: Request) -> WordEnrichmentService:
    return _from_state(request, "word_service")


def get_import_manager(request: Request) -> ImportManager:
    return _from_state(request, "import_manager")
