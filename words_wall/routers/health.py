"""
Health check endpoints.
"""
from fastapi import APIRouter, Depends
from datetime import datetime, timezone
import logging

from words_wall.dependencies.services import get_job_queue, get_llm_client, get_word_store
from words_wall.models.schemas import HealthCheckResponse
from words_wall.services.job_queue import JobQueue
from words_wall.services.llm_client import OllamaWordClient
from words_wall.services.word_store import WordStore

logger = logging.getLogger(__name__)

router = APIRouter()

SERVICE_NAME = "words-wall-backend"


@router.get("/", response_model=HealthCheckResponse)
async def health_check(
    store: WordStore = Depends(get_word_store),
    llm: OllamaWordClient = Depends(get_llm_client),
    queue: JobQueue = Depends(get_job_queue),
):
    """
    Health check endpoint to verify system status.

    Returns:
        HealthCheckResponse with status of database, Ollama and the job queue
    """
    db_status = "ok" if await store.ping() else "error"
    ollama_status = "ok" if await llm.check_health() else "error"
    queue_status = "ok" if queue.is_running else "stopped"

    # Ollama being down degrades enrichment to fallback text, it does not break the API
    overall_status = (
        "healthy"
        if db_status == "ok" and ollama_status == "ok" and queue_status == "ok"
        else "degraded"
    )

    return HealthCheckResponse(
        status=overall_status,
        database=db_status,
        ollama=ollama_status,
        queue=queue_status,
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/ready")
async def readiness():
    return {
        "status": "ready",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": SERVICE_NAME,
    }


@router.get("/live")
async def liveness():
    return {
        "status": "alive",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": SERVICE_NAME,
    }
