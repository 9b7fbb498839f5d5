"""
Job queue introspection.
"""
from fastapi import APIRouter, Depends

from words_wall.dependencies.services import get_job_queue
from words_wall.models.schemas import QueueStatusResponse
from words_wall.services.job_queue import JobQueue

router = APIRouter()


@router.get("/status", response_model=QueueStatusResponse)
async def queue_status(queue: JobQueue = Depends(get_job_queue)) -> QueueStatusResponse:
    """Number of pending enrichment jobs and the one currently running."""
    snapshot = queue.status()
    return QueueStatusResponse(
        running=snapshot.running,
        processing=snapshot.processing,
        queue_size=snapshot.queue_size,
        current_job=snapshot.current_job,
        current_progress=snapshot.current_progress,
    )
