"""
Pydantic schemas for request/response validation.
"""
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List, Dict
from datetime import datetime

from words_wall.models.database_models import ProcessingStatus


# ---------------------------------------------------------------------------
# Word Schemas
# ---------------------------------------------------------------------------

class WordCreateRequest(BaseModel):
    """Schema for requesting a word (get-or-create)."""

    word: str = Field(..., min_length=1, max_length=255)

    @field_validator("word")
    @classmethod
    def word_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("word must not be blank")
        return value


class WordUpdateRequest(BaseModel):
    """
    Manual edit of a word's content.

    Processing-state fields, including the ``scenarios`` progress ledger,
    are owned by the enrichment pipeline and cannot be set here.  Edits are
    last-write-wins.
    """

    meaning: Optional[str] = None
    chinese_meaning: Optional[str] = Field(None, max_length=255)
    usage: Optional[str] = None
    pronunciation: Optional[str] = Field(None, max_length=255)
    rating: Optional[int] = Field(None, ge=0, le=5)


class WordResponse(BaseModel):
    """Schema for word details."""

    id: int
    word: str
    meaning: str
    usage: str
    chinese_meaning: str
    scenarios: List[str] = []
    pronunciation: Optional[str] = None
    rating: int = 5
    is_processing: bool = False
    processing_status: ProcessingStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Best-effort split of ``meaning`` by section heading (None = not present)
    sections: Dict[str, Optional[str]] = {}

    model_config = ConfigDict(from_attributes=True)


class WordListResponse(BaseModel):
    """Paginated list of words."""

    total: int
    limit: int
    offset: int
    items: List[WordResponse]


class WordStatusResponse(BaseModel):
    """Lightweight status for polling a word's enrichment."""

    id: int
    word: str
    is_processing: bool
    processing_status: ProcessingStatus
    scenarios: List[str] = []
    sections_completed: List[str] = []


# ---------------------------------------------------------------------------
# Queue Schemas
# ---------------------------------------------------------------------------

class QueueStatusResponse(BaseModel):
    """Snapshot of the enrichment job queue."""

    running: bool
    processing: bool
    queue_size: int
    current_job: Optional[str] = None
    current_progress: Optional[float] = None


# ---------------------------------------------------------------------------
# Bulk Import Schemas
# ---------------------------------------------------------------------------

class ImportStartResponse(BaseModel):
    """Response for POST /api/admin/upload-words."""

    message: str
    total_words: int


class ImportStatusResponse(BaseModel):
    """Progress of the running (or last) bulk import."""

    is_running: bool
    progress: int
    total: int
    completed: int
    current_word: Optional[str] = None
    errors: List[str] = []
    elapsed_seconds: Optional[float] = None


# ---------------------------------------------------------------------------
# Health Schemas
# ---------------------------------------------------------------------------

class HealthCheckResponse(BaseModel):
    """Schema for health check response."""

    status: str
    database: str
    ollama: str
    queue: str
    timestamp: datetime
