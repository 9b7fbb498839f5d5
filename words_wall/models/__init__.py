"""Database and schema models for Words Wall."""
from words_wall.models.database_models import (
    Word,
    ProcessingStatus,
)
from words_wall.models.schemas import (
    WordCreateRequest,
    WordUpdateRequest,
    WordResponse,
    WordListResponse,
    WordStatusResponse,
    QueueStatusResponse,
    ImportStartResponse,
    ImportStatusResponse,
    HealthCheckResponse,
)

__all__ = [
    # Database models
    "Word",
    "ProcessingStatus",
    # Pydantic schemas
    "WordCreateRequest",
    "WordUpdateRequest",
    "WordResponse",
    "WordListResponse",
    "WordStatusResponse",
    "QueueStatusResponse",
    "ImportStartResponse",
    "ImportStatusResponse",
    "HealthCheckResponse",
]
