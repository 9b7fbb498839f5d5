"""
SQLAlchemy ORM models for the Words Wall database.
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Boolean,
    Enum as SQLEnum,
    JSON,
)
from sqlalchemy.sql import func
import enum

from words_wall.database import Base


# Enums
class ProcessingStatus(str, enum.Enum):
    """Enrichment state of a shared word entry."""

    COMPLETED = "completed"
    IN_PROGRESS = "in-progress"
    FAILED = "failed"


# Models
class Word(Base):
    """
    Shared word entry with the generated explanation.

    One row per normalised word, shared by every sticker that shows it.
    ``meaning`` holds the rendered multi-section document; ``usage`` mirrors
    it for older clients.  ``scenarios`` doubles as the enrichment progress
    ledger (section tags and terminal markers).
    """

    __tablename__ = "words"

    id = Column(Integer, primary_key=True, index=True)
    word = Column(String(255), nullable=False, unique=True, index=True)  # normalised lowercase
    meaning = Column(Text, nullable=False, default="")
    usage = Column(Text, nullable=False, default="")
    chinese_meaning = Column(String(255), nullable=False, default="")
    scenarios = Column(JSON, nullable=False, default=list)
    pronunciation = Column(String(255), nullable=True)
    rating = Column(Integer, nullable=False, default=5)  # 0-5 familiarity, user-set

    # Processing state
    is_processing = Column(Boolean, nullable=False, default=False)
    processing_status = Column(
        SQLEnum(
            ProcessingStatus,
            name="processing_status",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=ProcessingStatus.COMPLETED,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Word id={self.id} word={self.word!r} status={self.processing_status}>"
