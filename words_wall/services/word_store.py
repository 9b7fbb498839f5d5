"""
Persistence of shared word entries.

``WordStore`` is the interface the enrichment pipeline depends on;
``SqlWordStore`` implements it on the async SQLAlchemy session factory.
Each call runs in its own short session so the store can be used from
background jobs that outlive any HTTP request.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Protocol

from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from words_wall.database import AsyncSessionLocal
from words_wall.models.database_models import Word

logger = logging.getLogger(__name__)

# Columns the store lets callers write
UPDATABLE_FIELDS = frozenset({
    "meaning",
    "usage",
    "chinese_meaning",
    "scenarios",
    "pronunciation",
    "rating",
    "is_processing",
    "processing_status",
})


class WordAlreadyExistsError(Exception):
    """Raised by insert when the normalised word is already stored."""


class WordStore(Protocol):
    """Operations the enrichment pipeline needs from word persistence."""

    async def find_by_normalized_text(self, text: str) -> Optional[Word]: ...

    async def find_by_id(self, word_id: int) -> Optional[Word]: ...

    async def insert(self, **fields: Any) -> Word: ...

    async def update(self, word_id: int, **fields: Any) -> Optional[Word]: ...

    async def delete(self, word_id: int) -> bool: ...

    async def list_words(self, limit: int = 50, offset: int = 0) -> List[Word]: ...

    async def count(self) -> int: ...

    async def ping(self) -> bool: ...


def _check_fields(fields: dict) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown word fields: {sorted(unknown)}")


class SqlWordStore:
    """WordStore backed by PostgreSQL through SQLAlchemy's async ORM."""

    def __init__(self, session_factory: Callable[[], AsyncSession] = AsyncSessionLocal) -> None:
        self._session_factory = session_factory

    async def find_by_normalized_text(self, text: str) -> Optional[Word]:
        async with self._session_factory() as session:
            result = await session.execute(select(Word).where(Word.word == text))
            return result.scalar_one_or_none()

    async def find_by_id(self, word_id: int) -> Optional[Word]:
        async with self._session_factory() as session:
            return await session.get(Word, word_id)

    async def insert(self, **fields: Any) -> Word:
        """
        Insert a new word row and return it with its assigned id.

        Raises:
            WordAlreadyExistsError: If the (normalised) word already exists.
        """
        word_text = fields.pop("word")
        _check_fields(fields)
        async with self._session_factory() as session:
            word = Word(word=word_text, **fields)
            session.add(word)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise WordAlreadyExistsError(word_text) from exc
            await session.refresh(word)
            logger.debug("Inserted word id=%d (%s)", word.id, word.word)
            return word

    async def update(self, word_id: int, **fields: Any) -> Optional[Word]:
        """Apply *fields* to the word; returns None if it no longer exists."""
        _check_fields(fields)
        async with self._session_factory() as session:
            word = await session.get(Word, word_id)
            if word is None:
                return None
            for name, value in fields.items():
                setattr(word, name, value)
            await session.commit()
            await session.refresh(word)
            return word

    async def delete(self, word_id: int) -> bool:
        async with self._session_factory() as session:
            word = await session.get(Word, word_id)
            if word is None:
                return False
            await session.delete(word)
            await session.commit()
            logger.info("Deleted word id=%d (%s)", word_id, word.word)
            return True

    async def list_words(self, limit: int = 50, offset: int = 0) -> List[Word]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Word).order_by(Word.created_at.desc(), Word.id.desc()).limit(limit).offset(offset)
            )
            return list(result.scalars().all())

    async def count(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(select(func.count(Word.id)))
            return int(result.scalar_one())

    async def ping(self) -> bool:
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as exc:
            logger.error("Database ping failed: %s", exc)
            return False
