"""
Bulk word import: file parsing plus a tracked background task.

Usage
-----
    words = parse_word_file(raw_bytes)
    status = import_manager.start(words)
    # ... later ...
    current = import_manager.get_status()

Each word goes through ``WordEnrichmentService.get_or_create`` so imported
words get the same fast section and queued deep enrichment as words added
one by one.  Only one import runs at a time.
"""
from __future__ import annotations

import asyncio
import csv
import dataclasses
import io
import logging
import time
from typing import List, Optional

from words_wall.config import settings
from words_wall.services.word_service import WordEnrichmentService

logger = logging.getLogger(__name__)

# First-row values that mark a header rather than a word
_HEADER_WORDS = frozenset({"word", "words", "english", "vocabulary"})


def parse_word_file(content: bytes) -> List[str]:
    """
    Extract words from the first column of a CSV (or one-word-per-line) file.

    Words are trimmed and lowercased, a header row is skipped and
    duplicates are removed keeping the first occurrence.

    Raises:
        ValueError: If the file is not UTF-8 text or holds no words.
    """
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ValueError("File is not valid UTF-8 text") from exc

    words: List[str] = []
    for row in csv.reader(io.StringIO(text)):
        if not row:
            continue
        cell = row[0].strip().lower()
        if cell:
            words.append(cell)

    if words and words[0] in _HEADER_WORDS:
        words = words[1:]

    words = list(dict.fromkeys(words))
    if not words:
        raise ValueError(
            "No valid words found in the first column. "
            "Make sure your file has English words in the first column."
        )
    return words


@dataclasses.dataclass
class ImportStatus:
    is_running: bool = False
    progress: int = 0
    total: int = 0
    completed: int = 0
    current_word: Optional[str] = None
    errors: List[str] = dataclasses.field(default_factory=list)
    started_at: Optional[float] = None
    completed_at: Optional[float] = None

    @property
    def elapsed_seconds(self) -> Optional[float]:
        if self.started_at is None:
            return None
        end = self.completed_at if self.completed_at else time.monotonic()
        return round(end - self.started_at, 2)


class ImportManager:
    """Runs one bulk import at a time as a background asyncio.Task."""

    def __init__(
        self,
        word_service: WordEnrichmentService,
        word_delay: Optional[float] = None,
    ) -> None:
        self._word_service = word_service
        self.word_delay = word_delay if word_delay is not None else settings.IMPORT_WORD_DELAY
        self._status = ImportStatus()
        self._task: Optional[asyncio.Task] = None

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def get_status(self) -> ImportStatus:
        return dataclasses.replace(self._status, errors=list(self._status.errors))

    def start(self, words: List[str]) -> ImportStatus:
        """
        Launch a background import of *words*.

        Raises:
            RuntimeError: If an import is already running.
        """
        if self.is_running():
            raise RuntimeError("An import is already running")

        self._status = ImportStatus(
            is_running=True,
            total=len(words),
            started_at=time.monotonic(),
        )
        self._task = asyncio.create_task(self._run(list(words)))
        logger.info("Import task started for %d word(s)", len(words))
        return self.get_status()

    async def wait(self) -> None:
        """Wait for the running import (if any) to finish."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def _run(self, words: List[str]) -> None:
        status = self._status
        try:
            for index, word in enumerate(words):
                status.current_word = word
                status.progress = round(index / len(words) * 100)
                try:
                    await self._word_service.get_or_create(word)
                    status.completed += 1
                except Exception as exc:
                    status.errors.append(f'Failed to process "{word}": {str(exc)[:200]}')
                    logger.error("Import: failed to process %r: %s", word, exc)

                if index < len(words) - 1 and self.word_delay > 0:
                    await asyncio.sleep(self.word_delay)
        finally:
            status.is_running = False
            status.progress = 100
            status.current_word = None
            status.completed_at = time.monotonic()
            logger.info(
                "Import finished: %d/%d word(s), %d error(s) in %.2fs",
                status.completed, status.total, len(status.errors), status.elapsed_seconds or 0.0,
            )
