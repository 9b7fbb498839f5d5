"""
Bulk word import endpoints.

POST /upload-words   — parse a CSV / text file and import its words in the background.
GET  /import-status  — progress of the running (or last) import.
"""
from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from words_wall.config import settings
from words_wall.dependencies.services import get_import_manager
from words_wall.models.schemas import ImportStartResponse, ImportStatusResponse
from words_wall.services.import_manager import ImportManager, parse_word_file

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/upload-words",
    response_model=ImportStartResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def upload_words(
    file: UploadFile = File(...),
    manager: ImportManager = Depends(get_import_manager),
) -> ImportStartResponse:
    """
    Import the words in the first column of an uploaded file.

    - Accepted: .csv and .txt (one word per line)
    - A header row ("word", "english", …) is skipped; duplicates are removed
    - Each word is created exactly like a single request; existing words are kept
    """
    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Upload must include a filename.",
        )

    file_ext = Path(file.filename).suffix.lower()
    if file_ext not in settings.SUPPORTED_IMPORT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                f"Unsupported file type '{file_ext}'. "
                f"Accepted: {', '.join(settings.SUPPORTED_IMPORT_TYPES)}"
            ),
        )

    content = await file.read(settings.MAX_IMPORT_FILE_SIZE + 1)
    if len(content) > settings.MAX_IMPORT_FILE_SIZE:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=(
                f"File exceeds the {settings.MAX_IMPORT_FILE_SIZE // (1024 * 1024)} MB "
                "size limit."
            ),
        )

    try:
        words = parse_word_file(content)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        )

    try:
        manager.start(words)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

    logger.info("Started import of %d word(s) from %s", len(words), file.filename)
    return ImportStartResponse(
        message=f"Started processing {len(words)} words from {file.filename}",
        total_words=len(words),
    )


@router.get("/import-status", response_model=ImportStatusResponse)
async def import_status(
    manager: ImportManager = Depends(get_import_manager),
) -> ImportStatusResponse:
    current = manager.get_status()
    return ImportStatusResponse(
        is_running=current.is_running,
        progress=current.progress,
        total=current.total,
        completed=current.completed,
        current_word=current.current_word,
        errors=current.errors,
        elapsed_seconds=current.elapsed_seconds,
    )
