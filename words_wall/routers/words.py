"""
Shared word endpoints.

Route summary
-------------
POST   /                — get-or-create a word (201 when created, 200 when cached).
GET    /                — list words (paginated).
GET    /lookup?word=    — find a word by text (no generation).
GET    /{id}            — word details with parsed sections.
GET    /{id}/status     — enrichment status for polling.
PUT    /{id}            — manual edit of content fields and rating.
DELETE /{id}            — administrative delete.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from words_wall.dependencies.services import get_word_service, get_word_store
from words_wall.models.database_models import Word
from words_wall.models.schemas import (
    WordCreateRequest,
    WordListResponse,
    WordResponse,
    WordStatusResponse,
    WordUpdateRequest,
)
from words_wall.services.content_assembler import parse_sections
from words_wall.services.word_service import WordEnrichmentService
from words_wall.services.word_store import WordStore
from words_wall.utils.helpers import normalize_word

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(word: Word) -> WordResponse:
    sections = {key.value: text for key, text in parse_sections(word.meaning).items()}
    return WordResponse.model_validate(word).model_copy(update={"sections": sections})


async def _get_or_404(store: WordStore, word_id: int) -> Word:
    word = await store.find_by_id(word_id)
    if word is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Word {word_id} not found.",
        )
    return word


# ---------------------------------------------------------------------------
# Get-or-create
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=WordResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Get a shared word, generating it on first request",
)
async def request_word(
    body: WordCreateRequest,
    response: Response,
    service: WordEnrichmentService = Depends(get_word_service),
) -> WordResponse:
    """
    Return the shared entry for ``word``.

    On first request the basic meaning is generated immediately and the
    record is returned with ``processing_status = in-progress``; detailed
    sections are added in the background.  Poll ``GET /{id}/status``.
    """
    try:
        word, created = await service.get_or_create_with_flag(body.word)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    if not created:
        response.status_code = status.HTTP_200_OK
    return _to_response(word)


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

@router.get("", response_model=WordListResponse)
async def list_words(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    store: WordStore = Depends(get_word_store),
) -> WordListResponse:
    """List shared words, newest first."""
    words = await store.list_words(limit=limit, offset=offset)
    total = await store.count()
    return WordListResponse(
        total=total,
        limit=limit,
        offset=offset,
        items=[_to_response(w) for w in words],
    )


@router.get("/lookup", response_model=WordResponse)
async def lookup_word(
    word: str = Query(..., min_length=1, max_length=255),
    store: WordStore = Depends(get_word_store),
) -> WordResponse:
    """Find a word by text without triggering generation."""
    record = await store.find_by_normalized_text(normalize_word(word))
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Word '{normalize_word(word)}' not found.",
        )
    return _to_response(record)


@router.get("/{word_id}", response_model=WordResponse)
async def get_word(
    word_id: int,
    store: WordStore = Depends(get_word_store),
) -> WordResponse:
    return _to_response(await _get_or_404(store, word_id))


@router.get("/{word_id}/status", response_model=WordStatusResponse)
async def get_word_status(
    word_id: int,
    service: WordEnrichmentService = Depends(get_word_service),
) -> WordStatusResponse:
    """Enrichment status; failures only show up here (there is no push)."""
    word_status = await service.status_by_id(word_id)
    if word_status is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Word {word_id} not found.",
        )
    return WordStatusResponse(
        id=word_status.word_id,
        word=word_status.word,
        is_processing=word_status.is_processing,
        processing_status=word_status.processing_status,
        scenarios=word_status.scenarios,
        sections_completed=word_status.sections_completed,
    )


# ---------------------------------------------------------------------------
# Write
# ---------------------------------------------------------------------------

@router.put("/{word_id}", response_model=WordResponse)
async def update_word(
    word_id: int,
    body: WordUpdateRequest,
    store: WordStore = Depends(get_word_store),
) -> WordResponse:
    """
    Manually edit a word.

    Only the fields present in the body are changed.  Edits made while the
    word is still being enriched are last-write-wins.
    """
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        return _to_response(await _get_or_404(store, word_id))

    word = await store.update(word_id, **changes)
    if word is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Word {word_id} not found.",
        )
    logger.info("Updated word %r fields: %s", word.word, sorted(changes))
    return _to_response(word)


@router.delete("/{word_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_word(
    word_id: int,
    store: WordStore = Depends(get_word_store),
) -> Response:
    """Delete a word.  A running enrichment for it stops at its next write."""
    if not await store.delete(word_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Word {word_id} not found.",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
