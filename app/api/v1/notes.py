"""Note analysis endpoints."""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.api.v1.system import get_services
from app.core.events import AppStateDict
from app.core.logging import get_logger
from app.database.repositories import NoteRepository
from app.llm.analysis import analyze_note
from app.llm.errors import NoteNotFoundError

router = APIRouter(prefix="/notes", tags=["notes"])

logger = get_logger(module="notes_api")


class FilteredMediaRequest(BaseModel):
    """Body of the flagged image update endpoint."""

    note_id: str = Field(..., min_length=1)
    filtered_media_ids: list[str]


@router.post("/update-filtered-media")
async def update_filtered_media(
    request: FilteredMediaRequest,
    services: AppStateDict = Depends(get_services),
) -> dict[str, Any]:
    """
    Replace the image ids excluded from a note's analysis.

    Ids are stripped and de-duplicated; an empty list clears the filter.
    Responds 404 for an unknown note.
    """
    async with services.session_factory() as session:
        stored = await NoteRepository(session).update_filtered_media(
            request.note_id, request.filtered_media_ids
        )
    if stored is None:
        raise NoteNotFoundError(request.note_id)

    media_ids = stored.split(",") if stored else []
    logger.info(
        "filtered_media_updated", note_id=request.note_id, count=len(media_ids)
    )
    return {
        "success": True,
        "data": {"note_id": request.note_id, "filtered_media_ids": media_ids},
    }


@router.post("/{note_id}/ai-analysis")
async def analyze_single_note(
    note_id: str,
    services: AppStateDict = Depends(get_services),
) -> dict[str, Any]:
    """
    Claim one note and analyze it before responding.

    Responds 404 for an unknown note, 400 when the note has no link and 409
    when it is not pending or failed. A failed analysis is still a 200 with
    ``ai_status = failed`` and the diagnostic in ``ai_error``.
    """
    outcome = await analyze_note(
        services.session_factory,
        note_id,
        provider_resolver=services.dispatcher.provider_resolver,
    )
    return {
        "success": True,
        "data": {
            "note_id": outcome.note_id,
            "ai_status": outcome.status.value,
            "ai_content_type": outcome.content_type,
            "ai_related_products": outcome.related_products,
            "ai_summary": outcome.summary,
            "ai_error": outcome.error,
            "ai_error_type": outcome.error_type,
        },
    }
