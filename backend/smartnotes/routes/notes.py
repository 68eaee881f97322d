"""
SmartNotes Backend - Notes Route Handlers
==========================================

What:  Note CRUD, AI processing, flashcard generation and flashcard export.
How:   Thin handlers: resolve the db session and SessionContext, delegate to
       NoteService / NoteProcessor, shape the response.
Who:   The SmartNotes web client.

Routes:
    POST   /api/notes
    GET    /api/notes                      ?favorites=&archived=
    GET    /api/notes/search               ?q=
    GET    /api/notes/recent               ?limit=
    GET    /api/notes/{id}
    PATCH  /api/notes/{id}
    DELETE /api/notes/{id}                 ?confirm=true
    POST   /api/notes/{id}/process
    POST   /api/notes/{id}/flashcards
    GET    /api/notes/{id}/flashcards/export ?format=anki|print
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from smartnotes.database import get_db_session
from smartnotes.exceptions import PersistenceError, ValidationError
from smartnotes.schemas.note import (
    ErrorResponse,
    Flashcard,
    FlashcardsResponse,
    NoteCreate,
    NoteListItem,
    NoteListResponse,
    NoteResponse,
    NoteUpdate,
    ProcessingReport,
)
from smartnotes.services import flashcard_export
from smartnotes.services.ai_pipeline import note_processor
from smartnotes.services.note_service import note_service
from smartnotes.session import SessionContext, get_session_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Notes"])

_COMMON_ERRORS = {
    401: {"description": "Not authenticated", "model": ErrorResponse},
    404: {"description": "Note not found", "model": ErrorResponse},
}


@router.post(
    "/notes",
    response_model=NoteResponse,
    status_code=status.HTTP_201_CREATED,
    responses={401: _COMMON_ERRORS[401]},
    summary="Create a note",
)
async def create_note(
    data: NoteCreate,
    db: AsyncSession = Depends(get_db_session),
    session: SessionContext = Depends(get_session_context),
) -> NoteResponse:
    note = await note_service.create_note(db, session, data)
    note = await note_service.get_note(db, session, note.id)
    return NoteResponse.model_validate(note)


@router.get(
    "/notes",
    response_model=NoteListResponse,
    responses={401: _COMMON_ERRORS[401]},
    summary="List notes, most recently updated first",
)
async def list_notes(
    response: Response,
    favorites: bool = Query(default=False, description="Only favorite notes"),
    archived: bool = Query(default=False, description="List archived notes instead"),
    db: AsyncSession = Depends(get_db_session),
    session: SessionContext = Depends(get_session_context),
) -> NoteListResponse:
    result = await note_service.list_notes(
        db, session, favorites_only=favorites, archived=archived
    )
    response.headers["X-Total-Count"] = str(result.total_count)
    return result


@router.get(
    "/notes/search",
    response_model=List[NoteListItem],
    responses={401: _COMMON_ERRORS[401]},
    summary="Search note titles and content",
)
async def search_notes(
    q: str = Query(default="", description="Case-insensitive substring"),
    db: AsyncSession = Depends(get_db_session),
    session: SessionContext = Depends(get_session_context),
) -> List[NoteListItem]:
    notes = await note_service.search_notes(db, session, q)
    return [note_service.to_list_item(note) for note in notes]


@router.get(
    "/notes/recent",
    response_model=List[NoteListItem],
    responses={401: _COMMON_ERRORS[401]},
    summary="Recently viewed notes, newest view first",
)
async def recently_viewed_notes(
    limit: int = Query(default=10, ge=1, le=50, description="Maximum notes returned"),
    db: AsyncSession = Depends(get_db_session),
    session: SessionContext = Depends(get_session_context),
) -> List[NoteListItem]:
    notes = await note_service.list_recently_viewed(db, session, limit=limit)
    return [note_service.to_list_item(note) for note in notes]


@router.get(
    "/notes/{note_id}",
    response_model=NoteResponse,
    responses=_COMMON_ERRORS,
    summary="Get a note (updates last_viewed_at)",
)
async def get_note(
    note_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    session: SessionContext = Depends(get_session_context),
) -> NoteResponse:
    note = await note_service.get_note(db, session, note_id, touch=True)
    return NoteResponse.model_validate(note)


@router.patch(
    "/notes/{note_id}",
    response_model=NoteResponse,
    responses=_COMMON_ERRORS,
    summary="Update title, content, favorite or archived flags",
)
async def update_note(
    note_id: UUID,
    data: NoteUpdate,
    db: AsyncSession = Depends(get_db_session),
    session: SessionContext = Depends(get_session_context),
) -> NoteResponse:
    note = await note_service.update_note(db, session, note_id, data)
    return NoteResponse.model_validate(note)


@router.delete(
    "/notes/{note_id}",
    responses={
        **_COMMON_ERRORS,
        400: {"description": "Deletion not confirmed", "model": ErrorResponse},
        500: {"description": "Deletion failed", "model": ErrorResponse},
    },
    summary="Delete a note and its tag associations",
)
async def delete_note(
    note_id: UUID,
    confirm: bool = Query(default=False, description="Must be true to delete"),
    db: AsyncSession = Depends(get_db_session),
    session: SessionContext = Depends(get_session_context),
) -> dict:
    """
    Destructive: requires ?confirm=true. A failed deletion answers 500 and
    the note stays listed.
    """
    if not confirm:
        raise ValidationError(
            message="Deleting a note cannot be undone. Repeat the request with confirm=true.",
            field="confirm",
        )
    deleted = await note_service.delete_note(db, session, note_id)
    if not deleted:
        raise PersistenceError(
            message="The note could not be deleted. Please try again.",
            context={"note_id": str(note_id)},
        )
    return {"deleted": True, "note_id": str(note_id)}


@router.post(
    "/notes/{note_id}/process",
    response_model=ProcessingReport,
    responses={401: _COMMON_ERRORS[401]},
    summary="Run summarization and tag/link suggestion on a note",
)
async def process_note(
    note_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    session: SessionContext = Depends(get_session_context),
) -> ProcessingReport:
    """Always 200; per-stage outcomes (ok/degraded/fatal) are in the report."""
    return await note_processor.process_note(db, session, note_id)


@router.post(
    "/notes/{note_id}/flashcards",
    response_model=FlashcardsResponse,
    responses={
        **_COMMON_ERRORS,
        502: {"description": "AI service error", "model": ErrorResponse},
    },
    summary="Generate flashcards from the note's AI summary",
)
async def generate_flashcards(
    note_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    session: SessionContext = Depends(get_session_context),
) -> FlashcardsResponse:
    cards = await note_processor.generate_flashcards(db, session, note_id)
    if cards is None:
        return FlashcardsResponse(
            note_id=note_id,
            flashcards=[],
            message="The AI response could not be turned into flashcards. Existing flashcards were kept.",
        )
    if not cards:
        return FlashcardsResponse(
            note_id=note_id,
            flashcards=[],
            message="The summary is too short to generate flashcards.",
        )
    return FlashcardsResponse(note_id=note_id, flashcards=cards)


@router.get(
    "/notes/{note_id}/flashcards/export",
    responses={
        **_COMMON_ERRORS,
        400: {"description": "No flashcards to export", "model": ErrorResponse},
    },
    summary="Download flashcards as Anki JSON or a printable A4 sheet",
)
async def export_flashcards(
    note_id: UUID,
    format: str = Query(default="anki", pattern="^(anki|print)$"),
    db: AsyncSession = Depends(get_db_session),
    session: SessionContext = Depends(get_session_context),
) -> Response:
    note = await note_service.get_note(db, session, note_id)
    cards = [Flashcard.model_validate(card) for card in (note.ai_flashcards or [])]
    if not cards:
        raise ValidationError(message="No flashcards to export.", field="flashcards")

    if format == "print":
        body = flashcard_export.render_printable_html(cards, note.title)
        filename = flashcard_export.printable_filename(note.title)
        media_type = "text/html; charset=utf-8"
    else:
        document = flashcard_export.build_anki_export(
            cards, note.title, [tag.name for tag in note.tags]
        )
        body = flashcard_export.dump_anki_export(document)
        filename = flashcard_export.anki_filename(note.title)
        media_type = "application/json; charset=utf-8"

    logger.info("Exporting %d flashcards of note %s as %s", len(cards), note_id, format)
    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
