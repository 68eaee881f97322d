"""
SmartNotes Backend - Tag Route Handlers
========================================

Routes:
    GET    /api/tags
    POST   /api/tags
    PATCH  /api/tags/{tag_id}
    DELETE /api/tags/{tag_id}
    POST   /api/notes/{note_id}/tags/{tag_id}   attach (idempotent)
    DELETE /api/notes/{note_id}/tags/{tag_id}   detach
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from smartnotes.database import get_db_session
from smartnotes.schemas.note import ErrorResponse
from smartnotes.schemas.tag import TagCreate, TagResponse, TagUpdate
from smartnotes.services.tag_service import tag_service
from smartnotes.session import SessionContext, get_session_context

router = APIRouter(prefix="/api", tags=["Tags"])

_ERRORS = {
    401: {"description": "Not authenticated", "model": ErrorResponse},
    404: {"description": "Tag or note not found", "model": ErrorResponse},
}


@router.get("/tags", response_model=List[TagResponse], summary="List tags by name")
async def list_tags(
    db: AsyncSession = Depends(get_db_session),
    session: SessionContext = Depends(get_session_context),
) -> List[TagResponse]:
    tags = await tag_service.list_tags(db, session)
    return [TagResponse.model_validate(tag) for tag in tags]


@router.post(
    "/tags",
    response_model=TagResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"description": "Duplicate name", "model": ErrorResponse}},
)
async def create_tag(
    data: TagCreate,
    db: AsyncSession = Depends(get_db_session),
    session: SessionContext = Depends(get_session_context),
) -> TagResponse:
    tag = await tag_service.create_tag(db, session, data)
    return TagResponse.model_validate(tag)


@router.patch("/tags/{tag_id}", response_model=TagResponse, responses=_ERRORS)
async def update_tag(
    tag_id: UUID,
    data: TagUpdate,
    db: AsyncSession = Depends(get_db_session),
    session: SessionContext = Depends(get_session_context),
) -> TagResponse:
    tag = await tag_service.update_tag(db, session, tag_id, data)
    return TagResponse.model_validate(tag)


@router.delete(
    "/tags/{tag_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_ERRORS,
)
async def delete_tag(
    tag_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    session: SessionContext = Depends(get_session_context),
) -> Response:
    await tag_service.delete_tag(db, session, tag_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/notes/{note_id}/tags/{tag_id}", responses=_ERRORS)
async def attach_tag(
    note_id: UUID,
    tag_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    session: SessionContext = Depends(get_session_context),
) -> dict:
    attached = await tag_service.attach_tag(db, session, note_id, tag_id)
    return {"attached": attached}


@router.delete("/notes/{note_id}/tags/{tag_id}", responses=_ERRORS)
async def detach_tag(
    note_id: UUID,
    tag_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    session: SessionContext = Depends(get_session_context),
) -> dict:
    detached = await tag_service.detach_tag(db, session, note_id, tag_id)
    return {"detached": detached}
