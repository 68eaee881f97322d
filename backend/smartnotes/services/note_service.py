"""
SmartNotes Backend - Note Service
==================================

What:  Note persistence: create, fetch, list, search, update, two-phase delete.
How:   Stateless service; every call receives the AsyncSession and the
       SessionContext, and every query is scoped to the session's user.
Who:   Note routes, ImportService, NoteProcessor.

Two-Phase Delete:
    ┌──────────────────────┐  commit   ┌──────────────────┐  commit
    │ DELETE note_tags rows│─────────▶│ DELETE notes row │─────────▶ True
    └──────────────────────┘           └──────────────────┘
        │ failure                          │ failure
        ▼                                  ▼
    rollback, note kept, False         log inconsistency, False

    Phase one is committed on its own so the note row is only touched once
    no association can point at it.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, desc, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from smartnotes.exceptions import NotFoundError, PersistenceError
from smartnotes.models.note import Note
from smartnotes.models.tag import NoteTag
from smartnotes.schemas.note import (
    NoteCreate,
    NoteListItem,
    NoteListResponse,
    NoteTitle,
    NoteUpdate,
)
from smartnotes.schemas.tag import TagResponse
from smartnotes.session import SessionContext

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 200


class NoteService:
    """
    Business logic layer for note persistence.

    Error Handling:
        Unexpected SQLAlchemy errors are logged and re-raised as
        PersistenceError (generic message, details in the log only).
        delete_note() is the exception: it reports failure as False.
    """

    async def create_note(
        self,
        db: AsyncSession,
        session: SessionContext,
        data: NoteCreate,
        is_imported: bool = False,
        source_file_type: Optional[str] = None,
    ) -> Note:
        user_id = session.require_user()
        note = Note(
            user_id=user_id,
            title=(data.title or "").strip() or "Untitled",
            content=data.content,
            status="draft",
            is_imported=is_imported,
            source_file_type=source_file_type,
            ai_processed=False,
        )
        db.add(note)
        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error creating note: %s", e, exc_info=True)
            raise PersistenceError(
                message="Could not save the note. Please try again.",
                context={"error_type": type(e).__name__},
            ) from e
        logger.info("Note created: %s (imported=%s)", note.id, is_imported)
        return note

    async def get_note(
        self,
        db: AsyncSession,
        session: SessionContext,
        note_id: UUID,
        touch: bool = False,
    ) -> Note:
        """
        Fetch one of the user's notes with its tags.

        Args:
            touch: stamp last_viewed_at (without moving updated_at)

        Raises:
            AuthenticationError: no user in session
            NotFoundError:       no such note for this user
        """
        user_id = session.require_user()
        if touch:
            await db.execute(
                update(Note)
                .where(Note.id == note_id, Note.user_id == user_id)
                .values(last_viewed_at=datetime.now(timezone.utc), updated_at=Note.updated_at)
            )
        result = await db.execute(
            select(Note)
            .where(Note.id == note_id, Note.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        note = result.scalar_one_or_none()
        if note is None:
            raise NotFoundError(resource="note", resource_id=str(note_id))
        return note

    async def list_notes(
        self,
        db: AsyncSession,
        session: SessionContext,
        favorites_only: bool = False,
        archived: bool = False,
    ) -> NoteListResponse:
        """
        List notes, most recently updated first.

        By default archived notes are excluded; archived=True lists only
        archived notes instead.
        """
        user_id = session.require_user()
        query = select(Note).where(Note.user_id == user_id, Note.is_archived == archived)
        if favorites_only:
            query = query.where(Note.is_favorite.is_(True))
        query = query.order_by(desc(Note.updated_at))

        try:
            result = await db.execute(query)
        except SQLAlchemyError as e:
            logger.error("Database error listing notes: %s", e, exc_info=True)
            raise PersistenceError(
                message="Could not retrieve notes. Please try again.",
                context={"error_type": type(e).__name__},
            ) from e
        notes = list(result.scalars().all())
        return NoteListResponse(
            notes=[self.to_list_item(note) for note in notes],
            total_count=len(notes),
        )

    async def search_notes(
        self, db: AsyncSession, session: SessionContext, query: str
    ) -> List[Note]:
        """Case-insensitive substring match on title or content."""
        user_id = session.require_user()
        term = (query or "").strip()
        if not term:
            return []
        pattern = f"%{term}%"
        result = await db.execute(
            select(Note)
            .where(
                Note.user_id == user_id,
                or_(Note.title.ilike(pattern), Note.content.ilike(pattern)),
            )
            .order_by(desc(Note.updated_at))
        )
        return list(result.scalars().all())

    async def list_recently_viewed(
        self, db: AsyncSession, session: SessionContext, limit: int = 10
    ) -> List[Note]:
        """Non-archived notes that have been opened, newest view first."""
        user_id = session.require_user()
        result = await db.execute(
            select(Note)
            .where(
                Note.user_id == user_id,
                Note.is_archived.is_(False),
                Note.last_viewed_at.is_not(None),
            )
            .order_by(desc(Note.last_viewed_at))
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_note_titles(
        self,
        db: AsyncSession,
        session: SessionContext,
        exclude_id: Optional[UUID] = None,
    ) -> List[NoteTitle]:
        """All of the user's note ids and titles (link candidates)."""
        user_id = session.require_user()
        query = select(Note.id, Note.title).where(Note.user_id == user_id)
        if exclude_id is not None:
            query = query.where(Note.id != exclude_id)
        result = await db.execute(query.order_by(Note.title))
        return [NoteTitle(id=row.id, title=row.title) for row in result]

    async def update_note(
        self,
        db: AsyncSession,
        session: SessionContext,
        note_id: UUID,
        data: NoteUpdate,
    ) -> Note:
        """Apply a partial update. Last write wins; no version check."""
        note = await self.get_note(db, session, note_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "title" in changes:
            changes["title"] = changes["title"].strip() or "Untitled"
        for field_name, value in changes.items():
            setattr(note, field_name, value)
        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error updating note %s: %s", note_id, e, exc_info=True)
            raise PersistenceError(
                message="Could not update the note. Please try again.",
                context={"note_id": str(note_id)},
            ) from e
        return await self.get_note(db, session, note_id)

    async def delete_note(
        self, db: AsyncSession, session: SessionContext, note_id: UUID
    ) -> bool:
        """
        Two-phase delete. Returns True only if both phases committed.

        Raises:
            AuthenticationError, NotFoundError (before anything is deleted)
        """
        note = await self.get_note(db, session, note_id)

        # Phase 1: associations
        try:
            await db.execute(delete(NoteTag).where(NoteTag.note_id == note.id))
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                "Could not delete tag associations of note %s, note kept: %s",
                note_id,
                e,
            )
            return False

        # Phase 2: the note itself
        try:
            await db.delete(note)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                "Note %s lost its tag associations but the note row could not "
                "be deleted: %s",
                note_id,
                e,
            )
            return False

        logger.info("Note deleted: %s", note_id)
        return True

    @staticmethod
    def to_list_item(note: Note) -> NoteListItem:
        return NoteListItem(
            id=note.id,
            title=note.title,
            text_preview=(note.content or "")[:PREVIEW_CHARS],
            is_favorite=note.is_favorite,
            is_archived=note.is_archived,
            ai_processed=note.ai_processed,
            tags=[TagResponse.model_validate(tag) for tag in note.tags],
            updated_at=note.updated_at,
        )


note_service = NoteService()
