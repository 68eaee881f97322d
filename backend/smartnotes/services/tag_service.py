"""
SmartNotes Backend - Tag Service
=================================

What:  Tag CRUD, manual note/tag association and the TagRef union.
Who:   routes/tags.py, TagReconciler, NoteProcessor.

TagRef:
    A note's tags reach the services in three shapes: a bare id, a bare
    name, or a loaded Tag row. `normalize_tag_ref()` is the one place that
    turns any of them into a comparable (id, lowercase name) pair.

Tag names are unique per user regardless of case. Comparison uses
trimmed, lowercased names; the stored name keeps its original casing.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Union

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from smartnotes.exceptions import NotFoundError, PersistenceError, ValidationError
from smartnotes.models.note import Note
from smartnotes.models.tag import NoteTag, Tag
from smartnotes.schemas.tag import TagCreate, TagUpdate
from smartnotes.session import SessionContext

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Tag References
# ══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class TagById:
    id: uuid.UUID


@dataclass(frozen=True)
class TagByName:
    name: str


TagRef = Union[TagById, TagByName, Tag]


@dataclass(frozen=True)
class NormalizedTagRef:
    id: Optional[uuid.UUID]
    key: Optional[str]


def normalize_name(name: str) -> str:
    return (name or "").strip().lower()


def normalize_tag_ref(ref: TagRef) -> NormalizedTagRef:
    if isinstance(ref, Tag):
        return NormalizedTagRef(id=ref.id, key=normalize_name(ref.name) or None)
    if isinstance(ref, TagById):
        return NormalizedTagRef(id=ref.id, key=None)
    if isinstance(ref, TagByName):
        return NormalizedTagRef(id=None, key=normalize_name(ref.name) or None)
    raise TypeError(f"Unsupported tag reference: {type(ref).__name__}")


# ══════════════════════════════════════════════════════════════════════════
# Tag Service
# ══════════════════════════════════════════════════════════════════════════


class TagService:
    """Stateless; every method receives the db session and SessionContext."""

    async def list_tags(self, db: AsyncSession, session: SessionContext) -> List[Tag]:
        user_id = session.require_user()
        try:
            result = await db.execute(
                select(Tag).where(Tag.user_id == user_id).order_by(Tag.name)
            )
        except SQLAlchemyError as e:
            logger.error("Database error listing tags: %s", e, exc_info=True)
            raise PersistenceError(context={"error_type": type(e).__name__}) from e
        return list(result.scalars().all())

    async def get_tag(
        self, db: AsyncSession, session: SessionContext, tag_id: uuid.UUID
    ) -> Tag:
        user_id = session.require_user()
        result = await db.execute(
            select(Tag).where(Tag.id == tag_id, Tag.user_id == user_id)
        )
        tag = result.scalar_one_or_none()
        if tag is None:
            raise NotFoundError(resource="tag", resource_id=str(tag_id))
        return tag

    async def find_by_name(
        self, db: AsyncSession, user_id: str, name: str
    ) -> Optional[Tag]:
        """Case-insensitive lookup of one of the user's tags."""
        key = normalize_name(name)
        if not key:
            return None
        result = await db.execute(
            select(Tag).where(Tag.user_id == user_id, func.lower(Tag.name) == key)
        )
        return result.scalars().first()

    async def create_tag(
        self, db: AsyncSession, session: SessionContext, data: TagCreate
    ) -> Tag:
        user_id = session.require_user()
        if await self.find_by_name(db, user_id, data.name) is not None:
            raise ValidationError(
                message=f"A tag named '{data.name}' already exists.",
                field="name",
            )
        tag = Tag(
            user_id=user_id,
            name=data.name,
            color=data.color,
            description=data.description,
            is_auto_generated=False,
        )
        db.add(tag)
        await self._flush(db, "create tag")
        logger.info("Tag created: %s (%s)", tag.id, tag.name)
        return tag

    async def update_tag(
        self,
        db: AsyncSession,
        session: SessionContext,
        tag_id: uuid.UUID,
        data: TagUpdate,
    ) -> Tag:
        tag = await self.get_tag(db, session, tag_id)
        if data.name is not None:
            name = data.name.strip()
            if not name:
                raise ValidationError(message="Tag name must not be blank.", field="name")
            existing = await self.find_by_name(db, tag.user_id, name)
            if existing is not None and existing.id != tag.id:
                raise ValidationError(
                    message=f"A tag named '{name}' already exists.",
                    field="name",
                )
            tag.name = name
        if data.color is not None:
            tag.color = data.color
        if data.description is not None:
            tag.description = data.description
        await self._flush(db, "update tag")
        return tag

    async def delete_tag(
        self, db: AsyncSession, session: SessionContext, tag_id: uuid.UUID
    ) -> None:
        """Removes the tag and its note associations; notes are untouched."""
        tag = await self.get_tag(db, session, tag_id)
        try:
            await db.execute(delete(NoteTag).where(NoteTag.tag_id == tag.id))
            await db.delete(tag)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error deleting tag %s: %s", tag_id, e, exc_info=True)
            raise PersistenceError(context={"tag_id": str(tag_id)}) from e
        logger.info("Tag deleted: %s", tag_id)

    # ── Note associations ─────────────────────────────────────────────────

    async def tags_for_note(self, db: AsyncSession, note_id: uuid.UUID) -> List[Tag]:
        result = await db.execute(
            select(Tag)
            .join(NoteTag, NoteTag.tag_id == Tag.id)
            .where(NoteTag.note_id == note_id)
            .order_by(Tag.name)
        )
        return list(result.scalars().all())

    async def attach_tag(
        self,
        db: AsyncSession,
        session: SessionContext,
        note_id: uuid.UUID,
        tag_id: uuid.UUID,
    ) -> bool:
        """Associate a tag with a note. Returns False if it was already attached."""
        await self._require_note(db, session, note_id)
        await self.get_tag(db, session, tag_id)
        if await self.is_attached(db, note_id, tag_id):
            return False
        db.add(NoteTag(note_id=note_id, tag_id=tag_id))
        await self._flush(db, "attach tag")
        return True

    async def detach_tag(
        self,
        db: AsyncSession,
        session: SessionContext,
        note_id: uuid.UUID,
        tag_id: uuid.UUID,
    ) -> bool:
        await self._require_note(db, session, note_id)
        result = await db.execute(
            delete(NoteTag).where(NoteTag.note_id == note_id, NoteTag.tag_id == tag_id)
        )
        return (result.rowcount or 0) > 0

    async def is_attached(
        self, db: AsyncSession, note_id: uuid.UUID, tag_id: uuid.UUID
    ) -> bool:
        result = await db.execute(
            select(NoteTag.id).where(NoteTag.note_id == note_id, NoteTag.tag_id == tag_id)
        )
        return result.first() is not None

    # ── Helpers ───────────────────────────────────────────────────────────

    @staticmethod
    async def _require_note(
        db: AsyncSession, session: SessionContext, note_id: uuid.UUID
    ) -> Note:
        user_id = session.require_user()
        result = await db.execute(
            select(Note).where(Note.id == note_id, Note.user_id == user_id)
        )
        note = result.scalar_one_or_none()
        if note is None:
            raise NotFoundError(resource="note", resource_id=str(note_id))
        return note

    @staticmethod
    async def _flush(db: AsyncSession, action: str) -> None:
        try:
            await db.flush()
        except IntegrityError as e:
            await db.rollback()
            raise ValidationError(
                message="A tag with this name already exists.",
                field="name",
                context={"action": action},
            ) from e
        except SQLAlchemyError as e:
            logger.error("Database error during %s: %s", action, e, exc_info=True)
            raise PersistenceError(context={"action": action}) from e


tag_service = TagService()
