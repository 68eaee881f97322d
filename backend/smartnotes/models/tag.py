"""
SmartNotes Backend - Tag and NoteTag Models
============================================

What:  ORM models for the `tags` table and the `note_tags` join table.
Who:   TagService (CRUD), TagReconciler (AI suggested tags) and the
       two-phase note delete.

Uniqueness:
    - tags: one name per user regardless of case, enforced by the unique
      functional index on (user_id, lower(name)) as well as by the
      reconciler's case-insensitive lookup
    - note_tags: one row per (note_id, tag_id) pair
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from smartnotes.database import Base
from smartnotes.models.note import utcnow


class Tag(Base):
    """A user-owned label. Auto-generated tags come from AI suggestions."""

    __tablename__ = "tags"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    # Format: #RRGGBB
    color: Mapped[str] = mapped_column(String(7), nullable=False, default="#3B82F6")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_auto_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        Index("uq_tags_user_lower_name", "user_id", func.lower(name), unique=True),
    )

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, name='{self.name}')>"


class NoteTag(Base):
    """Join row associating one tag with one note."""

    __tablename__ = "note_tags"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    note_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("notes.id"),
        nullable=False,
        index=True,
    )
    tag_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("tags.id"),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        UniqueConstraint("note_id", "tag_id", name="uq_note_tags_note_tag"),
    )
