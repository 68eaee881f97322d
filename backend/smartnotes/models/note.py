"""
SmartNotes Backend - Note SQLAlchemy Model
===========================================

What:  ORM model representing the `notes` table.
How:   Inherits from the shared DeclarativeBase; Alembic reads this for migrations.
Who:   Used by NoteService for CRUD, by NoteProcessor to persist AI output,
       and by the import service to create notes from uploaded files.
When:  Created on manual entry or import; mutated in place by processing.

Table Design:
    - UUID primary key, generated in Python so SQLite test stores work too
    - user_id: owner; every query filters on it
    - ai_* columns: JSON documents written only by the processing pipeline
    - ai_processed: True once a summarization run completed (possibly with
      placeholder text, never with empty fields)
    - updated_at: the only concurrency marker (last write wins)

    Index on (user_id, updated_at DESC):
        Serves the main listing query "my notes, most recently edited first".
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from smartnotes.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Note(Base):
    """
    A user's note plus everything the AI pipeline derived from it.

    Lifecycle:
        1. Created with ai_processed=False (manual entry or file import)
        2. process_note() fills summary/key points, then tag and link
           suggestions, in place
        3. generate_flashcards() replaces ai_flashcards wholesale
        4. Deleted in two phases: note_tags rows first, then this row
    """

    __tablename__ = "notes"

    # ── Identity ──────────────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Owner of the note (authenticated user id)",
    )

    # ── User Content ──────────────────────────────────────────────────────
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="Untitled")
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Values: 'draft' | 'processed'. Mirrors ai_processed for list views.
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="draft",
        server_default=text("'draft'"),
    )
    is_favorite: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_imported: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    source_file_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # ── AI Output ─────────────────────────────────────────────────────────
    ai_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_key_points: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    # [{"name": str, "category": str | None}]
    ai_suggested_tags: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    # [{"note_id": str, "note_title": str, "reason": str}]
    ai_suggested_links: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    ai_summary_keywords: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    # [{"front": str, "back": str}]
    ai_flashcards: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    ai_processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # ── Timestamps (UTC) ──────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
    last_viewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ─────────────────────────────────────────────────────
    # Read-only view over note_tags; writes go through NoteTag rows so the
    # two-phase delete controls exactly when associations disappear.
    tags: Mapped[List["Tag"]] = relationship(  # noqa: F821
        "Tag",
        secondary="note_tags",
        lazy="selectin",
        viewonly=True,
        order_by="Tag.name",
    )

    __table_args__ = (
        Index("idx_notes_user_updated_at", "user_id", updated_at.desc()),
    )

    def __repr__(self) -> str:
        return (
            f"<Note(id={self.id}, title='{self.title}', "
            f"ai_processed={self.ai_processed})>"
        )
