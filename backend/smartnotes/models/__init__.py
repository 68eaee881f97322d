"""ORM models. Importing this package registers every table on Base.metadata."""

from smartnotes.models.note import Note
from smartnotes.models.tag import NoteTag, Tag

__all__ = ["Note", "NoteTag", "Tag"]
