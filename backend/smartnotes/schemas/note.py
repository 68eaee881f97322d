"""
SmartNotes Backend - Pydantic Request/Response Schemas
=======================================================

What:  Pydantic models defining the API contract and the typed records the
       AI pipeline passes between stages.
How:   FastAPI validates request bodies and serializes responses with these;
       the response parser validates LLM JSON against the suggestion and
       flashcard records.
Who:   Route handlers, NoteService, NoteProcessor and response_parser.

Design Decision:
    Schemas are separate from SQLAlchemy models: the ai_* JSON columns are
    stored as plain lists/dicts, while everything crossing a service
    boundary is one of the typed records below.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from smartnotes.schemas.tag import TagResponse


# ══════════════════════════════════════════════════════════════════════════
# AI Records: what the response parser produces
# ══════════════════════════════════════════════════════════════════════════


class SummaryResult(BaseModel):
    """Parsed summarization output. Both fields are always non-empty."""

    summary: str
    key_points: List[str]


class SuggestedTag(BaseModel):
    name: str
    category: Optional[str] = None


class SuggestedLink(BaseModel):
    """Advisory pointer to a related note. Never mutates relationships."""

    note_id: str
    note_title: str
    reason: str = ""


class TagSuggestions(BaseModel):
    """Parsed tagging output. All three lists are required in the LLM JSON."""

    suggested_tags: List[SuggestedTag]
    suggested_links: List[SuggestedLink]
    summary_keywords: List[str]


class Flashcard(BaseModel):
    front: str
    back: str


# ══════════════════════════════════════════════════════════════════════════
# Note Requests
# ══════════════════════════════════════════════════════════════════════════


class NoteCreate(BaseModel):
    title: str = Field(default="Untitled", max_length=500)
    content: str = Field(default="")


class NoteUpdate(BaseModel):
    """Partial update. Omitted fields stay as they are."""

    title: Optional[str] = Field(default=None, max_length=500)
    content: Optional[str] = None
    is_favorite: Optional[bool] = None
    is_archived: Optional[bool] = None


# ══════════════════════════════════════════════════════════════════════════
# Note Responses
# ══════════════════════════════════════════════════════════════════════════


class NoteResponse(BaseModel):
    """
    What:  Full representation of a note, its tags and its AI output.
    Who:   GET/PATCH /api/notes/{id}, POST /api/notes, processing reports.
    """

    id: uuid.UUID
    title: str
    content: str
    status: str
    is_favorite: bool
    is_archived: bool
    is_imported: bool
    source_file_type: Optional[str] = None
    ai_summary: Optional[str] = None
    ai_key_points: Optional[List[str]] = None
    ai_suggested_tags: Optional[List[SuggestedTag]] = None
    ai_suggested_links: Optional[List[SuggestedLink]] = None
    ai_summary_keywords: Optional[List[str]] = None
    ai_flashcards: Optional[List[Flashcard]] = None
    ai_processed: bool
    tags: List[TagResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    last_viewed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class NoteListItem(BaseModel):
    """
    Compact note representation for list views.

    text_preview is the first 200 characters of content.
    """

    id: uuid.UUID
    title: str
    text_preview: str
    is_favorite: bool
    is_archived: bool
    ai_processed: bool
    tags: List[TagResponse] = Field(default_factory=list)
    updated_at: datetime


class NoteListResponse(BaseModel):
    notes: List[NoteListItem]
    total_count: int


class NoteTitle(BaseModel):
    """Link candidate fed into the tagging prompt."""

    id: uuid.UUID
    title: str

    model_config = {"from_attributes": True}


# ══════════════════════════════════════════════════════════════════════════
# Processing Pipeline
# ══════════════════════════════════════════════════════════════════════════


class StageOutcome(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    FATAL = "fatal"


class StageResult(BaseModel):
    stage: str = Field(description="fetch, summarize or suggest")
    outcome: StageOutcome
    reason: Optional[str] = None


class ProcessingReport(BaseModel):
    """
    Outcome of one process_note() run.

    `note` is the re-fetched note after every stage ran; it is None when
    the fetch stage was fatal or the final re-read failed.
    """

    note_id: uuid.UUID
    stages: List[StageResult] = Field(default_factory=list)
    note: Optional[NoteResponse] = None

    def outcome_of(self, stage: str) -> Optional[StageOutcome]:
        for result in self.stages:
            if result.stage == stage:
                return result.outcome
        return None

    @property
    def is_fatal(self) -> bool:
        return any(r.outcome == StageOutcome.FATAL for r in self.stages)

    @property
    def is_degraded(self) -> bool:
        return any(r.outcome == StageOutcome.DEGRADED for r in self.stages)


class FlashcardsResponse(BaseModel):
    note_id: uuid.UUID
    flashcards: List[Flashcard]
    message: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════
# Batch Import & OCR
# ══════════════════════════════════════════════════════════════════════════


class ImportFileResult(BaseModel):
    """
    Per-file outcome of a batch import.

    Fields:
        imported:  a note was created from the file
        processed: the AI pipeline ran without a fatal stage
        error:     user-facing failure message (failed files only)
    """

    filename: str
    imported: bool = False
    processed: bool = False
    note_id: Optional[uuid.UUID] = None
    error: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)


class ImportReport(BaseModel):
    files: List[ImportFileResult] = Field(default_factory=list)

    @property
    def imported_count(self) -> int:
        return sum(1 for f in self.files if f.imported)

    @property
    def failed(self) -> List[ImportFileResult]:
        return [f for f in self.files if f.error is not None]


class OCRRequest(BaseModel):
    image: Optional[str] = Field(default=None, description="Base64 image, data URL prefix allowed")
    mime_type: str = Field(default="image/jpeg")


class OCRResponse(BaseModel):
    text: Optional[str] = None
    error: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════
# Error & Health Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "not_found",
            "message": "note with ID '...' was not found",
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[Dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="healthy, degraded or unhealthy")
    version: str
    database: str = Field(description="connected or disconnected")
    gemini: str = Field(description="available, unconfigured or unreachable")
    uptime_seconds: float
