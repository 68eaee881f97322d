"""
SmartNotes Backend - Note Processing Orchestrator
==================================================

What:  Runs the AI pipeline over one note and generates flashcards.
How:   Three sequential stages, each reported as a StageResult:

    ┌─────────┐     ┌─────────────┐     ┌───────────────────────────┐
    │  fetch  │───▶│  summarize  │───▶│  suggest (tags, links,    │
    │         │     │             │     │  keywords) + reconcile    │
    └─────────┘     └─────────────┘     └───────────────────────────┘
     fatal stops     degraded keeps      degraded keeps previous
     the run         going               suggestions

    Each successful stage commits its own writes, so a later failure never
    undoes an earlier stage.

Who:   POST /api/notes/{id}/process, POST /api/notes/{id}/flashcards and
       the batch importer.

Retry Strategy:
    The gateway makes exactly one request per call. This module wraps
    gateway calls in tenacity, retrying NetworkFailureError and 5xx APIError
    with exponential backoff + jitter. llm_retry_max_attempts defaults to 1,
    i.e. a failed call degrades its stage immediately.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from smartnotes.config import settings
from smartnotes.exceptions import (
    APIError,
    GatewayError,
    NetworkFailureError,
    NotFoundError,
    PersistenceError,
)
from smartnotes.models.note import Note
from smartnotes.schemas.note import (
    Flashcard,
    NoteResponse,
    ProcessingReport,
    StageOutcome,
    StageResult,
)
from smartnotes.services.gemini_gateway import gemini_gateway
from smartnotes.services.llm_base import LLMGateway
from smartnotes.services.note_service import NoteService, note_service
from smartnotes.services.prompts import (
    build_flashcard_prompt,
    build_summarization_prompt,
    build_tagging_prompt,
)
from smartnotes.services.response_parser import (
    parse_flashcards,
    parse_summary,
    parse_tag_suggestions,
)
from smartnotes.services.tag_reconciliation import TagReconciler, tag_reconciler
from smartnotes.services.tag_service import TagService, tag_service
from smartnotes.session import SessionContext

logger = logging.getLogger(__name__)

STAGE_FETCH = "fetch"
STAGE_SUMMARIZE = "summarize"
STAGE_SUGGEST = "suggest"


def is_transient(exc: BaseException) -> bool:
    """Gateway failures worth another attempt."""
    if isinstance(exc, NetworkFailureError):
        return True
    return isinstance(exc, APIError) and exc.is_server_error


class NoteProcessor:
    """
    Orchestrates gateway, parser, reconciler and store for one note.

    Collaborators default to the module singletons and can be injected for
    tests.
    """

    def __init__(
        self,
        gateway: Optional[LLMGateway] = None,
        notes: Optional[NoteService] = None,
        tags: Optional[TagService] = None,
        reconciler: Optional[TagReconciler] = None,
    ):
        self._gateway = gateway
        self.notes = notes or note_service
        self.tags = tags or tag_service
        self.reconciler = reconciler or tag_reconciler

    @property
    def gateway(self) -> LLMGateway:
        return self._gateway or gemini_gateway

    async def _generate(self, prompt: str) -> str:
        retrying = AsyncRetrying(
            retry=retry_if_exception(is_transient),
            stop=stop_after_attempt(settings.llm_retry_max_attempts),
            wait=wait_exponential(
                multiplier=settings.llm_retry_min_wait,
                min=settings.llm_retry_min_wait,
                max=settings.llm_retry_max_wait,
            )
            + wait_random(0, 1),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self.gateway.generate(prompt)

    # ══════════════════════════════════════════════════════════════════════
    # process_note
    # ══════════════════════════════════════════════════════════════════════

    async def process_note(
        self,
        db: AsyncSession,
        session: SessionContext,
        note_id: uuid.UUID,
    ) -> ProcessingReport:
        """
        Summarize a note, then suggest tags/links/keywords and attach tags.

        Stage failures are reported in the returned ProcessingReport; only
        a missing user raises (AuthenticationError).
        """
        user_id = session.require_user()
        report = ProcessingReport(note_id=note_id)

        # ── Stage 1: fetch ────────────────────────────────────────────────
        try:
            note = await self.notes.get_note(db, session, note_id)
        except NotFoundError as e:
            return self._fatal(report, e.message)
        except SQLAlchemyError as e:
            await db.rollback()
            return self._fatal(report, f"Could not load note: {type(e).__name__}")

        content = note.content or ""
        if not content.strip():
            return self._fatal(report, "Note has no content to process.")
        previous_summary = note.ai_summary or ""
        report.stages.append(StageResult(stage=STAGE_FETCH, outcome=StageOutcome.OK))

        # ── Stage 2: summarize ────────────────────────────────────────────
        summary_for_tagging = await self._summarize(db, report, note_id, content)
        if summary_for_tagging is None:
            summary_for_tagging = (
                previous_summary if settings.reuse_stale_summary_for_tagging else ""
            )

        # ── Stage 3: suggest ──────────────────────────────────────────────
        await self._suggest(db, session, report, user_id, note_id, content, summary_for_tagging)

        # Stage writes are already committed; a failed re-read only costs
        # the snapshot in the report.
        try:
            note = await self.notes.get_note(db, session, note_id)
            report.note = NoteResponse.model_validate(note)
        except (NotFoundError, SQLAlchemyError) as e:
            await db.rollback()
            logger.warning("Could not re-read note %s after processing: %s", note_id, e)
        logger.info(
            "Processed note %s: %s",
            note_id,
            ", ".join(f"{s.stage}={s.outcome.value}" for s in report.stages),
        )
        return report

    async def _summarize(
        self,
        db: AsyncSession,
        report: ProcessingReport,
        note_id: uuid.UUID,
        content: str,
    ) -> Optional[str]:
        """Returns the new summary, or None when the stage degraded."""
        try:
            raw = await self._generate(build_summarization_prompt(content))
        except GatewayError as e:
            self._degrade(report, STAGE_SUMMARIZE, note_id, e.message)
            return None

        parsed = parse_summary(raw)
        # Why commit here: the suggest stage may still fail, and the new
        # summary must survive that.
        try:
            await db.execute(
                update(Note)
                .where(Note.id == note_id)
                .values(
                    ai_summary=parsed.summary,
                    ai_key_points=parsed.key_points,
                    ai_processed=True,
                    status="processed",
                )
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            self._degrade(report, STAGE_SUMMARIZE, note_id, f"Could not save summary: {type(e).__name__}")
            return None

        report.stages.append(StageResult(stage=STAGE_SUMMARIZE, outcome=StageOutcome.OK))
        return parsed.summary

    async def _suggest(
        self,
        db: AsyncSession,
        session: SessionContext,
        report: ProcessingReport,
        user_id: str,
        note_id: uuid.UUID,
        content: str,
        summary: str,
    ) -> None:
        try:
            current_tags = await self.tags.tags_for_note(db, note_id)
            titles = await self.notes.list_note_titles(db, session, exclude_id=note_id)
        except (SQLAlchemyError, PersistenceError) as e:
            await db.rollback()
            self._degrade(report, STAGE_SUGGEST, note_id, f"Could not load tagging context: {type(e).__name__}")
            return

        prompt = build_tagging_prompt(
            content=content,
            summary=summary,
            existing_tags=[tag.name for tag in current_tags],
            note_titles=[(str(t.id), t.title) for t in titles],
        )

        try:
            raw = await self._generate(prompt)
        except GatewayError as e:
            self._degrade(report, STAGE_SUGGEST, note_id, e.message)
            return

        suggestions = parse_tag_suggestions(raw)
        if suggestions is None:
            self._degrade(report, STAGE_SUGGEST, note_id, "AI suggestions could not be parsed.")
            return

        try:
            reconciliation = await self.reconciler.reconcile(
                db,
                user_id,
                note_id,
                suggestions.suggested_tags,
                current_refs=current_tags,
            )
            await db.execute(
                update(Note)
                .where(Note.id == note_id)
                .values(
                    ai_suggested_tags=[t.model_dump() for t in suggestions.suggested_tags],
                    ai_suggested_links=[link.model_dump() for link in suggestions.suggested_links],
                    ai_summary_keywords=list(suggestions.summary_keywords),
                )
            )
            await db.commit()
        except (SQLAlchemyError, PersistenceError) as e:
            await db.rollback()
            self._degrade(report, STAGE_SUGGEST, note_id, f"Could not save suggestions: {type(e).__name__}")
            return

        if reconciliation.warnings:
            names = ", ".join(w.tag_name for w in reconciliation.warnings)
            self._degrade(report, STAGE_SUGGEST, note_id, f"Some tags could not be applied: {names}")
        else:
            report.stages.append(StageResult(stage=STAGE_SUGGEST, outcome=StageOutcome.OK))

    @staticmethod
    def _fatal(report: ProcessingReport, reason: str) -> ProcessingReport:
        logger.warning("Processing of note %s stopped: %s", report.note_id, reason)
        report.stages.append(
            StageResult(stage=STAGE_FETCH, outcome=StageOutcome.FATAL, reason=reason)
        )
        return report

    @staticmethod
    def _degrade(
        report: ProcessingReport, stage: str, note_id: uuid.UUID, reason: str
    ) -> None:
        logger.warning("Stage '%s' degraded for note %s: %s", stage, note_id, reason)
        report.stages.append(
            StageResult(stage=stage, outcome=StageOutcome.DEGRADED, reason=reason)
        )

    # ══════════════════════════════════════════════════════════════════════
    # Flashcards
    # ══════════════════════════════════════════════════════════════════════

    async def generate_flashcards(
        self,
        db: AsyncSession,
        session: SessionContext,
        note_id: uuid.UUID,
    ) -> Optional[List[Flashcard]]:
        """
        Generate flashcards from the note's AI summary.

        Returns:
            [] when the summary is shorter than flashcard_min_summary_chars
            (the gateway is not called), None when the response could not be
            parsed (stored cards untouched), else the new cards, which
            replace the stored set.

        Raises:
            GatewayError: the generation call failed
        """
        note = await self.notes.get_note(db, session, note_id)
        summary = (note.ai_summary or "").strip()
        if len(summary) < settings.flashcard_min_summary_chars:
            logger.info(
                "Summary of note %s too short for flashcards (%d chars)",
                note_id,
                len(summary),
            )
            return []

        raw = await self._generate(build_flashcard_prompt(summary))
        cards = parse_flashcards(raw)
        if cards is None:
            return None

        await db.execute(
            update(Note)
            .where(Note.id == note_id)
            .values(ai_flashcards=[card.model_dump() for card in cards])
        )
        await db.commit()
        logger.info("Stored %d flashcards for note %s", len(cards), note_id)
        return cards


note_processor = NoteProcessor()
