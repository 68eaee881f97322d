"""
SmartNotes Backend - Note Processing Pipeline Tests
====================================================

How:   Real SQLite store + FakeGateway (conftest.py) with scripted responses.

What we test:
    ✅ Happy path: summary, key points, suggestions and tags persisted
    ✅ Fetch stage is fatal for missing or blank notes
    ✅ A failed summarize stage degrades; tagging still runs on the old summary
    ✅ A failed suggest stage keeps the new summary and previous suggestions
    ✅ Transient gateway errors are retried when retries are configured
    ✅ Flashcards: short summary skips the gateway, unparseable output keeps
       the stored cards, valid output replaces them
"""

import uuid

import pytest
from sqlalchemy.exc import OperationalError

from smartnotes.config import settings
from smartnotes.exceptions import (
    APIError,
    AuthenticationError,
    MalformedResponseError,
    NetworkFailureError,
    SafetyBlockedError,
)
from smartnotes.schemas.note import StageOutcome
from smartnotes.services.ai_pipeline import (
    STAGE_FETCH,
    STAGE_SUGGEST,
    STAGE_SUMMARIZE,
    is_transient,
)
from smartnotes.services.note_service import NoteService
from smartnotes.session import SessionContext

LONG_SUMMARY = (
    "Photosynthesis converts light energy into chemical energy that plants "
    "store as glucose."
)


class TestProcessNote:

    @pytest.mark.asyncio
    async def test_happy_path(
        self, db_session, user_session, make_note, processor, fake_gateway,
        summary_response, tags_response,
    ):
        note = await make_note(title="Photosynthesis")
        await make_note(title="Cell Biology")
        fake_gateway.queue(summary_response, tags_response)

        report = await processor.process_note(db_session, user_session, note.id)

        assert [(s.stage, s.outcome) for s in report.stages] == [
            (STAGE_FETCH, StageOutcome.OK),
            (STAGE_SUMMARIZE, StageOutcome.OK),
            (STAGE_SUGGEST, StageOutcome.OK),
        ]
        assert not report.is_fatal and not report.is_degraded

        processed = report.note
        assert processed.ai_processed is True
        assert processed.status == "processed"
        assert processed.ai_summary.startswith("Photosynthesis converts light energy")
        assert len(processed.ai_key_points) == 3
        assert [t.name for t in processed.ai_suggested_tags] == ["Biology", "Botany"]
        assert processed.ai_summary_keywords == ["photosynthesis", "glucose"]
        assert [t.name for t in processed.tags] == ["Biology", "Botany"]

        # The tagging prompt carries the fresh summary and the other notes
        tagging_prompt = fake_gateway.prompts[1]
        assert "Photosynthesis converts light energy" in tagging_prompt
        assert "Cell Biology" in tagging_prompt

    @pytest.mark.asyncio
    async def test_missing_note_is_fatal(self, db_session, user_session, processor, fake_gateway):
        report = await processor.process_note(db_session, user_session, uuid.uuid4())

        assert report.is_fatal
        assert report.outcome_of(STAGE_FETCH) == StageOutcome.FATAL
        assert report.note is None
        assert fake_gateway.call_count == 0

    @pytest.mark.asyncio
    async def test_blank_content_is_fatal(self, db_session, user_session, make_note, processor, fake_gateway):
        note = await make_note(content="   \n ")

        report = await processor.process_note(db_session, user_session, note.id)

        assert report.is_fatal
        assert fake_gateway.call_count == 0

    @pytest.mark.asyncio
    async def test_requires_user(self, db_session, make_note, processor):
        note = await make_note()
        with pytest.raises(AuthenticationError):
            await processor.process_note(db_session, SessionContext(), note.id)

    @pytest.mark.asyncio
    async def test_summarize_failure_uses_previous_summary(
        self, db_session, user_session, make_note, processor, fake_gateway, tags_response,
    ):
        note = await make_note(ai_summary="Old summary text.", ai_key_points=["- old"], ai_processed=True)
        fake_gateway.queue(SafetyBlockedError(), tags_response)

        report = await processor.process_note(db_session, user_session, note.id)

        assert report.outcome_of(STAGE_SUMMARIZE) == StageOutcome.DEGRADED
        assert report.outcome_of(STAGE_SUGGEST) == StageOutcome.OK
        assert "Old summary text." in fake_gateway.prompts[1]
        assert report.note.ai_summary == "Old summary text."
        assert report.note.ai_key_points == ["- old"]
        assert [t.name for t in report.note.tags] == ["Biology", "Botany"]

    @pytest.mark.asyncio
    async def test_stale_summary_reuse_can_be_disabled(
        self, db_session, user_session, make_note, processor, fake_gateway, tags_response, monkeypatch,
    ):
        monkeypatch.setattr(settings, "reuse_stale_summary_for_tagging", False)
        note = await make_note(ai_summary="Old summary text.")
        fake_gateway.queue(NetworkFailureError(), tags_response)

        await processor.process_note(db_session, user_session, note.id)

        assert "Old summary text." not in fake_gateway.prompts[1]

    @pytest.mark.asyncio
    async def test_suggest_failure_keeps_summary_and_old_suggestions(
        self, db_session, user_session, make_note, processor, fake_gateway, summary_response,
    ):
        note = await make_note(ai_suggested_tags=[{"name": "Old", "category": None}])
        fake_gateway.queue(summary_response, "I could not produce JSON, sorry.")

        report = await processor.process_note(db_session, user_session, note.id)

        assert report.outcome_of(STAGE_SUMMARIZE) == StageOutcome.OK
        assert report.outcome_of(STAGE_SUGGEST) == StageOutcome.DEGRADED
        assert report.note.ai_processed is True
        assert report.note.ai_summary.startswith("Photosynthesis")
        assert [t.name for t in report.note.ai_suggested_tags] == ["Old"]
        assert report.note.tags == []

    @pytest.mark.asyncio
    async def test_gateway_failure_in_suggest_degrades(
        self, db_session, user_session, make_note, processor, fake_gateway, summary_response,
    ):
        note = await make_note()
        fake_gateway.queue(summary_response, MalformedResponseError("candidates[0]"))

        report = await processor.process_note(db_session, user_session, note.id)

        assert report.outcome_of(STAGE_SUGGEST) == StageOutcome.DEGRADED
        assert not report.is_fatal

    @pytest.mark.asyncio
    async def test_database_error_loading_tagging_context_degrades(
        self, db_session, user_session, make_note, processor, fake_gateway,
        summary_response, monkeypatch,
    ):
        note = await make_note()
        fake_gateway.queue(summary_response)

        async def broken_titles(db, session, exclude_id=None):
            raise OperationalError("SELECT notes.title", {}, Exception("connection reset"))

        monkeypatch.setattr(processor.notes, "list_note_titles", broken_titles)

        report = await processor.process_note(db_session, user_session, note.id)

        assert report.outcome_of(STAGE_SUMMARIZE) == StageOutcome.OK
        assert report.outcome_of(STAGE_SUGGEST) == StageOutcome.DEGRADED
        assert "OperationalError" in report.stages[-1].reason
        assert fake_gateway.call_count == 1
        assert report.note.ai_summary.startswith("Photosynthesis converts light energy")

    @pytest.mark.asyncio
    async def test_failed_reread_keeps_stage_results(
        self, db_session, user_session, make_note, processor, fake_gateway,
        summary_response, tags_response, monkeypatch,
    ):
        note = await make_note()
        fake_gateway.queue(summary_response, tags_response)
        real_get_note = processor.notes.get_note
        calls = []

        async def flaky_get_note(db, session, note_id, touch=False):
            calls.append(note_id)
            if len(calls) > 1:
                raise OperationalError("SELECT notes", {}, Exception("connection reset"))
            return await real_get_note(db, session, note_id, touch=touch)

        monkeypatch.setattr(processor.notes, "get_note", flaky_get_note)

        report = await processor.process_note(db_session, user_session, note.id)

        assert report.outcome_of(STAGE_SUGGEST) == StageOutcome.OK
        assert report.note is None

    @pytest.mark.asyncio
    async def test_reprocessing_is_idempotent_for_tags(
        self, db_session, user_session, make_note, processor, fake_gateway,
        summary_response, tags_response,
    ):
        note = await make_note()
        fake_gateway.queue(summary_response, tags_response, summary_response, tags_response)

        await processor.process_note(db_session, user_session, note.id)
        report = await processor.process_note(db_session, user_session, note.id)

        assert [t.name for t in report.note.tags] == ["Biology", "Botany"]
        assert "Biology" in fake_gateway.prompts[3]


class TestRetries:

    def test_is_transient(self):
        assert is_transient(NetworkFailureError())
        assert is_transient(APIError(503, "overloaded"))
        assert not is_transient(APIError(400, "bad key"))
        assert not is_transient(SafetyBlockedError())

    @pytest.mark.asyncio
    async def test_transient_error_retried(
        self, db_session, user_session, make_note, processor, fake_gateway,
        summary_response, tags_response, monkeypatch,
    ):
        monkeypatch.setattr(settings, "llm_retry_max_attempts", 2)
        monkeypatch.setattr(settings, "llm_retry_min_wait", 0)
        monkeypatch.setattr(settings, "llm_retry_max_wait", 0)
        note = await make_note()
        fake_gateway.queue(APIError(500, "internal"), summary_response, tags_response)

        report = await processor.process_note(db_session, user_session, note.id)

        assert report.outcome_of(STAGE_SUMMARIZE) == StageOutcome.OK
        assert fake_gateway.call_count == 3

    @pytest.mark.asyncio
    async def test_client_error_not_retried(
        self, db_session, user_session, make_note, processor, fake_gateway, tags_response, monkeypatch,
    ):
        monkeypatch.setattr(settings, "llm_retry_max_attempts", 3)
        monkeypatch.setattr(settings, "llm_retry_max_wait", 0)
        note = await make_note()
        fake_gateway.queue(APIError(400, "bad request"), tags_response)

        report = await processor.process_note(db_session, user_session, note.id)

        assert report.outcome_of(STAGE_SUMMARIZE) == StageOutcome.DEGRADED
        assert fake_gateway.call_count == 2


class TestFlashcards:

    @pytest.mark.asyncio
    async def test_short_summary_skips_gateway(self, db_session, user_session, make_note, processor, fake_gateway):
        note = await make_note(ai_summary="Too short.")

        cards = await processor.generate_flashcards(db_session, user_session, note.id)

        assert cards == []
        assert fake_gateway.call_count == 0

    @pytest.mark.asyncio
    async def test_valid_response_replaces_cards(self, db_session, user_session, make_note, processor, fake_gateway):
        note = await make_note(
            ai_summary=LONG_SUMMARY,
            ai_flashcards=[{"front": "old", "back": "old"}],
        )
        fake_gateway.queue('{"flashcards": [{"front": "What is made?", "back": "Glucose"}]}')

        cards = await processor.generate_flashcards(db_session, user_session, note.id)

        assert [(c.front, c.back) for c in cards] == [("What is made?", "Glucose")]
        stored = await NoteService().get_note(db_session, user_session, note.id)
        assert stored.ai_flashcards == [{"front": "What is made?", "back": "Glucose"}]
        assert LONG_SUMMARY in fake_gateway.prompts[0]

    @pytest.mark.asyncio
    async def test_unparseable_response_keeps_cards(self, db_session, user_session, make_note, processor, fake_gateway):
        note = await make_note(
            ai_summary=LONG_SUMMARY,
            ai_flashcards=[{"front": "old", "back": "old"}],
        )
        fake_gateway.queue("Here are some flashcards: none.")

        assert await processor.generate_flashcards(db_session, user_session, note.id) is None

        stored = await NoteService().get_note(db_session, user_session, note.id)
        assert stored.ai_flashcards == [{"front": "old", "back": "old"}]

    @pytest.mark.asyncio
    async def test_gateway_error_propagates(self, db_session, user_session, make_note, processor, fake_gateway):
        note = await make_note(ai_summary=LONG_SUMMARY)
        fake_gateway.queue(APIError(429, "quota exceeded"))

        with pytest.raises(APIError):
            await processor.generate_flashcards(db_session, user_session, note.id)
