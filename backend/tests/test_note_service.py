"""
SmartNotes Backend - Note Service Unit Tests
=============================================

What we test:
    ✅ Create / get / update / list / search scoped to the session's user
    ✅ Anonymous calls fail with AuthenticationError instead of empty results
    ✅ Viewing a note stamps last_viewed_at without moving updated_at
    ✅ Recently viewed notes: newest view first, archived excluded
    ✅ Two-phase delete: both phases succeed, or the note is kept
"""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.sql.dml import Delete

from smartnotes.exceptions import AuthenticationError, NotFoundError
from smartnotes.models.note import Note
from smartnotes.models.tag import NoteTag
from smartnotes.schemas.note import NoteCreate, NoteUpdate
from smartnotes.services.note_service import NoteService
from smartnotes.session import SessionContext


class TestNoteCrud:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_create_note_defaults(self, db_session, user_session):
        note = await self.service.create_note(
            db_session, user_session, NoteCreate(title="  ", content="Body")
        )
        await db_session.commit()

        assert note.title == "Untitled"
        assert note.user_id == user_session.user_id
        assert note.status == "draft"
        assert note.ai_processed is False
        assert note.is_imported is False

    @pytest.mark.asyncio
    async def test_anonymous_session_is_rejected(self, db_session):
        with pytest.raises(AuthenticationError):
            await self.service.create_note(db_session, SessionContext(), NoteCreate(content="x"))
        with pytest.raises(AuthenticationError):
            await self.service.list_notes(db_session, SessionContext())

    @pytest.mark.asyncio
    async def test_other_users_note_is_not_found(self, db_session, other_session, make_note):
        note = await make_note()
        with pytest.raises(NotFoundError):
            await self.service.get_note(db_session, other_session, note.id)

    @pytest.mark.asyncio
    async def test_touch_keeps_updated_at(self, db_session, user_session, make_note):
        note = await make_note()
        before = await self.service.get_note(db_session, user_session, note.id)
        updated_at = before.updated_at
        assert before.last_viewed_at is None

        viewed = await self.service.get_note(db_session, user_session, note.id, touch=True)

        assert viewed.last_viewed_at is not None
        assert viewed.updated_at == updated_at

    @pytest.mark.asyncio
    async def test_partial_update(self, db_session, user_session, make_note):
        note = await make_note(title="Old", content="Keep me")

        updated = await self.service.update_note(
            db_session, user_session, note.id, NoteUpdate(title="New", is_favorite=True)
        )

        assert updated.title == "New"
        assert updated.content == "Keep me"
        assert updated.is_favorite is True

    @pytest.mark.asyncio
    async def test_list_orders_by_updated_and_filters(self, db_session, user_session, make_note):
        first = await make_note(title="First")
        await make_note(title="Second")
        await make_note(title="Archived", is_archived=True)
        await make_note(title="Someone else's", user_id="user-2")
        await self.service.update_note(db_session, user_session, first.id, NoteUpdate(is_favorite=True))
        await db_session.commit()

        listing = await self.service.list_notes(db_session, user_session)
        assert [n.title for n in listing.notes] == ["First", "Second"]
        assert listing.total_count == 2

        favorites = await self.service.list_notes(db_session, user_session, favorites_only=True)
        assert [n.title for n in favorites.notes] == ["First"]

        archived = await self.service.list_notes(db_session, user_session, archived=True)
        assert [n.title for n in archived.notes] == ["Archived"]

    @pytest.mark.asyncio
    async def test_list_item_preview(self, db_session, user_session, make_note):
        await make_note(content="x" * 500)
        listing = await self.service.list_notes(db_session, user_session)
        assert len(listing.notes[0].text_preview) == 200

    @pytest.mark.asyncio
    async def test_search_is_case_insensitive(self, db_session, user_session, make_note):
        await make_note(title="Cell Biology", content="mitosis")
        await make_note(title="Physics", content="Quantum MITOSIS joke")
        await make_note(title="History", content="Rome")

        found = await self.service.search_notes(db_session, user_session, "mitosis")
        assert sorted(n.title for n in found) == ["Cell Biology", "Physics"]
        assert await self.service.search_notes(db_session, user_session, "   ") == []

    @pytest.mark.asyncio
    async def test_note_titles_exclude_current(self, db_session, user_session, make_note):
        current = await make_note(title="Current")
        other = await make_note(title="Other")

        titles = await self.service.list_note_titles(db_session, user_session, exclude_id=current.id)
        assert [(t.id, t.title) for t in titles] == [(other.id, "Other")]

    @pytest.mark.asyncio
    async def test_recently_viewed_newest_first(self, db_session, user_session, make_note):
        never_opened = await make_note(title="Never opened")
        first = await make_note(title="First viewed")
        second = await make_note(title="Second viewed")
        archived = await make_note(title="Archived", is_archived=True)
        for note in (first, second, archived):
            await self.service.get_note(db_session, user_session, note.id, touch=True)

        recent = await self.service.list_recently_viewed(db_session, user_session)
        assert [n.title for n in recent] == ["Second viewed", "First viewed"]
        assert never_opened.id not in {n.id for n in recent}

        limited = await self.service.list_recently_viewed(db_session, user_session, limit=1)
        assert [n.title for n in limited] == ["Second viewed"]


class TestTwoPhaseDelete:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_deletes_associations_then_note(self, db_session, user_session, make_note, make_tag):
        note = await make_note()
        await make_tag("Biology", note=note)
        await make_tag("Physics", note=note)
        note_id = note.id

        assert await self.service.delete_note(db_session, user_session, note_id) is True

        assert (await db_session.execute(select(Note).where(Note.id == note_id))).first() is None
        rows = await db_session.execute(select(NoteTag).where(NoteTag.note_id == note_id))
        assert rows.first() is None

    @pytest.mark.asyncio
    async def test_association_failure_keeps_note(
        self, db_session, user_session, make_note, make_tag, monkeypatch
    ):
        note = await make_note()
        await make_tag("Biology", note=note)
        note_id = note.id
        original_execute = db_session.execute

        async def failing_execute(statement, *args, **kwargs):
            if isinstance(statement, Delete) and statement.table.name == "note_tags":
                raise OperationalError("DELETE FROM note_tags", {}, Exception("disk I/O error"))
            return await original_execute(statement, *args, **kwargs)

        monkeypatch.setattr(db_session, "execute", failing_execute)

        assert await self.service.delete_note(db_session, user_session, note_id) is False

        monkeypatch.setattr(db_session, "execute", original_execute)
        kept = await self.service.get_note(db_session, user_session, note_id)
        assert [tag.name for tag in kept.tags] == ["Biology"]

    @pytest.mark.asyncio
    async def test_note_row_failure_reports_false(
        self, db_session, user_session, make_note, make_tag, monkeypatch
    ):
        note = await make_note()
        await make_tag("Biology", note=note)
        note_id = note.id
        original_commit = db_session.commit
        commits = []

        async def commit_then_fail():
            commits.append(1)
            if len(commits) == 2:
                raise OperationalError("DELETE FROM notes", {}, Exception("database is locked"))
            await original_commit()

        monkeypatch.setattr(db_session, "commit", commit_then_fail)

        assert await self.service.delete_note(db_session, user_session, note_id) is False

        monkeypatch.setattr(db_session, "commit", original_commit)
        kept = await self.service.get_note(db_session, user_session, note_id)
        assert kept.tags == []

    @pytest.mark.asyncio
    async def test_missing_note_raises_before_deleting(self, db_session, other_session, make_note):
        note = await make_note()
        with pytest.raises(NotFoundError):
            await self.service.delete_note(db_session, other_session, note.id)
