"""
SmartNotes Backend - Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test gets a fresh in-memory SQLite database (aiosqlite) with the
       full schema, a SessionContext for a test user and a scripted LLM
       gateway. No network, no PostgreSQL.

Fixture Hierarchy:
    engine ─┬─ db_session ─── make_note / make_tag
            └─ api_client (dependency override of get_db_session)
    user_session, other_session
    fake_gateway ─── processor
"""

import os

# Must be set before anything imports smartnotes.config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["LOG_LEVEL"] = "WARNING"

from typing import List, Optional, Sequence, Union  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

import smartnotes.models  # noqa: E402,F401
from smartnotes.database import Base, get_db_session  # noqa: E402
from smartnotes.models.note import Note  # noqa: E402
from smartnotes.models.tag import NoteTag, Tag  # noqa: E402
from smartnotes.services.ai_pipeline import NoteProcessor  # noqa: E402
from smartnotes.services.llm_base import InlineImage, LLMGateway  # noqa: E402
from smartnotes.services.note_service import NoteService  # noqa: E402
from smartnotes.services.tag_reconciliation import TagReconciler  # noqa: E402
from smartnotes.services.tag_service import TagService  # noqa: E402
from smartnotes.session import SessionContext  # noqa: E402

TEST_USER = "user-1"
OTHER_USER = "user-2"

_SUMMARY_RESPONSE = """### Overview
Photosynthesis converts light energy into chemical energy stored in glucose.

### Key Concepts & Details
- **Chlorophyll:** absorbs red and blue light.
- **Calvin cycle:** fixes carbon dioxide into sugars.

### Main Takeaways
- Plants are primary producers.
"""

_TAGS_RESPONSE = """Here is the analysis:
```json
{
  "suggested_tags": [{"name": "Biology", "category": "Science"}, {"name": "Botany"}],
  "summary_keywords": ["photosynthesis", "glucose"],
  "suggested_links": []
}
```"""


# ══════════════════════════════════════════════════════════════════════════
# Scripted LLM Gateway
# ══════════════════════════════════════════════════════════════════════════


class FakeGateway(LLMGateway):
    """
    Returns queued responses in order; an Exception in the queue is raised.

    Every prompt is recorded in `prompts` for assertions.
    """

    def __init__(self, responses: Sequence[Union[str, Exception]] = ()):
        self.responses: List[Union[str, Exception]] = list(responses)
        self.prompts: List[str] = []
        self.images: List[Optional[Sequence[InlineImage]]] = []
        self.models: List[Optional[str]] = []

    def queue(self, *responses: Union[str, Exception]) -> None:
        self.responses.extend(responses)

    async def generate(self, prompt, images=None, model=None) -> str:
        self.prompts.append(prompt)
        self.images.append(images)
        self.models.append(model)
        if not self.responses:
            raise AssertionError(f"Unexpected gateway call #{len(self.prompts)}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def health_check(self) -> bool:
        return True

    @property
    def call_count(self) -> int:
        return len(self.prompts)


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════


@pytest_asyncio.fixture
async def engine():
    """
    In-memory SQLite engine with the full schema.

    pysqlite's implicit transaction handling breaks SAVEPOINT; the two
    listeners hand BEGIN back to SQLAlchemy so begin_nested() works.
    """
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(test_engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def user_session():
    return SessionContext(TEST_USER)


@pytest.fixture
def other_session():
    return SessionContext(OTHER_USER)


@pytest.fixture
def make_note(db_session):
    """Factory: persist a note for TEST_USER (or `user_id`) and commit."""

    async def _make_note(
        title: str = "Test note",
        content: str = "Some content about photosynthesis.",
        user_id: str = TEST_USER,
        **fields,
    ) -> Note:
        note = Note(user_id=user_id, title=title, content=content, **fields)
        db_session.add(note)
        await db_session.commit()
        return note

    return _make_note


@pytest.fixture
def make_tag(db_session):
    """Factory: persist a tag, optionally attached to a note, and commit."""

    async def _make_tag(name: str, user_id: str = TEST_USER, note: Optional[Note] = None) -> Tag:
        tag = Tag(user_id=user_id, name=name)
        db_session.add(tag)
        await db_session.flush()
        if note is not None:
            db_session.add(NoteTag(note_id=note.id, tag_id=tag.id))
        await db_session.commit()
        return tag

    return _make_tag


# ══════════════════════════════════════════════════════════════════════════
# Service Fixtures
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def summary_response():
    """A well-formed three-section summarization response."""
    return _SUMMARY_RESPONSE


@pytest.fixture
def tags_response():
    """A tagging response with the JSON object wrapped in prose and a fence."""
    return _TAGS_RESPONSE


@pytest.fixture
def processor(fake_gateway):
    tags = TagService()
    return NoteProcessor(
        gateway=fake_gateway,
        notes=NoteService(),
        tags=tags,
        reconciler=TagReconciler(tags),
    )


# ══════════════════════════════════════════════════════════════════════════
# API Client
# ══════════════════════════════════════════════════════════════════════════


@pytest_asyncio.fixture
async def api_client(session_factory, fake_gateway, monkeypatch):
    """
    HTTPX AsyncClient bound to the FastAPI app through ASGITransport.

    Requests use the test database and the scripted gateway; send
    `Authorization: Bearer <user id>` to authenticate.
    """
    from smartnotes.main import app
    from smartnotes.services.ai_pipeline import note_processor
    from smartnotes.services.ocr_service import ocr_service

    monkeypatch.setattr(note_processor, "_gateway", fake_gateway)
    monkeypatch.setattr(ocr_service, "_gateway", fake_gateway)

    async def override_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {TEST_USER}"}
