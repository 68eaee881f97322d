"""
SmartNotes Backend - Application Package Initializer
=====================================================

What: Marks the `smartnotes` directory as a Python package.
Who:  Imported by uvicorn (`smartnotes.main:app`), Alembic and pytest.

Architecture Note:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │     Services (Pipeline & Rules)     │  ← extraction, gateway, parser,
    │                                     │    reconciliation, orchestration
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Routes never talk to the LLM or the database directly; they hand a
    session and a SessionContext (the authenticated user) to a service.
"""

__version__ = "1.0.0"
