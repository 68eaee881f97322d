"""
SmartNotes Backend - Session Context
=====================================

What:  Explicit holder for the authenticated user of one request.
How:   `SessionContext` is initialized from the `Authorization: Bearer <id>`
       header by the `get_session_context` dependency and handed to every
       service call. Services call `require_user()` before touching the
       store, so an anonymous call fails loudly instead of returning empty
       results.
Who:   Routes (dependency), NoteService, TagService, NoteProcessor,
       ImportService, OCR route.

Lifecycle:
    init(user_id)  -> listeners are notified with the new user id
    teardown()     -> listeners are notified with None, then dropped
"""

import logging
from typing import Callable, List, Optional

from fastapi import Request

from smartnotes.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

SessionListener = Callable[[Optional[str]], None]


class SessionContext:
    """The current user identity plus change listeners."""

    def __init__(self, user_id: Optional[str] = None):
        self._user_id: Optional[str] = None
        self._listeners: List[SessionListener] = []
        if user_id:
            self.init(user_id)

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_authenticated(self) -> bool:
        return self._user_id is not None

    def init(self, user_id: str) -> None:
        user_id = (user_id or "").strip()
        if not user_id:
            raise AuthenticationError("User id must not be blank")
        self._user_id = user_id
        self._notify()

    def on_change(self, callback: SessionListener) -> Callable[[], None]:
        """
        Register a listener called with the user id (or None) on every change.

        Returns a function that unregisters the listener.
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def teardown(self) -> None:
        self._user_id = None
        self._notify()
        self._listeners.clear()

    def require_user(self) -> str:
        """Return the user id or raise AuthenticationError."""
        if self._user_id is None:
            raise AuthenticationError()
        return self._user_id

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._user_id)

    def __repr__(self) -> str:
        return f"<SessionContext(user_id={self._user_id!r})>"


def parse_bearer_token(header_value: Optional[str]) -> Optional[str]:
    """Extract the token from an `Authorization: Bearer <token>` header."""
    if not header_value:
        return None
    scheme, _, token = header_value.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_session_context(request: Request):
    """
    FastAPI dependency yielding a SessionContext for the request.

    An absent or malformed header yields an unauthenticated context; the
    service layer decides whether that is an error (it always is for note
    and tag operations).
    """
    session = SessionContext()
    token = parse_bearer_token(request.headers.get("Authorization"))
    if token:
        session.init(token)
    try:
        yield session
    finally:
        session.teardown()
