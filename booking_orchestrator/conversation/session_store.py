"""
In-process session storage and per-session conversation threads.

``SessionStore`` owns every ``BookingSession`` keyed by session id.
``ThreadRegistry`` creates LLM threads for sessions with single-flight
semantics: concurrent callers for the same session share one in-flight
creation, and the in-flight entry is dropped exactly once when it
finishes. Threads rotate after ``max_thread_messages`` messages; the
booking state is carried over, only the thread and its counter change.
"""

import asyncio
from typing import Optional

from booking_orchestrator.adapters.base import LanguageModel
from booking_orchestrator.config import settings
from booking_orchestrator.logging_context import get_session_logger
from booking_orchestrator.schemas.session_schema import BookingSession

logger = get_session_logger(__name__)


class SessionStore:
    """Maps session ids to sessions for the lifetime of the process."""

    def __init__(self) -> None:
        self._sessions: dict[str, BookingSession] = {}

    def get_or_create(self, session_id: str) -> BookingSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = BookingSession(session_id=session_id)
            self._sessions[session_id] = session
            logger.info("Created session %s", session_id)
        return session

    def get(self, session_id: str) -> Optional[BookingSession]:
        return self._sessions.get(session_id)

    def clear(self, session_id: str) -> bool:
        """Drop a session; returns False when it did not exist."""
        removed = self._sessions.pop(session_id, None)
        if removed is not None:
            logger.info("Cleared session %s", session_id)
        return removed is not None

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


class ThreadRegistry:
    """Single-flight thread creation and rotation for sessions."""

    def __init__(self, model: LanguageModel, max_thread_messages: Optional[int] = None) -> None:
        self._model = model
        self.max_thread_messages = (
            settings.session.max_thread_messages if max_thread_messages is None else max_thread_messages
        )
        self._in_flight: dict[str, asyncio.Future] = {}

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def ensure_thread(self, session: BookingSession) -> str:
        """Return the session's thread id, creating or rotating the thread if needed."""
        if session.thread_id and session.message_count >= self.max_thread_messages:
            logger.info(
                "Rotating thread %s after %d messages", session.thread_id, session.message_count
            )
            session.thread_id = None
            session.message_count = 0

        if session.thread_id:
            return session.thread_id

        future = self._in_flight.get(session.session_id)
        if future is None:
            future = asyncio.ensure_future(self._model.create_thread())
            self._in_flight[session.session_id] = future
            future.add_done_callback(lambda done: self._release(session.session_id, done))

        thread_id = await asyncio.shield(future)
        if session.thread_id is None:
            session.thread_id = thread_id
            session.message_count = 0
            logger.info("Created thread %s", thread_id)
        return session.thread_id

    def _release(self, session_id: str, done: asyncio.Future) -> None:
        if self._in_flight.get(session_id) is done:
            del self._in_flight[session_id]

    async def post_message(self, session: BookingSession, content: str, role: str = "user") -> str:
        """Add a message to the session's thread and count it toward rotation."""
        thread_id = await self.ensure_thread(session)
        await self._model.add_message(thread_id, role, content)
        session.message_count += 1
        return thread_id
