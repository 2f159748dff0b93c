"""Application-layer session service: lock, load, mutate, persist."""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Mapping
from datetime import timedelta
from typing import Any, TypeVar

from marketkit.concurrency.locks import KeyedLock
from marketkit.errors.exceptions import SessionNotFound
from marketkit.sessions.analysis import ConversationAnalysis
from marketkit.sessions.engine import SessionAnalyticsEngine
from marketkit.sessions.models import ChatSession, Message, UserContext
from marketkit.sessions.quality import QualityReport
from marketkit.sessions.store import (
    SessionReport,
    SessionStore,
    find_active_sessions,
    find_need_follow_up,
    session_report,
)
from marketkit.types import MessageRole, Priority

logger = logging.getLogger(__name__)

T = TypeVar("T")

FALLBACK_REPLIES: tuple[str, ...] = (
    "I apologize, but I'm having trouble processing your request right now. "
    "Please try again in a moment.",
    "I'm currently experiencing technical difficulties. Could you please rephrase "
    "your question or try again later?",
    "I'm unable to respond at the moment. Please contact our human support team "
    "for immediate assistance.",
    "Thank you for your message. I'm temporarily unavailable. Our support team "
    "will get back to you shortly.",
)

# (keywords, reply) checked in order
_KEYWORD_REPLIES: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("hello", "hi"),
        "Hello! I'm currently having some technical issues, but our team is here "
        "to help. How can we assist you today?",
    ),
    (
        ("price", "cost"),
        "For accurate pricing information, please check our website or contact our "
        "sales team directly. They'll be happy to provide you with current pricing.",
    ),
    (
        ("order", "track"),
        "For order status and tracking information, please visit the 'My Orders' "
        "section in your account or contact our support team with your order number.",
    ),
)


def fallback_reply(user_message: str, rng: random.Random | None = None) -> str:
    """Canned reply for when the session pipeline is unavailable."""
    lowered = user_message.lower()
    for keywords, reply in _KEYWORD_REPLIES:
        if any(word in lowered for word in keywords):
            return reply
    return (rng or random).choice(FALLBACK_REPLIES)


class SessionService:
    """Serializes mutations per session id and persists after each one.

    The store hands out copies, so a mutation that raises is simply never
    written back.
    """

    def __init__(
        self,
        store: SessionStore,
        engine: SessionAnalyticsEngine | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self._store = store
        self._engine = engine or SessionAnalyticsEngine()
        self._locks = locks or KeyedLock()

    @property
    def engine(self) -> SessionAnalyticsEngine:
        return self._engine

    async def get(self, session_id: str) -> ChatSession:
        session = await self._store.find_by_session_id(session_id)
        if session is None:
            raise SessionNotFound(session_id=session_id)
        return session

    async def handle_message(
        self,
        session_id: str,
        role: MessageRole | str,
        content: str,
        metadata: Mapping[str, Any] | None = None,
        user_id: str | None = None,
        user_context: UserContext | Mapping[str, Any] | None = None,
    ) -> Message:
        """Append a message, creating the session on its first message."""

        def apply(session: ChatSession) -> Message:
            return self._engine.add_message(session, role, content, metadata)

        return await self._mutate(
            session_id, apply, create=True, user_id=user_id, user_context=user_context
        )

    async def rate(
        self,
        session_id: str,
        message_id: str,
        rating: int,
        feedback: str | None = None,
    ) -> Message:
        return await self._mutate(
            session_id, lambda s: self._engine.rate_message(s, message_id, rating, feedback)
        )

    async def close(self, session_id: str, reason: str = "user_closed") -> ChatSession:
        return await self._mutate(session_id, lambda s: self._engine.close(s, reason))

    async def escalate(
        self,
        session_id: str,
        priority: Priority | str = Priority.HIGH,
        assigned_to: str | None = None,
    ) -> Message:
        return await self._mutate(
            session_id, lambda s: self._engine.escalate(s, priority, assigned_to)
        )

    async def archive(self, session_id: str) -> ChatSession:
        return await self._mutate(session_id, self._engine.archive)

    async def delete(self, session_id: str) -> bool:
        """Administrative removal. The engine itself never deletes sessions."""
        async with self._locks.hold(session_id):
            return await self._store.delete_session(session_id)

    async def history(self, session_id: str, limit: int | None = None) -> list[Message]:
        """Last `limit` messages, or [] for an unknown session."""
        session = await self._store.find_by_session_id(session_id)
        if session is None:
            return []
        limit = limit or self._engine.settings.history_limit
        return session.messages[-limit:]

    async def analyze(self, session_id: str) -> ConversationAnalysis:
        return self._engine.analyze(await self.get(session_id))

    async def quality(self, session_id: str) -> QualityReport:
        return self._engine.quality(await self.get(session_id))

    async def report(self, time_range: str = "7d") -> SessionReport:
        sessions = await self._store.list_sessions()
        return session_report(sessions, time_range, now=self._engine.now())

    async def active_sessions(self) -> list[ChatSession]:
        return find_active_sessions(await self._store.list_sessions())

    async def sessions_needing_follow_up(self) -> list[ChatSession]:
        hours = self._engine.settings.follow_up_hours
        return find_need_follow_up(
            await self._store.list_sessions(),
            now=self._engine.now(),
            older_than=timedelta(hours=hours),
        )

    async def _mutate(
        self,
        session_id: str,
        apply: Callable[[ChatSession], T],
        create: bool = False,
        user_id: str | None = None,
        user_context: UserContext | Mapping[str, Any] | None = None,
    ) -> T:
        async with self._locks.hold(session_id):
            session = await self._store.find_by_session_id(session_id)
            if session is None:
                if not create:
                    raise SessionNotFound(session_id=session_id)
                session = self._engine.create_session(session_id, user_id, user_context)
                logger.debug("Created session %s", session_id)

            result = apply(session)
            await self._store.upsert_session(session)
            return result
