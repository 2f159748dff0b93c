"""Session persistence contract, an in-memory store, and session reporting."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

from pydantic import BaseModel

from marketkit.sessions.models import ChatSession, utcnow
from marketkit.types import SessionStatus

TIME_RANGES: dict[str, timedelta] = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}
_DEFAULT_RANGE = "7d"


@runtime_checkable
class SessionStore(Protocol):
    """What the application needs from a session database."""

    async def find_by_session_id(self, session_id: str) -> ChatSession | None: ...

    async def upsert_session(self, session: ChatSession) -> ChatSession: ...

    async def delete_session(self, session_id: str) -> bool: ...

    async def list_sessions(self) -> list[ChatSession]: ...


class InMemorySessionStore:
    """Dict-backed SessionStore. Stores and returns deep copies."""

    def __init__(self) -> None:
        self._sessions: dict[str, ChatSession] = {}

    async def find_by_session_id(self, session_id: str) -> ChatSession | None:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def upsert_session(self, session: ChatSession) -> ChatSession:
        self._sessions[session.session_id] = session.model_copy(deep=True)
        return session

    async def delete_session(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    async def list_sessions(self) -> list[ChatSession]:
        return [s.model_copy(deep=True) for s in self._sessions.values()]

    def __len__(self) -> int:
        return len(self._sessions)


class SessionReport(BaseModel):
    total_sessions: int = 0
    active_sessions: int = 0
    closed_sessions: int = 0
    escalated_sessions: int = 0
    archived_sessions: int = 0
    total_messages: int = 0
    average_messages_per_session: float = 0.0
    average_satisfaction: float = 0.0
    time_range: str = _DEFAULT_RANGE


def find_active_sessions(sessions: Iterable[ChatSession]) -> list[ChatSession]:
    """Active sessions, most recently updated first."""
    active = [s for s in sessions if s.status == SessionStatus.ACTIVE]
    return sorted(active, key=lambda s: s.updated_at, reverse=True)


def find_need_follow_up(
    sessions: Iterable[ChatSession],
    now: datetime | None = None,
    older_than: timedelta = timedelta(hours=24),
) -> list[ChatSession]:
    """Active sessions idle for longer than older_than, stalest first."""
    cutoff = (now or utcnow()) - older_than
    stale = [
        s for s in sessions if s.status == SessionStatus.ACTIVE and s.updated_at < cutoff
    ]
    return sorted(stale, key=lambda s: s.updated_at)


def session_report(
    sessions: Iterable[ChatSession],
    time_range: str = _DEFAULT_RANGE,
    now: datetime | None = None,
) -> SessionReport:
    """Aggregate counts and averages for sessions created within time_range.

    Unknown ranges fall back to 7d.
    """
    if time_range not in TIME_RANGES:
        time_range = _DEFAULT_RANGE
    start = (now or utcnow()) - TIME_RANGES[time_range]
    window = [s for s in sessions if s.created_at >= start]

    total = len(window)
    by_status = {status: 0 for status in SessionStatus}
    for s in window:
        by_status[s.status] += 1
    total_messages = sum(s.analytics.message_count for s in window)
    satisfaction = sum(s.analytics.user_satisfaction for s in window)

    return SessionReport(
        total_sessions=total,
        active_sessions=by_status[SessionStatus.ACTIVE],
        closed_sessions=by_status[SessionStatus.CLOSED],
        escalated_sessions=by_status[SessionStatus.ESCALATED],
        archived_sessions=by_status[SessionStatus.ARCHIVED],
        total_messages=total_messages,
        average_messages_per_session=round(total_messages / total, 2) if total else 0.0,
        average_satisfaction=round(satisfaction / total, 2) if total else 0.0,
        time_range=time_range,
    )
