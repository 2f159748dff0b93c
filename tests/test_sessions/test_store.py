"""Tests for the in-memory session store and reporting helpers."""

from datetime import datetime, timedelta, timezone

from marketkit.sessions.models import ChatSession, SessionAnalytics
from marketkit.sessions.store import (
    InMemorySessionStore,
    SessionStore,
    find_active_sessions,
    find_need_follow_up,
    session_report,
)
from marketkit.types import SessionStatus

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _session(session_id: str, status=SessionStatus.ACTIVE, age=timedelta(0), **kwargs):
    return ChatSession(
        session_id=session_id,
        status=status,
        created_at=NOW - age,
        updated_at=NOW - age,
        **kwargs,
    )


class TestInMemorySessionStore:
    def test_satisfies_protocol(self):
        assert isinstance(InMemorySessionStore(), SessionStore)

    async def test_upsert_and_find(self):
        store = InMemorySessionStore()
        await store.upsert_session(_session("s1"))
        found = await store.find_by_session_id("s1")
        assert found.session_id == "s1"
        assert await store.find_by_session_id("missing") is None

    async def test_returns_copies(self):
        store = InMemorySessionStore()
        session = _session("s1")
        await store.upsert_session(session)
        session.title = "changed after save"
        found = await store.find_by_session_id("s1")
        assert found.title is None
        found.title = "changed after load"
        assert (await store.find_by_session_id("s1")).title is None

    async def test_upsert_overwrites(self):
        store = InMemorySessionStore()
        await store.upsert_session(_session("s1"))
        await store.upsert_session(_session("s1", status=SessionStatus.CLOSED))
        assert len(store) == 1
        assert (await store.find_by_session_id("s1")).status == SessionStatus.CLOSED

    async def test_delete(self):
        store = InMemorySessionStore()
        await store.upsert_session(_session("s1"))
        assert await store.delete_session("s1") is True
        assert await store.delete_session("s1") is False
        assert await store.list_sessions() == []


class TestQueries:
    def test_active_sessions_most_recent_first(self):
        sessions = [
            _session("old", age=timedelta(hours=5)),
            _session("closed", status=SessionStatus.CLOSED),
            _session("new", age=timedelta(minutes=1)),
        ]
        assert [s.session_id for s in find_active_sessions(sessions)] == ["new", "old"]

    def test_need_follow_up(self):
        sessions = [
            _session("fresh", age=timedelta(hours=1)),
            _session("stale", age=timedelta(hours=30)),
            _session("staler", age=timedelta(days=3)),
            _session("closed", status=SessionStatus.CLOSED, age=timedelta(days=3)),
        ]
        result = find_need_follow_up(sessions, now=NOW)
        assert [s.session_id for s in result] == ["staler", "stale"]


class TestSessionReport:
    def test_report(self):
        sessions = [
            _session("a", analytics=SessionAnalytics(message_count=4, user_satisfaction=5.0)),
            _session(
                "b",
                status=SessionStatus.CLOSED,
                analytics=SessionAnalytics(message_count=2, user_satisfaction=4.0),
            ),
            _session("c", status=SessionStatus.ESCALATED, analytics=SessionAnalytics()),
            _session("too-old", age=timedelta(days=8)),
        ]
        report = session_report(sessions, "7d", now=NOW)
        assert report.total_sessions == 3
        assert report.active_sessions == 1
        assert report.closed_sessions == 1
        assert report.escalated_sessions == 1
        assert report.archived_sessions == 0
        assert report.total_messages == 6
        assert report.average_messages_per_session == 2.0
        assert report.average_satisfaction == 3.0

    def test_time_ranges(self):
        sessions = [_session("day", age=timedelta(hours=2)), _session("week", age=timedelta(days=3))]
        assert session_report(sessions, "24h", now=NOW).total_sessions == 1
        assert session_report(sessions, "30d", now=NOW).total_sessions == 2

    def test_unknown_range_falls_back(self):
        report = session_report([], "1y", now=NOW)
        assert report.time_range == "7d"
        assert report.total_sessions == 0
        assert report.average_satisfaction == 0.0
