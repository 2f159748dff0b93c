"""Tests for custom exception hierarchy."""

from marketkit.errors import (
    CacheError,
    InvalidMessageTarget,
    InvalidTransition,
    MarketkitError,
    MessageNotFound,
    SessionError,
    SessionNotFound,
    WarmFetchFailure,
)


class TestExceptionHierarchy:
    def test_all_inherit_from_base(self):
        assert issubclass(CacheError, MarketkitError)
        assert issubclass(SessionError, MarketkitError)
        assert issubclass(WarmFetchFailure, CacheError)
        assert issubclass(SessionNotFound, SessionError)
        assert issubclass(InvalidTransition, SessionError)

    def test_message_not_found_is_invalid_target(self):
        assert issubclass(MessageNotFound, InvalidMessageTarget)

    def test_all_inherit_from_exception(self):
        assert issubclass(MarketkitError, Exception)


class TestSessionErrors:
    def test_session_not_found(self):
        err = SessionNotFound(session_id="s1")
        assert err.session_id == "s1"
        assert "s1" in str(err)

    def test_invalid_message_target_reason(self):
        err = InvalidMessageTarget(message_id="m1", reason="already_rated")
        assert err.reason == "already_rated"
        assert "already_rated" in str(err)

    def test_message_not_found(self):
        err = MessageNotFound(message_id="m9")
        assert err.reason == "not_found"
        assert err.message == "Message not found: m9"

    def test_invalid_transition(self):
        err = InvalidTransition(session_id="s1", current="archived", action="close")
        assert str(err) == "Cannot close session s1 in status 'archived'"

    def test_custom_message_wins(self):
        assert str(InvalidTransition("nope")) == "nope"


class TestWarmFetchFailure:
    def test_attributes(self):
        original = RuntimeError("db down")
        err = WarmFetchFailure("warm failed", key="k1", original=original)
        assert err.key == "k1"
        assert err.original is original
        assert err.message == "warm failed"
