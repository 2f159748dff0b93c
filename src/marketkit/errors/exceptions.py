"""Custom exception hierarchy for marketkit."""

from __future__ import annotations

from typing import Any


class MarketkitError(Exception):
    """Base exception for all marketkit errors."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        super().__init__(message)
        self.message = message


class CacheError(MarketkitError):
    """Base for cache-layer errors. A miss is never one of these."""


class WarmFetchFailure(CacheError):
    """A warm-up fetcher raised for one key; logged and skipped, never fatal."""

    def __init__(
        self,
        message: str = "",
        key: str = "",
        original: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.key = key
        self.original = original


class SessionError(MarketkitError):
    """Base for chat-session errors."""


class SessionNotFound(SessionError):
    """Mutation or lookup against an unknown session id."""

    def __init__(self, message: str = "", session_id: str = "") -> None:
        super().__init__(message or f"Session not found: {session_id}")
        self.session_id = session_id


class InvalidMessageTarget(SessionError):
    """Rating a message that cannot be rated.

    Examples: user or system message, message already rated.
    """

    def __init__(
        self,
        message: str = "",
        message_id: str = "",
        reason: str = "not_assistant",
    ) -> None:
        super().__init__(message or f"Message {message_id} cannot be rated ({reason})")
        self.message_id = message_id
        self.reason = reason


class MessageNotFound(InvalidMessageTarget):
    """Rating target does not exist in the session."""

    def __init__(self, message: str = "", message_id: str = "") -> None:
        super().__init__(
            message or f"Message not found: {message_id}",
            message_id=message_id,
            reason="not_found",
        )


class InvalidTransition(SessionError):
    """State-machine violation, e.g. mutating an archived session."""

    def __init__(
        self,
        message: str = "",
        session_id: str = "",
        current: str = "",
        action: str = "",
    ) -> None:
        super().__init__(
            message or f"Cannot {action} session {session_id} in status '{current}'"
        )
        self.session_id = session_id
        self.current = current
        self.action = action
