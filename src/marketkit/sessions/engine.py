"""Session analytics engine: state machine and rolling analytics for chat sessions.

Every operation validates first and mutates second, so a call that raises
leaves the session exactly as it was. The engine never persists anything;
callers hand the mutated session to a SessionStore.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from marketkit.config.schema import AnalyticsSettings, KeywordConfig
from marketkit.errors.exceptions import InvalidMessageTarget, InvalidTransition, MessageNotFound
from marketkit.sessions.analysis import ConversationAnalysis, analyze_conversation, generate_summary
from marketkit.sessions.models import (
    ChatSession,
    Message,
    MessageMetadata,
    SessionAnalytics,
    UserContext,
    utcnow,
)
from marketkit.sessions.quality import QualityReport, quality_report
from marketkit.types import MessageRole, Priority, SessionStatus

logger = logging.getLogger(__name__)

_ESCALATION_MARKER = "escalat"
_TITLE_ELLIPSIS = "..."

# status -> statuses reachable from it
_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.ACTIVE: {SessionStatus.CLOSED, SessionStatus.ESCALATED},
    SessionStatus.ESCALATED: {SessionStatus.CLOSED, SessionStatus.ESCALATED},
    SessionStatus.CLOSED: {SessionStatus.CLOSED, SessionStatus.ARCHIVED},
    SessionStatus.ARCHIVED: set(),
}


def _default_message_id(timestamp: datetime) -> str:
    return f"msg_{int(timestamp.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"


class SessionAnalyticsEngine:
    """Apply conversation events to ChatSession objects."""

    def __init__(
        self,
        settings: AnalyticsSettings | None = None,
        keywords: KeywordConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[datetime], str] | None = None,
    ) -> None:
        self._settings = settings or AnalyticsSettings()
        self._keywords = keywords or KeywordConfig()
        self._clock = clock or utcnow
        self._id_factory = id_factory or _default_message_id

    @property
    def settings(self) -> AnalyticsSettings:
        return self._settings

    @property
    def keywords(self) -> KeywordConfig:
        return self._keywords

    def now(self) -> datetime:
        return self._clock()

    # ── Lifecycle ──

    def create_session(
        self,
        session_id: str,
        user_id: str | None = None,
        user_context: UserContext | Mapping[str, Any] | None = None,
    ) -> ChatSession:
        if not session_id:
            raise ValueError("session_id must be non-empty")
        if isinstance(user_context, Mapping):
            user_context = UserContext(**user_context)
        now = self._clock()
        return ChatSession(
            session_id=session_id,
            user_id=user_id,
            user_context=user_context or UserContext(),
            created_at=now,
            updated_at=now,
        )

    def add_message(
        self,
        session: ChatSession,
        role: MessageRole | str,
        content: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> Message:
        """Append a message and recompute the analytics snapshot."""
        self._require_not_archived(session, "add a message to")
        message = self._build_message(session, MessageRole(role), content, metadata or {})

        session.messages.append(message)
        self.recompute(session)
        return message

    def rate_message(
        self,
        session: ChatSession,
        message_id: str,
        rating: int,
        feedback: str | None = None,
    ) -> Message:
        """Rate an assistant message 1-5. Each message can be rated once."""
        self._require_not_archived(session, "rate a message in")
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValueError(f"rating must be an integer from 1 to 5, got {rating!r}")

        message = session.find_message(message_id)
        if message is None:
            raise MessageNotFound(message_id=message_id)
        if message.role != MessageRole.ASSISTANT:
            raise InvalidMessageTarget(message_id=message_id, reason="not_assistant")
        if message.is_rated:
            raise InvalidMessageTarget(message_id=message_id, reason="already_rated")

        message.metadata.user_rating = rating
        if feedback:
            message.metadata.user_feedback = feedback
        self.recompute(session)
        return message

    def close(self, session: ChatSession, reason: str = "user_closed") -> ChatSession:
        """Close the session and fill in a summary if it has none.

        Closing an already closed session keeps its closed_at and summary.
        """
        self._require_transition(session, SessionStatus.CLOSED, "close")

        if session.status != SessionStatus.CLOSED:
            session.status = SessionStatus.CLOSED
            session.closed_at = self._clock()
            session.closed_reason = reason
            logger.info("Session %s closed (%s)", session.session_id, reason)
        if not session.summary:
            session.summary = generate_summary(session, self._keywords)
        session.updated_at = self._clock()
        return session

    def escalate(
        self,
        session: ChatSession,
        priority: Priority | str = Priority.HIGH,
        assigned_to: str | None = None,
    ) -> Message:
        """Hand the session to human support and record it as a system message."""
        self._require_transition(session, SessionStatus.ESCALATED, "escalate")
        priority = Priority(priority)

        content = f"Conversation escalated to human support. Priority: {priority.value}."
        if assigned_to:
            content += f" Assigned to: {assigned_to}"
        message = self._build_message(
            session, MessageRole.SYSTEM, content, {"escalated": True}
        )

        session.status = SessionStatus.ESCALATED
        session.priority = priority
        if assigned_to:
            session.assigned_to = assigned_to
        session.messages.append(message)
        self.recompute(session)
        logger.info(
            "Session %s escalated (priority=%s, assigned_to=%s)",
            session.session_id, priority.value, assigned_to,
        )
        return message

    def archive(self, session: ChatSession) -> ChatSession:
        """closed -> archived. Archived sessions accept no further changes."""
        if session.status != SessionStatus.CLOSED:
            raise InvalidTransition(
                session_id=session.session_id, current=session.status.value, action="archive"
            )
        now = self._clock()
        session.status = SessionStatus.ARCHIVED
        session.archived_at = now
        session.updated_at = now
        return session

    # ── Derived data ──

    def recompute(self, session: ChatSession) -> SessionAnalytics:
        """Rebuild the analytics snapshot and title from the full message list."""
        messages = session.messages
        assistant = session.messages_by_role(MessageRole.ASSISTANT)
        ratings = [m.metadata.user_rating for m in assistant if m.metadata.user_rating is not None]

        session.analytics = SessionAnalytics(
            message_count=len(messages),
            total_tokens=sum(m.metadata.tokens or 0 for m in messages),
            average_response_time_ms=(
                sum(m.metadata.response_time_ms or 0.0 for m in assistant) / len(assistant)
                if assistant
                else 0.0
            ),
            user_satisfaction=sum(ratings) / len(ratings) if ratings else 0.0,
            escalation_count=sum(1 for m in messages if _is_escalation(m)),
        )

        if not session.title:
            session.title = self._derive_title(session)
        session.updated_at = self._clock()
        return session.analytics

    def analyze(self, session: ChatSession) -> ConversationAnalysis:
        return analyze_conversation(session, self._keywords)

    def summarize(self, session: ChatSession) -> str | None:
        return generate_summary(session, self._keywords)

    def quality(self, session: ChatSession) -> QualityReport:
        return quality_report(session.analytics, self._settings)

    # ── Internal helpers ──

    def _build_message(
        self,
        session: ChatSession,
        role: MessageRole,
        content: str,
        metadata: Mapping[str, Any],
    ) -> Message:
        if metadata.get("user_rating") is not None and role != MessageRole.ASSISTANT:
            raise InvalidMessageTarget(
                f"Only assistant messages can carry a rating, not {role.value}",
                reason="not_assistant",
            )

        timestamp = self._clock()
        if session.messages and timestamp < session.messages[-1].timestamp:
            timestamp = session.messages[-1].timestamp

        message_id = metadata.get("message_id") or self._id_factory(timestamp)
        if session.find_message(message_id) is not None:
            raise ValueError(f"Duplicate message id {message_id} in session {session.session_id}")

        fields = {k: v for k, v in metadata.items() if k != "message_id"}
        return Message(
            role=role,
            content=content,
            timestamp=timestamp,
            metadata=MessageMetadata(message_id=message_id, **fields),
        )

    def _derive_title(self, session: ChatSession) -> str | None:
        first_user = next(
            (m for m in session.messages if m.role == MessageRole.USER), None
        )
        if first_user is None:
            return None
        limit = self._settings.title_max_chars
        text = first_user.content
        return text[:limit] + (_TITLE_ELLIPSIS if len(text) > limit else "")

    def _require_not_archived(self, session: ChatSession, action: str) -> None:
        if session.status == SessionStatus.ARCHIVED:
            raise InvalidTransition(
                session_id=session.session_id, current=session.status.value, action=action
            )

    def _require_transition(
        self, session: ChatSession, target: SessionStatus, action: str
    ) -> None:
        if target not in _TRANSITIONS[session.status]:
            raise InvalidTransition(
                session_id=session.session_id, current=session.status.value, action=action
            )


def _is_escalation(message: Message) -> bool:
    return message.metadata.escalated or _ESCALATION_MARKER in message.content.lower()
