"""Chat session, message and analytics models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from marketkit.types import MessageRole, Priority, SessionStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageMetadata(BaseModel):
    message_id: str
    tokens: int | None = Field(default=None, ge=0)
    response_time_ms: float | None = Field(default=None, ge=0)
    user_rating: int | None = Field(default=None, ge=1, le=5)
    user_feedback: str | None = None
    escalated: bool = False


class Message(BaseModel):
    """One turn of a conversation. Never reordered or removed by the engine."""

    role: MessageRole
    content: str
    timestamp: datetime
    metadata: MessageMetadata

    @property
    def id(self) -> str:
        return self.metadata.message_id

    @property
    def is_rated(self) -> bool:
        return self.metadata.user_rating is not None


class SessionAnalytics(BaseModel):
    """Derived snapshot, recomputed from the message list after every mutation."""

    message_count: int = 0
    total_tokens: int = 0
    average_response_time_ms: float = 0.0
    user_satisfaction: float = 0.0
    escalation_count: int = 0


class UserContext(BaseModel):
    user_type: str | None = None
    business_name: str | None = None
    industry: str | None = None
    location: str | None = None
    preferences: dict[str, Any] = Field(default_factory=dict)


class ChatSession(BaseModel):
    session_id: str
    user_id: str | None = None
    user_context: UserContext = Field(default_factory=UserContext)
    messages: list[Message] = Field(default_factory=list)
    status: SessionStatus = SessionStatus.ACTIVE
    title: str | None = None
    summary: str | None = None
    analytics: SessionAnalytics = Field(default_factory=SessionAnalytics)
    tags: list[str] = Field(default_factory=list)
    priority: Priority = Priority.NORMAL
    assigned_to: str | None = None
    closed_reason: str | None = None
    closed_at: datetime | None = None
    archived_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    @property
    def has_unrated_messages(self) -> bool:
        return any(m.role == MessageRole.ASSISTANT and not m.is_rated for m in self.messages)

    def duration_seconds(self, now: datetime | None = None) -> float:
        end = self.closed_at or now or utcnow()
        return (end - self.created_at).total_seconds()

    def find_message(self, message_id: str) -> Message | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def messages_by_role(self, role: MessageRole) -> list[Message]:
        return [m for m in self.messages if m.role == role]
