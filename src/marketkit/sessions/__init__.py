"""Chat sessions: models, analytics engine, analysis and storage."""

from marketkit.sessions.analysis import (
    ConversationAnalysis,
    analyze_conversation,
    extract_topics,
    generate_summary,
)
from marketkit.sessions.engine import SessionAnalyticsEngine
from marketkit.sessions.models import (
    ChatSession,
    Message,
    MessageMetadata,
    SessionAnalytics,
    UserContext,
)
from marketkit.sessions.quality import QualityReport, quality_score
from marketkit.sessions.service import SessionService, fallback_reply
from marketkit.sessions.store import InMemorySessionStore, SessionReport, SessionStore

__all__ = [
    "ChatSession",
    "ConversationAnalysis",
    "InMemorySessionStore",
    "Message",
    "MessageMetadata",
    "QualityReport",
    "SessionAnalytics",
    "SessionAnalyticsEngine",
    "SessionReport",
    "SessionService",
    "SessionStore",
    "UserContext",
    "analyze_conversation",
    "extract_topics",
    "fallback_reply",
    "generate_summary",
    "quality_score",
]
