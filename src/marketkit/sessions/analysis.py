"""Keyword-based conversation analysis: topics, sentiment, urgency, summary.

All matching is case-insensitive substring matching against fixed keyword
lists (see KeywordConfig).
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel, Field

from marketkit.config.schema import KeywordConfig
from marketkit.sessions.models import ChatSession
from marketkit.types import MessageRole, Sentiment, Urgency

_DEFAULT_KEYWORDS = KeywordConfig()


class ConversationAnalysis(BaseModel):
    """On-demand classification of a conversation. Not stored on the session."""

    sentiment: Sentiment = Sentiment.NEUTRAL
    topics: list[str] = Field(default_factory=list)
    urgency: Urgency = Urgency.LOW
    positive_count: int = 0
    negative_count: int = 0
    message_count: int = 0
    last_activity: datetime | None = None


def extract_topics(
    texts: Iterable[str],
    keywords: KeywordConfig | None = None,
) -> list[str]:
    """Topic buckets with at least one keyword in the concatenated text.

    Returns [fallback_topic] when nothing matches.
    """
    keywords = keywords or _DEFAULT_KEYWORDS
    content = " ".join(texts).lower()
    found = [
        topic
        for topic, words in keywords.topic_buckets.items()
        if any(word in content for word in words)
    ]
    return found or [keywords.fallback_topic]


def count_keywords(text: str, words: Iterable[str]) -> int:
    """Number of distinct keywords that occur in text."""
    lowered = text.lower()
    return sum(1 for word in words if word in lowered)


def detect_sentiment(text: str, keywords: KeywordConfig | None = None) -> Sentiment:
    keywords = keywords or _DEFAULT_KEYWORDS
    positive = count_keywords(text, keywords.positive)
    negative = count_keywords(text, keywords.negative)
    return _sentiment_from_counts(positive, negative)


def detect_urgency(text: str, keywords: KeywordConfig | None = None) -> Urgency:
    """high on any urgent keyword, medium on more than two negative keywords."""
    keywords = keywords or _DEFAULT_KEYWORDS
    if count_keywords(text, keywords.urgent) > 0:
        return Urgency.HIGH
    if count_keywords(text, keywords.negative) > 2:
        return Urgency.MEDIUM
    return Urgency.LOW


def analyze_conversation(
    session: ChatSession,
    keywords: KeywordConfig | None = None,
) -> ConversationAnalysis:
    """Classify sentiment, topics and urgency over every message in the session."""
    keywords = keywords or _DEFAULT_KEYWORDS
    texts = [m.content for m in session.messages]
    content = " ".join(texts)

    positive = count_keywords(content, keywords.positive)
    negative = count_keywords(content, keywords.negative)

    return ConversationAnalysis(
        sentiment=_sentiment_from_counts(positive, negative),
        topics=extract_topics(texts, keywords),
        urgency=detect_urgency(content, keywords),
        positive_count=positive,
        negative_count=negative,
        message_count=len(session.messages),
        last_activity=session.messages[-1].timestamp if session.messages else None,
    )


def generate_summary(
    session: ChatSession,
    keywords: KeywordConfig | None = None,
) -> str | None:
    """One-line summary built from user-message topics.

    None when the session has no user messages.
    """
    user_messages = session.messages_by_role(MessageRole.USER)
    if not user_messages:
        return None
    assistant_messages = session.messages_by_role(MessageRole.ASSISTANT)

    topics = extract_topics((m.content for m in user_messages), keywords)
    return (
        f"Discussion about {', '.join(topics)}. "
        f"{len(user_messages)} user messages, "
        f"{len(assistant_messages)} assistant responses."
    )


def _sentiment_from_counts(positive: int, negative: int) -> Sentiment:
    if positive > negative:
        return Sentiment.POSITIVE
    if negative > positive:
        return Sentiment.NEGATIVE
    return Sentiment.NEUTRAL
