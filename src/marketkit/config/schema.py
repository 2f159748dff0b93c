"""Pydantic models for cache, analytics and invalidation configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from marketkit.config import defaults


class SkipConditions(BaseModel):
    """Requests matching any condition bypass the cache entirely."""

    query_param: str | None = None
    header: str | None = None
    user_role: str | None = None


class CacheSettings(BaseModel):
    default_ttl_seconds: float = defaults.DEFAULT_CACHE_TTL_SECONDS
    revalidate_seconds: float | None = defaults.DEFAULT_REVALIDATE_SECONDS
    check_period_seconds: float = defaults.DEFAULT_CHECK_PERIOD_SECONDS
    warm_ttl_seconds: float = defaults.DEFAULT_WARM_TTL_SECONDS
    enabled: bool = True
    include_identity: bool = defaults.DEFAULT_INCLUDE_IDENTITY
    skip: SkipConditions = Field(default_factory=SkipConditions)

    @field_validator("default_ttl_seconds", "check_period_seconds", "warm_ttl_seconds")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v


class InvalidationRule(BaseModel):
    """Maps one domain event to the tags and key patterns it invalidates."""

    event: str
    tags: list[str] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)


DEFAULT_INVALIDATION_RULES: list[InvalidationRule] = [
    InvalidationRule(event="product:created", tags=["products"], patterns=["products"]),
    InvalidationRule(event="product:updated", tags=["products"], patterns=["products"]),
    InvalidationRule(event="product:deleted", tags=["products"], patterns=["products"]),
    InvalidationRule(event="category:updated", tags=["categories"], patterns=["categories"]),
    InvalidationRule(event="supplier:updated", tags=["suppliers"], patterns=["suppliers"]),
    InvalidationRule(event="order:created", tags=["analytics"], patterns=["analytics"]),
]


def _default_topic_buckets() -> dict[str, list[str]]:
    # Bucket order is the order topics are reported in
    return {
        "pricing": ["price", "cost", "expensive", "cheap", "discount", "quote"],
        "products": ["product", "item", "catalog", "inventory", "stock"],
        "shipping": ["ship", "delivery", "track", "courier", "transport"],
        "payment": ["pay", "payment", "invoice", "bill", "card", "gateway"],
        "account": ["account", "login", "password", "register", "profile"],
        "support": ["help", "support", "assistance", "problem", "issue"],
    }


class KeywordConfig(BaseModel):
    """Keyword lists for topic, sentiment and urgency detection.

    Matching is case-insensitive substring, so keep entries lower-case.
    """

    topic_buckets: dict[str, list[str]] = Field(default_factory=_default_topic_buckets)
    positive: list[str] = Field(
        default_factory=lambda: [
            "thanks", "thank you", "great", "good", "excellent", "helpful", "solved",
        ]
    )
    negative: list[str] = Field(
        default_factory=lambda: [
            "problem", "issue", "error", "wrong", "bad", "terrible", "frustrated",
        ]
    )
    urgent: list[str] = Field(
        default_factory=lambda: ["urgent", "asap", "immediately", "emergency", "critical"]
    )
    fallback_topic: str = "general inquiry"

    @field_validator("positive", "negative", "urgent")
    @classmethod
    def _lower(cls, v: list[str]) -> list[str]:
        return [w.lower() for w in v]

    @field_validator("topic_buckets")
    @classmethod
    def _lower_buckets(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        return {topic: [w.lower() for w in words] for topic, words in v.items()}


class AnalyticsSettings(BaseModel):
    title_max_chars: int = defaults.DEFAULT_TITLE_MAX_CHARS
    ideal_response_ms: float = defaults.DEFAULT_IDEAL_RESPONSE_MS
    max_messages_for_score: int = defaults.DEFAULT_MAX_MESSAGES_FOR_SCORE
    escalation_ceiling: int = defaults.DEFAULT_ESCALATION_CEILING
    follow_up_hours: float = defaults.DEFAULT_FOLLOW_UP_HOURS
    history_limit: int = defaults.DEFAULT_HISTORY_LIMIT


class MarketkitConfig(BaseModel):
    """Fully resolved configuration for a marketkit process."""

    cache: CacheSettings = Field(default_factory=CacheSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    invalidation: list[InvalidationRule] = Field(
        default_factory=lambda: [r.model_copy() for r in DEFAULT_INVALIDATION_RULES]
    )
    keywords: KeywordConfig = Field(default_factory=KeywordConfig)
    log_level: str = defaults.DEFAULT_LOG_LEVEL

    def invalidation_table(self) -> dict[str, InvalidationRule]:
        return {rule.event: rule for rule in self.invalidation}

    @classmethod
    def from_mapping(cls, flat: dict[str, Any]) -> MarketkitConfig:
        """Build from the flat dict returned by load_config_hierarchy()."""
        from marketkit.config.loader import load_invalidation_yaml, load_keywords_yaml

        revalidate = flat.get("revalidate_seconds", defaults.DEFAULT_REVALIDATE_SECONDS)
        cache = CacheSettings(
            default_ttl_seconds=flat.get(
                "cache_ttl_seconds", defaults.DEFAULT_CACHE_TTL_SECONDS
            ),
            revalidate_seconds=revalidate if revalidate else None,
            check_period_seconds=flat.get(
                "check_period_seconds", defaults.DEFAULT_CHECK_PERIOD_SECONDS
            ),
            warm_ttl_seconds=flat.get("warm_ttl_seconds", defaults.DEFAULT_WARM_TTL_SECONDS),
            enabled=not flat.get("cache_disabled", defaults.DEFAULT_CACHE_DISABLED),
            include_identity=flat.get("include_identity", defaults.DEFAULT_INCLUDE_IDENTITY),
            skip=SkipConditions(**flat.get("skip", {})),
        )
        analytics = AnalyticsSettings(
            **{k: flat[k] for k in AnalyticsSettings.model_fields if k in flat}
        )

        config = cls(
            cache=cache,
            analytics=analytics,
            log_level=str(flat.get("log_level", defaults.DEFAULT_LOG_LEVEL)),
        )
        if flat.get("invalidation_file"):
            config.invalidation = load_invalidation_yaml(Path(flat["invalidation_file"]))
        if flat.get("keywords_file"):
            config.keywords = load_keywords_yaml(Path(flat["keywords_file"]))
        return config
