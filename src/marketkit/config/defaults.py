"""Package-level default configuration values."""

from __future__ import annotations

from typing import Any

# Default cache settings
DEFAULT_CACHE_TTL_SECONDS = 300.0
DEFAULT_CHECK_PERIOD_SECONDS = 60.0
DEFAULT_REVALIDATE_SECONDS = 300.0
DEFAULT_WARM_TTL_SECONDS = 3600.0
DEFAULT_CACHE_DISABLED = False
DEFAULT_INCLUDE_IDENTITY = True

# Default session analytics settings
DEFAULT_TITLE_MAX_CHARS = 50
DEFAULT_IDEAL_RESPONSE_MS = 2000.0
DEFAULT_MAX_MESSAGES_FOR_SCORE = 50
DEFAULT_ESCALATION_CEILING = 3
DEFAULT_FOLLOW_UP_HOURS = 24.0
DEFAULT_HISTORY_LIMIT = 50

# Log level
DEFAULT_LOG_LEVEL = "WARNING"


def get_defaults() -> dict[str, Any]:
    """Return all defaults as a flat dictionary for merging."""
    return {
        "cache_ttl_seconds": DEFAULT_CACHE_TTL_SECONDS,
        "check_period_seconds": DEFAULT_CHECK_PERIOD_SECONDS,
        "revalidate_seconds": DEFAULT_REVALIDATE_SECONDS,
        "warm_ttl_seconds": DEFAULT_WARM_TTL_SECONDS,
        "cache_disabled": DEFAULT_CACHE_DISABLED,
        "include_identity": DEFAULT_INCLUDE_IDENTITY,
        "title_max_chars": DEFAULT_TITLE_MAX_CHARS,
        "ideal_response_ms": DEFAULT_IDEAL_RESPONSE_MS,
        "max_messages_for_score": DEFAULT_MAX_MESSAGES_FOR_SCORE,
        "escalation_ceiling": DEFAULT_ESCALATION_CEILING,
        "follow_up_hours": DEFAULT_FOLLOW_UP_HOURS,
        "history_limit": DEFAULT_HISTORY_LIMIT,
        "log_level": DEFAULT_LOG_LEVEL,
    }
