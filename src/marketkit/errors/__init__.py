"""Error handling: cache and session exception hierarchy."""

from marketkit.errors.exceptions import (
    CacheError,
    InvalidMessageTarget,
    InvalidTransition,
    MarketkitError,
    MessageNotFound,
    SessionError,
    SessionNotFound,
    WarmFetchFailure,
)

__all__ = [
    "MarketkitError",
    "CacheError",
    "WarmFetchFailure",
    "SessionError",
    "SessionNotFound",
    "InvalidMessageTarget",
    "MessageNotFound",
    "InvalidTransition",
]
