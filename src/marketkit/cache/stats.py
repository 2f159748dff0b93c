"""Cache entry and statistics models."""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, Field


class CacheEntry(BaseModel):
    """A cached response body plus the tags it is indexed under."""

    key: str
    value: Any = None
    created_at: float = Field(default_factory=time.time)
    ttl_seconds: float = 300.0
    tags: tuple[str, ...] = ()
    headers: dict[str, str] = Field(default_factory=dict)

    @property
    def expires_at(self) -> float:
        return self.created_at + self.ttl_seconds

    def age(self, now: float) -> float:
        return now - self.created_at

    def is_expired_at(self, now: float) -> bool:
        return self.age(now) > self.ttl_seconds

    @property
    def is_expired(self) -> bool:
        return self.is_expired_at(time.time())


class CacheStats(BaseModel):
    """Aggregate cache statistics."""

    hits: int = 0
    misses: int = 0
    keys: int = 0
    tags: int = 0

    @property
    def hit_ratio(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {**self.model_dump(), "hit_ratio": self.hit_ratio}
