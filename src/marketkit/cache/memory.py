"""In-memory TTL cache with secondary tag indexes."""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Callable, Iterable
from typing import Any

from pydantic import BaseModel, Field

from marketkit.cache.stats import CacheEntry, CacheStats
from marketkit.config.defaults import DEFAULT_CACHE_TTL_SECONDS
from marketkit.errors.exceptions import WarmFetchFailure

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class _Miss:
    """Sentinel returned by TaggedCache.get() when nothing live is stored."""

    _instance: _Miss | None = None

    def __new__(cls) -> _Miss:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISS"


MISS = _Miss()


class WarmSpec(BaseModel):
    """One entry to pre-populate: the fetcher is only called if the key is absent."""

    key: str
    fetcher: Callable[[], Any]
    ttl_seconds: float | None = None
    tags: tuple[str, ...] = ()


class WarmReport(BaseModel):
    warmed: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)


class TaggedCache:
    """TTL key/value cache with tag-based bulk invalidation.

    The key table and the tag index are always mutated together inside a
    single method call, so a reader never sees a key that is in the table
    but missing from one of its tags (or the reverse). No locking is done
    here: one owner per instance, or an external lock.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Clock | None = None,
    ) -> None:
        if default_ttl <= 0:
            raise ValueError(f"default_ttl must be positive, got {default_ttl}")
        self._default_ttl = default_ttl
        self._clock = clock or time.time
        self._entries: dict[str, CacheEntry] = {}
        self._tags: dict[str, set[str]] = {}
        self._hits = 0
        self._misses = 0

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    def now(self) -> float:
        return self._clock()

    # ── Reads ──

    def get(self, key: str, max_age: float | None = None) -> Any:
        """Return the cached value, or MISS. Counts a hit or a miss."""
        entry = self.get_entry(key, max_age=max_age)
        return MISS if entry is None else entry.value

    def get_entry(self, key: str, max_age: float | None = None) -> CacheEntry | None:
        """Look up a live entry.

        Expired entries are evicted on access. When max_age is given, an
        entry older than it is evicted too and reported as a miss even
        though its TTL has not run out.
        """
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        now = self._clock()
        if entry.is_expired_at(now):
            self._remove(key)
            self._misses += 1
            return None

        if max_age is not None and entry.age(now) > max_age:
            logger.debug("Revalidating %s (age %.1fs > %.1fs)", key, entry.age(now), max_age)
            self._remove(key)
            self._misses += 1
            return None

        self._hits += 1
        return entry

    def peek(self, key: str) -> CacheEntry | None:
        """Live entry without touching stats or evicting."""
        entry = self._entries.get(key)
        if entry is None or entry.is_expired_at(self._clock()):
            return None
        return entry

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.peek(key) is not None

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> list[str]:
        now = self._clock()
        return [k for k, e in self._entries.items() if not e.is_expired_at(now)]

    def tag_members(self, tag: str) -> set[str]:
        return set(self._tags.get(tag, ()))

    def tags(self) -> list[str]:
        return sorted(self._tags)

    # ── Writes ──

    def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: float | None = None,
        tags: Iterable[str] = (),
        headers: dict[str, str] | None = None,
    ) -> CacheEntry:
        """Insert or overwrite an entry and re-index its tags.

        Overwriting with a different tag set drops the key from tags it no
        longer claims.
        """
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl}")

        new_tags = tuple(dict.fromkeys(tags))
        old = self._entries.get(key)
        if old is not None:
            self._unindex(key, [t for t in old.tags if t not in new_tags])

        entry = CacheEntry(
            key=key,
            value=value,
            created_at=self._clock(),
            ttl_seconds=ttl,
            tags=new_tags,
            headers=headers or {},
        )
        self._entries[key] = entry
        for tag in new_tags:
            self._tags.setdefault(tag, set()).add(key)
        return entry

    def delete(self, key: str) -> bool:
        """Remove an entry and scrub it from its tags. Absent keys are a no-op."""
        return self._remove(key) is not None

    def invalidate_tag(self, tag: str) -> int:
        """Delete every entry indexed under tag. Returns the count removed."""
        members = self._tags.pop(tag, set())
        removed = sum(1 for key in members if self._remove(key) is not None)
        if removed:
            logger.info("Invalidated %d entries tagged '%s'", removed, tag)
        return removed

    def invalidate_pattern(self, pattern: str) -> int:
        """Delete every entry whose key contains pattern."""
        to_remove = [key for key in self._entries if pattern in key]
        for key in to_remove:
            self._remove(key)
        if to_remove:
            logger.info("Invalidated %d entries matching '%s'", len(to_remove), pattern)
        return len(to_remove)

    def clear(self) -> int:
        """Remove everything. Returns the number of entries held before."""
        count = len(self._entries)
        self._entries.clear()
        self._tags.clear()
        return count

    def sweep_expired(self) -> int:
        """Evict every TTL-expired entry. Returns the count removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired_at(now)]
        for key in expired:
            self._remove(key)
        if expired:
            logger.debug("Swept %d expired entries", len(expired))
        return len(expired)

    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            keys=len(self.keys()),
            tags=len(self._tags),
        )

    def reset_stats(self) -> None:
        self._hits = 0
        self._misses = 0

    # ── Warm-up ──

    def warm(self, specs: Iterable[WarmSpec]) -> WarmReport:
        """Populate absent keys from their fetchers.

        A fetcher that raises is logged and skipped; entries already
        warmed stay in place. A fetcher returning None caches nothing.
        """
        report = WarmReport()
        for spec in specs:
            if spec.key in self:
                report.skipped.append(spec.key)
                continue
            try:
                value = spec.fetcher()
            except Exception as e:
                failure = WarmFetchFailure(f"Cache warm failed for {spec.key}: {e}", spec.key, e)
                logger.warning("%s", failure.message)
                report.failed[spec.key] = str(e)
                continue
            if inspect.isawaitable(value):
                if inspect.iscoroutine(value):
                    value.close()
                message = "async fetcher needs warm_async()"
                logger.warning("Cache warm failed for %s: %s", spec.key, message)
                report.failed[spec.key] = message
                continue
            self.store_warmed(spec, value, report)
        return report

    def store_warmed(self, spec: WarmSpec, value: Any, report: WarmReport) -> None:
        if value is None:
            report.skipped.append(spec.key)
            return
        self.set(spec.key, value, ttl_seconds=spec.ttl_seconds, tags=spec.tags)
        report.warmed.append(spec.key)

    # ── Internal helpers ──

    def _remove(self, key: str) -> CacheEntry | None:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._unindex(key, entry.tags)
        return entry

    def _unindex(self, key: str, tags: Iterable[str]) -> None:
        for tag in tags:
            members = self._tags.get(tag)
            if members is None:
                continue
            members.discard(key)
            if not members:
                del self._tags[tag]
