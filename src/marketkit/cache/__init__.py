"""Cache subsystem: in-memory TTL cache with tag indexes and request-level policy."""

from marketkit.cache.keys import generate_cache_key, key_for_request, normalize_path
from marketkit.cache.manager import CacheManager
from marketkit.cache.memory import MISS, TaggedCache, WarmReport, WarmSpec
from marketkit.cache.stats import CacheEntry, CacheStats
from marketkit.cache.sweeper import CacheSweeper

__all__ = [
    "MISS",
    "CacheEntry",
    "CacheManager",
    "CacheStats",
    "CacheSweeper",
    "TaggedCache",
    "WarmReport",
    "WarmSpec",
    "generate_cache_key",
    "key_for_request",
    "normalize_path",
]
