"""Cache manager: the contract between the HTTP layer and TaggedCache.

Decides which requests are cacheable, derives keys, applies the
revalidation window, stores only successful responses, collapses
concurrent misses on one key into a single handler call, and maps
domain events to invalidations.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from marketkit.cache.keys import generate_cache_key
from marketkit.cache.memory import TaggedCache, WarmReport, WarmSpec
from marketkit.cache.stats import CacheEntry
from marketkit.config.schema import DEFAULT_INVALIDATION_RULES, CacheSettings, InvalidationRule
from marketkit.types import CachedResponse, HealthState, RequestInfo

logger = logging.getLogger(__name__)

KeyFunc = Callable[[str, str, Mapping[str, Any], Mapping[str, Any], str | None], str]
HandlerResult = tuple[int, Any] | tuple[int, Any, Mapping[str, str]]
Handler = Callable[[], HandlerResult]
AsyncHandler = Callable[[], Awaitable[HandlerResult]]

_CACHEABLE_METHOD = "GET"
_CAPTURED_HEADERS = ("content-type", "etag", "last-modified")
_HEALTH_KEY = "__marketkit:health__"
_HEALTH_TTL = 10.0


class CacheManager:
    """Request-level caching on top of an injected TaggedCache."""

    def __init__(
        self,
        cache: TaggedCache,
        settings: CacheSettings | None = None,
        key_fn: KeyFunc | None = None,
        invalidation: Iterable[InvalidationRule] | None = None,
    ) -> None:
        self._cache = cache
        self._settings = settings or CacheSettings()
        self._key_fn = key_fn or generate_cache_key
        rules = DEFAULT_INVALIDATION_RULES if invalidation is None else invalidation
        self._rules: dict[str, InvalidationRule] = {r.event: r for r in rules}
        self._in_flight: dict[str, asyncio.Future[tuple[int, Any, dict[str, str]]]] = {}
        self._deduplicated = 0

    @property
    def cache(self) -> TaggedCache:
        return self._cache

    @property
    def settings(self) -> CacheSettings:
        return self._settings

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    # ── Request policy ──

    def key_for(self, request: RequestInfo) -> str:
        identity = request.identity if self._settings.include_identity else None
        return self._key_fn(request.method, request.path, request.query, request.params, identity)

    def should_skip(self, request: RequestInfo) -> bool:
        """True if this request must bypass the cache."""
        if request.method.upper() != _CACHEABLE_METHOD:
            return True

        skip = self._settings.skip
        if skip.query_param and request.query.get(skip.query_param):
            return True
        if skip.header:
            wanted = skip.header.lower()
            if any(k.lower() == wanted and v for k, v in request.headers.items()):
                return True
        return bool(skip.user_role and request.role == skip.user_role)

    def lookup(self, request: RequestInfo) -> CacheEntry | None:
        """Fresh entry for this request, or None.

        Entries older than the revalidation window are dropped and count
        as a miss.
        """
        if self._bypass(request):
            return None
        return self._cache.get_entry(
            self.key_for(request), max_age=self._settings.revalidate_seconds
        )

    def store(
        self,
        request: RequestInfo,
        status_code: int,
        body: Any,
        ttl_seconds: float | None = None,
        tags: Iterable[str] = (),
        headers: Mapping[str, str] | None = None,
    ) -> bool:
        """Cache a response body. Only 2xx responses are stored."""
        if self._bypass(request):
            return False
        return self._store_key(self.key_for(request), status_code, body, ttl_seconds, tags, headers)

    # ── Middleware flows ──

    def respond(
        self,
        request: RequestInfo,
        handler: Handler,
        ttl_seconds: float | None = None,
        tags: Iterable[str] = (),
    ) -> CachedResponse:
        """Serve from cache, or call handler and cache a successful result."""
        if self._bypass(request):
            status, body, headers = _unpack(handler())
            return CachedResponse(status_code=status, body=body, headers=headers)

        key = self.key_for(request)
        hit = self._fresh(key)
        if hit is not None:
            return hit

        status, body, headers = _unpack(handler())
        self._store_key(key, status, body, ttl_seconds, tags, headers)
        return CachedResponse(status_code=status, body=body, key=key, headers=headers)

    async def respond_async(
        self,
        request: RequestInfo,
        handler: AsyncHandler,
        ttl_seconds: float | None = None,
        tags: Iterable[str] = (),
    ) -> CachedResponse:
        """Async variant of respond() with request de-duplication.

        While one handler call for a key is running, other misses on the
        same key wait for its result instead of calling the handler again.
        """
        if self._bypass(request):
            status, body, headers = _unpack(await handler())
            return CachedResponse(status_code=status, body=body, headers=headers)

        key = self.key_for(request)
        hit = self._fresh(key)
        if hit is not None:
            return hit

        pending = self._in_flight.get(key)
        if pending is not None:
            self._deduplicated += 1
            status, body, headers = await asyncio.shield(pending)
            return CachedResponse(status_code=status, body=body, key=key, headers=headers)

        future: asyncio.Future[tuple[int, Any, dict[str, str]]] = (
            asyncio.get_running_loop().create_future()
        )
        self._in_flight[key] = future
        try:
            result = _unpack(await handler())
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so a leader with no followers doesn't log it twice
            future.exception()
            raise
        except BaseException:
            future.cancel()
            raise
        else:
            future.set_result(result)
        finally:
            self._in_flight.pop(key, None)

        status, body, headers = result
        self._store_key(key, status, body, ttl_seconds, tags, headers)
        return CachedResponse(status_code=status, body=body, key=key, headers=headers)

    # ── Invalidation ──

    def on_event(self, event: str, data: Any = None) -> int:
        """Apply the configured invalidation for a domain event.

        Returns the number of entries removed. Events with no rule are ignored.
        """
        rule = self._rules.get(event)
        if rule is None:
            logger.debug("No invalidation rule for event '%s'", event)
            return 0

        removed = sum(self._cache.invalidate_pattern(p) for p in rule.patterns)
        removed += sum(self._cache.invalidate_tag(t) for t in rule.tags)
        logger.info("Event '%s' invalidated %d cache entries", event, removed)
        return removed

    def invalidation_rules(self) -> list[InvalidationRule]:
        return list(self._rules.values())

    def clear(self) -> int:
        return self._cache.clear()

    # ── Warm-up ──

    def request_warm_spec(
        self,
        path: str,
        fetcher: Callable[[], Any],
        tags: Iterable[str] = (),
        ttl_seconds: float | None = None,
    ) -> WarmSpec:
        """WarmSpec keyed like an anonymous GET on path."""
        request = RequestInfo(method=_CACHEABLE_METHOD, path=path)
        return WarmSpec(
            key=self.key_for(request),
            fetcher=fetcher,
            ttl_seconds=ttl_seconds,
            tags=tuple(tags),
        )

    def warm(self, specs: Iterable[WarmSpec]) -> WarmReport:
        """Warm synchronously. Specs without a TTL get the warm TTL."""
        return self._cache.warm(self._with_warm_ttl(specs))

    async def warm_async(self, specs: Iterable[WarmSpec]) -> WarmReport:
        """Warm with fetchers run concurrently; each failure is isolated."""
        report = WarmReport()
        pending: list[WarmSpec] = []
        for spec in self._with_warm_ttl(specs):
            if spec.key in self._cache:
                report.skipped.append(spec.key)
            else:
                pending.append(spec)

        results = await asyncio.gather(
            *(_call_fetcher(spec) for spec in pending), return_exceptions=True
        )
        for spec, result in zip(pending, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Cache warm failed for %s: %s", spec.key, result)
                report.failed[spec.key] = str(result)
            else:
                self._cache.store_warmed(spec, result, report)
        return report

    # ── Introspection ──

    def get_stats(self) -> dict[str, Any]:
        stats = self._cache.stats().to_dict()
        stats["enabled"] = self.enabled
        stats["in_flight"] = len(self._in_flight)
        stats["deduplicated"] = self._deduplicated
        return stats

    def get_health_status(self) -> dict[str, Any]:
        """Round-trip a probe value through the cache. Never raises."""
        try:
            probe = {"timestamp": self._cache.now()}
            self._cache.set(_HEALTH_KEY, probe, ttl_seconds=_HEALTH_TTL)
            entry = self._cache.peek(_HEALTH_KEY)
            self._cache.delete(_HEALTH_KEY)
            ok = entry is not None and entry.value == probe
            return {
                "status": (HealthState.HEALTHY if ok else HealthState.UNHEALTHY).value,
                "stats": self.get_stats(),
            }
        except Exception as e:
            logger.error("Cache health check failed: %s", e)
            return {"status": HealthState.UNHEALTHY.value, "error": str(e)}

    # ── Internal helpers ──

    def _bypass(self, request: RequestInfo) -> bool:
        return not self.enabled or self.should_skip(request)

    def _fresh(self, key: str) -> CachedResponse | None:
        entry = self._cache.get_entry(key, max_age=self._settings.revalidate_seconds)
        if entry is None:
            return None
        return CachedResponse(body=entry.value, cached=True, key=key, headers=dict(entry.headers))

    def _store_key(
        self,
        key: str,
        status_code: int,
        body: Any,
        ttl_seconds: float | None,
        tags: Iterable[str],
        headers: Mapping[str, str] | None,
    ) -> bool:
        if not 200 <= status_code < 300:
            logger.debug("Not caching %s: status %d", key, status_code)
            return False
        self._cache.set(
            key,
            body,
            ttl_seconds=ttl_seconds or self._settings.default_ttl_seconds,
            tags=tags,
            headers=_capture_headers(headers),
        )
        return True

    def _with_warm_ttl(self, specs: Iterable[WarmSpec]) -> list[WarmSpec]:
        return [
            spec if spec.ttl_seconds is not None
            else spec.model_copy(update={"ttl_seconds": self._settings.warm_ttl_seconds})
            for spec in specs
        ]


async def _call_fetcher(spec: WarmSpec) -> Any:
    result = spec.fetcher()
    if inspect.isawaitable(result):
        result = await result
    return result


def _unpack(result: HandlerResult) -> tuple[int, Any, dict[str, str]]:
    if len(result) == 3:
        status, body, headers = result  # type: ignore[misc]
        return status, body, dict(headers)
    status, body = result  # type: ignore[misc]
    return status, body, {}


def _capture_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    if not headers:
        return {}
    lowered = {k.lower(): v for k, v in headers.items()}
    return {name: lowered[name] for name in _CAPTURED_HEADERS if lowered.get(name)}
