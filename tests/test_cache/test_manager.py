"""Tests for CacheManager request policy, invalidation and warm-up."""

import asyncio

import pytest

from marketkit.cache.manager import CacheManager
from marketkit.cache.memory import TaggedCache, WarmSpec
from marketkit.config.schema import CacheSettings, InvalidationRule, SkipConditions
from marketkit.types import RequestInfo


def _manager(clock, **settings) -> CacheManager:
    return CacheManager(TaggedCache(clock=clock), settings=CacheSettings(**settings))


def _get(path: str = "/api/products", **kwargs) -> RequestInfo:
    return RequestInfo(method="GET", path=path, **kwargs)


class TestShouldSkip:
    def test_non_get_skipped(self, clock):
        mgr = _manager(clock)
        assert mgr.should_skip(RequestInfo(method="POST", path="/p"))
        assert not mgr.should_skip(_get())

    def test_lowercase_get_allowed(self, clock):
        assert not _manager(clock).should_skip(RequestInfo(method="get", path="/p"))

    def test_query_param(self, clock):
        mgr = _manager(clock, skip=SkipConditions(query_param="nocache"))
        assert mgr.should_skip(_get(query={"nocache": "1"}))
        assert not mgr.should_skip(_get(query={"nocache": ""}))
        assert not mgr.should_skip(_get())

    def test_header_case_insensitive(self, clock):
        mgr = _manager(clock, skip=SkipConditions(header="X-No-Cache"))
        assert mgr.should_skip(_get(headers={"x-no-cache": "true"}))
        assert not mgr.should_skip(_get(headers={"x-other": "true"}))

    def test_user_role(self, clock):
        mgr = _manager(clock, skip=SkipConditions(user_role="admin"))
        assert mgr.should_skip(_get(role="admin"))
        assert not mgr.should_skip(_get(role="buyer"))


class TestStoreAndLookup:
    def test_store_then_lookup(self, clock):
        mgr = _manager(clock)
        req = _get()
        assert mgr.store(req, 200, {"items": []}) is True
        entry = mgr.lookup(req)
        assert entry is not None
        assert entry.value == {"items": []}

    def test_non_2xx_not_stored(self, clock):
        mgr = _manager(clock)
        req = _get()
        assert mgr.store(req, 404, {"error": "nope"}) is False
        assert mgr.store(req, 500, {"error": "boom"}) is False
        assert mgr.store(req, 304, None) is False
        assert len(mgr.cache) == 0

    def test_disabled_manager_bypasses(self, clock):
        mgr = _manager(clock, enabled=False)
        req = _get()
        assert mgr.store(req, 200, "body") is False
        assert mgr.lookup(req) is None

    def test_identity_separates_entries(self, clock):
        mgr = _manager(clock)
        mgr.store(_get(identity="u1"), 200, "mine")
        assert mgr.lookup(_get(identity="u2")) is None
        assert mgr.lookup(_get(identity="u1")).value == "mine"

    def test_identity_excluded_shares_entries(self, clock):
        mgr = _manager(clock, include_identity=False)
        mgr.store(_get(identity="u1"), 200, "shared")
        assert mgr.lookup(_get(identity="u2")).value == "shared"

    def test_revalidation_window(self, clock):
        mgr = _manager(clock, default_ttl_seconds=600, revalidate_seconds=60)
        req = _get()
        mgr.store(req, 200, "body")
        clock.advance(30)
        assert mgr.lookup(req) is not None
        clock.advance(31)
        assert mgr.lookup(req) is None
        assert mgr.cache.stats().misses == 1

    def test_no_revalidation_window(self, clock):
        mgr = _manager(clock, default_ttl_seconds=600, revalidate_seconds=None)
        req = _get()
        mgr.store(req, 200, "body")
        clock.advance(500)
        assert mgr.lookup(req) is not None

    def test_captured_headers(self, clock):
        mgr = _manager(clock)
        req = _get()
        mgr.store(
            req,
            200,
            "body",
            headers={"Content-Type": "application/json", "ETag": "abc", "Set-Cookie": "x"},
        )
        assert mgr.lookup(req).headers == {"content-type": "application/json", "etag": "abc"}

    def test_tags_and_ttl_passed_through(self, clock):
        mgr = _manager(clock)
        req = _get()
        mgr.store(req, 200, "body", ttl_seconds=42, tags=["products"])
        key = mgr.key_for(req)
        assert mgr.cache.peek(key).ttl_seconds == 42
        assert mgr.cache.tag_members("products") == {key}


class TestRespond:
    def test_miss_then_hit(self, clock):
        mgr = _manager(clock)
        calls = []

        def handler():
            calls.append(1)
            return 200, {"items": [1]}

        first = mgr.respond(_get(), handler, tags=["products"])
        second = mgr.respond(_get(), handler)
        assert not first.cached
        assert second.cached
        assert second.status_code == 200
        assert second.body == {"items": [1]}
        assert calls == [1]

    def test_error_response_not_cached(self, clock):
        mgr = _manager(clock)
        calls = []

        def handler():
            calls.append(1)
            return 503, {"error": "busy"}

        assert mgr.respond(_get(), handler).status_code == 503
        assert mgr.respond(_get(), handler).status_code == 503
        assert len(calls) == 2

    def test_handler_headers(self, clock):
        mgr = _manager(clock)
        mgr.respond(_get(), lambda: (200, "x", {"ETag": "v1"}))
        hit = mgr.respond(_get(), lambda: (200, "y"))
        assert hit.headers == {"etag": "v1"}
        assert hit.body == "x"

    def test_skipped_request_always_calls_handler(self, clock):
        mgr = _manager(clock)
        req = RequestInfo(method="POST", path="/api/products")
        result = mgr.respond(req, lambda: (201, "created"))
        assert result.status_code == 201
        assert not result.cached
        assert len(mgr.cache) == 0


class TestRespondAsync:
    async def test_miss_then_hit(self, clock):
        mgr = _manager(clock)

        async def handler():
            return 200, "body"

        assert not (await mgr.respond_async(_get(), handler)).cached
        assert (await mgr.respond_async(_get(), handler)).cached

    async def test_concurrent_misses_share_one_call(self, clock):
        mgr = _manager(clock)
        calls = 0
        release = asyncio.Event()

        async def handler():
            nonlocal calls
            calls += 1
            await release.wait()
            return 200, {"n": calls}

        tasks = [asyncio.create_task(mgr.respond_async(_get(), handler)) for _ in range(5)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks)

        assert calls == 1
        assert all(r.body == {"n": 1} for r in results)
        stats = mgr.get_stats()
        assert stats["deduplicated"] == 4
        assert stats["in_flight"] == 0

    async def test_leader_failure_propagates_to_followers(self, clock):
        mgr = _manager(clock)
        release = asyncio.Event()

        async def handler():
            await release.wait()
            raise RuntimeError("upstream failed")

        tasks = [asyncio.create_task(mgr.respond_async(_get(), handler)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(r, RuntimeError) for r in results)
        assert mgr.get_stats()["in_flight"] == 0
        assert len(mgr.cache) == 0

    async def test_miss_stores_response(self, clock):
        mgr = _manager(clock)

        async def handler():
            return 200, {"items": [1]}, {"ETag": "v1"}

        result = await mgr.respond_async(_get(), handler, tags=["products"])
        assert result.status_code == 200
        assert result.body == {"items": [1]}
        assert result.key == mgr.key_for(_get())
        assert mgr.cache.tag_members("products") == {result.key}
        assert mgr.lookup(_get()).headers == {"etag": "v1"}
        assert mgr.get_stats()["in_flight"] == 0

    async def test_followers_share_error_response(self, clock):
        mgr = _manager(clock)
        calls = 0
        release = asyncio.Event()

        async def handler():
            nonlocal calls
            calls += 1
            await release.wait()
            return 503, {"error": "busy"}

        tasks = [asyncio.create_task(mgr.respond_async(_get(), handler)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks)

        assert calls == 1
        assert [r.status_code for r in results] == [503, 503, 503]
        assert all(r.body == {"error": "busy"} and not r.cached for r in results)
        assert len(mgr.cache) == 0
        assert mgr.get_stats()["in_flight"] == 0

    async def test_failure_does_not_poison_next_call(self, clock):
        mgr = _manager(clock)

        async def failing():
            raise RuntimeError("once")

        async def working():
            return 200, "ok"

        with pytest.raises(RuntimeError):
            await mgr.respond_async(_get(), failing)
        result = await mgr.respond_async(_get(), working)
        assert result.body == "ok"


class TestEvents:
    def test_default_rule_invalidates_tag(self, clock):
        mgr = _manager(clock)
        mgr.store(_get("/api/items"), 200, "list", tags=["products"])
        mgr.store(_get("/api/categories"), 200, "cats", tags=["categories"])
        assert mgr.on_event("product:updated", {"id": 1}) == 1
        assert mgr.lookup(_get("/api/items")) is None
        assert mgr.lookup(_get("/api/categories")) is not None

    def test_default_rule_invalidates_key_pattern(self, clock):
        mgr = _manager(clock)
        mgr.store(_get("/api/products"), 200, "untagged")
        assert mgr.on_event("product:created") == 1
        assert len(mgr.cache) == 0

    def test_unknown_event(self, clock):
        mgr = _manager(clock)
        mgr.store(_get(), 200, "x", tags=["products"])
        assert mgr.on_event("weather:changed") == 0
        assert len(mgr.cache) == 1

    def test_custom_rules(self, clock):
        mgr = CacheManager(
            TaggedCache(clock=clock),
            invalidation=[InvalidationRule(event="promo:ended", tags=["promos"])],
        )
        mgr.store(_get("/api/promos"), 200, "x", tags=["promos"])
        mgr.store(_get("/api/products"), 200, "y", tags=["products"])
        assert mgr.on_event("promo:ended") == 1
        assert mgr.on_event("product:updated") == 0
        assert [r.event for r in mgr.invalidation_rules()] == ["promo:ended"]

    def test_clear(self, clock):
        mgr = _manager(clock)
        mgr.store(_get("/a"), 200, 1)
        mgr.store(_get("/b"), 200, 2)
        assert mgr.clear() == 2


class TestWarm:
    def test_warm_uses_warm_ttl(self, clock):
        mgr = _manager(clock, warm_ttl_seconds=3600)
        spec = mgr.request_warm_spec("/api/products", lambda: ["a"], tags=["products"])
        report = mgr.warm([spec])
        assert report.warmed == [spec.key]
        assert mgr.cache.peek(spec.key).ttl_seconds == 3600
        assert mgr.lookup(_get("/api/products")).value == ["a"]

    def test_explicit_ttl_kept(self, clock):
        mgr = _manager(clock)
        spec = WarmSpec(key="k", fetcher=lambda: 1, ttl_seconds=10)
        mgr.warm([spec])
        assert mgr.cache.peek("k").ttl_seconds == 10

    async def test_warm_async_isolates_failures(self, clock):
        mgr = _manager(clock)

        async def ok():
            return {"ok": True}

        async def broken():
            raise ConnectionError("db unreachable")

        report = await mgr.warm_async(
            [
                WarmSpec(key="a", fetcher=ok),
                WarmSpec(key="b", fetcher=broken),
                WarmSpec(key="c", fetcher=lambda: "sync value"),
            ]
        )
        assert sorted(report.warmed) == ["a", "c"]
        assert report.failed == {"b": "db unreachable"}
        assert mgr.cache.get("c") == "sync value"

    async def test_warm_async_skips_present(self, clock):
        mgr = _manager(clock)
        mgr.cache.set("a", "existing")
        report = await mgr.warm_async([WarmSpec(key="a", fetcher=lambda: "new")])
        assert report.skipped == ["a"]
        assert mgr.cache.get("a") == "existing"


class TestIntrospection:
    def test_stats(self, clock):
        mgr = _manager(clock)
        req = _get()
        mgr.store(req, 200, "x")
        mgr.lookup(req)
        stats = mgr.get_stats()
        assert stats["hits"] == 1
        assert stats["keys"] == 1
        assert stats["enabled"] is True

    def test_health_healthy(self, clock):
        mgr = _manager(clock)
        mgr.store(_get(), 200, "x")
        health = mgr.get_health_status()
        assert health["status"] == "healthy"
        # Probe entry removed afterwards
        assert mgr.cache.keys() == [mgr.key_for(_get())]

    def test_health_unhealthy_on_error(self, clock):
        class BrokenCache(TaggedCache):
            def set(self, *args, **kwargs):
                raise RuntimeError("store offline")

        mgr = CacheManager(BrokenCache(clock=clock))
        health = mgr.get_health_status()
        assert health == {"status": "unhealthy", "error": "store offline"}
