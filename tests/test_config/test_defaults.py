"""Tests for package defaults."""

from marketkit.config import defaults
from marketkit.config.defaults import get_defaults


class TestDefaults:
    def test_cache_defaults(self):
        d = get_defaults()
        assert d["cache_ttl_seconds"] == 300.0
        assert d["check_period_seconds"] == 60.0
        assert d["revalidate_seconds"] == 300.0
        assert d["warm_ttl_seconds"] == 3600.0
        assert d["include_identity"] is True

    def test_analytics_defaults(self):
        d = get_defaults()
        assert d["title_max_chars"] == 50
        assert d["max_messages_for_score"] == 50
        assert d["history_limit"] == 50

    def test_returns_fresh_dict(self):
        d = get_defaults()
        d["cache_ttl_seconds"] = 1
        assert get_defaults()["cache_ttl_seconds"] == defaults.DEFAULT_CACHE_TTL_SECONDS
