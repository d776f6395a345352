"""Unit tests for the TTL cache."""

from __future__ import annotations

from core.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    def test_hit_before_expiry(self):
        clock = FakeClock()
        cache = TTLCache(10, clock=clock)
        cache.set("k", "v")

        clock.now = 9.9
        assert cache.get("k") == "v"

    def test_miss_after_expiry(self):
        clock = FakeClock()
        cache = TTLCache(10, clock=clock)
        cache.set("k", "v")

        clock.now = 10.0
        assert cache.get("k") is None
        assert cache.stats().entries == 0

    def test_disabled_cache(self):
        cache = TTLCache(0)
        cache.set("k", "v")
        assert not cache.enabled
        assert cache.get("k") is None

    def test_tuple_keys(self):
        cache = TTLCache(60)
        cache.set(("query", None, "model"), [1.0])
        assert cache.get(("query", None, "model")) == [1.0]
        assert cache.get(("query", "openai", "model")) is None

    def test_invalidate_and_clear(self):
        cache = TTLCache(60)
        cache.set("a", 1)
        cache.set("b", 2)

        assert cache.invalidate("a") is True
        assert cache.invalidate("a") is False
        assert cache.clear() == 1
        assert cache.get("b") is None

    def test_stats(self):
        cache = TTLCache(60)
        cache.set("a", 1)
        cache.get("a")
        cache.get("missing")

        stats = cache.stats()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.entries == 1
        assert stats.hit_rate == 0.5

    def test_empty_hit_rate(self):
        assert TTLCache(60).stats().hit_rate == 0.0
