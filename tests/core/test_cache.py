"""TTL Cache — verifies expiry against an injected clock and LRU bounding."""

import pytest

from entity_service.core.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_returns_value_before_expiry():
    clock = FakeClock()
    cache = TTLCache(max_size=4, ttl_seconds=10, clock=clock)
    cache.set("k", "v")
    clock.now = 9.9
    assert cache.get("k") == "v"


def test_expired_entry_is_dropped():
    clock = FakeClock()
    cache = TTLCache(max_size=4, ttl_seconds=10, clock=clock)
    cache.set("k", "v")
    clock.now = 10
    assert cache.get("k", "missing") == "missing"
    assert len(cache) == 0


def test_least_recently_used_is_evicted():
    cache = TTLCache(max_size=2, ttl_seconds=60)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")
    cache.set("c", 3)
    assert "a" in cache
    assert "b" not in cache
    assert "c" in cache


def test_evict_expired_counts_entries():
    clock = FakeClock()
    cache = TTLCache(max_size=4, ttl_seconds=5, clock=clock)
    cache.set("a", 1)
    clock.now = 3
    cache.set("b", 2)
    clock.now = 6
    assert cache.evict_expired() == 1
    assert "b" in cache


def test_none_is_a_cacheable_value():
    cache = TTLCache()
    cache.set("k", None)
    assert "k" in cache


def test_rejects_non_positive_size():
    with pytest.raises(ValueError):
        TTLCache(max_size=0)
