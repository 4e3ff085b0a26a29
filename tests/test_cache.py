from __future__ import annotations

from equipsearch.query.cache import SearchCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = SearchCache(max_size=10, ttl_s=60, timer=clock)
    cache.set("mop", "r1")
    clock.now = 59.0
    assert cache.get("mop") == "r1"
    clock.now = 61.0
    assert cache.get("mop") is None


def test_least_recently_used_entry_is_evicted():
    cache = SearchCache(max_size=2, ttl_s=60)
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.get("a") == 1
    cache.set("c", 3)
    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3
    assert len(cache) == 2


def test_keys_are_normalized():
    cache = SearchCache()
    cache.set("  Mop  Giratório ", "r")
    assert cache.get("mop giratorio") == "r"
    assert SearchCache.key("MOP!") == "mop"


def test_stats_and_clear():
    cache = SearchCache(max_size=5, ttl_s=10)
    cache.set("mop", "r")
    cache.get("mop")
    cache.get("vassoura")
    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["size"] == 1
    cache.clear()
    assert len(cache) == 0
    assert cache.stats()["hits"] == 0
