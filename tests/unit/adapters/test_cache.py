"""Tests for the in-process insight response cache."""

from __future__ import annotations

import threading

from insight_engine.adapters.outbound.cache import ResponseCache, make_cache_key
from insight_engine.domain.entities import HealthInsight, InsightRequest, PersonaProfile
from insight_engine.domain.enums import InsightCategory, InsightType


def _insight(message: str = "ok") -> HealthInsight:
    return HealthInsight(category=InsightCategory.SLEEP, type=InsightType.INFO, message=message)


class TestCacheKey:
    def test_metric_order_is_irrelevant(self) -> None:
        a = InsightRequest(category=InsightCategory.SLEEP, metrics={"hours": 7, "quality": 80})
        b = InsightRequest(category=InsightCategory.SLEEP, metrics={"quality": 80, "hours": 7})
        assert make_cache_key(a) == make_cache_key(b)

    def test_category_and_values_change_key(self) -> None:
        base = InsightRequest(category=InsightCategory.SLEEP, metrics={"hours": 7})
        other_value = InsightRequest(category=InsightCategory.SLEEP, metrics={"hours": 8})
        other_cat = InsightRequest(category=InsightCategory.MENTAL, metrics={"hours": 7})
        assert make_cache_key(base) != make_cache_key(other_value)
        assert make_cache_key(base) != make_cache_key(other_cat)
        assert make_cache_key(base).startswith("insight:SLEEP:")

    def test_persona_changes_key(self) -> None:
        plain = InsightRequest(category=InsightCategory.SLEEP, metrics={"hours": 7})
        p1 = InsightRequest(
            category=InsightCategory.SLEEP, metrics={"hours": 7}, persona=PersonaProfile(id="a")
        )
        p2 = InsightRequest(
            category=InsightCategory.SLEEP, metrics={"hours": 7}, persona=PersonaProfile(id="b")
        )
        assert len({make_cache_key(plain), make_cache_key(p1), make_cache_key(p2)}) == 3


class TestResponseCache:
    def test_miss_then_hit(self) -> None:
        cache = ResponseCache()
        assert cache.get("k") is None
        value = _insight()
        cache.put("k", value)
        assert cache.get("k") is value

        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.size) == (1, 1, 1)
        assert stats.hit_rate == 0.5

    def test_hit_rate_without_lookups(self) -> None:
        assert ResponseCache().stats().hit_rate == 0.0

    def test_expired_entry_is_a_miss_and_removed(self) -> None:
        cache = ResponseCache(ttl_seconds=0)
        cache.put("k", _insight())
        assert cache.get("k") is None

        stats = cache.stats()
        assert stats.misses == 1
        assert stats.hits == 0
        assert stats.expirations == 1
        assert stats.size == 0

    def test_fifo_eviction(self) -> None:
        cache = ResponseCache(max_entries=2)
        cache.put("a", _insight("a"))
        cache.put("b", _insight("b"))
        cache.put("c", _insight("c"))

        assert len(cache) == 2
        assert cache.get("a") is None
        assert cache.get("b") is not None
        assert cache.get("c") is not None
        assert cache.stats().evictions == 1

    def test_last_writer_wins(self) -> None:
        cache = ResponseCache()
        cache.put("k", _insight("first"))
        cache.put("k", _insight("second"))
        entry = cache.get("k")
        assert entry is not None
        assert entry.message == "second"
        assert len(cache) == 1

    def test_clear_keeps_counters(self) -> None:
        cache = ResponseCache()
        cache.put("k", _insight())
        cache.get("k")
        cache.clear()
        assert len(cache) == 0
        assert cache.stats().hits == 1

    def test_concurrent_writes_respect_capacity(self) -> None:
        cache = ResponseCache(max_entries=50)

        def _work(offset: int) -> None:
            for i in range(200):
                cache.put(f"{offset}-{i}", _insight())

        threads = [threading.Thread(target=_work, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(cache) == 50
        assert cache.stats().evictions == 750
