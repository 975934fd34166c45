"""
Tests for the TTL analysis cache.
"""

import pytest

from config.config import CacheConfig
from utils.cache import AnalysisCache, CacheEntry, make_analysis_key
from utils.performance_monitor import PerformanceMonitor


@pytest.fixture
def cache(weekend_clock):
    cache = AnalysisCache(clock=weekend_clock)
    yield cache
    cache.destroy()


class TestTTL:

    def test_set_then_get_returns_same_object(self, cache):
        result = {"action": "BUY"}
        cache.set_analysis("AAPL", "1D", result)
        assert cache.get_analysis("AAPL", "1D") is result

    def test_after_hours_entry_expires(self, cache, weekend_clock):
        cache.set_analysis("AAPL", "1D", "result")

        weekend_clock.advance(599)
        assert cache.get_analysis("AAPL", "1D") == "result"

        weekend_clock.advance(2)
        assert cache.get_analysis("AAPL", "1D") is None

    def test_market_hours_ttl(self, market_clock):
        cache = AnalysisCache(clock=market_clock)
        assert cache.is_market_hours()
        assert cache.default_ttl() == 120

        cache.set_analysis("AAPL", "1D", "result")
        market_clock.advance(121)
        assert cache.get_analysis("AAPL", "1D") is None

    def test_weekend_is_not_market_hours(self, cache):
        assert not cache.is_market_hours()
        assert cache.default_ttl() == 600

    def test_explicit_ttl_wins(self, cache, weekend_clock):
        cache.set_analysis("AAPL", "1D", "result", ttl=5)
        weekend_clock.advance(5)
        assert cache.get_analysis("AAPL", "1D") is None

    def test_entry_expiry_boundary(self, weekend_clock):
        entry = CacheEntry("v", weekend_clock(), 10)
        assert not entry.is_expired(weekend_clock())
        weekend_clock.advance(10)
        assert entry.is_expired(weekend_clock())
        assert entry.age(weekend_clock()) == 10


class TestKeys:

    def test_params_order_does_not_matter(self, cache):
        cache.set_analysis("AAPL", "1D", "result", params={"a": 1, "b": 2})
        assert cache.get_analysis("AAPL", "1D", params={"b": 2, "a": 1}) == "result"
        assert make_analysis_key("aapl", "1D", {"b": 2, "a": 1}) == ("AAPL", "1D", (("a", 1), ("b", 2)))

    def test_different_params_are_different_entries(self, cache):
        cache.set_analysis("AAPL", "1D", "one", params={"period": 14})
        assert cache.get_analysis("AAPL", "1D", params={"period": 21}) is None

    def test_search_query_normalized(self, cache):
        cache.set_search_results("  Apple ", ["AAPL"])
        assert cache.get_search_results("apple") == ["AAPL"]


class TestInvalidation:

    def test_invalidate_symbol_keeps_others(self, cache):
        cache.set_analysis("AAPL", "1D", "a")
        cache.set_analysis("AAPL", "1H", "b", params={"x": 1})
        cache.set_price_data("AAPL", "1D", [])
        cache.set_analysis("MSFT", "1D", "m")

        assert cache.invalidate_symbol("aapl") == 3
        assert cache.get_analysis("AAPL", "1D") is None
        assert cache.get_price_data("AAPL", "1D") is None
        assert cache.get_analysis("MSFT", "1D") == "m"

    def test_invalidate_symbol_is_exact(self, cache):
        cache.set_analysis("AAPL", "1D", "a")
        cache.set_analysis("AAPLX", "1D", "b")
        assert cache.invalidate_symbol("AAPL") == 1
        assert cache.get_analysis("AAPLX", "1D") == "b"

    def test_invalidate_by_market_conditions(self, cache, weekend_clock):
        cache.set_price_data("AAPL", "1D", [], ttl=10_000)
        cache.set_search_results("apple", ["AAPL"], ttl=10_000)
        weekend_clock.advance(200)
        cache.set_price_data("MSFT", "1D", [], ttl=10_000)
        cache.set_analysis("AAPL", "1D", "a")

        removed = cache.invalidate_by_market_conditions()

        assert removed == 3
        assert cache.get_analysis("AAPL", "1D") is None
        assert cache.get_price_data("AAPL", "1D") is None
        assert cache.get_price_data("MSFT", "1D") == []

    def test_cleanup_counts_expired(self, cache, weekend_clock):
        cache.set_analysis("AAPL", "1D", "a", ttl=10)
        cache.set_analysis("MSFT", "1D", "m", ttl=100)
        cache.set_search_results("apple", ["AAPL"], ttl=10)
        weekend_clock.advance(50)

        assert cache.cleanup() == 2
        assert cache.get_analysis("MSFT", "1D") == "m"

    def test_oldest_evicted_over_max_size(self, weekend_clock):
        cache = AnalysisCache(CacheConfig(max_size=2), clock=weekend_clock)
        for symbol in ("AAA", "BBB", "CCC"):
            cache.set_analysis(symbol, "1D", symbol)

        assert cache.get_analysis("AAA", "1D") is None
        assert cache.get_analysis("BBB", "1D") == "BBB"
        assert cache.get_analysis("CCC", "1D") == "CCC"


class TestStatistics:

    def test_hit_rate(self, cache):
        cache.set_analysis("AAPL", "1D", "a")
        cache.get_analysis("AAPL", "1D")
        cache.get_analysis("AAPL", "1D")
        cache.get_analysis("MSFT", "1D")
        cache.get_price_data("AAPL", "1D")

        stats = cache.get_statistics()

        assert stats['hits'] == 2
        assert stats['misses'] == 2
        assert stats['hit_rate'] == 0.5
        assert stats['analysis_entries'] == 1
        assert stats['price_data_misses'] == 1
        assert stats['market_hours'] is False

    def test_empty_hit_rate(self, cache):
        assert cache.get_statistics()['hit_rate'] == 0.0

    def test_shared_monitor(self, weekend_clock):
        monitor = PerformanceMonitor()
        cache = AnalysisCache(monitor=monitor, clock=weekend_clock)
        cache.get_analysis("AAPL", "1D")
        assert monitor.get_counter("analysis.miss") == 1

    def test_destroy_clears_everything(self, weekend_clock):
        cache = AnalysisCache(CacheConfig(cleanup_interval=60), clock=weekend_clock)
        cache.set_analysis("AAPL", "1D", "a")
        cache.set_search_results("apple", [])

        cache.destroy()

        stats = cache.get_statistics()
        assert stats['analysis_entries'] == 0
        assert stats['search_entries'] == 0
        assert cache._timer is None
