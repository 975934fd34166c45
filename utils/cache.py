"""
TTL cache for analysis results, price bars and search results.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

from config.config import CacheConfig
from core.models import Bar
from utils.performance_monitor import PerformanceMonitor

ANALYSIS_STORE = 'analysis'
PRICE_STORE = 'price_data'
SEARCH_STORE = 'search'


@dataclass
class CacheEntry:
    value: Any
    created_at: datetime
    ttl: float

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(seconds=self.ttl)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def age(self, now: datetime) -> float:
        return (now - self.created_at).total_seconds()


def make_analysis_key(symbol: str, timeframe: str, params: Optional[Dict] = None) -> Tuple:
    """Hashable key; parameter order does not matter"""
    params_key = tuple(sorted((params or {}).items()))
    return symbol.upper(), timeframe, params_key


class AnalysisCache:
    """Three independent TTL stores guarded by one re-entrant lock"""

    def __init__(self, config: Optional[CacheConfig] = None,
                 monitor: Optional[PerformanceMonitor] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.config = config or CacheConfig()
        self.monitor = monitor or PerformanceMonitor()
        self.clock = clock
        self.logger = logging.getLogger(__name__)

        self._stores: Dict[str, 'OrderedDict[Hashable, CacheEntry]'] = {
            ANALYSIS_STORE: OrderedDict(),
            PRICE_STORE: OrderedDict(),
            SEARCH_STORE: OrderedDict(),
        }
        self._lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        self._destroyed = False

        if self.config.cleanup_interval > 0:
            self._schedule_cleanup()

    # ===========================
    # SESSION-AWARE TTL
    # ===========================

    def is_market_hours(self, now: Optional[datetime] = None) -> bool:
        now = now or self.clock()
        return (now.weekday() < 5
                and self.config.market_open_hour <= now.hour <= self.config.market_close_hour)

    def default_ttl(self) -> float:
        if self.is_market_hours():
            return self.config.market_hours_ttl
        return self.config.after_hours_ttl

    # ===========================
    # GENERIC STORE ACCESS
    # ===========================

    def _get(self, store: str, key: Hashable) -> Optional[Any]:
        with self._lock:
            entries = self._stores[store]
            entry = entries.get(key)

            if entry is not None and entry.is_expired(self.clock()):
                del entries[key]
                entry = None

            if entry is None:
                self.monitor.increment(f"{store}.miss")
                return None

            self.monitor.increment(f"{store}.hit")
            return entry.value

    def _set(self, store: str, key: Hashable, value: Any, ttl: Optional[float]):
        with self._lock:
            entries = self._stores[store]
            entries.pop(key, None)
            entries[key] = CacheEntry(
                value=value,
                created_at=self.clock(),
                ttl=ttl if ttl is not None else self.default_ttl(),
            )
            self._sweep_store(store)

    def _sweep_store(self, store: str) -> int:
        """Drop expired entries, then the oldest ones above max_size"""
        entries = self._stores[store]
        now = self.clock()
        removed = 0

        for key in [k for k, e in entries.items() if e.is_expired(now)]:
            del entries[key]
            removed += 1

        while len(entries) > self.config.max_size:
            entries.popitem(last=False)
            removed += 1

        return removed

    # ===========================
    # PUBLIC API
    # ===========================

    def get_analysis(self, symbol: str, timeframe: str, params: Optional[Dict] = None) -> Optional[Any]:
        return self._get(ANALYSIS_STORE, make_analysis_key(symbol, timeframe, params))

    def set_analysis(self, symbol: str, timeframe: str, result: Any,
                     params: Optional[Dict] = None, ttl: Optional[float] = None):
        self._set(ANALYSIS_STORE, make_analysis_key(symbol, timeframe, params), result, ttl)

    def get_price_data(self, symbol: str, timeframe: str) -> Optional[List[Bar]]:
        return self._get(PRICE_STORE, (symbol.upper(), timeframe))

    def set_price_data(self, symbol: str, timeframe: str, bars: List[Bar], ttl: Optional[float] = None):
        if ttl is None:
            ttl = self.config.price_data_ttl
        self._set(PRICE_STORE, (symbol.upper(), timeframe), list(bars), ttl)

    def get_search_results(self, query: str) -> Optional[Any]:
        return self._get(SEARCH_STORE, query.strip().lower())

    def set_search_results(self, query: str, results: Any, ttl: Optional[float] = None):
        if ttl is None:
            ttl = self.config.search_ttl
        self._set(SEARCH_STORE, query.strip().lower(), results, ttl)

    def invalidate_symbol(self, symbol: str) -> int:
        """Remove every analysis and price entry for a symbol, across timeframes and parameters"""
        symbol = symbol.upper()
        removed = 0
        with self._lock:
            for store in (ANALYSIS_STORE, PRICE_STORE):
                entries = self._stores[store]
                for key in [k for k in entries if k[0] == symbol]:
                    del entries[key]
                    removed += 1

        self.logger.debug(f"🗑️ Invalidated {removed} cache entries for {symbol}")
        return removed

    def invalidate_by_market_conditions(self) -> int:
        """Regime change: drop all analysis results and anything older than the market-hours TTL"""
        removed = 0
        with self._lock:
            now = self.clock()
            removed += len(self._stores[ANALYSIS_STORE])
            self._stores[ANALYSIS_STORE].clear()

            for store in (PRICE_STORE, SEARCH_STORE):
                entries = self._stores[store]
                stale = [k for k, e in entries.items() if e.age(now) > self.config.market_hours_ttl]
                for key in stale:
                    del entries[key]
                removed += len(stale)

        self.logger.info(f"🔄 Market conditions changed, invalidated {removed} cache entries")
        return removed

    def cleanup(self) -> int:
        with self._lock:
            removed = sum(self._sweep_store(store) for store in self._stores)
        if removed:
            self.logger.debug(f"🧹 Cache cleanup removed {removed} entries")
        return removed

    def clear_all(self):
        with self._lock:
            for entries in self._stores.values():
                entries.clear()

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            stats: Dict[str, Any] = {
                'max_size': self.config.max_size,
                'market_hours_ttl': self.config.market_hours_ttl,
                'after_hours_ttl': self.config.after_hours_ttl,
                'market_hours': self.is_market_hours(),
            }
            total_hits = 0
            total_misses = 0
            for store, entries in self._stores.items():
                hits = self.monitor.get_counter(f"{store}.hit")
                misses = self.monitor.get_counter(f"{store}.miss")
                total_hits += hits
                total_misses += misses
                stats[f"{store}_entries"] = len(entries)
                stats[f"{store}_hits"] = hits
                stats[f"{store}_misses"] = misses

        lookups = total_hits + total_misses
        stats['hits'] = total_hits
        stats['misses'] = total_misses
        stats['hit_rate'] = total_hits / lookups if lookups else 0.0
        stats['performance'] = self.monitor.get_metrics()
        return stats

    # ===========================
    # BACKGROUND SWEEP
    # ===========================

    def _schedule_cleanup(self):
        self._timer = threading.Timer(self.config.cleanup_interval, self._run_scheduled_cleanup)
        self._timer.daemon = True
        self._timer.start()

    def _run_scheduled_cleanup(self):
        with self._lock:
            if self._destroyed:
                return
        try:
            self.cleanup()
        except Exception as e:
            self.logger.error(f"❌ Scheduled cache cleanup failed: {e}")
        with self._lock:
            if not self._destroyed:
                self._schedule_cleanup()

    def destroy(self):
        """Stop the background sweep and release every store"""
        with self._lock:
            self._destroyed = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self.clear_all()
        self.logger.debug("Cache destroyed")
