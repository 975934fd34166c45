"""
Lightweight timing and counter collection for the analysis pipeline.
"""

import threading
import time
from collections import defaultdict
from typing import Callable, Dict, List, Optional


class PerformanceMonitor:
    """Collects per-operation durations (milliseconds) and named counters"""

    def __init__(self):
        self._durations: Dict[str, List[float]] = defaultdict(list)
        self._counters: Dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    def start_timer(self, operation: str) -> Callable[[], float]:
        """Start timing an operation; call the returned function to stop and record it"""
        started = time.perf_counter()

        def stop() -> float:
            duration_ms = (time.perf_counter() - started) * 1000.0
            self.record(operation, duration_ms)
            return duration_ms

        return stop

    def record(self, operation: str, duration_ms: float):
        with self._lock:
            self._durations[operation].append(duration_ms)

    def increment(self, counter: str, amount: int = 1):
        with self._lock:
            self._counters[counter] += amount

    def get_counter(self, counter: str) -> int:
        with self._lock:
            return self._counters.get(counter, 0)

    def get_metrics(self, operation: Optional[str] = None) -> Dict:
        """Summary per operation, or for a single operation when one is named"""
        with self._lock:
            if operation is not None:
                return self._summarize(self._durations.get(operation, []))
            return {
                name: self._summarize(durations)
                for name, durations in self._durations.items()
                if durations
            }

    @staticmethod
    def _summarize(durations: List[float]) -> Dict:
        if not durations:
            return {'count': 0, 'average': 0.0, 'min': 0.0, 'max': 0.0, 'total': 0.0}
        total = sum(durations)
        return {
            'count': len(durations),
            'average': total / len(durations),
            'min': min(durations),
            'max': max(durations),
            'total': total,
        }

    def get_counters(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def reset(self):
        with self._lock:
            self._durations.clear()
            self._counters.clear()
