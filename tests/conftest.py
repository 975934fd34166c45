"""
Shared fixtures: deterministic synthetic bar series.
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import List

import pytest

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.models import Bar  # noqa: E402


def make_bars(closes, spread: float = 0.5, volume: float = 1_000_000.0,
              start: datetime = datetime(2024, 1, 1), step: timedelta = timedelta(days=1)) -> List[Bar]:
    """Bars whose open is the previous close and whose range pads the body by `spread`"""
    bars = []
    previous = closes[0]
    for i, close in enumerate(closes):
        open_ = previous
        bars.append(Bar(
            open=float(open_),
            high=float(max(open_, close) + spread),
            low=float(min(open_, close) - spread),
            close=float(close),
            volume=float(volume),
            timestamp=start + step * i,
        ))
        previous = close
    return bars


def oscillating_uptrend_closes(count: int = 100) -> List[float]:
    """Rising 0.3 per bar with a +/-2 zig-zag; RSI stays in the low 50s"""
    return [100 + 0.3 * i + 2 * (-1) ** i for i in range(count)]


@pytest.fixture
def uptrend_bars() -> List[Bar]:
    return make_bars(oscillating_uptrend_closes(100))


@pytest.fixture
def downtrend_bars() -> List[Bar]:
    return make_bars([200 - 0.3 * i - 2 * (-1) ** i for i in range(100)])


@pytest.fixture
def flat_bars() -> List[Bar]:
    return make_bars([100.0] * 60)


@pytest.fixture
def short_bars() -> List[Bar]:
    return make_bars([100 + i for i in range(10)])


class FakeClock:
    """Manually advanced clock for TTL tests"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def weekend_clock() -> FakeClock:
    # Saturday, so the after-hours TTL applies
    return FakeClock(datetime(2024, 1, 6, 12, 0))


@pytest.fixture
def market_clock() -> FakeClock:
    # Wednesday 10:00
    return FakeClock(datetime(2024, 1, 3, 10, 0))
