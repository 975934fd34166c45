"""
Tests for the technical analyzer, pattern detector and level finder.
"""

import math
from datetime import datetime, timedelta

import pandas as pd
import pytest

from analysis.levels import LevelFinder
from analysis.patterns import PatternDetector, find_local_extremes
from analysis.technical import TechnicalAnalyzer
from core.errors import AnalysisErrorType, InsufficientDataError
from core.models import (
    Bar, LevelType, PatternType, SignalAction, SupportResistanceLevel, TrendDirection, bars_to_frame,
)
from tests.conftest import make_bars


@pytest.fixture
def analyzer():
    return TechnicalAnalyzer()


class TestTechnicalAnalyzer:

    def test_rejects_short_series(self, analyzer, short_bars):
        with pytest.raises(InsufficientDataError) as exc_info:
            analyzer.analyze("AAPL", "1D", short_bars)
        assert exc_info.value.error_type == AnalysisErrorType.DATA_UNAVAILABLE
        assert exc_info.value.recoverable is True

    def test_uptrend(self, analyzer, uptrend_bars):
        result = analyzer.analyze("AAPL", "1D", uptrend_bars)

        assert result.trend.direction == TrendDirection.UPTREND
        assert result.trend.strength == 1.0
        assert result.trend.duration == 20
        # linear 0.3 per bar minus the zig-zag's contribution over 20 points
        assert result.trend.slope == pytest.approx(0.3 - 20 / 665)
        assert 45 <= result.momentum.rsi <= 55
        assert result.momentum.macd.histogram == pytest.approx(0.1 * result.momentum.macd.macd)
        assert 0 <= result.volatility.volatility_rank <= 1

    def test_downtrend(self, analyzer, downtrend_bars):
        result = analyzer.analyze("AAPL", "1D", downtrend_bars)
        assert result.trend.direction == TrendDirection.DOWNTREND
        assert result.momentum.macd.macd < 0

    def test_flat_series_is_sideways(self, analyzer, flat_bars):
        result = analyzer.analyze("AAPL", "1D", flat_bars)
        assert result.trend.direction == TrendDirection.SIDEWAYS
        assert result.trend.strength == 0.0
        assert not any(p.type in (PatternType.CHANNEL_UP, PatternType.CHANNEL_DOWN) for p in result.patterns)

    def test_uptrend_patterns_and_levels(self, analyzer, uptrend_bars):
        result = analyzer.analyze("AAPL", "1D", uptrend_bars)
        # steadily rising highs and lows leave no pivots and no reversal patterns
        assert [p.type for p in result.patterns] == [PatternType.CHANNEL_UP]
        assert result.support_resistance == []

    def test_is_deterministic(self, analyzer, uptrend_bars):
        assert analyzer.analyze("AAPL", "1D", uptrend_bars) == analyzer.analyze("AAPL", "1D", uptrend_bars)

    def test_generate_signals(self, analyzer, uptrend_bars):
        result = analyzer.analyze("AAPL", "1D", uptrend_bars)
        price = uptrend_bars[-1].close
        signals = analyzer.generate_signals(result, price)

        assert len(signals) == 2
        trend_signal = signals[0]
        assert trend_signal.action == SignalAction.BUY
        assert trend_signal.stop_loss < price
        assert all(t.level > price for t in trend_signal.price_targets)
        assert signals[1].action == SignalAction.BUY


class TestPatternDetector:

    @staticmethod
    def _bars_with_highs(highs):
        start = datetime(2024, 1, 1)
        return [
            Bar(open=100.0, high=h, low=99.0, close=100.0, volume=1000.0, timestamp=start + timedelta(days=i))
            for i, h in enumerate(highs)
        ]

    def test_double_top(self):
        highs = [101.0] * 25
        highs[10] = 110.0
        highs[20] = 109.5
        df = bars_to_frame(self._bars_with_highs(highs))

        pattern = PatternDetector().detect_double_top(df)

        assert pattern is not None
        assert pattern.type == PatternType.DOUBLE_TOP
        assert pattern.confidence == 0.7
        assert pattern.coordinates[0].x == 10
        assert pattern.coordinates[-1].x == 20
        assert pattern.coordinates[0].y == 110.0
        assert pattern.coordinates[-1].y == 109.5

    def test_double_top_needs_separated_peaks(self):
        highs = [101.0] * 25
        highs[20] = 110.0
        highs[22] = 109.5
        df = bars_to_frame(self._bars_with_highs(highs))
        assert PatternDetector().detect_double_top(df) is None

    def test_no_double_top_on_oscillating_uptrend(self, uptrend_bars):
        assert PatternDetector().detect_double_top(bars_to_frame(uptrend_bars)) is None

    def test_local_extremes(self):
        df = bars_to_frame(make_bars([1, 2, 3, 9, 3, 2, 1, 2, 3, 2, 1]))
        assert 3 in find_local_extremes(df['close'], window=2, find_highs=True)

    def test_tied_extremes_collapse_to_first_bar(self):
        values = pd.Series([1.0, 2.0, 5.0, 5.0, 5.0, 2.0, 1.0, 0.0, 0.0, 1.0, 2.0])
        assert find_local_extremes(values, window=2, find_highs=True) == [2]
        assert find_local_extremes(values, window=2, find_highs=False) == [7]

    @staticmethod
    def _head_and_shoulders_closes():
        left = [100, 102, 104, 106, 108, 110, 108, 106, 104]
        head = [106, 108, 110, 112, 114, 116, 118, 120, 118, 116, 114, 112, 110, 108, 106, 104]
        right = [106, 108, 110, 108, 106, 104, 102, 100]
        return left + head + right

    def test_head_and_shoulders_with_tied_wicks(self):
        # each peak bar and the bar after it share the same high
        df = bars_to_frame(make_bars(self._head_and_shoulders_closes()))

        pattern = PatternDetector().detect_head_and_shoulders(df)

        assert pattern is not None
        assert pattern.type == PatternType.HEAD_AND_SHOULDERS
        assert [c.x for c in pattern.coordinates] == [5, 16, 27]
        assert [c.y for c in pattern.coordinates] == [110.5, 120.5, 110.5]
        assert pattern.price_targets[0].level == pytest.approx(86.5)

    def test_inverse_head_and_shoulders(self):
        closes = [220 - c for c in self._head_and_shoulders_closes()]
        df = bars_to_frame(make_bars(closes))

        pattern = PatternDetector().detect_head_and_shoulders(df)

        assert pattern is not None
        assert pattern.type == PatternType.INVERSE_HEAD_AND_SHOULDERS
        assert [c.y for c in pattern.coordinates] == [109.5, 99.5, 109.5]
        assert pattern.price_targets[0].level == pytest.approx(133.5)

    def test_ascending_triangle(self):
        start = datetime(2024, 1, 1)
        bars = []
        for i in range(40):
            phase = i % 8
            high = 112 - 0.5 * abs(phase - 4)
            low = 100 + 0.2 * i + min(phase, 8 - phase)
            mid = (high + low) / 2
            bars.append(Bar(open=mid, high=high, low=low, close=mid, volume=1000.0,
                            timestamp=start + timedelta(days=i)))

        pattern = PatternDetector().detect_triangle(bars_to_frame(bars))

        assert pattern is not None
        assert pattern.type == PatternType.ASCENDING_TRIANGLE
        assert pattern.confidence == 0.7
        assert [c.x for c in pattern.coordinates] == [4, 8, 36, 32]
        assert pattern.coordinates[0].y == 112.0


class TestLevelFinder:

    @pytest.fixture
    def wave_frame(self):
        closes = [100 + 5 * math.sin(2 * math.pi * i / 20) for i in range(60)]
        return bars_to_frame(make_bars(closes, spread=0.5))

    def test_finds_both_sides(self, wave_frame):
        levels = LevelFinder().find_levels(wave_frame)

        assert 0 < len(levels) <= 5
        assert {lvl.type for lvl in levels} == {LevelType.SUPPORT, LevelType.RESISTANCE}
        for lvl in levels:
            assert 0 <= lvl.strength <= 1
            assert 0 <= lvl.confidence <= 1
            assert lvl.touches >= 1

    def test_sorted_by_strength(self, wave_frame):
        strengths = [lvl.strength for lvl in LevelFinder().find_levels(wave_frame)]
        assert strengths == sorted(strengths, reverse=True)

    def test_too_few_bars(self, short_bars):
        assert LevelFinder().find_levels(bars_to_frame(short_bars[:8])) == []

    def test_repeated_pivots_merge_into_one_level(self):
        df = bars_to_frame(make_bars([100, 102, 104, 106, 104, 102] * 10 + [100]))

        levels = LevelFinder().find_levels(df)

        assert {(lvl.type, lvl.level) for lvl in levels} == {
            (LevelType.RESISTANCE, 106.5),
            (LevelType.SUPPORT, 99.5),
        }

    def test_merge_keeps_strongest_of_same_type(self):
        finder = LevelFinder()
        strong = SupportResistanceLevel(100.0, LevelType.SUPPORT, 0.9, 4, 0.0, 0.8)
        weak = SupportResistanceLevel(100.5, LevelType.SUPPORT, 0.4, 2, 0.0, 0.5)
        resistance = SupportResistanceLevel(100.4, LevelType.RESISTANCE, 0.6, 2, 0.0, 0.6)
        distant = SupportResistanceLevel(95.0, LevelType.SUPPORT, 0.3, 1, 0.0, 0.4)

        assert finder.merge_nearby([strong, weak, resistance, distant]) == [strong, resistance, distant]
