"""
Tests for the price target calculator.
"""

import pytest

from analysis.price_targets import PriceTargetCalculator
from core.models import (
    ChartCoordinate, LevelType, MarketDirection, PatternResult, PatternType, PriceTarget,
    SupportResistanceLevel, TargetType,
)


@pytest.fixture
def calculator():
    return PriceTargetCalculator()


class TestFibonacci:

    def test_retracements(self, calculator):
        targets = calculator.calculate_fibonacci_retracements(120, 80, 100)

        assert targets
        golden = [t for t in targets if "61.8%" in t.reasoning]
        assert len(golden) == 1
        assert golden[0].level == pytest.approx(95.28)
        assert golden[0].confidence > 0.6
        for target in targets:
            assert "Fibonacci" in target.reasoning
            assert 0 < target.confidence <= 0.9
            # levels hugging the current price are dropped
            assert abs(target.level - 100) / 100 > 0.01

    def test_retracement_below_price_is_stop(self, calculator):
        targets = calculator.calculate_fibonacci_retracements(120, 80, 100)
        for target in targets:
            expected = TargetType.STOP_LOSS if target.level < 100 else TargetType.TARGET
            assert target.type == expected

    def test_invalid_swing(self, calculator):
        assert calculator.calculate_fibonacci_retracements(80, 120, 100) == []

    def test_bullish_extensions_above_price(self, calculator):
        targets = calculator.calculate_fibonacci_extensions(120, 80, 100, MarketDirection.BULLISH)
        assert targets
        assert all(t.level > 100 for t in targets)
        assert all("upside" in t.reasoning for t in targets)

    def test_bearish_extensions_below_price(self, calculator):
        targets = calculator.calculate_fibonacci_extensions(120, 80, 100, MarketDirection.BEARISH)
        assert targets
        assert all(t.level < 100 for t in targets)

    def test_sorted_by_confidence(self, calculator):
        targets = calculator.calculate_fibonacci_extensions(120, 80, 100, MarketDirection.BULLISH)
        confidences = [t.confidence for t in targets]
        assert confidences == sorted(confidences, reverse=True)


class TestLevelTargets:

    def test_bullish_uses_resistance_above(self, calculator):
        levels = [
            SupportResistanceLevel(110, LevelType.RESISTANCE, 0.8, 3, 1000, 0.7),
            SupportResistanceLevel(90, LevelType.SUPPORT, 0.9, 4, 1000, 0.8),
            SupportResistanceLevel(150, LevelType.RESISTANCE, 0.9, 2, 1000, 0.8),
        ]
        targets = calculator.calculate_support_resistance_targets(levels, 100, MarketDirection.BULLISH)

        # 150 is more than 25% away
        assert [t.level for t in targets] == [110]
        assert "resistance" in targets[0].reasoning


class TestPatternTargets:

    def test_head_and_shoulders(self, calculator):
        pattern = PatternResult(
            type=PatternType.HEAD_AND_SHOULDERS,
            confidence=0.75,
            coordinates=[ChartCoordinate(0, 105), ChartCoordinate(5, 110), ChartCoordinate(10, 104)],
            description="Head and shoulders",
        )
        targets = calculator.calculate_pattern_targets(pattern, 100)

        # neckline at 104, head 6 above it
        assert len(targets) == 1
        assert targets[0].level == pytest.approx(98)
        assert "neckline" in targets[0].reasoning

    def test_ascending_triangle(self, calculator):
        pattern = PatternResult(
            type=PatternType.ASCENDING_TRIANGLE,
            confidence=0.7,
            coordinates=[ChartCoordinate(0, 105), ChartCoordinate(2, 95),
                         ChartCoordinate(10, 105), ChartCoordinate(12, 99)],
            description="Ascending triangle",
        )
        targets = calculator.calculate_pattern_targets(pattern, 100)
        assert targets[0].level == pytest.approx(115)
        assert targets[0].confidence == pytest.approx(0.56)

    def test_far_targets_are_dropped(self, calculator):
        pattern = PatternResult(
            type=PatternType.DOUBLE_BOTTOM,
            confidence=0.7,
            coordinates=[ChartCoordinate(0, 50), ChartCoordinate(5, 100), ChartCoordinate(10, 50)],
            description="Double bottom",
        )
        # neckline 100 + height 50 is 50% away
        assert calculator.calculate_pattern_targets(pattern, 100) == []


class TestComprehensive:

    def test_uptrend_targets(self, calculator, uptrend_bars):
        price = uptrend_bars[-1].close
        targets = calculator.calculate_comprehensive_targets(price, uptrend_bars, [], [], MarketDirection.BULLISH)

        assert 0 < len(targets) <= 8
        assert any(t.type == TargetType.TARGET and t.level > price for t in targets)
        confidences = [t.confidence for t in targets]
        assert confidences == sorted(confidences, reverse=True)

    def test_deduplicate_keeps_higher_confidence(self):
        targets = [
            PriceTarget(100.0, TargetType.TARGET, 0.5, "a"),
            PriceTarget(100.5, TargetType.TARGET, 0.8, "b"),
            PriceTarget(110.0, TargetType.TARGET, 0.6, "c"),
        ]
        merged = PriceTargetCalculator.deduplicate_targets(targets)
        assert [t.reasoning for t in merged] == ["b", "c"]
