"""
Price target calculation: Fibonacci retracements and extensions, support/resistance
projections and pattern measured moves, merged into one ranked list.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from analysis.indicators import calculate_regression_slope
from core.models import (
    Bar, LevelType, MarketDirection, PatternResult, PatternType, PriceTarget,
    SupportResistanceLevel, TargetType, bars_to_frame,
)


class PriceTargetCalculator:
    """Stateless target calculator"""

    RETRACEMENT_RATIOS = [(0.236, '23.6%'), (0.382, '38.2%'), (0.5, '50%'), (0.618, '61.8%'), (0.786, '78.6%')]
    EXTENSION_RATIOS = [(1.272, '127.2%'), (1.414, '141.4%'), (1.618, '161.8%'), (2.0, '200%'), (2.618, '261.8%')]

    MAX_COMPREHENSIVE_TARGETS = 8
    DUPLICATE_TOLERANCE = 0.01

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    # ===========================
    # FIBONACCI
    # ===========================

    def calculate_fibonacci_retracements(self, swing_high: float, swing_low: float,
                                         current_price: float) -> List[PriceTarget]:
        if current_price <= 0 or swing_high <= swing_low:
            return []

        price_range = swing_high - swing_low
        targets = []

        for ratio, name in self.RETRACEMENT_RATIOS:
            level = swing_high - price_range * ratio
            distance = abs(level - current_price) / current_price

            # ignore levels hugging the current price or too far to matter
            if not 0.01 < distance < 0.20:
                continue

            if ratio in (0.382, 0.618):
                confidence = 0.8
            elif ratio == 0.5:
                confidence = 0.7
            else:
                confidence = 0.6
            confidence = min(0.9, confidence + (0.20 - distance) * 0.5)

            targets.append(PriceTarget(
                level=level,
                type=TargetType.STOP_LOSS if level < current_price else TargetType.TARGET,
                confidence=confidence,
                reasoning=f"Fibonacci {name} retracement level from swing high {swing_high:.2f} "
                          f"to swing low {swing_low:.2f}",
            ))

        return sorted(targets, key=lambda t: t.confidence, reverse=True)

    def calculate_fibonacci_extensions(self, swing_high: float, swing_low: float, current_price: float,
                                       direction: MarketDirection) -> List[PriceTarget]:
        if current_price <= 0 or swing_high <= swing_low:
            return []

        price_range = swing_high - swing_low
        bullish = direction == MarketDirection.BULLISH
        targets = []

        for ratio, name in self.EXTENSION_RATIOS:
            level = swing_low + price_range * ratio if bullish else swing_high - price_range * ratio
            if bullish and level <= current_price:
                continue
            if not bullish and level >= current_price:
                continue

            distance = abs(level - current_price) / current_price
            if not 0.02 < distance < 0.50:
                continue

            if ratio in (1.272, 1.618):
                confidence = 0.75
            elif ratio in (1.414, 2.0):
                confidence = 0.65
            else:
                confidence = 0.5

            if distance < 0.10:
                confidence += 0.1
            elif distance > 0.30:
                confidence -= 0.1

            targets.append(PriceTarget(
                level=level,
                type=TargetType.TARGET,
                confidence=float(np.clip(confidence, 0.3, 0.85)),
                reasoning=f"Fibonacci {name} extension {'upside' if bullish else 'downside'} target",
            ))

        return sorted(targets, key=lambda t: t.confidence, reverse=True)

    # ===========================
    # SUPPORT / RESISTANCE
    # ===========================

    def calculate_support_resistance_targets(self, levels: Sequence[SupportResistanceLevel], current_price: float,
                                             direction: MarketDirection) -> List[PriceTarget]:
        if current_price <= 0:
            return []

        if direction == MarketDirection.BULLISH:
            relevant = [lvl for lvl in levels if lvl.type == LevelType.RESISTANCE and lvl.level > current_price]
        else:
            relevant = [lvl for lvl in levels if lvl.type == LevelType.SUPPORT and lvl.level < current_price]

        def score(level: SupportResistanceLevel) -> float:
            return level.strength - abs(level.level - current_price) / current_price * 0.5

        targets = []
        for level in sorted(relevant, key=score, reverse=True):
            distance = abs(level.level - current_price) / current_price
            if distance < 0.005 or distance > 0.25:
                continue

            confidence = level.strength * 0.6 + level.confidence * 0.4
            if level.touches >= 3:
                confidence += 0.1
            confidence *= 1 - len(targets) * 0.1

            kind = 'resistance' if level.type == LevelType.RESISTANCE else 'support'
            targets.append(PriceTarget(
                level=level.level,
                type=TargetType.TARGET,
                confidence=float(np.clip(confidence, 0.3, 0.9)),
                reasoning=f"Key {kind} level at {level.level:.2f} "
                          f"(strength {level.strength * 100:.0f}%, {level.touches} touches)",
            ))
            if len(targets) >= 5:
                break

        return sorted(targets, key=lambda t: t.confidence, reverse=True)

    # ===========================
    # PATTERN MEASURED MOVES
    # ===========================

    def calculate_pattern_targets(self, pattern: PatternResult, current_price: float,
                                  bars: Optional[Sequence[Bar]] = None) -> List[PriceTarget]:
        if current_price <= 0:
            return []

        ptype = pattern.type
        if ptype in (PatternType.ASCENDING_TRIANGLE, PatternType.DESCENDING_TRIANGLE):
            targets = self._triangle_targets(pattern, bullish=ptype == PatternType.ASCENDING_TRIANGLE)
        elif ptype == PatternType.SYMMETRICAL_TRIANGLE:
            targets = self._symmetrical_triangle_targets(pattern)
        elif ptype in (PatternType.HEAD_AND_SHOULDERS, PatternType.INVERSE_HEAD_AND_SHOULDERS):
            targets = self._head_and_shoulders_targets(pattern, bullish=ptype == PatternType.INVERSE_HEAD_AND_SHOULDERS)
        elif ptype in (PatternType.DOUBLE_TOP, PatternType.DOUBLE_BOTTOM):
            targets = self._double_top_bottom_targets(pattern, bullish=ptype == PatternType.DOUBLE_BOTTOM)
        elif ptype in (PatternType.CHANNEL_UP, PatternType.CHANNEL_DOWN):
            targets = self._channel_targets(pattern, current_price, bars)
        elif ptype in (PatternType.RISING_WEDGE, PatternType.FALLING_WEDGE):
            targets = self._wedge_targets(pattern, current_price, bullish=ptype == PatternType.FALLING_WEDGE)
        elif ptype in (PatternType.FLAG, PatternType.PENNANT):
            targets = self._flag_targets(pattern, current_price)
        else:
            targets = []

        return [t for t in targets if 0.01 < abs(t.level - current_price) / current_price < 0.30]

    def _triangle_targets(self, pattern: PatternResult, bullish: bool) -> List[PriceTarget]:
        coords = pattern.coordinates
        if len(coords) < 4:
            return []

        resistance = max(c.y for c in coords[0::2])
        support = min(c.y for c in coords[1::2])
        height = resistance - support
        label = pattern.type.value.replace('_', ' ').lower()

        return [PriceTarget(
            level=resistance + height if bullish else support - height,
            type=TargetType.TARGET,
            confidence=pattern.confidence * 0.8,
            reasoning=f"{label} measured move target (pattern height: {height:.2f})",
        )]

    def _symmetrical_triangle_targets(self, pattern: PatternResult) -> List[PriceTarget]:
        coords = pattern.coordinates
        if len(coords) < 4:
            return []

        top = max(c.y for c in coords)
        bottom = min(c.y for c in coords)
        height = top - bottom
        confidence = pattern.confidence * 0.7

        return [
            PriceTarget(top + height, TargetType.TARGET, confidence, "Symmetrical triangle upside breakout target"),
            PriceTarget(bottom - height, TargetType.TARGET, confidence, "Symmetrical triangle downside breakdown target"),
        ]

    def _head_and_shoulders_targets(self, pattern: PatternResult, bullish: bool) -> List[PriceTarget]:
        coords = pattern.coordinates
        if len(coords) < 3:
            return []

        if bullish:
            head = min(coords, key=lambda c: c.y)
            neckline = max(c.y for c in coords if c is not head)
        else:
            head = max(coords, key=lambda c: c.y)
            neckline = min(c.y for c in coords if c is not head)

        height = abs(head.y - neckline)
        label = pattern.type.value.replace('_', ' ').lower()

        return [PriceTarget(
            level=neckline + height if bullish else neckline - height,
            type=TargetType.TARGET,
            confidence=pattern.confidence * 0.85,
            reasoning=f"{label} measured move from neckline ({neckline:.2f})",
        )]

    def _double_top_bottom_targets(self, pattern: PatternResult, bullish: bool) -> List[PriceTarget]:
        coords = pattern.coordinates
        if len(coords) < 2:
            return []

        # outer coordinates are the two peaks (or troughs); the middle one is the neckline
        extremes = [coords[0].y, coords[-1].y]
        avg_extreme = sum(extremes) / len(extremes)
        if len(coords) >= 3:
            neckline = coords[1].y
        else:
            neckline = avg_extreme * (1.05 if bullish else 0.95)

        height = abs(avg_extreme - neckline)
        label = pattern.type.value.replace('_', ' ').lower()

        return [PriceTarget(
            level=neckline + height if bullish else neckline - height,
            type=TargetType.TARGET,
            confidence=pattern.confidence * 0.8,
            reasoning=f"{label} measured move target through neckline {neckline:.2f}",
        )]

    def _channel_targets(self, pattern: PatternResult, current_price: float,
                         bars: Optional[Sequence[Bar]]) -> List[PriceTarget]:
        width = self._channel_width(pattern, bars)
        if width <= 0:
            return []

        confidence = pattern.confidence * 0.7
        if pattern.type == PatternType.CHANNEL_UP:
            return [
                PriceTarget(current_price + width * 0.5, TargetType.TARGET, confidence,
                            "Ascending channel resistance target"),
                PriceTarget(current_price - width * 0.3, TargetType.STOP_LOSS, min(1.0, confidence + 0.1),
                            "Ascending channel support level"),
            ]
        return [
            PriceTarget(current_price - width * 0.5, TargetType.TARGET, confidence,
                        "Descending channel support target"),
            PriceTarget(current_price + width * 0.3, TargetType.STOP_LOSS, min(1.0, confidence + 0.1),
                        "Descending channel resistance level"),
        ]

    @staticmethod
    def _channel_width(pattern: PatternResult, bars: Optional[Sequence[Bar]]) -> float:
        """Spread of highs above and lows below the regression line of recent closes"""
        if bars:
            df = bars_to_frame(bars).tail(20).reset_index(drop=True)
            closes = df['close']
            slope = calculate_regression_slope(closes)
            x = np.arange(len(closes), dtype=float)
            intercept = closes.mean() - slope * x.mean()
            baseline = intercept + slope * x
            return float((df['high'] - baseline).max() - (df['low'] - baseline).min())

        ys = [c.y for c in pattern.coordinates]
        if len(ys) < 4:
            return 0.0
        return float(max(ys) - min(ys))

    def _wedge_targets(self, pattern: PatternResult, current_price: float, bullish: bool) -> List[PriceTarget]:
        coords = pattern.coordinates
        if len(coords) < 4:
            return []

        height = abs(coords[0].y - coords[1].y)
        label = pattern.type.value.replace('_', ' ').lower()
        return [PriceTarget(
            level=current_price + height if bullish else current_price - height,
            type=TargetType.TARGET,
            confidence=pattern.confidence * 0.75,
            reasoning=f"{label} reversal target (wedge height: {height:.2f})",
        )]

    def _flag_targets(self, pattern: PatternResult, current_price: float) -> List[PriceTarget]:
        # flagpole approximated as a 10% move in the direction of the preceding trend
        coords = pattern.coordinates
        bullish = len(coords) < 2 or coords[-1].y >= coords[0].y
        pole = current_price * 0.1
        label = pattern.type.value.lower()
        return [PriceTarget(
            level=current_price + pole if bullish else current_price - pole,
            type=TargetType.TARGET,
            confidence=pattern.confidence * 0.8,
            reasoning=f"{label} continuation target (flagpole projection)",
        )]

    # ===========================
    # COMPREHENSIVE
    # ===========================

    def calculate_comprehensive_targets(self, current_price: float, bars: Sequence[Bar],
                                        levels: Sequence[SupportResistanceLevel],
                                        patterns: Sequence[PatternResult],
                                        direction: Optional[MarketDirection] = None) -> List[PriceTarget]:
        """Union of every method, de-duplicated within 1%, ranked and capped at 8"""
        targets: List[PriceTarget] = []

        if direction is not None:
            targets.extend(self.calculate_support_resistance_targets(levels, current_price, direction))

        for pattern in patterns:
            if pattern.confidence > 0.6:
                targets.extend(self.calculate_pattern_targets(pattern, current_price, bars))

        swing_high, swing_low = self.find_swing(bars)
        if swing_high is not None:
            targets.extend(self.calculate_fibonacci_retracements(swing_high, swing_low, current_price))
            if direction is not None:
                targets.extend(self.calculate_fibonacci_extensions(swing_high, swing_low, current_price, direction))

        merged = self.deduplicate_targets(targets)
        self.logger.debug(f"🎯 Comprehensive targets: {len(targets)} raw, {len(merged)} after merge")
        return merged[:self.MAX_COMPREHENSIVE_TARGETS]

    @staticmethod
    def find_swing(bars: Sequence[Bar], lookback: int = 50):
        if not bars:
            return None, None
        df = bars_to_frame(bars).tail(lookback)
        return float(df['high'].max()), float(df['low'].min())

    @classmethod
    def deduplicate_targets(cls, targets: Sequence[PriceTarget],
                            tolerance: float = DUPLICATE_TOLERANCE) -> List[PriceTarget]:
        """Keep the higher-confidence target of any pair within `tolerance` of each other"""
        kept: List[PriceTarget] = []
        for target in sorted(targets, key=lambda t: t.confidence, reverse=True):
            duplicate = any(
                abs(target.level - existing.level) / existing.level <= tolerance
                for existing in kept if existing.level
            )
            if not duplicate:
                kept.append(target)
        return kept

