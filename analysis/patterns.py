"""
Chart pattern detection: trend channels, double tops/bottoms, triangles and head-and-shoulders.
"""

import logging
from typing import List, Optional

import numpy as np
import pandas as pd

from core.models import (
    ChartCoordinate, PatternResult, PatternType, PriceTarget, TargetType,
    TrendAnalysis, TrendDirection,
)


def find_local_extremes(values: pd.Series, window: int = 3, find_highs: bool = True) -> List[int]:
    """Positions whose value is the extreme of the surrounding +/- window bars.

    A run of adjacent bars tied at the extreme (a flat top or bottom) yields only its first bar.
    """
    data = values.to_numpy(dtype=float)
    positions = []
    previous_was_extreme = False
    for i in range(window, len(data) - window):
        neighbourhood = data[i - window:i + window + 1]
        if find_highs:
            is_extreme = data[i] >= neighbourhood.max()
        else:
            is_extreme = data[i] <= neighbourhood.min()

        if is_extreme and not (previous_was_extreme and data[i] == data[i - 1]):
            positions.append(i)
        previous_was_extreme = is_extreme
    return positions


def _line_slope(xs: List[int], ys: List[float]) -> float:
    if len(xs) < 2:
        return 0.0
    return float(np.polyfit(np.asarray(xs, dtype=float), np.asarray(ys, dtype=float), 1)[0])


class PatternDetector:
    """Detects chart patterns on an OHLCV frame"""

    def __init__(self, double_window: int = 20, double_tolerance: float = 0.02,
                 min_double_separation: int = 5, triangle_window: int = 40,
                 shoulder_tolerance: float = 0.05):
        self.double_window = double_window
        self.double_tolerance = double_tolerance
        self.min_double_separation = min_double_separation
        self.triangle_window = triangle_window
        self.shoulder_tolerance = shoulder_tolerance
        self.logger = logging.getLogger(__name__)

    def detect_all(self, df: pd.DataFrame, trend: TrendAnalysis, atr: float) -> List[PatternResult]:
        """Run every detector and collect the patterns found"""
        patterns = []

        channel = self.detect_trend_channel(df, trend, atr)
        if channel:
            patterns.append(channel)

        for detector in (self.detect_double_top, self.detect_double_bottom,
                         self.detect_triangle, self.detect_head_and_shoulders):
            try:
                pattern = detector(df)
            except Exception as e:
                self.logger.error(f"Pattern detector {detector.__name__} failed: {e}")
                continue
            if pattern:
                patterns.append(pattern)

        if patterns:
            self.logger.debug(f"🔍 Patterns found: {[p.type.value for p in patterns]}")
        return patterns

    # ===========================
    # TREND CHANNEL
    # ===========================

    def detect_trend_channel(self, df: pd.DataFrame, trend: TrendAnalysis, atr: float) -> Optional[PatternResult]:
        if trend.strength < 0.3 or trend.direction == TrendDirection.SIDEWAYS:
            return None

        current = float(df['close'].iloc[-1])
        recent = df['close'].tail(10).reset_index(drop=True)
        offset = len(df) - len(recent)
        coordinates = [ChartCoordinate(x=offset + i, y=float(price)) for i, price in recent.items()]

        if trend.direction == TrendDirection.UPTREND:
            return PatternResult(
                type=PatternType.CHANNEL_UP,
                confidence=trend.strength,
                coordinates=coordinates,
                description=f"Upward trending channel with {trend.strength * 100:.0f}% strength",
                implications=["Continued upward momentum expected", "Buy on dips near channel support"],
                price_targets=[PriceTarget(current + atr * 2, TargetType.TARGET, trend.strength * 0.8,
                                           "Channel projection target (2x ATR)")],
            )

        return PatternResult(
            type=PatternType.CHANNEL_DOWN,
            confidence=trend.strength,
            coordinates=coordinates,
            description=f"Downward trending channel with {trend.strength * 100:.0f}% strength",
            implications=["Continued downward pressure expected", "Sell on rallies near channel resistance"],
            price_targets=[PriceTarget(current - atr * 2, TargetType.TARGET, trend.strength * 0.8,
                                       "Channel projection target (2x ATR)")],
        )

    # ===========================
    # DOUBLE TOP / BOTTOM
    # ===========================

    def detect_double_top(self, df: pd.DataFrame) -> Optional[PatternResult]:
        window = df.tail(self.double_window).reset_index(drop=True)
        if len(window) < self.double_window:
            return None

        peak = window['high'].max()
        touches = [p for p in find_local_extremes(window['high'], window=2, find_highs=True)
                   if window['high'].iloc[p] > peak * (1 - self.double_tolerance)]
        if len(touches) < 2 or touches[-1] - touches[0] < self.min_double_separation:
            return None

        first, last = touches[0], touches[-1]
        trough_pos = int(window['low'].iloc[first:last + 1].idxmin())
        trough = float(window['low'].iloc[trough_pos])
        offset = len(df) - len(window)

        return PatternResult(
            type=PatternType.DOUBLE_TOP,
            confidence=0.7,
            coordinates=[
                ChartCoordinate(offset + first, float(window['high'].iloc[first])),
                ChartCoordinate(offset + trough_pos, trough),
                ChartCoordinate(offset + last, float(window['high'].iloc[last])),
            ],
            description="Double top pattern - potential reversal",
            implications=["Bearish reversal likely", "Watch for a break below the neckline"],
            price_targets=[PriceTarget(float(window['low'].min()), TargetType.TARGET, 0.6,
                                       "Double top measured move to window low")],
        )

    def detect_double_bottom(self, df: pd.DataFrame) -> Optional[PatternResult]:
        window = df.tail(self.double_window).reset_index(drop=True)
        if len(window) < self.double_window:
            return None

        floor = window['low'].min()
        touches = [p for p in find_local_extremes(window['low'], window=2, find_highs=False)
                   if window['low'].iloc[p] < floor * (1 + self.double_tolerance)]
        if len(touches) < 2 or touches[-1] - touches[0] < self.min_double_separation:
            return None

        first, last = touches[0], touches[-1]
        crest_pos = int(window['high'].iloc[first:last + 1].idxmax())
        crest = float(window['high'].iloc[crest_pos])
        offset = len(df) - len(window)

        return PatternResult(
            type=PatternType.DOUBLE_BOTTOM,
            confidence=0.7,
            coordinates=[
                ChartCoordinate(offset + first, float(window['low'].iloc[first])),
                ChartCoordinate(offset + crest_pos, crest),
                ChartCoordinate(offset + last, float(window['low'].iloc[last])),
            ],
            description="Double bottom pattern - potential reversal",
            implications=["Bullish reversal likely", "Watch for a break above the neckline"],
            price_targets=[PriceTarget(float(window['high'].max()), TargetType.TARGET, 0.6,
                                       "Double bottom measured move to window high")],
        )

    # ===========================
    # TRIANGLES
    # ===========================

    def detect_triangle(self, df: pd.DataFrame) -> Optional[PatternResult]:
        window = df.tail(self.triangle_window).reset_index(drop=True)
        high_pos = find_local_extremes(window['high'], find_highs=True)
        low_pos = find_local_extremes(window['low'], find_highs=False)
        if len(high_pos) < 2 or len(low_pos) < 2:
            return None

        mean_price = float(window['close'].mean())
        if mean_price <= 0:
            return None

        flat = 0.001
        high_slope = _line_slope(high_pos, window['high'].iloc[high_pos].tolist()) / mean_price
        low_slope = _line_slope(low_pos, window['low'].iloc[low_pos].tolist()) / mean_price

        if abs(high_slope) < flat and low_slope > flat:
            pattern_type, confidence = PatternType.ASCENDING_TRIANGLE, 0.7
            description = "Ascending triangle - flat resistance with rising support"
            implications = ["Bullish breakout expected above resistance"]
        elif high_slope < -flat and abs(low_slope) < flat:
            pattern_type, confidence = PatternType.DESCENDING_TRIANGLE, 0.7
            description = "Descending triangle - falling resistance with flat support"
            implications = ["Bearish breakdown expected below support"]
        elif high_slope < -flat and low_slope > flat:
            pattern_type, confidence = PatternType.SYMMETRICAL_TRIANGLE, 0.6
            description = "Symmetrical triangle - converging trend lines"
            implications = ["Breakout direction uncertain", "Volatility expansion expected"]
        else:
            return None

        offset = len(df) - len(window)
        # highs and lows interleaved: even positions are resistance, odd are support
        coordinates = [
            ChartCoordinate(offset + high_pos[0], float(window['high'].iloc[high_pos[0]])),
            ChartCoordinate(offset + low_pos[0], float(window['low'].iloc[low_pos[0]])),
            ChartCoordinate(offset + high_pos[-1], float(window['high'].iloc[high_pos[-1]])),
            ChartCoordinate(offset + low_pos[-1], float(window['low'].iloc[low_pos[-1]])),
        ]

        return PatternResult(
            type=pattern_type,
            confidence=confidence,
            coordinates=coordinates,
            description=description,
            implications=implications,
        )

    # ===========================
    # HEAD AND SHOULDERS
    # ===========================

    def detect_head_and_shoulders(self, df: pd.DataFrame) -> Optional[PatternResult]:
        window = df.tail(50).reset_index(drop=True)
        offset = len(df) - len(window)

        pattern = self._find_head_and_shoulders(window, offset, inverse=False)
        if pattern:
            return pattern
        return self._find_head_and_shoulders(window, offset, inverse=True)

    def _find_head_and_shoulders(self, window: pd.DataFrame, offset: int, inverse: bool) -> Optional[PatternResult]:
        column = 'low' if inverse else 'high'
        series = window[column]
        pivots = find_local_extremes(series, find_highs=not inverse)

        # most recent formation wins
        for i in range(len(pivots) - 3, -1, -1):
            left, head, right = pivots[i], pivots[i + 1], pivots[i + 2]
            l_price, h_price, r_price = (float(series.iloc[p]) for p in (left, head, right))

            if inverse:
                head_ok = h_price < l_price and h_price < r_price
            else:
                head_ok = h_price > l_price and h_price > r_price
            if not head_ok:
                continue
            if abs(l_price - r_price) / max(l_price, r_price) > self.shoulder_tolerance:
                continue

            if inverse:
                neck_pos = int(window['high'].iloc[left:right + 1].idxmax())
                neckline = float(window['high'].iloc[neck_pos])
            else:
                neck_pos = int(window['low'].iloc[left:right + 1].idxmin())
                neckline = float(window['low'].iloc[neck_pos])

            height = abs(h_price - neckline)
            target = neckline + height if inverse else neckline - height

            return PatternResult(
                type=PatternType.INVERSE_HEAD_AND_SHOULDERS if inverse else PatternType.HEAD_AND_SHOULDERS,
                confidence=0.75,
                coordinates=[
                    ChartCoordinate(offset + left, l_price),
                    ChartCoordinate(offset + head, h_price),
                    ChartCoordinate(offset + right, r_price),
                ],
                description=("Inverse head and shoulders - bullish reversal" if inverse
                             else "Head and shoulders - bearish reversal"),
                implications=(["Bullish reversal on neckline breakout"] if inverse
                              else ["Bearish reversal on neckline breakdown"]),
                price_targets=[PriceTarget(target, TargetType.TARGET, 0.65,
                                           f"Measured move from neckline ({neckline:.2f})")],
            )
        return None
