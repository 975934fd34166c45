"""
Pivot-based support and resistance extraction.
"""

import logging
from typing import List

import pandas as pd

from core.models import LevelType, SupportResistanceLevel


class LevelFinder:
    """Finds pivot highs/lows and scores them as support/resistance candidates.

    Scoring is deterministic: touches within tolerance, recency of the pivot
    inside the scan window and the pivot bar's relative volume.
    """

    def __init__(self, scan_bars: int = 50, lookback: int = 5, touch_tolerance: float = 0.005,
                 max_levels: int = 5, merge_tolerance: float = 0.01):
        self.scan_bars = scan_bars
        self.lookback = lookback
        self.touch_tolerance = touch_tolerance
        self.merge_tolerance = merge_tolerance
        self.max_levels = max_levels
        self.logger = logging.getLogger(__name__)

    def find_levels(self, df: pd.DataFrame) -> List[SupportResistanceLevel]:
        window = df.tail(self.scan_bars).reset_index(drop=True)
        if len(window) < self.lookback * 2 + 1:
            return []

        highs = window['high'].to_numpy(dtype=float)
        lows = window['low'].to_numpy(dtype=float)
        volumes = window['volume'].to_numpy(dtype=float)
        mean_volume = float(volumes.mean()) if len(volumes) else 0.0

        candidates = []
        for i in range(self.lookback, len(window) - self.lookback):
            left, right = i - self.lookback, i + self.lookback + 1

            if highs[i] >= highs[left:right].max():
                candidates.append(self._score(window, i, highs[i], LevelType.RESISTANCE, volumes[i], mean_volume))

            if lows[i] <= lows[left:right].min():
                candidates.append(self._score(window, i, lows[i], LevelType.SUPPORT, volumes[i], mean_volume))

        candidates.sort(key=lambda item: (item[0].strength, item[1]), reverse=True)
        levels = self.merge_nearby([level for level, _ in candidates])[:self.max_levels]

        self.logger.debug(f"📊 Level scan: {len(candidates)} pivots, kept {len(levels)}")
        return levels

    def merge_nearby(self, ranked: List[SupportResistanceLevel]) -> List[SupportResistanceLevel]:
        """Collapse same-type levels within merge_tolerance of a stronger one; input is best first"""
        merged: List[SupportResistanceLevel] = []
        for level in ranked:
            duplicate = any(
                kept.type == level.type and abs(kept.level - level.level) / kept.level <= self.merge_tolerance
                for kept in merged if kept.level > 0
            )
            if not duplicate:
                merged.append(level)
        return merged

    def count_touches(self, window: pd.DataFrame, price: float, level_type: LevelType) -> int:
        """Bars whose high (resistance) or low (support) came within tolerance of price"""
        column = 'high' if level_type == LevelType.RESISTANCE else 'low'
        tolerance = price * self.touch_tolerance
        return max(1, int(((window[column] - price).abs() <= tolerance).sum()))

    def _score(self, window: pd.DataFrame, position: int, price: float, level_type: LevelType,
               volume: float, mean_volume: float):
        touches = self.count_touches(window, price, level_type)
        recency = (position + 1) / len(window)
        volume_factor = min(2.0, volume / mean_volume) / 2 if mean_volume > 0 else 0.0
        capped_touches = min(touches, 5)

        strength = min(1.0, 0.3 + 0.1 * capped_touches + 0.2 * recency + 0.2 * volume_factor)
        confidence = min(1.0, 0.5 + 0.05 * capped_touches + 0.25 * recency)

        level = SupportResistanceLevel(
            level=float(price),
            type=level_type,
            strength=strength,
            touches=touches,
            volume=float(volume),
            confidence=confidence,
        )
        return level, recency
