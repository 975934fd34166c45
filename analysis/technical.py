"""
Technical analyzer: indicators, trend, momentum, volatility, patterns and levels for one bar series.
"""

import logging
from typing import List, Optional, Sequence

import pandas as pd

from analysis.indicators import (
    build_indicator_results, calculate_atr, calculate_bollinger_bands, calculate_macd,
    calculate_regression_slope, calculate_rsi, calculate_stochastic, calculate_volatility_rank,
    describe_momentum,
)
from analysis.levels import LevelFinder
from analysis.patterns import PatternDetector
from core.errors import InsufficientDataError
from core.models import (
    Bar, MomentumAnalysis, PatternResult, PatternType, PriceTarget, RiskLevel, SignalAction,
    TargetType, TechnicalAnalysisResult, TradingSignal, TrendAnalysis, TrendDirection,
    VolatilityAnalysis, bars_to_frame,
)

MIN_BARS = 20
TREND_BARS = 20
TREND_EPSILON = 0.001


class TechnicalAnalyzer:
    """Builds a TechnicalAnalysisResult from an oldest-first bar series"""

    def __init__(self, pattern_detector: Optional[PatternDetector] = None,
                 level_finder: Optional[LevelFinder] = None, min_bars: int = MIN_BARS):
        self.pattern_detector = pattern_detector or PatternDetector()
        self.level_finder = level_finder or LevelFinder()
        self.min_bars = min_bars
        self.logger = logging.getLogger(__name__)

    def analyze(self, symbol: str, timeframe: str, bars: Sequence[Bar]) -> TechnicalAnalysisResult:
        if len(bars) < self.min_bars:
            raise InsufficientDataError(symbol, timeframe, len(bars), self.min_bars)

        df = bars_to_frame(bars)
        self.logger.debug(f"🔍 Analyzing {symbol} {timeframe}: {len(df)} bars")

        trend = self.analyze_trend(df)
        momentum = self.analyze_momentum(df)
        volatility = self.analyze_volatility(df)
        indicators = build_indicator_results(df)
        patterns = self.pattern_detector.detect_all(df, trend, volatility.atr)
        levels = self.level_finder.find_levels(df)

        self.logger.debug(
            f"✅ {symbol} {timeframe}: trend={trend.direction.value} ({trend.strength:.2f}), "
            f"RSI={momentum.rsi:.1f}, patterns={len(patterns)}, levels={len(levels)}"
        )

        return TechnicalAnalysisResult(
            indicators=indicators,
            patterns=patterns,
            support_resistance=levels,
            trend=trend,
            momentum=momentum,
            volatility=volatility,
        )

    # ===========================
    # COMPONENT ANALYSES
    # ===========================

    @staticmethod
    def analyze_trend(df: pd.DataFrame) -> TrendAnalysis:
        recent = df['close'].tail(TREND_BARS)
        slope = calculate_regression_slope(recent)

        if slope > TREND_EPSILON:
            direction = TrendDirection.UPTREND
        elif slope < -TREND_EPSILON:
            direction = TrendDirection.DOWNTREND
        else:
            direction = TrendDirection.SIDEWAYS

        return TrendAnalysis(
            direction=direction,
            strength=min(1.0, abs(slope) * 100),
            duration=len(recent),
            slope=slope,
        )

    @staticmethod
    def analyze_momentum(df: pd.DataFrame) -> MomentumAnalysis:
        rsi = calculate_rsi(df['close'])
        macd = calculate_macd(df['close'])
        stochastic = calculate_stochastic(df)
        return MomentumAnalysis(
            rsi=rsi,
            macd=macd,
            stochastic=stochastic,
            interpretation=describe_momentum(rsi, macd, stochastic),
        )

    @staticmethod
    def analyze_volatility(df: pd.DataFrame) -> VolatilityAnalysis:
        return VolatilityAnalysis(
            atr=calculate_atr(df, 14),
            bollinger_bands=calculate_bollinger_bands(df['close']),
            volatility_rank=calculate_volatility_rank(df),
        )

    # ===========================
    # SIGNALS
    # ===========================

    def generate_signals(self, result: TechnicalAnalysisResult, current_price: float) -> List[TradingSignal]:
        """Trend signal plus one signal per detected pattern"""
        signals = []

        trend_signal = self._trend_signal(result, current_price)
        if trend_signal:
            signals.append(trend_signal)

        for pattern in result.patterns:
            signals.append(self._pattern_signal(pattern))

        return signals

    def _trend_signal(self, result: TechnicalAnalysisResult, current_price: float) -> Optional[TradingSignal]:
        trend = result.trend
        if trend.strength < 0.3 or trend.direction == TrendDirection.SIDEWAYS:
            return None

        atr = result.volatility.atr
        is_up = trend.direction == TrendDirection.UPTREND

        return TradingSignal(
            action=SignalAction.BUY if is_up else SignalAction.SELL,
            confidence=trend.strength,
            reasoning=[
                f"Strong {trend.direction.value.lower()} detected",
                f"Trend strength: {trend.strength * 100:.1f}%",
                result.momentum.interpretation,
            ],
            price_targets=[PriceTarget(
                level=current_price + atr * 2 if is_up else current_price - atr * 2,
                type=TargetType.TARGET,
                confidence=trend.strength * 0.8,
                reasoning="Trend continuation target (2x ATR)",
            )],
            stop_loss=current_price - atr if is_up else current_price + atr,
            time_horizon="Medium-term (1-4 weeks)" if trend.strength > 0.7 else "Short-term (1-7 days)",
            risk_level=RiskLevel.MEDIUM if trend.strength > 0.7 else RiskLevel.HIGH,
        )

    @staticmethod
    def _pattern_signal(pattern: PatternResult) -> TradingSignal:
        if pattern.type == PatternType.SYMMETRICAL_TRIANGLE:
            action = SignalAction.HOLD
        elif pattern.type.is_bearish:
            action = SignalAction.SELL
        else:
            action = SignalAction.BUY

        return TradingSignal(
            action=action,
            confidence=pattern.confidence,
            reasoning=[pattern.description] + list(pattern.implications),
            price_targets=list(pattern.price_targets),
            stop_loss=0.0,
            time_horizon="Short-term (1-2 weeks)",
            risk_level=RiskLevel.MEDIUM,
        )
