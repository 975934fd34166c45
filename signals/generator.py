"""
Signal generator: confluence scoring, timeframe-adaptive signal rules and signal consolidation.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence

from analysis.price_targets import PriceTargetCalculator
from core.models import (
    IndicatorResult, IndicatorSignal, LevelType, PriceTarget, RiskLevel, SignalAction,
    SupportResistanceLevel, TargetType, TechnicalAnalysisResult, TradingSignal, TrendDirection,
)


# ===========================
# CONFIGURATION
# ===========================

@dataclass(frozen=True)
class TimeframeConfig:
    """Signal rules that vary with the bar interval"""
    time_horizon: str
    risk_tolerance: RiskLevel
    allow_counter_trend: bool
    min_confidence: float
    stop_loss_multiplier: float


SCALPING = TimeframeConfig("Scalping (minutes to hours)", RiskLevel.HIGH, True, 0.6, 0.5)
INTRADAY = TimeframeConfig("Intraday (hours to 1 day)", RiskLevel.MEDIUM, True, 0.65, 0.75)
SWING = TimeframeConfig("Swing (days to weeks)", RiskLevel.MEDIUM, False, 0.7, 1.0)
POSITION = TimeframeConfig("Position (weeks to months)", RiskLevel.LOW, False, 0.75, 1.5)
DEFAULT_TIMEFRAME_CONFIG = TimeframeConfig("Medium-term (days to weeks)", RiskLevel.MEDIUM, False, 0.7, 1.0)

TIMEFRAME_CONFIGS: Dict[str, TimeframeConfig] = {
    '1m': SCALPING,
    '5m': SCALPING,
    '15m': SCALPING,
    '1h': INTRADAY,
    '4h': INTRADAY,
    '1d': SWING,
    '1w': POSITION,
    '1M': POSITION,
}

INDICATOR_WEIGHTS = {
    'RSI': 1.0,
    'MACD': 1.2,
    'BOLLINGER': 0.8,
    'STOCHASTIC': 0.9,
    'SMA_20': 1.1,
    'SMA_50': 1.3,
    'EMA_12': 0.9,
    'EMA_26': 1.0,
}


def get_timeframe_config(timeframe: str) -> TimeframeConfig:
    """Look up the rules for a timeframe label; '1M' (month) is matched before case folding"""
    if timeframe in TIMEFRAME_CONFIGS:
        return TIMEFRAME_CONFIGS[timeframe]
    return TIMEFRAME_CONFIGS.get(timeframe.lower(), DEFAULT_TIMEFRAME_CONFIG)


@dataclass(frozen=True)
class ConfluenceScore:
    score: float
    factors: List[str]


@dataclass(frozen=True)
class SignalStrength:
    bullish: float
    bearish: float
    neutral: float


# ===========================
# SIGNAL GENERATOR
# ===========================

class SignalGenerator:
    """Turns a TechnicalAnalysisResult into scored trading signals"""

    MAX_REASONS = 8
    MAX_TARGETS = 3

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def generate_technical_signals(self, analysis: TechnicalAnalysisResult, timeframe: str = '1D',
                                   current_price: Optional[float] = None) -> List[TradingSignal]:
        """Primary and counter-trend signals for one timeframe, confluence-enhanced, best first"""
        price = current_price if current_price is not None else analysis.volatility.bollinger_bands.middle
        config = get_timeframe_config(timeframe)
        strength = self.calculate_signal_strength(analysis.indicators)
        confluence = self.calculate_confluence(analysis)

        signals = []
        primary = self.generate_primary_signal(analysis, config, price)
        if primary:
            signals.append(primary)

        if config.allow_counter_trend:
            counter = self.generate_counter_trend_signal(analysis, config, price)
            if counter:
                signals.append(counter)

        enhanced = [self.enhance_with_confluence(s, confluence, strength) for s in signals]
        self.logger.debug(
            f"📈 {timeframe}: {len(enhanced)} signal(s), confluence {confluence.score:.2f}"
        )
        return sorted(enhanced, key=lambda s: s.confidence, reverse=True)

    # ===========================
    # SCORING
    # ===========================

    @staticmethod
    def calculate_signal_strength(indicators: Sequence[IndicatorResult]) -> SignalStrength:
        """Reliability-weighted share of bullish, bearish and neutral indicators"""
        totals = {IndicatorSignal.BULLISH: 0.0, IndicatorSignal.BEARISH: 0.0, IndicatorSignal.NEUTRAL: 0.0}
        total_weight = 0.0
        for indicator in indicators:
            weight = INDICATOR_WEIGHTS.get(indicator.name, 1.0)
            totals[indicator.signal] += weight
            total_weight += weight

        if total_weight == 0:
            return SignalStrength(0.0, 0.0, 0.0)
        return SignalStrength(
            bullish=totals[IndicatorSignal.BULLISH] / total_weight,
            bearish=totals[IndicatorSignal.BEARISH] / total_weight,
            neutral=totals[IndicatorSignal.NEUTRAL] / total_weight,
        )

    @staticmethod
    def calculate_confluence(analysis: TechnicalAnalysisResult) -> ConfluenceScore:
        """Weighted agreement across trend, momentum, patterns, levels, volatility and volume"""
        factors = []
        score = 0.0

        # trend 25%
        trend = analysis.trend
        if trend.direction == TrendDirection.UPTREND and trend.strength > 0.6:
            score += 0.25
            factors.append("Strong uptrend confirmed")
        elif trend.direction == TrendDirection.DOWNTREND and trend.strength > 0.6:
            score += 0.25
            factors.append("Strong downtrend confirmed")
        elif trend.strength > 0.4:
            score += 0.15
            factors.append(f"Moderate {trend.direction.value.lower()}")

        # momentum 20%
        rsi = analysis.momentum.rsi
        histogram = analysis.momentum.macd.histogram
        stoch = analysis.momentum.stochastic
        bullish_pair = rsi > 50 and histogram > 0
        bearish_pair = rsi < 50 and histogram < 0
        if (bullish_pair and stoch.k > stoch.d) or (bearish_pair and stoch.k < stoch.d):
            score += 0.20
            factors.append("Momentum indicators aligned")
        elif bullish_pair or bearish_pair:
            score += 0.12
            factors.append("Partial momentum alignment")

        # patterns 20%
        strong_patterns = [p for p in analysis.patterns if p.confidence > 0.7]
        if strong_patterns:
            score += 0.20
            factors.append(f"{len(strong_patterns)} high-confidence pattern(s) identified")
        elif analysis.patterns:
            score += 0.10
            factors.append(f"{len(analysis.patterns)} pattern(s) identified")

        # support / resistance 15%
        strong_levels = [lvl for lvl in analysis.support_resistance if lvl.strength > 0.7]
        if len(strong_levels) >= 2:
            score += 0.15
            factors.append("Strong support/resistance levels identified")
        elif strong_levels:
            score += 0.08
            factors.append("Key support/resistance level identified")

        # volatility 10%
        rank = analysis.volatility.volatility_rank
        if 0.3 < rank < 0.8:
            score += 0.10
            factors.append("Favorable volatility conditions")
        elif analysis.volatility.bollinger_bands.squeeze:
            score += 0.05
            factors.append("Bollinger Band squeeze - potential breakout")

        # volume 10%
        if any(lvl.volume > 0 for lvl in analysis.support_resistance):
            score += 0.10
            factors.append("Volume confirmation at key levels")

        return ConfluenceScore(score=min(1.0, score), factors=factors)

    # ===========================
    # SIGNAL RULES
    # ===========================

    def generate_primary_signal(self, analysis: TechnicalAnalysisResult, config: TimeframeConfig,
                                current_price: float) -> Optional[TradingSignal]:
        trend = analysis.trend
        rsi = analysis.momentum.rsi
        histogram = analysis.momentum.macd.histogram

        action = None
        confidence = 0.0
        reasoning: List[str] = []

        if rsi > 80:
            action, confidence = SignalAction.SELL, 0.6
            reasoning.append("Extremely overbought conditions (RSI > 80)")
        elif rsi < 20:
            action, confidence = SignalAction.BUY, 0.6
            reasoning.append("Extremely oversold conditions (RSI < 20)")
        elif trend.strength > 0.5 and 30 < rsi < 70:
            if trend.direction == TrendDirection.UPTREND and histogram > 0:
                action, confidence = SignalAction.BUY, 0.7 + trend.strength * 0.2
                reasoning.append("Strong uptrend with bullish momentum")
                reasoning.append(f"RSI at {rsi:.1f} - not overbought")
            elif trend.direction == TrendDirection.DOWNTREND and histogram < 0:
                action, confidence = SignalAction.SELL, 0.7 + trend.strength * 0.2
                reasoning.append("Strong downtrend with bearish momentum")
                reasoning.append(f"RSI at {rsi:.1f} - not oversold")

        if action is None or confidence < config.min_confidence:
            return None

        return TradingSignal(
            action=action,
            confidence=min(0.95, confidence),
            reasoning=reasoning,
            price_targets=self.targets_from_levels(analysis.support_resistance, action, confidence, current_price),
            stop_loss=self.stop_loss_from_levels(analysis.support_resistance, action,
                                                 config.stop_loss_multiplier, current_price),
            time_horizon=config.time_horizon,
            risk_level=config.risk_tolerance,
        )

    def generate_counter_trend_signal(self, analysis: TechnicalAnalysisResult, config: TimeframeConfig,
                                      current_price: float) -> Optional[TradingSignal]:
        rsi = analysis.momentum.rsi
        if 25 < rsi < 75:
            return None

        action = SignalAction.BUY if rsi <= 25 else SignalAction.SELL
        wanted = LevelType.SUPPORT if action == SignalAction.BUY else LevelType.RESISTANCE
        relevant = [lvl for lvl in analysis.support_resistance if lvl.type == wanted]
        if not relevant:
            return None

        confidence = min(0.8, 0.5 + abs(rsi - 50) / 100)
        if confidence < config.min_confidence:
            return None

        extreme = "oversold" if action == SignalAction.BUY else "overbought"
        reasoning = [
            f"Counter-trend {action.value.lower()} signal",
            f"RSI at extreme {extreme} level: {rsi:.1f}",
            f"{len(relevant)} key level(s) providing confluence",
        ]
        if analysis.volatility.bollinger_bands.squeeze:
            reasoning.append("Bollinger Band squeeze suggests imminent volatility expansion")

        return TradingSignal(
            action=action,
            confidence=confidence,
            reasoning=reasoning,
            price_targets=self.targets_from_levels(analysis.support_resistance, action,
                                                   confidence * 0.8, current_price),
            stop_loss=self.stop_loss_from_levels(analysis.support_resistance, action,
                                                 config.stop_loss_multiplier * 0.7, current_price),
            time_horizon=config.time_horizon,
            risk_level=RiskLevel.HIGH,
        )

    @staticmethod
    def targets_from_levels(levels: Sequence[SupportResistanceLevel], action: SignalAction,
                            confidence: float, current_price: float) -> List[PriceTarget]:
        """Up to three targets at the strongest opposite-side levels"""
        if action == SignalAction.HOLD:
            return []

        if action == SignalAction.BUY:
            relevant = [lvl for lvl in levels if lvl.type == LevelType.RESISTANCE and lvl.level > current_price]
        else:
            relevant = [lvl for lvl in levels if lvl.type == LevelType.SUPPORT and lvl.level < current_price]
        relevant.sort(key=lambda lvl: lvl.strength, reverse=True)

        targets = []
        for i, level in enumerate(relevant[:3]):
            targets.append(PriceTarget(
                level=level.level,
                type=TargetType.TARGET,
                confidence=max(0.3, min(1.0, confidence * level.strength * (1 - i * 0.15))),
                reasoning=f"{level.type.value.lower()} level with {level.touches} touches "
                          f"(strength: {level.strength * 100:.0f}%)",
            ))
        return targets

    @staticmethod
    def stop_loss_from_levels(levels: Sequence[SupportResistanceLevel], action: SignalAction,
                              multiplier: float, current_price: float) -> float:
        """Strongest protective level padded by 2% x multiplier, or 0 when none exists"""
        if action == SignalAction.BUY:
            relevant = [lvl for lvl in levels if lvl.type == LevelType.SUPPORT and lvl.level < current_price]
        elif action == SignalAction.SELL:
            relevant = [lvl for lvl in levels if lvl.type == LevelType.RESISTANCE and lvl.level > current_price]
        else:
            return 0.0

        if not relevant:
            return 0.0

        base = max(relevant, key=lambda lvl: lvl.strength).level
        if action == SignalAction.BUY:
            return base * (1 - 0.02 * multiplier)
        return base * (1 + 0.02 * multiplier)

    @staticmethod
    def enhance_with_confluence(signal: TradingSignal, confluence: ConfluenceScore,
                                strength: SignalStrength) -> TradingSignal:
        bonus = min(0.2, confluence.score * 0.2)
        reasoning = list(signal.reasoning)
        reasoning.append(f"Confluence score: {confluence.score * 100:.0f}%")
        reasoning.extend(confluence.factors[:3])

        if signal.action == SignalAction.BUY and strength.bullish > 0.6:
            reasoning.append(f"Strong bullish indicator alignment ({strength.bullish * 100:.0f}%)")
        elif signal.action == SignalAction.SELL and strength.bearish > 0.6:
            reasoning.append(f"Strong bearish indicator alignment ({strength.bearish * 100:.0f}%)")

        return replace(signal, confidence=min(0.95, signal.confidence + bonus), reasoning=reasoning)

    # ===========================
    # CONSOLIDATION
    # ===========================

    def consolidate_signals(self, signals: Sequence[TradingSignal]) -> List[TradingSignal]:
        """At most one BUY and one SELL; a single HOLD when neither is present"""
        buys = [s for s in signals if s.action == SignalAction.BUY]
        sells = [s for s in signals if s.action == SignalAction.SELL]
        holds = [s for s in signals if s.action == SignalAction.HOLD]

        consolidated = []
        for group in (buys, sells):
            if group:
                consolidated.append(self._merge_group(group))

        if not consolidated:
            consolidated.append(self._merge_group(holds) if holds else self.neutral_hold_signal())

        return sorted(consolidated, key=lambda s: s.confidence, reverse=True)

    def _merge_group(self, group: Sequence[TradingSignal]) -> TradingSignal:
        best = max(group, key=lambda s: s.confidence)
        if len(group) == 1:
            return best

        reasoning = []
        for signal in [best] + [s for s in group if s is not best]:
            for reason in signal.reasoning:
                if reason not in reasoning:
                    reasoning.append(reason)

        all_targets = [t for s in group for t in s.price_targets]
        targets = PriceTargetCalculator.deduplicate_targets(all_targets)

        stop_loss = best.stop_loss or next((s.stop_loss for s in group if s.stop_loss), 0.0)

        return replace(
            best,
            confidence=min(0.95, sum(s.confidence for s in group) / len(group)),
            reasoning=reasoning[:self.MAX_REASONS],
            price_targets=targets[:self.MAX_TARGETS],
            stop_loss=stop_loss,
            risk_level=RiskLevel.most_conservative([s.risk_level for s in group]),
        )

    @staticmethod
    def neutral_hold_signal() -> TradingSignal:
        return TradingSignal(
            action=SignalAction.HOLD,
            confidence=0.5,
            reasoning=["No clear directional signal", "Technical indicators are mixed or neutral"],
            price_targets=[],
            stop_loss=0.0,
            time_horizon="Short-term (1-2 weeks)",
            risk_level=RiskLevel.MEDIUM,
        )


def create_signal_generator() -> SignalGenerator:
    return SignalGenerator()
