"""
Recommendation engine: overlays fundamental bias on technical signals, scores quality,
assesses risk and finalises price targets.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from analysis.price_targets import PriceTargetCalculator
from core.models import (
    Bar, EventImpact, FundamentalAnalysisResult, IndicatorSignal, MarketDirection, PatternType, PriceTarget,
    SignalAction, TargetType, TechnicalAnalysisResult, TradingSignal, TrendDirection,
)
from signals.generator import SignalGenerator


@dataclass(frozen=True)
class FundamentalBias:
    direction: SignalAction
    strength: float
    factors: List[str]


@dataclass(frozen=True)
class QualityScore:
    score: float
    factors: List[str]


@dataclass(frozen=True)
class MarketContext:
    summary: str
    key_points: List[str]
    risk_factors: List[str]
    opportunities: List[str]


def _days_until(when: datetime) -> float:
    now = datetime.now(timezone.utc) if when.tzinfo else datetime.now()
    return (when - now).total_seconds() / 86400


class RecommendationEngine:
    """Fuses technical signals with an external fundamental view"""

    EVENT_HORIZON_DAYS = 7

    def __init__(self, signal_generator: Optional[SignalGenerator] = None,
                 target_calculator: Optional[PriceTargetCalculator] = None):
        self.signal_generator = signal_generator or SignalGenerator()
        self.target_calculator = target_calculator or PriceTargetCalculator()
        self.logger = logging.getLogger(__name__)

    def synthesize_recommendations(self, technical: TechnicalAnalysisResult,
                                   fundamental: Optional[FundamentalAnalysisResult],
                                   current_price: float, bars: Sequence[Bar], timeframe: str = '1D',
                                   supplementary_signals: Sequence[TradingSignal] = ()) -> List[TradingSignal]:
        """Full pipeline from technical analysis to consolidated, ranked recommendations"""
        signals = self.signal_generator.generate_technical_signals(technical, timeframe, current_price)
        signals.extend(supplementary_signals)

        targets = self.calculate_enhanced_price_targets(technical, current_price, bars)
        bias = self.compute_fundamental_bias(fundamental) if fundamental else None

        final = []
        for signal in signals:
            if bias is not None:
                signal = self.apply_fundamental_overlay(signal, bias)
            signal = self.calculate_confidence_score(signal, technical, fundamental)
            signal = self.assess_risk(signal, technical, fundamental, current_price)
            signal = self.enhance_with_price_targets(signal, targets, current_price)
            final.append(signal)

        consolidated = self.signal_generator.consolidate_signals(final)
        self.logger.debug(
            f"🎯 Recommendations: {[(s.action.value, round(s.confidence, 2)) for s in consolidated]}"
        )
        return consolidated

    # ===========================
    # FUNDAMENTAL OVERLAY
    # ===========================

    @staticmethod
    def compute_fundamental_bias(fundamental: FundamentalAnalysisResult) -> FundamentalBias:
        factors = []
        bullish = 0.0
        bearish = 0.0

        # news sentiment 30%
        news = fundamental.news_analysis.sentiment_score
        if news > 0.6:
            bullish += 0.3
            factors.append(f"Positive news sentiment ({news * 100:.0f}%)")
        elif news < 0.4:
            bearish += 0.3
            factors.append(f"Negative news sentiment ({news * 100:.0f}%)")

        # market sentiment 25%
        overall = fundamental.market_sentiment.overall
        if overall > 0.65:
            bullish += 0.25
            factors.append("Strong positive market sentiment")
        elif overall < 0.35:
            bearish += 0.25
            factors.append("Strong negative market sentiment")

        # sector relative strength 20%
        relative = fundamental.sector_analysis.relative_strength
        if relative > 0.7:
            bullish += 0.2
            factors.append("Strong sector outperformance")
        elif relative < 0.3:
            bearish += 0.2
            factors.append("Sector underperformance")

        # financial metrics 15%
        metrics = fundamental.financial_metrics
        growth = metrics.revenue_growth
        margin = metrics.profit_margin
        if growth is not None and margin is not None:
            if growth > 0.15 and margin > 0.1:
                bullish += 0.15
                factors.append(f"Strong financials ({growth * 100:.1f}% revenue growth)")
            elif growth < -0.05 or margin < 0.02:
                bearish += 0.15
                factors.append("Weak financial performance")

        # high-impact events add uncertainty 10%
        high_impact = [e for e in fundamental.upcoming_events if e.expected_impact == EventImpact.HIGH]
        if high_impact:
            bearish += 0.05
            factors.append(f"{len(high_impact)} high-impact event(s) approaching")

        net = bullish - bearish
        if net > 0.1:
            direction = SignalAction.BUY
        elif net < -0.1:
            direction = SignalAction.SELL
        else:
            direction = SignalAction.HOLD

        return FundamentalBias(direction=direction, strength=min(1.0, abs(net)), factors=factors[:4])

    @staticmethod
    def apply_fundamental_overlay(signal: TradingSignal, bias: FundamentalBias) -> TradingSignal:
        if bias.direction == signal.action:
            return replace(
                signal,
                confidence=min(0.95, signal.confidence + bias.strength * 0.15),
                reasoning=list(signal.reasoning)
                + [f"Fundamental analysis supports {signal.action.value.lower()} bias"]
                + bias.factors[:2],
            )

        if bias.direction != SignalAction.HOLD and bias.strength > 0.6:
            return replace(
                signal,
                confidence=max(0.3, signal.confidence - bias.strength * 0.2),
                reasoning=list(signal.reasoning) + [
                    f"Fundamental analysis suggests {bias.direction.value.lower()} bias (conflicting signal)",
                    "Consider fundamental factors before acting on technical signal",
                ],
                risk_level=signal.risk_level.escalate(),
            )

        return replace(signal, reasoning=list(signal.reasoning) + ["Fundamental analysis is neutral to technical signal"])

    # ===========================
    # QUALITY SCORING
    # ===========================

    def calculate_confidence_score(self, signal: TradingSignal, technical: TechnicalAnalysisResult,
                                   fundamental: Optional[FundamentalAnalysisResult]) -> TradingSignal:
        technical_quality = self.assess_technical_quality(technical)
        adjustment = technical_quality.score * 0.1

        if fundamental is not None:
            adjustment += self.assess_fundamental_quality(fundamental).score * 0.05

        if technical.trend.strength > 0.7:
            adjustment += 0.05
        if any(lvl.volume > 0 for lvl in technical.support_resistance):
            adjustment += 0.03

        return replace(
            signal,
            confidence=max(0.2, min(0.95, signal.confidence + adjustment)),
            reasoning=list(signal.reasoning)
            + [f"Confidence enhanced by technical quality ({technical_quality.score * 100:.0f}%)"],
        )

    @staticmethod
    def assess_technical_quality(technical: TechnicalAnalysisResult) -> QualityScore:
        factors = []
        score = 0.0

        indicators = technical.indicators
        if indicators:
            bullish = sum(1 for i in indicators if i.signal == IndicatorSignal.BULLISH)
            bearish = sum(1 for i in indicators if i.signal == IndicatorSignal.BEARISH)
            alignment = max(bullish, bearish) / len(indicators)
            score += alignment * 0.3
            factors.append(f"Indicator alignment: {alignment * 100:.0f}%")

        strong_patterns = [p for p in technical.patterns if p.confidence > 0.7]
        if strong_patterns:
            score += 0.25
            factors.append(f"{len(strong_patterns)} high-confidence pattern(s)")
        elif technical.patterns:
            score += 0.15
            factors.append(f"{len(technical.patterns)} pattern(s) identified")

        strong_levels = [lvl for lvl in technical.support_resistance if lvl.strength > 0.7]
        if len(strong_levels) >= 2:
            score += 0.25
            factors.append(f"{len(strong_levels)} strong S/R levels")
        elif strong_levels:
            score += 0.15
            factors.append("1 strong S/R level")

        if technical.trend.strength > 0.7:
            score += 0.2
            factors.append(f"Clear {technical.trend.direction.value.lower()} "
                           f"({technical.trend.strength * 100:.0f}% strength)")
        elif technical.trend.strength > 0.4:
            score += 0.1
            factors.append("Moderate trend strength")

        return QualityScore(score=min(1.0, score), factors=factors)

    @staticmethod
    def assess_fundamental_quality(fundamental: FundamentalAnalysisResult) -> QualityScore:
        factors = []
        score = 0.0

        articles = len(fundamental.news_analysis.relevant_news)
        if articles >= 5:
            score += 0.4
            factors.append(f"Comprehensive news coverage ({articles} articles)")
        elif articles >= 2:
            score += 0.25
            factors.append(f"Adequate news coverage ({articles} articles)")

        metrics = fundamental.financial_metrics
        complete = bool(metrics.pe and metrics.pe > 0 and metrics.eps and metrics.revenue and metrics.revenue > 0)
        if complete:
            score += 0.3
            factors.append("Complete financial metrics available")
        else:
            score += 0.15
            factors.append("Partial financial data available")

        if fundamental.sector_analysis.peer_comparison:
            score += 0.2
            factors.append("Sector comparison available")

        if fundamental.upcoming_events:
            score += 0.1
            factors.append(f"{len(fundamental.upcoming_events)} upcoming event(s)")

        return QualityScore(score=min(1.0, score), factors=factors)

    # ===========================
    # RISK
    # ===========================

    def assess_risk(self, signal: TradingSignal, technical: TechnicalAnalysisResult,
                    fundamental: Optional[FundamentalAnalysisResult], current_price: float) -> TradingSignal:
        """Escalate risk one step per qualifying factor; never downgrades"""
        risk = signal.risk_level
        factors = []

        volatility = technical.volatility
        if volatility.volatility_rank > 0.8:
            risk = risk.escalate()
            factors.append("High volatility environment")
        elif volatility.volatility_rank < 0.2:
            factors.append("Low volatility - potential for sudden moves")

        if volatility.bollinger_bands.squeeze:
            factors.append("Bollinger Band squeeze - volatility expansion expected")

        if technical.trend.direction == TrendDirection.SIDEWAYS:
            risk = risk.escalate()
            factors.append("Sideways trend increases directional uncertainty")

        if current_price > 0:
            nearby = [lvl for lvl in technical.support_resistance
                      if abs(lvl.level - current_price) / current_price < 0.02]
            if nearby:
                risk = risk.escalate()
                factors.append(f"Price near key S/R level ({nearby[0].level:.2f})")

        if fundamental is not None:
            soon = [e for e in fundamental.upcoming_events
                    if 0 <= _days_until(e.date) <= self.EVENT_HORIZON_DAYS]
            high_impact = [e for e in soon if e.expected_impact == EventImpact.HIGH]
            if high_impact:
                risk = risk.escalate()
                factors.append(f"{len(high_impact)} high-impact event(s) approaching")
            if any(e.type.upper() == 'EARNINGS' for e in soon):
                risk = risk.escalate()
                factors.append("Earnings announcement approaching")

        if any(p.type == PatternType.SYMMETRICAL_TRIANGLE and p.confidence > 0.6 for p in technical.patterns):
            risk = risk.escalate()
            factors.append("Symmetrical triangle - directional uncertainty")

        return replace(signal, risk_level=risk, reasoning=list(signal.reasoning) + factors[:3])

    # ===========================
    # PRICE TARGETS
    # ===========================

    def calculate_enhanced_price_targets(self, technical: TechnicalAnalysisResult, current_price: float,
                                         bars: Sequence[Bar]) -> List[PriceTarget]:
        trend = technical.trend
        direction = None
        if trend.direction == TrendDirection.UPTREND and trend.strength > 0.5:
            direction = MarketDirection.BULLISH
        elif trend.direction == TrendDirection.DOWNTREND and trend.strength > 0.5:
            direction = MarketDirection.BEARISH

        return self.target_calculator.calculate_comprehensive_targets(
            current_price, bars, technical.support_resistance, technical.patterns, direction,
        )

    @staticmethod
    def enhance_with_price_targets(signal: TradingSignal, targets: Sequence[PriceTarget],
                                   current_price: float) -> TradingSignal:
        if signal.action == SignalAction.HOLD:
            return signal

        is_buy = signal.action == SignalAction.BUY

        def on_profit_side(target: PriceTarget) -> bool:
            return target.level > current_price if is_buy else target.level < current_price

        relevant = [t for t in targets if t.type == TargetType.TARGET and on_profit_side(t)]
        if not relevant:
            relevant = [t for t in signal.price_targets if t.type == TargetType.TARGET and on_profit_side(t)]
        relevant.sort(key=lambda t: t.confidence, reverse=True)

        stop_loss = signal.stop_loss
        if not stop_loss:
            protective = [
                t for t in targets
                if t.type == TargetType.STOP_LOSS and (t.level < current_price if is_buy else t.level > current_price)
            ]
            if protective:
                stop_loss = min(protective, key=lambda t: abs(t.level - current_price)).level

        return replace(
            signal,
            price_targets=relevant[:3],
            stop_loss=stop_loss,
        )

    # ===========================
    # CONTEXT
    # ===========================

    @staticmethod
    def generate_market_context(technical: TechnicalAnalysisResult,
                                fundamental: Optional[FundamentalAnalysisResult]) -> MarketContext:
        trend = technical.trend
        key_points = [
            f"Trend: {trend.direction.value} ({trend.strength * 100:.0f}% strength)",
            f"Momentum: {technical.momentum.interpretation}",
        ]
        risk_factors = []
        opportunities = []

        if technical.patterns:
            key_points.append(f"{len(technical.patterns)} chart pattern(s) identified")

        if technical.volatility.volatility_rank > 0.7:
            risk_factors.append("High volatility environment")
        elif technical.volatility.bollinger_bands.squeeze:
            opportunities.append("Bollinger Band squeeze - potential breakout setup")

        strong_levels = [lvl for lvl in technical.support_resistance if lvl.strength > 0.7]
        if strong_levels:
            opportunities.append(f"{len(strong_levels)} strong support/resistance level(s) for trade planning")

        if fundamental is not None:
            sentiment = fundamental.market_sentiment.overall
            if sentiment > 0.7:
                opportunities.append("Strong positive market sentiment")
            elif sentiment < 0.3:
                risk_factors.append("Negative market sentiment")

            high_impact = [e for e in fundamental.upcoming_events if e.expected_impact == EventImpact.HIGH]
            if high_impact:
                risk_factors.append(f"{len(high_impact)} high-impact event(s) approaching")

        if trend.direction == TrendDirection.UPTREND:
            tone = "bullish"
        elif trend.direction == TrendDirection.DOWNTREND:
            tone = "bearish"
        else:
            tone = "neutral"

        summary = (f"Market shows {tone} technical structure with {trend.strength * 100:.0f}% trend strength. "
                   f"{len(opportunities)} opportunity factor(s) and {len(risk_factors)} risk factor(s) identified.")

        return MarketContext(summary=summary, key_points=key_points,
                             risk_factors=risk_factors, opportunities=opportunities)
