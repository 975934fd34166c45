"""
Multi-timeframe confluence analysis across the 1H / 4H / 1D / 1W series.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Sequence

import numpy as np

from analysis.technical import TechnicalAnalyzer
from core.errors import AnalysisError, AnalysisErrorType
from core.models import (
    Bar, IndicatorSignal, MultiTimeframeResult, MultiTimeframeRiskAssessment, PositionSide,
    PriceTarget, RiskLevel, SignalAction, TargetType, TimeframeAnalysis, TimeframeCorrelation,
    TimeframeRisk, TradingSignal, TrendDirection,
)
from signals.generator import SignalGenerator

STANDARD_TIMEFRAMES = ['1H', '4H', '1D', '1W']
TIMEFRAME_WEIGHTS = {
    '1H': 0.15,
    '4H': 0.25,
    '1D': 0.35,
    '1W': 0.25,
}
POSITION_RISK_MULTIPLIERS = {
    RiskLevel.LOW: 1.2,
    RiskLevel.MEDIUM: 1.0,
    RiskLevel.HIGH: 0.6,
}


class MultiTimeframeAnalyzer:
    """Runs the technical pipeline per timeframe and blends the results"""

    LEVEL_TOLERANCE = 0.02
    TARGET_TOLERANCE = 0.02

    def __init__(self, technical_analyzer: Optional[TechnicalAnalyzer] = None,
                 signal_generator: Optional[SignalGenerator] = None, max_workers: int = 4):
        self.technical_analyzer = technical_analyzer or TechnicalAnalyzer()
        self.signal_generator = signal_generator or SignalGenerator()
        self.max_workers = max_workers
        self.logger = logging.getLogger(__name__)

    def analyze_multiple_timeframes(self, symbol: str, bars_by_timeframe: Dict[str, Sequence[Bar]],
                                    primary_timeframe: str = '1D') -> MultiTimeframeResult:
        # labels are matched case-insensitively ('1d' is '1D')
        bars_by_timeframe = {tf.upper(): bars for tf, bars in bars_by_timeframe.items()}
        primary_timeframe = primary_timeframe.upper()
        eligible = [
            tf for tf in STANDARD_TIMEFRAMES
            if len(bars_by_timeframe.get(tf) or []) >= self.technical_analyzer.min_bars
        ]
        self.logger.debug(f"🔍 MTF {symbol}: eligible timeframes {eligible}")

        analyses: Dict[str, TimeframeAnalysis] = {}
        if eligible:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(eligible))) as executor:
                future_to_tf = {
                    executor.submit(self._analyze_timeframe, symbol, tf, bars_by_timeframe[tf]): tf
                    for tf in eligible
                }
                for future in as_completed(future_to_tf):
                    tf = future_to_tf[future]
                    try:
                        analyses[tf] = future.result()
                    except Exception as e:
                        self.logger.warning(f"⚠️ Skipping {symbol} {tf}: {e}")

        if not analyses:
            raise AnalysisError(
                AnalysisErrorType.DATA_UNAVAILABLE,
                "No timeframe data available for analysis",
                recoverable=True,
                suggested_action="Provide at least 20 bars for one of 1H, 4H, 1D or 1W",
                details={'symbol': symbol},
            )

        timeframe_analyses = [analyses[tf] for tf in STANDARD_TIMEFRAMES if tf in analyses]
        correlation = self.calculate_timeframe_correlation(timeframe_analyses)
        confluence_signals = self.generate_confluence_signals(timeframe_analyses, correlation)
        overall_confidence = self.calculate_overall_confidence(timeframe_analyses, correlation)
        risk = self.assess_multi_timeframe_risk(timeframe_analyses, confluence_signals)

        self.logger.info(
            f"📊 MTF {symbol}: {confluence_signals[0].action.value} "
            f"({confluence_signals[0].confidence:.2f}), overall confidence {overall_confidence:.2f}, "
            f"risk {risk.overall_risk.value}"
        )

        return MultiTimeframeResult(
            symbol=symbol,
            primary_timeframe=primary_timeframe,
            timeframe_analyses=timeframe_analyses,
            confluence_signals=confluence_signals,
            overall_confidence=overall_confidence,
            timeframe_correlation=correlation,
            risk_assessment=risk,
        )

    def _analyze_timeframe(self, symbol: str, timeframe: str, bars: Sequence[Bar]) -> TimeframeAnalysis:
        analysis = self.technical_analyzer.analyze(symbol, timeframe, bars)
        signals = self.signal_generator.generate_technical_signals(analysis, timeframe, bars[-1].close)
        confidence = self.calculate_timeframe_confidence(analysis, signals)
        return TimeframeAnalysis(
            timeframe=timeframe,
            analysis=analysis,
            signals=signals,
            weight=TIMEFRAME_WEIGHTS[timeframe],
            confidence=confidence,
        )

    @staticmethod
    def calculate_timeframe_confidence(analysis, signals: Sequence[TradingSignal]) -> float:
        confidence = 0.5 + analysis.trend.strength * 0.2

        if analysis.patterns:
            confidence += np.mean([p.confidence for p in analysis.patterns]) * 0.2

        if analysis.indicators:
            bullish = sum(1 for i in analysis.indicators if i.signal == IndicatorSignal.BULLISH)
            bearish = sum(1 for i in analysis.indicators if i.signal == IndicatorSignal.BEARISH)
            confidence += abs(bullish - bearish) / len(analysis.indicators) * 0.15

        if signals:
            confidence += np.mean([s.confidence for s in signals]) * 0.15

        return float(np.clip(confidence, 0.1, 0.9))

    # ===========================
    # CORRELATION
    # ===========================

    def calculate_timeframe_correlation(self, analyses: Sequence[TimeframeAnalysis]) -> TimeframeCorrelation:
        if len(analyses) < 2:
            return TimeframeCorrelation(0.5, 0.5, 0.5, [])

        return TimeframeCorrelation(
            trend_alignment=self.calculate_trend_alignment(analyses),
            momentum_alignment=self.calculate_momentum_alignment(analyses),
            support_resistance_alignment=self.calculate_support_resistance_alignment(analyses),
            conflicting_signals=self.identify_conflicting_signals(analyses),
        )

    @staticmethod
    def calculate_trend_alignment(analyses: Sequence[TimeframeAnalysis]) -> float:
        directions = [a.analysis.trend.direction for a in analyses]
        majority = max(directions.count(d) for d in TrendDirection)
        return majority / len(directions)

    @staticmethod
    def calculate_momentum_alignment(analyses: Sequence[TimeframeAnalysis]) -> float:
        rsi_values = [a.analysis.momentum.rsi for a in analyses]
        histograms = [a.analysis.momentum.macd.histogram for a in analyses]

        overbought = sum(1 for r in rsi_values if r > 70)
        oversold = sum(1 for r in rsi_values if r < 30)
        neutral = len(rsi_values) - overbought - oversold
        rsi_alignment = max(overbought, oversold, neutral) / len(rsi_values)

        positive = sum(1 for h in histograms if h > 0)
        negative = sum(1 for h in histograms if h < 0)
        macd_alignment = max(positive, negative) / len(histograms)

        return (rsi_alignment + macd_alignment) / 2

    def calculate_support_resistance_alignment(self, analyses: Sequence[TimeframeAnalysis]) -> float:
        """Share of same-type cross-timeframe level pairs lying within 2% of each other"""
        levels = [(a.timeframe, lvl) for a in analyses for lvl in a.analysis.support_resistance]

        pairs = 0
        aligned = 0
        for i in range(len(levels)):
            tf_a, level_a = levels[i]
            for j in range(i + 1, len(levels)):
                tf_b, level_b = levels[j]
                if tf_a == tf_b or level_a.type != level_b.type or level_a.level <= 0:
                    continue
                pairs += 1
                if abs(level_a.level - level_b.level) / level_a.level <= self.LEVEL_TOLERANCE:
                    aligned += 1

        if pairs == 0:
            return 0.5
        return aligned / pairs

    @staticmethod
    def identify_conflicting_signals(analyses: Sequence[TimeframeAnalysis]) -> List[str]:
        conflicts = []

        up = [a.timeframe for a in analyses if a.analysis.trend.direction == TrendDirection.UPTREND]
        down = [a.timeframe for a in analyses if a.analysis.trend.direction == TrendDirection.DOWNTREND]
        if up and down:
            conflicts.append(f"Trend conflict: {', '.join(up)} showing uptrend while "
                             f"{', '.join(down)} showing downtrend")

        buys = [a.timeframe for a in analyses if any(s.action == SignalAction.BUY for s in a.signals)]
        sells = [a.timeframe for a in analyses if any(s.action == SignalAction.SELL for s in a.signals)]
        if buys and sells:
            conflicts.append(f"Signal conflict: {', '.join(buys)} showing buy signals while "
                             f"{', '.join(sells)} showing sell signals")

        return conflicts

    # ===========================
    # CONFLUENCE SIGNAL
    # ===========================

    def generate_confluence_signals(self, analyses: Sequence[TimeframeAnalysis],
                                    correlation: TimeframeCorrelation) -> List[TradingSignal]:
        scores = {SignalAction.BUY: 0.0, SignalAction.SELL: 0.0, SignalAction.HOLD: 0.0}
        for analysis in analyses:
            weight = analysis.weight * analysis.confidence
            for signal in analysis.signals:
                scores[signal.action] += weight * signal.confidence

        total = sum(scores.values())
        if total == 0:
            return [self._hold_signal("No clear signals across timeframes")]

        buy_share = scores[SignalAction.BUY] / total
        sell_share = scores[SignalAction.SELL] / total

        if buy_share > 0.4 and buy_share > sell_share:
            return [self._directional_signal(SignalAction.BUY, analyses, correlation, buy_share)]
        if sell_share > 0.4 and sell_share > buy_share:
            return [self._directional_signal(SignalAction.SELL, analyses, correlation, sell_share)]

        return [self._hold_signal(f"Mixed signals: {buy_share * 100:.0f}% buy, {sell_share * 100:.0f}% sell")]

    def _directional_signal(self, action: SignalAction, analyses: Sequence[TimeframeAnalysis],
                            correlation: TimeframeCorrelation, share: float) -> TradingSignal:
        supporting = [a.timeframe for a in analyses if any(s.action == action for s in a.signals)]
        targets = [t for a in analyses for s in a.signals if s.action == action for t in s.price_targets]

        reasoning = [
            f"Multi-timeframe confluence: {', '.join(supporting)} showing {action.value.lower()} signals",
            f"Trend alignment: {correlation.trend_alignment * 100:.0f}%",
            f"Momentum alignment: {correlation.momentum_alignment * 100:.0f}%",
        ]
        if correlation.conflicting_signals:
            reasoning.append(f"Note: {len(correlation.conflicting_signals)} conflicting signals identified")

        return TradingSignal(
            action=action,
            confidence=min(0.9, share * correlation.trend_alignment),
            reasoning=reasoning,
            price_targets=self.calculate_confluence_price_targets(targets),
            stop_loss=self.calculate_confluence_stop_loss(analyses, action),
            time_horizon=self.determine_time_horizon(supporting),
            risk_level=self.determine_risk_level(correlation, share),
        )

    @staticmethod
    def _hold_signal(reason: str) -> TradingSignal:
        return TradingSignal(
            action=SignalAction.HOLD,
            confidence=0.6,
            reasoning=[reason, "Waiting for clearer multi-timeframe confluence"],
            price_targets=[],
            stop_loss=0.0,
            time_horizon="Short-term (1-2 weeks)",
            risk_level=RiskLevel.LOW,
        )

    def calculate_confluence_price_targets(self, targets: Sequence[PriceTarget]) -> List[PriceTarget]:
        """Cluster targets within 2%, keep multi-member clusters, top 3 by size"""
        if not targets:
            return []

        groups: List[List[PriceTarget]] = []
        anchors: List[float] = []
        for target in targets:
            for anchor, group in zip(anchors, groups):
                if anchor and abs(target.level - anchor) / anchor <= self.TARGET_TOLERANCE:
                    group.append(target)
                    break
            else:
                anchors.append(target.level)
                groups.append([target])

        clusters = sorted((g for g in groups if len(g) > 1), key=len, reverse=True)[:3]
        result = []
        for group in clusters:
            avg_level = sum(t.level for t in group) / len(group)
            avg_confidence = sum(t.confidence for t in group) / len(group)
            result.append(PriceTarget(
                level=avg_level,
                type=TargetType.TARGET,
                confidence=min(0.9, avg_confidence * (len(group) / len(targets)) * 2),
                reasoning=f"Confluence target from {len(group)} timeframe signals",
            ))
        return result

    @staticmethod
    def calculate_confluence_stop_loss(analyses: Sequence[TimeframeAnalysis], action: SignalAction) -> float:
        stops = [s.stop_loss for a in analyses for s in a.signals if s.action == action and s.stop_loss > 0]
        if not stops:
            return 0.0
        return min(stops) if action == SignalAction.BUY else max(stops)

    @staticmethod
    def determine_time_horizon(supporting: Sequence[str]) -> str:
        has_long = any(tf in ('1D', '1W') for tf in supporting)
        has_short = any(tf in ('1H', '4H') for tf in supporting)
        if has_long and has_short:
            return "Medium to long-term (2-8 weeks)"
        if has_long:
            return "Long-term (4-12 weeks)"
        return "Short to medium-term (1-4 weeks)"

    @staticmethod
    def determine_risk_level(correlation: TimeframeCorrelation, confidence: float) -> RiskLevel:
        alignment = (correlation.trend_alignment + correlation.momentum_alignment) / 2
        score = alignment * confidence - len(correlation.conflicting_signals) * 0.1
        if score > 0.7:
            return RiskLevel.LOW
        if score > 0.4:
            return RiskLevel.MEDIUM
        return RiskLevel.HIGH

    # ===========================
    # CONFIDENCE & RISK
    # ===========================

    @staticmethod
    def calculate_overall_confidence(analyses: Sequence[TimeframeAnalysis],
                                     correlation: TimeframeCorrelation) -> float:
        total_weight = sum(a.weight for a in analyses)
        base = sum(a.confidence * a.weight for a in analyses) / total_weight if total_weight > 0 else 0.5
        bonus = (correlation.trend_alignment + correlation.momentum_alignment) / 2 * 0.2
        penalty = len(correlation.conflicting_signals) * 0.05
        return float(np.clip(base + bonus - penalty, 0.1, 0.9))

    def assess_multi_timeframe_risk(self, analyses: Sequence[TimeframeAnalysis],
                                    confluence_signals: Sequence[TradingSignal]) -> MultiTimeframeRiskAssessment:
        timeframe_risks = []
        risk_factors = []

        for analysis in analyses:
            volatility = analysis.analysis.volatility.volatility_rank
            strength = analysis.analysis.trend.strength
            factors = []

            risk = RiskLevel.MEDIUM
            if volatility > 0.8:
                risk = RiskLevel.HIGH
                factors.append(f"High volatility in {analysis.timeframe} timeframe")
            elif volatility < 0.3 and strength > 0.7:
                risk = RiskLevel.LOW

            if analysis.confidence < 0.4:
                risk = RiskLevel.HIGH
                factors.append(f"Low confidence in {analysis.timeframe} analysis")

            risk_factors.extend(factors)
            timeframe_risks.append(TimeframeRisk(analysis.timeframe, risk, factors))

        count = len(timeframe_risks)
        high = sum(1 for r in timeframe_risks if r.risk == RiskLevel.HIGH)
        low = sum(1 for r in timeframe_risks if r.risk == RiskLevel.LOW)
        if high > count / 2:
            overall = RiskLevel.HIGH
        elif low > count / 2:
            overall = RiskLevel.LOW
        else:
            overall = RiskLevel.MEDIUM

        position = PositionSide.NEUTRAL
        size = 0.5
        primary = confluence_signals[0] if confluence_signals else None
        if primary and primary.action != SignalAction.HOLD:
            position = PositionSide.LONG if primary.action == SignalAction.BUY else PositionSide.SHORT
            size = self.calculate_position_size(primary.confidence, overall)

        return MultiTimeframeRiskAssessment(
            overall_risk=overall,
            timeframe_risks=timeframe_risks,
            risk_factors=risk_factors,
            recommended_position=position,
            position_size=size,
        )

    @staticmethod
    def calculate_position_size(confidence: float, risk: RiskLevel) -> float:
        return float(np.clip(confidence * POSITION_RISK_MULTIPLIERS[risk], 0.1, 1.0))
