"""
Analysis controller: validates the request, pulls bars and fundamentals through the cache,
runs the technical and fundamental stages concurrently and assembles the final result.
"""

import re
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence
from concurrent.futures import ThreadPoolExecutor

from config.config import AnalysisConfig
from core.errors import AnalysisError, AnalysisErrorType, InsufficientDataError, InvalidSymbolError
from core.models import (
    AnalysisResult, Bar, ChartAnnotation, FundamentalAnalysisResult, IndicatorSignal, LevelType,
    MultiTimeframeResult, TargetType, TechnicalAnalysisResult, TradingSignal,
)
from analysis.technical import TechnicalAnalyzer
from analysis.multi_timeframe import MultiTimeframeAnalyzer
from signals.generator import SignalGenerator
from signals.recommendation import RecommendationEngine
from utils.cache import AnalysisCache

PriceProvider = Callable[[str, str], List[Bar]]
FundamentalProvider = Callable[[str], FundamentalAnalysisResult]

SYMBOL_PATTERN = re.compile(r'^[A-Z0-9]{1,10}(USD|EUR|GBP|JPY)?$')

SUPPORT_COLOR = '#00ff00'
RESISTANCE_COLOR = '#ff0000'
TARGET_COLOR = '#0000ff'
STOP_LOSS_COLOR = '#ff8800'

RETRY_ACTION = "Please try again in a few moments"


class AnalysisController:
    """Entry point for single- and multi-timeframe analysis of one symbol"""

    def __init__(self, price_provider: PriceProvider,
                 fundamental_provider: Optional[FundamentalProvider] = None,
                 config: Optional[AnalysisConfig] = None,
                 cache: Optional[AnalysisCache] = None):
        self.config = config or AnalysisConfig()
        self.price_provider = price_provider
        self.fundamental_provider = fundamental_provider
        self.cache = cache or AnalysisCache(self.config.cache)
        self.monitor = self.cache.monitor
        self.logger = logging.getLogger(__name__)

        self.technical_analyzer = TechnicalAnalyzer(min_bars=self.config.min_bars)
        self.signal_generator = SignalGenerator()
        self.recommendation_engine = RecommendationEngine(self.signal_generator)
        self.mtf_analyzer = MultiTimeframeAnalyzer(
            self.technical_analyzer, self.signal_generator, max_workers=self.config.max_workers
        )

        self.logger.debug(
            f"🚀 Analysis controller ready (min bars {self.config.min_bars}, "
            f"workers {self.config.max_workers}, cache size {self.cache.config.max_size})"
        )

    # ===========================
    # VALIDATION & DATA
    # ===========================

    @staticmethod
    def validate_symbol(symbol: str) -> str:
        """Normalized symbol, or InvalidSymbolError"""
        normalized = (symbol or '').strip().upper()
        if not SYMBOL_PATTERN.match(normalized):
            raise InvalidSymbolError(symbol)
        return normalized

    def get_price_data(self, symbol: str, timeframe: str) -> List[Bar]:
        cached = self.cache.get_price_data(symbol, timeframe)
        if cached is not None:
            return cached

        stop_timer = self.monitor.start_timer('price_data_fetch')
        try:
            bars = list(self.price_provider(symbol, timeframe))
        except AnalysisError:
            raise
        except Exception as e:
            self.logger.warning(f"⚠️ Price provider failed for {symbol} {timeframe}: {e}")
            raise AnalysisError(
                AnalysisErrorType.DATA_UNAVAILABLE,
                f"Price data unavailable for {symbol} ({timeframe})",
                recoverable=True,
                suggested_action=RETRY_ACTION,
                details={'symbol': symbol, 'timeframe': timeframe, 'cause': str(e)},
            ) from e
        finally:
            stop_timer()

        self.cache.set_price_data(symbol, timeframe, bars)
        return bars

    # ===========================
    # SINGLE TIMEFRAME
    # ===========================

    def analyze_symbol(self, symbol: str, timeframe: Optional[str] = None,
                       params: Optional[Dict] = None) -> AnalysisResult:
        symbol = self.validate_symbol(symbol)
        timeframe = timeframe or self.config.default_timeframe

        cached = self.cache.get_analysis(symbol, timeframe, params)
        if cached is not None:
            self.logger.debug(f"💾 Cache hit for {symbol} {timeframe}")
            return cached

        stop_timer = self.monitor.start_timer('analysis')
        try:
            result = self._run_analysis(symbol, timeframe)
        except AnalysisError:
            raise
        except Exception as e:
            self.logger.error(f"❌ Analysis failed for {symbol} {timeframe}: {e}")
            raise AnalysisError(
                AnalysisErrorType.ANALYSIS_TIMEOUT,
                f"Analysis failed for {symbol}: {e}",
                recoverable=True,
                suggested_action=RETRY_ACTION,
                details={'symbol': symbol, 'timeframe': timeframe},
            ) from e
        finally:
            stop_timer()

        self.cache.set_analysis(symbol, timeframe, result, params)
        return result

    def _run_analysis(self, symbol: str, timeframe: str) -> AnalysisResult:
        bars = self.get_price_data(symbol, timeframe)
        if len(bars) < self.config.min_bars:
            raise InsufficientDataError(symbol, timeframe, len(bars), self.config.min_bars)

        current_price = bars[-1].close
        self.logger.info(f"🔍 Analyzing {symbol} {timeframe} ({len(bars)} bars, last {current_price:.2f})")

        with ThreadPoolExecutor(max_workers=2) as executor:
            technical_future = executor.submit(self.technical_analyzer.analyze, symbol, timeframe, bars)
            fundamental_future = executor.submit(self._fetch_fundamentals, symbol)

            try:
                technical = technical_future.result()
            except Exception as e:
                self.logger.warning(f"⚠️ Technical stage failed for {symbol}, using neutral result: {e}")
                technical = TechnicalAnalysisResult.empty()

            try:
                fundamental = fundamental_future.result()
            except Exception as e:
                self.logger.warning(f"⚠️ Fundamental stage failed for {symbol}, using neutral result: {e}")
                fundamental = FundamentalAnalysisResult.empty(symbol)

        supplementary = self.technical_analyzer.generate_signals(technical, current_price)
        recommendations = self.recommendation_engine.synthesize_recommendations(
            technical, fundamental, current_price, bars, timeframe, supplementary_signals=supplementary
        )

        confidence = self.calculate_overall_confidence(technical, fundamental, recommendations)
        annotations = self.generate_chart_annotations(technical, recommendations)
        summary = self.generate_summary(symbol, technical, fundamental, recommendations, confidence)

        primary = recommendations[0] if recommendations else None
        self.logger.info(
            f"✅ {symbol} {timeframe}: {primary.action.value if primary else 'HOLD'} "
            f"(overall confidence {confidence:.2f})"
        )

        return AnalysisResult(
            symbol=symbol,
            timestamp=datetime.now(),
            technical_analysis=technical,
            fundamental_analysis=fundamental,
            recommendations=recommendations,
            confidence=confidence,
            chart_annotations=annotations,
            summary=summary,
        )

    def _fetch_fundamentals(self, symbol: str) -> FundamentalAnalysisResult:
        if self.fundamental_provider is None:
            return FundamentalAnalysisResult.empty(symbol)
        return self.fundamental_provider(symbol)

    # ===========================
    # MULTI TIMEFRAME
    # ===========================

    def analyze_multiple_timeframes(self, symbol: str, timeframes: Optional[Sequence[str]] = None,
                                    primary_timeframe: Optional[str] = None) -> MultiTimeframeResult:
        symbol = self.validate_symbol(symbol)
        timeframes = list(timeframes or self.config.timeframes)
        primary_timeframe = primary_timeframe or self.config.default_timeframe
        params = {'timeframes': tuple(timeframes), 'primary': primary_timeframe}

        cached = self.cache.get_analysis(symbol, 'MTF', params)
        if cached is not None:
            return cached

        bars_by_timeframe = {}
        for timeframe in timeframes:
            try:
                bars_by_timeframe[timeframe] = self.get_price_data(symbol, timeframe)
            except AnalysisError as e:
                self.logger.warning(f"⚠️ Skipping {symbol} {timeframe}: {e.message}")

        stop_timer = self.monitor.start_timer('multi_timeframe_analysis')
        try:
            result = self.mtf_analyzer.analyze_multiple_timeframes(symbol, bars_by_timeframe, primary_timeframe)
        except AnalysisError:
            raise
        except Exception as e:
            self.logger.error(f"❌ Multi-timeframe analysis failed for {symbol}: {e}")
            raise AnalysisError(
                AnalysisErrorType.ANALYSIS_TIMEOUT,
                f"Multi-timeframe analysis failed for {symbol}: {e}",
                recoverable=True,
                suggested_action=RETRY_ACTION,
                details={'symbol': symbol, 'timeframes': timeframes},
            ) from e
        finally:
            stop_timer()

        self.cache.set_analysis(symbol, 'MTF', result, params)
        return result

    # ===========================
    # RESULT ASSEMBLY
    # ===========================

    @staticmethod
    def calculate_technical_confidence(technical: TechnicalAnalysisResult) -> float:
        confidence = 0.5 + technical.trend.strength * 0.2

        if technical.patterns:
            confidence += sum(p.confidence for p in technical.patterns) / len(technical.patterns) * 0.2

        if technical.indicators:
            bullish = sum(1 for i in technical.indicators if i.signal == IndicatorSignal.BULLISH)
            bearish = sum(1 for i in technical.indicators if i.signal == IndicatorSignal.BEARISH)
            confidence += abs(bullish - bearish) / len(technical.indicators) * 0.1

        return max(0.1, min(0.9, confidence))

    def calculate_overall_confidence(self, technical: TechnicalAnalysisResult,
                                     fundamental: FundamentalAnalysisResult,
                                     recommendations: Sequence[TradingSignal]) -> float:
        technical_confidence = self.calculate_technical_confidence(technical)
        fundamental_confidence = abs(fundamental.market_sentiment.overall - 0.5) * 2
        recommendation_confidence = recommendations[0].confidence if recommendations else 0.5

        confidence = (technical_confidence * 0.4
                      + fundamental_confidence * 0.3
                      + recommendation_confidence * 0.3)
        return max(0.0, min(1.0, confidence))

    @staticmethod
    def generate_chart_annotations(technical: TechnicalAnalysisResult,
                                   recommendations: Sequence[TradingSignal]) -> List[ChartAnnotation]:
        annotations = []

        for level in technical.support_resistance:
            is_support = level.type == LevelType.SUPPORT
            annotations.append(ChartAnnotation(
                type=level.type.value,
                price=level.level,
                color=SUPPORT_COLOR if is_support else RESISTANCE_COLOR,
                label=f"{level.type.value}: {level.level:.2f}",
                style='solid',
            ))

        for signal in recommendations:
            for target in signal.price_targets:
                annotations.append(ChartAnnotation(
                    type=target.type.value,
                    price=target.level,
                    color=TARGET_COLOR if target.type == TargetType.TARGET else STOP_LOSS_COLOR,
                    label=f"{target.type.value}: {target.level:.2f}",
                    style='dashed',
                ))
            if signal.stop_loss > 0:
                annotations.append(ChartAnnotation(
                    type=TargetType.STOP_LOSS.value,
                    price=signal.stop_loss,
                    color=STOP_LOSS_COLOR,
                    label=f"{TargetType.STOP_LOSS.value}: {signal.stop_loss:.2f}",
                    style='dashed',
                ))

        return annotations

    @staticmethod
    def _rsi_state(rsi: float) -> str:
        if rsi > 70:
            return 'overbought'
        if rsi < 30:
            return 'oversold'
        return 'neutral'

    def generate_summary(self, symbol: str, technical: TechnicalAnalysisResult,
                         fundamental: FundamentalAnalysisResult,
                         recommendations: Sequence[TradingSignal], confidence: float) -> str:
        primary = recommendations[0] if recommendations else None
        support = next((lvl for lvl in technical.support_resistance if lvl.type == LevelType.SUPPORT), None)
        resistance = next((lvl for lvl in technical.support_resistance if lvl.type == LevelType.RESISTANCE), None)
        themes = ', '.join(fundamental.news_analysis.key_themes[:3]) or 'None'

        lines = [
            f"**Analysis Summary for {symbol}**",
            "",
            f"**Primary Recommendation:** {primary.action.value if primary else 'HOLD'} "
            f"(Confidence: {confidence * 100:.0f}%)",
            "",
            "**Technical Overview:**",
            f"- Trend: {technical.trend.direction.value} with {technical.trend.strength * 100:.0f}% strength",
            f"- RSI: {technical.momentum.rsi:.1f} ({self._rsi_state(technical.momentum.rsi)})",
            f"- Key Support: {f'{support.level:.2f}' if support else 'N/A'}",
            f"- Key Resistance: {f'{resistance.level:.2f}' if resistance else 'N/A'}",
            "",
            "**Fundamental Overview:**",
            f"- Market Sentiment: {fundamental.news_analysis.sentiment} "
            f"(Score: {fundamental.market_sentiment.overall:.2f})",
            f"- Key Themes: {themes}",
            f"- Upcoming Events: {len(fundamental.upcoming_events)} identified",
            "",
            "**Key Recommendation:**",
            '. '.join(primary.reasoning) if primary and primary.reasoning
            else "No clear directional bias identified.",
        ]
        return '\n'.join(lines)

    # ===========================
    # HOUSEKEEPING
    # ===========================

    def get_statistics(self) -> Dict:
        return self.cache.get_statistics()

    def shutdown(self):
        self.cache.destroy()
        self.logger.debug("Analysis controller shut down")
