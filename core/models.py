"""
Data model for the analysis pipeline.
Bars in, frozen result dataclasses out. Nothing here is mutated after construction.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd


# ===========================
# ENUMS
# ===========================

class IndicatorSignal(Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class TrendDirection(Enum):
    UPTREND = "UPTREND"
    DOWNTREND = "DOWNTREND"
    SIDEWAYS = "SIDEWAYS"


class LevelType(Enum):
    SUPPORT = "SUPPORT"
    RESISTANCE = "RESISTANCE"


class TargetType(Enum):
    TARGET = "TARGET"
    STOP_LOSS = "STOP_LOSS"


class SignalAction(Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"

    @classmethod
    def from_string(cls, value: str) -> 'SignalAction':
        try:
            return cls(value.upper())
        except ValueError:
            return cls.HOLD


class RiskLevel(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)

    def escalate(self) -> 'RiskLevel':
        """One step riskier, saturating at HIGH"""
        return _RISK_ORDER[min(self.rank + 1, len(_RISK_ORDER) - 1)]

    @classmethod
    def most_conservative(cls, levels: Sequence['RiskLevel']) -> 'RiskLevel':
        if not levels:
            return cls.MEDIUM
        return max(levels, key=lambda level: level.rank)


_RISK_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH]


class PatternType(Enum):
    CHANNEL_UP = "CHANNEL_UP"
    CHANNEL_DOWN = "CHANNEL_DOWN"
    DOUBLE_TOP = "DOUBLE_TOP"
    DOUBLE_BOTTOM = "DOUBLE_BOTTOM"
    ASCENDING_TRIANGLE = "ASCENDING_TRIANGLE"
    DESCENDING_TRIANGLE = "DESCENDING_TRIANGLE"
    SYMMETRICAL_TRIANGLE = "SYMMETRICAL_TRIANGLE"
    HEAD_AND_SHOULDERS = "HEAD_AND_SHOULDERS"
    INVERSE_HEAD_AND_SHOULDERS = "INVERSE_HEAD_AND_SHOULDERS"
    RISING_WEDGE = "RISING_WEDGE"
    FALLING_WEDGE = "FALLING_WEDGE"
    FLAG = "FLAG"
    PENNANT = "PENNANT"

    @property
    def is_bullish(self) -> bool:
        return self in (PatternType.CHANNEL_UP, PatternType.DOUBLE_BOTTOM,
                        PatternType.ASCENDING_TRIANGLE, PatternType.INVERSE_HEAD_AND_SHOULDERS,
                        PatternType.FALLING_WEDGE)

    @property
    def is_bearish(self) -> bool:
        return self in (PatternType.CHANNEL_DOWN, PatternType.DOUBLE_TOP,
                        PatternType.DESCENDING_TRIANGLE, PatternType.HEAD_AND_SHOULDERS,
                        PatternType.RISING_WEDGE)


class MarketDirection(Enum):
    """Direction hint used by the price target calculator"""
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"


class EventImpact(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class PositionSide(Enum):
    LONG = "LONG"
    SHORT = "SHORT"
    NEUTRAL = "NEUTRAL"


# ===========================
# PRICE DATA
# ===========================

@dataclass(frozen=True)
class Bar:
    open: float
    high: float
    low: float
    close: float
    volume: float
    timestamp: datetime


def bars_to_frame(bars: Sequence[Bar]) -> pd.DataFrame:
    """Convert an oldest-first bar sequence into an OHLCV DataFrame"""
    df = pd.DataFrame(
        {
            'open': [b.open for b in bars],
            'high': [b.high for b in bars],
            'low': [b.low for b in bars],
            'close': [b.close for b in bars],
            'volume': [b.volume for b in bars],
        },
        index=pd.Index([b.timestamp for b in bars], name='timestamp'),
    )
    for col in ['open', 'high', 'low', 'close', 'volume']:
        df[col] = pd.to_numeric(df[col], errors='coerce').astype(float)
    return df


# ===========================
# TECHNICAL ANALYSIS RESULTS
# ===========================

@dataclass(frozen=True)
class IndicatorResult:
    name: str
    values: List[float]
    parameters: Dict[str, Any]
    interpretation: str
    signal: IndicatorSignal


@dataclass(frozen=True)
class ChartCoordinate:
    x: float
    y: float


@dataclass(frozen=True)
class PriceTarget:
    level: float
    type: TargetType
    confidence: float
    reasoning: str


@dataclass(frozen=True)
class PatternResult:
    type: PatternType
    confidence: float
    coordinates: List[ChartCoordinate]
    description: str
    implications: List[str] = field(default_factory=list)
    price_targets: List[PriceTarget] = field(default_factory=list)


@dataclass(frozen=True)
class SupportResistanceLevel:
    level: float
    type: LevelType
    strength: float
    touches: int
    volume: float
    confidence: float


@dataclass(frozen=True)
class TrendAnalysis:
    direction: TrendDirection
    strength: float
    duration: int
    slope: float


@dataclass(frozen=True)
class MacdValues:
    macd: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class StochasticValues:
    k: float
    d: float


@dataclass(frozen=True)
class MomentumAnalysis:
    rsi: float
    macd: MacdValues
    stochastic: StochasticValues
    interpretation: str


@dataclass(frozen=True)
class BollingerBandValues:
    upper: float
    middle: float
    lower: float
    squeeze: bool


@dataclass(frozen=True)
class VolatilityAnalysis:
    atr: float
    bollinger_bands: BollingerBandValues
    volatility_rank: float


@dataclass(frozen=True)
class TechnicalAnalysisResult:
    indicators: List[IndicatorResult]
    patterns: List[PatternResult]
    support_resistance: List[SupportResistanceLevel]
    trend: TrendAnalysis
    momentum: MomentumAnalysis
    volatility: VolatilityAnalysis

    @classmethod
    def empty(cls) -> 'TechnicalAnalysisResult':
        """Neutral result used when the technical stage fails"""
        return cls(
            indicators=[],
            patterns=[],
            support_resistance=[],
            trend=TrendAnalysis(TrendDirection.SIDEWAYS, 0.0, 0, 0.0),
            momentum=MomentumAnalysis(
                rsi=50.0,
                macd=MacdValues(0.0, 0.0, 0.0),
                stochastic=StochasticValues(50.0, 50.0),
                interpretation="Neutral momentum",
            ),
            volatility=VolatilityAnalysis(
                atr=0.0,
                bollinger_bands=BollingerBandValues(0.0, 0.0, 0.0, False),
                volatility_rank=0.0,
            ),
        )


# ===========================
# SIGNALS
# ===========================

@dataclass(frozen=True)
class TradingSignal:
    action: SignalAction
    confidence: float
    reasoning: List[str]
    price_targets: List[PriceTarget] = field(default_factory=list)
    stop_loss: float = 0.0
    time_horizon: str = "Medium-term (days to weeks)"
    risk_level: RiskLevel = RiskLevel.MEDIUM


# ===========================
# FUNDAMENTAL INPUT
# ===========================

@dataclass(frozen=True)
class CompanyInfo:
    name: str = ""
    sector: str = ""
    industry: str = ""
    market_cap: float = 0.0
    description: str = ""


@dataclass(frozen=True)
class FinancialMetrics:
    pe: Optional[float] = None
    eps: Optional[float] = None
    revenue: Optional[float] = None
    revenue_growth: Optional[float] = None
    profit_margin: Optional[float] = None
    debt_to_equity: Optional[float] = None


@dataclass(frozen=True)
class NewsItem:
    title: str
    summary: str
    url: str
    published_at: datetime
    sentiment: float
    relevance: float


@dataclass(frozen=True)
class NewsAnalysis:
    sentiment: str = "NEUTRAL"
    relevant_news: List[NewsItem] = field(default_factory=list)
    sentiment_score: float = 0.5
    key_themes: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class SectorAnalysis:
    sector_performance: float = 0.0
    relative_strength: float = 0.5
    peer_comparison: List[str] = field(default_factory=list)
    sector_trends: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class MarketSentiment:
    overall: float = 0.5
    news: float = 0.5
    social: float = 0.5
    analyst: float = 0.5


@dataclass(frozen=True)
class MarketEvent:
    type: str
    date: datetime
    description: str
    expected_impact: EventImpact = EventImpact.MEDIUM


@dataclass(frozen=True)
class FundamentalAnalysisResult:
    company_info: CompanyInfo = field(default_factory=CompanyInfo)
    financial_metrics: FinancialMetrics = field(default_factory=FinancialMetrics)
    news_analysis: NewsAnalysis = field(default_factory=NewsAnalysis)
    sector_analysis: SectorAnalysis = field(default_factory=SectorAnalysis)
    market_sentiment: MarketSentiment = field(default_factory=MarketSentiment)
    upcoming_events: List[MarketEvent] = field(default_factory=list)

    @classmethod
    def empty(cls, symbol: str = "") -> 'FundamentalAnalysisResult':
        """Neutral result used when the fundamental stage fails"""
        return cls(company_info=CompanyInfo(name=symbol))


# ===========================
# MULTI-TIMEFRAME RESULTS
# ===========================

@dataclass(frozen=True)
class TimeframeAnalysis:
    timeframe: str
    analysis: TechnicalAnalysisResult
    signals: List[TradingSignal]
    weight: float
    confidence: float


@dataclass(frozen=True)
class TimeframeCorrelation:
    trend_alignment: float
    momentum_alignment: float
    support_resistance_alignment: float
    conflicting_signals: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TimeframeRisk:
    timeframe: str
    risk: RiskLevel
    factors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class MultiTimeframeRiskAssessment:
    overall_risk: RiskLevel
    timeframe_risks: List[TimeframeRisk]
    risk_factors: List[str]
    recommended_position: PositionSide
    position_size: float


@dataclass(frozen=True)
class MultiTimeframeResult:
    symbol: str
    primary_timeframe: str
    timeframe_analyses: List[TimeframeAnalysis]
    confluence_signals: List[TradingSignal]
    overall_confidence: float
    timeframe_correlation: TimeframeCorrelation
    risk_assessment: MultiTimeframeRiskAssessment


# ===========================
# ORCHESTRATOR OUTPUT
# ===========================

@dataclass(frozen=True)
class ChartAnnotation:
    type: str
    price: float
    color: str
    label: str
    style: str = "solid"


@dataclass(frozen=True)
class AnalysisResult:
    symbol: str
    timestamp: datetime
    technical_analysis: TechnicalAnalysisResult
    fundamental_analysis: FundamentalAnalysisResult
    recommendations: List[TradingSignal]
    confidence: float
    chart_annotations: List[ChartAnnotation]
    summary: str
