"""
Indicator library: RSI, SMA/EMA, MACD, Stochastic, ATR, Bollinger Bands and trend slope.
All functions are pure and operate on pandas Series / OHLCV DataFrames.
"""

import logging
from typing import List, Sequence, Union

import numpy as np
import pandas as pd
import ta

from core.models import (
    BollingerBandValues, IndicatorResult, IndicatorSignal, MacdValues, StochasticValues,
)

logger = logging.getLogger(__name__)

# MACD signal line and stochastic %D are single-multiplier approximations
SIGNAL_LINE_FACTOR = 0.9
STOCH_D_FACTOR = 0.9
SQUEEZE_THRESHOLD = 0.10
LONG_ATR_PERIOD = 252

SeriesLike = Union[pd.Series, Sequence[float]]


def _as_series(values: SeriesLike) -> pd.Series:
    if isinstance(values, pd.Series):
        return values.astype(float).reset_index(drop=True)
    return pd.Series(list(values), dtype=float)


# ===========================
# MOVING AVERAGES
# ===========================

def calculate_sma_series(closes: SeriesLike, period: int) -> pd.Series:
    """Rolling simple moving average, NaN until the window fills"""
    return ta.trend.SMAIndicator(_as_series(closes), window=period).sma_indicator()


def calculate_sma(closes: SeriesLike, period: int) -> float:
    """Latest SMA value, or the latest close when the series is shorter than the window"""
    series = _as_series(closes)
    if series.empty:
        return 0.0
    if len(series) < period:
        return float(series.iloc[-1])
    return float(calculate_sma_series(series, period).iloc[-1])


def calculate_ema(closes: SeriesLike, period: int) -> float:
    """Latest EMA value (seeded at the first close)"""
    series = _as_series(closes)
    if series.empty:
        return 0.0
    if len(series) < period:
        return float(series.iloc[-1])
    ema = ta.trend.EMAIndicator(series, window=period).ema_indicator()
    return float(ema.iloc[-1])


# ===========================
# MOMENTUM
# ===========================

def calculate_rsi(closes: SeriesLike, period: int = 14) -> float:
    """RSI from the simple average gain / loss over the last `period` deltas"""
    series = _as_series(closes)
    if len(series) < period + 1:
        return 50.0

    deltas = series.diff().tail(period)
    avg_gain = deltas.clip(lower=0).sum() / period
    avg_loss = (-deltas.clip(upper=0)).sum() / period

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return float(100 - (100 / (1 + rs)))


def calculate_macd(closes: SeriesLike, fast: int = 12, slow: int = 26) -> MacdValues:
    macd = calculate_ema(closes, fast) - calculate_ema(closes, slow)
    signal = macd * SIGNAL_LINE_FACTOR
    return MacdValues(macd=macd, signal=signal, histogram=macd - signal)


def calculate_stochastic(df: pd.DataFrame, period: int = 14) -> StochasticValues:
    """%K over the `period`-bar high/low range, %D as 0.9 x %K"""
    if len(df) < period:
        return StochasticValues(k=50.0, d=50.0)

    window = df.tail(period)
    price_range = window['high'].max() - window['low'].min()
    if price_range <= 0:
        return StochasticValues(k=50.0, d=50.0)

    stoch = ta.momentum.StochasticOscillator(
        df['high'].reset_index(drop=True),
        df['low'].reset_index(drop=True),
        df['close'].reset_index(drop=True),
        window=period,
    ).stoch()
    k = float(np.clip(stoch.iloc[-1], 0, 100))
    return StochasticValues(k=k, d=k * STOCH_D_FACTOR)


# ===========================
# VOLATILITY
# ===========================

def calculate_true_range(df: pd.DataFrame) -> pd.Series:
    prev_close = df['close'].shift(1)
    ranges = pd.concat([
        df['high'] - df['low'],
        (df['high'] - prev_close).abs(),
        (df['low'] - prev_close).abs(),
    ], axis=1)
    return ranges.max(axis=1).iloc[1:]


def calculate_atr(df: pd.DataFrame, period: int = 14) -> float:
    """Mean true range over the last `period` bars; 0 when there are not enough bars"""
    if period <= 0 or len(df) < period + 1:
        return 0.0
    return float(calculate_true_range(df).tail(period).mean())


def calculate_bollinger_bands(closes: SeriesLike, period: int = 20, std_dev: float = 2) -> BollingerBandValues:
    series = _as_series(closes)
    if len(series) < period:
        last = float(series.iloc[-1]) if not series.empty else 0.0
        return BollingerBandValues(upper=last, middle=last, lower=last, squeeze=False)

    bb = ta.volatility.BollingerBands(series, window=period, window_dev=std_dev)
    upper = float(bb.bollinger_hband().iloc[-1])
    middle = float(bb.bollinger_mavg().iloc[-1])
    lower = float(bb.bollinger_lband().iloc[-1])
    squeeze = middle != 0 and (upper - lower) / middle < SQUEEZE_THRESHOLD
    return BollingerBandValues(upper=upper, middle=middle, lower=lower, squeeze=bool(squeeze))


def calculate_volatility_rank(df: pd.DataFrame, period: int = 14) -> float:
    """Short ATR relative to the long-run ATR, clamped to [0, 1].

    The long window shrinks to the available history when fewer than 253 bars exist.
    """
    long_period = min(LONG_ATR_PERIOD, len(df) - 1)
    short_atr = calculate_atr(df, period)
    long_atr = calculate_atr(df, long_period)
    if long_atr <= 0:
        return 0.0
    return float(np.clip(short_atr / long_atr, 0.0, 1.0))


# ===========================
# TREND
# ===========================

def calculate_regression_slope(values: SeriesLike) -> float:
    """Least-squares slope of values against their index"""
    y = _as_series(values).to_numpy()
    n = len(y)
    if n < 2:
        return 0.0
    x = np.arange(n, dtype=float)
    denominator = n * np.sum(x * x) - np.sum(x) ** 2
    if denominator == 0:
        return 0.0
    return float((n * np.sum(x * y) - np.sum(x) * np.sum(y)) / denominator)


# ===========================
# INTERPRETED INDICATORS
# ===========================

def interpret_rsi(rsi: float) -> IndicatorResult:
    if rsi > 70:
        signal, text = IndicatorSignal.BEARISH, "Overbought - potential selling pressure"
    elif rsi < 30:
        signal, text = IndicatorSignal.BULLISH, "Oversold - potential buying opportunity"
    else:
        signal = IndicatorSignal.NEUTRAL
        text = "Bullish momentum" if rsi > 50 else "Bearish momentum"
    return IndicatorResult('RSI', [rsi], {'period': 14}, text, signal)


def interpret_macd(macd: MacdValues) -> IndicatorResult:
    if macd.histogram > 0:
        signal = IndicatorSignal.BULLISH
        text = "Strong bullish momentum" if macd.macd > 0 else "Bullish momentum building"
    else:
        signal = IndicatorSignal.BEARISH
        text = "Strong bearish momentum" if macd.macd < 0 else "Bearish momentum building"
    return IndicatorResult(
        'MACD', [macd.macd, macd.signal, macd.histogram],
        {'fastPeriod': 12, 'slowPeriod': 26, 'signalPeriod': 9}, text, signal,
    )


def build_indicator_results(df: pd.DataFrame) -> List[IndicatorResult]:
    """Interpreted indicator list for a bar frame"""
    closes = df['close']
    current = float(closes.iloc[-1])

    rsi = calculate_rsi(closes)
    macd = calculate_macd(closes)
    sma20 = calculate_sma(closes, 20)
    sma50 = calculate_sma(closes, 50)
    bands = calculate_bollinger_bands(closes)
    stochastic = calculate_stochastic(df)

    results = [interpret_rsi(rsi), interpret_macd(macd)]

    above20 = current > sma20
    results.append(IndicatorResult(
        'SMA_20', [sma20], {'period': 20},
        "Price above 20-period average" if above20 else "Price below 20-period average",
        IndicatorSignal.BULLISH if above20 else IndicatorSignal.BEARISH,
    ))

    golden = sma20 > sma50
    results.append(IndicatorResult(
        'SMA_50', [sma50], {'period': 50},
        "Short-term average above long-term average" if golden else "Short-term average below long-term average",
        IndicatorSignal.BULLISH if golden else IndicatorSignal.BEARISH,
    ))

    if current > bands.upper:
        bb_signal, bb_text = IndicatorSignal.BEARISH, "Price above upper band - overextended"
    elif current < bands.lower:
        bb_signal, bb_text = IndicatorSignal.BULLISH, "Price below lower band - oversold"
    else:
        bb_signal, bb_text = IndicatorSignal.NEUTRAL, "Price inside the bands"
    if bands.squeeze:
        bb_text += " (squeeze)"
    results.append(IndicatorResult(
        'BOLLINGER', [bands.upper, bands.middle, bands.lower],
        {'period': 20, 'standardDeviations': 2}, bb_text, bb_signal,
    ))

    if stochastic.k > 80:
        st_signal, st_text = IndicatorSignal.BEARISH, "Stochastic overbought"
    elif stochastic.k < 20:
        st_signal, st_text = IndicatorSignal.BULLISH, "Stochastic oversold"
    else:
        st_signal, st_text = IndicatorSignal.NEUTRAL, "Stochastic in neutral range"
    results.append(IndicatorResult(
        'STOCHASTIC', [stochastic.k, stochastic.d], {'kPeriod': 14, 'dPeriod': 3}, st_text, st_signal,
    ))

    logger.debug(f"📊 Indicators: RSI={rsi:.2f} MACD={macd.macd:.4f} SMA20={sma20:.2f} SMA50={sma50:.2f}")
    return results


def describe_momentum(rsi: float, macd: MacdValues, stochastic: StochasticValues) -> str:
    parts = []
    if rsi > 70:
        parts.append("RSI overbought")
    elif rsi < 30:
        parts.append("RSI oversold")

    if macd.histogram > 0:
        parts.append("MACD bullish")
    elif macd.histogram < 0:
        parts.append("MACD bearish")

    if stochastic.k > 80:
        parts.append("Stochastic overbought")
    elif stochastic.k < 20:
        parts.append("Stochastic oversold")

    return ", ".join(parts) if parts else "Neutral momentum"
