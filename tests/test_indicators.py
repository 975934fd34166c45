"""
Tests for the indicator library.
"""

import pandas as pd
import pytest

from analysis.indicators import (
    build_indicator_results, calculate_atr, calculate_bollinger_bands, calculate_macd,
    calculate_regression_slope, calculate_rsi, calculate_sma, calculate_stochastic,
    calculate_volatility_rank, describe_momentum,
)
from core.models import IndicatorSignal, MacdValues, StochasticValues, bars_to_frame
from tests.conftest import make_bars


class TestRSI:

    def test_strictly_rising_series_is_100(self):
        assert calculate_rsi([100 + i for i in range(30)]) == 100.0

    def test_strictly_falling_series_is_0(self):
        assert calculate_rsi([200 - i for i in range(30)]) == 0.0

    def test_short_series_is_neutral(self):
        assert calculate_rsi([1, 2, 3]) == 50.0

    def test_oscillating_uptrend_stays_mid_range(self, uptrend_bars):
        rsi = calculate_rsi([b.close for b in uptrend_bars])
        # 7 gains of 4.3 against 7 losses of 3.7 over the last 14 deltas
        assert rsi == pytest.approx(53.75, abs=0.01)


class TestMACD:

    @pytest.mark.parametrize("closes", [
        [100 + i for i in range(60)],
        [200 - i for i in range(60)],
        [100 + 0.3 * i + 2 * (-1) ** i for i in range(60)],
    ])
    def test_histogram_is_tenth_of_macd(self, closes):
        macd = calculate_macd(closes)
        assert macd.histogram == pytest.approx(0.1 * macd.macd)
        assert macd.signal == pytest.approx(0.9 * macd.macd)
        if macd.macd != 0:
            assert (macd.histogram > 0) == (macd.macd > 0)

    def test_rising_series_has_positive_macd(self):
        assert calculate_macd([100 + i for i in range(60)]).macd > 0


class TestAveragesAndBands:

    def test_sma_of_constant_series(self):
        assert calculate_sma([5.0] * 30, 20) == pytest.approx(5.0)

    def test_sma_falls_back_to_last_close(self):
        assert calculate_sma([1.0, 2.0, 3.0], 20) == 3.0

    def test_bollinger_squeeze_on_flat_series(self):
        bands = calculate_bollinger_bands([100.0] * 30)
        assert bands.upper == pytest.approx(100.0)
        assert bands.lower == pytest.approx(100.0)
        assert bands.squeeze is True

    def test_bollinger_ordering(self, uptrend_bars):
        bands = calculate_bollinger_bands([b.close for b in uptrend_bars])
        assert bands.lower < bands.middle < bands.upper


class TestVolatility:

    def test_atr_zero_without_enough_bars(self, short_bars):
        assert calculate_atr(bars_to_frame(short_bars), 14) == 0.0

    def test_atr_of_uptrend(self, uptrend_bars):
        # true ranges alternate 5.3 / 4.7
        assert calculate_atr(bars_to_frame(uptrend_bars), 14) == pytest.approx(5.0)

    def test_volatility_rank_clamped(self, uptrend_bars):
        rank = calculate_volatility_rank(bars_to_frame(uptrend_bars))
        assert 0.0 <= rank <= 1.0

    def test_volatility_rank_zero_for_constant_prices(self):
        df = bars_to_frame(make_bars([100.0] * 40, spread=0.0))
        assert calculate_volatility_rank(df) == 0.0


class TestStochastic:

    def test_zero_range_is_neutral(self):
        df = bars_to_frame(make_bars([100.0] * 30, spread=0.0))
        assert calculate_stochastic(df) == StochasticValues(50.0, 50.0)

    def test_d_is_ninety_percent_of_k(self, uptrend_bars):
        stoch = calculate_stochastic(bars_to_frame(uptrend_bars))
        assert 0 <= stoch.k <= 100
        assert stoch.d == pytest.approx(stoch.k * 0.9)


def test_regression_slope_of_line():
    assert calculate_regression_slope(pd.Series([2.0 * i + 1 for i in range(20)])) == pytest.approx(2.0)


def test_indicator_results_cover_core_set(uptrend_bars):
    results = build_indicator_results(bars_to_frame(uptrend_bars))
    names = [r.name for r in results]
    assert names == ['RSI', 'MACD', 'SMA_20', 'SMA_50', 'BOLLINGER', 'STOCHASTIC']

    by_name = {r.name: r for r in results}
    assert by_name['MACD'].signal == IndicatorSignal.BULLISH
    assert by_name['SMA_50'].signal == IndicatorSignal.BULLISH


def test_describe_momentum():
    assert describe_momentum(50.0, MacdValues(0.0, 0.0, 0.0), StochasticValues(50.0, 45.0)) == "Neutral momentum"
    text = describe_momentum(75.0, MacdValues(1.0, 0.9, 0.1), StochasticValues(85.0, 76.5))
    assert "RSI overbought" in text
    assert "MACD bullish" in text
    assert "Stochastic overbought" in text
