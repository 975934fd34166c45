"""
Tests for the analysis controller and the command-line entry point.
"""

from dataclasses import replace

import pytest

from core.errors import AnalysisError, AnalysisErrorType, InvalidSymbolError
from core.models import (
    FundamentalAnalysisResult, LevelType, PriceTarget, SignalAction, SupportResistanceLevel,
    TargetType, TechnicalAnalysisResult, TradingSignal,
)
from core.system import (
    RESISTANCE_COLOR, STOP_LOSS_COLOR, SUPPORT_COLOR, TARGET_COLOR, AnalysisController,
)
from utils import logging as pipeline_logging


class CountingProvider:
    """Price provider returning fixed bars and counting calls"""

    def __init__(self, bars):
        self.bars = bars
        self.calls = []

    def __call__(self, symbol, timeframe):
        self.calls.append((symbol, timeframe))
        return self.bars


@pytest.fixture
def provider(uptrend_bars):
    return CountingProvider(uptrend_bars)


@pytest.fixture
def controller(provider):
    controller = AnalysisController(provider)
    yield controller
    controller.shutdown()


class TestSymbolValidation:

    @pytest.mark.parametrize("raw, expected", [
        ("aapl ", "AAPL"),
        ("BTCUSD", "BTCUSD"),
        (" msft", "MSFT"),
    ])
    def test_valid(self, raw, expected):
        assert AnalysisController.validate_symbol(raw) == expected

    @pytest.mark.parametrize("raw", ["$$$", "", "TOOLONGSYMBOL", "AA PL"])
    def test_invalid(self, raw):
        with pytest.raises(InvalidSymbolError) as exc_info:
            AnalysisController.validate_symbol(raw)
        assert exc_info.value.error_type == AnalysisErrorType.INVALID_SYMBOL
        assert exc_info.value.recoverable is True


class TestAnalyzeSymbol:

    def test_uptrend_end_to_end(self, controller, uptrend_bars):
        result = controller.analyze_symbol("aapl", "1D")
        price = uptrend_bars[-1].close

        assert result.symbol == "AAPL"
        assert 0.0 <= result.confidence <= 1.0
        buys = [r for r in result.recommendations if r.action == SignalAction.BUY]
        assert buys
        assert buys[0].confidence > 0.5
        assert any(t.level > price for t in buys[0].price_targets)
        assert "**Analysis Summary for AAPL**" in result.summary
        assert "**Technical Overview:**" in result.summary

    def test_fundamental_failure_falls_back(self, uptrend_bars):
        def broken_fundamentals(symbol):
            raise RuntimeError("feed down")

        controller = AnalysisController(CountingProvider(uptrend_bars), broken_fundamentals)
        result = controller.analyze_symbol("AAPL")

        assert result.fundamental_analysis == FundamentalAnalysisResult.empty("AAPL")
        assert result.recommendations
        controller.shutdown()

    def test_technical_failure_falls_back(self, controller, monkeypatch):
        def broken_analysis(*args, **kwargs):
            raise RuntimeError("indicator failure")

        monkeypatch.setattr(controller.technical_analyzer, "analyze", broken_analysis)

        result = controller.analyze_symbol("AAPL")

        assert result.technical_analysis == TechnicalAnalysisResult.empty()
        assert [r.action for r in result.recommendations] == [SignalAction.HOLD]
        assert result.recommendations[0].confidence == pytest.approx(0.5)
        assert result.confidence == pytest.approx(0.35)

    def test_short_series(self, short_bars):
        controller = AnalysisController(CountingProvider(short_bars))
        with pytest.raises(AnalysisError) as exc_info:
            controller.analyze_symbol("AAPL")
        assert exc_info.value.error_type == AnalysisErrorType.DATA_UNAVAILABLE
        controller.shutdown()

    def test_provider_failure(self):
        def broken_prices(symbol, timeframe):
            raise ConnectionError("timeout")

        controller = AnalysisController(broken_prices)
        with pytest.raises(AnalysisError) as exc_info:
            controller.analyze_symbol("AAPL")
        assert exc_info.value.error_type == AnalysisErrorType.DATA_UNAVAILABLE
        assert exc_info.value.recoverable is True
        controller.shutdown()

    def test_unexpected_failure_is_wrapped(self, controller, monkeypatch):
        def explode(*args, **kwargs):
            raise ValueError("boom")

        monkeypatch.setattr(controller.recommendation_engine, "synthesize_recommendations", explode)

        with pytest.raises(AnalysisError) as exc_info:
            controller.analyze_symbol("AAPL")
        assert exc_info.value.error_type == AnalysisErrorType.ANALYSIS_TIMEOUT
        assert exc_info.value.recoverable is True
        assert exc_info.value.suggested_action == "Please try again in a few moments"
        assert controller.cache.get_analysis("AAPL", "1D") is None

    def test_result_is_cached(self, controller, provider):
        first = controller.analyze_symbol("AAPL", "1D")
        second = controller.analyze_symbol("AAPL", "1D")

        assert first is second
        assert provider.calls == [("AAPL", "1D")]
        stats = controller.get_statistics()
        assert stats['analysis_hits'] == 1
        assert stats['performance']['analysis']['count'] == 1


class TestResultAssembly:

    def test_chart_annotation_colors(self):
        technical = replace(TechnicalAnalysisResult.empty(), support_resistance=[
            SupportResistanceLevel(95.0, LevelType.SUPPORT, 0.8, 3, 0.0, 0.7),
            SupportResistanceLevel(110.0, LevelType.RESISTANCE, 0.8, 3, 0.0, 0.7),
        ])
        signal = TradingSignal(
            SignalAction.BUY, 0.7, ["x"],
            price_targets=[PriceTarget(110.0, TargetType.TARGET, 0.7, "r"),
                           PriceTarget(94.0, TargetType.STOP_LOSS, 0.6, "s")],
            stop_loss=93.0,
        )

        annotations = AnalysisController.generate_chart_annotations(technical, [signal])

        assert [(a.color, a.style) for a in annotations] == [
            (SUPPORT_COLOR, 'solid'),
            (RESISTANCE_COLOR, 'solid'),
            (TARGET_COLOR, 'dashed'),
            (STOP_LOSS_COLOR, 'dashed'),
            (STOP_LOSS_COLOR, 'dashed'),
        ]
        assert annotations[0].label == "SUPPORT: 95.00"
        assert annotations[-1].price == 93.0

    def test_technical_confidence_bounds(self):
        assert AnalysisController.calculate_technical_confidence(TechnicalAnalysisResult.empty()) == 0.5

    def test_summary_without_recommendations(self, controller):
        summary = controller.generate_summary(
            "AAPL", TechnicalAnalysisResult.empty(), FundamentalAnalysisResult(), [], 0.4
        )
        assert "**Primary Recommendation:** HOLD (Confidence: 40%)" in summary
        assert "- Key Support: N/A" in summary
        assert summary.endswith("No clear directional bias identified.")


class TestMultiTimeframe:

    def test_analyze_and_cache(self, controller, provider):
        result = controller.analyze_multiple_timeframes("aapl")

        assert result.symbol == "AAPL"
        assert len(result.timeframe_analyses) == 4
        assert result.confluence_signals[0].action == SignalAction.BUY
        assert len(provider.calls) == 4

        assert controller.analyze_multiple_timeframes("AAPL") is result
        assert len(provider.calls) == 4

    def test_failing_timeframes_are_skipped(self, uptrend_bars):
        def partial(symbol, timeframe):
            if timeframe != '1D':
                raise ConnectionError("no data")
            return uptrend_bars

        controller = AnalysisController(partial)
        result = controller.analyze_multiple_timeframes("AAPL")

        assert [a.timeframe for a in result.timeframe_analyses] == ['1D']
        controller.shutdown()

    def test_nothing_available(self):
        def nothing(symbol, timeframe):
            raise ConnectionError("no data")

        controller = AnalysisController(nothing)
        with pytest.raises(AnalysisError) as exc_info:
            controller.analyze_multiple_timeframes("AAPL")
        assert exc_info.value.error_type == AnalysisErrorType.DATA_UNAVAILABLE
        controller.shutdown()


class TestCommandLine:

    @pytest.fixture(autouse=True)
    def isolated(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        pipeline_logging.reset_logging()
        yield
        pipeline_logging.reset_logging()

    def test_single_analysis(self, capsys):
        import main

        assert main.main(["AAPL", "--config", "missing.yaml"]) == 0
        assert "**Analysis Summary for AAPL**" in capsys.readouterr().out

    def test_invalid_symbol(self, capsys):
        import main

        assert main.main(["$$$", "--config", "missing.yaml"]) == 1
        assert "valid stock symbol" in capsys.readouterr().out

    def test_synthetic_provider_is_reproducible(self):
        import main

        provider = main.SyntheticPriceProvider(bars=50)
        first = provider("AAPL", "1D")
        assert first == provider("AAPL", "1D")
        assert len(first) == 50
        assert all(b.low <= min(b.open, b.close) and b.high >= max(b.open, b.close) for b in first)
        assert first != provider("MSFT", "1D")
