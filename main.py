#!/usr/bin/env python3
"""
Command-line entry point for the trading analysis pipeline.
Runs single- or multi-timeframe analysis for one symbol against a deterministic synthetic
price feed and prints the markdown summary.
"""

import sys
import zlib
import argparse
from datetime import datetime, timedelta
from pathlib import Path
from typing import List

import numpy as np
from dotenv import load_dotenv

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

load_dotenv()

from config.config import AnalysisConfig
from core.errors import AnalysisError
from core.models import Bar
from core.system import AnalysisController
from utils.logging import setup_logging, get_logger

TIMEFRAME_STEPS = {
    '1H': timedelta(hours=1),
    '4H': timedelta(hours=4),
    '1D': timedelta(days=1),
    '1W': timedelta(weeks=1),
}


class SyntheticPriceProvider:
    """Random-walk bars seeded from the symbol and timeframe, so reruns are reproducible"""

    def __init__(self, bars: int = 200, base_price: float = 100.0, drift: float = 0.0008,
                 volatility: float = 0.015, end: datetime = None):
        self.bars = bars
        self.base_price = base_price
        self.drift = drift
        self.volatility = volatility
        self.end = end or datetime(2024, 1, 2, 16, 0)

    def __call__(self, symbol: str, timeframe: str) -> List[Bar]:
        step = TIMEFRAME_STEPS.get(timeframe.upper(), timedelta(days=1))
        rng = np.random.RandomState(zlib.crc32(f"{symbol}:{timeframe}".encode()))

        returns = rng.normal(self.drift, self.volatility, self.bars)
        closes = self.base_price * np.exp(np.cumsum(returns))
        opens = np.concatenate([[self.base_price], closes[:-1]])
        spread = np.abs(rng.normal(0, self.volatility / 2, self.bars)) * closes
        volumes = rng.randint(500_000, 2_000_000, self.bars)

        start = self.end - step * (self.bars - 1)
        return [
            Bar(
                open=float(opens[i]),
                high=float(max(opens[i], closes[i]) + spread[i]),
                low=float(min(opens[i], closes[i]) - spread[i]),
                close=float(closes[i]),
                volume=float(volumes[i]),
                timestamp=start + step * i,
            )
            for i in range(self.bars)
        ]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Technical analysis and trading recommendations for a symbol")
    parser.add_argument("symbol", help="Ticker symbol, e.g. AAPL or BTCUSD")
    parser.add_argument("--timeframe", default=None, help="Timeframe for single analysis (1H, 4H, 1D, 1W)")
    parser.add_argument("--multi", action="store_true", help="Run multi-timeframe confluence analysis")
    parser.add_argument("--config", default="config.yaml", help="Path to YAML configuration")
    return parser


def print_multi_timeframe(result):
    print(f"**Multi-Timeframe Analysis for {result.symbol}** (primary {result.primary_timeframe})")
    print("")
    for analysis in result.timeframe_analyses:
        trend = analysis.analysis.trend
        print(f"- {analysis.timeframe}: {trend.direction.value} ({trend.strength * 100:.0f}%), "
              f"confidence {analysis.confidence:.2f}, {len(analysis.signals)} signals")

    correlation = result.timeframe_correlation
    print("")
    print(f"Trend alignment: {correlation.trend_alignment * 100:.0f}%  "
          f"Momentum alignment: {correlation.momentum_alignment * 100:.0f}%  "
          f"S/R alignment: {correlation.support_resistance_alignment * 100:.0f}%")
    for conflict in correlation.conflicting_signals:
        print(f"⚠️  {conflict}")

    for signal in result.confluence_signals:
        print("")
        print(f"**{signal.action.value}** (confidence {signal.confidence:.2f}, risk {signal.risk_level.value}, "
              f"{signal.time_horizon})")
        for reason in signal.reasoning:
            print(f"  - {reason}")
        for target in signal.price_targets:
            print(f"  🎯 {target.level:.2f} ({target.confidence:.2f}) {target.reasoning}")

    risk = result.risk_assessment
    print("")
    print(f"Overall confidence: {result.overall_confidence:.2f}  Risk: {risk.overall_risk.value}  "
          f"Position: {risk.recommended_position.value} x{risk.position_size:.2f}")


def main(argv: List[str] = None) -> int:
    args = build_parser().parse_args(argv)

    config = AnalysisConfig.from_env(AnalysisConfig.from_yaml_file(args.config))
    setup_logging(config.console_log_level, config.file_log_level)
    logger = get_logger()

    controller = AnalysisController(SyntheticPriceProvider(), config=config)
    try:
        if args.multi:
            print_multi_timeframe(controller.analyze_multiple_timeframes(args.symbol))
        else:
            result = controller.analyze_symbol(args.symbol, args.timeframe)
            print(result.summary)
        return 0

    except AnalysisError as e:
        logger.error(f"❌ {e.error_type.value}: {e.message}")
        if e.suggested_action:
            print(f"💡 {e.suggested_action}")
        return 1

    finally:
        controller.shutdown()


if __name__ == "__main__":
    sys.exit(main())
