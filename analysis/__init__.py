"""Analysis components: indicators, patterns, levels, technical analysis and price targets."""
from .levels import LevelFinder
from .patterns import PatternDetector
from .price_targets import PriceTargetCalculator
from .technical import TechnicalAnalyzer

__all__ = [
    'LevelFinder',
    'PatternDetector',
    'PriceTargetCalculator',
    'TechnicalAnalyzer',
]
