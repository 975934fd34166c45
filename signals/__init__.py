"""Signal generation and recommendation synthesis."""
from .generator import SignalGenerator, create_signal_generator
from .recommendation import RecommendationEngine

__all__ = ['SignalGenerator', 'RecommendationEngine', 'create_signal_generator']
