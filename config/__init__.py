"""Configuration dataclasses."""
from .config import AnalysisConfig, CacheConfig

__all__ = ['AnalysisConfig', 'CacheConfig']
