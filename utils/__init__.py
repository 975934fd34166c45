"""Utility functions and helpers."""
from .cache import AnalysisCache, CacheEntry
from .logging import get_logger, setup_logging
from .performance_monitor import PerformanceMonitor

__all__ = ['AnalysisCache', 'CacheEntry', 'PerformanceMonitor', 'get_logger', 'setup_logging']
