"""Core data model and error types."""
from .errors import AnalysisError, AnalysisErrorType, InsufficientDataError, InvalidSymbolError

__all__ = ['AnalysisError', 'AnalysisErrorType', 'InsufficientDataError', 'InvalidSymbolError']
