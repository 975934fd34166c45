"""
Error taxonomy for the analysis pipeline.
"""

from enum import Enum
from typing import Any, Dict, Optional


class AnalysisErrorType(Enum):
    INVALID_SYMBOL = "INVALID_SYMBOL"
    DATA_UNAVAILABLE = "DATA_UNAVAILABLE"
    CHART_ERROR = "CHART_ERROR"
    SEARCH_ERROR = "SEARCH_ERROR"
    ANALYSIS_TIMEOUT = "ANALYSIS_TIMEOUT"


class AnalysisError(Exception):
    """Error surfaced to callers of the pipeline, with a remedial hint"""

    def __init__(self, error_type: AnalysisErrorType, message: str, recoverable: bool = False,
                 suggested_action: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.error_type = error_type
        self.message = message
        self.recoverable = recoverable
        self.suggested_action = suggested_action
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.error_type.value,
            'message': self.message,
            'recoverable': self.recoverable,
            'suggested_action': self.suggested_action,
            'details': self.details,
        }

    def __repr__(self) -> str:
        return f"AnalysisError({self.error_type.value}, {self.message!r})"


class InvalidSymbolError(AnalysisError):
    def __init__(self, symbol: str):
        super().__init__(
            AnalysisErrorType.INVALID_SYMBOL,
            f"Invalid symbol format: {symbol}",
            recoverable=True,
            suggested_action="Please provide a valid stock symbol (e.g., AAPL, TSLA, BTCUSD)",
            details={'symbol': symbol},
        )


class InsufficientDataError(AnalysisError):
    """Raised when a series is too short for technical analysis"""

    def __init__(self, symbol: str, timeframe: str, available: int, required: int = 20):
        super().__init__(
            AnalysisErrorType.DATA_UNAVAILABLE,
            f"Insufficient price data for {symbol} on {timeframe}: {available} bars, need {required}",
            recoverable=True,
            suggested_action="Try a different timeframe or check if the symbol is correct",
            details={'symbol': symbol, 'timeframe': timeframe, 'available': available, 'required': required},
        )
