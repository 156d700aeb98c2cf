"""
Rejection error classifications for requests that can never become valid.

These exceptions are terminal: the request is reported back to the caller
with status REJECTED and is never retried automatically.
"""

from typing import Any, Optional


class RejectionError(Exception):
    """Base class for terminal request rejections."""

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.retryable = False


class ValidationError(RejectionError):
    """Malformed input such as a missing symbol or a negative quantity."""

    def __init__(self, message: str, field: Optional[str] = None,
                 value: Any = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value


class StaleDataError(RejectionError):
    """Input refers to a state that has already been superseded."""


class SequenceRegressionError(StaleDataError):
    """A signal arrived with a sequence number at or below one already scored."""

    def __init__(self, message: str, symbol: Optional[str] = None,
                 sequence_number: Optional[int] = None,
                 last_sequence: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.symbol = symbol
        self.sequence_number = sequence_number
        self.last_sequence = last_sequence


class SnapshotMismatchError(StaleDataError):
    """Signal and risk scores were computed against diverging snapshot versions."""

    def __init__(self, message: str, signal_version: Optional[int] = None,
                 risk_version: Optional[int] = None,
                 bound: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.signal_version = signal_version
        self.risk_version = risk_version
        self.bound = bound
