"""
Error classification system for signal evaluation and risk mitigation.

This module provides the structured exception hierarchy used across the
engine and the mapping from errors onto the status carried by every
emitted record.
"""

from ..models.status import EvaluationStatus
from .degradation import (
    AnalyzerTimeoutError,
    GracefulDegradationError,
    QuorumError,
)
from .recovery import (
    ConcurrentModificationError,
    RecoverableError,
)
from .rejections import (
    RejectionError,
    SequenceRegressionError,
    SnapshotMismatchError,
    StaleDataError,
    ValidationError,
)
from .system_failures import (
    ConfigurationError,
    DeliveryError,
    PersistenceError,
    PlanTransitionError,
    SystemFailureError,
)


def status_for(error: BaseException) -> EvaluationStatus:
    """Map an error onto the record status downstream consumers see."""
    if isinstance(error, GracefulDegradationError):
        return EvaluationStatus.DEGRADED
    return EvaluationStatus.REJECTED


__all__ = [
    # Rejections
    "RejectionError",
    "ValidationError",
    "StaleDataError",
    "SequenceRegressionError",
    "SnapshotMismatchError",
    # Degradation
    "GracefulDegradationError",
    "QuorumError",
    "AnalyzerTimeoutError",
    # Recovery
    "RecoverableError",
    "ConcurrentModificationError",
    # System Failures
    "SystemFailureError",
    "PlanTransitionError",
    "ConfigurationError",
    "PersistenceError",
    "DeliveryError",
    "status_for",
]
