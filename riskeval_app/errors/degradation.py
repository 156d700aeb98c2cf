"""
Degradation error classifications for timeout-class shortfalls.

These errors never fail a whole evaluation. They are recorded on the
result, the affected input is excluded or replaced by its cached value,
and the emitted record is flagged DEGRADED.
"""

from typing import Any, Optional


class GracefulDegradationError(Exception):
    """Base class for errors that allow continued operation with reduced inputs."""

    def __init__(self, message: str, degraded_functionality: Optional[str] = None,
                 fallback_strategy: Optional[str] = None,
                 context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.degraded_functionality = degraded_functionality
        self.fallback_strategy = fallback_strategy
        self.context = context or {}
        self.allows_degradation = True


class QuorumError(GracefulDegradationError):
    """Fewer independent sources responded than the configured quorum."""

    def __init__(self, message: str, responding: int = 0, required: int = 0, **kwargs):
        kwargs.setdefault("degraded_functionality", "signal_quorum")
        kwargs.setdefault("fallback_strategy", "score_available_sources")
        super().__init__(message, **kwargs)
        self.responding = responding
        self.required = required


class AnalyzerTimeoutError(GracefulDegradationError):
    """A dimension analyzer exceeded its time budget."""

    def __init__(self, message: str, dimension: Optional[str] = None,
                 timeout_ms: Optional[float] = None, **kwargs):
        kwargs.setdefault("degraded_functionality", dimension)
        kwargs.setdefault("fallback_strategy", "exclude_or_reuse_cached")
        super().__init__(message, **kwargs)
        self.dimension = dimension
        self.timeout_ms = timeout_ms
