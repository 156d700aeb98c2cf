"""Evaluation status and result flags shared by every emitted record."""

from enum import Enum


class EvaluationStatus(str, Enum):
    """Caution level downstream consumers should apply to a result."""
    COMPLETE = "complete"
    DEGRADED = "degraded"
    REJECTED = "rejected"


class ScoreFlag(str, Enum):
    """Declared shortfalls attached to a degraded result."""
    LOW_QUORUM = "low_quorum"
    DIMENSION_TIMEOUT = "dimension_timeout"
    PARTIAL_DIMENSIONS = "partial_dimensions"
    ANALYZER_FAILURE = "analyzer_failure"
    STALE_DIMENSION = "stale_dimension"
    STALE_SIGNALS_DISCARDED = "stale_signals_discarded"
    LATENCY_BUDGET_EXCEEDED = "latency_budget_exceeded"
    EXECUTION_FAILED = "execution_failed"


# Flags that only annotate a result without lowering its status
INFORMATIONAL_FLAGS = frozenset({
    ScoreFlag.STALE_SIGNALS_DISCARDED,
    ScoreFlag.LATENCY_BUDGET_EXCEEDED,
})


def status_from_flags(flags) -> EvaluationStatus:
    """COMPLETE unless a flag declares a shortfall in the result itself."""
    if any(flag not in INFORMATIONAL_FLAGS for flag in flags):
        return EvaluationStatus.DEGRADED
    return EvaluationStatus.COMPLETE
