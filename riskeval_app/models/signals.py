"""
Trading signal and signal score models.

TradingSignal is produced by external predictive collaborators and consumed
once. SignalScore is derived per evaluation cycle and retired once emitted.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..errors.rejections import ValidationError
from .status import EvaluationStatus, ScoreFlag


class Direction(str, Enum):
    """Direction a source predicts for a symbol."""
    LONG = "long"
    SHORT = "short"
    NEUTRAL = "neutral"


class Recommendation(str, Enum):
    """Recommendation tiers, declared from most bearish to most bullish."""
    STRONG_SELL = "strong_sell"
    SELL = "sell"
    HOLD = "hold"
    BUY = "buy"
    STRONG_BUY = "strong_buy"

    @property
    def rank(self) -> int:
        return _RECOMMENDATION_ORDER.index(self)

    @property
    def is_bearish(self) -> bool:
        return self in (Recommendation.SELL, Recommendation.STRONG_SELL)


_RECOMMENDATION_ORDER = list(Recommendation)


class SignalDimension(str, Enum):
    """Evaluation axes of a trading signal."""
    PERFORMANCE = "performance"
    RISK = "risk"
    HISTORICAL_VALIDATION = "historical_validation"
    CONFIDENCE = "confidence"
    MARKET_CONTEXT = "market_context"


@dataclass(frozen=True)
class TradingSignal:
    """A single source's signal for one symbol. Immutable once created."""
    source_id: str
    symbol: str
    direction: Direction
    raw_confidence: float                 # [0, 1]
    sequence_number: int
    timestamp: int                        # epoch ms, UTC
    uncertainty: Optional[float] = None   # model-reported, [0, 1]

    def __post_init__(self):
        if not self.source_id:
            raise ValidationError("Signal missing source_id", field="source_id", value=self.source_id)
        if not self.symbol:
            raise ValidationError("Signal missing symbol", field="symbol", value=self.symbol)
        if not isinstance(self.direction, Direction):
            raise ValidationError("Unknown signal direction", field="direction", value=self.direction)
        if not 0.0 <= self.raw_confidence <= 1.0:
            raise ValidationError(
                "raw_confidence must be within [0, 1]",
                field="raw_confidence", value=self.raw_confidence
            )
        if self.sequence_number < 0:
            raise ValidationError(
                "sequence_number must be non-negative",
                field="sequence_number", value=self.sequence_number
            )
        if self.uncertainty is not None and not 0.0 <= self.uncertainty <= 1.0:
            raise ValidationError(
                "uncertainty must be within [0, 1]",
                field="uncertainty", value=self.uncertainty
            )

    @property
    def model_uncertainty(self) -> float:
        """Model-reported uncertainty, inferred from confidence when not reported."""
        if self.uncertainty is not None:
            return self.uncertainty
        return 1.0 - self.raw_confidence


@dataclass(frozen=True)
class SignalScore:
    """Aggregated, risk-adjusted score for the signals on one symbol."""
    signal_id: str
    symbol: str
    sequence_number: int
    snapshot_version: int
    dimension_scores: dict[SignalDimension, float]
    overall_score: float
    recommendation: Recommendation
    confidence_interval: tuple[float, float]
    responding_sources: tuple[str, ...] = ()
    reference_price: Optional[float] = None
    evaluated_at_ms: int = 0
    status: EvaluationStatus = EvaluationStatus.COMPLETE
    flags: tuple[ScoreFlag, ...] = field(default_factory=tuple)

    @property
    def interval_width(self) -> float:
        low, high = self.confidence_interval
        return high - low

    @property
    def is_degraded(self) -> bool:
        return self.status != EvaluationStatus.COMPLETE

    def to_dict(self) -> dict[str, Any]:
        return {
            "signal_id": self.signal_id,
            "symbol": self.symbol,
            "sequence_number": self.sequence_number,
            "snapshot_version": self.snapshot_version,
            "dimension_scores": {dim.value: float(score) for dim, score in self.dimension_scores.items()},
            "overall_score": float(self.overall_score),
            "recommendation": self.recommendation.value,
            "confidence_interval": [float(self.confidence_interval[0]), float(self.confidence_interval[1])],
            "responding_sources": list(self.responding_sources),
            "reference_price": float(self.reference_price) if self.reference_price is not None else None,
            "evaluated_at_ms": self.evaluated_at_ms,
            "status": self.status.value,
            "flags": [flag.value for flag in self.flags],
        }


@dataclass(frozen=True)
class DegradedSignalScore(SignalScore):
    """Signal score produced below quorum; consumers must treat it with caution."""
    status: EvaluationStatus = EvaluationStatus.DEGRADED
    required_quorum: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["required_quorum"] = self.required_quorum
        return data
