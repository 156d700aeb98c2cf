"""Portfolio risk score models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .status import EvaluationStatus, ScoreFlag


class RiskDimension(str, Enum):
    """Risk axes, in the order weights are declared."""
    MARKET = "market"
    LIQUIDITY = "liquidity"
    CONCENTRATION = "concentration"
    VOLATILITY = "volatility"
    REGULATORY = "regulatory"


# Dimensions recomputed per changed symbol; the rest follow the coarse tick
INCREMENTAL_DIMENSIONS = (RiskDimension.LIQUIDITY, RiskDimension.CONCENTRATION)
COARSE_DIMENSIONS = (RiskDimension.MARKET, RiskDimension.VOLATILITY, RiskDimension.REGULATORY)


class RiskLevel(str, Enum):
    """Discrete risk levels, declared from least to most severe."""
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_LEVEL_ORDER.index(self)


_RISK_LEVEL_ORDER = list(RiskLevel)


@dataclass(frozen=True)
class ExposureSummary:
    """Weight and mark price of one holding at assessment time."""
    symbol: str
    weight: float
    price: float
    asset_class: str = "crypto"

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "weight": float(self.weight),
            "price": float(self.price),
            "asset_class": self.asset_class,
        }


@dataclass(frozen=True)
class RiskScore:
    """Overall portfolio risk for one snapshot version."""
    portfolio_id: str
    snapshot_version: int
    dimension_scores: dict[RiskDimension, float]
    overall_score: float
    risk_level: RiskLevel
    exposures: tuple[ExposureSummary, ...] = ()     # largest weight first, capped
    tracked_exposures: tuple[ExposureSummary, ...] = ()  # requested holdings outside the cap
    stale_dimensions: tuple[RiskDimension, ...] = ()
    assessed_at_ms: int = 0
    status: EvaluationStatus = EvaluationStatus.COMPLETE
    flags: tuple[ScoreFlag, ...] = field(default_factory=tuple)

    @property
    def largest_exposure(self) -> Optional[ExposureSummary]:
        return self.exposures[0] if self.exposures else None

    def exposure_for(self, symbol: str) -> Optional[ExposureSummary]:
        """Exposure of a held symbol, from the reported or the tracked holdings."""
        for exposure in self.exposures + self.tracked_exposures:
            if exposure.symbol == symbol:
                return exposure
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "portfolio_id": self.portfolio_id,
            "snapshot_version": self.snapshot_version,
            "dimension_scores": {dim.value: float(score) for dim, score in self.dimension_scores.items()},
            "overall_score": float(self.overall_score),
            "risk_level": self.risk_level.value,
            "exposures": [e.to_dict() for e in self.exposures],
            "tracked_exposures": [e.to_dict() for e in self.tracked_exposures],
            "stale_dimensions": [dim.value for dim in self.stale_dimensions],
            "assessed_at_ms": self.assessed_at_ms,
            "status": self.status.value,
            "flags": [flag.value for flag in self.flags],
        }
