"""Default configuration parameters for the evaluation engine."""

from dataclasses import dataclass

from ..models.risk import RiskDimension
from ..models.signals import SignalDimension


@dataclass(frozen=True)
class SignalWeights:
    """Per-dimension weights for signal scoring. Must sum to 1."""
    performance: float = 0.2
    risk: float = 0.2
    historical_validation: float = 0.2
    confidence: float = 0.2
    market_context: float = 0.2

    def as_mapping(self) -> dict[SignalDimension, float]:
        return {dim: getattr(self, dim.value) for dim in SignalDimension}


@dataclass(frozen=True)
class RecommendationThresholds:
    """Lower bounds (inclusive) of each recommendation tier."""
    strong_buy: float = 0.8
    buy: float = 0.6
    hold: float = 0.4
    sell: float = 0.2                   # below this: STRONG_SELL


@dataclass(frozen=True)
class SignalEvaluationParams:
    """Signal evaluator parameters."""
    min_quorum: int = 2                 # independent sources required
    dimension_timeout_ms: float = 40.0  # per analyzer call
    uncertainty_scale: float = 0.25     # half-width per unit of model uncertainty
    dispersion_scale: float = 1.0       # half-width per unit of source disagreement (std)
    max_half_width: float = 0.5


@dataclass(frozen=True)
class RiskWeights:
    """Per-dimension weights for the overall risk score. Must sum to 1."""
    market: float = 0.3
    liquidity: float = 0.2
    concentration: float = 0.2
    volatility: float = 0.2
    regulatory: float = 0.1

    def as_mapping(self) -> dict[RiskDimension, float]:
        return {dim: getattr(self, dim.value) for dim in RiskDimension}


@dataclass(frozen=True)
class RiskLevelThresholds:
    """Lower bounds (inclusive) of each risk level above LOW."""
    moderate: float = 0.25
    high: float = 0.5
    critical: float = 0.75


@dataclass(frozen=True)
class RiskAnalyzerParams:
    """Risk dimension analyzer parameters."""
    drawdown_limit: float = 0.3             # drawdown treated as full market severity
    max_participation: float = 0.1          # share of daily liquidity an exit may take
    unknown_liquidity_severity: float = 0.5
    hhi_floor: float = 0.1                  # ~10 equal holdings
    hhi_ceiling: float = 0.5                # ~2 equal holdings
    volatility_ceiling: float = 1.0         # annualized volatility treated as full severity
    default_volatility: float = 0.6


@dataclass(frozen=True)
class RiskEngineParams:
    """Risk assessment engine parameters."""
    dimension_timeout_ms: float = 40.0
    coarse_tick_ms: int = 60_000            # market/volatility/regulatory refresh
    max_reported_exposures: int = 10
    fallback_severity: float = 1.0          # timed-out dimension with no cached value


@dataclass(frozen=True)
class PlannerParams:
    """Mitigation planner parameters."""
    max_snapshot_version_lag: int = 1
    stop_loss_pct: float = 0.05             # stop placed this far below mark price
    max_position_weight: float = 0.25
    hedge_ratio: float = 0.5
    allow_hedging: bool = True
    sell_partial_fraction: float = 0.25


@dataclass(frozen=True)
class CoordinatorParams:
    """Evaluation coordinator parameters."""
    workers: int = 4
    intake_queue_size: int = 64
    emit_queue_size: int = 256
    latency_budget_ms: float = 100.0
    cas_max_retries: int = 3


@dataclass(frozen=True)
class AuditParams:
    """Audit retention parameters."""
    retention_enabled: bool = False
    db_path: str = "audit_events.db"


@dataclass(frozen=True)
class DefaultConfig:
    """Complete default configuration."""
    signal_weights: SignalWeights
    recommendation: RecommendationThresholds
    signal_evaluation: SignalEvaluationParams
    risk_weights: RiskWeights
    risk_levels: RiskLevelThresholds
    risk_analyzers: RiskAnalyzerParams
    risk_engine: RiskEngineParams
    planner: PlannerParams
    coordinator: CoordinatorParams
    audit: AuditParams


def get_default_config() -> DefaultConfig:
    """Get the default configuration instance."""
    return DefaultConfig(
        signal_weights=SignalWeights(),
        recommendation=RecommendationThresholds(),
        signal_evaluation=SignalEvaluationParams(),
        risk_weights=RiskWeights(),
        risk_levels=RiskLevelThresholds(),
        risk_analyzers=RiskAnalyzerParams(),
        risk_engine=RiskEngineParams(),
        planner=PlannerParams(),
        coordinator=CoordinatorParams(),
        audit=AuditParams(),
    )
