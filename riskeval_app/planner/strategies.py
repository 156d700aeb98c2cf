"""
Risk-level gated mitigation strategies.

Planning is a pure function of (SignalScore, RiskScore, config): the same
inputs always yield the same plan, plan_id and timestamps. Each risk level
maps onto exactly one handler through a static table.
"""

import hashlib
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

import orjson

from ..config.defaults import PlannerParams
from ..config.tolerance import RiskToleranceConfig
from ..errors import ConfigurationError, SnapshotMismatchError, ValidationError
from ..models.mitigation import ActionType, MitigationPlan, RiskMitigationAction
from ..models.risk import ExposureSummary, RiskLevel, RiskScore
from ..models.signals import Recommendation, SignalScore


@dataclass(frozen=True)
class PlanningContext:
    """Inputs available to a risk-level handler."""
    signal_score: SignalScore
    risk_score: RiskScore
    params: PlannerParams
    timestamp: int

    @property
    def affected(self) -> Optional[ExposureSummary]:
        """The signal's symbol when held, else the largest holding."""
        return (self.risk_score.exposure_for(self.signal_score.symbol)
                or self.risk_score.largest_exposure)

    def action(self, action_type: ActionType, asset_id: str, value: float,
               rationale: str, binding: bool = True) -> RiskMitigationAction:
        return RiskMitigationAction(
            action_type=action_type,
            asset_id=asset_id,
            action_value=value,
            triggering_risk_level=self.risk_score.risk_level,
            triggering_snapshot_version=self.risk_score.snapshot_version,
            timestamp=self.timestamp,
            binding=binding,
            rationale=rationale,
        )


HandlerResult = tuple[list[RiskMitigationAction], list[str]]


def _mark_price(ctx: PlanningContext, exposure: ExposureSummary) -> float:
    if exposure.price > 0:
        return exposure.price
    if exposure.symbol == ctx.signal_score.symbol and ctx.signal_score.reference_price:
        return ctx.signal_score.reference_price
    raise ValidationError(
        f"No price available to place a stop for {exposure.symbol}",
        field="price", value=exposure.price
    )


def plan_critical(ctx: PlanningContext) -> HandlerResult:
    """Mandatory stop-loss on the affected asset plus mandatory diversification."""
    affected = ctx.affected
    if affected is None:
        return [], ["critical risk with no holdings to protect"]

    price = _mark_price(ctx, affected)
    stop = price * (1.0 - ctx.params.stop_loss_pct)
    return [
        ctx.action(
            ActionType.STOP_LOSS, affected.symbol, stop,
            rationale=f"stop {ctx.params.stop_loss_pct:.2%} below mark {price}",
        ),
        ctx.action(
            ActionType.DIVERSIFY, affected.symbol, ctx.params.max_position_weight,
            rationale=f"cap weight at {ctx.params.max_position_weight:.2%} (now {affected.weight:.2%})",
        ),
    ], []


def plan_high(ctx: PlanningContext) -> HandlerResult:
    """Rebalance proposal, partial exit on bearish signals, optional hedge."""
    params = ctx.params
    exposures = ctx.risk_score.exposures
    actions: list[RiskMitigationAction] = []

    overweight = [e for e in exposures if e.weight > params.max_position_weight]
    for exposure in overweight:
        actions.append(ctx.action(
            ActionType.REBALANCE, exposure.symbol, params.max_position_weight,
            rationale=f"weight {exposure.weight:.2%} above {params.max_position_weight:.2%}",
        ))
    if not overweight and exposures:
        largest = exposures[0]
        target = largest.weight * (1.0 - params.sell_partial_fraction)
        actions.append(ctx.action(
            ActionType.REBALANCE, largest.symbol, target,
            rationale=f"trim largest holding from {largest.weight:.2%}",
        ))

    held = ctx.risk_score.exposure_for(ctx.signal_score.symbol)
    if held is not None and ctx.signal_score.recommendation.is_bearish:
        actions.append(ctx.action(
            ActionType.SELL_PARTIAL, held.symbol, params.sell_partial_fraction,
            rationale=f"{ctx.signal_score.recommendation.value} signal on held asset",
        ))

    affected = ctx.affected
    if (affected is not None and params.allow_hedging
            and ctx.signal_score.recommendation.rank <= Recommendation.HOLD.rank):
        actions.append(ctx.action(
            ActionType.HEDGE, affected.symbol, params.hedge_ratio,
            rationale="optional hedge while signal is not bullish",
            binding=False,
        ))

    advisories = [] if exposures else ["high risk with no holdings to rebalance"]
    return actions, advisories


def plan_moderate(ctx: PlanningContext) -> HandlerResult:
    """Advisory only: name the dimensions driving the score."""
    risk = ctx.risk_score
    drivers = sorted(risk.dimension_scores.items(), key=lambda item: (-item[1], item[0].value))
    advisories = [f"{dim.value} risk at {score:.2f}" for dim, score in drivers[:2] if score > 0]
    affected = ctx.affected
    if affected is not None:
        advisories.append(f"monitor {affected.symbol} at {affected.weight:.2%} of portfolio")
    return [], advisories


def plan_low(ctx: PlanningContext) -> HandlerResult:
    return [], []


PLAN_HANDLERS: dict[RiskLevel, Callable[[PlanningContext], HandlerResult]] = {
    RiskLevel.CRITICAL: plan_critical,
    RiskLevel.HIGH: plan_high,
    RiskLevel.MODERATE: plan_moderate,
    RiskLevel.LOW: plan_low,
}

_missing = set(RiskLevel) - set(PLAN_HANDLERS)
if _missing:
    raise ConfigurationError(
        "Every risk level needs a plan handler",
        context={"missing": sorted(level.value for level in _missing)}
    )


def check_snapshot_consistency(signal_score: SignalScore, risk_score: RiskScore, max_lag: int) -> None:
    """
    Raises:
        SnapshotMismatchError: If the scores were computed against snapshot
            versions further apart than ``max_lag``.
    """
    lag = abs(signal_score.snapshot_version - risk_score.snapshot_version)
    if lag > max_lag:
        raise SnapshotMismatchError(
            f"Signal snapshot {signal_score.snapshot_version} and risk snapshot "
            f"{risk_score.snapshot_version} differ by more than {max_lag}",
            signal_version=signal_score.snapshot_version,
            risk_version=risk_score.snapshot_version,
            bound=max_lag,
            context={"portfolio_id": risk_score.portfolio_id, "signal_id": signal_score.signal_id},
        )


def plan_id_for(signal_score: SignalScore, risk_score: RiskScore, config: RiskToleranceConfig) -> str:
    payload = orjson.dumps(
        {
            "signal": signal_score.to_dict(),
            "risk": risk_score.to_dict(),
            "config": config.fingerprint(),
        },
        option=orjson.OPT_SORT_KEYS,
    )
    return hashlib.sha256(payload).hexdigest()[:32]


def build_plan(signal_score: SignalScore, risk_score: RiskScore, config: RiskToleranceConfig) -> MitigationPlan:
    """
    Build the mitigation plan for one (signal score, risk score) pairing.

    Raises:
        SnapshotMismatchError: If the two scores' snapshot versions diverge
            beyond the configured bound.
        ValidationError: If a stop-loss is required but no price is known.
    """
    params = config.planner
    check_snapshot_consistency(signal_score, risk_score, params.max_snapshot_version_lag)

    timestamp = max(signal_score.evaluated_at_ms, risk_score.assessed_at_ms)
    ctx = PlanningContext(
        signal_score=signal_score,
        risk_score=risk_score,
        params=params,
        timestamp=timestamp,
    )
    actions, advisories = PLAN_HANDLERS[risk_score.risk_level](ctx)

    return MitigationPlan(
        plan_id=plan_id_for(signal_score, risk_score, config),
        portfolio_id=risk_score.portfolio_id,
        signal_id=signal_score.signal_id,
        snapshot_version=risk_score.snapshot_version,
        risk_level=risk_score.risk_level,
        actions=tuple(actions),
        advisories=tuple(advisories),
        created_at=timestamp,
    )
