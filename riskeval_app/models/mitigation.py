"""
Risk mitigation action and plan models.

Actions are created by the planner, persisted by the external audit
collaborator and never mutated after creation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .risk import RiskLevel


class ActionType(str, Enum):
    """Closed set of mitigation actions."""
    STOP_LOSS = "stop_loss"         # action_value: stop price
    SELL_PARTIAL = "sell_partial"   # action_value: fraction of the holding to sell
    REBALANCE = "rebalance"         # action_value: target portfolio weight
    HEDGE = "hedge"                 # action_value: hedge ratio of the exposure
    DIVERSIFY = "diversify"         # action_value: target maximum weight


@dataclass(frozen=True)
class RiskMitigationAction:
    """One concrete mitigation step."""
    action_type: ActionType
    asset_id: str
    action_value: float
    triggering_risk_level: RiskLevel
    triggering_snapshot_version: int
    timestamp: int                  # epoch ms, derived from the scored inputs
    binding: bool = True            # False for optional suggestions
    rationale: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.action_type.value,
            "asset_id": self.asset_id,
            "action_value": float(self.action_value),
            "triggering_risk_level": self.triggering_risk_level.value,
            "triggering_snapshot_version": self.triggering_snapshot_version,
            "timestamp": self.timestamp,
            "binding": self.binding,
            "rationale": self.rationale,
        }


@dataclass(frozen=True)
class MitigationPlan:
    """Deterministic set of actions for one (signal score, risk score) pairing."""
    plan_id: str
    portfolio_id: str
    signal_id: str
    snapshot_version: int
    risk_level: RiskLevel
    actions: tuple[RiskMitigationAction, ...] = ()
    advisories: tuple[str, ...] = ()
    created_at: int = 0             # epoch ms, derived from the scored inputs

    @property
    def is_empty(self) -> bool:
        return not self.actions

    @property
    def binding_actions(self) -> tuple[RiskMitigationAction, ...]:
        return tuple(a for a in self.actions if a.binding)

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "portfolio_id": self.portfolio_id,
            "signal_id": self.signal_id,
            "snapshot_version": self.snapshot_version,
            "risk_level": self.risk_level.value,
            "actions": [action.to_dict() for action in self.actions],
            "advisories": list(self.advisories),
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class ExecutionReport:
    """Outcome of handing a plan's binding actions to the portfolio store."""
    plan_id: str
    portfolio_id: str
    applied: bool
    attempts: int
    expected_version: int
    committed_version: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "portfolio_id": self.portfolio_id,
            "applied": self.applied,
            "attempts": self.attempts,
            "expected_version": self.expected_version,
            "committed_version": self.committed_version,
            "error": self.error,
        }
