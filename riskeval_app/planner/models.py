"""
Planning cycle data models.

A planning cycle walks EVALUATE -> MITIGATE -> (EXECUTE ->) AUDIT once per
(signal score, risk score) pairing. AUDIT is terminal.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from ..models.mitigation import ExecutionReport, MitigationPlan
from ..models.risk import RiskScore
from ..models.signals import SignalScore


class PlannerState(str, Enum):
    """Planning cycle states."""
    EVALUATE = "evaluate"
    MITIGATE = "mitigate"
    EXECUTE = "execute"
    AUDIT = "audit"


# Allowed transitions; anything else is a defect
ALLOWED_TRANSITIONS: dict[PlannerState, frozenset[PlannerState]] = {
    PlannerState.EVALUATE: frozenset({PlannerState.MITIGATE}),
    PlannerState.MITIGATE: frozenset({PlannerState.EXECUTE, PlannerState.AUDIT}),
    PlannerState.EXECUTE: frozenset({PlannerState.AUDIT}),
    PlannerState.AUDIT: frozenset(),
}


@dataclass(frozen=True)
class PlanningCycle:
    """Immutable view of one planning cycle."""

    cycle_id: str
    portfolio_id: str
    state: PlannerState = PlannerState.EVALUATE

    signal_score: Optional[SignalScore] = None
    risk_score: Optional[RiskScore] = None
    plan: Optional[MitigationPlan] = None
    execution: Optional[ExecutionReport] = None

    @property
    def is_terminal(self) -> bool:
        return self.state == PlannerState.AUDIT

    def with_state(self, new_state: PlannerState, **updates) -> "PlanningCycle":
        """Create a new cycle in ``new_state`` with optional field updates."""
        return replace(self, state=new_state, **updates)
