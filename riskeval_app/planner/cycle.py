"""
Planning cycle transition handling.

The runner is the only place a PlanningCycle changes state. Every transition
is validated against ALLOWED_TRANSITIONS and its preconditions and logged
through the planner logger.
"""

import uuid
from typing import Any, Optional

from ..config.tolerance import RiskToleranceConfig
from ..errors import PlanTransitionError
from ..logging.config import get_planner_logger, log_plan_transition
from ..models.mitigation import ExecutionReport
from ..models.risk import RiskScore
from ..models.signals import SignalScore
from .models import ALLOWED_TRANSITIONS, PlannerState, PlanningCycle
from .strategies import build_plan


class PlanCycleRunner:
    """Drives planning cycles through EVALUATE, MITIGATE, EXECUTE and AUDIT."""

    def __init__(self):
        self.logger = get_planner_logger(__name__)

    def start(self, portfolio_id: str, cycle_id: Optional[str] = None) -> PlanningCycle:
        return PlanningCycle(cycle_id=cycle_id or uuid.uuid4().hex, portfolio_id=portfolio_id)

    def apply_transition(
        self,
        cycle: PlanningCycle,
        to_state: PlannerState,
        trigger: str,
        context: Optional[dict[str, Any]] = None,
        **updates,
    ) -> PlanningCycle:
        """
        Move a cycle to ``to_state``.

        Raises:
            PlanTransitionError: If the transition is not allowed from the
                cycle's current state.
        """
        if to_state not in ALLOWED_TRANSITIONS[cycle.state]:
            self.logger.error(
                "plan_transition_rejected",
                cycle_id=cycle.cycle_id,
                current_state=cycle.state.value,
                attempted_transition=to_state.value,
            )
            raise PlanTransitionError(
                f"Invalid planner transition from {cycle.state.value} to {to_state.value}",
                current_state=cycle.state.value,
                attempted_transition=to_state.value,
                context={"cycle_id": cycle.cycle_id, "portfolio_id": cycle.portfolio_id},
            )

        new_cycle = cycle.with_state(to_state, **updates)
        log_plan_transition(
            self.logger,
            cycle_id=cycle.cycle_id,
            from_state=cycle.state.value,
            to_state=to_state.value,
            trigger=trigger,
            context=context,
        )
        return new_cycle

    def mitigate(
        self,
        cycle: PlanningCycle,
        signal_score: SignalScore,
        risk_score: RiskScore,
        config: RiskToleranceConfig,
    ) -> PlanningCycle:
        """
        EVALUATE -> MITIGATE: requires both scores on consistent snapshots.

        Raises:
            SnapshotMismatchError: If the scores' snapshot versions diverge.
        """
        if cycle.state != PlannerState.EVALUATE:
            raise PlanTransitionError(
                "Scores can only be accepted while evaluating",
                current_state=cycle.state.value,
                attempted_transition=PlannerState.MITIGATE.value,
            )
        plan = build_plan(signal_score, risk_score, config)

        return self.apply_transition(
            cycle,
            PlannerState.MITIGATE,
            trigger="scores_available",
            context={
                "plan_id": plan.plan_id,
                "risk_level": plan.risk_level.value,
                "actions": len(plan.actions),
            },
            signal_score=signal_score,
            risk_score=risk_score,
            plan=plan,
        )

    def needs_execution(self, cycle: PlanningCycle) -> bool:
        return cycle.plan is not None and bool(cycle.plan.binding_actions)

    def begin_execution(self, cycle: PlanningCycle) -> PlanningCycle:
        if not self.needs_execution(cycle):
            raise PlanTransitionError(
                "Only plans with binding actions are executed",
                current_state=cycle.state.value,
                attempted_transition=PlannerState.EXECUTE.value,
            )
        return self.apply_transition(
            cycle, PlannerState.EXECUTE, trigger="binding_actions",
            context={"plan_id": cycle.plan.plan_id},
        )

    def audit(self, cycle: PlanningCycle, execution: Optional[ExecutionReport] = None) -> PlanningCycle:
        """MITIGATE/EXECUTE -> AUDIT. The plan is always audited, even when empty."""
        if cycle.plan is None:
            raise PlanTransitionError(
                "Cannot audit a cycle without a plan",
                current_state=cycle.state.value,
                attempted_transition=PlannerState.AUDIT.value,
            )
        if cycle.state == PlannerState.EXECUTE and execution is None:
            raise PlanTransitionError(
                "Executed cycles must be audited with their execution report",
                current_state=cycle.state.value,
                attempted_transition=PlannerState.AUDIT.value,
            )

        trigger = "execution_finished" if cycle.state == PlannerState.EXECUTE else "plan_ready"
        updates = {"execution": execution} if execution is not None else {}
        return self.apply_transition(
            cycle, PlannerState.AUDIT, trigger=trigger,
            context={"plan_id": cycle.plan.plan_id},
            **updates,
        )
