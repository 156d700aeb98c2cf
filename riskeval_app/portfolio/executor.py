"""Version-checked plan execution with bounded optimistic retries."""

import asyncio

import structlog

from ..errors import ConcurrentModificationError
from ..models.mitigation import ExecutionReport, MitigationPlan
from .store import PortfolioStore

logger = structlog.get_logger(__name__)


class VersionCheckedExecutor:
    """
    Hands a plan's binding actions to the portfolio store.

    The plan asserts it was computed against a still-current snapshot. When
    the portfolio has moved on by no more than ``max_version_lag`` versions
    the actions are re-submitted against the newer version; beyond that, or
    once ``max_retries`` attempts are used, the conflict is raised.
    """

    def __init__(self, store: PortfolioStore, max_retries: int = 3,
                 max_version_lag: int = 1, backoff_ms: float = 2.0):
        self.store = store
        self.max_retries = max_retries
        self.max_version_lag = max_version_lag
        self.backoff_ms = backoff_ms

    async def execute(self, plan: MitigationPlan) -> ExecutionReport:
        """
        Raises:
            ConcurrentModificationError: With ``retries_exhausted`` set, when
                the plan could not be applied.
        """
        actions = plan.binding_actions
        expected = plan.snapshot_version
        last_error = None

        for attempt in range(1, self.max_retries + 1):
            try:
                committed = await self.store.compare_and_swap(plan.portfolio_id, expected, actions)
            except ConcurrentModificationError as e:
                last_error = e
                actual = e.actual_version
                logger.warning(
                    "plan_version_conflict",
                    plan_id=plan.plan_id,
                    portfolio_id=plan.portfolio_id,
                    attempt=attempt,
                    expected_version=expected,
                    actual_version=actual,
                )
                if actual is None or actual - plan.snapshot_version > self.max_version_lag:
                    break
                expected = actual
                if attempt < self.max_retries and self.backoff_ms > 0:
                    await asyncio.sleep(self.backoff_ms * attempt / 1000.0)
                continue

            return ExecutionReport(
                plan_id=plan.plan_id,
                portfolio_id=plan.portfolio_id,
                applied=True,
                attempts=attempt,
                expected_version=expected,
                committed_version=committed,
            )

        raise ConcurrentModificationError(
            f"Plan {plan.plan_id} could not be applied to portfolio {plan.portfolio_id}",
            expected_version=expected,
            actual_version=last_error.actual_version if last_error else None,
            retry_count=self.max_retries,
            max_retries=self.max_retries,
            context={"plan_id": plan.plan_id, "portfolio_id": plan.portfolio_id},
        )
