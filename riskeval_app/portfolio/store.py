"""
Portfolio store boundary.

The portfolio store owns positions and their version counter. The engine
never mutates positions; it only asks the store to accept a plan's binding
actions against the snapshot version the plan was computed from.
"""

import asyncio
from collections.abc import Iterable, Sequence
from dataclasses import replace
from typing import Protocol

import structlog

from ..errors import ConcurrentModificationError, ValidationError
from ..models.mitigation import RiskMitigationAction
from ..models.portfolio import PortfolioSnapshot

logger = structlog.get_logger(__name__)


class PortfolioStore(Protocol):
    """Optimistically versioned portfolio store."""

    async def current_version(self, portfolio_id: str) -> int:
        ...

    async def compare_and_swap(
        self,
        portfolio_id: str,
        expected_version: int,
        actions: Sequence[RiskMitigationAction],
    ) -> int:
        """
        Accept actions only if the portfolio is still at ``expected_version``.

        Returns the new version. Raises ConcurrentModificationError otherwise.
        """
        ...


class InMemoryPortfolioStore:
    """Reference PortfolioStore keeping snapshots and accepted actions in memory."""

    def __init__(self, snapshots: Iterable[PortfolioSnapshot] = ()):
        self._snapshots: dict[str, PortfolioSnapshot] = {s.portfolio_id: s for s in snapshots}
        self._accepted: dict[str, list[tuple[int, tuple[RiskMitigationAction, ...]]]] = {}
        self._lock = asyncio.Lock()

    async def snapshot(self, portfolio_id: str) -> PortfolioSnapshot:
        async with self._lock:
            return self._get(portfolio_id)

    async def current_version(self, portfolio_id: str) -> int:
        async with self._lock:
            return self._get(portfolio_id).version

    async def put_snapshot(self, snapshot: PortfolioSnapshot) -> None:
        """Publish a new snapshot, as the portfolio owner does after a trade."""
        async with self._lock:
            current = self._snapshots.get(snapshot.portfolio_id)
            if current is not None and snapshot.version <= current.version:
                raise ConcurrentModificationError(
                    f"Snapshot version {snapshot.version} does not advance {current.version}",
                    expected_version=current.version + 1,
                    actual_version=snapshot.version,
                )
            self._snapshots[snapshot.portfolio_id] = snapshot

    async def compare_and_swap(
        self,
        portfolio_id: str,
        expected_version: int,
        actions: Sequence[RiskMitigationAction],
    ) -> int:
        async with self._lock:
            current = self._get(portfolio_id)
            if current.version != expected_version:
                raise ConcurrentModificationError(
                    f"Portfolio {portfolio_id} is at version {current.version}, expected {expected_version}",
                    expected_version=expected_version,
                    actual_version=current.version,
                    context={"portfolio_id": portfolio_id},
                )

            new_version = current.version + 1
            self._snapshots[portfolio_id] = replace(current, version=new_version)
            self._accepted.setdefault(portfolio_id, []).append((new_version, tuple(actions)))

        logger.info(
            "portfolio_actions_accepted",
            portfolio_id=portfolio_id,
            expected_version=expected_version,
            new_version=new_version,
            actions=len(actions),
        )
        return new_version

    def accepted_actions(self, portfolio_id: str) -> list[tuple[int, tuple[RiskMitigationAction, ...]]]:
        return list(self._accepted.get(portfolio_id, []))

    def _get(self, portfolio_id: str) -> PortfolioSnapshot:
        try:
            return self._snapshots[portfolio_id]
        except KeyError:
            raise ValidationError(
                f"Unknown portfolio {portfolio_id}",
                field="portfolio_id", value=portfolio_id
            ) from None
