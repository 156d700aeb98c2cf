"""
Replay protection for signal sequence numbers.

Sequence numbers are tracked per (portfolio, symbol). Signals at or below
the last committed sequence number have already been acted on and are
discarded. Commits happen only after a cycle's records were emitted, so a
cancelled or rejected cycle never advances the watermark.
"""

from collections.abc import Sequence
from typing import Optional

import structlog

from ..errors import SequenceRegressionError
from ..models.signals import TradingSignal

logger = structlog.get_logger(__name__)


class SequenceGuard:
    """Per-(portfolio, symbol) high-water marks of emitted sequence numbers."""

    def __init__(self) -> None:
        self._committed: dict[tuple[str, str], int] = {}

    def last_committed(self, portfolio_id: str, symbol: str) -> Optional[int]:
        return self._committed.get((portfolio_id, symbol))

    def filter(
        self,
        portfolio_id: str,
        signals: Sequence[TradingSignal],
    ) -> tuple[list[TradingSignal], list[TradingSignal]]:
        """
        Split signals into (accepted, discarded).

        Raises:
            SequenceRegressionError: If signals were given and every one of
                them regresses.
        """
        accepted: list[TradingSignal] = []
        discarded: list[TradingSignal] = []

        for signal in signals:
            last = self._committed.get((portfolio_id, signal.symbol))
            if last is not None and signal.sequence_number <= last:
                discarded.append(signal)
            else:
                accepted.append(signal)

        if discarded:
            logger.warning(
                "stale_signals_discarded",
                portfolio_id=portfolio_id,
                discarded=[(s.source_id, s.symbol, s.sequence_number) for s in discarded],
            )

        if signals and not accepted:
            first = discarded[0]
            last = self._committed[(portfolio_id, first.symbol)]
            raise SequenceRegressionError(
                f"All signals for {first.symbol} are at or below sequence {last}",
                symbol=first.symbol,
                sequence_number=max(s.sequence_number for s in discarded),
                last_sequence=last,
                context={"portfolio_id": portfolio_id},
            )

        return accepted, discarded

    def commit(self, portfolio_id: str, symbol: str, sequence_number: int) -> bool:
        """Advance the watermark. Returns False if it would move backwards."""
        key = (portfolio_id, symbol)
        last = self._committed.get(key)
        if last is not None and sequence_number <= last:
            return False
        self._committed[key] = sequence_number
        return True
