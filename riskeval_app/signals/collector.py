"""
Concurrent collection of predictions from independent predictive sources.

Sources are queried in parallel, each under its own timeout. A source that
is slow, fails, or has nothing to say for the symbol is left out of the
result; the evaluator's quorum check decides whether what remains is enough.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol

import structlog

from ..errors import ConfigurationError, ValidationError
from ..models.market import MarketContext, ModelPrediction
from ..models.signals import TradingSignal

logger = structlog.get_logger(__name__)


class SourceOutcome(str, Enum):
    """What one prediction source did during a collection."""
    RESPONDED = "responded"
    SILENT = "silent"           # answered with no prediction
    TIMEOUT = "timeout"
    FAILED = "failed"


class PredictionSource(Protocol):
    """An independent predictive model queried for a symbol."""

    source_id: str

    async def predict(self, symbol: str, market: MarketContext) -> Optional[ModelPrediction]:
        ...


@dataclass(frozen=True)
class CollectionResult:
    """Signals gathered for one symbol and what happened to each source."""
    symbol: str
    signals: tuple[TradingSignal, ...] = ()
    timed_out: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    silent: tuple[str, ...] = field(default_factory=tuple)

    @property
    def responded(self) -> tuple[str, ...]:
        return tuple(s.source_id for s in self.signals)

    def outcome_of(self, source_id: str) -> Optional[SourceOutcome]:
        if source_id in self.responded:
            return SourceOutcome.RESPONDED
        for outcome, source_ids in (
            (SourceOutcome.SILENT, self.silent),
            (SourceOutcome.TIMEOUT, self.timed_out),
            (SourceOutcome.FAILED, self.failed),
        ):
            if source_id in source_ids:
                return outcome
        return None


class SignalCollector:
    """Queries a fixed, ordered set of prediction sources."""

    def __init__(self, sources: Sequence[PredictionSource], timeout_ms: float = 50.0):
        sources = tuple(sources)
        source_ids = [s.source_id for s in sources]
        if len(set(source_ids)) != len(source_ids):
            raise ConfigurationError(
                "Prediction source ids must be unique",
                context={"source_ids": source_ids}
            )
        self.sources = sources
        self.timeout_ms = timeout_ms

    async def collect(self, symbol: str, market: MarketContext) -> CollectionResult:
        outcomes = await asyncio.gather(*(self._query(source, symbol, market) for source in self.sources))

        signals: list[TradingSignal] = []
        by_outcome: dict[SourceOutcome, list[str]] = {outcome: [] for outcome in SourceOutcome}

        for source, (outcome, signal) in zip(self.sources, outcomes):
            if outcome == SourceOutcome.RESPONDED:
                signals.append(signal)
            else:
                by_outcome[outcome].append(source.source_id)
        timed_out = by_outcome[SourceOutcome.TIMEOUT]
        failed = by_outcome[SourceOutcome.FAILED]

        result = CollectionResult(
            symbol=symbol,
            signals=tuple(signals),
            timed_out=tuple(timed_out),
            failed=tuple(failed),
            silent=tuple(by_outcome[SourceOutcome.SILENT]),
        )
        logger.debug(
            "signals_collected",
            symbol=symbol,
            responded=list(result.responded),
            timed_out=timed_out,
            failed=failed,
        )
        return result

    async def _query(
        self,
        source: PredictionSource,
        symbol: str,
        market: MarketContext,
    ) -> tuple[SourceOutcome, Optional[TradingSignal]]:
        try:
            prediction = await asyncio.wait_for(
                source.predict(symbol, market),
                timeout=self.timeout_ms / 1000.0,
            )
        except TimeoutError:
            logger.warning(
                "prediction_source_timeout",
                source_id=source.source_id,
                symbol=symbol,
                timeout_ms=self.timeout_ms,
            )
            return SourceOutcome.TIMEOUT, None
        except Exception as e:
            logger.warning(
                "prediction_source_failed",
                source_id=source.source_id,
                symbol=symbol,
                error_type=type(e).__name__,
                error=str(e),
            )
            return SourceOutcome.FAILED, None

        if prediction is None:
            return SourceOutcome.SILENT, None

        if prediction.symbol != symbol or prediction.source_id != source.source_id:
            logger.warning(
                "prediction_source_mismatch",
                source_id=source.source_id,
                symbol=symbol,
                reported_source=prediction.source_id,
                reported_symbol=prediction.symbol,
            )
            return SourceOutcome.FAILED, None

        try:
            return SourceOutcome.RESPONDED, prediction.to_signal()
        except ValidationError as e:
            logger.warning(
                "prediction_rejected",
                source_id=source.source_id,
                symbol=symbol,
                error_type=type(e).__name__,
                error=str(e),
            )
            return SourceOutcome.FAILED, None
