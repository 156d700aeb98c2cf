"""
Analyzer capability interfaces.

Analyzers are plain objects handed to the evaluator and the risk engine as
an ordered tuple at construction time. ``score`` is the pure computation;
``analyze`` is the awaitable entry point the engines time-box, which
implementations backed by external inference override.
"""

import math
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import ClassVar

from ..config.defaults import RiskAnalyzerParams
from ..models.market import MarketContext
from ..models.risk import RiskDimension
from ..models.signals import Direction, SignalDimension, TradingSignal
from ..risk.exposure import ExposureBook, SymbolExposure


def clamp_unit(value: float) -> float:
    """Clamp into [0, 1]. NaN is passed through for the caller to reject."""
    if math.isnan(value):
        return value
    return min(1.0, max(0.0, value))


def directional_score(direction: Direction, quality: float) -> float:
    """
    Orient a [0, 1] quality measure by the signal's direction.

    A high-quality LONG moves towards 1 (buy), a high-quality SHORT towards
    0 (sell); NEUTRAL signals always sit at 0.5.
    """
    quality = clamp_unit(quality)
    if direction == Direction.LONG:
        return 0.5 + 0.5 * quality
    if direction == Direction.SHORT:
        return 0.5 - 0.5 * quality
    return 0.5


class SignalAnalyzer(ABC):
    """Scores one trading signal along one dimension."""

    dimension: ClassVar[SignalDimension]

    @abstractmethod
    def score(self, signal: TradingSignal, market: MarketContext) -> float:
        """Return a score in [0, 1]."""

    async def analyze(self, signal: TradingSignal, market: MarketContext) -> float:
        return self.score(signal, market)


class RiskAnalyzer(ABC):
    """Scores a portfolio's exposure book along one risk dimension."""

    dimension: ClassVar[RiskDimension]
    incremental: ClassVar[bool] = False

    @abstractmethod
    def score(self, book: ExposureBook, market: MarketContext, params: RiskAnalyzerParams) -> float:
        """Return a severity in [0, 1]; 0 is no risk."""

    async def analyze(self, book: ExposureBook, market: MarketContext, params: RiskAnalyzerParams) -> float:
        return self.score(book, market, params)


class IncrementalRiskAnalyzer(RiskAnalyzer):
    """
    Risk analyzer whose score is a function of per-symbol contributions.

    Only the contributions of changed symbols are recomputed on a portfolio
    delta; ``score`` then reads the book's running totals.
    """

    incremental: ClassVar[bool] = True

    @abstractmethod
    def contribution(self, exposure: SymbolExposure, market: MarketContext, params: RiskAnalyzerParams) -> float:
        """Per-symbol contribution to this dimension's running total."""

    async def contributions(
        self,
        exposures: Sequence[SymbolExposure],
        market: MarketContext,
        params: RiskAnalyzerParams,
    ) -> dict[str, float]:
        return {e.symbol: self.contribution(e, market, params) for e in exposures}
