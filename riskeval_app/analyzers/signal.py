"""
Signal dimension analyzers.

Each analyzer rates how much a signal should be trusted along one axis and
orients that rating by the signal's direction, so that 1.0 reads as a
strong, well-supported buy and 0.0 as a strong, well-supported sell.
"""

from typing import Optional

from ..config.defaults import RiskAnalyzerParams
from ..models.market import MarketContext
from ..models.signals import Direction, SignalDimension, TradingSignal
from .base import SignalAnalyzer, clamp_unit, directional_score

# Pseudo-observations pulling a short track record towards a coin flip
TRACK_RECORD_PRIOR = 20


def shrunk_hit_rate(hit_rate: float, sample_size: int, prior: int = TRACK_RECORD_PRIOR) -> float:
    """Hit rate shrunk towards 0.5 in proportion to how little history backs it."""
    sample_size = max(0, sample_size)
    return (hit_rate * sample_size + 0.5 * prior) / (sample_size + prior)


class PerformanceAnalyzer(SignalAnalyzer):
    """Realized accuracy of the signal's source."""

    dimension = SignalDimension.PERFORMANCE

    def score(self, signal: TradingSignal, market: MarketContext) -> float:
        record = market.track_record(signal.source_id)
        return directional_score(signal.direction, shrunk_hit_rate(record.hit_rate, record.sample_size))


class RiskAdjustmentAnalyzer(SignalAnalyzer):
    """
    Discounts signals on symbols whose volatility makes any call less reliable.

    Shares the volatility ceiling and the assumed volatility of unquoted
    symbols with the volatility risk analyzer.
    """

    dimension = SignalDimension.RISK

    def __init__(self, params: Optional[RiskAnalyzerParams] = None):
        self.params = params or RiskAnalyzerParams()

    def score(self, signal: TradingSignal, market: MarketContext) -> float:
        volatility = market.volatility.get(signal.symbol, self.params.default_volatility)
        quality = 1.0 - clamp_unit(volatility / self.params.volatility_ceiling)
        return directional_score(signal.direction, quality)


class HistoricalValidationAnalyzer(SignalAnalyzer):
    """
    Calibration of the source: how well its stated confidence matches the
    accuracy it has actually achieved.
    """

    dimension = SignalDimension.HISTORICAL_VALIDATION

    def score(self, signal: TradingSignal, market: MarketContext) -> float:
        record = market.track_record(signal.source_id)
        realized = shrunk_hit_rate(record.hit_rate, record.sample_size)
        quality = 1.0 - abs(signal.raw_confidence - realized)
        return directional_score(signal.direction, quality)


class ConfidenceAnalyzer(SignalAnalyzer):
    dimension = SignalDimension.CONFIDENCE

    def score(self, signal: TradingSignal, market: MarketContext) -> float:
        return directional_score(signal.direction, signal.raw_confidence)


class MarketContextAnalyzer(SignalAnalyzer):
    """Agreement of the signal with prevailing momentum, damped under market stress."""

    dimension = SignalDimension.MARKET_CONTEXT

    def score(self, signal: TradingSignal, market: MarketContext) -> float:
        momentum = max(-1.0, min(1.0, market.momentum.get(signal.symbol, 0.0)))
        if signal.direction == Direction.SHORT:
            alignment = (1.0 - momentum) / 2.0
        else:
            alignment = (1.0 + momentum) / 2.0
        quality = alignment * (1.0 - 0.5 * clamp_unit(market.market_stress))
        return directional_score(signal.direction, quality)


def default_signal_analyzers(params: Optional[RiskAnalyzerParams] = None) -> tuple[SignalAnalyzer, ...]:
    """The five signal analyzers, in dimension declaration order."""
    return (
        PerformanceAnalyzer(),
        RiskAdjustmentAnalyzer(params),
        HistoricalValidationAnalyzer(),
        ConfidenceAnalyzer(),
        MarketContextAnalyzer(),
    )
