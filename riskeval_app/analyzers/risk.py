"""
Risk dimension analyzers.

Liquidity and concentration are incremental: each symbol contributes a term
to a running total, so only changed symbols are re-evaluated. Market,
volatility and regulatory scores are computed from the whole book and are
refreshed on the coarse tick.
"""

import math

from ..config.defaults import RiskAnalyzerParams
from ..models.market import MarketContext
from ..models.risk import RiskDimension
from ..risk.exposure import ExposureBook, SymbolExposure
from .base import IncrementalRiskAnalyzer, RiskAnalyzer, clamp_unit


class MarketRiskAnalyzer(RiskAnalyzer):
    """Regime stress or value-weighted drawdown against the limit, whichever is worse."""

    dimension = RiskDimension.MARKET

    def score(self, book: ExposureBook, market: MarketContext, params: RiskAnalyzerParams) -> float:
        stress = clamp_unit(market.market_stress)
        total = book.total_value
        if total <= 0:
            return stress

        drawdown = math.fsum(e.value * e.drawdown for e in book) / total
        return max(stress, clamp_unit(drawdown / params.drawdown_limit))


class LiquidityRiskAnalyzer(IncrementalRiskAnalyzer):
    """
    Share of portfolio value that cannot be exited within the allowed
    participation of average daily traded value.
    """

    dimension = RiskDimension.LIQUIDITY

    def contribution(self, exposure: SymbolExposure, market: MarketContext, params: RiskAnalyzerParams) -> float:
        daily_value = market.liquidity.get(exposure.symbol)
        if not daily_value or daily_value <= 0:
            return exposure.value * params.unknown_liquidity_severity

        capacity = daily_value * params.max_participation
        return exposure.value * min(1.0, exposure.value / capacity)

    def score(self, book: ExposureBook, market: MarketContext, params: RiskAnalyzerParams) -> float:
        total = book.total_value
        if total <= 0:
            return 0.0
        return clamp_unit(book.contribution_total(self.dimension) / total)


class ConcentrationRiskAnalyzer(IncrementalRiskAnalyzer):
    """Herfindahl index of position weights, normalized between floor and ceiling."""

    dimension = RiskDimension.CONCENTRATION

    def contribution(self, exposure: SymbolExposure, market: MarketContext, params: RiskAnalyzerParams) -> float:
        return exposure.value ** 2

    def score(self, book: ExposureBook, market: MarketContext, params: RiskAnalyzerParams) -> float:
        total = book.total_value
        if total <= 0:
            return 0.0

        hhi = book.contribution_total(self.dimension) / (total * total)
        return clamp_unit((hhi - params.hhi_floor) / (params.hhi_ceiling - params.hhi_floor))


class VolatilityRiskAnalyzer(RiskAnalyzer):
    dimension = RiskDimension.VOLATILITY

    def score(self, book: ExposureBook, market: MarketContext, params: RiskAnalyzerParams) -> float:
        total = book.total_value
        if total <= 0:
            return 0.0

        weighted = math.fsum(
            e.value * clamp_unit(market.volatility.get(e.symbol, params.default_volatility)
                                 / params.volatility_ceiling)
            for e in book
        )
        return clamp_unit(weighted / total)


class RegulatoryRiskAnalyzer(RiskAnalyzer):
    """Restricted symbols count in full; other holdings carry their asset class severity."""

    dimension = RiskDimension.REGULATORY

    def score(self, book: ExposureBook, market: MarketContext, params: RiskAnalyzerParams) -> float:
        total = book.total_value
        if total <= 0:
            return 0.0

        def severity(exposure: SymbolExposure) -> float:
            if exposure.symbol in market.restricted_symbols:
                return 1.0
            return clamp_unit(market.regulatory_severity.get(exposure.asset_class, 0.0))

        return clamp_unit(math.fsum(e.value * severity(e) for e in book) / total)


def default_risk_analyzers() -> tuple[RiskAnalyzer, ...]:
    """The five risk analyzers, in dimension declaration order."""
    return (
        MarketRiskAnalyzer(),
        LiquidityRiskAnalyzer(),
        ConcentrationRiskAnalyzer(),
        VolatilityRiskAnalyzer(),
        RegulatoryRiskAnalyzer(),
    )
