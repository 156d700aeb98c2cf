"""Dimension analyzers for trading signals and portfolio risk."""

from .base import (
    IncrementalRiskAnalyzer,
    RiskAnalyzer,
    SignalAnalyzer,
    clamp_unit,
    directional_score,
)
from .risk import (
    ConcentrationRiskAnalyzer,
    LiquidityRiskAnalyzer,
    MarketRiskAnalyzer,
    RegulatoryRiskAnalyzer,
    VolatilityRiskAnalyzer,
    default_risk_analyzers,
)
from .signal import (
    ConfidenceAnalyzer,
    HistoricalValidationAnalyzer,
    MarketContextAnalyzer,
    PerformanceAnalyzer,
    RiskAdjustmentAnalyzer,
    default_signal_analyzers,
)

__all__ = [
    "SignalAnalyzer",
    "RiskAnalyzer",
    "IncrementalRiskAnalyzer",
    "clamp_unit",
    "directional_score",
    "PerformanceAnalyzer",
    "RiskAdjustmentAnalyzer",
    "HistoricalValidationAnalyzer",
    "ConfidenceAnalyzer",
    "MarketContextAnalyzer",
    "default_signal_analyzers",
    "MarketRiskAnalyzer",
    "LiquidityRiskAnalyzer",
    "ConcentrationRiskAnalyzer",
    "VolatilityRiskAnalyzer",
    "RegulatoryRiskAnalyzer",
    "default_risk_analyzers",
]
