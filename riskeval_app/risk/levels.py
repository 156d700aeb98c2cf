"""Pure risk aggregation and classification functions."""

import math
from collections.abc import Mapping

from ..config.defaults import RiskLevelThresholds, RiskWeights
from ..models.risk import RiskDimension, RiskLevel


def classify_risk_level(score: float, thresholds: RiskLevelThresholds) -> RiskLevel:
    """Map an overall risk score onto a level. Monotonic in score."""
    if score >= thresholds.critical:
        return RiskLevel.CRITICAL
    if score >= thresholds.high:
        return RiskLevel.HIGH
    if score >= thresholds.moderate:
        return RiskLevel.MODERATE
    return RiskLevel.LOW


def weighted_risk(dimension_scores: Mapping[RiskDimension, float], weights: RiskWeights) -> float:
    """
    Fixed weighted sum over all five dimensions, clamped into [0, 1].

    A non-finite dimension score counts as full severity.
    """
    mapping = weights.as_mapping()

    def severity(dim: RiskDimension) -> float:
        value = dimension_scores.get(dim, 0.0)
        return value if math.isfinite(value) else 1.0

    total = math.fsum(mapping[dim] * severity(dim) for dim in RiskDimension)
    return min(1.0, max(0.0, total))
