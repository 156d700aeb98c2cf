"""Tests for risk aggregation and classification."""

import math

import pytest

from riskeval_app.config.defaults import RiskLevelThresholds, RiskWeights
from riskeval_app.models.risk import RiskDimension, RiskLevel
from riskeval_app.risk.levels import classify_risk_level, weighted_risk


class TestClassifyRiskLevel:
    """Test risk level boundaries."""

    @pytest.mark.parametrize("score,expected", [
        (0.0, RiskLevel.LOW),
        (0.249, RiskLevel.LOW),
        (0.25, RiskLevel.MODERATE),
        (0.5, RiskLevel.HIGH),
        (0.75, RiskLevel.CRITICAL),
        (1.0, RiskLevel.CRITICAL),
    ])
    def test_boundaries(self, score, expected):
        assert classify_risk_level(score, RiskLevelThresholds()) == expected

    def test_monotonic(self):
        thresholds = RiskLevelThresholds(moderate=0.2, high=0.45, critical=0.7)
        ranks = [classify_risk_level(i / 100, thresholds).rank for i in range(101)]
        assert ranks == sorted(ranks)


class TestWeightedRisk:
    """Test the weighted overall risk score."""

    def test_weighted_sum(self):
        scores = {RiskDimension.MARKET: 1.0, RiskDimension.REGULATORY: 1.0}
        assert weighted_risk(scores, RiskWeights()) == pytest.approx(0.4)

    def test_missing_dimensions_count_as_zero(self):
        assert weighted_risk({}, RiskWeights()) == 0.0

    def test_non_finite_dimension_counts_as_full_severity(self):
        scores = {RiskDimension.VOLATILITY: math.nan, RiskDimension.MARKET: math.inf}
        assert weighted_risk(scores, RiskWeights()) == pytest.approx(0.5)
