"""Tests for the signal dimension analyzers."""

import pytest

from riskeval_app.analyzers import (
    ConfidenceAnalyzer,
    HistoricalValidationAnalyzer,
    MarketContextAnalyzer,
    PerformanceAnalyzer,
    RiskAdjustmentAnalyzer,
    clamp_unit,
    default_signal_analyzers,
    directional_score,
)
from riskeval_app.analyzers.signal import shrunk_hit_rate
from riskeval_app.config.defaults import RiskAnalyzerParams
from riskeval_app.models.market import SourceTrackRecord
from riskeval_app.models.signals import Direction, SignalDimension


class TestHelpers:
    """Test shared scoring helpers."""

    def test_directional_score(self):
        assert directional_score(Direction.LONG, 1.0) == 1.0
        assert directional_score(Direction.SHORT, 1.0) == 0.0
        assert directional_score(Direction.NEUTRAL, 1.0) == 0.5
        assert directional_score(Direction.LONG, 3.0) == 1.0

    def test_clamp_unit(self):
        assert clamp_unit(-0.2) == 0.0
        assert clamp_unit(1.2) == 1.0

    def test_shrunk_hit_rate(self):
        assert shrunk_hit_rate(0.9, 0) == 0.5
        assert shrunk_hit_rate(0.9, 80) == pytest.approx(0.82)


class TestSignalAnalyzers:
    """Test the five default signal analyzers."""

    def test_default_order_covers_every_dimension(self):
        assert [a.dimension for a in default_signal_analyzers()] == list(SignalDimension)

    def test_confidence(self, make_signal, make_market):
        market = make_market()
        analyzer = ConfidenceAnalyzer()
        assert analyzer.score(make_signal(confidence=0.8), market) == pytest.approx(0.9)
        assert analyzer.score(make_signal(direction=Direction.SHORT, confidence=0.8), market) == pytest.approx(0.1)

    def test_performance_uses_track_record(self, make_signal, make_market):
        analyzer = PerformanceAnalyzer()
        unknown = make_market()
        known = make_market(track_records={"src-a": SourceTrackRecord("src-a", hit_rate=0.9, sample_size=80)})

        assert analyzer.score(make_signal(), unknown) == pytest.approx(0.75)
        assert analyzer.score(make_signal(), known) == pytest.approx(0.91)

    def test_risk_adjustment_discounts_volatility(self, make_signal, make_market):
        analyzer = RiskAdjustmentAnalyzer()
        assert analyzer.score(make_signal(), make_market(volatility={"BTC": 0.2})) == pytest.approx(0.9)
        assert analyzer.score(make_signal(), make_market()) == pytest.approx(0.7)

    def test_risk_adjustment_uses_configured_volatility(self, make_signal, make_market):
        params = RiskAnalyzerParams(volatility_ceiling=0.4, default_volatility=0.2)
        analyzer = RiskAdjustmentAnalyzer(params)

        assert analyzer.score(make_signal(), make_market()) == pytest.approx(0.75)
        assert analyzer.score(make_signal(), make_market(volatility={"BTC": 0.4})) == pytest.approx(0.5)

    def test_default_analyzers_share_risk_params(self):
        params = RiskAnalyzerParams(volatility_ceiling=2.0)
        risk_adjustment = default_signal_analyzers(params)[1]
        assert risk_adjustment.params is params

    def test_historical_validation(self, make_signal, make_market):
        assert HistoricalValidationAnalyzer().score(make_signal(confidence=0.8), make_market()) == pytest.approx(0.85)

    def test_market_context_alignment(self, make_signal, make_market):
        analyzer = MarketContextAnalyzer()
        trending = make_market(momentum={"BTC": 0.5})
        stressed = make_market(momentum={"BTC": 0.5}, market_stress=1.0)

        assert analyzer.score(make_signal(), trending) == pytest.approx(0.875)
        assert analyzer.score(make_signal(direction=Direction.SHORT), trending) == pytest.approx(0.375)
        assert analyzer.score(make_signal(), stressed) == pytest.approx(0.6875)

    @pytest.mark.asyncio
    async def test_analyze_delegates_to_score(self, make_signal, make_market):
        analyzer = ConfidenceAnalyzer()
        assert await analyzer.analyze(make_signal(confidence=0.6), make_market()) == pytest.approx(0.8)
