"""Tests for the core data models."""

import pytest

from riskeval_app.errors import ValidationError
from riskeval_app.models.market import MarketContext, MarketTick, ModelPrediction
from riskeval_app.models.mitigation import ActionType, MitigationPlan, RiskMitigationAction
from riskeval_app.models.portfolio import PortfolioPosition, PortfolioSnapshot
from riskeval_app.models.risk import ExposureSummary, RiskDimension, RiskLevel, RiskScore
from riskeval_app.models.signals import (
    DegradedSignalScore,
    Direction,
    Recommendation,
    SignalDimension,
    SignalScore,
    TradingSignal,
)
from riskeval_app.models.status import EvaluationStatus, ScoreFlag, status_from_flags

BASE_TS = 1_700_000_000_000


class TestTradingSignal:
    """Test trading signal validation."""

    def test_valid_signal(self, make_signal):
        signal = make_signal(confidence=0.7)
        assert signal.model_uncertainty == pytest.approx(0.3)

    def test_reported_uncertainty_wins(self, make_signal):
        assert make_signal(confidence=0.7, uncertainty=0.1).model_uncertainty == 0.1

    @pytest.mark.parametrize("kwargs,field", [
        ({"source_id": ""}, "source_id"),
        ({"symbol": ""}, "symbol"),
        ({"raw_confidence": 1.5}, "raw_confidence"),
        ({"sequence_number": -1}, "sequence_number"),
        ({"uncertainty": 2.0}, "uncertainty"),
        ({"direction": "up"}, "direction"),
    ])
    def test_invalid_fields(self, kwargs, field):
        values = dict(source_id="s", symbol="BTC", direction=Direction.LONG, raw_confidence=0.5,
                      sequence_number=1, timestamp=BASE_TS)
        values.update(kwargs)
        with pytest.raises(ValidationError) as exc_info:
            TradingSignal(**values)
        assert exc_info.value.field == field


class TestRecommendation:
    """Test recommendation ordering."""

    def test_rank_orders_bearish_to_bullish(self):
        ranks = [r.rank for r in (Recommendation.STRONG_SELL, Recommendation.SELL, Recommendation.HOLD,
                                  Recommendation.BUY, Recommendation.STRONG_BUY)]
        assert ranks == sorted(ranks)

    def test_bearish(self):
        assert Recommendation.SELL.is_bearish
        assert not Recommendation.HOLD.is_bearish


class TestMarketModels:
    """Test market context models."""

    def test_tick_validation(self):
        with pytest.raises(ValidationError):
            MarketTick(symbol="BTC", price=0.0, volume=1.0, timestamp=BASE_TS)
        with pytest.raises(ValidationError):
            MarketTick(symbol="BTC", price=1.0, volume=-1.0, timestamp=BASE_TS)

    def test_prediction_sequence_defaults_to_timestamp(self):
        prediction = ModelPrediction(source_id="s", symbol="BTC", direction=Direction.SHORT,
                                     confidence=0.6, timestamp=BASE_TS)
        signal = prediction.to_signal()
        assert signal.sequence_number == BASE_TS
        assert signal.raw_confidence == 0.6

    def test_context_lookups(self, make_market):
        market = make_market({"BTC": 250.0})
        assert market.price("BTC") == 250.0
        assert market.price("DOGE") is None
        assert market.track_record("unknown").hit_rate == 0.5

    def test_empty_context(self):
        assert MarketContext(timestamp=BASE_TS).ticks == {}


class TestPortfolioModels:
    """Test portfolio snapshot models."""

    def test_positions_frozen_to_tuple(self):
        snapshot = PortfolioSnapshot(
            portfolio_id="pf", version=1, captured_at=BASE_TS,
            positions=[PortfolioPosition("BTC", 1.0, 10.0), PortfolioPosition("BTC", 2.0, 12.0)],
        )
        assert isinstance(snapshot.positions, tuple)
        assert snapshot.symbols == ["BTC"]
        assert len(snapshot.positions_for("BTC")) == 2

    def test_invalid_position(self):
        with pytest.raises(ValidationError) as exc_info:
            PortfolioPosition("BTC", -1.0, 10.0)
        assert exc_info.value.field == "quantity"

    def test_invalid_snapshot_version(self):
        with pytest.raises(ValidationError):
            PortfolioSnapshot(portfolio_id="pf", version=-1, positions=(), captured_at=BASE_TS)


class TestScores:
    """Test score serialization and status derivation."""

    def test_signal_score_to_dict(self):
        score = SignalScore(
            signal_id="sig", symbol="BTC", sequence_number=3, snapshot_version=2,
            dimension_scores={SignalDimension.PERFORMANCE: 0.7},
            overall_score=0.7, recommendation=Recommendation.BUY, confidence_interval=(0.6, 0.8),
        )
        data = score.to_dict()
        assert data["recommendation"] == "buy"
        assert data["dimension_scores"] == {"performance": 0.7}
        assert data["status"] == "complete"
        assert score.interval_width == pytest.approx(0.2)

    def test_degraded_score(self):
        score = DegradedSignalScore(
            signal_id="sig", symbol="BTC", sequence_number=3, snapshot_version=2,
            dimension_scores={}, overall_score=0.5, recommendation=Recommendation.HOLD,
            confidence_interval=(0.0, 1.0), flags=(ScoreFlag.LOW_QUORUM,), required_quorum=3,
        )
        assert score.is_degraded
        assert score.to_dict()["required_quorum"] == 3

    def test_risk_score_exposures(self):
        score = RiskScore(
            portfolio_id="pf", snapshot_version=1, dimension_scores={RiskDimension.MARKET: 0.2},
            overall_score=0.2, risk_level=RiskLevel.LOW,
            exposures=(ExposureSummary("BTC", 0.8, 100.0), ExposureSummary("ETH", 0.2, 50.0)),
        )
        assert score.largest_exposure.symbol == "BTC"
        assert score.exposure_for("ETH").price == 50.0
        assert score.exposure_for("SOL") is None

    def test_status_from_flags(self):
        assert status_from_flags(()) == EvaluationStatus.COMPLETE
        assert status_from_flags((ScoreFlag.LATENCY_BUDGET_EXCEEDED,)) == EvaluationStatus.COMPLETE
        assert status_from_flags((ScoreFlag.DIMENSION_TIMEOUT,)) == EvaluationStatus.DEGRADED

    def test_risk_level_rank(self):
        assert RiskLevel.CRITICAL.rank > RiskLevel.HIGH.rank > RiskLevel.MODERATE.rank > RiskLevel.LOW.rank


class TestMitigationModels:
    """Test mitigation plan models."""

    def test_binding_actions(self):
        stop = RiskMitigationAction(ActionType.STOP_LOSS, "BTC", 95.0, RiskLevel.CRITICAL, 1, BASE_TS)
        hedge = RiskMitigationAction(ActionType.HEDGE, "BTC", 0.5, RiskLevel.CRITICAL, 1, BASE_TS, binding=False)
        plan = MitigationPlan(plan_id="p", portfolio_id="pf", signal_id="sig", snapshot_version=1,
                              risk_level=RiskLevel.CRITICAL, actions=(stop, hedge))

        assert plan.binding_actions == (stop,)
        assert not plan.is_empty
        assert plan.to_dict()["actions"][0]["type"] == "stop_loss"
