"""Pytest configuration and shared fixtures."""

import asyncio
from typing import Any, Optional

import pytest

from riskeval_app.analyzers.base import SignalAnalyzer
from riskeval_app.config.tolerance import RiskToleranceConfig
from riskeval_app.delivery.base import BaseEventDelivery, DeliveryResult, DeliveryStatus
from riskeval_app.events.emitter import EventEmitter
from riskeval_app.models.market import MarketContext, MarketTick
from riskeval_app.models.portfolio import PortfolioPosition, PortfolioSnapshot
from riskeval_app.models.risk import ExposureSummary, RiskDimension, RiskLevel, RiskScore
from riskeval_app.models.signals import Direction, Recommendation, SignalScore, TradingSignal

BASE_TS = 1_700_000_000_000


class ConstantSignalAnalyzer(SignalAnalyzer):
    """
    Signal analyzer returning a fixed value per source.

    ``delays`` maps a sequence number to seconds to sleep before answering,
    so individual requests can be made slow.
    """

    def __init__(self, dimension, values: Any = 0.5, delays: Optional[dict[int, float]] = None,
                 slow_sources: Optional[dict[str, float]] = None):
        self.dimension = dimension
        self.values = values
        self.delays = delays or {}
        self.slow_sources = slow_sources or {}
        self.calls = 0

    def score(self, signal, market):
        if isinstance(self.values, dict):
            return self.values[signal.source_id]
        return self.values

    async def analyze(self, signal, market):
        self.calls += 1
        delay = self.delays.get(signal.sequence_number, 0.0) + self.slow_sources.get(signal.source_id, 0.0)
        if delay:
            await asyncio.sleep(delay)
        return self.score(signal, market)


class CollectingDelivery(BaseEventDelivery):
    """In-memory delivery sink that keeps every event it receives."""

    def __init__(self, name: str = "collect", fail_times: int = 0):
        super().__init__(name, config=None)
        self.events: list[dict[str, Any]] = []
        self.fail_times = fail_times

    def deliver(self, events):
        if self.fail_times > 0:
            self.fail_times -= 1
            return [DeliveryResult(status=DeliveryStatus.FAILED, message="sink unavailable") for _ in events]
        self.events.extend(events)
        return [DeliveryResult(status=DeliveryStatus.SUCCESS) for _ in events]

    def health_check(self) -> bool:
        return True


@pytest.fixture
def base_ts() -> int:
    return BASE_TS


@pytest.fixture
def constant_analyzer_cls():
    return ConstantSignalAnalyzer


@pytest.fixture
def collecting_delivery_cls():
    return CollectingDelivery


@pytest.fixture
def config() -> RiskToleranceConfig:
    return RiskToleranceConfig()


@pytest.fixture
def make_signal():
    """Factory for trading signals."""
    def _make(source_id: str = "src-a", symbol: str = "BTC", direction: Direction = Direction.LONG,
              confidence: float = 0.8, sequence_number: int = 1, timestamp: int = BASE_TS,
              uncertainty: Optional[float] = None) -> TradingSignal:
        return TradingSignal(
            source_id=source_id,
            symbol=symbol,
            direction=direction,
            raw_confidence=confidence,
            sequence_number=sequence_number,
            timestamp=timestamp,
            uncertainty=uncertainty,
        )
    return _make


@pytest.fixture
def make_snapshot():
    """Factory for snapshots from (symbol, quantity, purchase_price) tuples."""
    def _make(positions=(("BTC", 8.0, 100.0), ("ETH", 2.0, 100.0)), portfolio_id: str = "pf-1",
              version: int = 1, captured_at: int = BASE_TS) -> PortfolioSnapshot:
        return PortfolioSnapshot(
            portfolio_id=portfolio_id,
            version=version,
            positions=tuple(PortfolioPosition(symbol=s, quantity=q, purchase_price=p) for s, q, p in positions),
            captured_at=captured_at,
        )
    return _make


@pytest.fixture
def make_market():
    """Factory for market contexts from a symbol -> price mapping."""
    def _make(prices: Optional[dict[str, float]] = None, timestamp: int = BASE_TS, **kwargs) -> MarketContext:
        prices = {"BTC": 100.0, "ETH": 100.0} if prices is None else prices
        ticks = {
            symbol: MarketTick(symbol=symbol, price=price, volume=1.0, timestamp=timestamp)
            for symbol, price in prices.items()
        }
        return MarketContext(timestamp=timestamp, ticks=ticks, **kwargs)
    return _make


@pytest.fixture
def stressed_market(make_market) -> MarketContext:
    """Stressed regime, thin liquidity, BTC volatility at the ceiling."""
    return make_market(
        volatility={"BTC": 1.0, "ETH": 0.5},
        liquidity={"BTC": 1.0, "ETH": 1.0},
        market_stress=0.9,
    )


@pytest.fixture
def calm_market(make_market) -> MarketContext:
    return make_market(
        volatility={"BTC": 0.1, "ETH": 0.1},
        liquidity={"BTC": 1e9, "ETH": 1e9},
        market_stress=0.0,
    )


@pytest.fixture
def collecting_delivery() -> CollectingDelivery:
    return CollectingDelivery()


@pytest.fixture
def emitter(collecting_delivery) -> EventEmitter:
    return EventEmitter(handlers={"collect": collecting_delivery})


@pytest.fixture
def make_signal_score():
    """Factory for signal scores handed straight to the planner."""
    def _make(recommendation: Recommendation = Recommendation.HOLD, symbol: str = "BTC",
              snapshot_version: int = 1, reference_price: Optional[float] = 100.0,
              evaluated_at_ms: int = BASE_TS) -> SignalScore:
        return SignalScore(
            signal_id=f"sig-{symbol}-{recommendation.value}",
            symbol=symbol,
            sequence_number=1,
            snapshot_version=snapshot_version,
            dimension_scores={},
            overall_score=0.5,
            recommendation=recommendation,
            confidence_interval=(0.4, 0.6),
            reference_price=reference_price,
            evaluated_at_ms=evaluated_at_ms,
        )
    return _make


@pytest.fixture
def make_risk_score():
    """Factory for risk scores from (symbol, weight, price) exposures."""
    def _make(level: RiskLevel, exposures=(("BTC", 0.8, 100.0), ("ETH", 0.2, 100.0)),
              snapshot_version: int = 1, assessed_at_ms: int = BASE_TS, tracked=()) -> RiskScore:
        return RiskScore(
            portfolio_id="pf-1",
            snapshot_version=snapshot_version,
            dimension_scores={RiskDimension.MARKET: 0.6, RiskDimension.LIQUIDITY: 0.4,
                              RiskDimension.CONCENTRATION: 0.3, RiskDimension.VOLATILITY: 0.0,
                              RiskDimension.REGULATORY: 0.0},
            overall_score=0.5,
            risk_level=level,
            exposures=tuple(ExposureSummary(s, w, p) for s, w, p in exposures),
            tracked_exposures=tuple(ExposureSummary(s, w, p) for s, w, p in tracked),
            assessed_at_ms=assessed_at_ms,
        )
    return _make
