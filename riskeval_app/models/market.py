"""
Market context models consumed read-only by the analyzers.

Ticks and model predictions arrive from the ingestion and predictive
collaborators already normalized; MarketContext bundles everything the
dimension analyzers may read for one evaluation cycle.
"""

from dataclasses import dataclass, field
from typing import Optional

from ..errors.rejections import ValidationError
from .signals import Direction, TradingSignal


@dataclass(frozen=True)
class MarketTick:
    """Normalized market tick."""
    symbol: str
    price: float
    volume: float
    timestamp: int          # epoch ms, UTC
    exchange: str = ""

    def __post_init__(self):
        if not self.symbol:
            raise ValidationError("Tick missing symbol", field="symbol", value=self.symbol)
        if self.price <= 0:
            raise ValidationError("Tick price must be positive", field="price", value=self.price)
        if self.volume < 0:
            raise ValidationError("Tick volume must be non-negative", field="volume", value=self.volume)


@dataclass(frozen=True)
class SourceTrackRecord:
    """Realized accuracy of one predictive source."""
    source_id: str
    hit_rate: float = 0.5       # share of past predictions that were right
    sample_size: int = 0        # number of predictions hit_rate is based on


@dataclass(frozen=True)
class ModelPrediction:
    """One prediction from an independent predictive source."""
    source_id: str
    symbol: str
    direction: Direction
    confidence: float
    timestamp: int                          # epoch ms, UTC
    sequence_number: Optional[int] = None   # defaults to the timestamp
    uncertainty: Optional[float] = None

    def to_signal(self) -> TradingSignal:
        return TradingSignal(
            source_id=self.source_id,
            symbol=self.symbol,
            direction=self.direction,
            raw_confidence=self.confidence,
            sequence_number=self.sequence_number if self.sequence_number is not None else self.timestamp,
            timestamp=self.timestamp,
            uncertainty=self.uncertainty,
        )


@dataclass(frozen=True)
class MarketContext:
    """Market data context for one evaluation cycle."""

    timestamp: int                                              # epoch ms, UTC

    # Latest normalized tick per symbol
    ticks: dict[str, MarketTick] = field(default_factory=dict)

    # Per-symbol indicators
    volatility: dict[str, float] = field(default_factory=dict)  # annualized, 1.0 = 100%
    liquidity: dict[str, float] = field(default_factory=dict)   # average daily traded value
    momentum: dict[str, float] = field(default_factory=dict)    # [-1, 1]

    # Per-source realized accuracy
    track_records: dict[str, SourceTrackRecord] = field(default_factory=dict)

    # Regime and regulatory state
    market_stress: float = 0.0                                  # [0, 1]
    restricted_symbols: frozenset[str] = frozenset()
    regulatory_severity: dict[str, float] = field(default_factory=dict)  # asset_class -> [0, 1]

    def price(self, symbol: str) -> Optional[float]:
        """Latest traded price for a symbol, None if no tick is known."""
        tick = self.ticks.get(symbol)
        return tick.price if tick else None

    def track_record(self, source_id: str) -> SourceTrackRecord:
        return self.track_records.get(source_id) or SourceTrackRecord(source_id=source_id)
