"""
Normalization of raw inbound payloads into engine models.

Payloads arrive as JSON bytes/strings or already-decoded dicts from the
market-data, predictive, and portfolio collaborators. Every function here
either returns a fully validated model or raises ValidationError naming the
offending field; nothing is silently defaulted except documented optional
fields.
"""

import math
from typing import Any, Optional, Union

import orjson
import structlog

from ..config.tolerance import RiskToleranceConfig
from ..errors import ValidationError
from ..models.market import MarketContext, MarketTick, ModelPrediction, SourceTrackRecord
from ..models.portfolio import PortfolioPosition, PortfolioSnapshot
from ..models.signals import Direction
from ..utils.time import coerce_epoch_ms

logger = structlog.get_logger(__name__)

RawPayload = Union[bytes, str, dict[str, Any]]

_DIRECTION_ALIASES = {
    "long": Direction.LONG,
    "buy": Direction.LONG,
    "up": Direction.LONG,
    "short": Direction.SHORT,
    "sell": Direction.SHORT,
    "down": Direction.SHORT,
    "neutral": Direction.NEUTRAL,
    "flat": Direction.NEUTRAL,
    "hold": Direction.NEUTRAL,
}


def parse_json_payload(raw: RawPayload) -> dict[str, Any]:
    """Decode a JSON payload into a dict. Dicts pass through unchanged."""
    if isinstance(raw, dict):
        return raw
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON payload: {e}", field="payload") from e
    if not isinstance(data, dict):
        raise ValidationError("Payload must be a JSON object", field="payload", value=type(data).__name__)
    return data


def _require(data: dict[str, Any], key: str) -> Any:
    value = data.get(key)
    if value is None or value == "":
        raise ValidationError(f"Missing required field: {key}", field=key)
    return value


def _number(data: dict[str, Any], key: str, default: Optional[float] = None) -> float:
    value = data.get(key, default)
    if value is None:
        raise ValidationError(f"Missing required field: {key}", field=key)
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be numeric", field=key, value=value)
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{key} must be numeric", field=key, value=value) from e
    if not math.isfinite(number):
        raise ValidationError(f"{key} must be finite", field=key, value=value)
    return number


def _integer(data: dict[str, Any], key: str) -> int:
    value = _require(data, key)
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f"{key} must be an integer", field=key, value=value)
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{key} must be an integer", field=key, value=value) from e


def _timestamp(data: dict[str, Any], key: str = "timestamp") -> int:
    ts = coerce_epoch_ms(data.get(key))
    if ts is None or ts < 0:
        raise ValidationError(f"Invalid or missing {key}", field=key, value=data.get(key))
    return ts


def normalize_tick(raw: RawPayload) -> MarketTick:
    """Normalize a market tick {symbol, price, volume, timestamp, exchange}."""
    data = parse_json_payload(raw)
    return MarketTick(
        symbol=str(_require(data, "symbol")),
        price=_number(data, "price"),
        volume=_number(data, "volume", default=0.0),
        timestamp=_timestamp(data),
        exchange=str(data.get("exchange") or ""),
    )


def normalize_direction(value: Any) -> Direction:
    if isinstance(value, Direction):
        return value
    direction = _DIRECTION_ALIASES.get(str(value).strip().lower()) if value is not None else None
    if direction is None:
        raise ValidationError(f"Unknown direction: {value}", field="direction", value=value)
    return direction


def normalize_prediction(raw: RawPayload) -> ModelPrediction:
    """Normalize a model prediction {source_id, symbol, direction, confidence, timestamp}."""
    data = parse_json_payload(raw)
    confidence = _number(data, "confidence")
    if not 0.0 <= confidence <= 1.0:
        raise ValidationError("confidence must be within [0, 1]", field="confidence", value=confidence)

    uncertainty = None
    if data.get("uncertainty") is not None:
        uncertainty = _number(data, "uncertainty")
        if not 0.0 <= uncertainty <= 1.0:
            raise ValidationError("uncertainty must be within [0, 1]", field="uncertainty", value=uncertainty)

    return ModelPrediction(
        source_id=str(_require(data, "source_id")),
        symbol=str(_require(data, "symbol")),
        direction=normalize_direction(data.get("direction")),
        confidence=confidence,
        timestamp=_timestamp(data),
        sequence_number=_integer(data, "sequence_number") if data.get("sequence_number") is not None else None,
        uncertainty=uncertainty,
    )


def normalize_position(raw: RawPayload) -> PortfolioPosition:
    data = parse_json_payload(raw)
    return PortfolioPosition(
        symbol=str(_require(data, "symbol")),
        quantity=_number(data, "quantity"),
        purchase_price=_number(data, "purchase_price"),
        asset_class=str(data.get("asset_class") or "crypto"),
    )


def normalize_snapshot(raw: RawPayload) -> PortfolioSnapshot:
    """
    Normalize a portfolio snapshot {portfolio_id, version, positions[], captured_at}.

    captured_at is optional and defaults to 0 (unknown).
    """
    data = parse_json_payload(raw)
    positions = data.get("positions", [])
    if not isinstance(positions, list):
        raise ValidationError("positions must be a list", field="positions", value=type(positions).__name__)

    captured_at = coerce_epoch_ms(data.get("captured_at")) if data.get("captured_at") is not None else 0
    if captured_at is None or captured_at < 0:
        raise ValidationError("Invalid captured_at", field="captured_at", value=data.get("captured_at"))

    return PortfolioSnapshot(
        portfolio_id=str(_require(data, "portfolio_id")),
        version=_integer(data, "version"),
        positions=tuple(normalize_position(p) for p in positions),
        captured_at=captured_at,
    )


def normalize_tolerance(raw: RawPayload) -> RiskToleranceConfig:
    """Normalize a per-request risk-tolerance payload {tolerance_level, dimension_weights, thresholds}."""
    return RiskToleranceConfig.from_dict(parse_json_payload(raw))


def normalize_market_context(raw: RawPayload) -> MarketContext:
    """
    Normalize a market context payload.

    Expected keys: timestamp, ticks (list of tick payloads) and the optional
    per-symbol maps volatility, liquidity and momentum, track_records
    (source_id -> {hit_rate, sample_size}), market_stress,
    restricted_symbols and regulatory_severity.
    """
    data = parse_json_payload(raw)
    ticks = {}
    for tick_payload in data.get("ticks", []):
        tick = normalize_tick(tick_payload)
        previous = ticks.get(tick.symbol)
        # Latest tick per symbol wins
        if previous is None or tick.timestamp >= previous.timestamp:
            ticks[tick.symbol] = tick

    track_records = {
        source_id: SourceTrackRecord(
            source_id=source_id,
            hit_rate=_number(record, "hit_rate", default=0.5),
            sample_size=int(_number(record, "sample_size", default=0)),
        )
        for source_id, record in (data.get("track_records") or {}).items()
    }

    stress = _number(data, "market_stress", default=0.0)
    if not 0.0 <= stress <= 1.0:
        raise ValidationError("market_stress must be within [0, 1]", field="market_stress", value=stress)

    context = MarketContext(
        timestamp=_timestamp(data),
        ticks=ticks,
        volatility=_float_map(data, "volatility"),
        liquidity=_float_map(data, "liquidity"),
        momentum=_float_map(data, "momentum"),
        track_records=track_records,
        market_stress=stress,
        restricted_symbols=frozenset(data.get("restricted_symbols") or ()),
        regulatory_severity=_float_map(data, "regulatory_severity"),
    )
    logger.debug("market_context_normalized", symbols=sorted(ticks), timestamp=context.timestamp)
    return context


def _float_map(data: dict[str, Any], key: str) -> dict[str, float]:
    mapping = data.get(key) or {}
    if not isinstance(mapping, dict):
        raise ValidationError(f"{key} must be an object", field=key, value=type(mapping).__name__)
    return {str(k): _number(mapping, k) for k in mapping}
