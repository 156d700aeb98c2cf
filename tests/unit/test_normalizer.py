"""Tests for inbound payload normalization."""

import orjson
import pytest

from riskeval_app.config.tolerance import ToleranceLevel
from riskeval_app.data.normalizer import (
    normalize_direction,
    normalize_market_context,
    normalize_prediction,
    normalize_snapshot,
    normalize_tick,
    normalize_tolerance,
    parse_json_payload,
)
from riskeval_app.errors import ValidationError
from riskeval_app.models.signals import Direction

BASE_TS = 1_700_000_000_000


class TestParsePayload:
    """Test JSON decoding."""

    def test_bytes_and_str(self):
        assert parse_json_payload(b'{"a": 1}') == {"a": 1}
        assert parse_json_payload('{"a": 1}') == {"a": 1}

    def test_invalid_json(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_json_payload(b"{not json")
        assert exc_info.value.field == "payload"

    def test_non_object(self):
        with pytest.raises(ValidationError):
            parse_json_payload(b"[1, 2]")


class TestNormalizeTick:
    """Test market tick normalization."""

    def test_valid_tick(self):
        tick = normalize_tick(orjson.dumps({"symbol": "BTC", "price": "101.5", "volume": 3,
                                            "timestamp": "2023-11-14T22:13:20Z", "exchange": "x"}))
        assert tick.price == 101.5
        assert tick.timestamp == BASE_TS

    def test_missing_price(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_tick({"symbol": "BTC", "timestamp": BASE_TS})
        assert exc_info.value.field == "price"

    def test_non_finite_price(self):
        with pytest.raises(ValidationError):
            normalize_tick({"symbol": "BTC", "price": float("nan"), "timestamp": BASE_TS})

    def test_bool_is_not_numeric(self):
        with pytest.raises(ValidationError):
            normalize_tick({"symbol": "BTC", "price": True, "timestamp": BASE_TS})

    def test_bad_timestamp(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_tick({"symbol": "BTC", "price": 1.0, "timestamp": "soon"})
        assert exc_info.value.field == "timestamp"


class TestNormalizePrediction:
    """Test model prediction normalization."""

    @pytest.mark.parametrize("raw,expected", [
        ("buy", Direction.LONG),
        ("SHORT", Direction.SHORT),
        (" flat ", Direction.NEUTRAL),
        (Direction.LONG, Direction.LONG),
    ])
    def test_direction_aliases(self, raw, expected):
        assert normalize_direction(raw) == expected

    def test_unknown_direction(self):
        with pytest.raises(ValidationError):
            normalize_direction("sideways")
        with pytest.raises(ValidationError):
            normalize_direction(None)

    def test_valid_prediction(self):
        prediction = normalize_prediction({
            "source_id": "m1", "symbol": "BTC", "direction": "sell", "confidence": 0.7,
            "timestamp": BASE_TS, "sequence_number": 9, "uncertainty": 0.2,
        })
        assert prediction.direction == Direction.SHORT
        assert prediction.to_signal().sequence_number == 9

    def test_confidence_out_of_range(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_prediction({"source_id": "m1", "symbol": "BTC", "direction": "long",
                                  "confidence": 1.2, "timestamp": BASE_TS})
        assert exc_info.value.field == "confidence"

    def test_fractional_sequence_number(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_prediction({"source_id": "m1", "symbol": "BTC", "direction": "long",
                                  "confidence": 0.5, "timestamp": BASE_TS, "sequence_number": 1.5})
        assert exc_info.value.field == "sequence_number"


class TestNormalizeSnapshot:
    """Test portfolio snapshot normalization."""

    def test_valid_snapshot(self):
        snapshot = normalize_snapshot({
            "portfolio_id": "pf", "version": 4,
            "positions": [{"symbol": "BTC", "quantity": 1, "purchase_price": 100}],
        })
        assert snapshot.version == 4
        assert snapshot.captured_at == 0
        assert snapshot.positions[0].asset_class == "crypto"

    def test_positions_must_be_list(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_snapshot({"portfolio_id": "pf", "version": 1, "positions": {"BTC": 1}})
        assert exc_info.value.field == "positions"

    def test_negative_quantity(self):
        with pytest.raises(ValidationError):
            normalize_snapshot({"portfolio_id": "pf", "version": 1,
                                "positions": [{"symbol": "BTC", "quantity": -1, "purchase_price": 100}]})

    def test_missing_version(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_snapshot({"portfolio_id": "pf", "positions": []})
        assert exc_info.value.field == "version"


class TestNormalizeMarketContext:
    """Test market context normalization."""

    def test_latest_tick_wins(self):
        context = normalize_market_context({
            "timestamp": BASE_TS,
            "ticks": [
                {"symbol": "BTC", "price": 100, "timestamp": BASE_TS - 10},
                {"symbol": "BTC", "price": 105, "timestamp": BASE_TS - 5},
                {"symbol": "BTC", "price": 90, "timestamp": BASE_TS - 20},
            ],
            "volatility": {"BTC": 0.8},
            "track_records": {"m1": {"hit_rate": 0.7, "sample_size": 40}},
            "restricted_symbols": ["XMR"],
            "market_stress": 0.4,
        })
        assert context.price("BTC") == 105
        assert context.volatility == {"BTC": 0.8}
        assert context.track_record("m1").sample_size == 40
        assert "XMR" in context.restricted_symbols

    def test_stress_out_of_range(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_market_context({"timestamp": BASE_TS, "market_stress": 2})
        assert exc_info.value.field == "market_stress"

    def test_map_must_be_object(self):
        with pytest.raises(ValidationError):
            normalize_market_context({"timestamp": BASE_TS, "liquidity": [1, 2]})


class TestNormalizeTolerance:
    """Test tolerance payload normalization."""

    def test_json_tolerance(self):
        config = normalize_tolerance(b'{"tolerance_level": "conservative"}')
        assert config.tolerance_level == ToleranceLevel.CONSERVATIVE
