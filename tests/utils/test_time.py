"""Tests for epoch-millisecond time utilities."""

from datetime import UTC, datetime, timedelta, timezone

from riskeval_app.utils.time import (
    coerce_epoch_ms,
    elapsed_ms,
    format_epoch_ms,
    from_epoch_ms,
    monotonic_ms,
    now_ms,
    to_epoch_ms,
)

BASE_TS = 1_700_000_000_000


class TestEpochConversion:
    """Test conversions between datetimes and epoch milliseconds."""

    def test_aware_datetime(self):
        dt = datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)
        assert to_epoch_ms(dt) == BASE_TS

    def test_naive_datetime_is_utc(self):
        assert to_epoch_ms(datetime(2023, 11, 14, 22, 13, 20)) == BASE_TS

    def test_offset_datetime(self):
        dt = datetime(2023, 11, 15, 0, 13, 20, tzinfo=timezone(timedelta(hours=2)))
        assert to_epoch_ms(dt) == BASE_TS

    def test_from_epoch_is_aware(self):
        dt = from_epoch_ms(BASE_TS)
        assert dt.tzinfo is not None
        assert to_epoch_ms(dt) == BASE_TS

    def test_format(self):
        assert format_epoch_ms(BASE_TS).startswith("2023-11-14T22:13:20")

    def test_now_is_recent(self):
        assert now_ms() > BASE_TS


class TestCoerceEpochMs:
    """Test best-effort coercion of inbound timestamps."""

    def test_numbers(self):
        assert coerce_epoch_ms(BASE_TS) == BASE_TS
        assert coerce_epoch_ms(float(BASE_TS) + 0.7) == BASE_TS

    def test_numeric_string(self):
        assert coerce_epoch_ms(str(BASE_TS)) == BASE_TS

    def test_iso_string_with_z(self):
        assert coerce_epoch_ms("2023-11-14T22:13:20Z") == BASE_TS

    def test_datetime(self):
        assert coerce_epoch_ms(datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)) == BASE_TS

    def test_uninterpretable_values(self):
        assert coerce_epoch_ms(None) is None
        assert coerce_epoch_ms(True) is None
        assert coerce_epoch_ms("") is None
        assert coerce_epoch_ms("yesterday") is None
        assert coerce_epoch_ms([BASE_TS]) is None


class TestMonotonicClock:
    """Test latency helpers."""

    def test_elapsed_is_non_negative(self):
        started = monotonic_ms()
        assert elapsed_ms(started) >= 0.0
