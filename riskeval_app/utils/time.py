"""
Time semantics utilities for epoch-millisecond timestamps.

Every record the engine emits carries an epoch-millisecond UTC timestamp.
Timestamps derived from inputs (signal, snapshot and market times) are
authoritative for decisions; wall-clock time is only used for emission
stamps and latency monitoring.
"""

import time
from datetime import UTC, datetime
from typing import Optional


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds (UTC)."""
    return int(datetime.now(UTC).timestamp() * 1000)


def to_epoch_ms(ts: datetime) -> int:
    """
    Convert a datetime to epoch milliseconds.

    Naive datetimes are interpreted as UTC.
    """
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return int(ts.timestamp() * 1000)


def from_epoch_ms(epoch_ms: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(epoch_ms / 1000.0, tz=UTC)


def format_epoch_ms(epoch_ms: int) -> str:
    """Format epoch milliseconds as ISO8601 for logs."""
    return from_epoch_ms(epoch_ms).isoformat()


def coerce_epoch_ms(value: object) -> Optional[int]:
    """
    Best-effort conversion of an inbound timestamp to epoch milliseconds.

    Accepts ints/floats (milliseconds), numeric strings, ISO8601 strings and
    datetimes. Returns None when the value cannot be interpreted.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return to_epoch_ms(value)
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lstrip("-").isdigit():
            return int(text)
        try:
            return to_epoch_ms(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


def monotonic_ms() -> float:
    """Monotonic clock in milliseconds, for latency measurements."""
    return time.monotonic() * 1000.0


def elapsed_ms(started_ms: float) -> float:
    """Milliseconds elapsed since a monotonic_ms() reading."""
    return monotonic_ms() - started_ms
