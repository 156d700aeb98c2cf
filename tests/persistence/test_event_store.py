"""Tests for the SQLite audit event store."""

import sqlite3

import pytest

from riskeval_app.errors import PersistenceError
from riskeval_app.events.records import risk_score_record, signal_score_record
from riskeval_app.models.risk import RiskLevel
from riskeval_app.persistence.event_store import EventStore

BASE_TS = 1_700_000_000_000


class TestEventStore:
    """Test audit retention."""

    @pytest.fixture
    def store(self, tmp_path):
        return EventStore(str(tmp_path / "audit.db"))

    def test_store_and_get(self, store, make_signal_score):
        record = signal_score_record(make_signal_score(), "pf-1", "req-1", BASE_TS)

        assert store.store_event(record)
        assert store.has_event(record.event_id)

        stored = store.get_event(record.event_id)
        assert stored.event_type == "signal_score"
        assert stored.status == "complete"
        assert stored.event_data["payload"]["signal_id"] == record.payload["signal_id"]
        assert stored.delivery_attempts == 0

    def test_duplicate_is_ignored(self, store, make_signal_score):
        record = signal_score_record(make_signal_score(), "pf-1", "req-1", BASE_TS)
        assert store.store_event(record)
        assert not store.store_event(record)
        assert store.get_stats()["total_events"] == 1

    def test_missing_event(self, store):
        assert store.get_event("0" * 32) is None
        assert not store.has_event("0" * 32)

    def test_events_by_portfolio_in_emission_order(self, store, make_signal_score, make_risk_score):
        late = signal_score_record(make_signal_score(), "pf-1", "req-1", BASE_TS + 10)
        early = risk_score_record(make_risk_score(RiskLevel.HIGH), "req-1", BASE_TS)
        other = signal_score_record(make_signal_score(), "pf-2", "req-2", BASE_TS)
        for record in (late, early, other):
            store.store_event(record)

        events = store.get_events_by_portfolio("pf-1")
        assert [e.event_id for e in events] == [early.event_id, late.event_id]
        assert [e.event_id for e in store.get_events_by_portfolio("pf-1", event_type="risk_score")] == [
            early.event_id
        ]

    def test_delivery_status(self, store, make_signal_score):
        record = signal_score_record(make_signal_score(), "pf-1", "req-1", BASE_TS)
        store.store_event(record)
        store.update_delivery_status(record.event_id, "failed")
        store.update_delivery_status(record.event_id, "success")

        stored = store.get_event(record.event_id)
        assert stored.delivery_attempts == 2
        assert stored.delivery_status == "success"

    def test_cleanup_and_stats(self, store, make_signal_score, make_risk_score):
        store.store_event(signal_score_record(make_signal_score(), "pf-1", "req-1", BASE_TS))
        store.store_event(risk_score_record(make_risk_score(RiskLevel.HIGH), "req-1", BASE_TS + 100))

        assert store.get_stats() == {
            "total_events": 2,
            "events_by_type": {"signal_score": 1, "risk_score": 1},
            "events_by_status": {"complete": 2},
        }
        assert store.cleanup_old_events(BASE_TS + 50) == 1
        assert store.get_stats()["total_events"] == 1

    def test_sqlite_errors_become_persistence_errors(self, tmp_path, make_signal_score):
        db_path = tmp_path / "audit.db"
        store = EventStore(str(db_path))
        conn = sqlite3.connect(db_path)
        conn.execute("DROP TABLE events")
        conn.commit()
        conn.close()

        with pytest.raises(PersistenceError) as exc_info:
            store.store_event(signal_score_record(make_signal_score(), "pf-1", "req-1", BASE_TS))
        assert exc_info.value.operation == "store"
