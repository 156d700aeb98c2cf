"""Event persistence layer for audit retention and replay."""

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import orjson
import structlog

from ..errors import PersistenceError
from ..events.records import EventRecord
from ..utils.time import now_ms


@dataclass
class StoredEvent:
    """Stored event with retention metadata."""
    id: int
    event_id: str
    event_type: str
    portfolio_id: str
    status: str
    schema_version: str
    emitted_at_ms: int
    event_data: dict[str, Any]
    stored_at_ms: int
    delivery_attempts: int = 0
    delivery_status: Optional[str] = None


class EventStore:
    """SQLite-based audit store for emitted event records."""

    def __init__(self, db_path: str = "audit_events.db"):
        self.db_path = Path(db_path)
        self.logger = structlog.get_logger(__name__)
        self._lock = threading.Lock()

        self._init_database()

    def _init_database(self) -> None:
        with self._get_connection("init") as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    event_id TEXT NOT NULL UNIQUE,
                    event_type TEXT NOT NULL,
                    portfolio_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    schema_version TEXT NOT NULL,
                    emitted_at_ms INTEGER NOT NULL,
                    event_data BLOB NOT NULL,
                    stored_at_ms INTEGER NOT NULL,
                    delivery_attempts INTEGER DEFAULT 0,
                    delivery_status TEXT
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_portfolio ON events(portfolio_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_emitted_at ON events(emitted_at_ms)")
            conn.commit()

    @contextmanager
    def _get_connection(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Get a connection; sqlite errors surface as PersistenceError."""
        conn = None
        try:
            conn = sqlite3.connect(self.db_path, timeout=30.0)
            conn.row_factory = sqlite3.Row
            yield conn
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            self.logger.error("event_store_error", operation=operation, error=str(e))
            raise PersistenceError(
                f"Event store {operation} failed: {e}",
                operation=operation,
                target=str(self.db_path),
            ) from e
        finally:
            if conn:
                conn.close()

    def store_event(self, record: EventRecord) -> bool:
        """
        Store an event record.

        Returns:
            True if stored, False if an event with the same id already exists.
        """
        with self._lock, self._get_connection("store") as conn:
            cursor = conn.execute("""
                INSERT OR IGNORE INTO events (
                    event_id, event_type, portfolio_id, status, schema_version,
                    emitted_at_ms, event_data, stored_at_ms
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                record.event_id,
                record.event_type.value,
                record.portfolio_id,
                record.status.value,
                record.schema_version,
                record.emitted_at_ms,
                record.to_json(),
                now_ms(),
            ))
            conn.commit()
            stored = cursor.rowcount > 0

        self.logger.debug(
            "event_stored" if stored else "event_already_stored",
            event_id=record.event_id,
            event_type=record.event_type.value,
            portfolio_id=record.portfolio_id,
        )
        return stored

    def has_event(self, event_id: str) -> bool:
        with self._get_connection("lookup") as conn:
            row = conn.execute("SELECT 1 FROM events WHERE event_id = ?", (event_id,)).fetchone()
            return row is not None

    def get_event(self, event_id: str) -> Optional[StoredEvent]:
        with self._get_connection("get") as conn:
            row = conn.execute("SELECT * FROM events WHERE event_id = ?", (event_id,)).fetchone()
            return self._row_to_stored_event(row) if row else None

    def get_events_by_portfolio(self, portfolio_id: str, event_type: Optional[str] = None,
                                limit: int = 1000) -> list[StoredEvent]:
        """Events for a portfolio in emission order."""
        query = "SELECT * FROM events WHERE portfolio_id = ?"
        params: list[Any] = [portfolio_id]
        if event_type is not None:
            query += " AND event_type = ?"
            params.append(event_type)
        query += " ORDER BY emitted_at_ms, id LIMIT ?"
        params.append(limit)

        with self._get_connection("query") as conn:
            return [self._row_to_stored_event(row) for row in conn.execute(query, params).fetchall()]

    def update_delivery_status(self, event_id: str, status: str) -> None:
        with self._lock, self._get_connection("update_delivery") as conn:
            conn.execute("""
                UPDATE events SET
                    delivery_attempts = delivery_attempts + 1,
                    delivery_status = ?
                WHERE event_id = ?
            """, (status, event_id))
            conn.commit()

    def cleanup_old_events(self, older_than_ms: int) -> int:
        """Remove events emitted before ``older_than_ms``. Returns the count removed."""
        with self._lock, self._get_connection("cleanup") as conn:
            cursor = conn.execute("DELETE FROM events WHERE emitted_at_ms < ?", (older_than_ms,))
            conn.commit()
            deleted = cursor.rowcount

        self.logger.info("events_cleaned_up", deleted=deleted)
        return deleted

    def get_stats(self) -> dict[str, Any]:
        with self._get_connection("stats") as conn:
            total = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
            by_type = {
                row[0]: row[1]
                for row in conn.execute("SELECT event_type, COUNT(*) FROM events GROUP BY event_type")
            }
            by_status = {
                row[0]: row[1]
                for row in conn.execute("SELECT status, COUNT(*) FROM events GROUP BY status")
            }
        return {"total_events": total, "events_by_type": by_type, "events_by_status": by_status}

    def _row_to_stored_event(self, row: sqlite3.Row) -> StoredEvent:
        return StoredEvent(
            id=row["id"],
            event_id=row["event_id"],
            event_type=row["event_type"],
            portfolio_id=row["portfolio_id"],
            status=row["status"],
            schema_version=row["schema_version"],
            emitted_at_ms=row["emitted_at_ms"],
            event_data=orjson.loads(row["event_data"]),
            stored_at_ms=row["stored_at_ms"],
            delivery_attempts=row["delivery_attempts"],
            delivery_status=row["delivery_status"],
        )
