"""
SQLite Event Store - append-only requisition log with idempotency

The event store is the persistence collaborator of the workflow. It provides:
- Append-only semantics (history is never rewritten)
- Idempotency via command_id (same command = same events)
- Optimistic locking via stream versioning
- Atomic batch writes: every event of one request lands in one transaction
- Unique stream keys (requisition numbers) claimed in that same transaction
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from requisition_flow.kernel.errors import (
    CommandIdempotencyViolation,
    EventStoreError,
    StreamKeyConflict,
    StreamVersionConflict,
)
from requisition_flow.kernel.events import Event
from requisition_flow.kernel.logging import get_logger
from requisition_flow.kernel.metrics import (
    events_appended_total,
    events_loaded_total,
    stream_version_conflicts_total,
)
from requisition_flow.kernel.retry import retry_on_sqlite_lock

logger = get_logger(__name__)

_EVENT_COLUMNS = """
    event_id, stream_id, stream_type, version,
    command_id, event_type, occurred_at, actor_id, payload_json
"""


class SQLiteEventStore:
    """
    SQLite-based event store with append-only semantics

    WAL mode gives crash safety and lets readers proceed while a
    writer holds the lock.

    Schema:
    - events table: append-only event log
    - Unique constraint: (stream_id, version)
    - stream_keys table: one owner stream per unique key
    - Indices: stream, event_type, occurred_at, command_id
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        """Create tables and indices if they don't exist"""
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    event_id TEXT PRIMARY KEY,
                    stream_id TEXT NOT NULL,
                    stream_type TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    command_id TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    occurred_at TEXT NOT NULL,
                    actor_id TEXT,
                    payload_json TEXT NOT NULL,

                    UNIQUE(stream_id, version)
                )
            """)

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_stream "
                "ON events(stream_id, version)"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_time ON events(occurred_at)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_command ON events(command_id)"
            )

            conn.execute("""
                CREATE TABLE IF NOT EXISTS stream_keys (
                    key TEXT PRIMARY KEY,
                    stream_id TEXT NOT NULL
                )
            """)

            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection and always close it"""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def append(
        self,
        stream_id: str,
        expected_version: int,
        events: list[Event],
        unique_key: str | None = None,
    ) -> list[Event]:
        """
        Append events to a stream with optimistic locking

        All events are written in a single transaction: either the whole
        batch of one request lands or nothing does.

        Args:
            stream_id: Requisition identifier
            expected_version: Stream version the caller decided against
            events: Events to append (sequential versions)
            unique_key: Key the stream claims for good, e.g. its requisition number

        Returns:
            The appended events (or the original ones on an idempotent replay)

        Raises:
            StreamVersionConflict: If stream version doesn't match expected
            CommandIdempotencyViolation: If the command_id belongs to another stream
            StreamKeyConflict: If unique_key already belongs to another stream
            EventStoreError: On other database errors
        """
        if not events:
            return []

        command_id = events[0].command_id
        existing = self.events_for_command(command_id)
        if existing:
            if all(e.stream_id == stream_id for e in existing):
                logger.info(
                    "Command already processed, returning original events",
                    command_id=command_id,
                    stream_id=stream_id,
                )
                return existing
            raise CommandIdempotencyViolation(command_id)

        self._insert(stream_id, expected_version, events, unique_key)

        for event in events:
            events_appended_total.labels(
                stream_type=event.stream_type, event_type=event.event_type
            ).inc()
        logger.debug(
            "Events appended",
            stream_id=stream_id,
            event_count=len(events),
            version=events[-1].version,
        )
        return events

    @retry_on_sqlite_lock()
    def _insert(
        self,
        stream_id: str,
        expected_version: int,
        events: list[Event],
        unique_key: str | None,
    ) -> None:
        with self._connect() as conn:
            try:
                current_version = self._get_stream_version(conn, stream_id)
                if current_version != expected_version:
                    stream_version_conflicts_total.labels(
                        stream_type=events[0].stream_type
                    ).inc()
                    raise StreamVersionConflict(stream_id, expected_version, current_version)

                if unique_key is not None:
                    conn.execute(
                        "INSERT INTO stream_keys (key, stream_id) VALUES (?, ?)",
                        (unique_key, stream_id),
                    )
                conn.executemany(
                    f"INSERT INTO events ({_EVENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    [
                        (
                            event.event_id,
                            event.stream_id,
                            event.stream_type,
                            event.version,
                            event.command_id,
                            event.event_type,
                            event.occurred_at.isoformat(),
                            event.actor_id,
                            json.dumps(event.payload),
                        )
                        for event in events
                    ],
                )
                conn.commit()

            except sqlite3.IntegrityError as e:
                conn.rollback()
                error_msg = str(e).lower()
                if "stream_id" in error_msg and "version" in error_msg:
                    current = self._get_stream_version(conn, stream_id)
                    stream_version_conflicts_total.labels(
                        stream_type=events[0].stream_type
                    ).inc()
                    raise StreamVersionConflict(stream_id, expected_version, current) from e
                if "stream_keys" in error_msg:
                    raise StreamKeyConflict(unique_key or "", stream_id) from e
                raise EventStoreError(f"Failed to append events: {e}") from e

    @retry_on_sqlite_lock()
    def load_stream(self, stream_id: str) -> list[Event]:
        """Load all events of one requisition in version order"""
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_EVENT_COLUMNS} FROM events WHERE stream_id = ? ORDER BY version ASC",
                (stream_id,),
            )
            events = [self._row_to_event(row) for row in cursor.fetchall()]

        if events:
            events_loaded_total.labels(stream_type=events[0].stream_type).inc(len(events))
        return events

    @retry_on_sqlite_lock()
    def load_all_events(self) -> list[Event]:
        """Load every event in chronological order (for projection rebuilding)"""
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_EVENT_COLUMNS} FROM events "
                "ORDER BY occurred_at ASC, stream_id ASC, version ASC"
            )
            events = [self._row_to_event(row) for row in cursor.fetchall()]

        for event in events:
            events_loaded_total.labels(stream_type=event.stream_type).inc()
        return events

    def keys_with_prefix(self, prefix: str) -> list[str]:
        """Claimed unique keys starting with prefix"""
        with self._connect() as conn:
            cursor = conn.execute(
                "SELECT key FROM stream_keys WHERE substr(key, 1, ?) = ?",
                (len(prefix), prefix),
            )
            return [row["key"] for row in cursor.fetchall()]

    def get_stream_version(self, stream_id: str) -> int:
        """Current version of a stream (0 if it doesn't exist)"""
        with self._connect() as conn:
            return self._get_stream_version(conn, stream_id)

    def _get_stream_version(self, conn: sqlite3.Connection, stream_id: str) -> int:
        cursor = conn.execute(
            "SELECT MAX(version) FROM events WHERE stream_id = ?",
            (stream_id,),
        )
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def events_for_command(self, command_id: str) -> list[Event]:
        """Events written by one command (empty if the command never ran)"""
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_EVENT_COLUMNS} FROM events WHERE command_id = ? "
                "ORDER BY stream_id ASC, version ASC",
                (command_id,),
            )
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def _row_to_event(self, row: sqlite3.Row) -> Event:
        return Event(
            event_id=row["event_id"],
            stream_id=row["stream_id"],
            stream_type=row["stream_type"],
            version=row["version"],
            command_id=row["command_id"],
            event_type=row["event_type"],
            occurred_at=datetime.fromisoformat(row["occurred_at"]),
            actor_id=row["actor_id"],
            payload=json.loads(row["payload_json"]),
        )

    def count_events(self) -> int:
        """Total number of events in store"""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

    def count_streams(self) -> int:
        """Total number of requisitions (distinct streams)"""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(DISTINCT stream_id) FROM events").fetchone()[0]
