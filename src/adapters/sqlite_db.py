"""
SQLite Event Store Adapter.

Implements EventStorePort using SQLite. The schema lives in migrations/.

Timestamps are written as fixed-width UTC strings so that lexicographic
order in SQL matches chronological order.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from src.components.analytics import (
    AnalyticsEvent,
    EventStoreError,
    SchemaUnavailableError,
    SummaryEvent,
)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def format_dt(dt: datetime) -> str:
    """Format a datetime as a sortable UTC string."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).strftime(TIMESTAMP_FORMAT)


def parse_dt(s: str | None) -> datetime | None:
    """Parse ISO datetime string."""
    return datetime.fromisoformat(s) if s else None


def _is_missing_table(exc: sqlite3.Error) -> bool:
    return isinstance(exc, sqlite3.OperationalError) and "no such table" in str(exc)


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(self, db_path: str, connection: sqlite3.Connection | None = None):
        self.db_path = db_path
        self._external_conn = connection

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = dict_factory
        return conn

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None


# -----------------------------------------------------------------------------
# Analytics Event Store
# -----------------------------------------------------------------------------


class SQLiteEventStore(SQLiteRepoBase):
    """SQLite implementation of EventStorePort."""

    _INSERT = """
        INSERT INTO analytics_events (
            id, anonymous_id, session_id, event_name, tool_name, properties,
            user_agent, locale, timezone, soft_fingerprint, ip_hash,
            created_at, received_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """

    def insert_many(self, events: Sequence[AnalyticsEvent]) -> int:
        """Insert a batch in one transaction; nothing is stored on failure."""
        if not events:
            return 0

        rows = [self._to_row(e) for e in events]
        conn = self._get_conn()
        try:
            with conn:
                conn.executemany(self._INSERT, rows)
            return len(rows)
        except sqlite3.Error as e:
            if _is_missing_table(e):
                raise SchemaUnavailableError("analytics_events table is missing") from e
            raise EventStoreError(f"Failed to insert events: {e}") from e
        finally:
            if self._should_close():
                conn.close()

    def find_range(
        self,
        start: datetime,
        end: datetime,
        tool_name: str | None = None,
        event_name: str | None = None,
    ) -> list[SummaryEvent]:
        """Events with start <= created_at <= end, oldest first."""
        clauses = ["created_at >= ?", "created_at <= ?"]
        params: list[Any] = [format_dt(start), format_dt(end)]

        if tool_name:
            clauses.append("tool_name = ?")
            params.append(tool_name)
        if event_name:
            clauses.append("event_name = ?")
            params.append(event_name)

        query = (
            "SELECT created_at, event_name, tool_name FROM analytics_events "
            f"WHERE {' AND '.join(clauses)} ORDER BY created_at ASC"
        )

        conn = self._get_conn()
        try:
            cursor = conn.execute(query, params)
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            if _is_missing_table(e):
                raise SchemaUnavailableError("analytics_events table is missing") from e
            raise EventStoreError(f"Failed to query events: {e}") from e
        finally:
            if self._should_close():
                conn.close()

        return [self._row_to_summary_event(self._as_dict(cursor, r)) for r in rows]

    @staticmethod
    def _as_dict(cursor: sqlite3.Cursor, row: Any) -> dict[str, Any]:
        # External connections may not use dict_factory
        return row if isinstance(row, dict) else dict_factory(cursor, row)

    def _to_row(self, event: AnalyticsEvent) -> tuple[Any, ...]:
        return (
            str(event.id),
            event.anonymous_id,
            event.session_id,
            event.event_name,
            event.tool_name,
            json.dumps(event.properties) if event.properties is not None else None,
            event.user_agent,
            event.locale,
            event.timezone,
            event.soft_fingerprint,
            event.ip_hash,
            format_dt(event.created_at),
            format_dt(event.received_at),
            format_dt(event.updated_at),
        )

    def _row_to_summary_event(self, row: dict[str, Any]) -> SummaryEvent:
        try:
            created_at = parse_dt(row["created_at"])
        except ValueError as e:
            raise EventStoreError(f"Unreadable created_at: {row['created_at']!r}") from e
        if created_at is None:
            raise EventStoreError("analytics_events row has no created_at")
        return SummaryEvent(
            created_at=created_at,
            event_name=row["event_name"],
            tool_name=row["tool_name"],
        )

    def count(self) -> int:
        conn = self._get_conn()
        try:
            cursor = conn.execute("SELECT COUNT(*) AS n FROM analytics_events")
            row = cursor.fetchone()
        finally:
            if self._should_close():
                conn.close()
        return int(self._as_dict(cursor, row)["n"])
