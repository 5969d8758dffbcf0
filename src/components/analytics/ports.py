"""
Analytics component port definitions.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from .models import AnalyticsEvent, SummaryEvent


class EventStoreError(Exception):
    """Raised when the event store cannot complete an operation."""


class SchemaUnavailableError(EventStoreError):
    """Raised when the backing schema (table) does not exist."""


class EventStorePort(Protocol):
    """Append-only event store."""

    def insert_many(self, events: Sequence[AnalyticsEvent]) -> int:
        """
        Insert all events atomically. Returns the number inserted.

        Raises SchemaUnavailableError if the schema is missing and
        EventStoreError on any other failure. Nothing is stored on failure.
        """
        ...

    def find_range(
        self,
        start: datetime,
        end: datetime,
        tool_name: str | None = None,
        event_name: str | None = None,
    ) -> list[SummaryEvent]:
        """Events with start <= created_at <= end, ascending by created_at."""
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...
