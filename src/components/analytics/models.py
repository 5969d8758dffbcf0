"""
Analytics component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

# --- Errors ---


@dataclass(frozen=True)
class IngestionError:
    """Ingestion error with a machine-readable code."""

    code: str
    message: str


# --- Event Model ---


@dataclass(frozen=True)
class AnalyticsEvent:
    """Sanitized analytics event, immutable once built."""

    id: UUID
    anonymous_id: str
    session_id: str
    event_name: str
    created_at: datetime
    received_at: datetime
    updated_at: datetime
    tool_name: str | None = None
    properties: dict[str, Any] | None = None
    user_agent: str | None = None
    locale: str | None = None
    timezone: str | None = None
    soft_fingerprint: str | None = None
    ip_hash: str | None = None


@dataclass(frozen=True)
class SummaryEvent:
    """Projection of an event used for aggregation."""

    created_at: datetime
    event_name: str
    tool_name: str | None = None


# --- Request Body Classification ---


class BodyKind(str, Enum):
    """Accepted shapes of an ingestion request body."""

    SINGLE = "single"
    LIST = "list"
    ENVELOPE = "envelope"
    INVALID = "invalid"


@dataclass(frozen=True)
class EventBatchBody:
    """Request body resolved to a list of raw items."""

    kind: BodyKind
    items: tuple[Any, ...] = ()


# --- Input Models ---


@dataclass(frozen=True)
class IngestEventsInput:
    """Input for ingesting a decoded JSON request body."""

    body: Any


@dataclass(frozen=True)
class QuerySummaryInput:
    """Input for the daily usage summary query."""

    range: str | None = None
    start: str | None = None
    end: str | None = None
    tool_name: str | None = None
    event_name: str | None = None


# --- Output Models ---


@dataclass(frozen=True)
class IngestOutput:
    """Output for an ingestion request."""

    stored: int = 0
    dropped: int = 0
    errors: list[IngestionError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class DateRange:
    """Resolved reporting window."""

    start: datetime
    end: datetime
    preset: str


@dataclass(frozen=True)
class SummaryFilters:
    """Exact-match filters applied by the range scan."""

    tool_name: str | None = None
    event_name: str | None = None


@dataclass
class DailyBucket:
    """Event counts for one UTC calendar day."""

    date: str
    total: int = 0
    by_tool: dict[str, int] = field(default_factory=dict)
    by_event: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class AnalyticsSummary:
    """Day-bucketed rollup of a list of events."""

    total_events: int
    buckets: tuple[DailyBucket, ...]


@dataclass(frozen=True)
class SummaryOutput:
    """Output for the summary query."""

    date_range: DateRange
    filters: SummaryFilters
    summary: AnalyticsSummary

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready `{range, filters, data}` payload."""
        return {
            "range": {
                "preset": self.date_range.preset,
                "start": self.date_range.start.isoformat(),
                "end": self.date_range.end.isoformat(),
            },
            "filters": {
                "tool_name": self.filters.tool_name,
                "event_name": self.filters.event_name,
            },
            "data": {
                "totals": {"events": self.summary.total_events},
                "buckets": [
                    {
                        "date": b.date,
                        "total": b.total,
                        "by_tool": dict(b.by_tool),
                        "by_event": dict(b.by_event),
                    }
                    for b in self.summary.buckets
                ],
            },
        }
