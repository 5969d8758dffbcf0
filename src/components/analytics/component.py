"""
Analytics component - Event ingestion and daily usage summaries.

Invariants:
- I1: No raw IP is stored; ip_hash stays null
- I2: Events missing anonymous_id, session_id or event_name never reach the store
- I3: A batch is stored in full or not at all
- I4: Summary filters are exact-match and applied by the store's range scan
- I5: Summary buckets are UTC calendar days in ascending order
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from ._aggregate import aggregate_analytics_events, compute_date_range
from ._impl import AnalyticsIngestionService, DefaultTimePort, IngestionConfig
from .models import (
    IngestEventsInput,
    IngestOutput,
    QuerySummaryInput,
    SummaryFilters,
    SummaryOutput,
)
from .ports import EventStorePort, TimePort

# --- Component Entry Points ---


def run_ingest(
    inp: IngestEventsInput,
    *,
    event_store: EventStorePort,
    time_port: TimePort | None = None,
    config: IngestionConfig | None = None,
) -> IngestOutput:
    """
    Ingest a batch of events.

    Args:
        inp: Input containing the decoded request body.
        event_store: Event store port.
        time_port: Optional time port.
        config: Optional ingestion configuration.

    Returns:
        IngestOutput with the stored count or a coded error.
    """
    service = AnalyticsIngestionService(
        event_store=event_store,
        time_port=time_port,
        config=config,
    )
    return service.ingest(inp.body)


def run_query_summary(
    inp: QuerySummaryInput,
    *,
    event_store: EventStorePort,
    time_port: TimePort | None = None,
) -> SummaryOutput:
    """
    Query the day-bucketed usage summary.

    Store errors propagate to the caller.
    """
    clock = time_port or DefaultTimePort()
    return _summarize(inp, event_store, clock.now_utc())


def query_summary(
    event_store: EventStorePort,
    params: Mapping[str, Any],
    now: datetime,
) -> dict[str, Any]:
    """Resolve the range, scan, aggregate and return the response payload."""
    inp = QuerySummaryInput(
        range=params.get("range"),
        start=params.get("start"),
        end=params.get("end"),
        tool_name=params.get("tool_name"),
        event_name=params.get("event_name"),
    )
    return _summarize(inp, event_store, now).to_payload()


def _summarize(inp: QuerySummaryInput, event_store: EventStorePort, now: datetime) -> SummaryOutput:
    date_range = compute_date_range(
        {"range": inp.range, "start": inp.start, "end": inp.end},
        now=now,
    )
    filters = SummaryFilters(
        tool_name=inp.tool_name or None,
        event_name=inp.event_name or None,
    )

    events = event_store.find_range(
        date_range.start,
        date_range.end,
        tool_name=filters.tool_name,
        event_name=filters.event_name,
    )

    return SummaryOutput(
        date_range=date_range,
        filters=filters,
        summary=aggregate_analytics_events(events),
    )
