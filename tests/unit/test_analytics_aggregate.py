"""
Tests for daily usage aggregation and reporting-window resolution.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from uuid import uuid4

import pytest

from src.components.analytics import (
    AnalyticsEvent,
    InMemoryEventStore,
    QuerySummaryInput,
    RangePreset,
    SummaryEvent,
    aggregate_analytics_events,
    compute_date_range,
    parse_range_preset,
    query_summary,
    run_query_summary,
    to_utc_date_string,
)

NOW = datetime(2024, 3, 15, 12, 30, 45, tzinfo=UTC)


class MockTimePort:
    def __init__(self, now: datetime) -> None:
        self._now = now

    def now_utc(self) -> datetime:
        return self._now


def stored_event(
    created_at: datetime,
    event_name: str = "tool_used",
    tool_name: str | None = "qr",
) -> AnalyticsEvent:
    return AnalyticsEvent(
        id=uuid4(),
        anonymous_id="a",
        session_id="s",
        event_name=event_name,
        tool_name=tool_name,
        created_at=created_at,
        received_at=created_at,
        updated_at=created_at,
    )


# --- Date Range ---


class TestComputeDateRange:
    def test_24h_spans_exactly_one_day(self) -> None:
        r = compute_date_range({"range": "24h"}, NOW)
        assert r.end - r.start == timedelta(hours=24)
        assert r.preset == "24h"

    def test_24h_aligned_to_whole_hours(self) -> None:
        r = compute_date_range({"range": "24h"}, NOW)
        assert r.end == datetime(2024, 3, 15, 13, 0, 0, tzinfo=UTC)
        assert r.start == datetime(2024, 3, 14, 13, 0, 0, tzinfo=UTC)
        assert r.start <= NOW <= r.end

    def test_7d(self) -> None:
        r = compute_date_range({"range": "7d"}, NOW)
        assert r.end == NOW
        assert r.start == NOW - timedelta(days=7)

    def test_30d(self) -> None:
        r = compute_date_range({"range": "30d"}, NOW)
        assert r.end - r.start == timedelta(days=30)
        assert r.preset == "30d"

    @pytest.mark.parametrize("params", [{}, {"range": None}, {"range": "1y"}])
    def test_default_is_7d(self, params) -> None:
        r = compute_date_range(params, NOW)
        assert r.preset == "7d"
        assert r.end - r.start == timedelta(days=7)

    def test_explicit_range(self) -> None:
        r = compute_date_range({"start": "2024-01-01", "end": "2024-01-02T12:00:00Z"}, NOW)
        assert r.start == datetime(2024, 1, 1, tzinfo=UTC)
        assert r.end == datetime(2024, 1, 2, 12, tzinfo=UTC)
        assert r.preset == "7d"

    def test_explicit_range_wins_over_preset(self) -> None:
        r = compute_date_range({"range": "24h", "start": "2024-01-01", "end": "2024-01-05"}, NOW)
        assert r.end - r.start == timedelta(days=4)

    def test_inverted_range_falls_back_to_7d(self) -> None:
        r = compute_date_range({"start": "2024-01-02", "end": "2024-01-01"}, NOW)
        assert r.end == NOW
        assert r.end - r.start == timedelta(days=7)

    def test_half_explicit_range_ignored(self) -> None:
        r = compute_date_range({"start": "2024-01-01", "range": "30d"}, NOW)
        assert r.preset == "30d"
        assert r.end == NOW


def test_parse_range_preset() -> None:
    assert parse_range_preset("24h") == RangePreset.LAST_24H
    assert parse_range_preset("bogus") == RangePreset.LAST_7D
    assert parse_range_preset(None) == RangePreset.LAST_7D


def test_to_utc_date_string() -> None:
    late_evening = datetime(2024, 1, 1, 23, 30, tzinfo=timezone(timedelta(hours=-2)))
    assert to_utc_date_string(late_evening) == "2024-01-02"
    assert to_utc_date_string(datetime(2024, 1, 1, 5, 0)) == "2024-01-01"


# --- Aggregation ---


class TestAggregate:
    def test_three_days_three_buckets(self) -> None:
        events = [
            SummaryEvent(datetime(2024, 1, 1, 10, tzinfo=UTC), "open", "qr"),
            SummaryEvent(datetime(2024, 1, 1, 11, tzinfo=UTC), "copy", "qr"),
            SummaryEvent(datetime(2024, 1, 2, 9, tzinfo=UTC), "open", "password"),
            SummaryEvent(datetime(2024, 1, 3, 23, 59, tzinfo=UTC), "open", None),
            SummaryEvent(datetime(2024, 1, 3, 0, 0, tzinfo=UTC), "copy", "qr"),
        ]
        summary = aggregate_analytics_events(events)

        assert summary.total_events == 5
        assert [b.date for b in summary.buckets] == ["2024-01-01", "2024-01-02", "2024-01-03"]

        day1, day2, day3 = summary.buckets
        assert day1.total == 2
        assert day1.by_tool == {"qr": 2}
        assert day1.by_event == {"open": 1, "copy": 1}
        assert day2.total == 1
        assert day2.by_tool == {"password": 1}
        assert day3.total == 2
        assert day3.by_tool == {"unknown": 1, "qr": 1}
        assert day3.by_event == {"open": 1, "copy": 1}

    def test_buckets_sorted_even_if_input_is_not(self) -> None:
        events = [
            SummaryEvent(datetime(2024, 1, 3, tzinfo=UTC), "e"),
            SummaryEvent(datetime(2024, 1, 1, tzinfo=UTC), "e"),
        ]
        summary = aggregate_analytics_events(events)
        assert [b.date for b in summary.buckets] == ["2024-01-01", "2024-01-03"]

    def test_empty(self) -> None:
        summary = aggregate_analytics_events([])
        assert summary.total_events == 0
        assert summary.buckets == ()


# --- Query ---


class TestQuerySummary:
    @pytest.fixture
    def store(self) -> InMemoryEventStore:
        store = InMemoryEventStore()
        store.insert_many(
            [
                stored_event(NOW - timedelta(days=1), "open", "qr"),
                stored_event(NOW - timedelta(days=1), "copy", "qr"),
                stored_event(NOW - timedelta(hours=2), "open", "password"),
                stored_event(NOW - timedelta(days=10), "open", "qr"),
            ]
        )
        return store

    def test_default_window_excludes_old_events(self, store) -> None:
        output = run_query_summary(QuerySummaryInput(), event_store=store, time_port=MockTimePort(NOW))
        assert output.summary.total_events == 3
        assert output.date_range.preset == "7d"

    def test_filters(self, store) -> None:
        output = run_query_summary(
            QuerySummaryInput(tool_name="qr", event_name="open"),
            event_store=store,
            time_port=MockTimePort(NOW),
        )
        assert output.summary.total_events == 1
        assert output.filters.tool_name == "qr"

    def test_payload_shape(self, store) -> None:
        payload = query_summary(store, {"range": "30d"}, NOW)

        assert payload["range"]["preset"] == "30d"
        assert payload["filters"] == {"tool_name": None, "event_name": None}
        assert payload["data"]["totals"] == {"events": 4}
        first = payload["data"]["buckets"][0]
        assert set(first) == {"date", "total", "by_tool", "by_event"}
