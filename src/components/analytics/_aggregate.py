"""
Daily usage aggregation.

Resolves the reporting window and rolls raw events up into one bucket per UTC
calendar day, with per-tool and per-event counts.

Key behaviors:
- Explicit start/end win when both parse and start <= end
- Otherwise a preset (24h, 7d, 30d) anchored at now; unknown presets mean 7d
- 24h windows are aligned to whole hours
- Buckets come back sorted by date, ascending
- Aggregation runs in memory over the already-filtered range scan
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime, timedelta
from enum import Enum

from src.domain.sanitize import parse_date

from .models import AnalyticsSummary, DailyBucket, DateRange, SummaryEvent

UNKNOWN_TOOL = "unknown"


class RangePreset(str, Enum):
    """Named reporting windows."""

    LAST_24H = "24h"
    LAST_7D = "7d"
    LAST_30D = "30d"


DEFAULT_PRESET = RangePreset.LAST_7D

PRESET_DURATIONS: dict[RangePreset, timedelta] = {
    RangePreset.LAST_24H: timedelta(hours=24),
    RangePreset.LAST_7D: timedelta(days=7),
    RangePreset.LAST_30D: timedelta(days=30),
}


def parse_range_preset(value: str | None) -> RangePreset:
    """Map a query value to a preset, defaulting to 7d."""
    if value is None:
        return DEFAULT_PRESET
    try:
        return RangePreset(value)
    except ValueError:
        return DEFAULT_PRESET


def compute_date_range(params: Mapping[str, str | None], now: datetime) -> DateRange:
    """
    Resolve the reporting window from query parameters.

    Args:
        params: Mapping with optional "range", "start" and "end" values.
        now: Current UTC time.
    """
    start_param = parse_date(params.get("start"))
    end_param = parse_date(params.get("end"))

    if start_param and end_param and start_param <= end_param:
        return DateRange(start=start_param, end=end_param, preset=DEFAULT_PRESET.value)

    preset = parse_range_preset(params.get("range"))
    duration = PRESET_DURATIONS[preset]

    if preset == RangePreset.LAST_24H:
        # Close the window at the top of the next hour so it spans whole hours
        end = now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
    else:
        end = now

    return DateRange(start=end - duration, end=end, preset=preset.value)


def to_utc_date_string(value: datetime) -> str:
    """Normalize a datetime to its UTC calendar date (YYYY-MM-DD)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).date().isoformat()


def aggregate_analytics_events(events: Iterable[SummaryEvent]) -> AnalyticsSummary:
    """
    Roll events up into daily buckets.

    Events are expected in ascending created_at order; the buckets are sorted
    regardless.
    """
    buckets: dict[str, DailyBucket] = {}
    total = 0

    for event in events:
        date_key = to_utc_date_string(event.created_at)
        bucket = buckets.get(date_key)
        if bucket is None:
            bucket = DailyBucket(date=date_key)
            buckets[date_key] = bucket

        bucket.total += 1

        tool_name = event.tool_name or UNKNOWN_TOOL
        bucket.by_tool[tool_name] = bucket.by_tool.get(tool_name, 0) + 1
        bucket.by_event[event.event_name] = bucket.by_event.get(event.event_name, 0) + 1

        total += 1

    ordered = tuple(buckets[key] for key in sorted(buckets))
    return AnalyticsSummary(total_events=total, buckets=ordered)
