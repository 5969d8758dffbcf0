"""
Sanitization of untrusted telemetry fields.

Everything here is pure: values in, bounded values out. Nothing raises on bad
input; invalid values simply come back as None (or are dropped from maps).

Bounds on `properties`:
- strings truncated to `max_property_string_length`
- arrays truncated to `max_property_array_length`, elements sanitized too
- nested objects recurse down to `max_property_depth`, deeper ones dropped
- at most `max_property_nodes` values kept across the whole map
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from src.rules.models import SanitizerRules

DEFAULT_RULES = SanitizerRules()

# Marker for values that must not appear in the output
_DROP = object()


def is_record(value: Any) -> bool:
    """True for JSON objects (dicts), False for arrays and scalars."""
    return isinstance(value, dict)


def ensure_trimmed_string(value: Any, max_length: int = 1024) -> str | None:
    """Trim a string and cap its length; None for non-strings and blanks."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    return trimmed[:max_length] if len(trimmed) > max_length else trimmed


def parse_date(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z") or raw.endswith("z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


@dataclass
class _NodeBudget:
    remaining: int

    def take(self) -> bool:
        if self.remaining <= 0:
            return False
        self.remaining -= 1
        return True


def _sanitize_value(
    value: Any,
    depth: int,
    budget: _NodeBudget,
    rules: SanitizerRules,
) -> Any:
    if not budget.take():
        return _DROP

    # bool before numbers: bool is an int subclass, both pass through unchanged
    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        limit = rules.max_property_string_length
        return value[:limit] if len(value) > limit else value

    if isinstance(value, list):
        if depth >= rules.max_property_depth:
            return _DROP
        items = []
        for element in value[: rules.max_property_array_length]:
            cleaned = _sanitize_value(element, depth + 1, budget, rules)
            if cleaned is not _DROP:
                items.append(cleaned)
        return items

    if isinstance(value, dict):
        if depth >= rules.max_property_depth:
            return _DROP
        return _sanitize_map(value, depth + 1, budget, rules)

    return _DROP


def _sanitize_map(
    raw: dict[str, Any],
    depth: int,
    budget: _NodeBudget,
    rules: SanitizerRules,
) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in raw.items():
        if not isinstance(key, str):
            continue
        cleaned = _sanitize_value(value, depth, budget, rules)
        if cleaned is not _DROP:
            result[key] = cleaned
    return result


def sanitize_properties(
    raw: Any,
    rules: SanitizerRules = DEFAULT_RULES,
) -> dict[str, Any] | None:
    """
    Bound an untrusted `properties` map.

    Returns None when `raw` is not an object or nothing survives, so callers
    store null instead of an empty map. Nested objects that end up empty are
    kept as {}.
    """
    if not is_record(raw):
        return None

    budget = _NodeBudget(remaining=rules.max_property_nodes)
    result = _sanitize_map(raw, 0, budget, rules)
    return result or None


def require_event_fields(
    item: Any,
    rules: SanitizerRules = DEFAULT_RULES,
) -> tuple[str, str, str] | None:
    """Return (anonymous_id, session_id, event_name) or None if any is missing."""
    if not is_record(item):
        return None

    limits = rules.strings
    anonymous_id = ensure_trimmed_string(item.get("anonymous_id"), limits.anonymous_id)
    session_id = ensure_trimmed_string(item.get("session_id"), limits.session_id)
    event_name = ensure_trimmed_string(item.get("event_name"), limits.event_name)

    if not anonymous_id or not session_id or not event_name:
        return None
    return anonymous_id, session_id, event_name
