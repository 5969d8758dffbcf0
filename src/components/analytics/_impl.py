"""
AnalyticsIngestionService - validated, bounded bulk ingestion.

Key behaviors:
- Body is one event, a list of events, or {"events": [...]}
- More than `max_batch_size` items rejects the whole request
- Items missing anonymous_id/session_id/event_name are dropped one by one
- The request fails only when no item survives
- Surviving events are stored in a single atomic insert
- A missing backing schema is reported separately from other store failures
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from src.domain.sanitize import (
    ensure_trimmed_string,
    is_record,
    parse_date,
    require_event_fields,
    sanitize_properties,
)
from src.rules.models import Rules, SanitizerRules

from .models import (
    AnalyticsEvent,
    BodyKind,
    EventBatchBody,
    IngestionError,
    IngestOutput,
    SummaryEvent,
)
from .ports import EventStoreError, EventStorePort, SchemaUnavailableError, TimePort

logger = logging.getLogger(__name__)


# --- Error Codes ---

INVALID_PAYLOAD = "invalid_payload"
NO_EVENTS = "no_events"
BATCH_TOO_LARGE = "batch_too_large"
NO_VALID_EVENTS = "no_valid_events"
SCHEMA_UNAVAILABLE = "schema_unavailable"
STORE_FAILED = "store_failed"


# --- Configuration ---


@dataclass(frozen=True)
class IngestionConfig:
    """Analytics ingestion configuration."""

    max_batch_size: int = 100
    sanitizer: SanitizerRules = field(default_factory=SanitizerRules)

    @classmethod
    def from_rules(cls, rules: Rules) -> IngestionConfig:
        return cls(
            max_batch_size=rules.ingestion.max_batch_size,
            sanitizer=rules.sanitizer,
        )


DEFAULT_CONFIG = IngestionConfig()


# --- Default Implementations ---


class DefaultTimePort:
    """Default time provider."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        return datetime.now(UTC)


class InMemoryEventStore:
    """In-memory event store for testing/dev."""

    def __init__(self) -> None:
        self._events: list[AnalyticsEvent] = []
        self._lock = threading.Lock()

    def insert_many(self, events: Sequence[AnalyticsEvent]) -> int:
        with self._lock:
            self._events.extend(events)
        return len(events)

    def find_range(
        self,
        start: datetime,
        end: datetime,
        tool_name: str | None = None,
        event_name: str | None = None,
    ) -> list[SummaryEvent]:
        with self._lock:
            matching = [
                e
                for e in self._events
                if start <= e.created_at <= end
                and (tool_name is None or e.tool_name == tool_name)
                and (event_name is None or e.event_name == event_name)
            ]
        matching.sort(key=lambda e: e.created_at)
        return [
            SummaryEvent(created_at=e.created_at, event_name=e.event_name, tool_name=e.tool_name)
            for e in matching
        ]

    def get_all(self) -> list[AnalyticsEvent]:
        """Get all stored events (for testing)."""
        with self._lock:
            return list(self._events)


# --- Body Classification ---


def classify_body(body: Any) -> EventBatchBody:
    """
    Resolve a decoded JSON body to one of the accepted shapes.

    - list                      -> LIST, items as given
    - object with "events" list -> ENVELOPE
    - object with "events" set to anything else -> INVALID
    - any other object          -> SINGLE
    - scalars                   -> INVALID
    """
    if isinstance(body, list):
        return EventBatchBody(kind=BodyKind.LIST, items=tuple(body))

    if is_record(body):
        if "events" in body:
            events = body["events"]
            if isinstance(events, list):
                return EventBatchBody(kind=BodyKind.ENVELOPE, items=tuple(events))
            return EventBatchBody(kind=BodyKind.INVALID)
        return EventBatchBody(kind=BodyKind.SINGLE, items=(body,))

    return EventBatchBody(kind=BodyKind.INVALID)


# --- Event Building ---


def build_event(
    item: Any,
    now: datetime,
    config: IngestionConfig = DEFAULT_CONFIG,
) -> AnalyticsEvent | None:
    """Sanitize one raw item into an event, or None if required fields are missing."""
    required = require_event_fields(item, config.sanitizer)
    if required is None:
        return None
    anonymous_id, session_id, event_name = required

    limits = config.sanitizer.strings
    return AnalyticsEvent(
        id=uuid4(),
        anonymous_id=anonymous_id,
        session_id=session_id,
        event_name=event_name,
        tool_name=ensure_trimmed_string(item.get("tool_name"), limits.tool_name),
        properties=sanitize_properties(item.get("properties"), config.sanitizer),
        user_agent=ensure_trimmed_string(item.get("user_agent"), limits.user_agent),
        locale=ensure_trimmed_string(item.get("locale"), limits.locale),
        timezone=ensure_trimmed_string(item.get("timezone"), limits.timezone),
        soft_fingerprint=ensure_trimmed_string(
            item.get("soft_fingerprint"), limits.soft_fingerprint
        ),
        created_at=parse_date(item.get("created_at")) or now,
        received_at=now,
        updated_at=now,
        # IP hashing is not implemented yet
        ip_hash=None,
    )


# --- Analytics Ingestion Service ---


class AnalyticsIngestionService:
    """
    Analytics ingestion service.

    Classifies, sanitizes and bulk-stores a batch of events.
    """

    def __init__(
        self,
        event_store: EventStorePort,
        time_port: TimePort | None = None,
        config: IngestionConfig | None = None,
    ) -> None:
        """Initialize service."""
        self._event_store = event_store
        self._time = time_port or DefaultTimePort()
        self._config = config or DEFAULT_CONFIG

    def _fail(self, code: str, message: str, dropped: int = 0) -> IngestOutput:
        return IngestOutput(
            stored=0,
            dropped=dropped,
            errors=[IngestionError(code=code, message=message)],
            success=False,
        )

    def ingest(self, body: Any) -> IngestOutput:
        """
        Ingest a decoded request body.

        Returns:
            IngestOutput with the stored count, or a single coded error.
        """
        batch = classify_body(body)

        if batch.kind == BodyKind.INVALID:
            return self._fail(INVALID_PAYLOAD, "Invalid request payload")

        if not batch.items:
            return self._fail(NO_EVENTS, "No events provided")

        if len(batch.items) > self._config.max_batch_size:
            return self._fail(BATCH_TOO_LARGE, "Too many events in a single request")

        now = self._time.now_utc()
        events = [
            event
            for event in (build_event(item, now, self._config) for item in batch.items)
            if event is not None
        ]
        dropped = len(batch.items) - len(events)

        if not events:
            return self._fail(NO_VALID_EVENTS, "No valid events to store", dropped=dropped)

        try:
            stored = self._event_store.insert_many(events)
        except SchemaUnavailableError:
            logger.error("Analytics schema is missing; run migrations")
            return self._fail(
                SCHEMA_UNAVAILABLE,
                "Analytics storage is not provisioned",
                dropped=dropped,
            )
        except EventStoreError:
            logger.exception("Failed to store %d analytics events", len(events))
            return self._fail(STORE_FAILED, "Failed to store events", dropped=dropped)

        if dropped:
            logger.info("Dropped %d invalid analytics events", dropped)

        return IngestOutput(stored=stored, dropped=dropped, errors=[], success=True)


# --- Factory ---


def create_analytics_ingestion_service(
    event_store: EventStorePort,
    time_port: TimePort | None = None,
    config: IngestionConfig | None = None,
) -> AnalyticsIngestionService:
    """Create an AnalyticsIngestionService."""
    return AnalyticsIngestionService(
        event_store=event_store,
        time_port=time_port,
        config=config,
    )
