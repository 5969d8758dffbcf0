"""
Analytics component - Event ingestion and aggregation.
"""

from ._aggregate import (
    DEFAULT_PRESET,
    PRESET_DURATIONS,
    RangePreset,
    aggregate_analytics_events,
    compute_date_range,
    parse_range_preset,
    to_utc_date_string,
)
from ._impl import (
    BATCH_TOO_LARGE,
    INVALID_PAYLOAD,
    NO_EVENTS,
    NO_VALID_EVENTS,
    SCHEMA_UNAVAILABLE,
    STORE_FAILED,
    AnalyticsIngestionService,
    DefaultTimePort,
    IngestionConfig,
    InMemoryEventStore,
    build_event,
    classify_body,
    create_analytics_ingestion_service,
)
from .component import query_summary, run_ingest, run_query_summary
from .models import (
    AnalyticsEvent,
    AnalyticsSummary,
    BodyKind,
    DailyBucket,
    DateRange,
    EventBatchBody,
    IngestEventsInput,
    IngestionError,
    IngestOutput,
    QuerySummaryInput,
    SummaryEvent,
    SummaryFilters,
    SummaryOutput,
)
from .ports import (
    EventStoreError,
    EventStorePort,
    SchemaUnavailableError,
    TimePort,
)

__all__ = [
    # Entry points
    "run_ingest",
    "run_query_summary",
    "query_summary",
    # Input models
    "IngestEventsInput",
    "QuerySummaryInput",
    # Output models
    "AnalyticsEvent",
    "AnalyticsSummary",
    "BodyKind",
    "DailyBucket",
    "DateRange",
    "EventBatchBody",
    "IngestionError",
    "IngestOutput",
    "SummaryEvent",
    "SummaryFilters",
    "SummaryOutput",
    # Ports
    "EventStoreError",
    "EventStorePort",
    "SchemaUnavailableError",
    "TimePort",
    # Ingestion
    "AnalyticsIngestionService",
    "DefaultTimePort",
    "IngestionConfig",
    "InMemoryEventStore",
    "build_event",
    "classify_body",
    "create_analytics_ingestion_service",
    "BATCH_TOO_LARGE",
    "INVALID_PAYLOAD",
    "NO_EVENTS",
    "NO_VALID_EVENTS",
    "SCHEMA_UNAVAILABLE",
    "STORE_FAILED",
    # Aggregation
    "DEFAULT_PRESET",
    "PRESET_DURATIONS",
    "RangePreset",
    "aggregate_analytics_events",
    "compute_date_range",
    "parse_range_preset",
    "to_utc_date_string",
]
