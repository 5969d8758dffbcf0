"""
Event ingestion and usage summary routes.

POST /events is public and accepts a single event, a list of events or an
{"events": [...]} envelope. GET /events/summary requires an admin session.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from src.adapters.auth.crypto import AdminSessionAdapter
from src.adapters.clock import SystemClock
from src.adapters.sqlite_db import SQLiteEventStore
from src.api.deps import (
    get_admin_session_adapter,
    get_clock,
    get_event_store,
    get_ingestion_config,
)
from src.components.analytics import (
    BATCH_TOO_LARGE,
    SCHEMA_UNAVAILABLE,
    STORE_FAILED,
    EventStoreError,
    IngestEventsInput,
    IngestionConfig,
    QuerySummaryInput,
    run_ingest,
    run_query_summary,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_STATUS_BY_CODE = {
    BATCH_TOO_LARGE: status.HTTP_429_TOO_MANY_REQUESTS,
    SCHEMA_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    STORE_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def error_response(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


@router.post("/events", status_code=status.HTTP_201_CREATED)
async def ingest_events(
    request: Request,
    event_store: SQLiteEventStore = Depends(get_event_store),
    clock: SystemClock = Depends(get_clock),
    config: IngestionConfig = Depends(get_ingestion_config),
) -> Any:
    """Validate, sanitize and store a batch of usage events."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return error_response(status.HTTP_400_BAD_REQUEST, "Invalid JSON body")

    result = await run_in_threadpool(
        run_ingest,
        IngestEventsInput(body=body),
        event_store=event_store,
        time_port=clock,
        config=config,
    )

    if not result.success:
        error = result.errors[0]
        code = _STATUS_BY_CODE.get(error.code, status.HTTP_400_BAD_REQUEST)
        return error_response(code, error.message)

    return {"stored": result.stored}


@router.get("/events/summary")
def get_events_summary(
    request: Request,
    range_: str | None = Query(None, alias="range"),
    start: str | None = None,
    end: str | None = None,
    tool_name: str | None = None,
    event_name: str | None = None,
    sessions: AdminSessionAdapter = Depends(get_admin_session_adapter),
    event_store: SQLiteEventStore = Depends(get_event_store),
    clock: SystemClock = Depends(get_clock),
) -> Any:
    """Day-bucketed usage summary for the admin dashboard."""
    cookie = request.cookies.get(sessions.cookie_name)
    if not sessions.has_valid_admin_session_from_cookie(cookie):
        return error_response(status.HTTP_401_UNAUTHORIZED, "Unauthorized")

    inp = QuerySummaryInput(
        range=range_,
        start=start,
        end=end,
        tool_name=tool_name,
        event_name=event_name,
    )

    try:
        output = run_query_summary(inp, event_store=event_store, time_port=clock)
    except EventStoreError:
        logger.exception("Summary query failed")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to load summary")

    return output.to_payload()
