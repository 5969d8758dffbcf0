"""
Transport component - batched event delivery with a durable spool.

Invariants:
- I1: track() never raises into the calling tool
- I2: Deferred batches are spooled and re-sent ahead of newer events
- I3: Rejected (malformed) batches are dropped, never retried
- I4: The spool never exceeds max_outbox events
"""

from __future__ import annotations

from src.components.identity import ClientIdentity, ClientStoragePort, RuntimeContext
from src.rules.models import TransportRules

from ._impl import EventTransport, HttpxSender


def create_event_transport(
    base_url: str,
    identity: ClientIdentity,
    *,
    rules: TransportRules | None = None,
    fallback_base_url: str | None = None,
    storage: ClientStoragePort | None = None,
    context: RuntimeContext | None = None,
) -> EventTransport:
    """
    Wire an EventTransport that POSTs to `base_url` + the ingestion endpoint.

    A fallback base URL, if given, receives batches the primary could not take.
    """
    cfg = rules or TransportRules()

    sender = HttpxSender.for_base_url(base_url, cfg.endpoint, timeout=cfg.timeout_seconds)

    fallback = None
    if fallback_base_url:
        fallback = HttpxSender.for_base_url(
            fallback_base_url, cfg.endpoint, timeout=cfg.timeout_seconds
        )

    return EventTransport(
        identity=identity,
        sender=sender,
        fallback=fallback,
        storage=storage,
        context=context,
        batch_size=cfg.batch_size,
        max_outbox=cfg.max_outbox,
    )
