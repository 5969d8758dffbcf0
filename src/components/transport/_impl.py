"""
EventTransport - batched delivery of telemetry events.

Key behaviors:
- track() never raises; telemetry must not break the calling tool
- events are queued and sent as {"events": [...]} batches
- a batch goes to the primary sender, then to the optional fallback sender
- batches neither sender could deliver are spooled to client storage and
  re-sent ahead of new events on the next flush
- batches the server rejects as malformed (4xx other than 429) are dropped
- a sender that raises counts as unreachable; the spool is only cleared
  once every batch has been delivered or rejected
- events that cannot be JSON-encoded are refused by track()
- the spool is bounded; the oldest events go first when it overflows
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from src.components.identity import (
    ClientIdentity,
    ClientStoragePort,
    InMemoryStorage,
    RuntimeContext,
    SafeStorage,
)

from .models import OUTBOX_KEY, DeliveryStatus, FlushResult
from .ports import SenderPort

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "/events"
DEFAULT_BATCH_SIZE = 10
DEFAULT_MAX_OUTBOX = 500


class HttpxSender:
    """POSTs envelopes with httpx and maps the response to a DeliveryStatus."""

    def __init__(
        self,
        client: httpx.Client,
        endpoint: str = DEFAULT_ENDPOINT,
    ) -> None:
        self.client = client
        self.endpoint = endpoint

    @classmethod
    def for_base_url(
        cls,
        base_url: str,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = 5.0,
    ) -> HttpxSender:
        client = httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout, connect=2.0),
            limits=httpx.Limits(max_connections=4, max_keepalive_connections=2),
        )
        return cls(client, endpoint)

    def send(self, envelope: dict[str, Any]) -> DeliveryStatus:
        try:
            resp = self.client.post(self.endpoint, json=envelope)
        except httpx.HTTPError as exc:
            logger.warning("Event delivery failed: %s", exc)
            return DeliveryStatus.DEFERRED

        if resp.is_success:
            return DeliveryStatus.DELIVERED
        if resp.status_code == 429 or resp.status_code >= 500:
            logger.warning("Event delivery deferred, server returned %d", resp.status_code)
            return DeliveryStatus.DEFERRED

        logger.warning("Event batch rejected by server (%d)", resp.status_code)
        return DeliveryStatus.REJECTED

    def close(self) -> None:
        self.client.close()


def build_event_payload(
    identity: ClientIdentity,
    name: str,
    properties: dict[str, Any] | None,
    tool_name: str | None,
    context: RuntimeContext,
    now: datetime,
) -> dict[str, Any]:
    """Assemble one event in the ingestion wire format."""
    payload: dict[str, Any] = {
        "anonymous_id": identity.get_anonymous_id(),
        "session_id": identity.get_session_id(now),
        "event_name": name,
        "created_at": now.astimezone(UTC).isoformat().replace("+00:00", "Z"),
    }
    optional = {
        "tool_name": tool_name,
        "properties": properties,
        "user_agent": context.user_agent,
        "locale": context.locale,
        "timezone": context.timezone,
        "soft_fingerprint": context.soft_fingerprint,
    }
    payload.update({k: v for k, v in optional.items() if v is not None})
    return payload


class EventTransport:
    """Queues tracked events and delivers them in batches."""

    def __init__(
        self,
        identity: ClientIdentity,
        sender: SenderPort,
        fallback: SenderPort | None = None,
        storage: ClientStoragePort | None = None,
        context: RuntimeContext | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_outbox: int = DEFAULT_MAX_OUTBOX,
    ) -> None:
        self._identity = identity
        self._sender = sender
        self._fallback = fallback
        self._storage = SafeStorage(storage or InMemoryStorage())
        self._context = context or RuntimeContext()
        self._batch_size = max(1, batch_size)
        self._max_outbox = max(0, max_outbox)
        self._queue: list[dict[str, Any]] = []

    @property
    def pending(self) -> int:
        """Events waiting in the queue and the spool."""
        return len(self._queue) + len(self._load_outbox())

    def track(
        self,
        name: str,
        properties: dict[str, Any] | None = None,
        tool_name: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Record an event; flushes once a full batch is queued."""
        try:
            payload = build_event_payload(
                self._identity,
                name,
                properties,
                tool_name,
                self._context,
                now or datetime.now(UTC),
            )
            # Queued events end up in the JSON spool; reject what cannot be encoded
            json.dumps(payload)
            self._queue.append(payload)
            if len(self._queue) >= self._batch_size:
                self.flush()
        except Exception:
            logger.warning("Tracking %s failed", name, exc_info=True)

    def flush(self) -> FlushResult:
        """Deliver the spool, then the queue, in batch-size chunks."""
        events = self._load_outbox() + self._queue
        self._queue = []

        delivered = rejected = 0
        for offset in range(0, len(events), self._batch_size):
            batch = events[offset : offset + self._batch_size]
            status = self._deliver(batch)

            if status == DeliveryStatus.DELIVERED:
                delivered += len(batch)
            elif status == DeliveryStatus.REJECTED:
                rejected += len(batch)
            else:
                remaining = events[offset:]
                spooled = self._save_outbox(remaining)
                return FlushResult(delivered=delivered, rejected=rejected, spooled=spooled)

        self._storage.remove_item(OUTBOX_KEY)
        return FlushResult(delivered=delivered, rejected=rejected, spooled=0)

    def _deliver(self, batch: list[dict[str, Any]]) -> DeliveryStatus:
        envelope = {"events": batch}
        status = self._send(self._sender, envelope)
        if status == DeliveryStatus.DEFERRED and self._fallback is not None:
            status = self._send(self._fallback, envelope)
        return status

    @staticmethod
    def _send(sender: SenderPort, envelope: dict[str, Any]) -> DeliveryStatus:
        # A sender that raises keeps the batch for the next flush
        try:
            return sender.send(envelope)
        except Exception:
            logger.warning("Event sender raised, keeping batch", exc_info=True)
            return DeliveryStatus.DEFERRED

    def _load_outbox(self) -> list[dict[str, Any]]:
        raw = self._storage.get_item(OUTBOX_KEY)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable event spool")
            return []
        return [e for e in data if isinstance(e, dict)] if isinstance(data, list) else []

    def _save_outbox(self, events: list[dict[str, Any]]) -> int:
        if len(events) > self._max_outbox:
            dropped = len(events) - self._max_outbox
            logger.warning("Event spool full, dropping %d oldest events", dropped)
            events = events[len(events) - self._max_outbox :]
        self._storage.set_item(OUTBOX_KEY, json.dumps(events))
        return len(events)
