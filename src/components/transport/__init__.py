"""
Transport component - batched event delivery with a durable spool.
"""

from ._impl import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_ENDPOINT,
    DEFAULT_MAX_OUTBOX,
    EventTransport,
    HttpxSender,
    build_event_payload,
)
from .component import create_event_transport
from .models import OUTBOX_KEY, DeliveryStatus, FlushResult
from .ports import SenderPort

__all__ = [
    "create_event_transport",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_ENDPOINT",
    "DEFAULT_MAX_OUTBOX",
    "EventTransport",
    "HttpxSender",
    "build_event_payload",
    "OUTBOX_KEY",
    "DeliveryStatus",
    "FlushResult",
    "SenderPort",
]
