"""
Transport component port definitions.
"""

from __future__ import annotations

from typing import Any, Protocol

from .models import DeliveryStatus


class SenderPort(Protocol):
    """Delivers one `{"events": [...]}` envelope to the ingestion endpoint."""

    def send(self, envelope: dict[str, Any]) -> DeliveryStatus:
        """Attempt delivery. Must not raise."""
        ...
