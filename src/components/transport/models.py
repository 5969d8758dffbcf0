"""
Transport component models.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

OUTBOX_KEY = "dth_outbox"


class DeliveryStatus(str, Enum):
    """Outcome of one delivery attempt."""

    DELIVERED = "delivered"
    # Server refused the batch as malformed; resending will not help
    REJECTED = "rejected"
    # Network trouble, overload or server error; try again later
    DEFERRED = "deferred"


@dataclass(frozen=True)
class FlushResult:
    """Summary of a flush."""

    delivered: int = 0
    rejected: int = 0
    spooled: int = 0
