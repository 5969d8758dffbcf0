"""
Identity component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class ClientStoragePort(Protocol):
    """Synchronous key/value storage, shaped like browser Web Storage."""

    def get_item(self, key: str) -> str | None:
        """Get a stored value, None if absent."""
        ...

    def set_item(self, key: str, value: str) -> None:
        """Store a value."""
        ...

    def remove_item(self, key: str) -> None:
        """Remove a value if present."""
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...
