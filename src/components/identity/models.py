"""
Identity component models and constants.
"""

from __future__ import annotations

from dataclasses import dataclass

ANONYMOUS_ID_KEY = "dth_anonymous_id"
SESSION_ID_KEY = "dth_session_id"
SESSION_LAST_SEEN_KEY = "dth_session_last_seen"

SESSION_TIMEOUT_MINUTES = 30


@dataclass(frozen=True)
class RuntimeContext:
    """Non-identifying environment details attached to each event."""

    user_agent: str | None = None
    locale: str | None = None
    timezone: str | None = None
    screen_width: int | None = None
    screen_height: int | None = None
    soft_fingerprint: str | None = None
