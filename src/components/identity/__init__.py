"""
Identity component - anonymous device and session identifiers.

Client-side: consumed by tool pages through EventTransport.
"""

from ._impl import (
    ClientIdentity,
    DefaultTimePort,
    InMemoryStorage,
    JsonFileStorage,
    SafeStorage,
    build_runtime_context,
    generate_id,
    input_size_range,
    is_session_expired,
    parse_last_seen,
    to_epoch_ms,
)
from .component import create_client_identity
from .models import (
    ANONYMOUS_ID_KEY,
    SESSION_ID_KEY,
    SESSION_LAST_SEEN_KEY,
    SESSION_TIMEOUT_MINUTES,
    RuntimeContext,
)
from .ports import ClientStoragePort, TimePort

__all__ = [
    "create_client_identity",
    "ClientIdentity",
    "DefaultTimePort",
    "InMemoryStorage",
    "JsonFileStorage",
    "SafeStorage",
    "build_runtime_context",
    "generate_id",
    "input_size_range",
    "is_session_expired",
    "parse_last_seen",
    "to_epoch_ms",
    # Models
    "ANONYMOUS_ID_KEY",
    "SESSION_ID_KEY",
    "SESSION_LAST_SEEN_KEY",
    "SESSION_TIMEOUT_MINUTES",
    "RuntimeContext",
    # Ports
    "ClientStoragePort",
    "TimePort",
]
