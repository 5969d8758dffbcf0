"""
Identity component - anonymous device and session identifiers.

Invariants:
- I1: anonymous_id is generated once per storage profile and never rotated
- I2: session_id rotates only after the idle timeout has elapsed
- I3: Storage failures never surface to the caller
"""

from __future__ import annotations

from pathlib import Path

from src.rules.models import SessionRules

from ._impl import ClientIdentity, InMemoryStorage, JsonFileStorage
from .ports import ClientStoragePort, TimePort

IDENTITY_FILENAME = "identity.json"


def create_client_identity(
    state_dir: str | Path | None = None,
    *,
    rules: SessionRules | None = None,
    session_storage: ClientStoragePort | None = None,
    time_port: TimePort | None = None,
) -> ClientIdentity:
    """
    Build a ClientIdentity for one client install.

    Args:
        state_dir: Directory for the persistent identity file. When None the
            anonymous id only lives as long as the process.
        rules: Session rules (idle timeout).
        session_storage: Shorter-lived storage for the session keys.
        time_port: Optional time port.
    """
    local: ClientStoragePort
    if state_dir is not None:
        local = JsonFileStorage(Path(state_dir) / IDENTITY_FILENAME)
    else:
        local = InMemoryStorage()

    session_rules = rules or SessionRules()
    return ClientIdentity(
        local_storage=local,
        session_storage=session_storage or InMemoryStorage(),
        time_port=time_port,
        session_timeout_minutes=session_rules.timeout_minutes,
    )
