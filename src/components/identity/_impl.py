"""
ClientIdentity - anonymous device id and session window.

Key behaviors:
- anonymous_id lives in persistent storage and is generated once
- session_id lives in shorter-lived storage next to a last-seen timestamp
- a session expires after 30 minutes without a touch; the next touch starts
  a new one
- storage failures are logged and absorbed; identity calls never raise

Two clients sharing one storage (e.g. tabs) may race on the session keys.
The loser just overwrites the winner's id; nothing crashes.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import uuid4

from .models import (
    ANONYMOUS_ID_KEY,
    SESSION_ID_KEY,
    SESSION_LAST_SEEN_KEY,
    SESSION_TIMEOUT_MINUTES,
    RuntimeContext,
)
from .ports import ClientStoragePort, TimePort

logger = logging.getLogger(__name__)


# --- Storage Adapters ---


class InMemoryStorage:
    """Process-local storage, the stand-in for sessionStorage."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage:
    """
    Storage persisted to a JSON file, the stand-in for localStorage.

    Every call re-reads the file so separate instances over the same path
    observe each other's writes. Writes go through a temp file and rename.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except ValueError:
            # Undecodable content reads as empty; the next write replaces it
            logger.warning("Ignoring unreadable client state file %s", self._path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp, self._path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get_item(self, key: str) -> str | None:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove_item(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


class SafeStorage:
    """Wraps a storage so that reads and writes never raise."""

    def __init__(self, inner: ClientStoragePort) -> None:
        self._inner = inner

    def get_item(self, key: str) -> str | None:
        try:
            return self._inner.get_item(key)
        except Exception:
            logger.warning("Client storage read failed for %s", key, exc_info=True)
            return None

    def set_item(self, key: str, value: str) -> None:
        try:
            self._inner.set_item(key, value)
        except Exception:
            logger.warning("Client storage write failed for %s", key, exc_info=True)

    def remove_item(self, key: str) -> None:
        try:
            self._inner.remove_item(key)
        except Exception:
            logger.warning("Client storage delete failed for %s", key, exc_info=True)


class DefaultTimePort:
    """Default time provider."""

    def now_utc(self) -> datetime:
        return datetime.now(UTC)


# --- Pure Helpers ---


def generate_id() -> str:
    """Random opaque identifier."""
    return str(uuid4())


def to_epoch_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)


def parse_last_seen(raw: str | None) -> int | None:
    """Parse a stored epoch-millisecond value; None if missing or garbage."""
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def is_session_expired(now_ms: int, last_seen_ms: int | None, timeout_ms: int) -> bool:
    """A session is expired when never seen or idle for longer than the timeout."""
    if not last_seen_ms or last_seen_ms <= 0:
        return True
    return now_ms - last_seen_ms > timeout_ms


def build_runtime_context(
    user_agent: str | None = None,
    locale: str | None = None,
    timezone: str | None = None,
    screen: tuple[int, int] | None = None,
) -> RuntimeContext:
    """
    Collect context fields and derive the soft fingerprint.

    The fingerprint is the first 32 characters of base64("ua|locale|tz|WxH"),
    coarse enough to be shared by many devices.
    """
    width, height = screen if screen else (None, None)
    base = "{}|{}|{}|{}x{}".format(
        user_agent or "",
        locale or "",
        timezone or "",
        width if width is not None else "",
        height if height is not None else "",
    )
    fingerprint = base64.b64encode(base.encode("utf-8")).decode("ascii")[:32]

    return RuntimeContext(
        user_agent=user_agent,
        locale=locale,
        timezone=timezone,
        screen_width=width,
        screen_height=height,
        soft_fingerprint=fingerprint,
    )


def input_size_range(length: int) -> str:
    """Map an input length to a coarse size bucket (never the content itself)."""
    if length <= 0:
        return "empty"
    if length <= 100:
        return "0-100"
    if length <= 1000:
        return "100-1k"
    if length <= 10000:
        return "1k-10k"
    if length <= 100000:
        return "10k-100k"
    return "100k+"


# --- Client Identity ---


class ClientIdentity:
    """Anonymous and session identifiers for one client install."""

    def __init__(
        self,
        local_storage: ClientStoragePort | None = None,
        session_storage: ClientStoragePort | None = None,
        time_port: TimePort | None = None,
        session_timeout_minutes: int = SESSION_TIMEOUT_MINUTES,
    ) -> None:
        self._local = SafeStorage(local_storage or InMemoryStorage())
        self._session = SafeStorage(session_storage or InMemoryStorage())
        self._time = time_port or DefaultTimePort()
        self._timeout_ms = int(timedelta(minutes=session_timeout_minutes).total_seconds() * 1000)

    def get_anonymous_id(self) -> str:
        existing = self._local.get_item(ANONYMOUS_ID_KEY)
        if existing:
            return existing

        new_id = generate_id()
        self._local.set_item(ANONYMOUS_ID_KEY, new_id)
        return new_id

    def get_session_id(self, now: datetime | None = None) -> str:
        """Return the current session id, rotating it after the idle timeout."""
        now_ms = to_epoch_ms(now if now is not None else self._time.now_utc())

        existing = self._session.get_item(SESSION_ID_KEY)
        last_seen = parse_last_seen(self._session.get_item(SESSION_LAST_SEEN_KEY))

        if not existing or is_session_expired(now_ms, last_seen, self._timeout_ms):
            session_id = generate_id()
            self._session.set_item(SESSION_ID_KEY, session_id)
        else:
            session_id = existing

        self._session.set_item(SESSION_LAST_SEEN_KEY, str(now_ms))
        return session_id

    def reset_session(self) -> None:
        self._session.remove_item(SESSION_ID_KEY)
        self._session.remove_item(SESSION_LAST_SEEN_KEY)
