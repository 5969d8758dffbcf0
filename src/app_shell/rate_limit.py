from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock
from typing import Protocol

from src.adapters.clock import SystemClock
from src.rules.models import RateLimitRules

DEFAULT_LOGIN_MAX_ATTEMPTS = 10

# Expired windows are swept at most this often
SWEEP_INTERVAL = timedelta(seconds=60)


class TimePort(Protocol):
    """Protocol for time operations (enables testing with deterministic time)."""

    def now_utc(self) -> datetime:
        """Return current UTC time."""
        ...


@dataclass
class RateLimitEntry:
    count: int
    window_start: datetime
    window_end: datetime


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: datetime


class RateLimitStorePort(Protocol):
    """Window state keyed by client identifier."""

    def get(self, key: str) -> RateLimitEntry | None: ...

    def set(self, key: str, entry: RateLimitEntry) -> None: ...

    def purge_expired(self, now: datetime) -> int: ...

    def reset(self) -> None: ...


class InMemoryRateLimitStore:
    """
    Process-local window map.

    Not shared between server instances; each instance counts its own
    attempts. Swap in a shared store behind RateLimitStorePort for that.
    """

    def __init__(self) -> None:
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> RateLimitEntry | None:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, entry: RateLimitEntry) -> None:
        with self._lock:
            self._entries[key] = entry

    def purge_expired(self, now: datetime) -> int:
        """Drop windows that have ended; returns how many were removed."""
        with self._lock:
            stale = [k for k, e in self._entries.items() if e.window_end <= now]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()


def get_client_identifier(ip_header: str | None, user_agent: str | None) -> str:
    """
    Composite key of client IP and user agent.

    Only the first entry of a forwarded-for list is used.
    """
    ip = (ip_header or "").split(",")[0].strip() or "unknown-ip"
    ua = user_agent or "unknown-ua"
    return f"{ip}|{ua}"


class RateLimiter:
    def __init__(
        self,
        rules: RateLimitRules,
        store: RateLimitStorePort | None = None,
        time_port: TimePort | None = None,
    ):
        self.rules = rules
        self._store = store if store is not None else InMemoryRateLimitStore()
        self._time = time_port if time_port is not None else SystemClock()
        self._lock = Lock()
        self._last_sweep: datetime | None = None

    def _sweep(self, now: datetime) -> None:
        if self._last_sweep is None or now - self._last_sweep >= SWEEP_INTERVAL:
            self._store.purge_expired(now)
            self._last_sweep = now

    def check_and_increase(self, key: str, window: int, limit: int) -> RateLimitDecision:
        """
        Count an attempt against a fixed window.

        A missing or elapsed window starts a new one at count=1. Otherwise the
        count is incremented and the attempt is allowed while count <= limit.
        """
        now = self._time.now_utc()
        duration = timedelta(seconds=window)

        with self._lock:
            self._sweep(now)
            entry = self._store.get(key)
            if entry is None or now >= entry.window_end:
                entry = RateLimitEntry(count=1, window_start=now, window_end=now + duration)
            else:
                entry = RateLimitEntry(
                    count=entry.count + 1,
                    window_start=entry.window_start,
                    window_end=entry.window_end,
                )
            self._store.set(key, entry)

        return RateLimitDecision(
            allowed=limit > 0 and entry.count <= limit,
            remaining=max(0, limit - entry.count),
            reset_at=entry.window_end,
        )

    def check_and_increase_login_rate_limit(self, client_id: str) -> RateLimitDecision:
        cfg = self.rules.login
        limit = cfg.max_attempts if cfg.max_attempts is not None else DEFAULT_LOGIN_MAX_ATTEMPTS

        return self.check_and_increase(f"login:{client_id}", cfg.window_seconds, limit)

    def reset(self) -> None:
        with self._lock:
            self._store.reset()
            self._last_sweep = None
