import logging
import os
import secrets
from functools import lru_cache
from pathlib import Path

from fastapi import Depends

from src.adapters.auth.crypto import AdminSessionAdapter
from src.adapters.clock import SystemClock
from src.adapters.sqlite_db import SQLiteEventStore
from src.app_shell.rate_limit import RateLimiter
from src.components.analytics import IngestionConfig
from src.rules.loader import DEFAULT_RULES_PATH, load_rules
from src.rules.models import Rules

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = PROJECT_ROOT
        self.data_dir = Path(os.environ.get("TELEMETRY_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "telemetry.db")
        self.rules_path = Path(os.environ.get("TELEMETRY_RULES_PATH", str(DEFAULT_RULES_PATH)))
        self.migrations_dir = str(self.base_dir / "migrations")
        self.env = os.environ.get("TELEMETRY_ENV", "development")
        self.auto_migrate = _env_flag("TELEMETRY_AUTO_MIGRATE", True)

        # Unset password means admin login always fails
        self.admin_password = os.environ.get("ADMIN_DASHBOARD_PASSWORD") or None

        secret = os.environ.get("ADMIN_SESSION_SECRET")
        if not secret:
            logger.warning(
                "ADMIN_SESSION_SECRET is not set; admin sessions will not survive a restart"
            )
            secret = secrets.token_urlsafe(32)
        self.session_secret = secret

    @property
    def is_production(self) -> bool:
        return self.env == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def _load_rules_cached(path: str) -> Rules:
    return load_rules(Path(path))


def get_rules(settings: Settings = Depends(get_settings)) -> Rules:
    return _load_rules_cached(str(settings.rules_path))


# --- Repos ---
def get_event_store(settings: Settings = Depends(get_settings)) -> SQLiteEventStore:
    return SQLiteEventStore(settings.db_path)


# Time adapter for deterministic time operations
_clock_instance: SystemClock | None = None


def get_clock() -> SystemClock:
    """Get clock singleton."""
    global _clock_instance
    if _clock_instance is None:
        _clock_instance = SystemClock()
    return _clock_instance


# --- Services ---
def get_ingestion_config(rules: Rules = Depends(get_rules)) -> IngestionConfig:
    return IngestionConfig.from_rules(rules)


# Rate limiter singleton; window state must outlive a single request
_rate_limiter_instance: RateLimiter | None = None


def get_rate_limiter(
    rules: Rules = Depends(get_rules),
    clock: SystemClock = Depends(get_clock),
) -> RateLimiter:
    """Get login rate limiter singleton."""
    global _rate_limiter_instance
    if _rate_limiter_instance is None:
        _rate_limiter_instance = RateLimiter(rules.rate_limits, time_port=clock)
    return _rate_limiter_instance


def reset_rate_limiter() -> None:
    """Drop the limiter singleton (tests)."""
    global _rate_limiter_instance
    _rate_limiter_instance = None


# --- Auth ---
def get_admin_session_adapter(
    settings: Settings = Depends(get_settings),
    rules: Rules = Depends(get_rules),
    clock: SystemClock = Depends(get_clock),
) -> AdminSessionAdapter:
    return AdminSessionAdapter(
        secret_key=settings.session_secret,
        rules=rules.admin,
        secure=settings.is_production,
        time_port=clock,
    )
