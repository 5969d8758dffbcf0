import os
from datetime import UTC, datetime
from pathlib import Path

import pytest

from src.adapters.clock import FrozenClock
from src.adapters.sqlite.migrator import SQLiteMigrator
from src.adapters.sqlite_db import SQLiteEventStore
from src.rules.loader import load_rules
from src.rules.models import Rules

PROJECT_ROOT = Path(__file__).resolve().parent.parent

FIXED_NOW = datetime(2024, 3, 15, 12, 30, 0, tzinfo=UTC)


@pytest.fixture
def test_data_dir(tmp_path):
    return str(tmp_path)


@pytest.fixture
def rules() -> Rules:
    """The real rules file from the project root."""
    return load_rules(PROJECT_ROOT / "rules.yaml")


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(FIXED_NOW)


@pytest.fixture
def migrated_db_path(test_data_dir) -> str:
    """Path to a fresh SQLite database with all migrations applied."""
    db_path = os.path.join(test_data_dir, "telemetry.db")
    SQLiteMigrator(db_path, str(PROJECT_ROOT / "migrations")).run_migrations()
    return db_path


@pytest.fixture
def event_store(migrated_db_path) -> SQLiteEventStore:
    return SQLiteEventStore(migrated_db_path)
