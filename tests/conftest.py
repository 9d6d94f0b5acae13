from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from tour_engine.adapters.sqlite.migrator import SQLiteMigrator
from tour_engine.rules.loader import load_rules
from tour_engine.rules.models import Rules

PROJECT_ROOT = Path(__file__).parent.parent
MIGRATIONS_DIR = PROJECT_ROOT / "migrations"
RULES_PATH = PROJECT_ROOT / "rules.yaml"

T0 = datetime(2026, 3, 1, 10, 0, 0, tzinfo=UTC)


class MockTimePort:
    """Mock time provider."""

    def __init__(self, now: datetime | None = None) -> None:
        self._now = now or T0

    def now_utc(self) -> datetime:
        return self._now

    def set_now(self, now: datetime) -> None:
        self._now = now

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> MockTimePort:
    return MockTimePort()


@pytest.fixture
def rules() -> Rules:
    """Load the REAL rules from the project root."""
    return load_rules(RULES_PATH)


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "tours.db")


@pytest.fixture
def migrated_db(db_path) -> str:
    """Temporary SQLite database with every migration applied."""
    SQLiteMigrator(db_path, str(MIGRATIONS_DIR)).run_migrations()
    return db_path
