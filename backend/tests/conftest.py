"""
Shared Test Fixtures and Configuration

This module provides pytest fixtures used across the unit tests: environment
isolation, a controllable clock, snapshot factories and an in-memory
repository.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Generator

import pytest
from dotenv import load_dotenv

# Add the backend directory to the path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load .env file from project root BEFORE any fixtures run
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

from streak_engine.models.streaks import (  # noqa: E402
    ComprehensionCheck,
    ItemMasteryRecord,
    Stack,
    UserStreakState,
)
from streak_engine.services.streaks.processor import RatingProcessor  # noqa: E402
from tests.fakes import InMemoryStreakRepository, MutableClock  # noqa: E402


# ============================================================================
# Environment Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment() -> Generator[None, None, None]:
    """
    Set up test environment variables before any tests run.

    Overrides values from .env files so tests run with predictable
    configuration.
    """
    original_env = os.environ.copy()

    test_env = {
        "POSTGRES_HOST": os.environ.get("POSTGRES_HOST", "localhost"),
        "POSTGRES_PORT": os.environ.get("POSTGRES_PORT", "5432"),
        "POSTGRES_USER": os.environ.get("POSTGRES_TEST_USER", "testuser"),
        "POSTGRES_PASSWORD": os.environ.get("POSTGRES_TEST_PASSWORD", "testpass"),
        "POSTGRES_DB": os.environ.get("POSTGRES_TEST_DB", "testdb"),
        "DEBUG": "true",
    }
    os.environ.update(test_env)

    yield

    os.environ.clear()
    os.environ.update(original_env)


# ============================================================================
# Clock
# ============================================================================


@pytest.fixture
def now() -> datetime:
    """A fixed UTC instant: Wednesday 2024-06-12 15:00 UTC."""
    return datetime(2024, 6, 12, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(now: datetime) -> MutableClock:
    """Trusted clock for the service, starting at `now`."""
    return MutableClock(now)


# ============================================================================
# Snapshot Factories
# ============================================================================


@pytest.fixture
def make_state() -> Callable[..., UserStreakState]:
    """Build a UserStreakState with overrides."""

    def _make(**overrides) -> UserStreakState:
        values = {"user_id": "user-1", "timezone": "UTC"}
        values.update(overrides)
        return UserStreakState(**values)

    return _make


@pytest.fixture
def make_record() -> Callable[..., ItemMasteryRecord]:
    """Build an ItemMasteryRecord with overrides."""

    def _make(item_id: str = "item-1", **overrides) -> ItemMasteryRecord:
        values = {"item_id": item_id, "user_id": "user-1"}
        values.update(overrides)
        return ItemMasteryRecord(**values)

    return _make


@pytest.fixture
def make_stack() -> Callable[..., Stack]:
    """Build a Stack with overrides."""

    def _make(stack_id: str = "stack-1", **overrides) -> Stack:
        values = {"stack_id": stack_id, "user_id": "user-1", "card_count": 10}
        values.update(overrides)
        return Stack(**values)

    return _make


@pytest.fixture
def make_check(now: datetime) -> Callable[..., ComprehensionCheck]:
    """Build a pending ComprehensionCheck due two days after `now`."""

    def _make(check_id: str = "check-1", **overrides) -> ComprehensionCheck:
        values = {
            "check_id": check_id,
            "user_id": "user-1",
            "stack_id": "stack-1",
            "deadline": now + timedelta(days=2),
            "created_at": now,
        }
        values.update(overrides)
        return ComprehensionCheck(**values)

    return _make


# ============================================================================
# Services
# ============================================================================


@pytest.fixture
def processor() -> RatingProcessor:
    return RatingProcessor()


@pytest.fixture
def repo() -> InMemoryStreakRepository:
    return InMemoryStreakRepository()
