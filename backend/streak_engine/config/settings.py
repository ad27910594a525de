"""
Application Configuration

This module provides type-safe configuration loading using Pydantic settings.
Environment variables are loaded from .env file and validated.

Usage:
    from streak_engine.config import settings

    # Access settings
    db_url = settings.POSTGRES_URL
    requirement = settings.STREAK_DAILY_REQUIREMENT
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Streak Engine"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "streaks"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "streaks"

    # Create missing tables on startup (development only, use migrations in production)
    DB_AUTO_CREATE: bool = False

    @property
    def POSTGRES_URL(self) -> str:
        """Async PostgreSQL connection URL."""
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Daily streak
    STREAK_DAILY_REQUIREMENT: int = 5  # Items mastered per local day to earn the day
    GRACE_PERIOD_HOURS: int = 2  # Added after local midnight before a lapse counts
    DEFAULT_TIMEZONE: str = "UTC"

    # Spaced repetition
    MASTERY_RATING_THRESHOLD: int = 4  # Rating at or above which an item counts as mastered
    MAX_MASTERY_LEVEL: int = 5
    DEFAULT_EASE_FACTOR: float = 2.5
    MIN_EASE_FACTOR: float = 1.3

    # Comprehension checks
    MAX_PENDING_TESTS: int = 3
    # (minimum stack size, deadline days), largest first
    TEST_DEADLINE_TIERS: list[tuple[int, int]] = [(50, 10), (25, 5)]
    TEST_DEADLINE_DEFAULT_DAYS: int = 2

    # Weekly stats
    WEEKLY_CARD_CAP: int = 500
    WEEKLY_HISTORY_LIMIT: int = 12
    WEEKLY_AVERAGE_WINDOW: int = 4

    # Optimistic concurrency
    CONFLICT_MAX_RETRIES: int = 3

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()


@lru_cache()
def load_yaml_config() -> dict[str, Any]:
    """Load application configuration from config/default.yaml."""
    config_path = Path(__file__).parent.parent.parent.parent / "config" / "default.yaml"

    if not config_path.exists():
        return {}

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


yaml_config: dict[str, Any] = load_yaml_config()
