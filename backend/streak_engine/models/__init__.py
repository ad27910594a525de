"""Pydantic models for the application."""

from streak_engine.models.base import DomainModel, StrictRequest, StrictResponse
from streak_engine.models.streaks import (
    ComprehensionCheck,
    ItemMasteryRecord,
    Stack,
    UserStreakState,
    WeeklyCardEntry,
    WeeklyStats,
)

__all__ = [
    "DomainModel",
    "StrictRequest",
    "StrictResponse",
    "ComprehensionCheck",
    "ItemMasteryRecord",
    "Stack",
    "UserStreakState",
    "WeeklyCardEntry",
    "WeeklyStats",
]
