"""
Centralized enum definitions for the application.

Usage:
    from streak_engine.enums import StackStatus, CheckOutcome

    # Or import from the specific module
    from streak_engine.enums.streaks import Rating
"""

from streak_engine.enums.streaks import (
    CheckOutcome,
    CheckResult,
    DeletionWarning,
    Rating,
    StackStatus,
)

__all__ = [
    "CheckOutcome",
    "CheckResult",
    "DeletionWarning",
    "Rating",
    "StackStatus",
]
