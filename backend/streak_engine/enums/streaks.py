"""
Streak System Enums

Defines enums for item ratings, stack lifecycle, comprehension check
outcomes and stack deletion warnings.
"""

from enum import Enum


class Rating(int, Enum):
    """
    Self-assessment rating submitted after reviewing an item.

    Ratings at or above KINDA_KNOW count as mastery
    (settings.MASTERY_RATING_THRESHOLD).
    """

    REALLY_DONT_KNOW = 1  # Forgotten, interval resets
    DONT_KNOW = 2  # Failed recall, interval resets
    NEUTRAL = 3  # Shaky recall, interval held
    KINDA_KNOW = 4  # Recalled, interval grows
    REALLY_KNOW = 5  # Effortless recall, interval grows


class StackStatus(str, Enum):
    """
    Lifecycle of a stack.

    State transitions:
    - IN_PROGRESS → PENDING_TEST (every item mastered, check opened)
    - PENDING_TEST → COMPLETED (check passed)

    A PENDING_TEST stack whose check is overdue past the grace period is
    reported as locked; locking is derived from the deadline, not stored.
    """

    IN_PROGRESS = "in_progress"
    PENDING_TEST = "pending_test"
    COMPLETED = "completed"


class CheckOutcome(str, Enum):
    """
    Outcome of a comprehension check.

    State transitions:
    - PENDING → PASSED
    - PENDING → EXPIRED (deadline plus grace elapsed)
    - EXPIRED → PASSED (late pass still completes the stack and unfreezes)
    """

    PENDING = "pending"
    PASSED = "passed"
    EXPIRED = "expired"


class CheckResult(str, Enum):
    """Result of a single attempt at a comprehension check."""

    PASSED = "passed"
    FAILED = "failed"


class DeletionWarning(str, Enum):
    """Warning shown before a stack is deleted."""

    NONE = "none"
    STREAK_RESET = "streak_reset"  # Deleting resets the current streak
    LEGACY_TEST = "legacy_test"  # Stack has a grandfathered check
