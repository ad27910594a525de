"""
Streak System Models (Pydantic)

Snapshots the streak core operates on, the events it consumes, and the
request/response schemas exposed to collaborators:

- UserStreakState: per-user daily counter and streak accounting
- ItemMasteryRecord: per-item spaced repetition state
- Stack: a collection of items and its test lifecycle
- ComprehensionCheck: a test attempt opened for a fully mastered stack
- WeeklyStats / WeeklyCardEntry: weekly totals and their rotating history

ARCHITECTURE NOTE:
    This file contains PYDANTIC models. The corresponding SQLAlchemy tables
    live in streak_engine/db/models.py.

    Data flows: DB Row → Pydantic snapshot → streak core → Pydantic → DB Row

All instants are timezone-aware UTC. Local calendar dates appear only as the
decision stamps (last_mastery_date, contributed_to_streak_date,
current_week_start).
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import AwareDatetime, Field, computed_field, field_validator

from streak_engine.config import settings
from streak_engine.enums.streaks import (
    CheckOutcome,
    CheckResult,
    DeletionWarning,
    StackStatus,
)
from streak_engine.models.base import DomainModel, StrictRequest, StrictResponse


def _check_timezone(value: str) -> str:
    # Imported here: the services package imports these models.
    from streak_engine.services.streaks.clock import validate_timezone

    return validate_timezone(value)


# ===========================================
# Snapshots
# ===========================================


class UserStreakState(DomainModel):
    """
    Daily counter and streak accounting for one user.

    streak_frozen is derived from streak_frozen_stacks, so a frozen streak
    always names at least one stack with an overdue check and vice versa.
    """

    user_id: str
    timezone: str = Field(default_factory=lambda: settings.DEFAULT_TIMEZONE)

    cards_mastered_today: int = Field(0, ge=0)
    last_mastery_date: Optional[date] = None
    current_streak: int = Field(0, ge=0)
    longest_streak: int = Field(0, ge=0)

    streak_deadline: Optional[AwareDatetime] = None
    display_deadline: Optional[AwareDatetime] = None
    streak_countdown_starts: Optional[AwareDatetime] = None
    # Deadlines in effect before today's award, restored if it is reverted
    streak_deadline_before_award: Optional[AwareDatetime] = None
    display_deadline_before_award: Optional[AwareDatetime] = None
    streak_awarded_today: bool = False
    streak_frozen_stacks: frozenset[str] = frozenset()

    total_cards_mastered: int = Field(0, ge=0)
    total_stacks_completed: int = Field(0, ge=0)

    @field_validator("timezone")
    @classmethod
    def _valid_timezone(cls, value: str) -> str:
        return _check_timezone(value)

    @computed_field
    @property
    def streak_frozen(self) -> bool:
        return bool(self.streak_frozen_stacks)


class ItemMasteryRecord(DomainModel):
    """Spaced repetition state of a single learning item."""

    item_id: str
    user_id: str
    stack_id: Optional[str] = None

    mastery_level: int = Field(0, ge=0, le=settings.MAX_MASTERY_LEVEL)
    ease_factor: float = Field(
        default_factory=lambda: settings.DEFAULT_EASE_FACTOR,
        ge=settings.MIN_EASE_FACTOR,
    )
    interval_days: int = Field(1, ge=1)
    next_review_date: Optional[AwareDatetime] = None
    review_count: int = Field(0, ge=0)
    last_rating: Optional[int] = Field(None, ge=1, le=5)
    last_reviewed_at: Optional[AwareDatetime] = None

    # Local date on which this item last counted toward the daily total
    contributed_to_streak_date: Optional[date] = None

    @computed_field
    @property
    def is_mastered(self) -> bool:
        return (
            self.last_rating is not None
            and self.last_rating >= settings.MASTERY_RATING_THRESHOLD
        )


class Stack(DomainModel):
    """A named collection of items and its comprehension-check lifecycle."""

    stack_id: str
    user_id: str
    name: str = ""
    status: StackStatus = StackStatus.IN_PROGRESS
    card_count: int = Field(0, ge=0)
    cards_mastered: int = Field(0, ge=0)
    mastery_reached_at: Optional[AwareDatetime] = None
    test_deadline: Optional[AwareDatetime] = None
    contributed_to_streak: bool = False


class ComprehensionCheck(DomainModel):
    """
    A comprehension check opened when a stack reached full mastery.

    Legacy checks were created under an earlier deadline policy (or lost the
    streak they could protect) and never freeze the streak.
    """

    check_id: str
    user_id: str
    stack_id: str
    deadline: AwareDatetime
    is_legacy: bool = False
    outcome: CheckOutcome = CheckOutcome.PENDING
    attempts: int = Field(0, ge=0)
    created_at: Optional[AwareDatetime] = None
    resolved_at: Optional[AwareDatetime] = None

    @property
    def is_unresolved(self) -> bool:
        return self.outcome != CheckOutcome.PASSED


class WeeklyCardEntry(DomainModel):
    """Archived total of one ISO week."""

    week_id: str = Field(..., description="ISO week, e.g. 2024-W52")
    count: int = Field(..., ge=0)
    archived_at: AwareDatetime


class WeeklyStats(DomainModel):
    """Current week counter plus the rotating history of archived weeks."""

    current_week_cards: int = Field(0, ge=0)
    current_week_start: Optional[date] = None
    weekly_cards_history: list[WeeklyCardEntry] = Field(default_factory=list)


# ===========================================
# Events
# ===========================================


class RatingEvent(StrictRequest):
    """
    A rating submitted for an item.

    The timestamp is informational only; decisions use the server clock.
    """

    user_id: str
    item_id: str
    rating: int = Field(..., ge=1, le=5, description="Self-assessment rating (1-5)")
    timestamp: Optional[AwareDatetime] = None


class CheckOutcomeEvent(StrictRequest):
    """Result of an attempt at a comprehension check."""

    outcome: CheckResult
    timestamp: Optional[AwareDatetime] = None


class StackCreate(StrictRequest):
    """Register a stack and its items with the streak engine."""

    stack_id: str
    user_id: str
    name: str = ""
    item_ids: list[str] = Field(..., min_length=1)


class TimezoneUpdate(StrictRequest):
    """Change the IANA timezone a user's days are counted in."""

    timezone: str

    @field_validator("timezone")
    @classmethod
    def _valid_timezone(cls, value: str) -> str:
        return _check_timezone(value)


# ===========================================
# Responses
# ===========================================


class StreakStatus(StrictResponse):
    """Streak status for dashboards and social features."""

    user_id: str
    current_streak: int
    longest_streak: int
    cards_mastered_today: int
    cards_needed: int
    streak_deadline: Optional[datetime] = None
    display_deadline: Optional[datetime] = None
    streak_frozen: bool
    frozen_stack_ids: list[str] = Field(default_factory=list)
    is_in_grace: bool = False
    timezone: str


class StackStatusResponse(StrictResponse):
    """Lifecycle status of a stack."""

    stack_id: str
    status: StackStatus
    card_count: int
    cards_mastered: int
    mastery_reached_at: Optional[datetime] = None
    test_deadline: Optional[datetime] = None
    locked: bool


class WeeklyStatsResponse(StrictResponse):
    """Weekly totals for trend display."""

    current_week_cards: int
    weekly_average: float
    is_at_cap: bool


class RatingOutcome(StrictResponse):
    """What a single rating changed."""

    item_id: str
    rating: int
    mastered: bool
    counted_today: bool
    cards_mastered_today: int
    streak_incremented: bool
    current_streak: int
    streak_awarded_today: bool
    streak_frozen: bool
    counted_this_week: bool
    next_review_date: Optional[datetime] = None
    stack_status: Optional[StackStatus] = None
    check_id: Optional[str] = None
    check_blocked: bool = False
    message: Optional[str] = None


class CheckOutcomeResult(StrictResponse):
    """What resolving a comprehension check attempt changed."""

    check_id: str
    outcome: CheckOutcome
    stack_status: StackStatus
    is_legacy: bool
    unfrozen: bool
    streak_frozen: bool
    current_streak: int
    opened_check_ids: list[str] = Field(default_factory=list)
    message: str


class DowngradeImpact(StrictResponse):
    """Effect of lowering an item's rating below the mastery threshold."""

    would_revert_streak: bool
    cards_are_locked: bool
    warning: Optional[str] = None


class StackDeletionImpact(StrictResponse):
    """Effect of deleting a stack on the user's streak."""

    requires_warning: bool
    warning_type: DeletionWarning
    current_streak: int
    longest_streak: int
    message: str
