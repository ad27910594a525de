"""
SQLAlchemy Database Models for the Streak System

Tables:
- user_streak_state: per-user daily counter, streak and weekly totals
- item_mastery_record: per-item spaced repetition state
- stacks: collections of items and their test lifecycle
- comprehension_checks: checks opened for fully mastered stacks

ARCHITECTURE NOTE:
    This file contains SQLALCHEMY models for database persistence.
    There is a corresponding Pydantic file: streak_engine/models/streaks.py

    Data flows: Repository → SQLAlchemy → Pydantic snapshot → streak core

All instants are TIMESTAMP WITH TIME ZONE in UTC. The only local calendar
dates stored are the decision stamps (last_mastery_date,
contributed_to_streak_date, current_week_start).

user_streak_state and stacks carry a version column used by SQLAlchemy's
optimistic concurrency check (version_id_col): an UPDATE that finds a
different version raises StaleDataError.
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from streak_engine.db.base import Base


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


# ===========================================
# User Streak State
# ===========================================


class UserStreakStateRow(Base):
    """
    One row per user.

    Attributes:
        user_id: Primary key, the user's id in the account system.
        timezone: IANA timezone the user's days are counted in.
        cards_mastered_today: Distinct items mastered on last_mastery_date.
        last_mastery_date: Local date the daily counter belongs to.
        current_streak: Consecutive earned days.
        longest_streak: Best streak ever reached.
        streak_deadline: Hard deadline (UTC) for earning the next day.
        display_deadline: 23:59:59 local before the deadline, UI only.
        streak_countdown_starts: End of the last earned day; contributions of
            that day are locked from then on.
        streak_deadline_before_award: Hard deadline replaced by today's
            award, restored when the award is reverted.
        display_deadline_before_award: Display deadline replaced by today's
            award.
        streak_awarded_today: Whether the day was already earned.
        streak_frozen_stacks: JSON list of stack ids with overdue checks.
        total_cards_mastered: Lifetime count of mastery crossings.
        total_stacks_completed: Lifetime count of passed checks.
        current_week_cards: Items counted in the current ISO week.
        current_week_start: Local Monday of the current week.
        weekly_cards_history: JSON list of archived week entries.
        version: Optimistic concurrency token.
    """

    __tablename__ = "user_streak_state"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    timezone: Mapped[str] = mapped_column(String(64), default="UTC")

    # Daily counter
    cards_mastered_today: Mapped[int] = mapped_column(Integer, default=0)
    last_mastery_date: Mapped[Optional[date]] = mapped_column(Date)

    # Streak
    current_streak: Mapped[int] = mapped_column(Integer, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0)
    streak_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    display_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    streak_countdown_starts: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )
    streak_deadline_before_award: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )
    display_deadline_before_award: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )
    streak_awarded_today: Mapped[bool] = mapped_column(Boolean, default=False)
    streak_frozen_stacks: Mapped[list] = mapped_column(JSON, default=list)

    # Lifetime totals
    total_cards_mastered: Mapped[int] = mapped_column(Integer, default=0)
    total_stacks_completed: Mapped[int] = mapped_column(Integer, default=0)

    # Weekly stats
    current_week_cards: Mapped[int] = mapped_column(Integer, default=0)
    current_week_start: Mapped[Optional[date]] = mapped_column(Date)
    weekly_cards_history: Mapped[list] = mapped_column(JSON, default=list)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )

    __mapper_args__ = {"version_id_col": version}


# ===========================================
# Stacks & Items
# ===========================================


class StackRow(Base):
    """
    A named collection of items.

    Attributes:
        stack_id: Primary key.
        user_id: Owner.
        name: Display name.
        status: in_progress, pending_test or completed.
        card_count: Number of items in the stack.
        cards_mastered: Items currently at or above the mastery threshold.
        mastery_reached_at: When every item was first mastered.
        test_deadline: Deadline of the stack's comprehension check.
        contributed_to_streak: Set once the stack's check passed.
        version: Optimistic concurrency token.
    """

    __tablename__ = "stacks"

    stack_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(255), default="")

    status: Mapped[str] = mapped_column(String(20), default="in_progress", index=True)
    card_count: Mapped[int] = mapped_column(Integer, default=0)
    cards_mastered: Mapped[int] = mapped_column(Integer, default=0)
    mastery_reached_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    test_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    contributed_to_streak: Mapped[bool] = mapped_column(Boolean, default=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    __mapper_args__ = {"version_id_col": version}


class ItemMasteryRecordRow(Base):
    """
    Spaced repetition state of one learning item.

    Attributes:
        item_id: Primary key, the item's id in the content system.
        user_id: Owner.
        stack_id: Stack the item belongs to, if any.
        mastery_level: Recall strength statistic (0-5).
        ease_factor: SM-2 ease factor (>= 1.3).
        interval_days: Current review interval in days.
        next_review_date: When the item is next due.
        review_count: Number of ratings recorded.
        last_rating: Latest rating (1-5); >= 4 means mastered.
        last_reviewed_at: Time of the latest rating.
        contributed_to_streak_date: Local date the item last counted toward
            the daily requirement.
    """

    __tablename__ = "item_mastery_record"

    item_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    stack_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("stacks.stack_id", ondelete="CASCADE"), index=True
    )

    # Scheduling
    mastery_level: Mapped[int] = mapped_column(Integer, default=0)
    ease_factor: Mapped[float] = mapped_column(Float, default=2.5)
    interval_days: Mapped[int] = mapped_column(Integer, default=1)
    next_review_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    review_count: Mapped[int] = mapped_column(Integer, default=0)
    last_rating: Mapped[Optional[int]] = mapped_column(Integer)
    last_reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    contributed_to_streak_date: Mapped[Optional[date]] = mapped_column(Date)


# ===========================================
# Comprehension Checks
# ===========================================


class ComprehensionCheckRow(Base):
    """
    A comprehension check for a fully mastered stack.

    Attributes:
        check_id: Primary key.
        user_id: Owner.
        stack_id: The stack being checked.
        deadline: When the check is due (grace applies on top).
        is_legacy: Exempt from locking and freezing.
        outcome: pending, passed or expired.
        attempts: Failed attempts so far.
        created_at: When the check was opened.
        resolved_at: When the check passed.
    """

    __tablename__ = "comprehension_checks"

    check_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    stack_id: Mapped[str] = mapped_column(
        ForeignKey("stacks.stack_id", ondelete="CASCADE"), index=True
    )

    deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    is_legacy: Mapped[bool] = mapped_column(Boolean, default=False)
    outcome: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
