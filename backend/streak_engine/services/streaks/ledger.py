"""
Mastery Ledger

Per-user daily counter and streak accrual.

A user earns a streak day by mastering settings.STREAK_DAILY_REQUIREMENT
distinct items within one local calendar day. Each item counts at most once
per local day, guarded by ItemMasteryRecord.contributed_to_streak_date.

Day rollover and streak loss are detected lazily: there is no background
job. Every entry point first calls normalize(), which resets the daily
counters when a new local day has started and drops the streak when its
hard deadline has passed. Status reads run the same normalization so a
stale snapshot is never shown.

Deadlines:
    Earning day D sets the countdown to the end of D and the hard deadline
    to the end of D + 1 plus the grace period (see clock.compute_deadline).
    Contributions made on D are locked once the countdown has started, i.e.
    once D is over.

Freeze:
    While streak_frozen_stacks is non-empty the streak cannot be lost and
    does not grow. Days are still recorded as earned so the deadline moves
    forward with the user's activity.

Usage:
    from streak_engine.services.streaks.ledger import MasteryLedger

    ledger = MasteryLedger()
    state, record, counted = ledger.on_item_mastered(state, record, now)
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from streak_engine.config import settings
from streak_engine.models.streaks import (
    DowngradeImpact,
    ItemMasteryRecord,
    UserStreakState,
)
from streak_engine.services.streaks import clock

logger = logging.getLogger(__name__)


class MasteryLedger:
    """
    Daily counter and streak state machine.

    All methods are pure: they take snapshots and return updated copies.

    Attributes:
        daily_requirement: Items to master per local day
        grace_hours: Hours added to each deadline
    """

    def __init__(
        self,
        daily_requirement: Optional[int] = None,
        grace_hours: Optional[float] = None,
    ):
        self.daily_requirement = (
            daily_requirement
            if daily_requirement is not None
            else settings.STREAK_DAILY_REQUIREMENT
        )
        self.grace_hours = (
            grace_hours if grace_hours is not None else settings.GRACE_PERIOD_HOURS
        )

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def streak_has_lapsed(self, state: UserStreakState, now: datetime) -> bool:
        """True if an unfrozen, positive streak is past its hard deadline."""
        return (
            not state.streak_frozen
            and state.current_streak > 0
            and state.streak_deadline is not None
            and now > state.streak_deadline
        )

    def normalize(self, state: UserStreakState, now: datetime) -> UserStreakState:
        """
        Bring a snapshot up to date with now.

        - On a new local day the daily counter and award flag reset. A local
          date that moved backwards (the user travelled west) is not a new
          day, so a day cannot be earned twice.
        - An unfrozen streak whose hard deadline has passed is lost;
          longest_streak is kept.
        """
        today = clock.local_date(now, state.timezone)
        updates: dict = {}

        if clock.is_new_day(state.last_mastery_date, state.timezone, now) and (
            state.last_mastery_date is None or today > state.last_mastery_date
        ):
            updates.update(
                cards_mastered_today=0,
                streak_awarded_today=False,
                last_mastery_date=today,
            )

        if self.streak_has_lapsed(state, now):
            logger.info(
                f"Streak lost for user {state.user_id}: {state.current_streak} -> 0 "
                f"(deadline {state.streak_deadline.isoformat()})"
            )
            updates.update(
                current_streak=0,
                longest_streak=max(state.longest_streak, state.current_streak),
                streak_deadline=None,
                display_deadline=None,
                streak_countdown_starts=None,
            )

        if not updates:
            return state
        return state.model_copy(update=updates)

    @staticmethod
    def ledger_day(state: UserStreakState, now: datetime) -> date:
        """
        Local day the daily counter belongs to.

        Normally today. After travelling west it is the already started
        last_mastery_date, which is later than the local date.
        """
        today = clock.local_date(now, state.timezone)
        if state.last_mastery_date is not None and state.last_mastery_date > today:
            return state.last_mastery_date
        return today

    # ------------------------------------------------------------------
    # Mastery events
    # ------------------------------------------------------------------

    def on_item_mastered(
        self,
        state: UserStreakState,
        record: ItemMasteryRecord,
        now: datetime,
    ) -> tuple[UserStreakState, ItemMasteryRecord, bool]:
        """
        Count a mastered item toward today's requirement.

        Args:
            state: User snapshot.
            record: The item that was just rated at or above the threshold.
            now: Trusted current time.

        Returns:
            (state, record, counted). counted is False when the item already
            contributed today, in which case nothing changes beyond
            normalization.
        """
        state = self.normalize(state, now)
        today = self.ledger_day(state, now)

        if record.contributed_to_streak_date == today:
            return state, record, False

        record = record.model_copy(update={"contributed_to_streak_date": today})
        cards_today = state.cards_mastered_today + 1
        # last_mastery_date was already advanced by normalize() and never
        # moves backwards
        updates: dict = {"cards_mastered_today": cards_today}

        if cards_today >= self.daily_requirement and not state.streak_awarded_today:
            hard, display = clock.compute_deadline(
                today, state.timezone, self.grace_hours
            )
            current = state.current_streak
            if state.streak_frozen:
                logger.info(
                    f"Daily requirement met for user {state.user_id} while frozen "
                    f"(stacks: {sorted(state.streak_frozen_stacks)}), streak held at {current}"
                )
            else:
                current += 1
                logger.info(f"Streak awarded for user {state.user_id}: {current} day(s)")

            updates.update(
                current_streak=current,
                longest_streak=max(state.longest_streak, current),
                streak_deadline_before_award=state.streak_deadline,
                display_deadline_before_award=state.display_deadline,
                streak_awarded_today=True,
                streak_countdown_starts=clock.local_midnight(today, state.timezone),
                streak_deadline=hard,
                display_deadline=display,
            )

        return state.model_copy(update=updates), record, True

    def on_item_unmastered(
        self,
        state: UserStreakState,
        record: ItemMasteryRecord,
        now: datetime,
    ) -> tuple[UserStreakState, ItemMasteryRecord, bool]:
        """
        Withdraw a contribution made today by an item that was downgraded.

        Contributions from earlier days are locked and stay counted. If the
        withdrawal drops today below the requirement after the day was
        awarded, the award is reverted.

        Returns:
            (state, record, reverted) where reverted tells whether today's
            streak award was undone.
        """
        state = self.normalize(state, now)
        today = self.ledger_day(state, now)

        if record.contributed_to_streak_date != today:
            return state, record, False

        record = record.model_copy(update={"contributed_to_streak_date": None})
        cards_today = max(0, state.cards_mastered_today - 1)
        updates: dict = {"cards_mastered_today": cards_today}

        reverted = state.streak_awarded_today and cards_today < self.daily_requirement
        if reverted:
            current = state.current_streak
            longest = state.longest_streak
            if not state.streak_frozen and current > 0:
                # A first-ever day that is taken back was never really earned
                if current == 1 and longest == 1:
                    longest = 0
                current -= 1

            if current == 0:
                hard, display = None, None
            elif state.streak_deadline_before_award is not None:
                hard = state.streak_deadline_before_award
                display = state.display_deadline_before_award
            else:
                # Rows written before the pre-award deadline was kept
                hard, display = clock.compute_deadline(
                    today - timedelta(days=1), state.timezone, self.grace_hours
                )

            updates.update(
                current_streak=current,
                longest_streak=longest,
                streak_awarded_today=False,
                streak_countdown_starts=None,
                streak_deadline=hard,
                display_deadline=display,
            )
            logger.info(
                f"Streak award reverted for user {state.user_id}: "
                f"{state.current_streak} -> {current} ({cards_today}/{self.daily_requirement} today)"
            )

        return state.model_copy(update=updates), record, reverted

    def downgrade_impact(
        self,
        state: UserStreakState,
        record: ItemMasteryRecord,
        now: datetime,
    ) -> DowngradeImpact:
        """Describe what lowering record below the mastery threshold would do."""
        state = self.normalize(state, now)
        today = self.ledger_day(state, now)
        contributed = record.contributed_to_streak_date

        if contributed is None:
            return DowngradeImpact(would_revert_streak=False, cards_are_locked=False)

        if contributed != today:
            return DowngradeImpact(
                would_revert_streak=False,
                cards_are_locked=True,
                warning=(
                    "This item counted toward an earlier streak day. "
                    "That day is locked and will not change."
                ),
            )

        if (
            state.streak_awarded_today
            and state.cards_mastered_today - 1 < self.daily_requirement
        ):
            return DowngradeImpact(
                would_revert_streak=True,
                cards_are_locked=False,
                warning=(
                    "Lowering this item will revert today's streak progress. "
                    f"You'll need {self.daily_requirement} mastered items again "
                    "to earn today's streak."
                ),
            )
        return DowngradeImpact(would_revert_streak=False, cards_are_locked=False)

    def reset_streak(self, state: UserStreakState) -> UserStreakState:
        """Drop the current streak to zero, keeping longest_streak."""
        logger.info(f"Streak reset for user {state.user_id}: {state.current_streak} -> 0")
        return state.model_copy(
            update={
                "current_streak": 0,
                "longest_streak": max(state.longest_streak, state.current_streak),
                "streak_awarded_today": False,
                "streak_deadline": None,
                "display_deadline": None,
                "streak_countdown_starts": None,
            }
        )

    def cards_needed(self, state: UserStreakState) -> int:
        """Items still to master today to earn the day."""
        if state.streak_awarded_today:
            return 0
        return max(0, self.daily_requirement - state.cards_mastered_today)
