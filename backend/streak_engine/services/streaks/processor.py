"""
Rating Processor

Pure orchestration of the streak core over one user's snapshot.

Data flow for a rating:
    sweep (lazy rollover, streak loss, check expiry)
    → SpacedRepetitionScheduler.record_rating
    → MasteryLedger (mastered / unmastered)
    → WeeklyStatsAggregator (only for items counted today)
    → StackLockManager progress, opening a check when the stack is complete

Data flow for a check outcome:
    sweep → TestDeadlineManager (passed / failed)
    → StackLockManager.on_check_passed (completes stack, releases freeze)
    → retry stacks that were blocked by the outstanding check cap

The processor never performs I/O. It receives a UserSnapshot built by the
service layer, returns an updated snapshot plus a result model, and leaves
persisting to the caller.

Usage:
    processor = RatingProcessor()
    snapshot, outcome = processor.process_rating(snapshot, "item-1", 4, now)
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from streak_engine.enums.streaks import (
    CheckOutcome,
    CheckResult,
    DeletionWarning,
    StackStatus,
)
from streak_engine.exceptions import NotFoundError, PolicyLimitError, StateError
from streak_engine.models.streaks import (
    CheckOutcomeResult,
    ComprehensionCheck,
    ItemMasteryRecord,
    RatingOutcome,
    Stack,
    StackDeletionImpact,
    UserStreakState,
    WeeklyStats,
)
from streak_engine.services.streaks.ledger import MasteryLedger
from streak_engine.services.streaks.scheduler import SpacedRepetitionScheduler
from streak_engine.services.streaks.stack_lock import StackLockManager
from streak_engine.services.streaks.test_deadlines import TestDeadlineManager
from streak_engine.services.streaks.weekly_stats import WeeklyStatsAggregator

logger = logging.getLogger(__name__)


@dataclass
class UserSnapshot:
    """
    Everything the core needs to decide one event for one user.

    Attributes:
        state: The user's streak state
        weekly: The user's weekly counter and history
        stacks: Stacks touched by the event plus the user's unfinished stacks
        checks: The user's unresolved checks plus checks touched by the event
        items: Item records touched by the event
        deleted_stacks: Stack ids removed while processing
    """

    state: UserStreakState
    weekly: WeeklyStats = field(default_factory=WeeklyStats)
    stacks: dict[str, Stack] = field(default_factory=dict)
    checks: dict[str, ComprehensionCheck] = field(default_factory=dict)
    items: dict[str, ItemMasteryRecord] = field(default_factory=dict)
    deleted_stacks: set[str] = field(default_factory=set)

    def copy(self) -> "UserSnapshot":
        return replace(
            self,
            stacks=dict(self.stacks),
            checks=dict(self.checks),
            items=dict(self.items),
            deleted_stacks=set(self.deleted_stacks),
        )

    def check_for_stack(self, stack_id: str) -> Optional[ComprehensionCheck]:
        """The stack's unresolved check, or its most recent one."""
        candidates = [c for c in self.checks.values() if c.stack_id == stack_id]
        if not candidates:
            return None
        unresolved = [c for c in candidates if c.is_unresolved]
        pool = unresolved or candidates
        return max(pool, key=lambda c: (c.created_at is not None, c.created_at or c.deadline))


class RatingProcessor:
    """Composes the streak components into event handlers."""

    def __init__(
        self,
        scheduler: Optional[SpacedRepetitionScheduler] = None,
        ledger: Optional[MasteryLedger] = None,
        deadlines: Optional[TestDeadlineManager] = None,
        stack_lock: Optional[StackLockManager] = None,
        weekly: Optional[WeeklyStatsAggregator] = None,
    ):
        self.scheduler = scheduler or SpacedRepetitionScheduler()
        self.ledger = ledger or MasteryLedger()
        self.deadlines = deadlines or TestDeadlineManager()
        self.stack_lock = stack_lock or StackLockManager(self.deadlines)
        self.weekly = weekly or WeeklyStatsAggregator()

    # ------------------------------------------------------------------
    # Lazy maintenance
    # ------------------------------------------------------------------

    def sweep(self, snapshot: UserSnapshot, now: datetime) -> UserSnapshot:
        """
        Materialize everything that became due since the snapshot was written.

        Events are applied in the order they happened: a check that went
        overdue while the streak was still alive freezes it before the
        streak deadline is evaluated. A check that went overdue only after
        the streak was already lost, or while the user had no streak, has
        nothing to protect and is grandfathered as legacy.
        """
        snapshot = snapshot.copy()
        state = snapshot.state

        overdue = sorted(
            (
                c
                for c in snapshot.checks.values()
                if c.outcome == CheckOutcome.PENDING and self.deadlines.is_overdue(c, now)
            ),
            key=self.deadlines.grace_deadline,
        )

        deferred: list[ComprehensionCheck] = []
        for check in overdue:
            if check.is_legacy:
                snapshot.checks[check.check_id] = self.deadlines.expire(check, now)
                continue
            if state.current_streak == 0:
                # No streak to protect
                check = self.deadlines.grandfather(check)
                snapshot.checks[check.check_id] = self.deadlines.expire(check, now)
                continue
            if (
                self.ledger.streak_has_lapsed(state, now)
                and self.deadlines.grace_deadline(check) > state.streak_deadline
            ):
                deferred.append(check)
                continue
            state = self.deadlines.on_deadline_missed(check, state, check.stack_id, now)
            snapshot.checks[check.check_id] = self.deadlines.expire(check, now)

        streak_before = state.current_streak
        state = self.ledger.normalize(state, now)
        streak_lost = streak_before > 0 and state.current_streak == 0

        if streak_lost:
            for check in list(snapshot.checks.values()):
                if check.outcome == CheckOutcome.PENDING and not check.is_legacy:
                    snapshot.checks[check.check_id] = self.deadlines.grandfather(check)

        for check in deferred:
            check = snapshot.checks[check.check_id]
            state = self.deadlines.on_deadline_missed(check, state, check.stack_id, now)
            snapshot.checks[check.check_id] = self.deadlines.expire(check, now)

        snapshot.state = state
        snapshot.weekly = self.weekly.rollover(snapshot.weekly, now, state.timezone)
        return snapshot

    # ------------------------------------------------------------------
    # Ratings
    # ------------------------------------------------------------------

    def process_rating(
        self,
        snapshot: UserSnapshot,
        item_id: str,
        rating: int,
        now: datetime,
    ) -> tuple[UserSnapshot, RatingOutcome]:
        """
        Apply one rating for one item.

        Raises:
            NotFoundError: If the item is not part of the snapshot.
            ValidationError: If the rating is out of range.
        """
        record = snapshot.items.get(item_id)
        if record is None:
            raise NotFoundError(f"Item {item_id} not found", details={"item_id": item_id})

        snapshot = self.sweep(snapshot, now)
        state = snapshot.state
        streak_before = state.current_streak

        was_mastered = record.is_mastered
        record = self.scheduler.record_rating(record, rating, now)
        is_mastered = record.is_mastered

        counted_today = False
        counted_week = False
        if is_mastered:
            state, record, counted_today = self.ledger.on_item_mastered(state, record, now)
            if counted_today:
                snapshot.weekly, counted_week = self.weekly.on_card_counted(
                    snapshot.weekly, now, state.timezone
                )
        elif was_mastered:
            state, record, _ = self.ledger.on_item_unmastered(state, record, now)

        if is_mastered and not was_mastered:
            state = state.model_copy(
                update={"total_cards_mastered": state.total_cards_mastered + 1}
            )

        snapshot.items[item_id] = record
        snapshot.state = state

        stack_status = None
        check_id = None
        check_blocked = False
        message = None
        stack = snapshot.stacks.get(record.stack_id) if record.stack_id else None
        if stack is not None:
            if was_mastered != is_mastered:
                stack = self.stack_lock.on_item_progress(stack, is_mastered)
                snapshot.stacks[stack.stack_id] = stack
            if (
                is_mastered
                and not was_mastered
                and stack.status == StackStatus.IN_PROGRESS
                and self.stack_lock.all_items_mastered(stack)
            ):
                check, message = self._open_check(snapshot, stack, now)
                check_id = check.check_id if check else None
                check_blocked = check is None
            stack_status = snapshot.stacks[stack.stack_id].status

        outcome = RatingOutcome(
            item_id=item_id,
            rating=int(rating),
            mastered=is_mastered,
            counted_today=counted_today,
            cards_mastered_today=state.cards_mastered_today,
            streak_incremented=state.current_streak > streak_before,
            current_streak=state.current_streak,
            streak_awarded_today=state.streak_awarded_today,
            streak_frozen=state.streak_frozen,
            counted_this_week=counted_week,
            next_review_date=record.next_review_date,
            stack_status=stack_status,
            check_id=check_id,
            check_blocked=check_blocked,
            message=message,
        )
        return snapshot, outcome

    def _open_check(
        self, snapshot: UserSnapshot, stack: Stack, now: datetime
    ) -> tuple[Optional[ComprehensionCheck], Optional[str]]:
        """Open a check for stack, or leave it waiting if the cap is reached."""
        try:
            stack, check = self.stack_lock.on_all_items_mastered(
                stack, list(snapshot.checks.values()), now
            )
        except PolicyLimitError as e:
            return None, e.message

        snapshot.stacks[stack.stack_id] = stack
        snapshot.checks[check.check_id] = check
        return check, None

    def retry_blocked_stacks(self, snapshot: UserSnapshot, now: datetime) -> list[str]:
        """
        Open checks for fully mastered stacks that the cap held back.

        Returns:
            Ids of the checks opened, oldest stack first.
        """
        opened: list[str] = []
        waiting = sorted(
            (
                s
                for s in snapshot.stacks.values()
                if s.status == StackStatus.IN_PROGRESS
                and self.stack_lock.all_items_mastered(s)
            ),
            key=lambda s: s.stack_id,
        )
        for stack in waiting:
            check, _ = self._open_check(snapshot, stack, now)
            if check is None:
                break
            opened.append(check.check_id)
        return opened

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def process_check_outcome(
        self,
        snapshot: UserSnapshot,
        check_id: str,
        result: CheckResult,
        now: datetime,
    ) -> tuple[UserSnapshot, CheckOutcomeResult]:
        """
        Resolve one attempt at a comprehension check.

        Raises:
            NotFoundError: If the check or its stack is not in the snapshot.
            StateError: If the check already passed.
        """
        if check_id not in snapshot.checks:
            raise NotFoundError(f"Check {check_id} not found", details={"check_id": check_id})

        snapshot = self.sweep(snapshot, now)
        check = snapshot.checks[check_id]
        stack = snapshot.stacks.get(check.stack_id)
        if stack is None:
            raise NotFoundError(
                f"Stack {check.stack_id} not found", details={"stack_id": check.stack_id}
            )

        if result == CheckResult.FAILED:
            check = self.deadlines.on_check_failed(check)
            snapshot.checks[check_id] = check
            return snapshot, CheckOutcomeResult(
                check_id=check_id,
                outcome=check.outcome,
                stack_status=stack.status,
                is_legacy=check.is_legacy,
                unfrozen=False,
                streak_frozen=snapshot.state.streak_frozen,
                current_streak=snapshot.state.current_streak,
                message="Check not passed. Keep studying and try again!",
            )

        if stack.status != StackStatus.PENDING_TEST:
            raise StateError(
                f"Stack {stack.stack_id} is {stack.status.value}, expected pending_test",
                details={"stack_id": stack.stack_id, "check_id": check_id},
            )

        was_frozen = snapshot.state.streak_frozen
        check = self.deadlines.on_check_passed(check, now)
        stack, state = self.stack_lock.on_check_passed(stack, snapshot.state, now)
        snapshot.checks[check_id] = check
        snapshot.stacks[stack.stack_id] = stack
        snapshot.state = state

        opened = self.retry_blocked_stacks(snapshot, now)
        unfrozen = was_frozen and not state.streak_frozen

        if check.is_legacy:
            message = "Legacy check complete! Stack unlocked."
        elif unfrozen:
            message = f"Unfrozen! Your {state.current_streak}-day streak is active again."
        else:
            message = "Check passed! Stack completed."

        return snapshot, CheckOutcomeResult(
            check_id=check_id,
            outcome=check.outcome,
            stack_status=stack.status,
            is_legacy=check.is_legacy,
            unfrozen=unfrozen,
            streak_frozen=state.streak_frozen,
            current_streak=state.current_streak,
            opened_check_ids=opened,
            message=message,
        )

    # ------------------------------------------------------------------
    # Stack deletion
    # ------------------------------------------------------------------

    def deletion_impact(
        self, snapshot: UserSnapshot, stack_id: str, now: datetime
    ) -> StackDeletionImpact:
        snapshot = self.sweep(snapshot, now)
        stack = self._get_stack(snapshot, stack_id)
        return self.stack_lock.deletion_impact(
            stack, snapshot.check_for_stack(stack_id), snapshot.state
        )

    def delete_stack(
        self, snapshot: UserSnapshot, stack_id: str, now: datetime
    ) -> tuple[UserSnapshot, StackDeletionImpact]:
        """
        Remove an unfinished stack, resetting the streak when it protects it.

        Raises:
            NotFoundError: If the stack is not in the snapshot.
            StateError: If the stack is completed; completed stacks are kept
                as history.
        """
        snapshot = self.sweep(snapshot, now)
        stack = self._get_stack(snapshot, stack_id)
        if stack.status == StackStatus.COMPLETED:
            raise StateError(
                f"Stack {stack_id} is completed and kept as history",
                details={"stack_id": stack_id},
            )

        impact = self.stack_lock.deletion_impact(
            stack, snapshot.check_for_stack(stack_id), snapshot.state
        )
        state = snapshot.state
        if impact.warning_type == DeletionWarning.STREAK_RESET:
            state = self.ledger.reset_streak(state)
        state = state.model_copy(
            update={"streak_frozen_stacks": state.streak_frozen_stacks - {stack_id}}
        )

        snapshot.state = state
        del snapshot.stacks[stack_id]
        snapshot.checks = {
            cid: c for cid, c in snapshot.checks.items() if c.stack_id != stack_id
        }
        snapshot.items = {
            iid: r for iid, r in snapshot.items.items() if r.stack_id != stack_id
        }
        snapshot.deleted_stacks.add(stack_id)
        logger.info(f"Stack {stack_id} deleted ({impact.warning_type.value})")
        return snapshot, impact

    @staticmethod
    def _get_stack(snapshot: UserSnapshot, stack_id: str) -> Stack:
        stack = snapshot.stacks.get(stack_id)
        if stack is None:
            raise NotFoundError(f"Stack {stack_id} not found", details={"stack_id": stack_id})
        return stack
