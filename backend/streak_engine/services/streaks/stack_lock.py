"""
Stack Lock Manager

Per-stack lifecycle driven by item mastery and comprehension checks.

State transitions:
    IN_PROGRESS → PENDING_TEST   every item mastered, check opened
    PENDING_TEST → COMPLETED     check passed

A PENDING_TEST stack whose check deadline plus grace has elapsed is locked,
unless its check is legacy. Locking is derived from the deadline on every
read and never stored.

cards_mastered follows item mastery only while the stack is in progress.
Once a stack is waiting for its check it stays there even if an item is
later downgraded; the check is what proves comprehension.

Usage:
    from streak_engine.services.streaks.stack_lock import StackLockManager

    manager = StackLockManager()
    stack, check = manager.on_all_items_mastered(stack, outstanding, now)
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from streak_engine.enums.streaks import DeletionWarning, StackStatus
from streak_engine.exceptions import StateError
from streak_engine.models.streaks import (
    ComprehensionCheck,
    Stack,
    StackDeletionImpact,
    UserStreakState,
)
from streak_engine.services.streaks import clock
from streak_engine.services.streaks.test_deadlines import TestDeadlineManager

logger = logging.getLogger(__name__)


class StackLockManager:
    """Stack lifecycle built on the test deadline policy."""

    def __init__(self, deadlines: Optional[TestDeadlineManager] = None):
        self.deadlines = deadlines or TestDeadlineManager()

    def on_item_progress(self, stack: Stack, became_mastered: bool) -> Stack:
        """
        Track an item of stack crossing the mastery threshold.

        Args:
            stack: The item's stack.
            became_mastered: True if the item crossed upward, False if it
                was downgraded below the threshold.
        """
        if stack.status != StackStatus.IN_PROGRESS:
            return stack
        delta = 1 if became_mastered else -1
        mastered = min(stack.card_count, max(0, stack.cards_mastered + delta))
        return stack.model_copy(update={"cards_mastered": mastered})

    @staticmethod
    def all_items_mastered(stack: Stack) -> bool:
        return stack.card_count > 0 and stack.cards_mastered >= stack.card_count

    def on_all_items_mastered(
        self,
        stack: Stack,
        outstanding_checks: list[ComprehensionCheck],
        now: datetime,
    ) -> tuple[Stack, ComprehensionCheck]:
        """
        Move a fully mastered stack to PENDING_TEST and open its check.

        Raises:
            StateError: If the stack is not in progress.
            PolicyLimitError: If the user's outstanding check cap is reached.
                The stack is left unchanged.
        """
        if stack.status != StackStatus.IN_PROGRESS:
            logger.error(
                f"on_all_items_mastered called for stack {stack.stack_id} in state {stack.status.value}"
            )
            raise StateError(
                f"Stack {stack.stack_id} is {stack.status.value}, expected in_progress",
                details={"stack_id": stack.stack_id, "status": stack.status.value},
            )

        check = self.deadlines.create_check(
            stack.user_id, stack, outstanding_checks, now
        )
        stack = stack.model_copy(
            update={
                "status": StackStatus.PENDING_TEST,
                "mastery_reached_at": now,
                "test_deadline": check.deadline,
            }
        )
        logger.info(f"Stack {stack.stack_id} fully mastered, pending test")
        return stack, check

    def is_locked(
        self,
        stack: Stack,
        now: datetime,
        check: Optional[ComprehensionCheck] = None,
    ) -> bool:
        """
        True iff the stack awaits its check and is past deadline plus grace.

        A stack whose check is legacy never locks.
        """
        if stack.status != StackStatus.PENDING_TEST or stack.test_deadline is None:
            return False
        if check is not None and check.is_legacy:
            return False
        grace = timedelta(hours=self.deadlines.grace_hours)
        return now > stack.test_deadline + grace

    def on_check_passed(
        self,
        stack: Stack,
        state: UserStreakState,
        now: datetime,
    ) -> tuple[Stack, UserStreakState]:
        """
        Complete a stack whose check passed and release its freeze.

        When the last frozen stack is released the streak deadline is moved
        to the end of tomorrow (local) so the suspended streak survives the
        next normalization. The unfreeze itself does not add a streak day.

        Raises:
            StateError: If the stack is not pending a test.
        """
        if stack.status != StackStatus.PENDING_TEST:
            logger.error(
                f"on_check_passed called for stack {stack.stack_id} in state {stack.status.value}"
            )
            raise StateError(
                f"Stack {stack.stack_id} is {stack.status.value}, expected pending_test",
                details={"stack_id": stack.stack_id, "status": stack.status.value},
            )

        stack = stack.model_copy(
            update={"status": StackStatus.COMPLETED, "contributed_to_streak": True}
        )

        was_frozen = stack.stack_id in state.streak_frozen_stacks
        remaining = state.streak_frozen_stacks - {stack.stack_id}
        updates: dict = {
            "streak_frozen_stacks": remaining,
            "total_stacks_completed": state.total_stacks_completed + 1,
        }

        if was_frozen and not remaining:
            logger.info(f"Streak unfrozen for user {state.user_id} by stack {stack.stack_id}")
            if state.current_streak > 0:
                today = clock.local_date(now, state.timezone)
                hard, display = clock.compute_deadline(today, state.timezone)
                if state.streak_deadline is None or state.streak_deadline < hard:
                    updates.update(streak_deadline=hard, display_deadline=display)

        logger.info(f"Stack {stack.stack_id} completed")
        return stack, state.model_copy(update=updates)

    def deletion_impact(
        self,
        stack: Stack,
        check: Optional[ComprehensionCheck],
        state: UserStreakState,
    ) -> StackDeletionImpact:
        """Describe what deleting stack would do to the user's streak."""

        def impact(warning: DeletionWarning, message: str) -> StackDeletionImpact:
            return StackDeletionImpact(
                requires_warning=warning != DeletionWarning.NONE,
                warning_type=warning,
                current_streak=state.current_streak,
                longest_streak=state.longest_streak,
                message=message,
            )

        if stack.status == StackStatus.COMPLETED:
            return impact(DeletionWarning.NONE, "Stack completed, safe to delete")

        is_current_check = (
            stack.status == StackStatus.PENDING_TEST
            and check is not None
            and not check.is_legacy
        )
        if state.current_streak > 0 and (stack.contributed_to_streak or is_current_check):
            return impact(
                DeletionWarning.STREAK_RESET,
                f"Deleting this stack will reset your {state.current_streak}-day streak to 0. "
                f"Your longest streak of {state.longest_streak} days will remain safe.",
            )

        if stack.status == StackStatus.PENDING_TEST and check is not None and check.is_legacy:
            return impact(
                DeletionWarning.LEGACY_TEST,
                "This stack has a legacy check. Complete it anytime to unlock it. "
                "Deleting won't affect your current streak.",
            )

        return impact(DeletionWarning.NONE, "Safe to delete")
