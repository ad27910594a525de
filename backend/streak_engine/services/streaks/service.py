"""
Streak Service

Entry point for collaborators: applies rating and check events to a user's
state and answers status queries.

Responsibilities:
- Load a user snapshot under a row lock, run the streak core, persist
- Retry units of work that lose an optimistic concurrency race
- Materialize lazy transitions (day rollover, streak loss, check expiry)
  on reads without writing them

The trusted clock is the server's. Timestamps carried by events are only
logged.

Usage:
    from streak_engine.services.streaks.service import StreakService

    service = StreakService(SqlStreakRepository(db))
    outcome = await service.process_rating(event)
    status = await service.get_streak_status(user_id)
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Optional, TypeVar

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from streak_engine.config import settings
from streak_engine.exceptions import ConflictError, NotFoundError, StateError
from streak_engine.models.streaks import (
    CheckOutcomeEvent,
    CheckOutcomeResult,
    ComprehensionCheck,
    DowngradeImpact,
    ItemMasteryRecord,
    RatingEvent,
    RatingOutcome,
    Stack,
    StackCreate,
    StackDeletionImpact,
    StackStatusResponse,
    StreakStatus,
    TimezoneUpdate,
    WeeklyStatsResponse,
)
from streak_engine.services.streaks import clock
from streak_engine.services.streaks.processor import RatingProcessor, UserSnapshot
from streak_engine.services.streaks.repository import StreakRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# Lost optimistic concurrency races: a few quick attempts, then surface
conflict_retry = retry(
    stop=stop_after_attempt(settings.CONFLICT_MAX_RETRIES),
    wait=wait_exponential(multiplier=0.05, min=0.05, max=0.5),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    retry=retry_if_exception_type(ConflictError),
    reraise=True,
)


class StreakService:
    """
    Service for streak, stack and weekly accounting.

    Attributes:
        repo: Persistence for user snapshots
        processor: The pure streak core
        clock: Returns the trusted current UTC time
    """

    def __init__(
        self,
        repo: StreakRepository,
        processor: Optional[RatingProcessor] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repo = repo
        self.processor = processor or RatingProcessor()
        self.clock = clock or _utc_now

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @conflict_retry
    async def _run(self, work: Callable[[], Awaitable[T]]) -> T:
        """Run work and commit, rolling back on any failure."""
        try:
            result = await work()
            await self.repo.commit()
            return result
        except StateError as e:
            logger.error(f"Invalid state transition: {e.message}")
            await self.repo.rollback()
            raise
        except Exception:
            await self.repo.rollback()
            raise

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def process_rating(self, event: RatingEvent) -> RatingOutcome:
        """
        Apply a rating event.

        Raises:
            NotFoundError: If the item doesn't exist for the user.
            ValidationError: If the rating is out of range.
            ConflictError: If concurrent writes kept winning the race.
        """
        if event.timestamp is not None:
            logger.debug(
                f"Rating for item {event.item_id} reported at {event.timestamp.isoformat()}"
            )

        async def work() -> RatingOutcome:
            now = self.clock()
            snapshot = await self.repo.load_snapshot(event.user_id, item_ids=[event.item_id])
            snapshot, outcome = self.processor.process_rating(
                snapshot, event.item_id, event.rating, now
            )
            await self.repo.save_snapshot(snapshot)
            return outcome

        outcome = await self._run(work)
        logger.info(
            f"Rating {event.rating} for item {event.item_id} (user {event.user_id}): "
            f"mastered={outcome.mastered}, today={outcome.cards_mastered_today}, "
            f"streak={outcome.current_streak}"
        )
        return outcome

    async def record_check_outcome(
        self, check_id: str, event: CheckOutcomeEvent
    ) -> CheckOutcomeResult:
        """
        Apply the result of a comprehension check attempt.

        Raises:
            NotFoundError: If the check doesn't exist.
            StateError: If the check already passed.
        """

        async def work() -> CheckOutcomeResult:
            check = await self.repo.get_check(check_id)
            if check is None:
                raise NotFoundError(
                    f"Check {check_id} not found", details={"check_id": check_id}
                )
            snapshot = await self.repo.load_snapshot(
                check.user_id, check_ids=[check_id], stack_ids=[check.stack_id]
            )
            snapshot, result = self.processor.process_check_outcome(
                snapshot, check_id, event.outcome, self.clock()
            )
            await self.repo.save_snapshot(snapshot)
            return result

        result = await self._run(work)
        logger.info(f"Check {check_id} attempt: {event.outcome.value} ({result.message})")
        return result

    async def set_timezone(self, user_id: str, update: TimezoneUpdate) -> StreakStatus:
        """
        Change the timezone a user's days are counted in.

        Pending rollovers are settled in the old timezone first.
        """

        async def work() -> StreakStatus:
            now = self.clock()
            snapshot = self.processor.sweep(await self.repo.load_snapshot(user_id), now)
            snapshot.state = snapshot.state.model_copy(update={"timezone": update.timezone})
            snapshot = self.processor.sweep(snapshot, now)
            await self.repo.save_snapshot(snapshot)
            return self._streak_status(snapshot, now)

        status = await self._run(work)
        logger.info(f"Timezone for user {user_id} set to {update.timezone}")
        return status

    async def create_stack(self, request: StackCreate) -> StackStatusResponse:
        """
        Register a stack and its items.

        Raises:
            StateError: If the stack or one of its items already exists.
        """

        async def work() -> StackStatusResponse:
            if await self.repo.get_stack(request.stack_id) is not None:
                raise StateError(
                    f"Stack {request.stack_id} already exists",
                    details={"stack_id": request.stack_id},
                )
            item_ids = list(dict.fromkeys(request.item_ids))
            for item_id in item_ids:
                if await self.repo.get_item(item_id) is not None:
                    raise StateError(
                        f"Item {item_id} already exists", details={"item_id": item_id}
                    )

            if not await self.repo.user_exists(request.user_id):
                snapshot = await self.repo.load_snapshot(request.user_id)
                await self.repo.save_snapshot(snapshot)

            stack = Stack(
                stack_id=request.stack_id,
                user_id=request.user_id,
                name=request.name,
                card_count=len(item_ids),
            )
            items = [
                ItemMasteryRecord(
                    item_id=item_id, user_id=request.user_id, stack_id=stack.stack_id
                )
                for item_id in item_ids
            ]
            await self.repo.add_stack(stack, items)
            return self._stack_status(stack, self.clock())

        status = await self._run(work)
        logger.info(f"Created stack {request.stack_id} with {status.card_count} items")
        return status

    async def delete_stack(self, stack_id: str) -> StackDeletionImpact:
        """
        Delete an unfinished stack, resetting the streak if it protects it.

        Raises:
            NotFoundError: If the stack doesn't exist.
            StateError: If the stack is completed.
        """

        async def work() -> StackDeletionImpact:
            stack = await self._require_stack(stack_id)
            snapshot = await self.repo.load_snapshot(stack.user_id, stack_ids=[stack_id])
            snapshot, impact = self.processor.delete_stack(snapshot, stack_id, self.clock())
            await self.repo.save_snapshot(snapshot)
            return impact

        return await self._run(work)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _read_snapshot(self, user_id: str, **kwargs) -> tuple[UserSnapshot, datetime]:
        """Load and normalize a snapshot without locking or persisting it."""
        now = self.clock()
        snapshot = await self.repo.load_snapshot(user_id, for_update=False, **kwargs)
        return self.processor.sweep(snapshot, now), now

    async def get_streak_status(self, user_id: str) -> StreakStatus:
        """Streak status as of now. Unknown users read as a fresh state."""
        snapshot, now = await self._read_snapshot(user_id)
        return self._streak_status(snapshot, now)

    async def get_weekly_stats(self, user_id: str) -> WeeklyStatsResponse:
        snapshot, _ = await self._read_snapshot(user_id)
        weekly = snapshot.weekly
        return WeeklyStatsResponse(
            current_week_cards=weekly.current_week_cards,
            weekly_average=self.processor.weekly.weekly_average(weekly.weekly_cards_history),
            is_at_cap=self.processor.weekly.is_at_cap(weekly),
        )

    async def get_stack_status(self, stack_id: str) -> StackStatusResponse:
        """
        Raises:
            NotFoundError: If the stack doesn't exist.
        """
        stack = await self._require_stack(stack_id)
        snapshot, now = await self._read_snapshot(stack.user_id, stack_ids=[stack_id])
        return self._stack_status(
            snapshot.stacks.get(stack_id, stack), now, snapshot.check_for_stack(stack_id)
        )

    async def get_deletion_impact(self, stack_id: str) -> StackDeletionImpact:
        stack = await self._require_stack(stack_id)
        snapshot = await self.repo.load_snapshot(
            stack.user_id, stack_ids=[stack_id], for_update=False
        )
        return self.processor.deletion_impact(snapshot, stack_id, self.clock())

    async def get_downgrade_impact(self, item_id: str) -> DowngradeImpact:
        """
        Raises:
            NotFoundError: If the item doesn't exist.
        """
        record = await self.repo.get_item(item_id)
        if record is None:
            raise NotFoundError(f"Item {item_id} not found", details={"item_id": item_id})
        snapshot, now = await self._read_snapshot(record.user_id)
        return self.processor.ledger.downgrade_impact(snapshot.state, record, now)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require_stack(self, stack_id: str) -> Stack:
        stack = await self.repo.get_stack(stack_id)
        if stack is None:
            raise NotFoundError(f"Stack {stack_id} not found", details={"stack_id": stack_id})
        return stack

    def _streak_status(self, snapshot: UserSnapshot, now: datetime) -> StreakStatus:
        state = snapshot.state
        return StreakStatus(
            user_id=state.user_id,
            current_streak=state.current_streak,
            longest_streak=state.longest_streak,
            cards_mastered_today=state.cards_mastered_today,
            cards_needed=self.processor.ledger.cards_needed(state),
            streak_deadline=state.streak_deadline,
            display_deadline=state.display_deadline,
            streak_frozen=state.streak_frozen,
            frozen_stack_ids=sorted(state.streak_frozen_stacks),
            is_in_grace=clock.is_in_grace_period(
                state.display_deadline, state.streak_deadline, now
            ),
            timezone=state.timezone,
        )

    def _stack_status(
        self,
        stack: Stack,
        now: datetime,
        check: Optional[ComprehensionCheck] = None,
    ) -> StackStatusResponse:
        return StackStatusResponse(
            stack_id=stack.stack_id,
            status=stack.status,
            card_count=stack.card_count,
            cards_mastered=stack.cards_mastered,
            mastery_reached_at=stack.mastery_reached_at,
            test_deadline=stack.test_deadline,
            locked=self.processor.stack_lock.is_locked(stack, now, check),
        )
