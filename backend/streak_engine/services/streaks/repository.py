"""
Streak Repository

Loads and stores UserSnapshots for the streak service.

Per-user mutual exclusion:
    load_snapshot(for_update=True) takes a row lock on the user's
    user_streak_state row (SELECT ... FOR UPDATE) so ratings for the same
    user are applied one at a time. The version columns on user_streak_state
    and stacks are a second line of defense: a stale write raises
    StaleDataError, reported as ConflictError and retried by the service.

Usage:
    async with async_session_maker() as session:
        repo = SqlStreakRepository(session)
        snapshot = await repo.load_snapshot(user_id, item_ids=[item_id])
        ...
        await repo.save_snapshot(snapshot)
        await repo.commit()
"""

import logging
from collections.abc import Iterable
from typing import Any, Optional, Protocol

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from streak_engine.enums.streaks import CheckOutcome, StackStatus
from streak_engine.db.models import (
    ComprehensionCheckRow,
    ItemMasteryRecordRow,
    StackRow,
    UserStreakStateRow,
)
from streak_engine.exceptions import ConflictError
from streak_engine.models.streaks import (
    ComprehensionCheck,
    ItemMasteryRecord,
    Stack,
    UserStreakState,
    WeeklyCardEntry,
    WeeklyStats,
)
from streak_engine.services.streaks.processor import UserSnapshot

logger = logging.getLogger(__name__)


class StreakRepository(Protocol):
    """Persistence operations the streak service depends on."""

    async def load_snapshot(
        self,
        user_id: str,
        item_ids: Iterable[str] = (),
        stack_ids: Iterable[str] = (),
        check_ids: Iterable[str] = (),
        for_update: bool = True,
    ) -> UserSnapshot: ...

    async def user_exists(self, user_id: str) -> bool: ...

    async def get_stack(self, stack_id: str) -> Optional[Stack]: ...

    async def get_item(self, item_id: str) -> Optional[ItemMasteryRecord]: ...

    async def get_check(self, check_id: str) -> Optional[ComprehensionCheck]: ...

    async def add_stack(self, stack: Stack, items: list[ItemMasteryRecord]) -> None: ...

    async def save_snapshot(self, snapshot: UserSnapshot) -> None: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


# ===========================================
# Row <-> snapshot conversion
# ===========================================


def state_from_row(row: UserStreakStateRow) -> UserStreakState:
    return UserStreakState.model_validate(row)


def weekly_from_row(row: UserStreakStateRow) -> WeeklyStats:
    return WeeklyStats(
        current_week_cards=row.current_week_cards or 0,
        current_week_start=row.current_week_start,
        weekly_cards_history=[
            WeeklyCardEntry.model_validate(entry)
            for entry in (row.weekly_cards_history or [])
        ],
    )


def apply_state(row: UserStreakStateRow, state: UserStreakState, weekly: WeeklyStats) -> None:
    values = state.model_dump(exclude={"user_id", "streak_frozen", "streak_frozen_stacks"})
    for key, value in values.items():
        setattr(row, key, value)
    row.streak_frozen_stacks = sorted(state.streak_frozen_stacks)

    row.current_week_cards = weekly.current_week_cards
    row.current_week_start = weekly.current_week_start
    row.weekly_cards_history = [
        entry.model_dump(mode="json") for entry in weekly.weekly_cards_history
    ]


def _apply(row: Any, model: Any, exclude: set[str]) -> None:
    for key, value in model.model_dump(exclude=exclude).items():
        setattr(row, key, value)


def apply_stack(row: StackRow, stack: Stack) -> None:
    _apply(row, stack, {"stack_id"})
    row.status = stack.status.value


def apply_check(row: ComprehensionCheckRow, check: ComprehensionCheck) -> None:
    _apply(row, check, {"check_id"})
    row.outcome = check.outcome.value


def apply_item(row: ItemMasteryRecordRow, record: ItemMasteryRecord) -> None:
    _apply(row, record, {"item_id", "is_mastered"})


# ===========================================
# SQLAlchemy repository
# ===========================================


class SqlStreakRepository:
    """
    StreakRepository backed by an AsyncSession.

    Rows loaded through load_snapshot() are remembered so save_snapshot()
    can update them in place (keeping their version counters) instead of
    issuing fresh INSERTs.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self._rows: dict[tuple[type, str], Any] = {}

    def _remember(self, row: Any, key: str) -> Any:
        self._rows[(type(row), key)] = row
        return row

    async def load_snapshot(
        self,
        user_id: str,
        item_ids: Iterable[str] = (),
        stack_ids: Iterable[str] = (),
        check_ids: Iterable[str] = (),
        for_update: bool = True,
    ) -> UserSnapshot:
        """
        Load everything needed to decide one event for user_id.

        Includes the user's unresolved checks, the user's unfinished stacks,
        and the explicitly requested items, stacks and checks. A user with no
        row yet gets default state; it is inserted on save.
        """
        item_ids, stack_ids, check_ids = list(item_ids), list(stack_ids), list(check_ids)

        state_row = await self.db.get(
            UserStreakStateRow, user_id, with_for_update=for_update
        )
        if state_row is not None:
            self._remember(state_row, user_id)
            state = state_from_row(state_row)
            weekly = weekly_from_row(state_row)
        else:
            state = UserStreakState(user_id=user_id)
            weekly = WeeklyStats()

        check_filter = [ComprehensionCheckRow.outcome != CheckOutcome.PASSED.value]
        if check_ids:
            check_filter.append(ComprehensionCheckRow.check_id.in_(check_ids))
        if stack_ids:
            check_filter.append(ComprehensionCheckRow.stack_id.in_(stack_ids))
        check_rows = (
            await self.db.execute(
                select(ComprehensionCheckRow).where(
                    ComprehensionCheckRow.user_id == user_id, or_(*check_filter)
                )
            )
        ).scalars().all()

        wanted_stacks = set(stack_ids) | {row.stack_id for row in check_rows}
        stack_filter = [StackRow.status != StackStatus.COMPLETED.value]
        if wanted_stacks:
            stack_filter.append(StackRow.stack_id.in_(wanted_stacks))
        stack_rows = (
            await self.db.execute(
                select(StackRow).where(StackRow.user_id == user_id, or_(*stack_filter))
            )
        ).scalars().all()

        item_rows = []
        if item_ids:
            item_rows = (
                await self.db.execute(
                    select(ItemMasteryRecordRow).where(
                        ItemMasteryRecordRow.user_id == user_id,
                        ItemMasteryRecordRow.item_id.in_(item_ids),
                    )
                )
            ).scalars().all()

        return UserSnapshot(
            state=state,
            weekly=weekly,
            stacks={
                row.stack_id: Stack.model_validate(self._remember(row, row.stack_id))
                for row in stack_rows
            },
            checks={
                row.check_id: ComprehensionCheck.model_validate(
                    self._remember(row, row.check_id)
                )
                for row in check_rows
            },
            items={
                row.item_id: ItemMasteryRecord.model_validate(
                    self._remember(row, row.item_id)
                )
                for row in item_rows
            },
        )

    async def user_exists(self, user_id: str) -> bool:
        return await self.db.get(UserStreakStateRow, user_id) is not None

    async def get_stack(self, stack_id: str) -> Optional[Stack]:
        row = await self.db.get(StackRow, stack_id)
        return Stack.model_validate(row) if row else None

    async def get_item(self, item_id: str) -> Optional[ItemMasteryRecord]:
        row = await self.db.get(ItemMasteryRecordRow, item_id)
        return ItemMasteryRecord.model_validate(row) if row else None

    async def get_check(self, check_id: str) -> Optional[ComprehensionCheck]:
        row = await self.db.get(ComprehensionCheckRow, check_id)
        return ComprehensionCheck.model_validate(row) if row else None

    async def add_stack(self, stack: Stack, items: list[ItemMasteryRecord]) -> None:
        stack_row = StackRow(stack_id=stack.stack_id)
        apply_stack(stack_row, stack)
        self.db.add(stack_row)
        for record in items:
            item_row = ItemMasteryRecordRow(item_id=record.item_id)
            apply_item(item_row, record)
            self.db.add(item_row)
        await self._flush()

    async def save_snapshot(self, snapshot: UserSnapshot) -> None:
        """Write every record of snapshot back to its row."""
        user_id = snapshot.state.user_id

        state_row = self._rows.get((UserStreakStateRow, user_id))
        if state_row is None:
            state_row = self._remember(UserStreakStateRow(user_id=user_id), user_id)
            self.db.add(state_row)
        apply_state(state_row, snapshot.state, snapshot.weekly)

        for stack_id in snapshot.deleted_stacks:
            await self.db.execute(
                delete(ComprehensionCheckRow).where(ComprehensionCheckRow.stack_id == stack_id)
            )
            await self.db.execute(
                delete(ItemMasteryRecordRow).where(ItemMasteryRecordRow.stack_id == stack_id)
            )
            row = self._rows.pop((StackRow, stack_id), None)
            if row is not None:
                await self.db.delete(row)

        for stack in snapshot.stacks.values():
            apply_stack(self._row_for(StackRow, stack.stack_id), stack)
        for check in snapshot.checks.values():
            apply_check(self._row_for(ComprehensionCheckRow, check.check_id), check)
        for record in snapshot.items.values():
            apply_item(self._row_for(ItemMasteryRecordRow, record.item_id), record)

        await self._flush()

    def _row_for(self, row_type: type, key: str) -> Any:
        row = self._rows.get((row_type, key))
        if row is None:
            pk = row_type.__mapper__.primary_key[0].name
            row = self._remember(row_type(**{pk: key}), key)
            self.db.add(row)
        return row

    async def _flush(self) -> None:
        try:
            await self.db.flush()
        except (StaleDataError, IntegrityError) as e:
            raise ConflictError(
                "Concurrent update detected, please retry", details={"cause": str(e)}
            ) from e

    async def commit(self) -> None:
        try:
            await self.db.commit()
        except (StaleDataError, IntegrityError) as e:
            raise ConflictError(
                "Concurrent update detected, please retry", details={"cause": str(e)}
            ) from e
        finally:
            self._rows.clear()

    async def rollback(self) -> None:
        self._rows.clear()
        await self.db.rollback()
