"""
Test doubles for the streak service.

InMemoryStreakRepository implements the StreakRepository protocol over
plain dicts with commit/rollback semantics, so service tests run without a
database. MutableClock is an injectable trusted clock.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from streak_engine.enums.streaks import CheckOutcome, StackStatus
from streak_engine.exceptions import ConflictError
from streak_engine.models.streaks import (
    ComprehensionCheck,
    ItemMasteryRecord,
    Stack,
    UserStreakState,
    WeeklyStats,
)
from streak_engine.services.streaks.processor import UserSnapshot

NEW_YORK = "America/New_York"


def local_time(tz_name: str, *args: int) -> datetime:
    """UTC instant for a wall clock time, e.g. local_time(NEW_YORK, 2024, 3, 9, 23)."""
    return datetime(*args, tzinfo=ZoneInfo(tz_name)).astimezone(timezone.utc)


class MutableClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class _Store:
    def __init__(self):
        self.states: dict[str, tuple[UserStreakState, WeeklyStats]] = {}
        self.stacks: dict[str, Stack] = {}
        self.checks: dict[str, ComprehensionCheck] = {}
        self.items: dict[str, ItemMasteryRecord] = {}

    def copy(self) -> "_Store":
        other = _Store()
        other.states = dict(self.states)
        other.stacks = dict(self.stacks)
        other.checks = dict(self.checks)
        other.items = dict(self.items)
        return other


class InMemoryStreakRepository:
    """
    Dict-backed StreakRepository.

    Writes go to a working copy that commit() publishes and rollback()
    discards. Setting conflicts_on_commit to N makes the next N commits
    raise ConflictError, as a lost optimistic concurrency race would.
    """

    def __init__(self):
        self._committed = _Store()
        self._working = _Store()
        self.conflicts_on_commit = 0
        self.commits = 0
        self.rollbacks = 0

    # Seeding helpers ---------------------------------------------------

    def seed_state(self, state: UserStreakState, weekly: Optional[WeeklyStats] = None) -> None:
        self._committed.states[state.user_id] = (state, weekly or WeeklyStats())
        self._working = self._committed.copy()

    def seed_stack(self, stack: Stack, items: Iterable[ItemMasteryRecord] = ()) -> None:
        self._committed.stacks[stack.stack_id] = stack
        for record in items:
            self._committed.items[record.item_id] = record
        self._working = self._committed.copy()

    def seed_check(self, check: ComprehensionCheck) -> None:
        self._committed.checks[check.check_id] = check
        self._working = self._committed.copy()

    # Committed views ----------------------------------------------------

    def committed_state(self, user_id: str) -> Optional[UserStreakState]:
        entry = self._committed.states.get(user_id)
        return entry[0] if entry else None

    def committed_weekly(self, user_id: str) -> Optional[WeeklyStats]:
        entry = self._committed.states.get(user_id)
        return entry[1] if entry else None

    def committed_stack(self, stack_id: str) -> Optional[Stack]:
        return self._committed.stacks.get(stack_id)

    def committed_item(self, item_id: str) -> Optional[ItemMasteryRecord]:
        return self._committed.items.get(item_id)

    def committed_checks(self, user_id: str) -> list[ComprehensionCheck]:
        return [c for c in self._committed.checks.values() if c.user_id == user_id]

    # StreakRepository ---------------------------------------------------

    async def load_snapshot(
        self,
        user_id: str,
        item_ids: Iterable[str] = (),
        stack_ids: Iterable[str] = (),
        check_ids: Iterable[str] = (),
        for_update: bool = True,
    ) -> UserSnapshot:
        store = self._working
        item_ids, stack_ids, check_ids = set(item_ids), set(stack_ids), set(check_ids)
        state, weekly = store.states.get(
            user_id, (UserStreakState(user_id=user_id), WeeklyStats())
        )

        checks = {
            cid: c
            for cid, c in store.checks.items()
            if c.user_id == user_id
            and (
                c.outcome != CheckOutcome.PASSED
                or cid in check_ids
                or c.stack_id in stack_ids
            )
        }
        wanted_stacks = stack_ids | {c.stack_id for c in checks.values()}
        stacks = {
            sid: s
            for sid, s in store.stacks.items()
            if s.user_id == user_id
            and (s.status != StackStatus.COMPLETED or sid in wanted_stacks)
        }
        items = {
            iid: r
            for iid, r in store.items.items()
            if r.user_id == user_id and iid in item_ids
        }
        return UserSnapshot(state=state, weekly=weekly, stacks=stacks, checks=checks, items=items)

    async def user_exists(self, user_id: str) -> bool:
        return user_id in self._working.states

    async def get_stack(self, stack_id: str) -> Optional[Stack]:
        return self._working.stacks.get(stack_id)

    async def get_item(self, item_id: str) -> Optional[ItemMasteryRecord]:
        return self._working.items.get(item_id)

    async def get_check(self, check_id: str) -> Optional[ComprehensionCheck]:
        return self._working.checks.get(check_id)

    async def add_stack(self, stack: Stack, items: list[ItemMasteryRecord]) -> None:
        self._working.stacks[stack.stack_id] = stack
        for record in items:
            self._working.items[record.item_id] = record

    async def save_snapshot(self, snapshot: UserSnapshot) -> None:
        store = self._working
        store.states[snapshot.state.user_id] = (snapshot.state, snapshot.weekly)
        for stack_id in snapshot.deleted_stacks:
            store.stacks.pop(stack_id, None)
            store.checks = {k: c for k, c in store.checks.items() if c.stack_id != stack_id}
            store.items = {k: r for k, r in store.items.items() if r.stack_id != stack_id}
        store.stacks.update(snapshot.stacks)
        store.checks.update(snapshot.checks)
        store.items.update(snapshot.items)

    async def commit(self) -> None:
        if self.conflicts_on_commit > 0:
            self.conflicts_on_commit -= 1
            raise ConflictError("Concurrent update detected, please retry")
        self._committed = self._working.copy()
        self.commits += 1

    async def rollback(self) -> None:
        self._working = self._committed.copy()
        self.rollbacks += 1
