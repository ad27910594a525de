"""
Streak System Services

The mastery and streak state machine plus the service that persists it.

Modules:
- clock: local dates, deadlines and ISO weeks per IANA timezone
- scheduler: SM-2 style item scheduling from 1-5 ratings
- ledger: daily counter and streak accrual
- test_deadlines: comprehension check creation, cap and freeze policy
- stack_lock: stack lifecycle and locking
- weekly_stats: capped weekly counter and rotating history
- processor: pure orchestration over a user snapshot
- repository: SQLAlchemy persistence of snapshots
- service: load / apply / commit with conflict retry

Usage:
    from streak_engine.services.streaks import RatingProcessor, UserSnapshot
"""

from streak_engine.services.streaks.ledger import MasteryLedger
from streak_engine.services.streaks.processor import RatingProcessor, UserSnapshot
from streak_engine.services.streaks.scheduler import SpacedRepetitionScheduler
from streak_engine.services.streaks.stack_lock import StackLockManager
from streak_engine.services.streaks.test_deadlines import TestDeadlineManager
from streak_engine.services.streaks.weekly_stats import WeeklyStatsAggregator

__all__ = [
    "MasteryLedger",
    "RatingProcessor",
    "SpacedRepetitionScheduler",
    "StackLockManager",
    "TestDeadlineManager",
    "UserSnapshot",
    "WeeklyStatsAggregator",
]
