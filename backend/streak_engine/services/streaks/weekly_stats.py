"""
Weekly Stats Aggregator

Counts mastered items per ISO week (Monday start, user's local time) and
keeps a rotating history of archived weeks for trend display.

Anti-farming cap: once a week reaches settings.WEEKLY_CARD_CAP further items
are ignored. That is a policy outcome, not an error, and is only logged at
debug level.

Usage:
    from streak_engine.services.streaks.weekly_stats import WeeklyStatsAggregator

    aggregator = WeeklyStatsAggregator()
    stats, counted = aggregator.on_card_counted(stats, now, "Europe/Berlin")
    average = aggregator.weekly_average(stats.weekly_cards_history)
"""

import logging
from datetime import datetime
from typing import Optional

from streak_engine.config import settings
from streak_engine.models.streaks import WeeklyCardEntry, WeeklyStats
from streak_engine.services.streaks import clock

logger = logging.getLogger(__name__)


class WeeklyStatsAggregator:
    """
    Weekly counter with capped, rotating history.

    Attributes:
        cap: Maximum items counted per week
        history_limit: Archived weeks kept
        average_window: Archived weeks averaged by weekly_average()
    """

    def __init__(
        self,
        cap: Optional[int] = None,
        history_limit: Optional[int] = None,
        average_window: Optional[int] = None,
    ):
        self.cap = cap if cap is not None else settings.WEEKLY_CARD_CAP
        self.history_limit = (
            history_limit if history_limit is not None else settings.WEEKLY_HISTORY_LIMIT
        )
        self.average_window = (
            average_window if average_window is not None else settings.WEEKLY_AVERAGE_WINDOW
        )

    def rollover(self, stats: WeeklyStats, now: datetime, tz_name: str) -> WeeklyStats:
        """
        Archive the stored week if a later ISO week has started.

        Weeks skipped without activity are not archived. A local week that
        moved backwards (timezone change) keeps counting into the stored week.
        """
        this_week = clock.week_start(clock.local_date(now, tz_name))

        if stats.current_week_start is None:
            return stats.model_copy(update={"current_week_start": this_week})
        if this_week <= stats.current_week_start:
            return stats

        entry = WeeklyCardEntry(
            week_id=clock.iso_week_id(stats.current_week_start),
            count=stats.current_week_cards,
            archived_at=now,
        )
        history = [*stats.weekly_cards_history, entry][-self.history_limit :]
        logger.debug(f"Archived week {entry.week_id} with {entry.count} items")

        return stats.model_copy(
            update={
                "current_week_cards": 0,
                "current_week_start": this_week,
                "weekly_cards_history": history,
            }
        )

    def on_card_counted(
        self, stats: WeeklyStats, now: datetime, tz_name: str
    ) -> tuple[WeeklyStats, bool]:
        """
        Count one mastered item toward the current week.

        Returns:
            (stats, counted). counted is False when the week is at the cap.
        """
        stats = self.rollover(stats, now, tz_name)
        if stats.current_week_cards >= self.cap:
            logger.debug(f"Weekly cap of {self.cap} reached, item not counted")
            return stats, False
        return (
            stats.model_copy(update={"current_week_cards": stats.current_week_cards + 1}),
            True,
        )

    def weekly_average(self, history: list[WeeklyCardEntry]) -> float:
        """Mean count of the last average_window archived weeks, 0 if none."""
        recent = history[-self.average_window :]
        if not recent:
            return 0.0
        return sum(entry.count for entry in recent) / len(recent)

    def is_at_cap(self, stats: WeeklyStats) -> bool:
        return stats.current_week_cards >= self.cap
