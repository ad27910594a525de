"""
Unit tests for the weekly stats aggregator.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from streak_engine.models.streaks import WeeklyCardEntry, WeeklyStats
from streak_engine.services.streaks.weekly_stats import WeeklyStatsAggregator
from tests.fakes import NEW_YORK, local_time


@pytest.fixture
def aggregator():
    return WeeklyStatsAggregator(cap=500, history_limit=12, average_window=4)


def entry(count: int, week: int = 1) -> WeeklyCardEntry:
    return WeeklyCardEntry(
        week_id=f"2024-W{week:02d}",
        count=count,
        archived_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


class TestCounting:
    def test_first_count_starts_the_week(self, aggregator, now):
        stats, counted = aggregator.on_card_counted(WeeklyStats(), now, "UTC")
        assert counted is True
        assert stats.current_week_cards == 1
        assert stats.current_week_start == date(2024, 6, 10)

    def test_scenario_cap_is_silent(self, aggregator, now):
        """499 items plus two more caps at 500 without raising."""
        stats = WeeklyStats(current_week_cards=499, current_week_start=date(2024, 6, 10))
        stats, first = aggregator.on_card_counted(stats, now, "UTC")
        stats, second = aggregator.on_card_counted(stats, now, "UTC")

        assert first is True
        assert second is False
        assert stats.current_week_cards == 500
        assert aggregator.is_at_cap(stats) is True


class TestRollover:
    def test_new_week_archives_previous(self, aggregator, now):
        stats = WeeklyStats(current_week_cards=42, current_week_start=date(2024, 6, 10))
        next_monday = datetime(2024, 6, 17, 0, 30, tzinfo=timezone.utc)
        stats, _ = aggregator.on_card_counted(stats, next_monday, "UTC")

        assert stats.current_week_cards == 1
        assert stats.current_week_start == date(2024, 6, 17)
        assert [(e.week_id, e.count) for e in stats.weekly_cards_history] == [("2024-W24", 42)]

    def test_week_boundary_uses_local_time(self, aggregator):
        stats = WeeklyStats(current_week_cards=3, current_week_start=date(2024, 6, 10))
        # Monday 01:00 UTC is still Sunday evening in New York
        instant = local_time(NEW_YORK, 2024, 6, 16, 21, 0)
        assert aggregator.rollover(stats, instant, NEW_YORK) is stats

    def test_cap_resets_in_a_new_week(self, aggregator, now):
        stats = WeeklyStats(current_week_cards=500, current_week_start=date(2024, 6, 10))
        stats, counted = aggregator.on_card_counted(stats, now + timedelta(days=7), "UTC")
        assert counted is True
        assert stats.current_week_cards == 1
        assert stats.weekly_cards_history[-1].count == 500

    def test_earlier_week_does_not_archive(self, aggregator, now):
        stats = WeeklyStats(current_week_cards=5, current_week_start=date(2024, 6, 17))
        assert aggregator.rollover(stats, now, "UTC") is stats

    def test_history_keeps_the_most_recent_weeks(self, aggregator):
        stats = WeeklyStats(
            current_week_cards=99,
            current_week_start=date(2024, 6, 10),
            weekly_cards_history=[entry(i, week=i + 1) for i in range(12)],
        )
        stats = aggregator.rollover(stats, datetime(2024, 6, 18, tzinfo=timezone.utc), "UTC")

        assert len(stats.weekly_cards_history) == 12
        assert stats.weekly_cards_history[0].count == 1
        assert stats.weekly_cards_history[-1].count == 99


class TestAverage:
    def test_empty_history(self, aggregator):
        assert aggregator.weekly_average([]) == 0.0

    def test_uses_last_four_weeks(self, aggregator):
        history = [entry(c) for c in (1000, 10, 20, 30, 41)]
        assert aggregator.weekly_average(history) == pytest.approx(25.25)

    def test_fewer_weeks_than_window(self, aggregator):
        assert aggregator.weekly_average([entry(10), entry(20)]) == pytest.approx(15.0)
