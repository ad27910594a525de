"""
Unit tests for the streak clock.

Tests calendar arithmetic including:
- Local dates across DST transitions
- New-day detection
- Deadline computation with grace
- ISO week helpers
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from streak_engine.exceptions import ValidationError
from streak_engine.services.streaks import clock
from tests.fakes import NEW_YORK, local_time


class TestTimezones:
    def test_known_zone_is_accepted(self):
        assert clock.validate_timezone("Asia/Tokyo") == "Asia/Tokyo"

    @pytest.mark.parametrize(
        "tz_name",
        ["Mars/Olympus_Mons", "", "not a zone", "../etc/passwd"],
        ids=["unknown", "empty", "garbage", "path"],
    )
    def test_unknown_zone_raises_validation_error(self, tz_name):
        with pytest.raises(ValidationError):
            clock.validate_timezone(tz_name)

    def test_naive_instant_is_rejected(self):
        with pytest.raises(ValidationError):
            clock.local_date(datetime(2024, 1, 1, 12), "UTC")


class TestLocalDate:
    def test_utc_evening_is_next_day_in_tokyo(self):
        instant = datetime(2024, 6, 12, 20, 0, tzinfo=timezone.utc)
        assert clock.local_date(instant, "Asia/Tokyo") == date(2024, 6, 13)

    def test_utc_early_morning_is_previous_day_in_new_york(self):
        instant = datetime(2024, 6, 12, 2, 0, tzinfo=timezone.utc)
        assert clock.local_date(instant, NEW_YORK) == date(2024, 6, 11)

    def test_dst_spring_forward_day(self):
        # 2024-03-10 is 23 hours long in New York
        before = local_time(NEW_YORK, 2024, 3, 10, 1, 59)
        after = before + timedelta(minutes=1)  # 03:00 EDT
        assert clock.local_date(before, NEW_YORK) == date(2024, 3, 10)
        assert clock.local_date(after, NEW_YORK) == date(2024, 3, 10)
        assert after.astimezone(clock.get_zone(NEW_YORK)).hour == 3


class TestIsNewDay:
    def test_none_is_a_new_day(self, now):
        assert clock.is_new_day(None, "UTC", now) is True

    def test_same_day_is_not_new(self, now):
        assert clock.is_new_day(clock.local_date(now, NEW_YORK), NEW_YORK, now) is False

    @pytest.mark.parametrize(
        "start",
        [
            datetime(2024, 3, 9, 12, 0, tzinfo=timezone.utc),  # spring forward
            datetime(2024, 11, 2, 12, 0, tzinfo=timezone.utc),  # fall back
            datetime(2024, 6, 12, 12, 0, tzinfo=timezone.utc),
        ],
        ids=["spring_forward", "fall_back", "summer"],
    )
    def test_flips_exactly_once_per_local_day(self, start):
        """Walk 48 hours in 15 minute steps and count the day boundaries."""
        tz_name = NEW_YORK
        last = clock.local_date(start, tz_name)
        flips = 0
        instant = start
        for _ in range(48 * 4):
            instant += timedelta(minutes=15)
            if clock.is_new_day(last, tz_name, instant):
                flips += 1
                last = clock.local_date(instant, tz_name)
        assert flips == 2


class TestDeadlines:
    def test_local_midnight_ends_the_day(self):
        midnight = clock.local_midnight(date(2024, 6, 12), NEW_YORK)
        assert midnight == local_time(NEW_YORK, 2024, 6, 13, 0, 0)
        assert midnight == datetime(2024, 6, 13, 4, 0, tzinfo=timezone.utc)

    def test_hard_deadline_is_end_of_next_day_plus_grace(self):
        hard, display = clock.compute_deadline(date(2024, 6, 12), NEW_YORK, grace_hours=2)
        assert hard == local_time(NEW_YORK, 2024, 6, 14, 2, 0)
        assert display == local_time(NEW_YORK, 2024, 6, 13, 23, 59, 59)

    def test_default_grace_comes_from_settings(self):
        from streak_engine.config import settings

        hard, _ = clock.compute_deadline(date(2024, 6, 12), "UTC")
        assert hard == datetime(2024, 6, 14, tzinfo=timezone.utc) + timedelta(
            hours=settings.GRACE_PERIOD_HOURS
        )

    def test_deadline_across_spring_forward(self):
        # Qualifying day 2024-03-09; the next day is only 23 hours long
        hard, _ = clock.compute_deadline(date(2024, 3, 9), NEW_YORK, grace_hours=0)
        assert hard == local_time(NEW_YORK, 2024, 3, 11, 0, 0)
        assert hard == datetime(2024, 3, 11, 4, 0, tzinfo=timezone.utc)

    def test_deadline_across_fall_back(self):
        hard, _ = clock.compute_deadline(date(2024, 11, 2), NEW_YORK, grace_hours=0)
        assert hard == datetime(2024, 11, 4, 5, 0, tzinfo=timezone.utc)

    def test_grace_window(self):
        hard, display = clock.compute_deadline(date(2024, 6, 12), "UTC", grace_hours=2)
        assert not clock.is_in_grace_period(display, hard, display)
        assert clock.is_in_grace_period(display, hard, display + timedelta(hours=1))
        assert clock.is_in_grace_period(display, hard, hard)
        assert not clock.is_in_grace_period(display, hard, hard + timedelta(seconds=1))
        assert not clock.is_in_grace_period(None, None, hard)


class TestWeeks:
    @pytest.mark.parametrize(
        "day,expected",
        [
            (date(2024, 12, 23), "2024-W52"),
            (date(2024, 12, 30), "2025-W01"),
            (date(2021, 1, 3), "2020-W53"),
            (date(2024, 6, 12), "2024-W24"),
        ],
        ids=["late_december", "iso_year_rollover", "week_53", "mid_year"],
    )
    def test_iso_week_id(self, day, expected):
        assert clock.iso_week_id(day) == expected

    def test_week_starts_on_monday(self):
        assert clock.week_start(date(2024, 6, 12)) == date(2024, 6, 10)
        assert clock.week_start(date(2024, 6, 10)) == date(2024, 6, 10)
        assert clock.week_start(date(2024, 6, 16)) == date(2024, 6, 10)
