"""
Unit tests for the spaced repetition scheduler.

Tests SM-2 style scheduling including:
- First review interval
- Interval growth, hold and reset per rating
- Ease factor bounds
- Mastery level saturation
- Rating validation
"""

from datetime import timedelta

import pytest

from streak_engine.config import settings
from streak_engine.exceptions import ValidationError
from streak_engine.services.streaks.scheduler import SpacedRepetitionScheduler


@pytest.fixture
def scheduler():
    return SpacedRepetitionScheduler()


@pytest.fixture
def reviewed(make_record):
    """An item already reviewed several times."""
    return make_record(interval_days=10, ease_factor=2.5, review_count=4, mastery_level=2)


class TestFirstReview:
    @pytest.mark.parametrize("rating", [1, 2, 3, 4, 5])
    def test_first_review_is_always_one_day(self, scheduler, make_record, now, rating):
        record = scheduler.record_rating(make_record(), rating, now)
        assert record.interval_days == 1
        assert record.next_review_date == now + timedelta(days=1)
        assert record.review_count == 1


class TestIntervals:
    @pytest.mark.parametrize("rating", [1, 2], ids=["really_dont_know", "dont_know"])
    def test_low_rating_resets_interval(self, scheduler, reviewed, now, rating):
        record = scheduler.record_rating(reviewed, rating, now)
        assert record.interval_days == 1
        assert record.ease_factor < reviewed.ease_factor

    def test_neutral_holds_interval_and_lowers_ease(self, scheduler, reviewed, now):
        record = scheduler.record_rating(reviewed, 3, now)
        assert record.interval_days == 10
        assert record.ease_factor == pytest.approx(2.36)
        assert record.mastery_level == reviewed.mastery_level

    @pytest.mark.parametrize(
        "rating,ease",
        [(4, 2.55), (5, 2.6)],
        ids=["kinda_know", "really_know"],
    )
    def test_high_rating_grows_interval_and_ease(self, scheduler, reviewed, now, rating, ease):
        record = scheduler.record_rating(reviewed, rating, now)
        assert record.interval_days == 25  # 10 * 2.5
        assert record.ease_factor == pytest.approx(ease)
        assert record.next_review_date == now + timedelta(days=25)

    def test_interval_rounds_half_up(self, scheduler, make_record, now):
        record = make_record(interval_days=3, ease_factor=2.5, review_count=2)
        assert scheduler.record_rating(record, 4, now).interval_days == 8  # 7.5

    def test_deterministic(self, scheduler, reviewed, now):
        assert scheduler.record_rating(reviewed, 4, now) == scheduler.record_rating(
            reviewed, 4, now
        )

    def test_input_is_not_mutated(self, scheduler, reviewed, now):
        before = reviewed.model_copy()
        scheduler.record_rating(reviewed, 5, now)
        assert reviewed == before


class TestEaseFactor:
    def test_ease_never_drops_below_floor(self, scheduler, make_record, now):
        record = make_record(ease_factor=1.35, review_count=3, interval_days=4)
        for _ in range(5):
            record = scheduler.record_rating(record, 1, now)
        assert record.ease_factor == settings.MIN_EASE_FACTOR


class TestMasteryLevel:
    def test_saturates_at_max(self, scheduler, make_record, now):
        record = make_record()
        for _ in range(settings.MAX_MASTERY_LEVEL + 3):
            record = scheduler.record_rating(record, 5, now)
        assert record.mastery_level == settings.MAX_MASTERY_LEVEL

    def test_low_rating_lowers_level_with_floor(self, scheduler, make_record, now):
        record = scheduler.record_rating(make_record(mastery_level=1), 1, now)
        assert record.mastery_level == 0
        record = scheduler.record_rating(record, 2, now)
        assert record.mastery_level == 0

    def test_last_rating_drives_is_mastered(self, scheduler, reviewed, now):
        assert scheduler.record_rating(reviewed, 4, now).is_mastered is True
        assert scheduler.record_rating(reviewed, 3, now).is_mastered is False


class TestValidation:
    @pytest.mark.parametrize(
        "rating", [0, 6, -1, True, 4.0, "4"], ids=["zero", "six", "negative", "bool", "float", "str"]
    )
    def test_invalid_rating_raises(self, scheduler, make_record, now, rating):
        with pytest.raises(ValidationError):
            scheduler.record_rating(make_record(), rating, now)

    def test_naive_time_raises(self, scheduler, make_record, now):
        with pytest.raises(ValidationError):
            scheduler.record_rating(make_record(), 4, now.replace(tzinfo=None))
