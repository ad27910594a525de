"""
Spaced Repetition Scheduler

SM-2 style scheduling of a single item from a 1-5 self-assessment rating.

Key Concepts:
- Interval: days until the item is due again (>= 1)
- Ease factor: growth multiplier applied to the interval on a good recall
  (>= settings.MIN_EASE_FACTOR)
- Mastery level: bounded statistic of recall strength (0..MAX_MASTERY_LEVEL).
  Whether an item counts as *mastered* for streaks and stacks is decided by
  the latest rating alone (settings.MASTERY_RATING_THRESHOLD), not by this
  level.

Rating effects:
    rating | interval            | ease   | mastery level
    -------+---------------------+--------+--------------
    1      | reset to 1          | -0.54  | -1
    2      | reset to 1          | -0.32  | -1
    3      | unchanged           | -0.14  | unchanged
    4      | x ease (round half) | +0.05  | +1
    5      | x ease (round half) | +0.10  | +1

The first review of an item always schedules it one day out.

Usage:
    from streak_engine.services.streaks.scheduler import SpacedRepetitionScheduler

    scheduler = SpacedRepetitionScheduler()
    record = scheduler.record_rating(record, 4, now)
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from streak_engine.config import settings
from streak_engine.enums.streaks import Rating
from streak_engine.exceptions import ValidationError
from streak_engine.models.streaks import ItemMasteryRecord

logger = logging.getLogger(__name__)

# SM-2 quality adjustment 0.1 - (5-q) * (0.08 + (5-q) * 0.02), except that a
# rating of 4 gets a small bonus so every passing rating grows the ease.
EASE_ADJUSTMENTS: dict[int, float] = {
    Rating.REALLY_DONT_KNOW: -0.54,
    Rating.DONT_KNOW: -0.32,
    Rating.NEUTRAL: -0.14,
    Rating.KINDA_KNOW: 0.05,
    Rating.REALLY_KNOW: 0.10,
}


def validate_rating(rating: int) -> Rating:
    """
    Coerce a raw rating to Rating.

    Raises:
        ValidationError: If rating is not an integer in 1..5.
    """
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError(f"Rating must be an integer 1-5, got {rating!r}")
    try:
        return Rating(rating)
    except ValueError as e:
        raise ValidationError(
            f"Rating must be between 1 and 5, got {rating}",
            details={"rating": rating},
        ) from e


class SpacedRepetitionScheduler:
    """
    Pure, deterministic item scheduler.

    Attributes:
        min_ease_factor: Lower bound for the ease factor
        max_mastery_level: Saturation point of the mastery level
    """

    def __init__(
        self,
        min_ease_factor: Optional[float] = None,
        max_mastery_level: Optional[int] = None,
    ):
        self.min_ease_factor = (
            min_ease_factor if min_ease_factor is not None else settings.MIN_EASE_FACTOR
        )
        self.max_mastery_level = (
            max_mastery_level
            if max_mastery_level is not None
            else settings.MAX_MASTERY_LEVEL
        )

    def next_interval(self, record: ItemMasteryRecord, rating: Rating) -> int:
        """Interval in days after applying rating to record."""
        if record.review_count == 0:
            return 1
        if rating <= Rating.DONT_KNOW:
            return 1
        if rating == Rating.NEUTRAL:
            return record.interval_days
        return max(1, int(record.interval_days * record.ease_factor + 0.5))

    def next_ease(self, ease_factor: float, rating: Rating) -> float:
        """Ease factor after applying rating, floored at min_ease_factor."""
        return max(
            self.min_ease_factor, round(ease_factor + EASE_ADJUSTMENTS[rating], 4)
        )

    def next_mastery_level(self, level: int, rating: Rating) -> int:
        if rating <= Rating.DONT_KNOW:
            return max(0, level - 1)
        if rating >= settings.MASTERY_RATING_THRESHOLD:
            return min(self.max_mastery_level, level + 1)
        return level

    def record_rating(
        self,
        record: ItemMasteryRecord,
        rating: int,
        now: datetime,
    ) -> ItemMasteryRecord:
        """
        Apply a rating to an item and schedule its next review.

        Args:
            record: Current scheduling state of the item.
            rating: Self-assessment rating (1-5).
            now: Trusted review time (timezone-aware).

        Returns:
            Updated copy of record. The input is not modified.

        Raises:
            ValidationError: If rating is outside 1..5 or now is naive.
        """
        rating = validate_rating(rating)
        if now.tzinfo is None:
            raise ValidationError("Review time must be timezone-aware")

        interval = self.next_interval(record, rating)
        updated = record.model_copy(
            update={
                "interval_days": interval,
                "ease_factor": self.next_ease(record.ease_factor, rating),
                "mastery_level": self.next_mastery_level(record.mastery_level, rating),
                "next_review_date": now + timedelta(days=interval),
                "review_count": record.review_count + 1,
                "last_rating": int(rating),
                "last_reviewed_at": now,
            }
        )

        logger.debug(
            f"Item {record.item_id} rated {int(rating)}: "
            f"interval {record.interval_days}->{updated.interval_days}, "
            f"ease {record.ease_factor:.2f}->{updated.ease_factor:.2f}"
        )
        return updated
