"""
Streak Clock

Pure calendar arithmetic for the streak system. Every "what day is it"
decision goes through this module so that local dates are derived from UTC
instants in exactly one place.

Conventions:
- All instants are timezone-aware. Naive datetimes are rejected.
- The local midnight of day D is the instant at which D ends, i.e. 00:00
  local time on D + 1. Deadlines for a qualifying day D therefore fall at
  the end of D + 1, plus the grace period.
- Weeks are ISO weeks (Monday start), evaluated in the user's timezone.

Usage:
    from streak_engine.services.streaks import clock

    today = clock.local_date(now, "America/New_York")
    hard, display = clock.compute_deadline(today, "America/New_York")
"""

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from streak_engine.config import settings
from streak_engine.exceptions import ValidationError


@lru_cache(maxsize=256)
def get_zone(tz_name: str) -> ZoneInfo:
    """
    Resolve an IANA timezone name.

    Raises:
        ValidationError: If the name is empty or not a known IANA zone.
    """
    if not tz_name or not isinstance(tz_name, str):
        raise ValidationError("Timezone is required")
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(
            f"Unrecognized timezone: {tz_name}", details={"timezone": tz_name}
        ) from e


def validate_timezone(tz_name: str) -> str:
    """Return tz_name unchanged if it names a known IANA zone."""
    get_zone(tz_name)
    return tz_name


def _require_aware(instant: datetime) -> None:
    if instant.tzinfo is None or instant.utcoffset() is None:
        raise ValidationError(
            "Naive datetimes are not accepted, pass a timezone-aware UTC instant"
        )


def local_date(instant: datetime, tz_name: str) -> date:
    """Calendar date of instant in the given timezone."""
    _require_aware(instant)
    return instant.astimezone(get_zone(tz_name)).date()


def is_new_day(last_date: Optional[date], tz_name: str, now: datetime) -> bool:
    """
    True iff the local date of now differs from last_date.

    A user who has never been counted (last_date is None) is always on a new
    day.
    """
    today = local_date(now, tz_name)
    if last_date is None:
        return True
    return today != last_date


def local_midnight(day: date, tz_name: str) -> datetime:
    """
    UTC instant at which local day ends.

    Built from the wall clock of the following day and converted back, so
    23 and 25 hour days around DST transitions come out right.
    """
    zone = get_zone(tz_name)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return end.astimezone(timezone.utc)


def compute_deadline(
    last_qualifying_date: date,
    tz_name: str,
    grace_hours: Optional[float] = None,
) -> tuple[datetime, datetime]:
    """
    Deadline by which the day after last_qualifying_date must be earned.

    Args:
        last_qualifying_date: Local date on which the requirement was last met.
        tz_name: IANA timezone of the user.
        grace_hours: Hours added after local midnight. Defaults to
            settings.GRACE_PERIOD_HOURS.

    Returns:
        (hard_deadline, display_deadline), both UTC. Only the hard deadline
        is used for decisions; the display deadline is 23:59:59 local on the
        next day and exists for the UI.
    """
    if grace_hours is None:
        grace_hours = settings.GRACE_PERIOD_HOURS

    next_day = last_qualifying_date + timedelta(days=1)
    hard = local_midnight(next_day, tz_name) + timedelta(hours=grace_hours)
    display = datetime.combine(
        next_day, time(23, 59, 59), tzinfo=get_zone(tz_name)
    ).astimezone(timezone.utc)
    return hard, display


def is_in_grace_period(
    display_deadline: Optional[datetime],
    hard_deadline: Optional[datetime],
    now: datetime,
) -> bool:
    """True while now is past the displayed deadline but not the hard one."""
    if display_deadline is None or hard_deadline is None:
        return False
    _require_aware(now)
    return display_deadline < now <= hard_deadline


def week_start(day: date) -> date:
    """Monday of the ISO week containing day."""
    return day - timedelta(days=day.weekday())


def iso_week_id(day: date) -> str:
    """ISO week identifier, e.g. 2024-W52 (ISO year, which may differ from day.year)."""
    iso_year, iso_week, _ = day.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"
