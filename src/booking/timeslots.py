"""Time-slot arithmetic: calendar date + time of day + duration -> interval."""

from datetime import date, datetime, time, tzinfo

from src.booking.errors import ValidationError
from src.booking.models import TimeInterval


def to_interval(
    day: date, hour: int, minute: int, duration_minutes: int, tz: tzinfo
) -> TimeInterval:
    """Interval [start, start + duration) for a lesson starting at hour:minute on day.

    Args:
        day: Calendar day in the business zone.
        hour: Hour of day, 0-23.
        minute: Minute, 0-59.
        duration_minutes: Lesson length; must be positive.
        tz: Business time zone the wall-clock time is read in.

    Raises:
        ValidationError: If duration_minutes is not positive or the time is out of range.
    """
    if duration_minutes <= 0:
        raise ValidationError(f"Duration must be positive, got {duration_minutes} minutes")
    try:
        start = datetime.combine(day, time(hour, minute), tzinfo=tz)
    except ValueError as e:
        raise ValidationError(f"Invalid time of day {hour:02d}:{minute:02d}") from e
    return TimeInterval.starting_at(start, duration_minutes)


def overlaps(a: TimeInterval, b: TimeInterval) -> bool:
    """Strict half-open overlap; back-to-back intervals do not overlap."""
    return a.start < b.end and a.end > b.start


def local_day(moment: datetime, tz: tzinfo) -> date:
    """Calendar day of moment in the business zone."""
    return moment.astimezone(tz).date()
