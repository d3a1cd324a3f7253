"""Recurrence expansion: anchor date + rule -> ordered occurrence dates.

Weekly and biweekly series step a fixed number of days. Monthly series keep
the anchor's day of month, clamped to the last day of shorter months; each
occurrence is computed from the anchor rather than from the previous one, so
a Jan 31 series runs Feb 28, Mar 31, Apr 30 instead of drifting to the 28th.
"""

from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from src.booking.errors import ValidationError
from src.booking.models import Recurrence

_DAY_STRIDES: dict[Recurrence, int] = {
    Recurrence.WEEKLY: 7,
    Recurrence.BIWEEKLY: 14,
}

# End-date presets offered next to "no end date", in weeks
HORIZON_PRESETS_WEEKS: tuple[int, ...] = (4, 8, 12)


def occurrence(anchor: date, recurrence: Recurrence, index: int) -> date:
    """The index-th occurrence of a series (index 0 is the anchor)."""
    if recurrence is Recurrence.NONE:
        if index != 0:
            raise ValueError("a non-recurring booking has a single occurrence")
        return anchor
    if recurrence is Recurrence.MONTHLY:
        return anchor + relativedelta(months=index)
    return anchor + timedelta(days=_DAY_STRIDES[recurrence] * index)


def expand_recurrence(
    anchor: date,
    recurrence: Recurrence,
    end_date: date | None = None,
    max_occurrences: int | None = None,
) -> list[date]:
    """Expand a series into its occurrence dates, anchor first.

    Args:
        anchor: First occurrence.
        recurrence: Series rule.
        end_date: Last date an occurrence may fall on (inclusive).
        max_occurrences: Upper bound on the number of dates returned.

    Returns:
        Dates in ascending order, anchor first. Past anchors are not filtered.

    Raises:
        ValidationError: If a recurring series has neither end_date nor
            max_occurrences, end_date precedes the anchor, or max_occurrences
            is not positive.
    """
    recurrence = Recurrence(recurrence)
    if recurrence is Recurrence.NONE:
        return [anchor]
    if end_date is None and max_occurrences is None:
        raise ValidationError(
            f"A {recurrence.value} series needs an end date or an occurrence limit"
        )
    if end_date is not None and end_date < anchor:
        raise ValidationError("Recurrence end date precedes the first lesson")
    if max_occurrences is not None and max_occurrences < 1:
        raise ValidationError(f"Occurrence limit must be positive, got {max_occurrences}")

    dates = [anchor]
    index = 1
    while max_occurrences is None or len(dates) < max_occurrences:
        current = occurrence(anchor, recurrence, index)
        if end_date is not None and current > end_date:
            break
        dates.append(current)
        index += 1
    return dates


def recurrence_horizon(anchor: date, weeks: int) -> date:
    """End date for an "N weeks" preset counted from the anchor."""
    return anchor + timedelta(weeks=weeks)
