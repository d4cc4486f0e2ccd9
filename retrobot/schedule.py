"""Date arithmetic for scheduling retros.

Every function here takes the current time explicitly (`now`) rather than reading the
clock, so a single run makes all of its day-boundary decisions against one instant and
tests can pin that instant.

Weekdays follow the Sunday-based numbering used in the board descriptions and on the
command line: `0 = Sunday`, `1 = Monday`, ..., `6 = Saturday`. This differs from
`datetime.weekday()` (Monday-based); use `weekday()` below when comparing.

Time zones: dates are compared as aware datetimes. The weekday and midnight of a value are
computed in that value's own time zone, so callers should pass a `now` in the zone where
the team's calendar lives (the CLI uses the local zone).
"""

from __future__ import annotations

from datetime import datetime, timedelta

DAY_NAMES = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]


def weekday(date: datetime) -> int:
    """Sunday-based day of week (0-6)."""
    return date.isoweekday() % 7


def new_date(now: datetime, offset_days: int = 0, at_midnight: bool = False) -> datetime:
    """Shift `now` by whole days, optionally truncating to midnight."""
    date = now + timedelta(days=offset_days)
    if at_midnight:
        date = date.replace(hour=0, minute=0, second=0, microsecond=0)
    return date


def next_date(last_date: datetime, day_of_week: int, cadence_weeks: int, *, now: datetime) -> datetime:
    """Return the date of the retro following one held on `last_date`.

    The candidate is one cadence after `last_date`. If that is already in the past the
    schedule is re-anchored on `now`, keeping one fewer cadence so the weekday adjustment
    lands in the current window instead of skipping a cycle. The result is then moved
    forward to the next `day_of_week`. The time of day of the anchor is kept as is.
    """
    date = last_date + timedelta(weeks=cadence_weeks)

    if date < now:
        date = now + timedelta(weeks=cadence_weeks - 1)

    days_to_add = (7 + day_of_week - weekday(date)) % 7
    return date + timedelta(days=days_to_add)


def parse_day_of_week(value: str) -> int:
    """Parse `0`-`6` or a weekday name (any unambiguous prefix, case-insensitive)."""
    text = str(value).strip().lower()
    if not text:
        raise ValueError("day of week is required")

    if text.lstrip("-").isdigit():
        day = int(text)
        if not 0 <= day <= 6:
            raise ValueError(f"day of week must be between 0 and 6, got {day}")
        return day

    matches = [i for i, name in enumerate(DAY_NAMES) if name.startswith(text)]
    if len(matches) != 1:
        raise ValueError(f"invalid day of week: {value!r}")
    return matches[0]


def to_readable_date(date: datetime) -> str:
    """Format as MM/DD/YYYY."""
    return date.strftime("%m/%d/%Y")
