"""Timezone-safe calendar helpers.

Everything in the planner works on plain calendar dates.  Date-only values
are never routed through UTC: formatting reads the date's own fields and
parsing builds a ``datetime.date`` directly, so a day never slides across
midnight because of the host's timezone.

Day-of-week numbers follow the stored-record convention: 0 = Sunday …
6 = Saturday.
"""

from __future__ import annotations

import calendar
import datetime
from collections.abc import Iterator

# ---------------------------------------------------------------------------
# Formatting / parsing
# ---------------------------------------------------------------------------


def format_local(d: datetime.date) -> str:
    """Return *d* as ``YYYY-MM-DD`` built from its own year/month/day."""
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def parse_local(value: str) -> datetime.date:
    """Parse ``YYYY-MM-DD`` (or an ISO datetime string) as a local date.

    Any time portion is discarded as written; it is never converted to
    another timezone first.  Raises ``ValueError`` for malformed input.
    """
    text = value.strip()
    date_part = text.split("T", 1)[0].split(" ", 1)[0]
    pieces = date_part.split("-")
    if len(pieces) != 3 or not all(p.isdigit() for p in pieces):
        raise ValueError(f"Invalid date {value!r}. Use YYYY-MM-DD.")
    year, month, day = (int(p) for p in pieces)
    return datetime.date(year, month, day)


def to_local_date(value: datetime.date | datetime.datetime | str) -> datetime.date:
    """Coerce *value* to a local calendar date.

    Aware datetimes are moved into the local timezone before the date is
    taken; naive datetimes are truncated as-is.
    """
    if isinstance(value, str):
        return parse_local(value)
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()
    return value


def is_same_day(a: datetime.date, b: datetime.date) -> bool:
    return (a.year, a.month, a.day) == (b.year, b.month, b.day)


def matches_holiday(d: datetime.date, holiday_date: datetime.date, repeats_yearly: bool) -> bool:
    """Month/day comparison for repeating holidays, exact day otherwise."""
    if repeats_yearly:
        return (d.month, d.day) == (holiday_date.month, holiday_date.day)
    return is_same_day(d, holiday_date)


# ---------------------------------------------------------------------------
# Day-of-week alignment
# ---------------------------------------------------------------------------


def day_of_week(d: datetime.date) -> int:
    """Day of week with 0 = Sunday … 6 = Saturday."""
    return (d.weekday() + 1) % 7


def align_to_day_of_week(d: datetime.date, target: int) -> datetime.date:
    """Return the first date on/after *d* falling on *target* (0 = Sunday)."""
    delta = (target - day_of_week(d)) % 7
    return d + datetime.timedelta(days=delta)


# ---------------------------------------------------------------------------
# Month / year arithmetic
# ---------------------------------------------------------------------------


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_day_of_month(year: int, month: int, day: int) -> int:
    """Clamp *day* into ``1..days_in_month``."""
    return max(1, min(day, days_in_month(year, month)))


def add_months(d: datetime.date, months: int, day: int | None = None) -> datetime.date:
    """Shift *d* by *months*, landing on *day* (default: d's day), clamped."""
    index = d.year * 12 + (d.month - 1) + months
    year, month0 = divmod(index, 12)
    month = month0 + 1
    target_day = d.day if day is None else day
    return datetime.date(year, month, clamp_day_of_month(year, month, target_day))


def add_years(d: datetime.date, years: int) -> datetime.date:
    """Shift *d* by *years*; Feb 29 becomes Feb 28 in common years."""
    year = d.year + years
    return datetime.date(year, d.month, clamp_day_of_month(year, d.month, d.day))


def days_in_year(year: int) -> int:
    return 366 if calendar.isleap(year) else 365


def day_of_year_date(year: int, day_of_year: int) -> datetime.date:
    """Return the *day_of_year*-th day (1-based) of *year*, clamped."""
    n = max(1, min(day_of_year, days_in_year(year)))
    return datetime.date(year, 1, 1) + datetime.timedelta(days=n - 1)


def date_range(start: datetime.date, end: datetime.date) -> Iterator[datetime.date]:
    """Yield every date from *start* through *end* inclusive."""
    for offset in range((end - start).days + 1):
        yield start + datetime.timedelta(days=offset)
