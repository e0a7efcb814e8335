"""Holiday presets and the non-working-day calendar.

Each preset computes *observed* public holidays for a given year.
Observed rules: if a holiday falls on Saturday the observed date is
the preceding Friday; if it falls on Sunday the observed date is
the following Monday.

Holidays from presets are one-off dates (``repeats_yearly=False``) because
observed dates move between years.  User-entered holidays may repeat; they
are projected onto every year of a requested range by month and day.
"""

from __future__ import annotations

import datetime
from collections.abc import Callable, Iterable

from ptoplanner.dates import date_range, day_of_week, days_in_month, matches_holiday
from ptoplanner.models import DEFAULT_WEEKEND_DAYS, Holiday

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _nth_weekday(year: int, month: int, weekday: int, n: int) -> datetime.date:
    """Return the *n*-th occurrence of *weekday* in *month* of *year*.

    *weekday* follows ``datetime`` convention: 0 = Monday … 6 = Sunday.
    *n* is 1-based (1 = first, 2 = second, …).
    """
    first = datetime.date(year, month, 1)
    delta = (weekday - first.weekday()) % 7
    return first + datetime.timedelta(days=delta, weeks=n - 1)


def _last_weekday(year: int, month: int, weekday: int) -> datetime.date:
    """Return the last occurrence of *weekday* in *month* of *year*."""
    last = datetime.date(year, month, days_in_month(year, month))
    return last - datetime.timedelta(days=(last.weekday() - weekday) % 7)


def _observed(d: datetime.date) -> datetime.date:
    """Shift a holiday to its *observed* date (Sat→Fri, Sun→Mon)."""
    if d.weekday() == 5:
        return d - datetime.timedelta(days=1)
    if d.weekday() == 6:
        return d + datetime.timedelta(days=1)
    return d


# ---------------------------------------------------------------------------
# Country presets
# ---------------------------------------------------------------------------

PRESETS: dict[str, str] = {
    "us": "United States federal holidays",
}


def us_holidays(year: int) -> list[Holiday]:
    """US federal holidays (observed) for *year*."""
    return sorted(
        [
            Holiday("New Year's Day", _observed(datetime.date(year, 1, 1))),
            Holiday("Martin Luther King Jr. Day", _nth_weekday(year, 1, 0, 3)),
            Holiday("Presidents' Day", _nth_weekday(year, 2, 0, 3)),
            Holiday("Memorial Day", _last_weekday(year, 5, 0)),
            Holiday("Juneteenth", _observed(datetime.date(year, 6, 19))),
            Holiday("Independence Day", _observed(datetime.date(year, 7, 4))),
            Holiday("Labor Day", _nth_weekday(year, 9, 0, 1)),
            Holiday("Thanksgiving", _nth_weekday(year, 11, 3, 4)),
            Holiday("Christmas Day", _observed(datetime.date(year, 12, 25))),
        ],
        key=lambda h: h.date,
    )


_PRESET_FNS: dict[str, Callable[[int], list[Holiday]]] = {
    "us": us_holidays,
}


def fetch_holidays(country: str, year: int) -> list[Holiday]:
    """Return the holidays of the given *country* preset for *year*.

    Raises ``KeyError`` if the country is not supported.
    """
    fn = _PRESET_FNS.get(country.lower())
    if fn is None:
        supported = ", ".join(sorted(PRESETS))
        msg = f"Unknown country preset {country!r}. Supported: {supported}"
        raise KeyError(msg)
    return fn(year)


def fetch_holidays_between(
    country: str, start: datetime.date, end: datetime.date
) -> list[Holiday]:
    """Preset holidays for every calendar year touched by ``start..end``."""
    found: list[Holiday] = []
    for year in range(start.year, end.year + 1):
        found.extend(h for h in fetch_holidays(country, year) if start <= h.date <= end)
    return found


# ---------------------------------------------------------------------------
# Calendar assembly
# ---------------------------------------------------------------------------


def dedupe_holidays(holidays: Iterable[Holiday]) -> list[Holiday]:
    """Drop repeats of the same ``(date, name)``, keeping first-seen order."""
    seen: set[tuple[datetime.date, str]] = set()
    unique: list[Holiday] = []
    for h in holidays:
        key = (h.date, h.name)
        if key not in seen:
            seen.add(key)
            unique.append(h)
    return unique


def expand_holidays(
    holidays: Iterable[Holiday],
    start: datetime.date,
    end: datetime.date,
) -> set[datetime.date]:
    """Concrete holiday dates within ``start..end``.

    Repeating holidays land on the same month/day of every year in range;
    a Feb 29 holiday only appears in leap years.
    """
    holidays = list(holidays)
    return {
        d
        for d in date_range(start, end)
        if any(matches_holiday(d, h.date, h.repeats_yearly) for h in holidays)
    }


def non_working_days(
    start: datetime.date,
    end: datetime.date,
    weekend_days: Iterable[int] = DEFAULT_WEEKEND_DAYS,
    holidays: Iterable[Holiday] = (),
) -> set[datetime.date]:
    """Weekends (0 = Sunday convention) plus holidays within ``start..end``."""
    weekend = set(weekend_days)
    off = {d for d in date_range(start, end) if day_of_week(d) in weekend}
    off.update(expand_holidays(holidays, start, end))
    return off
