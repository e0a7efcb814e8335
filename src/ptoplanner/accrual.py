"""Accrual rule evaluation.

``accrued_as_of(rule, target)`` returns the total a single recurring rule has
credited by *target* (inclusive).  Fixed-period rules (daily, weekly,
biweekly) are counted in closed form; monthly and yearly rules walk their
calendar-clamped occurrences under an explicit iteration cap.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterator
from decimal import Decimal

from ptoplanner.dates import (
    add_months,
    align_to_day_of_week,
    clamp_day_of_month,
    day_of_week,
    day_of_year_date,
)
from ptoplanner.models import AccrualRule, Frequency

logger = logging.getLogger(__name__)

MAX_ACCRUAL_ITERATIONS = 10_000
"""Upper bound on occurrences walked for one rule.

Reaching it means the rule is misconfigured; it is reported, not treated as
a business outcome.
"""

_PERIOD_DAYS: dict[Frequency, int] = {
    Frequency.DAILY: 1,
    Frequency.WEEKLY: 7,
    Frequency.BIWEEKLY: 14,
}

ZERO = Decimal("0")


# ---------------------------------------------------------------------------
# Occurrence arithmetic
# ---------------------------------------------------------------------------


def first_occurrence(rule: AccrualRule) -> datetime.date:
    """The rule's first accrual date on or after its effective date."""
    effective = rule.effective_date
    frequency = Frequency(rule.frequency)

    if frequency in (Frequency.WEEKLY, Frequency.BIWEEKLY):
        dow = rule.anchor_day if rule.anchor_day is not None else day_of_week(effective)
        return align_to_day_of_week(effective, dow)

    if frequency is Frequency.MONTHLY:
        day = rule.anchor_day if rule.anchor_day is not None else effective.day
        occurrence = effective.replace(
            day=clamp_day_of_month(effective.year, effective.month, day)
        )
        if occurrence < effective:
            occurrence = add_months(occurrence, 1, day)
        return occurrence

    if frequency is Frequency.YEARLY and rule.anchor_day is not None:
        occurrence = day_of_year_date(effective.year, rule.anchor_day)
        if occurrence < effective:
            occurrence = day_of_year_date(effective.year + 1, rule.anchor_day)
        return occurrence

    return effective


def next_occurrence(rule: AccrualRule, occurrence: datetime.date) -> datetime.date:
    """The accrual date following *occurrence*."""
    frequency = Frequency(rule.frequency)

    if frequency in _PERIOD_DAYS:
        return occurrence + datetime.timedelta(days=_PERIOD_DAYS[frequency])

    if frequency is Frequency.MONTHLY:
        day = rule.anchor_day if rule.anchor_day is not None else rule.effective_date.day
        return add_months(occurrence, 1, day)

    # Yearly
    if rule.anchor_day is not None:
        return day_of_year_date(occurrence.year + 1, rule.anchor_day)
    effective = rule.effective_date
    year = occurrence.year + 1
    return datetime.date(year, effective.month, clamp_day_of_month(year, effective.month, effective.day))


def _limit(rule: AccrualRule, target: datetime.date) -> datetime.date:
    if rule.end_date is not None and rule.end_date < target:
        return rule.end_date
    return target


def occurrences(rule: AccrualRule, until: datetime.date) -> Iterator[datetime.date]:
    """Yield every accrual date of *rule* up to *until* (and its end date).

    Stops after ``MAX_ACCRUAL_ITERATIONS`` dates and logs the trip.
    """
    if not rule.active or until < rule.effective_date:
        return

    limit = _limit(rule, until)
    occurrence = first_occurrence(rule)
    count = 0
    while occurrence <= limit:
        if count >= MAX_ACCRUAL_ITERATIONS:
            logger.warning(
                "Accrual safety cap of %d occurrences reached for rule %r; "
                "returning partial accumulation",
                MAX_ACCRUAL_ITERATIONS,
                rule.id,
            )
            return
        yield occurrence
        count += 1
        occurrence = next_occurrence(rule, occurrence)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def accrued_as_of(rule: AccrualRule, target: datetime.date) -> Decimal:
    """Total amount *rule* has accrued by *target*, inclusive."""
    if not rule.active or target < rule.effective_date:
        return ZERO

    amount = Decimal(rule.amount)
    frequency = Frequency(rule.frequency)

    period = _PERIOD_DAYS.get(frequency)
    if period is not None:
        first = first_occurrence(rule)
        limit = _limit(rule, target)
        if first > limit:
            return ZERO
        return amount * ((limit - first).days // period + 1)

    return amount * sum(1 for _ in occurrences(rule, target))
