"""Entity types shared by the ledger, the optimizer and the store.

The core never owns any of these: callers hand in immutable snapshots and
get plain values back.
"""

from __future__ import annotations

import datetime
from decimal import Decimal
from enum import Enum
from typing import NamedTuple

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ConfigurationError(ValueError):
    """An accrual rule, ledger setting or preference combination is invalid.

    Raised before any computation starts so the caller can show it to the
    user; the ledger and optimizer themselves never raise it.
    """


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PTOStatus(str, Enum):
    PLANNED = "planned"
    APPROVED = "approved"
    TAKEN = "taken"
    CANCELLED = "cancelled"


class DisplayUnit(str, Enum):
    DAYS = "days"
    HOURS = "hours"


class RankingMode(str, Enum):
    EFFICIENCY = "efficiency"
    LONGEST = "longest"
    LEAST_PTO = "least-pto"
    EARLIEST = "earliest"


# ---------------------------------------------------------------------------
# Ledger inputs
# ---------------------------------------------------------------------------


class AccrualRule(NamedTuple):
    """A recurring policy that adds *amount* at a fixed cadence.

    ``anchor_day`` is a day of week (0 = Sunday) for weekly/biweekly rules,
    a day of month (1-31) for monthly rules and a day of year (1-366) for
    yearly rules.  Rules are deactivated rather than deleted.
    """

    id: str
    amount: Decimal
    frequency: Frequency
    effective_date: datetime.date
    anchor_day: int | None = None
    end_date: datetime.date | None = None
    active: bool = True
    name: str = ""


class LedgerSettings(NamedTuple):
    initial_balance: Decimal = Decimal("0")
    as_of_date: datetime.date | None = None
    carry_over_limit: Decimal | None = None
    renewal_date: datetime.date | None = None
    max_balance: Decimal | None = None
    display_unit: DisplayUnit = DisplayUnit.DAYS
    hours_per_day: Decimal = Decimal("8")
    allow_negative_balance: bool = False


class TakenDay(NamedTuple):
    """One whole day of booked PTO."""

    date: datetime.date
    status: PTOStatus = PTOStatus.PLANNED
    description: str = ""

    @property
    def consumes_budget(self) -> bool:
        return self.status is not PTOStatus.CANCELLED


class Holiday(NamedTuple):
    name: str
    date: datetime.date
    repeats_yearly: bool = False


class BalanceBreakdown(NamedTuple):
    """Every term that went into a balance, in the configured unit."""

    as_of: datetime.date
    initial: Decimal
    accrued: Decimal
    used: Decimal
    forfeited: Decimal
    capped: Decimal
    balance: Decimal


# ---------------------------------------------------------------------------
# Optimizer inputs
# ---------------------------------------------------------------------------


class SuggestionPreferences(NamedTuple):
    earliest_start: datetime.date
    latest_end: datetime.date
    min_pto_to_keep: Decimal = Decimal("2")
    min_consecutive_days_off: int = 4
    max_consecutive_days_off: int = 14
    min_spacing_between_breaks: int = 14
    ranking_mode: RankingMode = RankingMode.EFFICIENCY
    extend_existing_pto: bool = True
    max_pto_per_break: int | None = None
    max_suggestions: int | None = None
    max_pto_to_use: int | None = None


# ---------------------------------------------------------------------------
# Defaults & resolution
# ---------------------------------------------------------------------------

DEFAULT_SETTINGS = LedgerSettings(initial_balance=Decimal("15"))

DEFAULT_WEEKEND_DAYS: frozenset[int] = frozenset({0, 6})


def default_preferences(today: datetime.date) -> SuggestionPreferences:
    """Search from two years back to two years ahead of *today*."""
    return SuggestionPreferences(
        earliest_start=datetime.date(today.year - 2, 1, 1),
        latest_end=datetime.date(today.year + 2, 12, 31),
    )


def resolve_settings(
    remote: LedgerSettings | None,
    local: LedgerSettings | None,
) -> LedgerSettings:
    """Pick the one settings value the ledger should see.

    Precedence: locally edited settings, then settings from the remote
    store, then ``DEFAULT_SETTINGS``.
    """
    if local is not None:
        return local
    if remote is not None:
        return remote
    return DEFAULT_SETTINGS


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_rule(rule: AccrualRule) -> AccrualRule:
    try:
        frequency = Frequency(rule.frequency)
    except ValueError:
        raise ConfigurationError(
            f"Rule {rule.id!r}: unknown accrual frequency {rule.frequency!r}"
        ) from None
    if rule.amount < 0:
        raise ConfigurationError(f"Rule {rule.id!r}: amount must be non-negative")
    if rule.end_date is not None and rule.end_date < rule.effective_date:
        raise ConfigurationError(f"Rule {rule.id!r}: end_date is before effective_date")

    if rule.anchor_day is not None:
        bounds = {
            Frequency.WEEKLY: (0, 6),
            Frequency.BIWEEKLY: (0, 6),
            Frequency.MONTHLY: (1, 31),
            Frequency.YEARLY: (1, 366),
        }.get(frequency)
        if bounds is not None and not bounds[0] <= rule.anchor_day <= bounds[1]:
            lo, hi = bounds
            raise ConfigurationError(
                f"Rule {rule.id!r}: anchor_day {rule.anchor_day} outside {lo}..{hi} "
                f"for {frequency.value} accrual"
            )
    return rule._replace(frequency=frequency)


def validate_settings(settings: LedgerSettings) -> LedgerSettings:
    if settings.hours_per_day <= 0:
        raise ConfigurationError("hours_per_day must be greater than zero")
    if settings.carry_over_limit is not None and settings.carry_over_limit < 0:
        raise ConfigurationError("carry_over_limit must be non-negative")
    if settings.max_balance is not None and settings.max_balance < 0:
        raise ConfigurationError("max_balance must be non-negative")
    return settings._replace(display_unit=DisplayUnit(settings.display_unit))


def validate_preferences(prefs: SuggestionPreferences) -> SuggestionPreferences:
    """Reject (never clamp) invalid preference combinations."""
    non_negative = {
        "min_pto_to_keep": prefs.min_pto_to_keep,
        "min_consecutive_days_off": prefs.min_consecutive_days_off,
        "max_consecutive_days_off": prefs.max_consecutive_days_off,
        "min_spacing_between_breaks": prefs.min_spacing_between_breaks,
    }
    if prefs.max_pto_per_break is not None:
        non_negative["max_pto_per_break"] = prefs.max_pto_per_break
    if prefs.max_suggestions is not None:
        non_negative["max_suggestions"] = prefs.max_suggestions
    if prefs.max_pto_to_use is not None:
        non_negative["max_pto_to_use"] = prefs.max_pto_to_use
    for field, value in non_negative.items():
        if value < 0:
            raise ConfigurationError(f"{field} must be non-negative (got {value})")

    if prefs.min_consecutive_days_off > prefs.max_consecutive_days_off:
        raise ConfigurationError(
            "min_consecutive_days_off cannot exceed max_consecutive_days_off "
            f"({prefs.min_consecutive_days_off} > {prefs.max_consecutive_days_off})"
        )
    if prefs.earliest_start > prefs.latest_end:
        raise ConfigurationError("earliest_start must not be after latest_end")

    try:
        mode = RankingMode(prefs.ranking_mode)
    except ValueError:
        supported = ", ".join(m.value for m in RankingMode)
        raise ConfigurationError(
            f"Unknown ranking mode {prefs.ranking_mode!r}. Supported: {supported}"
        ) from None
    return prefs._replace(ranking_mode=mode)
