"""PTO ledger: the balance available on any calendar date.

The balance is always recomputed from the inputs:

    initial balance + accrued - used - carryover forfeitures

capped at ``max_balance`` when one is configured.  Amounts are in the
settings' display unit (days or hours).
"""

from __future__ import annotations

import datetime
from collections.abc import Iterable
from decimal import Decimal

from ptoplanner.accrual import accrued_as_of
from ptoplanner.dates import add_years
from ptoplanner.models import (
    AccrualRule,
    BalanceBreakdown,
    DisplayUnit,
    LedgerSettings,
    TakenDay,
)

ZERO = Decimal("0")


class PTOLedger:
    """Balance-as-of-date over a snapshot of settings, rules and taken days.

    Holds no mutable state after construction; every query is a pure
    function of the snapshot.
    """

    def __init__(
        self,
        settings: LedgerSettings,
        rules: Iterable[AccrualRule] = (),
        taken_days: Iterable[TakenDay] = (),
    ):
        self.settings = settings
        self.rules: tuple[AccrualRule, ...] = tuple(r for r in rules if r.active)
        # Cancelled days never consume budget, so drop them once here.
        self.used_dates: tuple[datetime.date, ...] = tuple(
            sorted({t.date for t in taken_days if t.consumes_budget})
        )

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def hours_mode(self) -> bool:
        return DisplayUnit(self.settings.display_unit) is DisplayUnit.HOURS

    def _before_start(self, d: datetime.date) -> bool:
        start = self.settings.as_of_date
        return start is not None and d < start

    def accrued_until(self, d: datetime.date) -> Decimal:
        """Sum of every active rule's accrual through *d*."""
        if self._before_start(d):
            return ZERO
        return sum((accrued_as_of(rule, d) for rule in self.rules), ZERO)

    def used_before(self, d: datetime.date) -> Decimal:
        """PTO consumed strictly before *d*, in the display unit."""
        count = sum(1 for used in self.used_dates if used < d)
        if self.hours_mode:
            return count * Decimal(self.settings.hours_per_day)
        return Decimal(count)

    def reset_dates(self, d: datetime.date) -> list[datetime.date]:
        """Annual renewal dates on or before *d* that follow the start date."""
        renewal = self.settings.renewal_date
        if renewal is None:
            return []
        start = self.settings.as_of_date
        resets: list[datetime.date] = []
        years = 0
        candidate = renewal
        while candidate <= d:
            if start is None or candidate > start:
                resets.append(candidate)
            years += 1
            candidate = add_years(renewal, years)
        return resets

    def forfeited_until(self, d: datetime.date) -> Decimal:
        """Total balance lost to carryover limits at resets up to *d*.

        Resets are applied oldest first: each one sees the balance left by
        the previous forfeitures.
        """
        limit = self.settings.carry_over_limit
        if limit is None or self.settings.renewal_date is None:
            return ZERO

        limit = max(Decimal(limit), ZERO)
        initial = Decimal(self.settings.initial_balance)
        forfeited = ZERO
        for reset in self.reset_dates(d):
            before = initial + self.accrued_until(reset) - self.used_before(reset) - forfeited
            allowed = min(limit, max(before, ZERO))
            if before > allowed:
                forfeited += before - allowed
        return forfeited

    # ------------------------------------------------------------------
    # Balance
    # ------------------------------------------------------------------

    def breakdown(self, d: datetime.date) -> BalanceBreakdown:
        """Every term of the balance on *d*."""
        if self._before_start(d):
            return BalanceBreakdown(d, ZERO, ZERO, ZERO, ZERO, ZERO, ZERO)

        initial = Decimal(self.settings.initial_balance)
        accrued = self.accrued_until(d)
        used = self.used_before(d)
        forfeited = self.forfeited_until(d)
        balance = initial + accrued - used - forfeited

        capped = ZERO
        if self.settings.max_balance is not None:
            cap = Decimal(self.settings.max_balance)
            if balance > cap:
                capped = balance - cap
                balance = cap

        return BalanceBreakdown(
            as_of=d,
            initial=initial,
            accrued=accrued,
            used=used,
            forfeited=forfeited,
            capped=capped,
            balance=balance,
        )

    def balance_as_of(self, d: datetime.date) -> Decimal:
        """Balance available on *d*; zero before tracking starts.

        The ledger never clamps to zero otherwise: a negative result is
        reported as-is and policy is left to the caller.
        """
        return self.breakdown(d).balance

    def days_available(self, d: datetime.date) -> Decimal:
        """Balance on *d* expressed in whole-day PTO units."""
        balance = self.balance_as_of(d)
        if self.hours_mode:
            return (balance / Decimal(self.settings.hours_per_day)).quantize(Decimal("0.001"))
        return balance
