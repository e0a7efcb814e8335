"""Break suggestions

Turn a PTO budget into a ranked set of breaks: contiguous runs of days off
built by buying the working days that sit between weekends, holidays and
PTO that is already booked.

The search is greedy over a bounded candidate set:

  1. Split the search window into alternating working / non-working runs.
  2. Every span of one or more consecutive working runs is a candidate.
     Spans grow across the non-working runs between them and stop once they
     are longer than the longest allowed break or cost more than the
     spendable budget.  The non-working runs on either side join the break.
  3. Candidates are filtered, ranked and accepted in order while budget and
     spacing between breaks allow.
"""

from __future__ import annotations

import calendar
import datetime
from collections.abc import Callable, Collection, Iterable
from decimal import Decimal
from typing import NamedTuple

from ptoplanner.dates import date_range, day_of_week, format_local
from ptoplanner.models import DEFAULT_WEEKEND_DAYS, RankingMode, SuggestionPreferences

# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------

WEEKEND = "weekend"
HOLIDAY = "holiday"
EXISTING = "existing"


class Anchor(NamedTuple):
    """A non-working run adjoining a break, or the edge of the search window."""

    start: datetime.date
    end: datetime.date
    day_count: int
    kind: str
    counts_toward_run: bool
    label: str


class SuggestedBreak(NamedTuple):
    """A contiguous span of days off that needs at least one PTO day."""

    id: str
    start: datetime.date
    end: datetime.date
    pto_days: list[datetime.date]
    pto_required: int
    total_days_off: int
    efficiency: float
    before: Anchor | None
    after: Anchor | None


class OptimizationResult(NamedTuple):
    breaks: list[SuggestedBreak]
    suggested_days: list[datetime.date]
    total_pto_used: int
    total_days_off: int
    average_efficiency: float
    remaining_pto: Decimal


class _Run(NamedTuple):
    """A maximal run of consecutive working or non-working days."""

    working: bool
    days: list[datetime.date]
    sources: frozenset[str]


def empty_result(budget: Decimal) -> OptimizationResult:
    return OptimizationResult(
        breaks=[],
        suggested_days=[],
        total_pto_used=0,
        total_days_off=0,
        average_efficiency=0.0,
        remaining_pto=Decimal(budget),
    )


# ---------------------------------------------------------------------------
# Anchors
# ---------------------------------------------------------------------------

_ANCHOR_LABELS = {
    WEEKEND: "Weekend",
    HOLIDAY: "Holiday",
    "mixed": "Holiday + Weekend",
    EXISTING: "Existing PTO",
    "boundary-start": "Timeframe start",
    "boundary-end": "Timeframe end",
}


def _format_span(start: datetime.date, end: datetime.date) -> str:
    if start == end:
        return start.strftime("%b %d")
    return f"{start.strftime('%b %d')} -> {end.strftime('%b %d')}"


def _anchor_kind(sources: frozenset[str]) -> str:
    if WEEKEND in sources and HOLIDAY in sources:
        return "mixed"
    if WEEKEND in sources:
        return WEEKEND
    if HOLIDAY in sources:
        return HOLIDAY
    return EXISTING


def _counts_toward_run(sources: frozenset[str], extend_existing: bool) -> bool:
    if WEEKEND in sources or HOLIDAY in sources:
        return True
    return EXISTING in sources and extend_existing


def _make_anchor(run: _Run, extend_existing: bool) -> Anchor:
    kind = _anchor_kind(run.sources)
    start, end = run.days[0], run.days[-1]
    return Anchor(
        start=start,
        end=end,
        day_count=len(run.days),
        kind=kind,
        counts_toward_run=_counts_toward_run(run.sources, extend_existing),
        label=f"{_ANCHOR_LABELS[kind]} ({_format_span(start, end)})",
    )


def _boundary_anchor(kind: str, reference: datetime.date) -> Anchor:
    return Anchor(
        start=reference,
        end=reference,
        day_count=0,
        kind=kind,
        counts_toward_run=False,
        label=_ANCHOR_LABELS[kind],
    )


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

SortKey = Callable[[SuggestedBreak], tuple]

_RANKING_KEYS: dict[RankingMode, SortKey] = {
    RankingMode.EFFICIENCY: lambda b: (-b.efficiency, -b.total_days_off, b.pto_required, b.start),
    RankingMode.LONGEST: lambda b: (-b.total_days_off, -b.efficiency, b.pto_required, b.start),
    RankingMode.LEAST_PTO: lambda b: (b.pto_required, -b.efficiency, b.start),
    RankingMode.EARLIEST: lambda b: (b.start, -b.total_days_off, b.pto_required),
}


def rank_breaks(breaks: Iterable[SuggestedBreak], mode: RankingMode) -> list[SuggestedBreak]:
    """Order candidate breaks best-first for *mode*."""
    return sorted(breaks, key=_RANKING_KEYS[RankingMode(mode)])


def conflicts(candidate: SuggestedBreak, accepted: Iterable[SuggestedBreak], min_spacing: int) -> bool:
    """True when *candidate* overlaps or sits too close to an accepted break.

    Two breaks conflict unless the later one starts at least
    ``min_spacing + 1`` days after the earlier one ends.
    """
    gap = datetime.timedelta(days=max(0, min_spacing) + 1)
    for other in accepted:
        first, second = (candidate, other) if candidate.start <= other.start else (other, candidate)
        if second.start < first.end + gap:
            return True
    return False


# ---------------------------------------------------------------------------
# Optimizer
# ---------------------------------------------------------------------------


class BreakOptimizer:
    """Suggests breaks within a search window for a given PTO budget.

    ``non_working_days`` holds weekends and holidays; ``holiday_dates`` (a
    subset of it) and ``weekend_days`` (0 = Sunday) only affect how anchors
    are labelled.  ``existing_pto`` days are never bought again: they always
    split working runs, and they only lengthen a break when
    ``extend_existing_pto`` is set.
    """

    def __init__(
        self,
        budget: Decimal,
        non_working_days: Collection[datetime.date],
        existing_pto: Collection[datetime.date],
        prefs: SuggestionPreferences,
        *,
        holiday_dates: Collection[datetime.date] = (),
        weekend_days: Collection[int] = DEFAULT_WEEKEND_DAYS,
        today: datetime.date | None = None,
    ):
        self.budget = Decimal(budget)
        self.prefs = prefs
        self.ranking_mode = RankingMode(prefs.ranking_mode)

        self.start_date = prefs.earliest_start
        if today is not None and self.start_date < today:
            self.start_date = today
        self.end_date = prefs.latest_end

        self.spendable = self.budget - Decimal(prefs.min_pto_to_keep)
        if prefs.max_pto_to_use is not None:
            self.spendable = min(self.spendable, Decimal(prefs.max_pto_to_use))

        self.non_working = set(non_working_days)
        self.holidays = set(holiday_dates)
        self.weekend_days = set(weekend_days)
        self.existing = set(existing_pto)

        self.runs: list[_Run] = self._build_runs()

    # ------------------------------------------------------------------
    # Timeline
    # ------------------------------------------------------------------

    def _sources(self, d: datetime.date) -> frozenset[str]:
        sources: set[str] = set()
        if d in self.non_working:
            if d in self.holidays:
                sources.add(HOLIDAY)
            if d not in self.holidays or day_of_week(d) in self.weekend_days:
                sources.add(WEEKEND)
        if d in self.existing:
            sources.add(EXISTING)
        return frozenset(sources)

    def _build_runs(self) -> list[_Run]:
        if self.start_date > self.end_date:
            return []

        runs: list[_Run] = []
        days: list[datetime.date] = []
        sources: set[str] = set()
        working: bool | None = None

        for d in date_range(self.start_date, self.end_date):
            day_sources = self._sources(d)
            is_working = not day_sources
            if working is not None and is_working != working:
                runs.append(_Run(working, days, frozenset(sources)))
                days, sources = [], set()
            working = is_working
            days.append(d)
            sources.update(day_sources)

        if days:
            runs.append(_Run(bool(working), days, frozenset(sources)))
        return runs

    # ------------------------------------------------------------------
    # Candidates
    # ------------------------------------------------------------------

    def _anchor_before(self, index: int) -> Anchor:
        if index > 0:
            return _make_anchor(self.runs[index - 1], self.prefs.extend_existing_pto)
        return _boundary_anchor("boundary-start", self.start_date)

    def _anchor_after(self, index: int) -> Anchor:
        if index + 1 < len(self.runs):
            return _make_anchor(self.runs[index + 1], self.prefs.extend_existing_pto)
        return _boundary_anchor("boundary-end", self.end_date)

    def _make_break(self, first: int, last: int) -> SuggestedBreak:
        """Build the break that buys every working day in runs first..last."""
        pto_days: list[datetime.date] = []
        for run in self.runs[first : last + 1]:
            if run.working:
                pto_days.extend(run.days)

        before = self._anchor_before(first)
        after = self._anchor_after(last)
        start = before.start if before.counts_toward_run else self.runs[first].days[0]
        end = after.end if after.counts_toward_run else self.runs[last].days[-1]

        total = (end - start).days + 1
        pto_required = len(pto_days)
        return SuggestedBreak(
            id=f"{format_local(start)}_{format_local(end)}_{pto_required}",
            start=start,
            end=end,
            pto_days=pto_days,
            pto_required=pto_required,
            total_days_off=total,
            efficiency=total / max(pto_required, 1),
            before=before,
            after=after,
        )

    def candidates(self) -> list[SuggestedBreak]:
        """Every break that passes the length, cost and per-break filters."""
        prefs = self.prefs
        per_break_cap = prefs.max_pto_per_break
        extend = prefs.extend_existing_pto
        found: list[SuggestedBreak] = []

        for first, run in enumerate(self.runs):
            if not run.working:
                continue

            cost = 0
            span_days = 0
            last = first
            while last < len(self.runs):
                current = self.runs[last]
                if not current.working:
                    # Only bridge across anchors that are themselves days off.
                    if not _counts_toward_run(current.sources, extend):
                        break
                    span_days += len(current.days)
                    last += 1
                    continue

                cost += len(current.days)
                span_days += len(current.days)
                if cost > self.spendable or span_days > prefs.max_consecutive_days_off:
                    break
                if per_break_cap is not None and cost > per_break_cap:
                    break

                candidate = self._make_break(first, last)
                if (
                    prefs.min_consecutive_days_off
                    <= candidate.total_days_off
                    <= prefs.max_consecutive_days_off
                ):
                    found.append(candidate)
                last += 1

        return found

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def suggest(self) -> OptimizationResult:
        """Greedily accept the best-ranked candidates that still fit.

        When the budget covers every candidate and no suggestion limit is
        set, the ranking mode only orders the output: breaks are accepted
        in efficiency order and then sorted by ``ranking_mode``.  Under a
        tight budget or a suggestion limit, the ranking mode also decides
        which breaks win.
        """
        prefs = self.prefs
        if not self.runs or self.spendable <= 0:
            return empty_result(self.budget)
        if prefs.max_suggestions is not None and prefs.max_suggestions <= 0:
            return empty_result(self.budget)

        candidates = self.candidates()
        unconstrained = prefs.max_suggestions is None and (
            sum(c.pto_required for c in candidates) <= self.spendable
        )
        selection_mode = RankingMode.EFFICIENCY if unconstrained else self.ranking_mode

        remaining = self.spendable
        accepted: list[SuggestedBreak] = []

        for candidate in rank_breaks(candidates, selection_mode):
            if prefs.max_suggestions is not None and len(accepted) >= prefs.max_suggestions:
                break
            if candidate.pto_required > remaining:
                continue
            if conflicts(candidate, accepted, prefs.min_spacing_between_breaks):
                continue
            accepted.append(candidate)
            remaining -= candidate.pto_required

        if selection_mode is not self.ranking_mode:
            accepted = rank_breaks(accepted, self.ranking_mode)

        suggested_days = sorted({d for b in accepted for d in b.pto_days})
        total_pto = sum(b.pto_required for b in accepted)
        total_off = sum(b.total_days_off for b in accepted)

        return OptimizationResult(
            breaks=accepted,
            suggested_days=suggested_days,
            total_pto_used=total_pto,
            total_days_off=total_off,
            average_efficiency=total_off / total_pto if total_pto else 0.0,
            remaining_pto=self.budget - total_pto,
        )


def suggest(
    budget: Decimal,
    non_working_days: Collection[datetime.date],
    existing_pto: Collection[datetime.date],
    prefs: SuggestionPreferences,
    *,
    holiday_dates: Collection[datetime.date] = (),
    weekend_days: Collection[int] = DEFAULT_WEEKEND_DAYS,
    today: datetime.date | None = None,
) -> OptimizationResult:
    """Suggest breaks for *budget* PTO days under *prefs*.

    Never raises for an empty or over-constrained window: "no suggestions"
    comes back as a result with no breaks.
    """
    if prefs.min_consecutive_days_off > prefs.max_consecutive_days_off:
        return empty_result(budget)
    optimizer = BreakOptimizer(
        budget,
        non_working_days,
        existing_pto,
        prefs,
        holiday_dates=holiday_dates,
        weekend_days=weekend_days,
        today=today,
    )
    return optimizer.suggest()


# ---------------------------------------------------------------------------
# Output formatting
# ---------------------------------------------------------------------------


def format_result(result: OptimizationResult, budget: Decimal) -> str:
    """Return a human-readable summary of suggested breaks."""
    lines: list[str] = []
    w = 64

    lines.append("")
    lines.append("=" * w)
    lines.append("  SUGGESTED BREAKS")
    lines.append("=" * w)
    lines.append(f"  PTO days used: {result.total_pto_used} / {budget}")
    lines.append(f"  Total days off: {result.total_days_off}")
    if result.total_pto_used > 0:
        lines.append(
            f"  Efficiency: {result.average_efficiency:.1f}x (days off per PTO day)"
        )
    lines.append(f"  Remaining PTO: {result.remaining_pto}")
    lines.append("")

    if not result.breaks:
        lines.append("  No breaks fit the current preferences.")
        return "\n".join(lines)

    lines.append("  Breaks:")
    lines.append("  " + "-" * (w - 4))

    for i, brk in enumerate(result.breaks, 1):
        n = brk.total_days_off
        day_word = "day" if n == 1 else "days"
        dr = (
            f"{brk.start.strftime('%a, %b %d')} -> "
            f"{brk.end.strftime('%a, %b %d')}"
        )
        lines.append(f"  {i:>2}. {dr}  ({n} {day_word}, {brk.efficiency:.1f}x)")
        lines.append(f"      {brk.pto_required} PTO")
        for anchor in (brk.before, brk.after):
            if anchor is not None and anchor.counts_toward_run:
                lines.append(f"      + {anchor.label}")
        lines.append("")

    lines.append("  Days to request off:")
    for d in result.suggested_days:
        lines.append(f"    -> {d.strftime('%A, %B %d, %Y')}")

    return "\n".join(lines)


def format_calendar_view(
    result: OptimizationResult,
    holidays: Collection[datetime.date] = (),
    existing_pto: Collection[datetime.date] = (),
) -> str:
    """Return a month-by-month calendar of the suggested days."""
    suggested = set(result.suggested_days)
    holiday_set = set(holidays)
    existing_set = set(existing_pto)

    active_months = sorted({(d.year, d.month) for d in suggested})
    if not active_months:
        return ""

    lines: list[str] = [
        "",
        "  Calendar View",
        "  Legend: S=Suggested  E=Existing PTO  H=Holiday",
        "",
    ]

    cal = calendar.Calendar(firstweekday=0)

    for year, month in active_months:
        lines.append(f"  {calendar.month_name[month]} {year}")
        lines.append("  Mo  Tu  We  Th  Fr  Sa  Su")

        row = ""
        for day_num, weekday in cal.itermonthdays2(year, month):
            if day_num == 0:
                row += "    "
            else:
                d = datetime.date(year, month, day_num)
                if d in suggested:
                    cell = f" {day_num:>2}S"
                elif d in existing_set:
                    cell = f" {day_num:>2}E"
                elif d in holiday_set:
                    cell = f" {day_num:>2}H"
                else:
                    cell = f"  {day_num:>2}"
                row += cell

            if weekday == 6:
                lines.append(row)
                row = ""

        if row.strip():
            lines.append(row)
        lines.append("")

    return "\n".join(lines)
