"""Typer CLI for the PTO planner."""

from __future__ import annotations

import datetime
import json
import logging
import sys
from decimal import Decimal

import typer

from ptoplanner.accrual import occurrences
from ptoplanner.dates import format_local, parse_local
from ptoplanner.holidays import (
    PRESETS,
    dedupe_holidays,
    expand_holidays,
    fetch_holidays,
    fetch_holidays_between,
    non_working_days,
)
from ptoplanner.ledger import PTOLedger
from ptoplanner.models import (
    ConfigurationError,
    Holiday,
    RankingMode,
    SuggestionPreferences,
    default_preferences,
    validate_preferences,
)
from ptoplanner.optimizer import (
    Anchor,
    OptimizationResult,
    format_calendar_view,
    format_result,
    suggest as suggest_breaks,
)
from ptoplanner.store import ApplySuggestions, DeactivateRule, JsonStore, Snapshot, ToggleDay

app = typer.Typer(
    name="pto",
    help="PTO Planner — track your PTO balance and get suggested breaks that "
    "bridge weekends and holidays.",
    add_completion=False,
)

RANKING_CHOICES = [m.value for m in RankingMode]

DATA_OPTION = typer.Option(
    "pto.json",
    "--data",
    "-d",
    envvar="PTO_PLANNER_DATA",
    help="Path to the planner data file (JSON).",
)


def _parse_date(value: str) -> datetime.date:
    """Parse a YYYY-MM-DD date string."""
    try:
        return parse_local(value)
    except ValueError:
        raise typer.BadParameter(f"Invalid date format {value!r}. Use YYYY-MM-DD.") from None


def _today() -> datetime.date:
    return datetime.date.today()


def _fail(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(code=1)


def _load(data: str) -> Snapshot:
    try:
        return JsonStore(data).load(_today())
    except ConfigurationError as exc:
        raise _fail(str(exc)) from None


def _ledger(snapshot: Snapshot) -> PTOLedger:
    return PTOLedger(snapshot.settings, snapshot.rules, snapshot.taken_days)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Balance
# ---------------------------------------------------------------------------


@app.command()
def balance(
    data: str = DATA_OPTION,
    on: str | None = typer.Option(
        None,
        "--date",
        help="Date to compute the balance for (YYYY-MM-DD). Defaults to today.",
    ),
    output_json: bool = typer.Option(False, "--json", help="Output results as JSON."),
) -> None:
    """Show the PTO balance available on a date."""
    target = _parse_date(on) if on else _today()
    snapshot = _load(data)
    ledger = _ledger(snapshot)
    b = ledger.breakdown(target)
    unit = ledger.settings.display_unit.value

    if output_json:
        output = {
            "date": format_local(b.as_of),
            "unit": unit,
            "initial": str(b.initial),
            "accrued": str(b.accrued),
            "used": str(b.used),
            "forfeited": str(b.forfeited),
            "capped": str(b.capped),
            "balance": str(b.balance),
        }
        json.dump(output, sys.stdout, indent=2)
        typer.echo()
        return

    w = 64
    typer.echo("=" * w)
    typer.echo("  PTO BALANCE")
    typer.echo("=" * w)
    typer.echo(f"  As of:             {target.strftime('%a, %b %d, %Y')}")
    typer.echo(f"  Initial balance:   {b.initial} {unit}")
    typer.echo(f"  Accrued:         + {b.accrued} {unit}")
    typer.echo(f"  Used:            - {b.used} {unit}")
    if b.forfeited:
        typer.echo(f"  Carryover lost:  - {b.forfeited} {unit}")
    if b.capped:
        typer.echo(f"  Over max balance: - {b.capped} {unit}")
    typer.echo("  " + "-" * (w - 4))
    typer.echo(f"  Balance:           {b.balance} {unit}")
    if b.balance < 0 and not ledger.settings.allow_negative_balance:
        typer.echo("  Warning: balance is negative.")


@app.command()
def schedule(
    data: str = DATA_OPTION,
    until: str | None = typer.Option(
        None,
        "--until",
        help="List accruals up to this date (YYYY-MM-DD). Defaults to the end of this year.",
    ),
) -> None:
    """List upcoming and past accrual dates for each active rule."""
    today = _today()
    limit = _parse_date(until) if until else datetime.date(today.year, 12, 31)
    snapshot = _load(data)

    active = [r for r in snapshot.rules if r.active]
    if not active:
        typer.echo("  No active accrual rules.")
        return

    for rule in active:
        label = rule.name or rule.id
        typer.echo(f"  {label}: {rule.amount} {rule.frequency.value}")
        for d in occurrences(rule, limit):
            typer.echo(f"    {d.strftime('%a, %b %d, %Y'):>18}  +{rule.amount}")
        typer.echo()


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------


def _resolve_preferences(
    snapshot: Snapshot,
    start: str | None,
    end: str | None,
    mode: str | None,
    min_days: int | None,
    max_days: int | None,
    spacing: int | None,
    keep: float | None,
    extend: bool | None,
    max_pto: int | None,
) -> SuggestionPreferences:
    base = snapshot.preferences or default_preferences(_today())
    overrides: dict[str, object] = {}
    if start:
        overrides["earliest_start"] = _parse_date(start)
    if end:
        overrides["latest_end"] = _parse_date(end)
    if mode is not None:
        if mode not in RANKING_CHOICES:
            raise _fail(
                f"Invalid ranking mode {mode!r}. Choose from: {', '.join(RANKING_CHOICES)}"
            )
        overrides["ranking_mode"] = RankingMode(mode)
    if min_days is not None:
        overrides["min_consecutive_days_off"] = min_days
    if max_days is not None:
        overrides["max_consecutive_days_off"] = max_days
    if spacing is not None:
        overrides["min_spacing_between_breaks"] = spacing
    if keep is not None:
        overrides["min_pto_to_keep"] = Decimal(str(keep))
    if extend is not None:
        overrides["extend_existing_pto"] = extend
    if max_pto is not None:
        overrides["max_pto_to_use"] = max_pto

    try:
        return validate_preferences(base._replace(**overrides))
    except ConfigurationError as exc:
        raise _fail(str(exc)) from None


def _window_holidays(snapshot: Snapshot, prefs: SuggestionPreferences) -> list[Holiday]:
    holidays = list(snapshot.holidays)
    if snapshot.country and snapshot.country != "none":
        try:
            holidays.extend(
                fetch_holidays_between(snapshot.country, prefs.earliest_start, prefs.latest_end)
            )
        except KeyError as exc:
            raise _fail(str(exc.args[0])) from None
    return dedupe_holidays(holidays)


def _print_suggestions_json(result: OptimizationResult, budget: Decimal) -> None:
    def _anchor(a: Anchor | None) -> dict[str, object] | None:
        if a is None:
            return None
        return {
            "start": format_local(a.start),
            "end": format_local(a.end),
            "day_count": a.day_count,
            "kind": a.kind,
            "counts_toward_run": a.counts_toward_run,
            "label": a.label,
        }

    output = {
        "budget": str(budget),
        "breaks": [
            {
                "id": b.id,
                "start": format_local(b.start),
                "end": format_local(b.end),
                "pto_days": [format_local(d) for d in b.pto_days],
                "pto_required": b.pto_required,
                "total_days_off": b.total_days_off,
                "efficiency": round(b.efficiency, 3),
                "anchors": {"before": _anchor(b.before), "after": _anchor(b.after)},
            }
            for b in result.breaks
        ],
        "suggested_days": [format_local(d) for d in result.suggested_days],
        "summary": {
            "total_pto_used": result.total_pto_used,
            "total_days_off": result.total_days_off,
            "average_efficiency": round(result.average_efficiency, 3),
            "remaining_pto": str(result.remaining_pto),
        },
    }
    json.dump(output, sys.stdout, indent=2)
    typer.echo()


@app.command()
def suggest(
    data: str = DATA_OPTION,
    budget: float | None = typer.Option(
        None,
        "--budget",
        "-b",
        help="PTO days available. Defaults to the ledger balance at the end of the window.",
        min=0,
    ),
    start: str | None = typer.Option(None, "--start", help="Earliest break date (YYYY-MM-DD)."),
    end: str | None = typer.Option(None, "--end", help="Latest break date (YYYY-MM-DD)."),
    mode: str | None = typer.Option(
        None,
        "--mode",
        "-m",
        help=f"Ranking mode: {', '.join(RANKING_CHOICES)}.",
    ),
    min_days: int | None = typer.Option(None, "--min-days", min=0, help="Shortest break."),
    max_days: int | None = typer.Option(None, "--max-days", min=0, help="Longest break."),
    spacing: int | None = typer.Option(
        None, "--spacing", min=0, help="Days required between two breaks."
    ),
    keep: float | None = typer.Option(
        None, "--keep", min=0, help="PTO days to hold in reserve."
    ),
    max_pto: int | None = typer.Option(
        None, "--max-pto", min=0, help="Most PTO days the suggestions may spend in total."
    ),
    extend: bool | None = typer.Option(
        None,
        "--extend-existing/--no-extend-existing",
        help="Let breaks grow into PTO that is already booked.",
    ),
    calendar: bool = typer.Option(
        True,
        "--calendar/--no-calendar",
        help="Show month-by-month calendar view.",
    ),
    output_json: bool = typer.Option(False, "--json", help="Output results as JSON."),
    apply: bool = typer.Option(
        False, "--apply", help="Book the suggested days as planned PTO."
    ),
) -> None:
    """Suggest breaks that make the most of the remaining PTO."""
    snapshot = _load(data)
    prefs = _resolve_preferences(
        snapshot, start, end, mode, min_days, max_days, spacing, keep, extend, max_pto
    )

    if budget is not None:
        available = Decimal(str(budget))
    else:
        available = _ledger(snapshot).days_available(prefs.latest_end)

    holidays = _window_holidays(snapshot, prefs)
    off_days = non_working_days(
        prefs.earliest_start, prefs.latest_end, snapshot.weekend_days, holidays
    )
    holiday_dates = expand_holidays(holidays, prefs.earliest_start, prefs.latest_end)
    existing = snapshot.booked_dates

    result = suggest_breaks(
        available,
        off_days,
        existing,
        prefs,
        holiday_dates=holiday_dates,
        weekend_days=snapshot.weekend_days,
        today=_today(),
    )

    if output_json:
        _print_suggestions_json(result, available)
    else:
        typer.echo(format_result(result, available))
        if calendar:
            typer.echo(format_calendar_view(result, holiday_dates, existing))

    if apply and result.suggested_days:
        JsonStore(data).execute(ApplySuggestions(tuple(result.suggested_days)), _today())
        if not output_json:
            typer.echo(f"  Booked {len(result.suggested_days)} day(s) as planned PTO.")


@app.command()
def toggle(
    day: str = typer.Argument(..., help="Date to book or un-book (YYYY-MM-DD)."),
    data: str = DATA_OPTION,
) -> None:
    """Book a day as planned PTO, or remove it if it is already booked."""
    d = _parse_date(day)
    snapshot = _load(data)
    booked = d in snapshot.booked_dates
    JsonStore(data).execute(ToggleDay(d), _today())
    verb = "Removed" if booked else "Booked"
    typer.echo(f"  {verb} {d.strftime('%a, %b %d, %Y')}")


@app.command()
def deactivate(
    rule_id: str = typer.Argument(..., help="Id of the accrual rule to stop."),
    data: str = DATA_OPTION,
) -> None:
    """Stop an accrual rule without deleting its history."""
    try:
        JsonStore(data).execute(DeactivateRule(rule_id), _today())
    except ConfigurationError as exc:
        raise _fail(str(exc)) from None
    typer.echo(f"  Deactivated accrual rule {rule_id!r}")


# ---------------------------------------------------------------------------
# Holidays
# ---------------------------------------------------------------------------


@app.command()
def holidays(
    country: str = typer.Option(
        "us",
        "--country",
        "-c",
        help=f"Country preset ({', '.join(sorted(PRESETS))}).",
    ),
    year: int = typer.Option(
        None,
        "--year",
        "-y",
        help="Year to list holidays for. Defaults to the current year.",
    ),
) -> None:
    """List holidays for a country preset."""
    resolved_year = year if year is not None else _today().year

    try:
        preset = fetch_holidays(country, resolved_year)
    except KeyError as exc:
        raise _fail(str(exc.args[0])) from None

    typer.echo(f"  {PRESETS[country.lower()]} — {resolved_year}")
    typer.echo()
    for h in preset:
        typer.echo(f"    {h.date.strftime('%a, %b %d'):>12}  {h.name}")


def main() -> None:
    """Entry point for the CLI."""
    app()
