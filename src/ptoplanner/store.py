"""JSON snapshot persistence and the commands that change it.

The ledger and optimizer only ever see an immutable ``Snapshot``.  Changes
are expressed as command objects (``SaveSettings``, ``ApplySuggestions``,
…); ``apply_command`` turns a snapshot plus a command into a new snapshot
without touching disk, and ``JsonStore`` does the reading and writing.

On disk, dates are ``YYYY-MM-DD`` strings and field names follow the stored
record names (``pto_start_date``, ``accrual_frequency``, …).
"""

from __future__ import annotations

import datetime
import json
import logging
import pathlib
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, NamedTuple, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, model_validator

from ptoplanner.dates import to_local_date
from ptoplanner.models import (
    DEFAULT_WEEKEND_DAYS,
    AccrualRule,
    ConfigurationError,
    DisplayUnit,
    Frequency,
    Holiday,
    LedgerSettings,
    PTOStatus,
    RankingMode,
    SuggestionPreferences,
    TakenDay,
    default_preferences,
    resolve_settings,
    validate_preferences,
    validate_rule,
    validate_settings,
)

logger = logging.getLogger(__name__)

LocalDate = Annotated[datetime.date, BeforeValidator(lambda v: to_local_date(v) if v else v)]

# ---------------------------------------------------------------------------
# Records (on-disk shapes)
# ---------------------------------------------------------------------------


class SettingsRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    initial_balance: Decimal = Decimal("15")
    pto_start_date: LocalDate | None = None
    carry_over_limit: Decimal | None = Field(default=None, ge=0)
    renewal_date: LocalDate | None = None
    max_balance: Decimal | None = Field(default=None, ge=0)
    pto_display_unit: DisplayUnit = DisplayUnit.DAYS
    hours_per_day: Decimal = Field(default=Decimal("8"), gt=0, le=24)
    allow_negative_balance: bool = False

    def to_settings(self) -> LedgerSettings:
        return validate_settings(
            LedgerSettings(
                initial_balance=self.initial_balance,
                as_of_date=self.pto_start_date,
                carry_over_limit=self.carry_over_limit,
                renewal_date=self.renewal_date,
                max_balance=self.max_balance,
                display_unit=self.pto_display_unit,
                hours_per_day=self.hours_per_day,
                allow_negative_balance=self.allow_negative_balance,
            )
        )

    @classmethod
    def from_settings(cls, s: LedgerSettings) -> SettingsRecord:
        return cls(
            initial_balance=s.initial_balance,
            pto_start_date=s.as_of_date,
            carry_over_limit=s.carry_over_limit,
            renewal_date=s.renewal_date,
            max_balance=s.max_balance,
            pto_display_unit=s.display_unit,
            hours_per_day=s.hours_per_day,
            allow_negative_balance=s.allow_negative_balance,
        )


class AccrualRuleRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    accrual_amount: Decimal = Field(ge=0)
    accrual_frequency: Frequency
    accrual_day: int | None = Field(default=None, ge=0, le=366)
    effective_date: LocalDate
    end_date: LocalDate | None = None
    is_active: bool = True

    @model_validator(mode="after")
    def _check_dates(self) -> AccrualRuleRecord:
        if self.end_date is not None and self.end_date < self.effective_date:
            raise ValueError("end_date must not be before effective_date")
        return self

    def to_rule(self) -> AccrualRule:
        return validate_rule(
            AccrualRule(
                id=self.id,
                amount=self.accrual_amount,
                frequency=self.accrual_frequency,
                effective_date=self.effective_date,
                anchor_day=self.accrual_day,
                end_date=self.end_date,
                active=self.is_active,
                name=self.name,
            )
        )

    @classmethod
    def from_rule(cls, rule: AccrualRule) -> AccrualRuleRecord:
        return cls(
            id=rule.id,
            name=rule.name,
            accrual_amount=rule.amount,
            accrual_frequency=rule.frequency,
            accrual_day=rule.anchor_day,
            effective_date=rule.effective_date,
            end_date=rule.end_date,
            is_active=rule.active,
        )


class TakenDayRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    date: LocalDate
    status: PTOStatus = PTOStatus.PLANNED
    description: str = ""

    @model_validator(mode="before")
    @classmethod
    def _whole_days_only(cls, data: Any) -> Any:
        # Partial days are not tracked.
        if isinstance(data, dict) and data.get("amount") is not None:
            try:
                amount = Decimal(str(data["amount"]))
            except InvalidOperation:
                raise ValueError(f"amount must be a number, got {data['amount']!r}") from None
            if amount != 1:
                raise ValueError(f"only whole-day PTO is supported (amount must be 1, got {amount})")
        return data


class HolidayRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1, max_length=200)
    date: LocalDate
    repeats_yearly: bool = False


class PreferencesRecord(BaseModel):
    """Suggestion preferences; an unset window falls back to the defaults."""

    model_config = ConfigDict(extra="ignore")

    earliest_start: LocalDate | None = None
    latest_end: LocalDate | None = None
    min_pto_to_keep: Decimal = Field(default=Decimal("2"), ge=0)
    min_consecutive_days_off: int = Field(default=4, ge=0)
    max_consecutive_days_off: int = Field(default=14, ge=0)
    min_spacing_between_breaks: int = Field(default=14, ge=0)
    ranking_mode: RankingMode = RankingMode.EFFICIENCY
    extend_existing_pto: bool = True
    max_pto_per_break: int | None = Field(default=None, ge=0)
    max_suggestions: int | None = Field(default=None, ge=0)
    max_pto_to_use: int | None = Field(default=None, ge=0)

    def to_preferences(self, today: datetime.date) -> SuggestionPreferences:
        fallback = default_preferences(today)
        return validate_preferences(
            SuggestionPreferences(
                earliest_start=self.earliest_start or fallback.earliest_start,
                latest_end=self.latest_end or fallback.latest_end,
                min_pto_to_keep=self.min_pto_to_keep,
                min_consecutive_days_off=self.min_consecutive_days_off,
                max_consecutive_days_off=self.max_consecutive_days_off,
                min_spacing_between_breaks=self.min_spacing_between_breaks,
                ranking_mode=self.ranking_mode,
                extend_existing_pto=self.extend_existing_pto,
                max_pto_per_break=self.max_pto_per_break,
                max_suggestions=self.max_suggestions,
                max_pto_to_use=self.max_pto_to_use,
            )
        )


class SnapshotRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    settings: SettingsRecord | None = None
    remote_settings: SettingsRecord | None = None
    accrual_rules: list[AccrualRuleRecord] = []
    taken_days: list[TakenDayRecord] = []
    holidays: list[HolidayRecord] = []
    weekend_days: list[Annotated[int, Field(ge=0, le=6)]] = sorted(DEFAULT_WEEKEND_DAYS)
    country: str | None = "us"
    preferences: PreferencesRecord | None = None


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


class Snapshot(NamedTuple):
    """Everything the ledger and optimizer read, as plain values."""

    local_settings: LedgerSettings | None = None
    remote_settings: LedgerSettings | None = None
    rules: tuple[AccrualRule, ...] = ()
    taken_days: tuple[TakenDay, ...] = ()
    holidays: tuple[Holiday, ...] = ()
    weekend_days: frozenset[int] = DEFAULT_WEEKEND_DAYS
    country: str | None = "us"
    preferences: SuggestionPreferences | None = None

    @property
    def settings(self) -> LedgerSettings:
        return resolve_settings(self.remote_settings, self.local_settings)

    @property
    def booked_dates(self) -> set[datetime.date]:
        """Dates already holding non-cancelled PTO."""
        return {t.date for t in self.taken_days if t.consumes_budget}


def snapshot_from_data(data: dict[str, Any], today: datetime.date) -> Snapshot:
    """Validate raw JSON data into a ``Snapshot``.

    Raises ``ConfigurationError`` describing the first invalid field.
    """
    try:
        record = SnapshotRecord.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid planner data: {exc}") from exc

    return Snapshot(
        local_settings=record.settings.to_settings() if record.settings else None,
        remote_settings=record.remote_settings.to_settings() if record.remote_settings else None,
        rules=tuple(r.to_rule() for r in record.accrual_rules),
        taken_days=tuple(
            TakenDay(t.date, t.status, t.description) for t in record.taken_days
        ),
        holidays=tuple(Holiday(h.name, h.date, h.repeats_yearly) for h in record.holidays),
        weekend_days=frozenset(record.weekend_days),
        country=record.country,
        preferences=record.preferences.to_preferences(today) if record.preferences else None,
    )


def snapshot_to_data(snapshot: Snapshot) -> dict[str, Any]:
    prefs = snapshot.preferences
    record = SnapshotRecord(
        settings=SettingsRecord.from_settings(snapshot.local_settings)
        if snapshot.local_settings
        else None,
        remote_settings=SettingsRecord.from_settings(snapshot.remote_settings)
        if snapshot.remote_settings
        else None,
        accrual_rules=[AccrualRuleRecord.from_rule(r) for r in snapshot.rules],
        taken_days=[
            TakenDayRecord(date=t.date, status=t.status, description=t.description)
            for t in sorted(snapshot.taken_days, key=lambda t: t.date)
        ],
        holidays=[
            HolidayRecord(name=h.name, date=h.date, repeats_yearly=h.repeats_yearly)
            for h in snapshot.holidays
        ],
        weekend_days=sorted(snapshot.weekend_days),
        country=snapshot.country,
        preferences=PreferencesRecord(**prefs._asdict()) if prefs else None,
    )
    return record.model_dump(mode="json", exclude_none=True)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class SaveSettings(NamedTuple):
    settings: LedgerSettings


class SavePreferences(NamedTuple):
    preferences: SuggestionPreferences


class ApplySuggestions(NamedTuple):
    """Book every suggested date that is not already booked."""

    dates: tuple[datetime.date, ...]
    status: PTOStatus = PTOStatus.PLANNED
    description: str = "Suggested break"


class ToggleDay(NamedTuple):
    """Book *date* as planned PTO, or un-book it if already booked."""

    date: datetime.date


class DeactivateRule(NamedTuple):
    rule_id: str


Command = Union[SaveSettings, SavePreferences, ApplySuggestions, ToggleDay, DeactivateRule]


def _apply_suggestions(snapshot: Snapshot, command: ApplySuggestions) -> Snapshot:
    new_dates = set(command.dates) - snapshot.booked_dates
    # A cancelled entry on a re-booked date is replaced, not duplicated.
    kept = tuple(
        t for t in snapshot.taken_days if t.consumes_budget or t.date not in new_dates
    )
    added = tuple(
        TakenDay(d, command.status, description=command.description) for d in sorted(new_dates)
    )
    return snapshot._replace(taken_days=kept + added)


def _toggle_day(snapshot: Snapshot, command: ToggleDay) -> Snapshot:
    if command.date in snapshot.booked_dates:
        kept = tuple(
            t for t in snapshot.taken_days if not (t.date == command.date and t.consumes_budget)
        )
        return snapshot._replace(taken_days=kept)
    kept = tuple(t for t in snapshot.taken_days if t.date != command.date)
    return snapshot._replace(taken_days=kept + (TakenDay(command.date),))


def _deactivate_rule(snapshot: Snapshot, command: DeactivateRule) -> Snapshot:
    if not any(r.id == command.rule_id for r in snapshot.rules):
        raise ConfigurationError(f"Unknown accrual rule {command.rule_id!r}")
    rules = tuple(
        r._replace(active=False) if r.id == command.rule_id else r for r in snapshot.rules
    )
    return snapshot._replace(rules=rules)


def apply_command(snapshot: Snapshot, command: Command) -> Snapshot:
    """Return the snapshot that results from *command*; no I/O."""
    if isinstance(command, SaveSettings):
        return snapshot._replace(local_settings=validate_settings(command.settings))
    if isinstance(command, SavePreferences):
        return snapshot._replace(preferences=validate_preferences(command.preferences))
    if isinstance(command, ApplySuggestions):
        return _apply_suggestions(snapshot, command)
    if isinstance(command, ToggleDay):
        return _toggle_day(snapshot, command)
    if isinstance(command, DeactivateRule):
        return _deactivate_rule(snapshot, command)
    raise TypeError(f"Unsupported command {type(command).__name__}")


# ---------------------------------------------------------------------------
# JSON file store
# ---------------------------------------------------------------------------


class JsonStore:
    """Snapshot persisted as a single JSON file.

    A missing file reads as an empty snapshot (defaults everywhere).
    """

    def __init__(self, path: str | pathlib.Path):
        self.path = pathlib.Path(path)

    def load(self, today: datetime.date | None = None) -> Snapshot:
        today = today or datetime.date.today()
        if not self.path.exists():
            logger.debug("No planner data at %s; using defaults", self.path)
            return Snapshot()
        try:
            data = json.loads(self.path.read_text())
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Invalid JSON in {self.path}: {exc}") from None
        if not isinstance(data, dict):
            raise ConfigurationError(f"Planner data in {self.path} must be a JSON object")
        return snapshot_from_data(data, today)

    def save(self, snapshot: Snapshot) -> None:
        """Write *snapshot* to a sibling file, then swap it into place."""
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(json.dumps(snapshot_to_data(snapshot), indent=2) + "\n")
        tmp.replace(self.path)
        logger.info("Saved planner data to %s", self.path)

    def execute(self, command: Command, today: datetime.date | None = None) -> Snapshot:
        """Load, apply *command*, save, and return the new snapshot."""
        snapshot = apply_command(self.load(today), command)
        self.save(snapshot)
        return snapshot
