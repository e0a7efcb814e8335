from __future__ import annotations

import datetime
import json
import pathlib
from decimal import Decimal

import pytest

from ptoplanner.models import (
    DEFAULT_SETTINGS,
    ConfigurationError,
    DisplayUnit,
    Frequency,
    LedgerSettings,
    PTOStatus,
    RankingMode,
    SuggestionPreferences,
    TakenDay,
)
from ptoplanner.store import (
    ApplySuggestions,
    DeactivateRule,
    JsonStore,
    SavePreferences,
    SaveSettings,
    Snapshot,
    ToggleDay,
    apply_command,
    snapshot_from_data,
    snapshot_to_data,
)

TODAY = datetime.date(2026, 3, 15)


def _data() -> dict:
    return {
        "settings": {
            "initial_balance": "10",
            "pto_start_date": "2026-01-01",
            "carry_over_limit": 5,
            "renewal_date": "2027-01-01",
            "pto_display_unit": "days",
        },
        "accrual_rules": [
            {
                "id": "monthly",
                "name": "Monthly accrual",
                "accrual_amount": "1.5",
                "accrual_frequency": "monthly",
                "accrual_day": 1,
                "effective_date": "2026-01-01",
            }
        ],
        "taken_days": [
            {"date": "2026-02-02", "status": "taken"},
            {"date": "2026-02-03T00:00:00", "status": "cancelled"},
        ],
        "holidays": [
            {"name": "Company day", "date": "2026-08-14", "repeats_yearly": True},
        ],
        "country": "none",
    }


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestSnapshotFromData:
    def test_settings(self) -> None:
        snap = snapshot_from_data(_data(), TODAY)
        assert snap.settings.initial_balance == Decimal("10")
        assert snap.settings.as_of_date == datetime.date(2026, 1, 1)
        assert snap.settings.carry_over_limit == Decimal("5")
        assert snap.settings.display_unit is DisplayUnit.DAYS

    def test_rules(self) -> None:
        (rule,) = snapshot_from_data(_data(), TODAY).rules
        assert rule.id == "monthly"
        assert rule.frequency is Frequency.MONTHLY
        assert rule.amount == Decimal("1.5")
        assert rule.anchor_day == 1

    def test_datetime_strings_keep_their_calendar_day(self) -> None:
        snap = snapshot_from_data(_data(), TODAY)
        assert [t.date for t in snap.taken_days] == [
            datetime.date(2026, 2, 2),
            datetime.date(2026, 2, 3),
        ]
        assert snap.booked_dates == {datetime.date(2026, 2, 2)}

    def test_holidays_and_weekend_defaults(self) -> None:
        snap = snapshot_from_data(_data(), TODAY)
        assert snap.holidays[0].repeats_yearly
        assert snap.weekend_days == frozenset({0, 6})
        assert snap.country == "none"
        assert snap.preferences is None

    def test_empty_data_uses_defaults(self) -> None:
        snap = snapshot_from_data({}, TODAY)
        assert snap.settings == DEFAULT_SETTINGS
        assert snap.settings.initial_balance == Decimal("15")
        assert snap.rules == ()

    def test_local_settings_win_over_remote(self) -> None:
        data = {"settings": {"initial_balance": 3}, "remote_settings": {"initial_balance": 7}}
        assert snapshot_from_data(data, TODAY).settings.initial_balance == Decimal("3")
        del data["settings"]
        assert snapshot_from_data(data, TODAY).settings.initial_balance == Decimal("7")

    def test_preferences_window_defaults(self) -> None:
        snap = snapshot_from_data({"preferences": {"ranking_mode": "longest"}}, TODAY)
        prefs = snap.preferences
        assert prefs is not None
        assert prefs.earliest_start == datetime.date(2024, 1, 1)
        assert prefs.latest_end == datetime.date(2028, 12, 31)
        assert prefs.ranking_mode is RankingMode.LONGEST
        assert prefs.min_pto_to_keep == Decimal("2")


class TestValidation:
    def test_unknown_frequency(self) -> None:
        data = _data()
        data["accrual_rules"][0]["accrual_frequency"] = "fortnightly"
        with pytest.raises(ConfigurationError, match="Invalid planner data"):
            snapshot_from_data(data, TODAY)

    def test_end_before_effective(self) -> None:
        data = _data()
        data["accrual_rules"][0]["end_date"] = "2025-12-31"
        with pytest.raises(ConfigurationError):
            snapshot_from_data(data, TODAY)

    def test_monthly_anchor_out_of_range(self) -> None:
        data = _data()
        data["accrual_rules"][0]["accrual_day"] = 40
        with pytest.raises(ConfigurationError, match="anchor_day"):
            snapshot_from_data(data, TODAY)

    def test_hours_per_day_must_be_positive(self) -> None:
        with pytest.raises(ConfigurationError):
            snapshot_from_data({"settings": {"hours_per_day": 0}}, TODAY)

    def test_bad_date(self) -> None:
        with pytest.raises(ConfigurationError):
            snapshot_from_data({"taken_days": [{"date": "02/03/2026"}]}, TODAY)

    def test_partial_day_amount_is_rejected(self) -> None:
        data = {"taken_days": [{"date": "2026-01-05", "amount": "0.5"}]}
        with pytest.raises(ConfigurationError, match="whole-day"):
            snapshot_from_data(data, TODAY)

    def test_whole_day_amount_is_accepted(self) -> None:
        data = {"taken_days": [{"date": "2026-01-05", "amount": 1}]}
        snap = snapshot_from_data(data, TODAY)
        assert snap.booked_dates == {datetime.date(2026, 1, 5)}

    def test_negative_max_pto_to_use(self) -> None:
        with pytest.raises(ConfigurationError):
            snapshot_from_data({"preferences": {"max_pto_to_use": -1}}, TODAY)

    def test_min_above_max_preferences(self) -> None:
        data = {
            "preferences": {"min_consecutive_days_off": 10, "max_consecutive_days_off": 3}
        }
        with pytest.raises(ConfigurationError, match="cannot exceed"):
            snapshot_from_data(data, TODAY)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestCommands:
    def _snap(self) -> Snapshot:
        return snapshot_from_data(_data(), TODAY)

    def test_apply_suggestions_skips_booked(self) -> None:
        dates = (datetime.date(2026, 2, 2), datetime.date(2026, 4, 6))
        snap = apply_command(self._snap(), ApplySuggestions(dates))
        planned = [t for t in snap.taken_days if t.status is PTOStatus.PLANNED]
        assert [t.date for t in planned] == [datetime.date(2026, 4, 6)]
        assert planned[0].description == "Suggested break"

    def test_apply_suggestions_replaces_cancelled(self) -> None:
        cancelled = datetime.date(2026, 2, 3)
        snap = apply_command(self._snap(), ApplySuggestions((cancelled,)))
        entries = [t for t in snap.taken_days if t.date == cancelled]
        assert len(entries) == 1
        assert entries[0].consumes_budget

    def test_toggle_adds_then_removes(self) -> None:
        day = datetime.date(2026, 5, 4)
        added = apply_command(self._snap(), ToggleDay(day))
        assert day in added.booked_dates
        removed = apply_command(added, ToggleDay(day))
        assert day not in removed.booked_dates
        assert removed.taken_days == self._snap().taken_days

    def test_deactivate_rule(self) -> None:
        snap = apply_command(self._snap(), DeactivateRule("monthly"))
        assert not snap.rules[0].active

    def test_deactivate_unknown_rule(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown accrual rule"):
            apply_command(self._snap(), DeactivateRule("missing"))

    def test_save_settings_validates(self) -> None:
        bad = LedgerSettings(hours_per_day=Decimal("0"))
        with pytest.raises(ConfigurationError):
            apply_command(self._snap(), SaveSettings(bad))

    def test_save_preferences(self) -> None:
        prefs = SuggestionPreferences(
            earliest_start=datetime.date(2026, 1, 1),
            latest_end=datetime.date(2026, 12, 31),
            ranking_mode="earliest",  # type: ignore[arg-type]
        )
        snap = apply_command(self._snap(), SavePreferences(prefs))
        assert snap.preferences is not None
        assert snap.preferences.ranking_mode is RankingMode.EARLIEST

    def test_unsupported_command(self) -> None:
        with pytest.raises(TypeError):
            apply_command(self._snap(), object())  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# JSON file store
# ---------------------------------------------------------------------------


class TestJsonStore:
    def test_missing_file_is_empty_snapshot(self, tmp_path: pathlib.Path) -> None:
        snap = JsonStore(tmp_path / "missing.json").load(TODAY)
        assert snap == Snapshot()

    def test_invalid_json(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "pto.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            JsonStore(path).load(TODAY)

    def test_non_object(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "pto.json"
        path.write_text("[]")
        with pytest.raises(ConfigurationError, match="JSON object"):
            JsonStore(path).load(TODAY)

    def test_save_then_load(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "pto.json"
        store = JsonStore(path)
        original = snapshot_from_data(_data(), TODAY)
        store.save(original)
        assert store.load(TODAY) == original

        raw = json.loads(path.read_text())
        assert raw["taken_days"][0] == {
            "date": "2026-02-02",
            "status": "taken",
            "description": "",
        }
        assert "remote_settings" not in raw

    def test_execute_persists(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "pto.json"
        path.write_text(json.dumps(_data()))
        store = JsonStore(path)
        day = datetime.date(2026, 6, 1)
        store.execute(ToggleDay(day), TODAY)
        assert day in store.load(TODAY).booked_dates

    def test_save_keeps_old_file_when_swap_fails(
        self, tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "pto.json"
        path.write_text(json.dumps(_data()))
        before = path.read_text()

        def _fail_replace(self: pathlib.Path, target: pathlib.Path) -> pathlib.Path:
            raise OSError("disk full")

        monkeypatch.setattr(pathlib.Path, "replace", _fail_replace)
        with pytest.raises(OSError):
            JsonStore(path).save(Snapshot())
        assert path.read_text() == before

    def test_save_leaves_no_temp_file(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "pto.json"
        JsonStore(path).save(Snapshot())
        assert [p.name for p in tmp_path.iterdir()] == ["pto.json"]

    def test_preferences_round_trip(self, tmp_path: pathlib.Path) -> None:
        store = JsonStore(tmp_path / "pto.json")
        prefs = SuggestionPreferences(
            earliest_start=datetime.date(2026, 1, 1),
            latest_end=datetime.date(2026, 12, 31),
            max_pto_to_use=6,
        )
        store.execute(SavePreferences(prefs), TODAY)
        loaded = store.load(TODAY).preferences
        assert loaded is not None
        assert loaded.max_pto_to_use == 6
        assert loaded.latest_end == datetime.date(2026, 12, 31)

    def test_snapshot_to_data_sorts_taken_days(self) -> None:
        snap = Snapshot(
            taken_days=(
                TakenDay(datetime.date(2026, 3, 2)),
                TakenDay(datetime.date(2026, 1, 5)),
            )
        )
        data = snapshot_to_data(snap)
        assert [t["date"] for t in data["taken_days"]] == ["2026-01-05", "2026-03-02"]
