from __future__ import annotations

import datetime
import json
import pathlib

import pytest
from typer.testing import CliRunner

from ptoplanner import cli
from ptoplanner.cli import app

runner = CliRunner()

TODAY = datetime.date(2026, 1, 1)


@pytest.fixture(autouse=True)
def _fixed_today(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "_today", lambda: TODAY)


def _write_data(tmp_path: pathlib.Path, data: dict[str, object]) -> str:
    """Write planner data to a temp file and return its path."""
    path = tmp_path / "pto.json"
    path.write_text(json.dumps(data))
    return str(path)


def _ledger_data() -> dict[str, object]:
    return {
        "settings": {"initial_balance": 10, "pto_start_date": "2026-01-01"},
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
        "country": "none",
    }


SUGGEST_ARGS = [
    "suggest",
    "--budget",
    "5",
    "--start",
    "2026-01-03",
    "--end",
    "2026-01-11",
    "--min-days",
    "1",
    "--max-days",
    "9",
    "--spacing",
    "0",
    "--keep",
    "0",
]


class TestBalanceCommand:
    def test_balance_json(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, _ledger_data())
        result = runner.invoke(app, ["balance", "--data", path, "--date", "2026-03-15", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["date"] == "2026-03-15"
        assert data["unit"] == "days"
        assert data["accrued"] == "4.5"
        assert data["balance"] == "14.5"

    def test_balance_before_start_is_zero(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, _ledger_data())
        result = runner.invoke(app, ["balance", "--data", path, "--date", "2025-12-01", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["balance"] == "0"

    def test_balance_text(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, _ledger_data())
        result = runner.invoke(app, ["balance", "--data", path, "--date", "2026-03-15"])
        assert result.exit_code == 0
        assert "PTO BALANCE" in result.output
        assert "As of:             Sun, Mar 15, 2026" in result.output
        assert "14.5 days" in result.output

    def test_missing_file_uses_defaults(self, tmp_path: pathlib.Path) -> None:
        path = str(tmp_path / "none.json")
        result = runner.invoke(app, ["balance", "--data", path, "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["balance"] == "15"

    def test_data_path_from_env(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, _ledger_data())
        result = runner.invoke(
            app,
            ["balance", "--date", "2026-03-15", "--json"],
            env={"PTO_PLANNER_DATA": path},
        )
        assert result.exit_code == 0
        assert json.loads(result.output)["balance"] == "14.5"

    def test_invalid_json(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "pto.json"
        path.write_text("{not json")
        result = runner.invoke(app, ["balance", "--data", str(path)])
        assert result.exit_code == 1
        assert "Invalid JSON" in result.output

    def test_invalid_rule(self, tmp_path: pathlib.Path) -> None:
        data = _ledger_data()
        data["accrual_rules"][0]["accrual_frequency"] = "hourly"  # type: ignore[index]
        path = _write_data(tmp_path, data)
        result = runner.invoke(app, ["balance", "--data", path])
        assert result.exit_code == 1
        assert "Invalid planner data" in result.output

    def test_invalid_date(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, _ledger_data())
        result = runner.invoke(app, ["balance", "--data", path, "--date", "03/15/2026"])
        assert result.exit_code == 2


class TestScheduleCommand:
    def test_schedule(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, _ledger_data())
        result = runner.invoke(app, ["schedule", "--data", path, "--until", "2026-03-31"])
        assert result.exit_code == 0
        assert "Monthly accrual: 1.5 monthly" in result.output
        assert "Thu, Jan 01, 2026" in result.output
        assert "Sun, Mar 01, 2026" in result.output
        assert result.output.count("+1.5") == 3

    def test_schedule_without_rules(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, {"country": "none"})
        result = runner.invoke(app, ["schedule", "--data", path])
        assert result.exit_code == 0
        assert "No active accrual rules." in result.output


class TestSuggestCommand:
    def test_suggest_json(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, {"country": "none"})
        result = runner.invoke(app, [*SUGGEST_ARGS, "--data", path, "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert float(data["budget"]) == 5
        assert len(data["breaks"]) == 1
        brk = data["breaks"][0]
        assert brk["id"] == "2026-01-03_2026-01-11_5"
        assert brk["total_days_off"] == 9
        assert brk["efficiency"] == 1.8
        assert brk["anchors"]["before"]["kind"] == "weekend"
        assert data["suggested_days"][0] == "2026-01-05"
        assert data["summary"]["total_pto_used"] == 5
        assert float(data["summary"]["remaining_pto"]) == 0

    def test_suggest_text_with_calendar(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, {"country": "none"})
        result = runner.invoke(app, [*SUGGEST_ARGS, "--data", path])
        assert result.exit_code == 0
        assert "SUGGESTED BREAKS" in result.output
        assert "Calendar View" in result.output

    def test_suggest_uses_country_holidays(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, {"country": "us"})
        args = [
            "suggest",
            "--data",
            path,
            "--budget",
            "1",
            "--start",
            "2026-01-01",
            "--end",
            "2026-01-04",
            "--min-days",
            "1",
            "--keep",
            "0",
            "--json",
        ]
        result = runner.invoke(app, args)
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["suggested_days"] == ["2026-01-02"]
        assert data["breaks"][0]["anchors"]["before"]["kind"] == "holiday"

    def test_suggest_never_starts_in_the_past(
        self, tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(cli, "_today", lambda: datetime.date(2026, 2, 1))
        path = _write_data(tmp_path, {"country": "none"})
        result = runner.invoke(app, [*SUGGEST_ARGS, "--data", path, "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["breaks"] == []

    def test_suggest_budget_defaults_to_ledger(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, {"settings": {"initial_balance": 2}, "country": "none"})
        args = [a for a in SUGGEST_ARGS if a not in ("--budget", "5")]
        result = runner.invoke(app, [*args, "--data", path, "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["budget"] == "2"
        assert data["breaks"] == []

    def test_max_pto_caps_spend(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, {"country": "none"})
        result = runner.invoke(app, [*SUGGEST_ARGS, "--data", path, "--max-pto", "4", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["breaks"] == []
        assert float(data["summary"]["remaining_pto"]) == 5

    def test_invalid_mode(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, {"country": "none"})
        result = runner.invoke(app, [*SUGGEST_ARGS, "--data", path, "--mode", "bogus"])
        assert result.exit_code == 1
        assert "Invalid ranking mode" in result.output

    def test_min_above_max(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, {"country": "none"})
        result = runner.invoke(
            app, ["suggest", "--data", path, "--min-days", "10", "--max-days", "3"]
        )
        assert result.exit_code == 1
        assert "cannot exceed" in result.output

    def test_unknown_country(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, {"country": "atlantis"})
        result = runner.invoke(app, [*SUGGEST_ARGS, "--data", path])
        assert result.exit_code == 1
        assert "Unknown country preset" in result.output

    def test_apply_books_days(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, {"country": "none"})
        result = runner.invoke(app, [*SUGGEST_ARGS, "--data", path, "--no-calendar", "--apply"])
        assert result.exit_code == 0
        assert "Booked 5 day(s) as planned PTO." in result.output

        saved = json.loads(pathlib.Path(path).read_text())
        assert [t["date"] for t in saved["taken_days"]] == [
            "2026-01-05",
            "2026-01-06",
            "2026-01-07",
            "2026-01-08",
            "2026-01-09",
        ]
        assert {t["status"] for t in saved["taken_days"]} == {"planned"}

        # booked days are never suggested again
        again = runner.invoke(app, [*SUGGEST_ARGS, "--data", path, "--json"])
        assert json.loads(again.output)["breaks"] == []


class TestToggleCommand:
    def test_toggle_books_then_removes(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, {"country": "none"})
        first = runner.invoke(app, ["toggle", "2026-05-04", "--data", path])
        assert first.exit_code == 0
        assert "Booked Mon, May 04, 2026" in first.output
        saved = json.loads(pathlib.Path(path).read_text())
        assert saved["taken_days"][0]["date"] == "2026-05-04"

        second = runner.invoke(app, ["toggle", "2026-05-04", "--data", path])
        assert second.exit_code == 0
        assert "Removed Mon, May 04, 2026" in second.output
        assert json.loads(pathlib.Path(path).read_text())["taken_days"] == []


class TestDeactivateCommand:
    def test_deactivate_stops_accrual(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, _ledger_data())
        result = runner.invoke(app, ["deactivate", "monthly", "--data", path])
        assert result.exit_code == 0
        balance = runner.invoke(
            app, ["balance", "--data", path, "--date", "2026-03-15", "--json"]
        )
        assert json.loads(balance.output)["balance"] == "10"

    def test_deactivate_unknown_rule(self, tmp_path: pathlib.Path) -> None:
        path = _write_data(tmp_path, _ledger_data())
        result = runner.invoke(app, ["deactivate", "missing", "--data", path])
        assert result.exit_code == 1
        assert "Unknown accrual rule" in result.output


class TestHolidaysCommand:
    def test_holidays_default(self) -> None:
        result = runner.invoke(app, ["holidays", "--year", "2025"])
        assert result.exit_code == 0
        assert "United States federal holidays" in result.output
        assert "Independence Day" in result.output

    def test_holidays_defaults_to_current_year(self) -> None:
        result = runner.invoke(app, ["holidays"])
        assert result.exit_code == 0
        assert "2026" in result.output

    def test_holidays_invalid_country(self) -> None:
        result = runner.invoke(app, ["holidays", "--country", "xx"])
        assert result.exit_code == 1
        assert "Unknown country preset" in result.output
