from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from yard_analytics.cli import app

TRAILER_CSV = (
    "Event,Event Time,SCAC,Driver Cell Phone\n"
    "Trailer marked lost,2024-05-01 08:00,ABCD,555-0100\n"
    "Trailer marked lost,2024-05-01 09:00,ABCD,\n"
    "Spot Edited,2024-05-02 10:00,,\n"
    "Trailer marked lost,2024-05-02 11:00,WXYZ,\n"
)


def _write_inputs(tmp_path: Path) -> tuple[Path, Path]:
    csv_path = tmp_path / "trailer.csv"
    csv_path.write_text(TRAILER_CSV, encoding="utf-8")
    config_path = tmp_path / "config.yaml"
    config_path.write_text("time:\n  timezone: UTC\n", encoding="utf-8")
    return csv_path, config_path


def test_cli_help() -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    assert "analyze" in result.stdout
    assert "findings" in result.stdout


def test_analyze_then_findings(tmp_path: Path) -> None:
    csv_path, config_path = _write_inputs(tmp_path)
    out_dir = tmp_path / "out"
    runner = CliRunner()

    result = runner.invoke(
        app,
        [
            "analyze",
            "--csv",
            str(csv_path),
            "--report",
            "trailer_history",
            "--out",
            str(out_dir),
            "--config",
            str(config_path),
            "--as-of",
            "2024-06-01",
        ],
    )

    assert result.exit_code == 0, result.stdout
    assert "Analysis complete. Report: trailer_history" in result.stdout
    assert "- rows: 4" in result.stdout
    assert "- data_quality: 100 (High)" in result.stdout
    summary_path = out_dir / "summary" / "trailer_history.json"
    assert summary_path.exists()
    assert (out_dir / "tables" / "trailer_history__error_events_daily.csv").exists()

    shown = runner.invoke(app, ["findings", "--summary", str(summary_path)])

    assert shown.exit_code == 0
    assert shown.stdout.startswith("trailer_history:")
    assert "[+] Lost trailer events decreased 50% (2 -> 1) day-over-day." in shown.stdout
    assert "ABCD: 2 (67%)" in shown.stdout


def test_analyze_timezone_override_is_applied(monkeypatch, tmp_path: Path) -> None:
    csv_path, config_path = _write_inputs(tmp_path)
    captured: dict[str, object] = {}

    def _fake_run_report(csv_path: Path, report_type, out_dir: Path, config, now=None):
        captured["timezone"] = config.time.timezone
        captured["report_type"] = report_type
        raise SystemExit(0)

    monkeypatch.setattr("yard_analytics.cli.run_report", _fake_run_report)
    runner = CliRunner()
    result = runner.invoke(
        app,
        [
            "analyze",
            "--csv",
            str(csv_path),
            "--report",
            "DRIVER_HISTORY",
            "--config",
            str(config_path),
            "--timezone",
            "America/Chicago",
        ],
    )

    assert result.exit_code == 0
    assert captured["timezone"] == "America/Chicago"
    assert captured["report_type"].value == "driver_history"


def test_analyze_rejects_unknown_report_and_bad_timezone(tmp_path: Path) -> None:
    csv_path, config_path = _write_inputs(tmp_path)
    runner = CliRunner()

    unknown = runner.invoke(
        app, ["analyze", "--csv", str(csv_path), "--report", "gate_history", "--config", str(config_path)]
    )
    assert unknown.exit_code == 2

    bad_zone = runner.invoke(
        app,
        [
            "analyze",
            "--csv",
            str(csv_path),
            "--report",
            "trailer_history",
            "--config",
            str(config_path),
            "--timezone",
            "Mars/Olympus",
        ],
    )
    assert bad_zone.exit_code == 2
