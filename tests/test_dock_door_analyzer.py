from __future__ import annotations

from datetime import datetime

from yard_analytics.analyzers.base import AnalyzerContext
from yard_analytics.analyzers.dock_door import DockDoorHistoryAnalyzer
from yard_analytics.facilities import FacilityRegistry
from yard_analytics.preprocess.time import UTC

NOW = datetime(2024, 6, 1, tzinfo=UTC)


def _analyzer() -> DockDoorHistoryAnalyzer:
    return DockDoorHistoryAnalyzer(AnalyzerContext(timezone="UTC", now=NOW), FacilityRegistry())


def _visit(door: str, dwell: tuple[str, str], process: tuple[str, str], processed_by: str) -> dict[str, str]:
    return {
        "door": door,
        "dwell_start_time": dwell[0],
        "dwell_end_time": dwell[1],
        "process_start_time": process[0],
        "process_end_time": process[1],
        "processed_by": processed_by,
    }


def test_dock_door_turns_coverage_and_dwell_change() -> None:
    analyzer = _analyzer()
    analyzer.ingest(
        _visit("D1", ("2024-05-01 08:00", "2024-05-01 09:00"), ("2024-05-01 08:10", "2024-05-01 08:40"), "alice")
    )
    analyzer.ingest(
        _visit("D2", ("2024-05-01 10:00", "2024-05-01 12:00"), ("2024-05-01 10:00", "2024-05-01 11:00"), "alice")
    )
    analyzer.ingest(
        _visit("D1", ("2024-05-02 08:00", "2024-05-02 08:30"), ("2024-05-02 08:00", "2024-05-02 08:20"), "bob")
    )
    analyzer.ingest({"door": "D3"})

    report = analyzer.finalize().to_dict()
    metrics = report["metrics"]

    assert metrics["dwell_coverage_pct"] == 75.0
    assert metrics["process_coverage_pct"] == 75.0
    assert metrics["total_turns"] == 3
    assert metrics["unique_doors"] == 2
    assert metrics["days_with_turns"] == 2
    assert metrics["turns_per_door_per_day"] == 1.0
    assert metrics["dwell_median_latest_min"] == 30.0
    assert report["data_quality"]["score"] == 88

    texts = [(finding["level"], finding["text"]) for finding in report["findings"]]
    assert ("green", "Median dwell time decreased 50% (60 min -> 30 min) day-over-day.") in texts

    charts = {chart["id"]: chart for chart in report["charts"]}
    medians = charts["dwell_process_medians_daily"]["table"]["rows"]
    assert medians == [
        {"day": "2024-05-01", "dwell_median_min": 60.0, "process_median_min": 30.0},
        {"day": "2024-05-02", "dwell_median_min": 30.0, "process_median_min": 20.0},
    ]
    assert charts["top_processed_by"]["data"]["labels"] == ["alice", "bob"]
    turns = charts["door_turns_utilization_daily"]["table"]["rows"]
    assert [row["door_turns"] for row in turns] == [2, 1]
    assert [row["doors_utilized"] for row in turns] == [2, 1]


def test_dock_door_flags_admin_dominated_requests() -> None:
    analyzer = _analyzer()
    for _ in range(25):
        analyzer.ingest({"move_requested_by": "System Admin"})

    report = analyzer.finalize().to_dict()

    texts = [finding["text"] for finding in report["findings"]]
    assert "Move requests appear dominated by admin/system users (~100%)." in texts
    assert [chart["id"] for chart in report["charts"]] == ["top_move_requested_by"]
    assert len(report["data_quality"]["data_quality_findings"]) == 2
    assert report["metrics"]["total_turns"] == 0
    assert report["metrics"]["dwell_median_latest_min"] is None


def test_dock_door_out_of_range_dwell_keeps_counts_consistent() -> None:
    analyzer = DockDoorHistoryAnalyzer(
        AnalyzerContext(timezone="America/Chicago", now=NOW), FacilityRegistry()
    )
    analyzer.ingest(
        _visit("D1", ("0001-01-01 00:00", "2024-05-01 09:00"), ("", ""), "alice")
    )

    report = analyzer.finalize().to_dict()

    assert analyzer.parse_fails == 1
    assert report["metrics"]["dwell_coverage_pct"] == 0.0
    assert report["metrics"]["total_turns"] == 0
    assert report["data_quality"]["score"] == 25
    assert report["inferred_date_range"]["start_date"] == "2024-05-01"
