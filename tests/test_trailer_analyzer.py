from __future__ import annotations

from datetime import datetime

from yard_analytics.analyzers.base import AnalyzerContext
from yard_analytics.analyzers.trailer import TrailerHistoryAnalyzer
from yard_analytics.facilities import FacilityRegistry
from yard_analytics.preprocess.time import UTC

NOW = datetime(2024, 6, 1, tzinfo=UTC)


def _analyzer() -> TrailerHistoryAnalyzer:
    return TrailerHistoryAnalyzer(AnalyzerContext(timezone="UTC", now=NOW), FacilityRegistry())


def test_trailer_error_counts_lost_change_and_carriers() -> None:
    analyzer = _analyzer()
    for event, when, scac in (
        ("Trailer marked lost", "2024-05-01 08:00", "ABCD"),
        ("Trailer marked lost", "2024-05-01 09:00", "WXYZ"),
        ("Yard Check Insert", "2024-05-01 10:00", ""),
        ("Trailer marked lost", "2024-05-02 08:00", "ABCD"),
        ("Spot Edited", "2024-05-02 09:00", ""),
        ("Facility Edited", "2024-05-02 10:00", ""),
        ("Check In", "2024-05-02 11:00", "ABCD"),
    ):
        analyzer.ingest({"event": event, "event_time": when, "scac": scac})

    report = analyzer.finalize().to_dict()

    assert report["metrics"] == {
        "total_error_events": 6,
        "trailer_marked_lost": 3,
        "yard_check_insert": 1,
        "spot_edited": 1,
        "facility_edited": 1,
    }
    texts = [(finding["level"], finding["text"]) for finding in report["findings"]]
    assert ("green", "Lost trailer events decreased 50% (2 -> 1) day-over-day.") in texts
    carriers = next(text for _, text in texts if text.startswith("Top carriers by lost events"))
    assert "ABCD: 2 (67%), WXYZ: 1 (33%)" in carriers

    daily = report["charts"][0]
    assert daily["id"] == "error_events_daily"
    assert daily["table"]["rows"][0] == {
        "day": "2024-05-01",
        "trailer_marked_lost": 2,
        "yard_check_insert": 1,
        "spot_edited": 0,
        "facility_edited": 0,
        "total_errors": 3,
    }
    assert report["charts"][1]["data"]["labels"] == ["ABCD", "WXYZ"]

    roi = report["roi"]
    assert roi["estimate"]["total_errors"] == 6
    assert roi["estimate"]["error_rate_per_day"] == 3.0
    assert roi["error_breakdown"][0]["type"] == "Trailer marked lost"
    assert roi["error_breakdown"][0]["pct_of_total"] == 50
    assert report["extras"]["event_type_top10"][0] == {"key": "Trailer marked lost", "value": 3}


def test_trailer_without_lost_events() -> None:
    analyzer = _analyzer()
    analyzer.ingest({"event": "Check In", "event_time": "2024-05-01 08:00"})
    analyzer.ingest({"event": "Check Out", "event_time": "2024-05-01 09:00"})

    report = analyzer.finalize().to_dict()

    assert report["data_quality"]["data_quality_findings"] == [
        {"level": "green", "text": 'No "Trailer marked lost" events found.'}
    ]
    assert report["findings"] == []
    assert report["roi"]["insights"] == ["No error-indicating events detected in this period."]
    assert report["metrics"]["total_error_events"] == 0
