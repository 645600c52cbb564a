from __future__ import annotations

from datetime import datetime

import pytest

from yard_analytics.analyzers.base import AnalyzerContext, ReportType
from yard_analytics.analyzers.registry import create_analyzer, create_analyzers, parse_report_type
from yard_analytics.analyzers.trailer import TrailerHistoryAnalyzer
from yard_analytics.preprocess.time import UTC

NOW = datetime(2024, 6, 1, tzinfo=UTC)


def _context() -> AnalyzerContext:
    return AnalyzerContext(timezone="UTC", now=NOW)


def test_facility_rows_feed_child_analyzers() -> None:
    analyzer = create_analyzer(ReportType.TRAILER_HISTORY, _context())
    analyzer.ingest({"event": "Trailer marked lost", "event_time": "2024-05-01 08:00", "facility": " DC-1 "})
    analyzer.ingest({"event": "Trailer marked lost", "event_time": "2024-05-01 09:00", "facility": "DC-2"})
    analyzer.ingest({"event": "Spot Edited", "event_time": "2024-05-01 10:00", "facility": "DC-2"})
    analyzer.ingest({"event": "Spot Edited", "event_time": "2024-05-01 11:00"})

    assert isinstance(analyzer, TrailerHistoryAnalyzer)
    assert analyzer.registry.is_multi_facility
    assert analyzer.facility_names == ["DC-1", "DC-2"]

    overall = analyzer.finalize().to_dict()
    assert overall["metrics"]["total_error_events"] == 4
    assert overall["meta"]["facilities"] == ["DC-1", "DC-2"]
    assert overall["meta"]["multi_facility"] is True

    dc2 = analyzer.finalize_facility("DC-2")
    assert dc2 is not None
    dc2_report = dc2.to_dict()
    assert dc2_report["metrics"]["total_error_events"] == 2
    assert dc2_report["meta"]["facility"] == "DC-2"
    assert "facilities" not in dc2_report["meta"]

    assert analyzer.finalize_facility("  DC-1") is not None
    assert analyzer.finalize_facility("DC-9") is None
    assert analyzer.finalize_facility("   ") is None

    again = analyzer.finalize_facility("DC-2")
    assert again is not None
    assert again.to_dict()["metrics"] == dc2_report["metrics"]


def test_create_analyzers_share_one_registry() -> None:
    analyzers = create_analyzers(_context())

    assert set(analyzers) == set(ReportType)
    registries = {id(analyzer.registry) for analyzer in analyzers.values()}
    assert len(registries) == 1

    analyzers[ReportType.DRIVER_HISTORY].ingest({"facility": "North"})
    analyzers[ReportType.DOCKDOOR_HISTORY].ingest({"facility": "South"})
    assert analyzers[ReportType.TRAILER_HISTORY].registry.is_multi_facility


def test_parse_report_type() -> None:
    assert parse_report_type("trailer_history") is ReportType.TRAILER_HISTORY
    with pytest.raises(ValueError, match="Unknown report type"):
        parse_report_type("gate_history")
