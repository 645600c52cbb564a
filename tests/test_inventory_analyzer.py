from __future__ import annotations

from datetime import datetime

from yard_analytics.analyzers.base import AnalyzerContext
from yard_analytics.analyzers.inventory import CurrentInventoryAnalyzer
from yard_analytics.facilities import FacilityRegistry
from yard_analytics.preprocess.rows import RowFlags
from yard_analytics.preprocess.time import UTC

NOW = datetime(2024, 6, 1, tzinfo=UTC)


def _analyzer(warnings: list[str] | None = None) -> CurrentInventoryAnalyzer:
    context = AnalyzerContext(
        timezone="UTC",
        now=NOW,
        on_warning=warnings.append if warnings is not None else None,
    )
    return CurrentInventoryAnalyzer(context, FacilityRegistry())


def test_inventory_recency_ratio_and_placeholder_metrics() -> None:
    analyzer = _analyzer()
    analyzer.ingest(
        {"move_type_name": "Outbound", "scac": "ABCD", "updated_at": "2024-05-31 12:00", "live_load": "true"},
        RowFlags(driver_contact_present=False),
    )
    analyzer.ingest({"move_type_name": "Outbound", "scac": "XXXX", "updated_at": "2024-05-28 00:00"})
    analyzer.ingest({"move_type_name": "Outbound", "scac": "", "updated_at": "2024-04-01 00:00"})
    analyzer.ingest({"move_type_name": "Inbound", "scac": "unknown", "updated_at": ""})

    report = analyzer.finalize().to_dict()
    metrics = report["metrics"]

    assert metrics["total_trailers"] == 4
    assert metrics["updated_last_24h_pct"] == 25.0
    assert metrics["updated_last_7d_pct"] == 50.0
    assert metrics["stale_30d_pct"] == 25.0
    assert metrics["placeholder_scac_pct"] == 75.0
    assert metrics["outbound_count"] == 3
    assert metrics["inbound_count"] == 1
    assert metrics["outbound_vs_inbound_ratio"] == 3.0
    assert metrics["live_load_missing_driver_contact_pct"] == 100.0

    levels = [(finding["level"], finding["text"]) for finding in report["findings"]]
    assert levels[0][0] == "red"
    assert levels[0][1].startswith("25.0% of inventory records")
    assert any("Outbound-heavy" in text for _, text in levels)
    assert all(finding["confidence_reason"] for finding in report["findings"])

    assert report["data_quality"]["score"] == 100
    assert report["data_quality"]["label"] == "High"
    assert [chart["id"] for chart in report["charts"]] == ["move_type_distribution", "updated_recency_buckets"]
    assert report["extras"]["recency_buckets"]["unknown"] == 1
    assert report["roi"] is None


def test_inventory_yard_age_chart_and_parse_failures() -> None:
    warnings: list[str] = []
    analyzer = _analyzer(warnings)
    for hours, updated in (("5", "2024-05-31 23:00"), ("200", "garbage"), ("-1", "also garbage")):
        analyzer.ingest({"move_type_name": "Outbound", "csv_elapsed_hours": hours, "updated_at": updated})

    report = analyzer.finalize().to_dict()

    assert analyzer.parse_fails == 2
    assert len(warnings) == 1
    yard_age = next(chart for chart in report["charts"] if chart["id"] == "yard_age_distribution")
    assert yard_age["data"]["labels"] == ["0-1d", "1-7d", "7-30d", "30d+"]
    assert yard_age["data"]["datasets"][0]["data"] == [1, 0, 1, 0]
    assert report["extras"]["yard_age_buckets"]["unknown"] == 1
    assert report["data_quality"]["parse_fails"] == 2
