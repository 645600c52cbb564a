from __future__ import annotations

from yard_analytics.analyzers.base import AnalyzerContext, BaseAnalyzer, ReportType
from yard_analytics.analyzers.detention import DetentionHistoryAnalyzer
from yard_analytics.analyzers.dock_door import DockDoorHistoryAnalyzer
from yard_analytics.analyzers.driver import DriverHistoryAnalyzer
from yard_analytics.analyzers.inventory import CurrentInventoryAnalyzer
from yard_analytics.analyzers.trailer import TrailerHistoryAnalyzer
from yard_analytics.facilities import FacilityRegistry

__all__ = ["ANALYZERS", "ReportType", "create_analyzer", "create_analyzers", "parse_report_type"]

ANALYZERS: dict[ReportType, type[BaseAnalyzer]] = {
    ReportType.CURRENT_INVENTORY: CurrentInventoryAnalyzer,
    ReportType.DETENTION_HISTORY: DetentionHistoryAnalyzer,
    ReportType.DOCKDOOR_HISTORY: DockDoorHistoryAnalyzer,
    ReportType.DRIVER_HISTORY: DriverHistoryAnalyzer,
    ReportType.TRAILER_HISTORY: TrailerHistoryAnalyzer,
}


def parse_report_type(value: str | ReportType) -> ReportType:
    if isinstance(value, ReportType):
        return value
    try:
        return ReportType(str(value).strip().lower())
    except ValueError as exc:
        known = ", ".join(report.value for report in ReportType)
        raise ValueError(f"Unknown report type: {value!r} (expected one of: {known})") from exc


def create_analyzer(
    report_type: str | ReportType,
    context: AnalyzerContext,
    registry: FacilityRegistry | None = None,
) -> BaseAnalyzer:
    analyzer_cls = ANALYZERS[parse_report_type(report_type)]
    return analyzer_cls(context, registry if registry is not None else FacilityRegistry())


def create_analyzers(
    context: AnalyzerContext,
    registry: FacilityRegistry | None = None,
) -> dict[ReportType, BaseAnalyzer]:
    """One analyzer per report type, all sharing the run's facility registry."""
    shared = registry if registry is not None else FacilityRegistry()
    return {report_type: analyzer_cls(context, shared) for report_type, analyzer_cls in ANALYZERS.items()}
