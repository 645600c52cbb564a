from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from yard_analytics.analysis.partial_periods import (
    apply_partial_period_handling,
    detect_global_partial_periods,
)
from yard_analytics.analyzers.base import AnalyzerContext, BaseAnalyzer
from yard_analytics.analyzers.registry import ReportType, create_analyzer, parse_report_type
from yard_analytics.config import AppConfig
from yard_analytics.facilities import FacilityRegistry
from yard_analytics.io.read import iter_rows
from yard_analytics.io.write import write_report
from yard_analytics.paths import build_output_paths
from yard_analytics.preprocess.rows import RowFlags, scrub_row

LOGGER = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"[^0-9A-Za-z]+")


@dataclass
class ReportBundle:
    report_type: ReportType
    report: dict[str, Any]
    facilities: dict[str, dict[str, Any]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    rows: int = 0


@dataclass(frozen=True)
class RunResult:
    bundle: ReportBundle
    summary_path: Path
    table_paths: list[Path]
    facility_paths: list[Path]


def facility_slug(name: str) -> str:
    return _SLUG_RE.sub("_", name).strip("_").lower() or "facility"


def facility_slugs(names: Iterable[str]) -> dict[str, str]:
    """Directory slug per facility; names that collapse to the same slug get a numeric suffix."""
    slugs: dict[str, str] = {}
    taken: set[str] = set()
    for name in sorted(names):
        base = facility_slug(name)
        slug, suffix = base, 2
        while slug in taken:
            slug = f"{base}_{suffix}"
            suffix += 1
        taken.add(slug)
        slugs[name] = slug
    return slugs


def _handle_partial_periods(reports: list[dict[str, Any]], config: AppConfig) -> dict[str, Any]:
    """Detect partial edge periods across all reports, then apply the configured mode in place."""
    info = detect_global_partial_periods(reports, config.analysis.trends.partial_period_ratio)
    mode = config.outputs.partial_period_mode
    for report in reports:
        for chart in report.get("charts") or []:
            if chart.get("kind") != "line":
                continue
            handled = apply_partial_period_handling(chart.get("data") or {}, info, mode)
            chart["partial_period_info"] = handled.pop("partial_period_info")
            chart["data"] = handled
    return {**info.to_dict(), "mode": mode}


def analyze_rows(
    rows: Iterable[Mapping[str, Any] | tuple[Mapping[str, Any], RowFlags]],
    report_type: str | ReportType,
    config: AppConfig,
    *,
    now: datetime | None = None,
    meta: Mapping[str, Any] | None = None,
) -> ReportBundle:
    """Feed rows through one analyzer and finalize the overall and per-facility reports.

    Plain mappings are scrubbed first; ``(row, flags)`` pairs are taken as already scrubbed.
    """
    resolved = parse_report_type(report_type)
    warnings: list[str] = []

    def _on_warning(message: str) -> None:
        warnings.append(message)
        LOGGER.warning("%s: %s", resolved.value, message)

    context = AnalyzerContext.from_config(config, now=now, on_warning=_on_warning)
    analyzer = create_analyzer(resolved, context, FacilityRegistry())

    count = 0
    for item in rows:
        if isinstance(item, tuple):
            row, flags = item
        else:
            row, flags = scrub_row(item, is_csv_source=config.input.is_csv_source)
        analyzer.ingest(row, flags)
        count += 1
    LOGGER.info("Ingested %d %s rows", count, resolved.value)

    base_meta = {"report_type": resolved.value, "generated_at": context.now.isoformat(), **(meta or {})}
    report = analyzer.finalize(base_meta).to_dict()
    facilities = _finalize_facilities(analyzer, base_meta)

    partial = _handle_partial_periods([report, *facilities.values()], config)
    report["meta"]["partial_periods"] = partial
    for facility_report in facilities.values():
        facility_report["meta"]["partial_periods"] = partial

    return ReportBundle(resolved, report, facilities, warnings, count)


def _finalize_facilities(analyzer: BaseAnalyzer, meta: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    if not analyzer.registry.is_multi_facility:
        return {}
    reports: dict[str, dict[str, Any]] = {}
    for name in analyzer.facility_names:
        facility_report = analyzer.finalize_facility(name, meta)
        if facility_report is not None:
            reports[name] = facility_report.to_dict()
    return reports

def run_report(
    csv_path: Path,
    report_type: str | ReportType,
    out_dir: Path,
    config: AppConfig,
    *,
    now: datetime | None = None,
) -> RunResult:
    """Analyze one exported report CSV and write summaries and chart tables under ``out_dir``."""
    paths = build_output_paths(out_dir)
    bundle = analyze_rows(
        iter_rows(csv_path, config.input),
        report_type,
        config,
        now=now,
        meta={"source_file": csv_path.name},
    )

    fmt = config.outputs.tables_format
    summary_path, table_paths = write_report(bundle.report, paths.summary, paths.tables, fmt)

    facility_paths: list[Path] = []
    if config.outputs.write_facility_reports:
        slugs = facility_slugs(bundle.facilities)
        for name, facility_report in bundle.facilities.items():
            facility_dir = paths.facilities / slugs[name]
            facility_summary, facility_tables = write_report(
                facility_report, facility_dir, facility_dir / "tables", fmt
            )
            facility_paths.append(facility_summary)
            table_paths.extend(facility_tables)

    LOGGER.info("Wrote %s summary to %s", bundle.report_type.value, summary_path)
    return RunResult(bundle, summary_path, table_paths, facility_paths)
