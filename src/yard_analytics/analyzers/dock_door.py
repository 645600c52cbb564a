from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from yard_analytics.analysis.granularity import select_granularity
from yard_analytics.analysis.outliers import OutlierResult, detect_outliers_iqr
from yard_analytics.analysis.series import (
    PeriodCounters,
    PeriodQuantiles,
    TimeSeries,
    union_sorted,
)
from yard_analytics.analysis.trends import analyze_series, compare_latest_periods
from yard_analytics.analyzers.base import (
    BaseAnalyzer,
    Chart,
    Report,
    ReportType,
    counts_chart,
    pct1,
    series_chart,
)
from yard_analytics.findings import (
    ConfidenceFactors,
    Finding,
    format_latest_change_finding,
    format_overall_trend_finding,
    make_finding,
)
from yard_analytics.preprocess.rows import RowFlags, first_present, safe_str
from yard_analytics.preprocess.time import minutes_between
from yard_analytics.roi import dock_door_roi
from yard_analytics.streaming.counters import CounterMap

DWELL_START_FIELDS = ("dwell_start_time", "dwell_start", "dwell_in_time", "dwell_start_time_utc")
DWELL_END_FIELDS = ("dwell_end_time", "dwell_end", "dwell_out_time", "dwell_end_time_utc")
PROCESS_START_FIELDS = ("process_start_time", "process_start", "process_start_time_utc")
PROCESS_END_FIELDS = ("process_end_time", "process_end", "process_end_time_utc")
PROCESSED_BY_FIELDS = ("processed_by", "processed_by_name", "processed_by_user")
REQUESTED_BY_FIELDS = ("move_requested_by", "requested_by", "move_requested_by_name")
DOOR_FIELDS = (
    "door",
    "door_name",
    "dock_door",
    "dock_door_name",
    "door_id",
    "location",
    "location_name",
)

ADMIN_LIKE_RE = re.compile(r"admin|system|yms|super", re.IGNORECASE)
SIGNIFICANT_CHANGE_PCT = 15.0
GRANULARITY_TITLES = {"day": "daily", "week": "weekly", "month": "monthly"}
_GRANULARITY_ORDER = {"month": 0, "week": 1, "day": 2}


def _outlier_text(kind: str, granularity: str, result: OutlierResult) -> str:
    count = len(result.outlier_labels)
    dates = ", ".join(result.outlier_labels[:3])
    if count > 3:
        dates += f" (+{count - 3} more)"
    peak = max(result.outlier_values)
    return (
        f"Detected {count} outlier {granularity}(s) with unusually high {kind} times: {dates}. "
        f"Peak: {round(peak):,} min (~{round(peak / 60, 1):,} hrs). "
        f"Median excluding outliers: ~{round(result.median_without_outliers or 0)} min "
        f"(vs ~{round(result.median_with_outliers or 0)} min with outliers)."
    )


class DockDoorHistoryAnalyzer(BaseAnalyzer):
    report_type = ReportType.DOCKDOOR_HISTORY

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.dwell_ok = 0
        self.process_ok = 0
        self.dwell = PeriodQuantiles()
        self.process = PeriodQuantiles()
        self.processed_by = CounterMap()
        self.requested_by = CounterMap()
        self.turns = PeriodCounters()
        self.doors: set[str] = set()
        self.doors_by_period: dict[str, dict[str, set[str]]] = {"day": {}, "week": {}, "month": {}}
        self.door_days: set[tuple[str, str]] = set()

    def _ingest_row(self, row: Mapping[str, Any], flags: RowFlags) -> None:
        dwell_start = self.parse_time(first_present(row, DWELL_START_FIELDS), "dwell_start_time")
        dwell_end = self.parse_time(first_present(row, DWELL_END_FIELDS), "dwell_end_time")
        process_start = self.parse_time(
            first_present(row, PROCESS_START_FIELDS), "process_start_time", track=False
        )
        process_end = self.parse_time(first_present(row, PROCESS_END_FIELDS), "process_end_time", track=False)

        if dwell_start is not None and dwell_end is not None:
            self.dwell_ok += 1
            minutes = minutes_between(dwell_start, dwell_end)
            if minutes >= 0:
                self.dwell.add(self.keys(dwell_start), minutes)
        if process_start is not None and process_end is not None:
            self.process_ok += 1
            minutes = minutes_between(process_start, process_end)
            if minutes >= 0:
                self.process.add(self.keys(process_start), minutes)

        processed_by = safe_str(first_present(row, PROCESSED_BY_FIELDS))
        if processed_by:
            self.processed_by.inc(processed_by)
        requested_by = safe_str(first_present(row, REQUESTED_BY_FIELDS))
        if requested_by:
            self.requested_by.inc(requested_by)

        door = safe_str(first_present(row, DOOR_FIELDS))
        event = dwell_start or process_start
        if door and event is not None:
            keys = self.keys(event)
            self.turns.inc(keys)
            self.doors.add(door)
            self.door_days.add((keys.day, door))
            for granularity, key in (("day", keys.day), ("week", keys.week), ("month", keys.month)):
                self.doors_by_period[granularity].setdefault(key, set()).add(door)

    def turns_per_door_per_day(self) -> float:
        if not self.door_days:
            return 0.0
        return self.turns.total() / len(self.door_days)

    def _latest_finding(self, metric: str, series: dict[str, TimeSeries], factors: ConfidenceFactors) -> Finding | None:
        latest = compare_latest_periods(series, metric, SIGNIFICANT_CHANGE_PCT)
        if latest is None:
            return None
        if latest.is_significant:
            return format_latest_change_finding(latest, unit=" min", factors=factors)
        return make_finding(
            "green",
            f"{metric} stable at ~{round(latest.current.value)} min {latest.granularity_label}.",
            "medium",
            replace(factors, is_trend_based=True),
        )

    def _build_report(self, meta: dict[str, Any]) -> Report:
        cfg = self.context.analysis
        dwell_cov = pct1(self.dwell_ok, self.total_rows)
        process_cov = pct1(self.process_ok, self.total_rows)
        factors = ConfidenceFactors(
            parse_ok=self.parse_ok,
            parse_fails=self.parse_fails,
            sample_size=self.total_rows,
            dwell_coverage_pct=dwell_cov,
            process_coverage_pct=process_cov,
        )
        findings: list[Finding] = []
        recommendations: list[str] = []
        dq_findings: list[dict[str, str]] = []

        if dwell_cov < 60:
            dq_findings.append(
                {"level": "yellow", "text": f"Dwell time data: {dwell_cov}% of records have complete start/end timestamps."}
            )
            recommendations.append(
                "Confirm dwell start/end timestamps are being recorded consistently (workflow and integrations)."
            )
        if process_cov < 60:
            dq_findings.append(
                {"level": "yellow", "text": f"Process time data: {process_cov}% of records have complete start/end timestamps."}
            )
            recommendations.append(
                "Confirm process start/end timestamps are being recorded consistently (dock door module usage)."
            )

        dwell_medians = self.dwell.series("median")
        process_medians = self.process.series("median")
        for metric, series in (("Median dwell time", dwell_medians), ("Median process time", process_medians)):
            finding = self._latest_finding(metric, series, factors)
            if finding is not None:
                findings.append(finding)

        dwell_bundle = analyze_series(dwell_medians, cfg)
        if dwell_bundle is not None:
            finding = format_overall_trend_finding(dwell_bundle.overall, "Median dwell time", factors=factors)
            if finding is not None:
                findings.append(finding)

        requests_total = self.requested_by.total()
        admin_like = sum(entry.value for entry in self.requested_by.top(5) if ADMIN_LIKE_RE.search(entry.key))
        admin_share = admin_like / requests_total if requests_total else 0.0
        if requests_total >= 25 and admin_share >= 0.7:
            findings.append(
                make_finding(
                    "yellow",
                    f"Move requests appear dominated by admin/system users (~{round(admin_share * 100)}%).",
                    "medium",
                    replace(factors, sample_size=requests_total, is_ratio_based=True),
                )
            )
            recommendations.append(
                "If end-user adoption is expected, review requester workflows, roles, and training."
            )

        granularity = self._chart_granularity(dwell_medians, process_medians)
        dwell_series = dwell_medians[granularity] if granularity else TimeSeries()
        process_series = process_medians[granularity] if granularity else TimeSeries()
        dwell_outliers = detect_outliers_iqr(dwell_series.labels, dwell_series.values, cfg.outliers)
        process_outliers = detect_outliers_iqr(process_series.labels, process_series.values, cfg.outliers)
        threshold_factors = replace(factors, is_threshold_based=True)
        if dwell_outliers.has_outliers and granularity:
            findings.append(
                make_finding("yellow", _outlier_text("dwell", granularity, dwell_outliers), "high", threshold_factors)
            )
            recommendations.append(
                "Investigate trailers with extended dwell times (>24 hrs). Common causes: storage trailers, "
                "missed check-outs, or workflow gaps."
            )
        if process_outliers.has_outliers and granularity:
            findings.append(
                make_finding("yellow", _outlier_text("process", granularity, process_outliers), "high", threshold_factors)
            )

        score = 0.5 * self.base_quality_score() + 0.25 * dwell_cov + 0.25 * process_cov
        data_quality = self.data_quality(
            score,
            dq_findings,
            {"dwell_coverage_pct": dwell_cov, "process_coverage_pct": process_cov},
            dwell_coverage_pct=dwell_cov,
            process_coverage_pct=process_cov,
        )

        dwell_p90 = self.dwell.series("p90")
        process_p90 = self.process.series("p90")
        turns_per_door = self.turns_per_door_per_day()
        total_days = len({day for day, _ in self.door_days})
        metrics = {
            "dwell_coverage_pct": dwell_cov,
            "process_coverage_pct": process_cov,
            "dwell_median_latest_min": _last(dwell_medians, granularity),
            "dwell_p90_latest_min": _last(dwell_p90, granularity),
            "process_median_latest_min": _last(process_medians, granularity),
            "process_p90_latest_min": _last(process_p90, granularity),
            "total_turns": self.turns.total(),
            "unique_doors": len(self.doors),
            "days_with_turns": total_days,
            "turns_per_door_per_day": round(turns_per_door, 2),
        }

        charts = self._charts(granularity, dwell_medians, process_medians)
        roi = dock_door_roi(
            turns_per_door, len(self.doors), self.turns.total(), total_days, self.context.assumptions
        )
        return Report(
            report=self.report_type.value,
            meta=meta,
            inferred_date_range=self.inferred_date_range(),
            data_quality=data_quality,
            metrics=metrics,
            charts=charts,
            findings=findings,
            recommendations=recommendations,
            roi=roi,
            extras={
                "dwell_outliers": dwell_outliers.to_dict(),
                "process_outliers": process_outliers.to_dict(),
                "dwell_trend": None if dwell_bundle is None else dwell_bundle.to_dict(),
            },
        )

    def _chart_granularity(
        self,
        dwell: dict[str, TimeSeries],
        process: dict[str, TimeSeries],
    ) -> str | None:
        """Finer of the granularities chosen for dwell and process separately."""
        granularity_cfg = self.context.analysis.granularity
        choices = [
            select_granularity(series["day"], series["week"], series["month"], granularity_cfg)
            for series in (dwell, process)
        ]
        chosen = [choice.granularity for choice in choices if choice is not None]
        if not chosen:
            return None
        return max(chosen, key=lambda key: _GRANULARITY_ORDER[key])

    def _charts(
        self,
        granularity: str | None,
        dwell: dict[str, TimeSeries],
        process: dict[str, TimeSeries],
    ) -> list[Chart]:
        charts: list[Chart] = []
        if granularity is not None:
            title = GRANULARITY_TITLES[granularity]
            dwell_map = dict(zip(dwell[granularity].labels, dwell[granularity].values))
            process_map = dict(zip(process[granularity].labels, process[granularity].values))
            labels = union_sorted(dwell_map, process_map)
            chart = series_chart(
                f"dwell_process_medians_{title}",
                f"Median dwell & process times ({title})",
                f"Median minutes per {granularity} (streaming quantile estimate).",
                granularity,
                labels,
                [
                    ("Dwell median (min)", "dwell_median_min", [dwell_map.get(label) for label in labels]),
                    ("Process median (min)", "process_median_min", [process_map.get(label) for label in labels]),
                ],
            )
            charts.append(chart)

        leaderboard_size = self.context.analysis.leaderboard_size
        use_processed = len(self.processed_by) > 0 and len(self.processed_by) >= len(self.requested_by)
        if use_processed:
            top = self.processed_by.top(leaderboard_size)
            charts.append(
                counts_chart(
                    "top_processed_by",
                    "Top processed-by counts",
                    "Who is processing dock door events.",
                    "processed_by",
                    {entry.key: entry.value for entry in top},
                    dataset_label="Events",
                )
            )
        elif len(self.requested_by):
            top = self.requested_by.top(leaderboard_size)
            charts.append(
                counts_chart(
                    "top_move_requested_by",
                    "Top move_requested_by counts",
                    "Helps infer module adoption (admin vs others).",
                    "move_requested_by",
                    {entry.key: entry.value for entry in top},
                    dataset_label="Requests",
                )
            )

        turns_series = self.turns.series()
        turns_choice = select_granularity(
            turns_series["day"], turns_series["week"], turns_series["month"], self.context.analysis.granularity
        )
        if turns_choice is not None:
            key = turns_choice.granularity
            labels = turns_choice.series.labels
            doors = self.doors_by_period[key]
            charts.append(
                series_chart(
                    f"door_turns_utilization_{GRANULARITY_TITLES[key]}",
                    f"Door turns & utilization ({GRANULARITY_TITLES[key]})",
                    f"Door turns and unique doors used per {key}.",
                    key,
                    labels,
                    [
                        ("Door turns", "door_turns", [int(v) for v in turns_choice.series.values]),
                        ("Doors utilized", "doors_utilized", [len(doors.get(label, ())) for label in labels]),
                    ],
                )
            )
        return charts


def _last(series: dict[str, TimeSeries], granularity: str | None) -> float | None:
    if granularity is None or series[granularity].is_empty():
        return None
    return round(series[granularity].values[-1], 2)
