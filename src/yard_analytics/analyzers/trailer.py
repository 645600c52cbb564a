from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from yard_analytics.analysis.series import PeriodCounters, align_series, union_sorted
from yard_analytics.analysis.trends import analyze_series, compare_latest_periods
from yard_analytics.analyzers.base import (
    BaseAnalyzer,
    Chart,
    Report,
    ReportType,
    counts_chart,
    series_chart,
)
from yard_analytics.findings import (
    ConfidenceFactors,
    Finding,
    format_latest_change_finding,
    format_overall_trend_finding,
    make_finding,
)
from yard_analytics.preprocess.rows import RowFlags, first_present, is_blank, safe_str
from yard_analytics.roi import TRAILER_ERROR_TYPES, trailer_error_rate_analysis
from yard_analytics.streaming.counters import CountEntry, CounterMap

EVENT_FIELDS = ("event", "event_type", "event_name", "event_string", "action", "status_change")
TIME_FIELDS = ("event_time", "created_at", "timestamp", "event_timestamp")
CARRIER_FIELDS = ("scac", "carrier_scac", "scac_code", "carrier")

ERROR_PATTERNS = {
    "trailer_marked_lost": re.compile(r"marked\s+lost|\blost\b", re.IGNORECASE),
    "yard_check_insert": re.compile(r"yard\s*check\s*insert", re.IGNORECASE),
    "spot_edited": re.compile(r"spot\s*edited", re.IGNORECASE),
    "facility_edited": re.compile(r"facility\s*edited", re.IGNORECASE),
}
SIGNIFICANT_CHANGE_PCT = 25.0
LOST_VOLUME_ALERT = 10
CARRIER_LEADERBOARD = 8


class TrailerHistoryAnalyzer(BaseAnalyzer):
    report_type = ReportType.TRAILER_HISTORY

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.event_types = CounterMap()
        self.lost_by_carrier = CounterMap()
        self.lost = PeriodCounters()
        self.error_counts = {key: 0 for key in ERROR_PATTERNS}
        self.errors_by_day = {key: CounterMap() for key in ERROR_PATTERNS}
        self.days_with_data: set[str] = set()

    @property
    def lost_count(self) -> int:
        return self.error_counts["trailer_marked_lost"]

    def _ingest_row(self, row: Mapping[str, Any], flags: RowFlags) -> None:
        event = safe_str(first_present(row, EVENT_FIELDS))
        if event:
            self.event_types.inc(event)

        dt = self.parse_time(first_present(row, TIME_FIELDS), "event_time")
        keys = self.keys(dt) if dt is not None else None
        if keys is not None:
            self.days_with_data.add(keys.day)

        for error_type, pattern in ERROR_PATTERNS.items():
            if not pattern.search(event):
                continue
            self.error_counts[error_type] += 1
            if keys is not None:
                self.errors_by_day[error_type].inc(keys.day)

        if ERROR_PATTERNS["trailer_marked_lost"].search(event):
            carrier = first_present(row, CARRIER_FIELDS)
            if not is_blank(carrier):
                self.lost_by_carrier.inc(carrier)
            if keys is not None:
                self.lost.inc(keys)

    def errors_by_period(self) -> list[int]:
        days = union_sorted(*self.errors_by_day.values())
        return [sum(counter.get(day) for counter in self.errors_by_day.values()) for day in days]

    def _build_report(self, meta: dict[str, Any]) -> Report:
        factors = ConfidenceFactors(
            parse_ok=self.parse_ok, parse_fails=self.parse_fails, sample_size=self.total_rows
        )
        findings: list[Finding] = []
        recommendations: list[str] = []
        dq_findings: list[dict[str, str]] = []

        if self.lost_count == 0:
            dq_findings.append({"level": "green", "text": 'No "Trailer marked lost" events found.'})
            recommendations.append(
                "If lost events are expected but missing, confirm event strings and report "
                "configuration match local processes."
            )

        lost_series = self.lost.series()
        latest = compare_latest_periods(lost_series, "Lost trailer events", SIGNIFICANT_CHANGE_PCT)
        if latest is not None:
            if latest.is_significant:
                finding = format_latest_change_finding(
                    latest, increase_level="red", decrease_level="green", factors=factors
                )
                if finding is not None:
                    findings.append(finding)
                if latest.direction == "increased":
                    recommendations.append(
                        "Lost events trending up - investigate carrier handoffs and scan compliance."
                    )
            elif self.lost_count > 0:
                findings.append(
                    make_finding(
                        "yellow",
                        f"Lost events stable at ~{round(latest.current.value)} {latest.granularity_label}.",
                        "medium",
                        replace(factors, is_trend_based=True),
                    )
                )
        elif self.lost_count > 0:
            lost_factors = replace(factors, sample_size=self.lost_count)
            if self.lost_count > LOST_VOLUME_ALERT:
                findings.append(
                    make_finding(
                        "yellow",
                        f'Detected {self.lost_count} "Trailer marked lost" events - potential chaos signal.',
                        "high",
                        replace(lost_factors, is_threshold_based=True),
                    )
                )
                recommendations.append(
                    "Investigate top carriers and process handoffs causing location drift; "
                    "tighten scan/check-in and yard check frequency."
                )
            else:
                findings.append(
                    make_finding(
                        "green", f'{self.lost_count} "Trailer marked lost" events detected.', "high", lost_factors
                    )
                )

        bundle = analyze_series(lost_series, self.context.analysis)
        if bundle is not None:
            trend_finding = format_overall_trend_finding(
                bundle.overall, "Lost trailer events", increase_level="red", decrease_level="green", factors=factors
            )
            if trend_finding is not None:
                findings.append(trend_finding)

        top_carriers = self.lost_by_carrier.top(CARRIER_LEADERBOARD)
        if top_carriers and self.lost_count > 0:
            details = ", ".join(
                f"{entry.key}: {entry.value} ({round(100 * entry.value / self.lost_count)}%)"
                for entry in top_carriers[:3]
            )
            leader = top_carriers[0]
            findings.append(
                make_finding(
                    "yellow" if leader.value > 5 else "green",
                    f"Top carriers by lost events: {details}. High lost counts may indicate parking issues "
                    "or carriers not following gate instructions.",
                    "high",
                    replace(factors, sample_size=self.lost_count),
                )
            )
            if leader.value > LOST_VOLUME_ALERT:
                recommendations.append(
                    f"Review gate procedures with carrier {leader.key} - they account for "
                    f"{round(100 * leader.value / self.lost_count)}% of lost trailer events."
                )

        total_errors = sum(self.error_counts.values())
        metrics = {"total_error_events": total_errors, **self.error_counts}

        return Report(
            report=self.report_type.value,
            meta=meta,
            inferred_date_range=self.inferred_date_range(),
            data_quality=self.data_quality(self.base_quality_score(), dq_findings),
            metrics=metrics,
            charts=self._charts(top_carriers),
            findings=findings,
            recommendations=recommendations,
            roi=trailer_error_rate_analysis(
                self.error_counts, self.errors_by_period(), self.total_rows, len(self.days_with_data)
            ),
            extras={
                "event_type_top10": [entry.__dict__ for entry in self.event_types.top(10)],
                "trend": None if bundle is None else bundle.to_dict(),
                "latest_change": None if latest is None else latest.to_dict(),
            },
        )

    def _charts(self, top_carriers: list[CountEntry]) -> list[Chart]:
        days = union_sorted(*self.errors_by_day.values())
        datasets = [
            (label, key, [int(value) for value in align_series(days, self.errors_by_day[key])])
            for key, label, _ in TRAILER_ERROR_TYPES
        ]
        totals = [sum(values[idx] for _, _, values in datasets) for idx in range(len(days))]
        datasets.append(("Total errors", "total_errors", totals))
        return [
            series_chart(
                "error_events_daily",
                "Error events (daily)",
                "Error-indicating events by type, with the daily total.",
                "day",
                days,
                datasets,
            ),
            counts_chart(
                "top_carriers_lost_events",
                "Top carriers by lost events",
                'Carriers most associated with "lost" events.',
                "carrier_scac",
                {entry.key: entry.value for entry in top_carriers},
                dataset_label="Lost events",
            ),
        ]
