from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from yard_analytics.analysis.series import PeriodCounters, TimeSeries
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
    format_peak_finding,
    make_finding,
)
from yard_analytics.preprocess.rows import RowFlags, first_present, maybe_number, safe_str
from yard_analytics.preprocess.time import minutes_between
from yard_analytics.roi import DailyDriverLoad, DriverRoiInputs, labor_roi
from yard_analytics.streaming.approx_distinct import ApproxDistinct
from yard_analytics.streaming.counters import CounterMap
from yard_analytics.streaming.p2_quantile import QuantilePair

DRIVER_FIELDS = ("yard_driver_name", "driver_name", "driver", "driver_username", "driver_id")
COMPLETE_FIELDS = ("complete_time", "move_complete_time", "completed_at", "complete_timestamp")
START_FIELDS = ("start_time", "move_start_time", "started_at")
ACCEPT_FIELDS = ("accept_time", "move_accept_time", "accepted_at")
EVENT_FIELDS = ("event", "event_type", "event_name")
ELAPSED_FIELDS = ("elapsed_time_minutes", "elapsed_minutes", "move_elapsed_minutes")
QUEUE_FIELDS = ("time_in_queue_minutes", "queue_time_minutes", "time_in_queue")

FINISHED_RE = re.compile(r"move\s+has\s+been\s+finished|move\s+finished|finished", re.IGNORECASE)
SIGNIFICANT_CHANGE_PCT = 15.0
QUEUE_ALERT_MINUTES = 10
LOW_COMPLIANCE_PCT = 30


class DriverHistoryAnalyzer(BaseAnalyzer):
    report_type = ReportType.DRIVER_HISTORY

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.moves_total = 0
        self.moves_by_driver = CounterMap()
        self.moves = PeriodCounters()
        self.active_by_day: dict[str, ApproxDistinct] = {}
        self.active_by_week: dict[str, ApproxDistinct] = {}
        self.days_worked: dict[str, set[str]] = {}
        self.compliance_ok = 0
        self.compliance_total = 0
        self.queue = QuantilePair()
        self.deadhead = QuantilePair()

    def _distinct(self, bucket: dict[str, ApproxDistinct], key: str) -> ApproxDistinct:
        sketch = bucket.get(key)
        if sketch is None:
            sketch = bucket[key] = ApproxDistinct(self.context.sketches.distinct_bits)
        return sketch

    def _ingest_row(self, row: Mapping[str, Any], flags: RowFlags) -> None:
        driver = safe_str(first_present(row, DRIVER_FIELDS))
        complete = self.parse_time(first_present(row, COMPLETE_FIELDS), "complete_time", track=False)
        start = self.parse_time(first_present(row, START_FIELDS), "start_time", track=False)
        accept = self.parse_time(first_present(row, ACCEPT_FIELDS), "accept_time", track=False)
        event = safe_str(first_present(row, EVENT_FIELDS))
        completed = complete is not None or bool(FINISHED_RE.search(event))

        event_time = complete or start or accept
        if event_time is not None:
            self.track_date(event_time)

        if completed:
            self.moves_total += 1
            if driver:
                self.moves_by_driver.inc(driver)
            else:
                self.warn(
                    "Completed move without a driver identifier "
                    f"(expected one of: {', '.join(DRIVER_FIELDS)}).",
                    key="missing_driver",
                )
            if event_time is not None:
                keys = self.keys(event_time)
                self.moves.inc(keys)
                if driver:
                    self._distinct(self.active_by_day, keys.day).add(driver)
                    self._distinct(self.active_by_week, keys.week).add(driver)
                    self.days_worked.setdefault(driver, set()).add(keys.day)

        elapsed = maybe_number(first_present(row, ELAPSED_FIELDS))
        if elapsed is None and complete is not None:
            begin = accept or start
            if begin is not None:
                elapsed = minutes_between(begin, complete)
        if elapsed is not None:
            self.compliance_total += 1
            if elapsed <= self.context.analysis.compliance_max_minutes:
                self.compliance_ok += 1

        queue_minutes = maybe_number(first_present(row, QUEUE_FIELDS))
        if queue_minutes is not None and queue_minutes >= 0:
            self.queue.add(queue_minutes)

        if accept is not None and start is not None:
            deadhead = minutes_between(accept, start)
            if deadhead >= 0:
                self.deadhead.add(deadhead)

    def avg_moves_per_driver_per_day(self) -> float | None:
        ratios = [
            self.moves.day.get(day) / sketch.estimate()
            for day, sketch in sorted(self.active_by_day.items())
            if sketch.estimate() > 0
        ]
        if not ratios:
            return None
        return round(sum(ratios) / len(ratios), 1)

    def _daily_loads(self) -> list[DailyDriverLoad]:
        return [
            DailyDriverLoad(day=day, moves=self.moves.day.get(day), drivers=sketch.estimate())
            for day, sketch in sorted(self.active_by_day.items())
        ]

    def _roi_inputs(self, avg: float | None) -> DriverRoiInputs:
        top = self.moves_by_driver.top(1)
        top_driver = top[0] if top else None
        return DriverRoiInputs(
            avg_moves_per_driver_per_day=avg,
            total_moves=self.moves_total,
            total_days=len(self.moves.day),
            top_driver=top_driver.key if top_driver else None,
            top_driver_moves=top_driver.value if top_driver else 0,
            top_driver_days_worked=len(self.days_worked.get(top_driver.key, ())) if top_driver else 0,
            daily=tuple(self._daily_loads()),
        )

    def _build_report(self, meta: dict[str, Any]) -> Report:
        compliance = pct1(self.compliance_ok, self.compliance_total) if self.compliance_total else None
        factors = ConfidenceFactors(
            parse_ok=self.parse_ok,
            parse_fails=self.parse_fails,
            sample_size=self.total_rows,
            compliance_pct=compliance,
        )
        findings: list[Finding] = []
        recommendations: list[str] = []
        dq_findings: list[dict[str, str]] = []

        max_minutes = self.context.analysis.compliance_max_minutes
        if compliance is not None and compliance < LOW_COMPLIANCE_PCT:
            dq_findings.append(
                {"level": "yellow", "text": f"Low compliance signal: {compliance}% within {max_minutes:g} minutes."}
            )
            recommendations.append(
                "Retrain on driver workflow (accept/start/complete) and validate device connectivity and timestamp capture."
            )

        moves_series = self.moves.series()
        latest = compare_latest_periods(
            {"day": moves_series["day"], "week": moves_series["week"]}, "Moves", SIGNIFICANT_CHANGE_PCT
        )
        if latest is not None:
            if latest.is_significant:
                finding = format_latest_change_finding(
                    latest, increase_level="green", decrease_level="yellow", factors=factors
                )
                if finding is not None:
                    findings.append(finding)
            else:
                findings.append(
                    make_finding(
                        "green",
                        f"Move volume stable at ~{round(latest.current.value)} {latest.granularity_label}.",
                        "medium",
                        replace(factors, is_trend_based=True),
                    )
                )

        bundle = analyze_series(moves_series, self.context.analysis)
        if bundle is not None:
            for finding in (
                format_overall_trend_finding(
                    bundle.overall, "Move volume", increase_level="green", decrease_level="yellow", factors=factors
                ),
                format_peak_finding(bundle.peaks, "Move volume", factors=factors),
            ):
                if finding is not None:
                    findings.append(finding)

        queue_median = self.queue.median.value()
        queue_p90 = self.queue.p90.value()
        queue_factors = replace(factors, sample_size=self.queue.count)
        if queue_median is not None:
            if queue_median > QUEUE_ALERT_MINUTES:
                findings.append(
                    make_finding(
                        "yellow",
                        f"Median queue time is ~{round(queue_median)} min (p90 ~{round(queue_p90 or 0)} min).",
                        "medium",
                        queue_factors,
                    )
                )
                recommendations.append(
                    "Investigate bottlenecks (gate, dispatch, dock availability); queue time is a hidden tax."
                )
            else:
                findings.append(
                    make_finding(
                        "green", f"Queue time healthy: median ~{round(queue_median)} min.", "medium", queue_factors
                    )
                )

        if self.total_rows and not len(self.moves_by_driver):
            self.warn(f"Processed {self.total_rows} rows but found no driver identifiers.", key="no_drivers")

        score = 0.55 * self.base_quality_score() + 0.45 * (100 if self.compliance_total else 70)
        data_quality = self.data_quality(score, dq_findings, {"compliance_pct": compliance})

        avg = self.avg_moves_per_driver_per_day()
        deadhead_median = self.deadhead.median.value()
        deadhead_p90 = self.deadhead.p90.value()
        metrics = {
            "moves_total": self.moves_total,
            "drivers_seen": len(self.moves_by_driver),
            "compliance_pct": compliance,
            "compliance_rows": self.compliance_total,
            "queue_median_minutes": _round1(queue_median),
            "queue_p90_minutes": _round1(queue_p90),
            "deadhead_median_minutes": _round1(deadhead_median),
            "deadhead_p90_minutes": _round1(deadhead_p90),
            "avg_moves_per_driver_per_day": avg,
            "days_with_moves": len(self.moves.day),
        }

        return Report(
            report=self.report_type.value,
            meta=meta,
            inferred_date_range=self.inferred_date_range(),
            data_quality=data_quality,
            metrics=metrics,
            charts=self._charts(moves_series),
            findings=findings,
            recommendations=recommendations,
            roi=labor_roi(self._roi_inputs(avg), self.context.assumptions),
            extras={
                "trend": None if bundle is None else bundle.to_dict(),
                "latest_change": None if latest is None else latest.to_dict(),
                "days_worked_by_driver": {
                    entry.key: len(self.days_worked.get(entry.key, ()))
                    for entry in self.moves_by_driver.top(self.context.analysis.leaderboard_size)
                },
            },
        )

    def _charts(self, moves_series: dict[str, TimeSeries]) -> list[Chart]:
        top = self.moves_by_driver.top(self.context.analysis.leaderboard_size)
        charts = [
            counts_chart(
                "top_drivers_by_moves",
                "Top drivers by moves",
                "Drivers with the most completed moves.",
                "driver",
                {entry.key: entry.value for entry in top},
                dataset_label="Moves",
            )
        ]
        max_daily = self.context.analysis.granularity.max_daily_points
        use_day = 0 < len(self.active_by_day) <= max_daily
        sketches = self.active_by_day if use_day else self.active_by_week
        granularity = "day" if use_day else "week"
        title = "daily" if use_day else "weekly"
        labels = sorted(sketches)
        moves = moves_series[granularity]
        moves_by_label = dict(zip(moves.labels, moves.values))
        charts.append(
            series_chart(
                f"active_drivers_and_moves_{title}",
                f"Active drivers & moves ({title})",
                f"{title.capitalize()} trend using approximate distinct counting (no driver lists stored).",
                granularity,
                labels,
                [
                    ("Active drivers (approx)", "active_drivers_approx", [sketches[label].estimate() for label in labels]),
                    ("Moves", "moves", [int(moves_by_label.get(label, 0)) for label in labels]),
                ],
            )
        )
        return charts


def _round1(value: float | None) -> float | None:
    return None if value is None else round(value, 1)
