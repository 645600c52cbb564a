from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from datetime import datetime
from typing import Any

from yard_analytics.analysis.series import PeriodCounters, TimeSeries, align_series, union_sorted
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
from yard_analytics.detention import RESOLVED_STATUSES, DetentionStatus, classify
from yard_analytics.findings import (
    ConfidenceFactors,
    Finding,
    format_latest_change_finding,
    format_overall_trend_finding,
    format_peak_finding,
    make_finding,
)
from yard_analytics.preprocess.rows import RowFlags, first_present, is_blank, normalize_boolish
from yard_analytics.roi import detention_avoidance_roi, detention_spend
from yard_analytics.streaming.counters import CounterMap
from yard_analytics.streaming.p2_quantile import P2Quantile

ARRIVAL_FIELDS = ("arrival_time", "arrival_datetime", "check_in_time")
DEPARTURE_FIELDS = (
    "departure_datetime",
    "depart_datetime",
    "yard_out_time",
    "left_yard_time",
    "checkout_time",
    "actual_departure_time",
)
DEPARTURE_DATE_FIELDS = ("csv_departure_date", "departure_date", "depart_date", "out_date")
DEPARTURE_TIME_FIELDS = ("csv_departure_time", "departure_time", "depart_time", "out_time")
SCAC_FIELDS = ("scac", "carrier_scac", "scac_code")

SIGNIFICANT_CHANGE_PCT = 20.0
GRANULARITY_TITLES = {"day": "daily", "week": "weekly", "month": "monthly"}


class DetentionHistoryAnalyzer(BaseAnalyzer):
    report_type = ReportType.DETENTION_HISTORY

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.statuses = {status: 0 for status in DetentionStatus}
        self.missing_arrival = 0
        self.classified = 0
        self.pre_threshold_rows = 0
        self.det_threshold_rows = 0
        self.threshold_rows = 0
        self.detention = PeriodCounters()
        self.prevented = PeriodCounters()
        self.detention_hours_total = 0.0
        self.detention_hours_events = 0
        self.detention_hours = P2Quantile(0.5)
        self.detention_live = 0
        self.detention_drop = 0
        self.detention_by_carrier = CounterMap()
        self.saw_csv_source = False

    def _arrival(self, row: Mapping[str, Any], flags: RowFlags) -> datetime | None:
        if flags.has_timezone_arrival_time:
            return self.parse_time(row.get("timezone_arrival_time"), "timezone_arrival_time", treat_as_local=True)
        return self.parse_time(first_present(row, ARRIVAL_FIELDS), "arrival_time")

    def _departure(self, row: Mapping[str, Any], flags: RowFlags) -> datetime | None:
        raw = first_present(row, DEPARTURE_FIELDS)
        if raw is None:
            date_part = first_present(row, DEPARTURE_DATE_FIELDS)
            time_part = first_present(row, DEPARTURE_TIME_FIELDS)
            if date_part is not None and time_part is not None:
                raw = f"{date_part} {time_part}"
        return self.parse_time(raw, "departure_datetime", treat_as_local=flags.is_csv_source)

    def _ingest_row(self, row: Mapping[str, Any], flags: RowFlags) -> None:
        self.saw_csv_source = self.saw_csv_source or flags.is_csv_source
        arrival = self._arrival(row, flags)
        if arrival is None:
            self.missing_arrival += 1
            return

        pre = self.parse_time(row.get("pre_detention_start_time"), "pre_detention_start_time")
        det = self.parse_time(row.get("detention_start_time"), "detention_start_time")
        departure = self._departure(row, flags)
        if pre is not None:
            self.pre_threshold_rows += 1
        if det is not None:
            self.det_threshold_rows += 1
        if pre is not None or det is not None:
            self.threshold_rows += 1

        result = classify(arrival, departure, pre, det)
        self.classified += 1
        self.statuses[result.status] += 1

        if result.status is DetentionStatus.IN_DETENTION and det is not None:
            self.detention.inc(self.keys(det))
            if result.detention_hours is not None:
                self.detention_hours_total += result.detention_hours
                self.detention_hours_events += 1
                self.detention_hours.add(result.detention_hours)
            live = normalize_boolish(row.get("live_load"))
            if live is True:
                self.detention_live += 1
            elif live is False:
                self.detention_drop += 1
            scac = first_present(row, SCAC_FIELDS)
            if not is_blank(scac):
                self.detention_by_carrier.inc(scac)
        elif result.status is DetentionStatus.PREVENTED and pre is not None:
            self.prevented.inc(self.keys(pre))

    def _aligned_series(self) -> tuple[dict[str, TimeSeries], dict[str, TimeSeries]]:
        detention: dict[str, TimeSeries] = {}
        prevented: dict[str, TimeSeries] = {}
        det_maps = self.detention.by_granularity()
        prev_maps = self.prevented.by_granularity()
        for key in ("day", "week", "month"):
            labels = union_sorted(det_maps[key], prev_maps[key])
            detention[key] = TimeSeries(labels, align_series(labels, det_maps[key]))
            prevented[key] = TimeSeries(labels, align_series(labels, prev_maps[key]))
        return detention, prevented

    def _build_report(self, meta: dict[str, Any]) -> Report:
        in_detention = self.statuses[DetentionStatus.IN_DETENTION]
        prevented = self.statuses[DetentionStatus.PREVENTED]
        resolved = sum(self.statuses[status] for status in RESOLVED_STATUSES)
        coverage = min(100, round(100 * self.threshold_rows / self.classified)) if self.classified else 100

        factors = ConfidenceFactors(
            parse_ok=self.parse_ok,
            parse_fails=self.parse_fails,
            sample_size=self.total_rows,
            coverage_pct=coverage,
        )
        findings: list[Finding] = []
        recommendations: list[str] = []

        if self.pre_threshold_rows == 0 and self.det_threshold_rows == 0:
            findings.append(
                Finding(
                    "yellow",
                    "No detention thresholds found in this data. Detention rules may not be configured in the YMS.",
                    "high",
                    "High confidence: no detention or pre-detention thresholds detected in the data.",
                )
            )
            recommendations.append(
                "Verify detention rules are configured in the YMS. If detention tracking is not needed, ignore this finding."
            )

        if self.saw_csv_source and prevented == 0 and self.pre_threshold_rows > 0:
            findings.append(
                Finding(
                    "yellow",
                    "CSV exports may not capture prevented detention events. "
                    "Review the detention dashboard for prevention metrics.",
                    "high",
                    "High confidence: CSV exports usually include only detention that occurred.",
                )
            )

        detention_series, prevented_series = self._aligned_series()
        latest = compare_latest_periods(
            self.detention.series(),
            "Detention events",
            SIGNIFICANT_CHANGE_PCT,
        )
        if latest is not None:
            if latest.is_significant:
                finding = format_latest_change_finding(latest, factors=factors)
                if finding is not None:
                    findings.append(finding)
                if latest.direction == "increased":
                    recommendations.append(
                        "Detention trending up; investigate carrier performance and dock scheduling."
                    )
            else:
                findings.append(
                    make_finding(
                        "green",
                        f"Detention events stable at ~{round(latest.current.value)} {latest.granularity_label}.",
                        "medium",
                        replace(factors, is_trend_based=True),
                    )
                )

        prevented_latest = compare_latest_periods(
            self.prevented.series(),
            "Prevented detention",
            SIGNIFICANT_CHANGE_PCT,
        )
        if prevented_latest is not None and prevented_latest.is_significant:
            finding = format_latest_change_finding(
                prevented_latest, increase_level="green", decrease_level="yellow", factors=factors
            )
            if finding is not None:
                findings.append(finding)

        bundle = analyze_series(detention_series, self.context.analysis)
        if bundle is not None:
            for finding in (
                format_overall_trend_finding(bundle.overall, "Detention events", factors=factors),
                format_peak_finding(bundle.peaks, "Detention events", factors=factors),
            ):
                if finding is not None:
                    findings.append(finding)

        if latest is None and prevented_latest is None and (in_detention or prevented):
            findings.append(
                make_finding(
                    "green",
                    f"Detention: {in_detention} events, prevented: {prevented}.",
                    "high",
                    replace(factors, sample_size=in_detention + prevented),
                )
            )

        live_total = self.detention_live + self.detention_drop
        live_share = pct1(self.detention_live, live_total) if live_total else None
        if live_share is not None and live_share > 80:
            findings.append(
                make_finding(
                    "yellow",
                    f"Detention heavily live-load skewed (~{live_share}% live).",
                    "medium",
                    replace(factors, is_ratio_based=True),
                )
            )
            recommendations.append("If drops are common, confirm drop workflow timestamps are being captured.")
        if live_total:
            if self.detention_drop == 0:
                recommendations.append(
                    "All detention events are for live loads. Consider adding detention tracking for drop loads."
                )
            elif self.detention_live == 0:
                recommendations.append(
                    "All detention events are for drop loads. Consider adding detention tracking for live loads."
                )

        score = 0.6 * self.base_quality_score() + 0.4 * coverage
        dq_findings: list[dict[str, str]] = []
        if self.missing_arrival:
            dq_findings.append(
                {
                    "level": "yellow",
                    "text": f"{self.missing_arrival} rows without an arrival time were excluded.",
                }
            )
        data_quality = self.data_quality(
            score, dq_findings, {"coverage_pct": coverage}, coverage_pct=coverage
        )

        median_hours = self.detention_hours.value()
        metrics = {
            "rows_classified": self.classified,
            "missing_arrival": self.missing_arrival,
            "still_in_yard_count": self.statuses[DetentionStatus.STILL_IN_YARD],
            "unknown_count": self.statuses[DetentionStatus.UNKNOWN],
            "detention_count": in_detention,
            "prevented_detention_count": prevented,
            "no_detention_count": self.statuses[DetentionStatus.NO_DETENTION],
            "resolved_count": resolved,
            "detention_rate_pct": pct1(in_detention, resolved) if resolved else None,
            "prevention_rate_pct": (
                pct1(prevented, prevented + in_detention) if prevented + in_detention else None
            ),
            "pre_detention_threshold_count": self.pre_threshold_rows,
            "detention_threshold_count": self.det_threshold_rows,
            "total_detention_hours": round(self.detention_hours_total, 2),
            "median_detention_hours": None if median_hours is None else round(median_hours, 2),
            "live_load_count": self.detention_live,
            "drop_load_count": self.detention_drop,
        }

        charts = self._charts(detention_series, prevented_series, bundle.granularity if bundle else None, meta)
        roi = detention_avoidance_roi(prevented, self.context.assumptions)
        extras: dict[str, Any] = {
            "detention_spend": detention_spend(
                in_detention,
                self.detention_hours_events,
                self.detention_hours_total,
                self.context.assumptions,
            ),
            "trend": None if bundle is None else bundle.to_dict(),
            "latest_change": None if latest is None else latest.to_dict(),
        }
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
            extras=extras,
        )

    def _charts(
        self,
        detention: dict[str, TimeSeries],
        prevented: dict[str, TimeSeries],
        granularity: str | None,
        meta: Mapping[str, Any],
    ) -> list[Chart]:
        charts: list[Chart] = []
        if granularity is not None:
            title = GRANULARITY_TITLES[granularity]
            labels = detention[granularity].labels
            timezone = meta.get("timezone", self.timezone)
            charts.append(
                series_chart(
                    f"detention_vs_prevented_{title}",
                    f"Detention vs prevented detention ({title})",
                    f"{title.capitalize()} counts grouped in {timezone}.",
                    granularity,
                    labels,
                    [
                        ("Detention", "detention_count", [int(v) for v in detention[granularity].values]),
                        (
                            "Prevented detention",
                            "prevented_detention_count",
                            [int(v) for v in prevented[granularity].values],
                        ),
                    ],
                )
            )
        if self.detention_live + self.detention_drop > 0:
            charts.append(
                counts_chart(
                    "detention_live_drop",
                    "Detention events by load type",
                    f"Of {self.detention_live + self.detention_drop} detention events, live vs drop loads.",
                    "load_type",
                    {"Live load": self.detention_live, "Drop load": self.detention_drop},
                    kind="pie",
                    dataset_label="Detention events",
                )
            )
        if len(self.detention_by_carrier):
            top = self.detention_by_carrier.top(self.context.analysis.leaderboard_size)
            charts.append(
                counts_chart(
                    "detention_by_carrier",
                    "Detention events by carrier",
                    "Carriers with the most detention events.",
                    "carrier_scac",
                    {entry.key: entry.value for entry in top},
                    dataset_label="Detention events",
                )
            )
        return charts

