from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from yard_analytics.analyzers.base import (
    BaseAnalyzer,
    Report,
    ReportType,
    counts_chart,
    pct1,
)
from yard_analytics.findings import ConfidenceFactors, Finding, make_finding
from yard_analytics.preprocess.rows import (
    RowFlags,
    first_present,
    is_blank,
    maybe_number,
    normalize_boolish,
    safe_str,
)
from yard_analytics.streaming.counters import CounterMap

SCAC_FIELDS = ("scac", "carrier_scac", "scac_code")
PLACEHOLDER_SCACS = frozenset({"", "XXXX", "UNKNOWN", "UNKN"})

RECENCY_BUCKETS = ("0-1d", "1-7d", "7-30d", "30d+", "unknown")
YARD_AGE_BUCKETS = ("0-1d", "1-7d", "7-30d", "30d+", "unknown")


def scac_is_placeholder(value: Any) -> bool:
    return safe_str(value).upper() in PLACEHOLDER_SCACS


def _age_bucket(hours: float) -> str:
    if hours <= 24:
        return "0-1d"
    if hours <= 24 * 7:
        return "1-7d"
    if hours <= 24 * 30:
        return "7-30d"
    return "30d+"


class CurrentInventoryAnalyzer(BaseAnalyzer):
    report_type = ReportType.CURRENT_INVENTORY

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.move_types = CounterMap()
        self.outbound = 0
        self.inbound = 0
        self.scac_total = 0
        self.placeholder_scac = 0
        self.recency = dict.fromkeys(RECENCY_BUCKETS, 0)
        self.yard_age = dict.fromkeys(YARD_AGE_BUCKETS, 0)
        self.has_yard_age = False
        self.live_loads = 0
        self.live_missing_contact = 0

    def _ingest_row(self, row: Mapping[str, Any], flags: RowFlags) -> None:
        move_type = safe_str(row.get("move_type_name"))
        if move_type:
            self.move_types.inc(move_type)
        lowered = move_type.lower()
        # "out" and "in" are matched independently; "Outbound Inbound Swap" counts toward both.
        if "out" in lowered:
            self.outbound += 1
        if "in" in lowered:
            self.inbound += 1

        scac = first_present(row, SCAC_FIELDS)
        if scac is None and any(key in row for key in SCAC_FIELDS):
            scac = ""
        if scac is not None:
            self.scac_total += 1
            if scac_is_placeholder(scac):
                self.placeholder_scac += 1

        updated = self.parse_time(row.get("updated_at"), "updated_at")
        if updated is None:
            self.recency["unknown"] += 1
        else:
            age_hours = (self.context.now - updated).total_seconds() / 3600.0
            self.recency[_age_bucket(max(age_hours, 0.0))] += 1

        if normalize_boolish(row.get("live_load")):
            self.live_loads += 1
            if not flags.driver_contact_present:
                self.live_missing_contact += 1

        elapsed = row.get("csv_elapsed_hours")
        if not is_blank(elapsed):
            self.has_yard_age = True
            hours = maybe_number(elapsed)
            if hours is None or hours < 0:
                self.yard_age["unknown"] += 1
            else:
                self.yard_age[_age_bucket(hours)] += 1

    def _build_report(self, meta: dict[str, Any]) -> Report:
        recency_total = sum(self.recency.values())
        stale30 = pct1(self.recency["30d+"], recency_total)
        placeholder_rate = pct1(self.placeholder_scac, self.scac_total)
        ratio = self.outbound / self.inbound if self.inbound else None
        missing_contact_rate = (
            pct1(self.live_missing_contact, self.live_loads) if self.live_loads else None
        )

        dq_findings: list[dict[str, str]] = []
        if stale30 >= 10:
            dq_findings.append(
                {"level": "red" if stale30 >= 25 else "yellow", "text": f"{stale30}% of records older than 30 days."}
            )
        if placeholder_rate >= 10:
            dq_findings.append({"level": "yellow", "text": f"Placeholder SCAC rate: {placeholder_rate}%."})
        if missing_contact_rate is not None and missing_contact_rate >= 30:
            dq_findings.append(
                {"level": "yellow", "text": f"Live loads missing driver contact: {missing_contact_rate}%."}
            )

        factors = ConfidenceFactors(
            parse_ok=self.parse_ok,
            parse_fails=self.parse_fails,
            sample_size=self.total_rows,
            stale30_pct=stale30,
            placeholder_rate=placeholder_rate,
        )
        findings: list[Finding] = []
        recommendations: list[str] = []

        threshold_factors = replace(factors, is_threshold_based=True)
        if stale30 < 10:
            findings.append(
                make_finding(
                    "green",
                    "Inventory recency looks healthy (low share older than 30 days).",
                    "high",
                    threshold_factors,
                )
            )
        elif stale30 >= 25:
            findings.append(
                make_finding(
                    "red",
                    f"{stale30}% of inventory records are older than 30 days and may be stale or abandoned assets.",
                    "high",
                    threshold_factors,
                )
            )
            recommendations.append(
                "Review update workflows and integrations to ensure inventory stays current."
            )
        else:
            findings.append(
                make_finding(
                    "yellow", f"{stale30}% of inventory records are older than 30 days.", "medium", factors
                )
            )
            recommendations.append(
                "Spot-check stale records and confirm whether they represent inactive assets or missed updates."
            )

        ratio_factors = replace(factors, is_ratio_based=True)
        if ratio is not None and ratio > 2:
            findings.append(
                make_finding(
                    "yellow",
                    f"Outbound-heavy inventory ratio ({ratio:.1f}:1 outbound to inbound).",
                    "medium",
                    ratio_factors,
                )
            )
            recommendations.append(
                "Review if outbound staging is backing up or if inbound flow is constrained."
            )
        elif ratio is not None and 0 < ratio < 0.5:
            findings.append(
                make_finding(
                    "yellow",
                    f"Inbound-heavy inventory ratio ({1 / ratio:.1f}:1 inbound to outbound).",
                    "medium",
                    ratio_factors,
                )
            )

        if placeholder_rate >= 10:
            recommendations.append(
                "Enforce SCAC validation and/or integrate carrier master data to reduce UNKNOWN/XXXX records."
            )
        if missing_contact_rate is not None and missing_contact_rate >= 30:
            recommendations.append(
                "If texting is expected, confirm driver contact capture and train gate/dispatch to populate contact fields."
            )

        parse_total = self.parse_ok + self.parse_fails
        parse_rate = pct1(self.parse_ok, parse_total) if parse_total else 100.0
        score = 0.65 * self.base_quality_score() + 0.35 * parse_rate
        data_quality = self.data_quality(
            score,
            dq_findings,
            {"stale30_pct": stale30, "placeholder_rate": placeholder_rate},
        )

        fresh_1d = self.recency["0-1d"]
        fresh_7d = fresh_1d + self.recency["1-7d"]
        fresh_30d = fresh_7d + self.recency["7-30d"]
        metrics = {
            "total_trailers": self.total_rows,
            "updated_last_24h_pct": pct1(fresh_1d, recency_total),
            "updated_last_7d_pct": pct1(fresh_7d, recency_total),
            "updated_last_30d_pct": pct1(fresh_30d, recency_total),
            "stale_30d_pct": stale30,
            "placeholder_scac_pct": placeholder_rate,
            "outbound_count": self.outbound,
            "inbound_count": self.inbound,
            "outbound_vs_inbound_ratio": None if ratio is None else round(ratio, 3),
            "live_loads": self.live_loads,
            "live_load_missing_driver_contact_pct": missing_contact_rate,
        }

        charts = [
            counts_chart(
                "move_type_distribution",
                "Move type distribution",
                "Distribution of move_type_name values in current inventory.",
                "move_type_name",
                self.move_types.to_sorted_dict(),
                kind="pie",
            )
        ]
        if self.has_yard_age:
            buckets = {key: value for key, value in self.yard_age.items() if key != "unknown"}
            charts.append(
                counts_chart(
                    "yard_age_distribution",
                    "Trailer yard-age distribution",
                    "How long trailers have been in the yard, from the export's elapsed hours.",
                    "yard_age_bucket",
                    buckets,
                    dataset_label="Trailers",
                )
            )
        else:
            charts.append(
                counts_chart(
                    "updated_recency_buckets",
                    "Updated_at recency buckets",
                    "How recently inventory records were updated.",
                    "bucket",
                    dict(self.recency),
                    dataset_label="Records",
                )
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
            roi=None,
            extras={"recency_buckets": dict(self.recency), "yard_age_buckets": dict(self.yard_age)},
        )
