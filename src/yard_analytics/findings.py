from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Literal

from yard_analytics.analysis.trends import LatestPeriodChange, OverallTrend, PeakAnalysis

Level = Literal["green", "yellow", "red"]
Confidence = Literal["high", "medium", "low"]


@dataclass(frozen=True)
class Finding:
    level: Level
    text: str
    confidence: Confidence
    confidence_reason: str

    def to_dict(self) -> dict[str, str]:
        return {
            "level": self.level,
            "text": self.text,
            "confidence": self.confidence,
            "confidence_reason": self.confidence_reason,
        }


@dataclass(frozen=True)
class ConfidenceFactors:
    """Data-quality context available when a finding is written; unset fields are skipped."""

    parse_ok: int = 0
    parse_fails: int = 0
    null_rate: float | None = None
    coverage_pct: float | None = None
    sample_size: int | None = None
    trend_data_points: int | None = None
    dwell_coverage_pct: float | None = None
    process_coverage_pct: float | None = None
    compliance_pct: float | None = None
    stale30_pct: float | None = None
    placeholder_rate: float | None = None
    is_trend_based: bool = False
    is_ratio_based: bool = False
    is_threshold_based: bool = False


def score_to_badge(score: float) -> tuple[str, str]:
    if score >= 80:
        return "High", "green"
    if score >= 55:
        return "Medium", "yellow"
    return "Low", "red"


def pct(part: float, whole: float) -> int:
    return round(100 * part / whole) if whole else 0


def generate_confidence_reason(confidence: Confidence, factors: ConfidenceFactors | None = None) -> str:
    """Explain a finding's confidence level in terms of the data behind it."""
    f = factors or ConfidenceFactors()
    total = f.parse_ok + f.parse_fails
    parse_rate = pct(f.parse_ok, total) if total else 100
    parse_fail_rate = pct(f.parse_fails, total)
    reasons: list[str] = []

    if confidence == "high":
        if parse_rate >= 95 and total > 0:
            reasons.append(f"{parse_rate}% of records parsed successfully")
        if f.coverage_pct is not None and f.coverage_pct >= 90:
            reasons.append(f"{f.coverage_pct:g}% data coverage")
        if f.sample_size is not None and f.sample_size >= 100:
            reasons.append(f"based on {f.sample_size:,} data points")
        if f.trend_data_points is not None and f.trend_data_points >= 4:
            reasons.append(f"trend analysis spans {f.trend_data_points} periods")
        if f.is_threshold_based:
            reasons.append("clear threshold exceeded")
        if not reasons:
            reasons.append("data quality and completeness are strong")
    elif confidence == "medium":
        if 5 <= parse_fail_rate < 20:
            reasons.append(f"{parse_fail_rate}% of records failed to parse, which may affect accuracy")
        if f.null_rate is not None and 10 <= f.null_rate < 30:
            reasons.append(f"{f.null_rate:g}% null values in key fields may skew results")
        if f.coverage_pct is not None and 50 <= f.coverage_pct < 90:
            reasons.append(f"only {f.coverage_pct:g}% of records have complete data")
        if f.sample_size is not None and 20 <= f.sample_size < 100:
            reasons.append(f"based on {f.sample_size} data points (moderate sample)")
        if f.trend_data_points is not None and 2 <= f.trend_data_points < 4:
            reasons.append(f"trend based on only {f.trend_data_points} periods")
        if f.dwell_coverage_pct is not None and f.dwell_coverage_pct < 80:
            reasons.append(f"dwell time coverage is {f.dwell_coverage_pct:g}%")
        if f.process_coverage_pct is not None and f.process_coverage_pct < 80:
            reasons.append(f"process time coverage is {f.process_coverage_pct:g}%")
        if f.compliance_pct is not None and f.compliance_pct < 70:
            reasons.append(f"timing compliance is {f.compliance_pct:g}%")
        if f.stale30_pct is not None and 10 <= f.stale30_pct < 25:
            reasons.append(f"{f.stale30_pct:g}% of records are stale (>30 days old)")
        if f.placeholder_rate is not None and f.placeholder_rate >= 10:
            reasons.append(f"{f.placeholder_rate:g}% placeholder values detected")
        if f.is_ratio_based:
            reasons.append("ratio analysis may not reflect all edge cases")
        if f.is_trend_based and f.trend_data_points is None:
            reasons.append("trend data has limited historical depth")
        if not reasons:
            reasons.append("some data gaps or quality issues present")
    else:
        if parse_fail_rate >= 20:
            reasons.append(f"{parse_fail_rate}% of records failed to parse, significantly affecting reliability")
        if f.null_rate is not None and f.null_rate >= 30:
            reasons.append(f"{f.null_rate:g}% null values indicate substantial data gaps")
        if f.coverage_pct is not None and f.coverage_pct < 50:
            reasons.append(f"only {f.coverage_pct:g}% data coverage, results may not be representative")
        if f.sample_size is not None and f.sample_size < 20:
            reasons.append(f"only {f.sample_size} data points, sample too small for reliable conclusions")
        if f.stale30_pct is not None and f.stale30_pct >= 25:
            reasons.append(f"{f.stale30_pct:g}% of records are stale, affecting data freshness")
        if not reasons:
            reasons.append("significant data quality issues limit reliability")

    prefix = {"high": "High confidence: ", "medium": "Medium confidence: "}.get(
        confidence, "Low confidence: "
    )
    return prefix + "; ".join(reasons) + "."


def make_finding(
    level: Level,
    text: str,
    confidence: Confidence,
    factors: ConfidenceFactors | None = None,
) -> Finding:
    return Finding(level, text, confidence, generate_confidence_reason(confidence, factors))


def generate_tooltip_text(report: str, factors: dict[str, Any]) -> str:
    lines = [f"Score: {factors.get('score', '?')}/100"]
    parse_ok = factors.get("parse_ok", 0)
    total = parse_ok + factors.get("parse_fails", 0)
    if total > 0:
        lines.append(f"Parse success: {pct(parse_ok, total)}% ({parse_ok}/{total})")

    if report == "current_inventory":
        if factors.get("stale30_pct") is not None:
            lines.append(f"Stale records (>30d): {factors['stale30_pct']}%")
        if factors.get("placeholder_rate"):
            lines.append(f"Placeholder SCAC: {factors['placeholder_rate']}%")
    elif report == "detention_history":
        if factors.get("coverage_pct") is not None:
            lines.append(f"Event coverage: {factors['coverage_pct']}%")
    elif report == "dockdoor_history":
        if factors.get("dwell_coverage_pct") is not None:
            lines.append(f"Dwell coverage: {factors['dwell_coverage_pct']}%")
        if factors.get("process_coverage_pct") is not None:
            lines.append(f"Process coverage: {factors['process_coverage_pct']}%")
    elif report == "driver_history":
        if factors.get("compliance_pct") is not None:
            lines.append(f"Timing compliance: {factors['compliance_pct']}%")
    return "\n".join(lines)


def _format_value(value: float, unit: str) -> str:
    return f"{round(value, 1):g}{unit}"


def format_latest_change_finding(
    change: LatestPeriodChange | None,
    *,
    increase_level: Level = "yellow",
    decrease_level: Level = "green",
    unit: str = "",
    factors: ConfidenceFactors | None = None,
) -> Finding | None:
    if change is None:
        return None
    level = increase_level if change.direction == "increased" else decrease_level
    text = (
        f"{change.metric_name} {change.direction} {abs(change.change_pct):g}% "
        f"({_format_value(change.previous.value, unit)} -> {_format_value(change.current.value, unit)}) "
        f"{change.granularity_label}."
    )
    trend_factors = replace(factors or ConfidenceFactors(), is_trend_based=True)
    return make_finding(level, text, "medium", trend_factors)


def format_overall_trend_finding(
    trend: OverallTrend | None,
    metric_name: str,
    *,
    increase_level: Level = "yellow",
    decrease_level: Level = "green",
    factors: ConfidenceFactors | None = None,
) -> Finding | None:
    if trend is None:
        return None
    if trend.direction == "stable":
        level: Level = "green"
        text = (
            f"{metric_name} held stable from {trend.start_label} to {trend.end_label} "
            f"({trend.stability} trend, R² {trend.r_squared:.2f})."
        )
    else:
        level = increase_level if trend.direction == "increasing" else decrease_level
        text = (
            f"{metric_name} is {trend.direction} overall ({trend.change_pct:+.1f}% from "
            f"{trend.start_label} to {trend.end_label}, {trend.stability} trend, R² {trend.r_squared:.2f})."
        )
    confidence: Confidence = "high" if trend.stability == "consistent" and trend.points >= 4 else "medium"
    trend_factors = replace(
        factors or ConfidenceFactors(), is_trend_based=True, trend_data_points=trend.points
    )
    return make_finding(level, text, confidence, trend_factors)


def format_peak_finding(
    peaks: PeakAnalysis | None,
    metric_name: str,
    *,
    factors: ConfidenceFactors | None = None,
) -> Finding | None:
    if peaks is None or not peaks.peaks:
        return None
    if peaks.weekend_peak_pattern:
        share = round(100 * (peaks.weekend_peak_share or 0))
        text = (
            f"{metric_name} peaks cluster on weekends: {share}% of the top "
            f"{peaks.top_n} days fall on Saturday or Sunday."
        )
        return make_finding("yellow", text, "medium", factors)
    if peaks.weekend_low_pattern:
        share = round(100 * (peaks.weekend_low_share or 0))
        text = (
            f"{metric_name} is lowest on weekends: {share}% of the bottom "
            f"{peaks.top_n} days fall on Saturday or Sunday."
        )
        return make_finding("green", text, "medium", factors)
    top = peaks.peaks[0]
    text = f"{metric_name} peaked at {_format_value(top.value, '')} on {top.label}."
    return make_finding("green", text, "medium", factors)
