from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Literal

import numpy as np

from yard_analytics.analysis.granularity import select_granularity
from yard_analytics.analysis.series import TimeSeries
from yard_analytics.config import AnalysisConfig, TrendConfig

Direction = Literal["increasing", "decreasing", "stable"]
Stability = Literal["consistent", "moderate", "volatile"]

_COMPARISON_LABELS = (
    ("day", "day-over-day"),
    ("week", "week-over-week"),
    ("month", "month-over-month"),
)


@dataclass(frozen=True)
class OverallTrend:
    slope: float
    intercept: float
    r_squared: float
    stability: Stability
    change_pct: float
    direction: Direction
    points: int
    start_label: str
    end_label: str

    def to_dict(self) -> dict[str, object]:
        return {
            "slope": round(self.slope, 4),
            "intercept": round(self.intercept, 4),
            "r_squared": round(self.r_squared, 3),
            "stability": self.stability,
            "change_pct": round(self.change_pct, 1),
            "direction": self.direction,
            "points": self.points,
            "start_label": self.start_label,
            "end_label": self.end_label,
        }


@dataclass(frozen=True)
class PeriodComparison:
    first_mean: float
    second_mean: float
    change_pct: float | None
    direction: Direction
    first_labels: tuple[str, str]
    second_labels: tuple[str, str]

    def to_dict(self) -> dict[str, object]:
        return {
            "first_mean": round(self.first_mean, 2),
            "second_mean": round(self.second_mean, 2),
            "change_pct": None if self.change_pct is None else round(self.change_pct, 1),
            "direction": self.direction,
            "first_labels": list(self.first_labels),
            "second_labels": list(self.second_labels),
        }


@dataclass(frozen=True)
class PeriodValue:
    label: str
    value: float


@dataclass(frozen=True)
class LatestPeriodChange:
    metric_name: str
    current: PeriodValue
    previous: PeriodValue
    change_pct: float
    direction: Literal["increased", "decreased"]
    is_significant: bool
    granularity: str
    granularity_label: str

    def to_dict(self) -> dict[str, object]:
        return {
            "metric_name": self.metric_name,
            "current": {"label": self.current.label, "value": self.current.value},
            "previous": {"label": self.previous.label, "value": self.previous.value},
            "change_pct": self.change_pct,
            "direction": self.direction,
            "is_significant": self.is_significant,
            "granularity": self.granularity,
            "granularity_label": self.granularity_label,
        }


@dataclass(frozen=True)
class PeakPoint:
    label: str
    value: float
    is_weekend: bool | None = None


@dataclass(frozen=True)
class PeakAnalysis:
    peaks: list[PeakPoint] = field(default_factory=list)
    lows: list[PeakPoint] = field(default_factory=list)
    top_n: int = 0
    weekend_peak_share: float | None = None
    weekend_low_share: float | None = None
    weekend_peak_pattern: bool = False
    weekend_low_pattern: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "peaks": [point.__dict__ for point in self.peaks],
            "lows": [point.__dict__ for point in self.lows],
            "top_n": self.top_n,
            "weekend_peak_share": self.weekend_peak_share,
            "weekend_low_share": self.weekend_low_share,
            "weekend_peak_pattern": self.weekend_peak_pattern,
            "weekend_low_pattern": self.weekend_low_pattern,
        }


def _finite_pairs(labels: Sequence[str], values: Sequence[float | None]) -> tuple[list[str], np.ndarray]:
    kept_labels: list[str] = []
    kept_values: list[float] = []
    for label, value in zip(labels, values):
        if value is None or not math.isfinite(float(value)):
            continue
        kept_labels.append(label)
        kept_values.append(float(value))
    return kept_labels, np.asarray(kept_values, dtype=float)


def _direction(change_pct: float | None, stable_pct: float) -> Direction:
    if change_pct is None or abs(change_pct) < stable_pct:
        return "stable"
    return "increasing" if change_pct > 0 else "decreasing"


def compute_overall_trend(
    labels: Sequence[str],
    values: Sequence[float | None],
    config: TrendConfig | None = None,
) -> OverallTrend | None:
    """Least-squares line over period index; ``None`` below the minimum point count."""
    cfg = config or TrendConfig()
    kept_labels, y = _finite_pairs(labels, values)
    if y.size < cfg.min_regression_points:
        return None

    x = np.arange(y.size, dtype=float)
    slope, intercept = np.polyfit(x, y, 1)
    fitted = intercept + slope * x
    ss_res = float(np.sum((y - fitted) ** 2))
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    r_squared = 1.0 - ss_res / ss_tot if ss_tot > 0 else 1.0
    r_squared = min(max(r_squared, 0.0), 1.0)

    if r_squared >= cfg.consistent_r_squared:
        stability: Stability = "consistent"
    elif r_squared >= cfg.moderate_r_squared:
        stability = "moderate"
    else:
        stability = "volatile"

    start, end = float(fitted[0]), float(fitted[-1])
    base = abs(start) if abs(start) > 1e-9 else abs(float(y.mean()))
    change_pct = (end - start) / base * 100.0 if base > 0 else 0.0

    return OverallTrend(
        slope=float(slope),
        intercept=float(intercept),
        r_squared=r_squared,
        stability=stability,
        change_pct=change_pct,
        direction=_direction(change_pct, cfg.stable_change_pct),
        points=int(y.size),
        start_label=kept_labels[0],
        end_label=kept_labels[-1],
    )


def compare_periods(
    labels: Sequence[str],
    values: Sequence[float | None],
    config: TrendConfig | None = None,
) -> PeriodComparison | None:
    """Mean of the first half against the mean of the second half (odd middle point dropped)."""
    cfg = config or TrendConfig()
    kept_labels, y = _finite_pairs(labels, values)
    if y.size < cfg.min_comparison_points:
        return None

    half = y.size // 2
    first, second = y[:half], y[y.size - half :]
    first_mean, second_mean = float(first.mean()), float(second.mean())
    change_pct = (second_mean - first_mean) / abs(first_mean) * 100.0 if first_mean != 0 else None
    return PeriodComparison(
        first_mean=first_mean,
        second_mean=second_mean,
        change_pct=change_pct,
        direction=_direction(change_pct, cfg.stable_change_pct),
        first_labels=(kept_labels[0], kept_labels[half - 1]),
        second_labels=(kept_labels[y.size - half], kept_labels[-1]),
    )


def compare_latest_periods(
    series_by_granularity: Mapping[str, TimeSeries],
    metric_name: str,
    significant_change_pct: float = 15.0,
) -> LatestPeriodChange | None:
    """Compare the last two periods at the finest granularity that supports it."""
    for key, label in _COMPARISON_LABELS:
        series = series_by_granularity.get(key)
        if series is None:
            continue
        kept_labels, y = _finite_pairs(series.labels, series.values)
        if y.size < 2:
            continue
        previous_value, current_value = float(y[-2]), float(y[-1])
        if previous_value == 0:
            continue
        change_pct = (current_value - previous_value) / abs(previous_value) * 100.0
        return LatestPeriodChange(
            metric_name=metric_name,
            current=PeriodValue(kept_labels[-1], current_value),
            previous=PeriodValue(kept_labels[-2], previous_value),
            change_pct=round(change_pct, 1),
            direction="increased" if change_pct > 0 else "decreased",
            is_significant=abs(change_pct) >= significant_change_pct,
            granularity=key,
            granularity_label=label,
        )
    return None


def is_weekend(label: str) -> bool:
    return date.fromisoformat(label).weekday() >= 5


def detect_peaks_and_lows(
    labels: Sequence[str],
    values: Sequence[float | None],
    granularity: str,
    config: TrendConfig | None = None,
) -> PeakAnalysis | None:
    cfg = config or TrendConfig()
    kept_labels, y = _finite_pairs(labels, values)
    if y.size < cfg.min_peak_points:
        return None

    top_n = min(cfg.peak_top_n, y.size // 2)
    daily = granularity == "day"
    points = [
        PeakPoint(label, float(value), is_weekend(label) if daily else None)
        for label, value in zip(kept_labels, y)
    ]
    # sorted() is stable, so equal values keep chronological order.
    peaks = sorted(points, key=lambda point: -point.value)[:top_n]
    lows = sorted(points, key=lambda point: point.value)[:top_n]

    if not daily:
        return PeakAnalysis(peaks=peaks, lows=lows, top_n=top_n)

    peak_share = sum(1 for point in peaks if point.is_weekend) / top_n
    low_share = sum(1 for point in lows if point.is_weekend) / top_n
    return PeakAnalysis(
        peaks=peaks,
        lows=lows,
        top_n=top_n,
        weekend_peak_share=round(peak_share, 3),
        weekend_low_share=round(low_share, 3),
        weekend_peak_pattern=peak_share >= cfg.weekend_pattern_share,
        weekend_low_pattern=low_share >= cfg.weekend_pattern_share,
    )


@dataclass(frozen=True)
class TrendBundle:
    granularity: str
    series: TimeSeries
    overall: OverallTrend | None
    comparison: PeriodComparison | None
    peaks: PeakAnalysis | None

    def to_dict(self) -> dict[str, object]:
        return {
            "granularity": self.granularity,
            "points": len(self.series),
            "overall": None if self.overall is None else self.overall.to_dict(),
            "comparison": None if self.comparison is None else self.comparison.to_dict(),
            "peaks": None if self.peaks is None else self.peaks.to_dict(),
        }


def analyze_series(
    series_by_granularity: Mapping[str, TimeSeries],
    config: AnalysisConfig | None = None,
) -> TrendBundle | None:
    """Choose a granularity, then run overall trend, half comparison and peak detection on it."""
    cfg = config or AnalysisConfig()
    empty = TimeSeries()
    choice = select_granularity(
        series_by_granularity.get("day", empty),
        series_by_granularity.get("week", empty),
        series_by_granularity.get("month", empty),
        cfg.granularity,
    )
    if choice is None:
        return None
    series = choice.series
    return TrendBundle(
        granularity=choice.granularity,
        series=series,
        overall=compute_overall_trend(series.labels, series.values, cfg.trends),
        comparison=compare_periods(series.labels, series.values, cfg.trends),
        peaks=detect_peaks_and_lows(series.labels, series.values, choice.granularity, cfg.trends),
    )
