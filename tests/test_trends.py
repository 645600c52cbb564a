from __future__ import annotations

from datetime import date, timedelta

import pytest

from yard_analytics.analysis.series import TimeSeries
from yard_analytics.analysis.trends import (
    analyze_series,
    compare_latest_periods,
    compare_periods,
    compute_overall_trend,
    detect_peaks_and_lows,
)


def _days(start: date, count: int) -> list[str]:
    return [(start + timedelta(days=idx)).isoformat() for idx in range(count)]


def test_compute_overall_trend_on_perfect_line() -> None:
    trend = compute_overall_trend(["a", "b", "c"], [1.0, 2.0, 3.0])
    assert trend is not None
    assert trend.slope == pytest.approx(1.0)
    assert trend.intercept == pytest.approx(1.0)
    assert trend.r_squared == pytest.approx(1.0)
    assert trend.stability == "consistent"
    assert trend.change_pct == pytest.approx(200.0)
    assert trend.direction == "increasing"
    assert (trend.start_label, trend.end_label) == ("a", "c")


def test_compute_overall_trend_handles_constant_and_short_series() -> None:
    flat = compute_overall_trend(["a", "b", "c", "d"], [5.0, 5.0, 5.0, 5.0])
    assert flat is not None
    assert flat.r_squared == 1.0
    assert flat.direction == "stable"

    assert compute_overall_trend(["a", "b"], [1.0, 2.0]) is None
    # Non-finite points are dropped before counting.
    assert compute_overall_trend(["a", "b", "c"], [1.0, None, float("nan")]) is None


def test_compute_overall_trend_falls_back_to_mean_when_fitted_start_is_zero() -> None:
    trend = compute_overall_trend(["a", "b", "c"], [0.0, 1.0, 2.0])
    assert trend is not None
    # fitted start 0 -> change measured against the mean (1.0)
    assert trend.change_pct == pytest.approx(200.0)


def test_compare_periods_drops_odd_middle_point() -> None:
    result = compare_periods(list("abcde"), [1.0, 2.0, 100.0, 4.0, 5.0])
    assert result is not None
    assert result.first_mean == 1.5
    assert result.second_mean == 4.5
    assert result.change_pct == pytest.approx(200.0)
    assert result.first_labels == ("a", "b")
    assert result.second_labels == ("d", "e")

    zero_base = compare_periods(list("abcd"), [0.0, 0.0, 3.0, 4.0])
    assert zero_base is not None
    assert zero_base.change_pct is None
    assert zero_base.direction == "stable"

    assert compare_periods(list("abc"), [1.0, 2.0, 3.0]) is None


def test_compare_latest_periods_prefers_finest_usable_granularity() -> None:
    change = compare_latest_periods(
        {
            "day": TimeSeries(["2024-01-01", "2024-01-02"], [10.0, 12.0]),
            "week": TimeSeries(["2024-W01"], [22.0]),
        },
        "Moves",
        15.0,
    )
    assert change is not None
    assert change.granularity == "day"
    assert change.granularity_label == "day-over-day"
    assert change.change_pct == 20.0
    assert change.direction == "increased"
    assert change.is_significant
    assert change.previous.value == 10.0

    fallback = compare_latest_periods(
        {
            "day": TimeSeries(["2024-01-01", "2024-01-02"], [0.0, 5.0]),
            "week": TimeSeries(["2024-W01", "2024-W02"], [20.0, 18.0]),
        },
        "Moves",
    )
    assert fallback is not None
    assert fallback.granularity_label == "week-over-week"
    assert fallback.direction == "decreased"
    assert not fallback.is_significant

    assert compare_latest_periods({"month": TimeSeries(["2024-01"], [3.0])}, "Moves") is None


def test_detect_peaks_and_lows_finds_weekend_pattern() -> None:
    labels = _days(date(2024, 1, 1), 21)  # Monday 1 Jan through Sunday 21 Jan
    values = [50.0 if date.fromisoformat(label).weekday() >= 5 else 10.0 for label in labels]

    peaks = detect_peaks_and_lows(labels, values, "day")
    assert peaks is not None
    assert peaks.top_n == 10
    assert peaks.weekend_peak_share == 0.6
    assert peaks.weekend_peak_pattern
    assert not peaks.weekend_low_pattern
    assert peaks.peaks[0].label == "2024-01-06"
    assert all(point.value == 10.0 for point in peaks.lows)


def test_detect_peaks_and_lows_non_daily_and_short_series() -> None:
    weekly = detect_peaks_and_lows(["2024-W01", "2024-W02", "2024-W03", "2024-W04"], [4.0, 9.0, 1.0, 3.0], "week")
    assert weekly is not None
    assert weekly.top_n == 2
    assert [point.label for point in weekly.peaks] == ["2024-W02", "2024-W01"]
    assert [point.label for point in weekly.lows] == ["2024-W03", "2024-W04"]
    assert weekly.weekend_peak_share is None

    assert detect_peaks_and_lows(["a", "b", "c"], [1.0, 2.0, 3.0], "week") is None


def test_analyze_series_runs_on_chosen_granularity() -> None:
    labels = _days(date(2024, 1, 1), 5)
    bundle = analyze_series(
        {
            "day": TimeSeries(labels, [1.0, 2.0, 3.0, 4.0, 5.0]),
            "week": TimeSeries(["2024-W01"], [15.0]),
            "month": TimeSeries(["2024-01"], [15.0]),
        }
    )
    assert bundle is not None
    assert bundle.granularity == "day"
    assert bundle.overall is not None and bundle.overall.direction == "increasing"
    assert bundle.comparison is not None
    assert bundle.to_dict()["points"] == 5

    assert analyze_series({}) is None
