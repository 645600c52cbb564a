from __future__ import annotations

from yard_analytics.analysis.granularity import (
    granularity_plural,
    infer_granularity_from_labels,
    select_granularity,
)
from yard_analytics.analysis.outliers import detect_outliers_iqr
from yard_analytics.analysis.series import TimeSeries
from yard_analytics.config import OutlierConfig


def _series(count: int) -> TimeSeries:
    return TimeSeries([f"p{idx:03d}" for idx in range(count)], [1.0] * count)


def test_select_granularity_switches_at_point_limits() -> None:
    assert select_granularity(_series(60), _series(9), _series(2)).granularity == "day"
    assert select_granularity(_series(61), _series(9), _series(2)).granularity == "week"
    assert select_granularity(_series(200), _series(27), _series(7)).granularity == "month"
    assert select_granularity(TimeSeries(), TimeSeries(), TimeSeries()) is None


def test_infer_granularity_from_labels() -> None:
    assert infer_granularity_from_labels(["2024-01-05"]) == "day"
    assert infer_granularity_from_labels(["2024-W05"]) == "week"
    assert infer_granularity_from_labels(["2024-01"]) == "month"
    assert infer_granularity_from_labels(["Q1"]) is None
    assert infer_granularity_from_labels([]) is None
    assert granularity_plural("week") == "weeks"
    assert granularity_plural("quarter") == "periods"


def test_detect_outliers_iqr_flags_values_above_fence() -> None:
    result = detect_outliers_iqr(list("abcde"), [10.0, 11.0, 12.0, 13.0, 100.0])
    assert result.has_outliers
    assert result.outlier_labels == ["e"]
    assert result.outlier_indices == [4]
    assert (result.q1, result.q3, result.iqr, result.upper_fence) == (11.0, 13.0, 2.0, 16.0)
    assert result.median_with_outliers == 12.0
    assert result.median_without_outliers == 11.5


def test_detect_outliers_iqr_applies_absolute_ceiling() -> None:
    result = detect_outliers_iqr(list("abcd"), [1500.0, 1500.0, 1500.0, 1500.0])
    assert result.iqr == 0.0
    assert result.outlier_labels == list("abcd")
    assert result.median_without_outliers == result.median_with_outliers == 1500.0

    relaxed = detect_outliers_iqr(list("abcd"), [1500.0] * 4, OutlierConfig(absolute_ceiling=2000.0))
    assert not relaxed.has_outliers


def test_detect_outliers_iqr_needs_enough_valid_points() -> None:
    result = detect_outliers_iqr(list("abcde"), [1.0, None, -4.0, float("nan"), 900.0])
    assert not result.has_outliers
    assert result.q1 is None
