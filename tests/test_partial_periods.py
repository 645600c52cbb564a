from __future__ import annotations

from yard_analytics.analysis.partial_periods import (
    apply_partial_period_handling,
    detect_global_partial_periods,
    detect_partial_periods,
)

LABELS = ["2024-01-01", "2024-01-02", "2024-01-03", "2024-01-04", "2024-01-05"]


def _report(kind: str = "line", values: list[float] | None = None) -> dict:
    return {
        "report": "driver_history",
        "charts": [
            {
                "id": "moves",
                "title": "Moves (daily)",
                "kind": kind,
                "data": {"labels": LABELS, "datasets": [{"label": "Moves", "data": values or [2, 10, 12, 11, 3]}]},
            }
        ],
    }


def test_detect_partial_periods_compares_edges_to_interior_median() -> None:
    result = detect_partial_periods(LABELS, [2, 10, 12, 11, 3])
    assert result.first_partial
    assert result.last_partial
    assert result.first_label == "2024-01-01"

    full = detect_partial_periods(LABELS, [9, 10, 12, 11, 8])
    assert not full.first_partial and not full.last_partial

    assert not detect_partial_periods(LABELS[:2], [1, 10]).first_partial
    assert not detect_partial_periods(LABELS[:3], [1, 0, 10]).first_partial


def test_detect_global_partial_periods_only_scans_line_charts() -> None:
    info = detect_global_partial_periods([_report(), _report(kind="bar", values=[0, 50, 50, 50, 50])])
    assert info.has_partial_periods
    assert info.granularity == "day"
    assert info.granularity_label == "days"
    assert info.first_partial.label == "2024-01-01"
    assert info.last_partial.label == "2024-01-05"
    assert info.detected_in == ["Moves (daily) (first)", "Moves (daily) (last)"]

    assert not detect_global_partial_periods([_report(kind="pie")]).has_partial_periods


def test_apply_partial_period_handling_modes() -> None:
    chart_data = _report()["charts"][0]["data"]
    info = detect_global_partial_periods([_report()])

    included = apply_partial_period_handling(chart_data, info, "include")
    assert included["labels"] == LABELS
    assert included["partial_period_info"]["original_length"] == 5

    trimmed = apply_partial_period_handling(chart_data, info, "trim")
    assert trimmed["labels"] == LABELS[1:4]
    assert trimmed["datasets"][0]["data"] == [10, 12, 11]
    assert trimmed["partial_period_info"]["trimmed_first"]
    assert trimmed["partial_period_info"]["trimmed_last"]
    # The input is never mutated.
    assert chart_data["datasets"][0]["data"] == [2, 10, 12, 11, 3]

    highlighted = apply_partial_period_handling(chart_data, info, "highlight")
    assert highlighted["labels"] == LABELS
    assert highlighted["partial_period_info"]["first_index"] == 0
    assert highlighted["partial_period_info"]["last_index"] == 4
