from __future__ import annotations

import copy
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

import numpy as np

from yard_analytics.analysis.granularity import granularity_plural, infer_granularity_from_labels

PartialPeriodMode = Literal["include", "trim", "highlight"]


@dataclass(frozen=True)
class PartialPeriodResult:
    first_partial: bool
    last_partial: bool
    first_label: str | None
    last_label: str | None


@dataclass
class PartialMarker:
    detected: bool = False
    label: str | None = None


@dataclass
class GlobalPartialPeriods:
    has_partial_periods: bool = False
    granularity: str = "unknown"
    granularity_label: str = "periods"
    first_partial: PartialMarker = field(default_factory=PartialMarker)
    last_partial: PartialMarker = field(default_factory=PartialMarker)
    detected_in: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_partial_periods": self.has_partial_periods,
            "granularity": self.granularity,
            "granularity_label": self.granularity_label,
            "first_partial": {"detected": self.first_partial.detected, "label": self.first_partial.label},
            "last_partial": {"detected": self.last_partial.detected, "label": self.last_partial.label},
            "detected_in": list(self.detected_in),
        }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def detect_partial_periods(
    labels: Sequence[str],
    values: Sequence[Any],
    ratio: float = 0.5,
) -> PartialPeriodResult:
    """Flag the first/last period when it falls below ``ratio`` x the interior median."""
    first_label = labels[0] if labels else None
    last_label = labels[-1] if labels else None
    result = PartialPeriodResult(False, False, first_label, last_label)
    if len(labels) < 3 or len(values) < 3:
        return result

    interior = [float(v) for v in values[1:-1] if _is_number(v) and v > 0]
    if not interior:
        return result

    threshold = float(np.median(interior)) * ratio
    first, last = values[0], values[-1]
    return PartialPeriodResult(
        first_partial=_is_number(first) and first < threshold,
        last_partial=_is_number(last) and last < threshold,
        first_label=first_label,
        last_label=last_label,
    )


def detect_global_partial_periods(
    reports: Iterable[Mapping[str, Any]],
    ratio: float = 0.5,
) -> GlobalPartialPeriods:
    """Scan every line chart of every report so all charts trim the same periods."""
    info = GlobalPartialPeriods()
    for report in reports:
        for chart in report.get("charts") or []:
            if chart.get("kind") != "line":
                continue
            data = chart.get("data") or {}
            labels = data.get("labels")
            datasets = data.get("datasets")
            if not labels or not datasets:
                continue

            granularity = infer_granularity_from_labels(list(labels))
            if granularity is not None and info.granularity == "unknown":
                info.granularity = granularity
                info.granularity_label = granularity_plural(granularity)

            for dataset in datasets:
                series = dataset.get("data") or []
                if len(series) < 3:
                    continue
                detection = detect_partial_periods(labels, series, ratio)
                if detection.first_partial:
                    info.first_partial.detected = True
                    info.first_partial.label = info.first_partial.label or detection.first_label
                    info.detected_in.append(f"{chart.get('title')} (first)")
                if detection.last_partial:
                    info.last_partial.detected = True
                    info.last_partial.label = info.last_partial.label or detection.last_label
                    info.detected_in.append(f"{chart.get('title')} (last)")

    info.has_partial_periods = info.first_partial.detected or info.last_partial.detected
    return info


def apply_partial_period_handling(
    chart_data: Mapping[str, Any],
    info: GlobalPartialPeriods,
    mode: PartialPeriodMode = "include",
) -> dict[str, Any]:
    """Return a copy of ``chart_data`` with partial edge periods trimmed or marked."""
    labels = list(chart_data.get("labels") or [])
    result: dict[str, Any] = {
        "labels": labels,
        "datasets": [copy.deepcopy(dict(ds)) for ds in chart_data.get("datasets") or []],
        "partial_period_info": {
            "mode": mode,
            "trimmed_first": False,
            "trimmed_last": False,
            "highlight_first": False,
            "highlight_last": False,
            "original_length": len(labels),
        },
    }
    if not info.has_partial_periods or mode == "include" or not labels:
        return result

    meta = result["partial_period_info"]
    first_hit = info.first_partial.detected and labels[0] == info.first_partial.label
    last_hit = info.last_partial.detected and labels[-1] == info.last_partial.label

    if mode == "trim":
        start = 1 if first_hit else 0
        end = len(labels) - 1 if last_hit else len(labels)
        meta["trimmed_first"] = first_hit
        meta["trimmed_last"] = last_hit
        result["labels"] = labels[start:end]
        for dataset in result["datasets"]:
            dataset["data"] = list(dataset.get("data") or [])[start:end]
    elif mode == "highlight":
        if first_hit:
            meta["highlight_first"] = True
            meta["first_index"] = 0
        if last_hit:
            meta["highlight_last"] = True
            meta["last_index"] = len(labels) - 1
    return result
