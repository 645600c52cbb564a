from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np

from yard_analytics.config import OutlierConfig


@dataclass(frozen=True)
class OutlierResult:
    has_outliers: bool = False
    outlier_indices: list[int] = field(default_factory=list)
    outlier_labels: list[str] = field(default_factory=list)
    outlier_values: list[float] = field(default_factory=list)
    q1: float | None = None
    q3: float | None = None
    iqr: float | None = None
    upper_fence: float | None = None
    median_with_outliers: float | None = None
    median_without_outliers: float | None = None

    def to_dict(self) -> dict[str, object]:
        return dict(self.__dict__)


def detect_outliers_iqr(
    labels: Sequence[str],
    values: Sequence[float | None],
    config: OutlierConfig | None = None,
) -> OutlierResult:
    """Flag values above ``Q3 + k*IQR`` or above an absolute ceiling.

    Quartiles use linear interpolation between order statistics. Negative and
    non-finite values are ignored; fewer than ``min_points`` valid values
    yields an empty result.
    """
    cfg = config or OutlierConfig()
    valid = [
        (idx, label, float(value))
        for idx, (label, value) in enumerate(zip(labels, values))
        if value is not None and math.isfinite(float(value)) and float(value) >= 0
    ]
    if len(valid) < cfg.min_points:
        return OutlierResult()

    data = np.asarray([value for _, _, value in valid], dtype=float)
    q1 = float(np.quantile(data, 0.25, method="linear"))
    q3 = float(np.quantile(data, 0.75, method="linear"))
    iqr = q3 - q1
    fence = q3 + cfg.iqr_multiplier * iqr

    indices: list[int] = []
    out_labels: list[str] = []
    out_values: list[float] = []
    kept: list[float] = []
    for idx, label, value in valid:
        if value > fence or value > cfg.absolute_ceiling:
            indices.append(idx)
            out_labels.append(label)
            out_values.append(value)
        else:
            kept.append(value)

    median_with = float(np.median(data))
    median_without = float(np.median(kept)) if kept else median_with
    return OutlierResult(
        has_outliers=bool(indices),
        outlier_indices=indices,
        outlier_labels=out_labels,
        outlier_values=out_values,
        q1=round(q1, 1),
        q3=round(q3, 1),
        iqr=round(iqr, 1),
        upper_fence=round(fence, 1),
        median_with_outliers=median_with,
        median_without_outliers=median_without,
    )
