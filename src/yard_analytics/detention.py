from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class DetentionStatus(str, Enum):
    STILL_IN_YARD = "still_in_yard"
    UNKNOWN = "unknown"
    IN_DETENTION = "in_detention"
    PREVENTED = "prevented"
    NO_DETENTION = "no_detention"


# Statuses that count toward detention rates and trend series.
RESOLVED_STATUSES = frozenset(
    {DetentionStatus.IN_DETENTION, DetentionStatus.PREVENTED, DetentionStatus.NO_DETENTION}
)


@dataclass(frozen=True)
class DetentionClassification:
    status: DetentionStatus
    detention_hours: float | None = None


def classify(
    arrival: datetime | None,
    departure: datetime | None,
    pre_threshold: datetime | None,
    det_threshold: datetime | None,
) -> DetentionClassification:
    """Derive a row's detention status from actual departure versus scheduled thresholds.

    Threshold timestamps are schedules, not occurrence flags: a row with a
    detention threshold is only in detention when the trailer left after it.
    ``arrival`` is accepted for symmetry with the row shape; callers drop rows
    without an arrival before classifying.
    """
    if departure is None:
        return DetentionClassification(DetentionStatus.STILL_IN_YARD)
    if pre_threshold is None and det_threshold is None:
        return DetentionClassification(DetentionStatus.UNKNOWN)
    if det_threshold is not None and departure > det_threshold:
        hours = (departure - det_threshold).total_seconds() / 3600.0
        return DetentionClassification(
            DetentionStatus.IN_DETENTION,
            detention_hours=hours if math.isfinite(hours) and hours > 0 else None,
        )
    if pre_threshold is not None and departure > pre_threshold:
        return DetentionClassification(DetentionStatus.PREVENTED)
    return DetentionClassification(DetentionStatus.NO_DETENTION)
