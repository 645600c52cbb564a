from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from yard_analytics.analysis.series import TimeSeries
from yard_analytics.config import GranularityConfig

Granularity = Literal["day", "week", "month"]

_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_WEEK_RE = re.compile(r"^\d{4}-W\d{2}$")
_MONTH_RE = re.compile(r"^\d{4}-\d{2}$")

_PLURALS = {"day": "days", "week": "weeks", "month": "months"}


@dataclass(frozen=True)
class GranularityChoice:
    granularity: Granularity
    series: TimeSeries


def select_granularity(
    daily: TimeSeries,
    weekly: TimeSeries,
    monthly: TimeSeries,
    config: GranularityConfig | None = None,
) -> GranularityChoice | None:
    """Pick the finest granularity whose point count stays readable.

    Daily wins with up to ``max_daily_points`` points, weekly with up to
    ``max_weekly_points``; anything longer falls through to monthly.
    """
    cfg = config or GranularityConfig()
    if cfg.min_points <= len(daily) <= cfg.max_daily_points:
        return GranularityChoice("day", daily)
    if cfg.min_points <= len(weekly) <= cfg.max_weekly_points:
        return GranularityChoice("week", weekly)
    if len(monthly) >= cfg.min_points:
        return GranularityChoice("month", monthly)
    return None


def infer_granularity_from_labels(labels: list[str]) -> Granularity | None:
    if not labels:
        return None
    sample = labels[0]
    if _DAY_RE.match(sample):
        return "day"
    if _WEEK_RE.match(sample):
        return "week"
    if _MONTH_RE.match(sample):
        return "month"
    return None


def granularity_plural(granularity: str) -> str:
    return _PLURALS.get(granularity, "periods")
