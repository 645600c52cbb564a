from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from yard_analytics.preprocess.time import PeriodKeys
from yard_analytics.streaming.counters import CounterMap
from yard_analytics.streaming.p2_quantile import QuantilePair


@dataclass(frozen=True)
class TimeSeries:
    labels: list[str] = field(default_factory=list)
    values: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.labels)

    def is_empty(self) -> bool:
        return not self.labels

    def total(self) -> float:
        return float(sum(self.values))


class PeriodCounters:
    """Day, week and month counters fed in lockstep so totals agree across granularities."""

    def __init__(self) -> None:
        self.day = CounterMap()
        self.week = CounterMap()
        self.month = CounterMap()

    def inc(self, keys: PeriodKeys, by: int = 1) -> None:
        self.day.inc(keys.day, by)
        self.week.inc(keys.week, by)
        self.month.inc(keys.month, by)

    def by_granularity(self) -> dict[str, CounterMap]:
        return {"day": self.day, "week": self.week, "month": self.month}

    def series(self) -> dict[str, TimeSeries]:
        return {key: counter_to_series(counter) for key, counter in self.by_granularity().items()}

    def total(self) -> int:
        return self.day.total()


class PeriodQuantiles:
    """Median/p90 estimator pairs per day, week and month."""

    def __init__(self) -> None:
        self.day: dict[str, QuantilePair] = {}
        self.week: dict[str, QuantilePair] = {}
        self.month: dict[str, QuantilePair] = {}

    def add(self, keys: PeriodKeys, value: float) -> None:
        for bucket, key in ((self.day, keys.day), (self.week, keys.week), (self.month, keys.month)):
            pair = bucket.get(key)
            if pair is None:
                pair = bucket[key] = QuantilePair()
            pair.add(value)

    def by_granularity(self) -> dict[str, dict[str, QuantilePair]]:
        return {"day": self.day, "week": self.week, "month": self.month}

    def series(self, which: str = "median") -> dict[str, TimeSeries]:
        return {key: quantile_series(pairs, which) for key, pairs in self.by_granularity().items()}


def counter_to_series(counter: CounterMap | Mapping[str, float]) -> TimeSeries:
    """Chronological series from a period-keyed counter (keys sort chronologically)."""
    labels = sorted(counter.keys())
    return TimeSeries(labels=labels, values=[float(counter.get(label, 0)) for label in labels])


def quantile_series(
    pairs: Mapping[str, QuantilePair],
    which: str = "median",
) -> TimeSeries:
    labels: list[str] = []
    values: list[float] = []
    for label in sorted(pairs):
        estimator = getattr(pairs[label], which)
        value = estimator.value()
        if value is None:
            continue
        labels.append(label)
        values.append(float(value))
    return TimeSeries(labels=labels, values=values)


def union_sorted(*maps: Iterable[str]) -> list[str]:
    keys: set[str] = set()
    for mapping in maps:
        keys.update(mapping)
    return sorted(keys)


def align_series(
    labels: list[str],
    counter: CounterMap | Mapping[str, float],
    default: float = 0.0,
) -> list[float]:
    return [float(counter.get(label, default)) for label in labels]
