from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo

from yard_analytics.analysis.series import TimeSeries
from yard_analytics.config import (
    DEFAULT_TIMEZONE,
    AnalysisConfig,
    AppConfig,
    AssumptionsConfig,
    SketchConfig,
)
from yard_analytics.facilities import FacilityRegistry, normalize_facility_name
from yard_analytics.findings import Finding, generate_tooltip_text, score_to_badge
from yard_analytics.preprocess.rows import RowFlags, first_present, is_blank
from yard_analytics.preprocess.time import UTC, PeriodKeys, parse_timestamp, period_keys

LOGGER = logging.getLogger(__name__)

FACILITY_FIELDS = ("facility", "facility_name", "facility_code", "fac_code", "site")


class ReportType(str, Enum):
    CURRENT_INVENTORY = "current_inventory"
    DETENTION_HISTORY = "detention_history"
    DOCKDOOR_HISTORY = "dockdoor_history"
    DRIVER_HISTORY = "driver_history"
    TRAILER_HISTORY = "trailer_history"


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class AnalyzerContext:
    """Run-wide settings shared by every analyzer and facility bucket in a run.

    ``now`` is captured once per run so recency buckets do not drift between
    ingestion and repeated ``finalize`` calls.
    """

    timezone: str = DEFAULT_TIMEZONE
    assume_utc: bool = True
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    sketches: SketchConfig = field(default_factory=SketchConfig)
    assumptions: AssumptionsConfig = field(default_factory=AssumptionsConfig)
    now: datetime = field(default_factory=_utc_now)
    on_warning: Callable[[str], None] | None = None

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        now: datetime | None = None,
        on_warning: Callable[[str], None] | None = None,
    ) -> AnalyzerContext:
        return cls(
            timezone=config.time.timezone,
            assume_utc=config.time.assume_utc,
            analysis=config.analysis,
            sketches=config.sketches,
            assumptions=config.assumptions,
            now=now or _utc_now(),
            on_warning=on_warning,
        )


@dataclass(frozen=True)
class Chart:
    id: str
    title: str
    kind: str
    description: str
    labels: list[str]
    datasets: list[tuple[str, list[Any]]]
    columns: list[str]
    rows: list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "kind": self.kind,
            "description": self.description,
            "data": {
                "labels": list(self.labels),
                "datasets": [{"label": label, "data": list(data)} for label, data in self.datasets],
            },
            "table": {"columns": list(self.columns), "rows": [dict(row) for row in self.rows]},
        }


def series_chart(
    chart_id: str,
    title: str,
    description: str,
    label_column: str,
    labels: list[str],
    datasets: list[tuple[str, str, list[Any]]],
    kind: str = "line",
) -> Chart:
    """Build a chart whose table mirrors its datasets; ``datasets`` is (label, column, values)."""
    columns = [label_column, *(column for _, column, _ in datasets)]
    rows = [
        {label_column: label, **{column: values[idx] for _, column, values in datasets}}
        for idx, label in enumerate(labels)
    ]
    return Chart(
        id=chart_id,
        title=title,
        kind=kind,
        description=description,
        labels=labels,
        datasets=[(label, values) for label, _, values in datasets],
        columns=columns,
        rows=rows,
    )


def counts_chart(
    chart_id: str,
    title: str,
    description: str,
    key_column: str,
    counts: Mapping[str, int],
    kind: str = "bar",
    dataset_label: str = "Count",
) -> Chart:
    labels = list(counts)
    values = [counts[label] for label in labels]
    return series_chart(
        chart_id, title, description, key_column, labels, [(dataset_label, "count", values)], kind
    )


@dataclass(frozen=True)
class Report:
    report: str
    meta: dict[str, Any]
    inferred_date_range: dict[str, Any]
    data_quality: dict[str, Any]
    metrics: dict[str, Any]
    charts: list[Chart] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    roi: dict[str, Any] | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "report": self.report,
            "meta": dict(self.meta),
            "inferred_date_range": dict(self.inferred_date_range),
            "data_quality": dict(self.data_quality),
            "metrics": dict(self.metrics),
            "charts": [chart.to_dict() for chart in self.charts],
            "findings": [finding.to_dict() for finding in self.findings],
            "recommendations": list(self.recommendations),
            "roi": self.roi,
            "extras": dict(self.extras),
        }


class BaseAnalyzer:
    """Shared ingestion bookkeeping for the per-report analyzers.

    Subclasses implement ``_ingest_row`` and ``_build_report``. Rows carrying a
    facility field are additionally fed to a lazily created child analyzer of
    the same type, one per normalized facility name.
    """

    report_type: ReportType

    def __init__(
        self,
        context: AnalyzerContext,
        registry: FacilityRegistry,
        *,
        facility: str | None = None,
    ) -> None:
        self.context = context
        self.registry = registry
        self.facility = facility
        self.total_rows = 0
        self.parse_ok = 0
        self.parse_fails = 0
        self.earliest: datetime | None = None
        self.latest: datetime | None = None
        self.warnings: list[str] = []
        self._warned: set[str] = set()
        self._facilities: dict[str, BaseAnalyzer] = {}

    @property
    def timezone(self) -> str:
        return self.context.timezone

    @property
    def facility_names(self) -> list[str]:
        return sorted(self._facilities)

    def ingest(self, row: Mapping[str, Any], flags: RowFlags | None = None) -> None:
        flags = flags or RowFlags()
        self.total_rows += 1
        try:
            self._ingest_row(row, flags)
        except (TypeError, ValueError, OverflowError) as exc:
            self.parse_fails += 1
            self.warn(f"Skipped malformed row: {exc}", key=f"row:{type(exc).__name__}")

        if self.facility is None:
            name = self.registry.register(first_present(row, FACILITY_FIELDS))
            if name is not None:
                self._bucket(name).ingest(row, flags)

    def _bucket(self, name: str) -> BaseAnalyzer:
        bucket = self._facilities.get(name)
        if bucket is None:
            bucket = type(self)(self.context, self.registry, facility=name)
            self._facilities[name] = bucket
        return bucket

    def _ingest_row(self, row: Mapping[str, Any], flags: RowFlags) -> None:
        raise NotImplementedError

    def finalize(self, meta: Mapping[str, Any] | None = None) -> Report:
        return self._build_report(self._report_meta(meta))

    def finalize_facility(self, name: str, meta: Mapping[str, Any] | None = None) -> Report | None:
        normalized = normalize_facility_name(name)
        bucket = self._facilities.get(normalized) if normalized else None
        if bucket is None:
            return None
        return bucket.finalize(meta)

    def _build_report(self, meta: dict[str, Any]) -> Report:
        raise NotImplementedError

    def _report_meta(self, meta: Mapping[str, Any] | None) -> dict[str, Any]:
        out = dict(meta or {})
        out.setdefault("timezone", self.timezone)
        out["facility"] = self.facility
        out["multi_facility"] = self.registry.is_multi_facility
        if self.facility is None:
            out["facilities"] = self.facility_names
        return out

    def warn(self, message: str, key: str | None = None) -> None:
        """Report a recoverable anomaly once per ``key`` (defaults to the message)."""
        dedupe_key = key or message
        if dedupe_key in self._warned:
            return
        self._warned.add(dedupe_key)
        self.warnings.append(message)
        if self.context.on_warning is not None:
            self.context.on_warning(message)
        else:
            LOGGER.warning("%s: %s", self.report_type.value, message)

    def track_date(self, dt: datetime) -> None:
        if self.earliest is None or dt < self.earliest:
            self.earliest = dt
        if self.latest is None or dt > self.latest:
            self.latest = dt

    def parse_time(
        self,
        raw: Any,
        field_name: str,
        *,
        treat_as_local: bool = False,
        track: bool = True,
    ) -> datetime | None:
        """Parse one timestamp field, counting the outcome; blank input is not a failure."""
        if is_blank(raw):
            return None

        def _failed(message: str) -> None:
            self.parse_fails += 1
            self.warn(f"{field_name}: {message}", key=f"parse:{field_name}")

        dt = parse_timestamp(
            raw,
            self.timezone,
            assume_utc=self.context.assume_utc,
            treat_as_local=treat_as_local,
            on_fail=_failed,
        )
        if dt is not None:
            self.parse_ok += 1
            if track:
                self.track_date(dt)
        return dt

    def keys(self, dt: datetime) -> PeriodKeys:
        return period_keys(dt, self.timezone)

    def inferred_date_range(self) -> dict[str, Any]:
        zone = ZoneInfo(self.timezone)
        return {
            "start_date": self.earliest.astimezone(zone).date().isoformat() if self.earliest else None,
            "end_date": self.latest.astimezone(zone).date().isoformat() if self.latest else None,
            "is_inferred": True,
        }

    def base_quality_score(self) -> int:
        total = self.parse_ok + self.parse_fails
        return round(100 * self.parse_ok / total) if total else 100

    def data_quality(
        self,
        score: float,
        findings: list[dict[str, str]],
        tooltip_factors: Mapping[str, Any] | None = None,
        **coverage: Any,
    ) -> dict[str, Any]:
        score = int(round(score))
        label, color = score_to_badge(score)
        factors = {
            "score": score,
            "parse_ok": self.parse_ok,
            "parse_fails": self.parse_fails,
            **(tooltip_factors or {}),
        }
        return {
            "score": score,
            "label": label,
            "color": color,
            "parse_ok": self.parse_ok,
            "parse_fails": self.parse_fails,
            "total_rows": self.total_rows,
            "tooltip_text": generate_tooltip_text(self.report_type.value, factors),
            "data_quality_findings": findings,
            **coverage,
        }

    def days_in_range(self) -> int:
        if self.earliest is None or self.latest is None:
            return 0
        zone = ZoneInfo(self.timezone)
        start = self.earliest.astimezone(zone).date()
        end = self.latest.astimezone(zone).date()
        return (end - start).days + 1


def pct1(part: float, whole: float) -> float:
    """Percentage rounded to one decimal; 0 when ``whole`` is 0."""
    return round(1000 * part / whole) / 10 if whole else 0.0


def series_payload(series: TimeSeries) -> dict[str, list[Any]]:
    return {"labels": list(series.labels), "values": list(series.values)}
