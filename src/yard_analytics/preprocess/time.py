from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone
from zoneinfo import ZoneInfo

import pandas as pd

UTC = dt_timezone.utc

# (pattern, group order) for the export formats seen most often; parsed without pandas.
_FAST_FORMATS: tuple[tuple[re.Pattern[str], tuple[str, str, str]], ...] = (
    (
        re.compile(r"^(\d{4})-(\d{2})-(\d{2})[ T](\d{2}):(\d{2})(?::(\d{2}))?$"),
        ("year", "month", "day"),
    ),
    (
        re.compile(r"^(\d{2})-(\d{2})-(\d{4})[ T](\d{2}):(\d{2})(?::(\d{2}))?$"),
        ("month", "day", "year"),
    ),
    (
        re.compile(r"^(\d{2})/(\d{2})/(\d{4})[ T](\d{2}):(\d{2})(?::(\d{2}))?$"),
        ("month", "day", "year"),
    ),
)
_EPOCH_RE = re.compile(r"^\d{10,13}$")


@dataclass(frozen=True)
class PeriodKeys:
    day: str
    week: str
    month: str


def _fast_parse(text: str, zone: dt_timezone | ZoneInfo) -> datetime | None:
    for pattern, order in _FAST_FORMATS:
        match = pattern.match(text)
        if match is None:
            continue
        groups = match.groups()
        parts = dict(zip(order, (int(value) for value in groups[:3])))
        try:
            return datetime(
                parts["year"],
                parts["month"],
                parts["day"],
                int(groups[3]),
                int(groups[4]),
                int(groups[5] or 0),
                tzinfo=zone,
            )
        except ValueError:
            return None
    return None


def _pandas_parse(text: str, zone: dt_timezone | ZoneInfo) -> datetime | None:
    try:
        parsed = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if parsed is None or pd.isna(parsed):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.tz_localize(zone, nonexistent="shift_forward", ambiguous=False)
    return parsed.to_pydatetime()


def _to_utc(parsed: datetime, timezone: str) -> datetime | None:
    """UTC view of ``parsed``; ``None`` when it has no representation in ``timezone`` or UTC."""
    try:
        parsed.astimezone(ZoneInfo(timezone))
        return parsed.astimezone(UTC)
    except (OverflowError, ValueError):
        return None


def parse_timestamp(
    raw: object,
    timezone: str,
    *,
    assume_utc: bool = True,
    treat_as_local: bool = False,
    on_fail: Callable[[str], None] | None = None,
) -> datetime | None:
    """Parse a raw field into an aware UTC datetime.

    Naive values are interpreted in UTC unless ``treat_as_local`` is set (or
    ``assume_utc`` is off), in which case they are read as wall-clock time in
    ``timezone``. Blank input returns ``None`` silently; unparseable input, and
    dates that fall outside the representable range once shifted into
    ``timezone``, return ``None`` and report through ``on_fail``.
    """
    if raw is None or raw is pd.NaT:
        return None
    if isinstance(raw, pd.Timestamp):
        raw = raw.to_pydatetime()

    zone: dt_timezone | ZoneInfo = (
        ZoneInfo(timezone) if treat_as_local or not assume_utc else UTC
    )
    if isinstance(raw, datetime):
        text = raw.isoformat()
        parsed: datetime | None = raw if raw.tzinfo is not None else raw.replace(tzinfo=zone)
    else:
        text = str(raw).strip()
        if not text or text.lower() in {"nan", "nat", "none", "null"}:
            return None
        parsed = _fast_parse(text, zone)
        if parsed is None and _EPOCH_RE.match(text):
            value = int(text)
            seconds = value / 1000.0 if len(text) == 13 else float(value)
            try:
                parsed = datetime.fromtimestamp(seconds, tz=UTC)
            except (OverflowError, OSError, ValueError):
                parsed = None
        if parsed is None:
            parsed = _pandas_parse(text, zone)

    if parsed is None:
        if on_fail is not None:
            on_fail(f'Timestamp parse failed: "{text}"')
        return None
    converted = _to_utc(parsed, timezone)
    if converted is None and on_fail is not None:
        on_fail(f'Timestamp out of range for {timezone}: "{text}"')
    return converted


def day_key(dt: datetime, timezone: str) -> str:
    return dt.astimezone(ZoneInfo(timezone)).strftime("%Y-%m-%d")


def week_key(dt: datetime, timezone: str) -> str:
    iso = dt.astimezone(ZoneInfo(timezone)).isocalendar()
    return f"{iso[0]}-W{iso[1]:02d}"


def month_key(dt: datetime, timezone: str) -> str:
    return dt.astimezone(ZoneInfo(timezone)).strftime("%Y-%m")


def period_keys(dt: datetime, timezone: str) -> PeriodKeys:
    return PeriodKeys(
        day=day_key(dt, timezone),
        week=week_key(dt, timezone),
        month=month_key(dt, timezone),
    )


def minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60.0
