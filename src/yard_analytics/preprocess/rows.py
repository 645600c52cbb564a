from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

PII_KEY_RE = re.compile(r"(cell|phone)", re.IGNORECASE)
_DRIVER_KEY_RE = re.compile(r"driver", re.IGNORECASE)

_TRUE_STRINGS = frozenset({"1", "true", "yes", "y"})
_FALSE_STRINGS = frozenset({"0", "false", "no", "n"})


@dataclass(frozen=True)
class RowFlags:
    """Presence-only hints delivered alongside each normalized row."""

    driver_contact_present: bool = False
    any_phone_field_present: bool = False
    has_timezone_arrival_time: bool = False
    is_csv_source: bool = False


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value.strip() == ""


def safe_str(value: Any) -> str:
    return "" if is_blank(value) else str(value).strip()


def normalize_boolish(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and not is_blank(value):
        if value == 1:
            return True
        if value == 0:
            return False
        return None
    text = safe_str(value).lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    return None


def maybe_number(value: Any) -> float | None:
    if is_blank(value) or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def first_present(row: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        if key in row and not is_blank(row[key]):
            return row[key]
    return None


def scrub_row(
    raw_row: Mapping[str, Any],
    *,
    is_csv_source: bool = False,
) -> tuple[dict[str, Any], RowFlags]:
    """Drop phone/cell fields and keep only whether they were populated."""
    clean: dict[str, Any] = {}
    any_phone = False
    driver_contact = False
    for key, value in raw_row.items():
        if PII_KEY_RE.search(str(key)):
            present = not is_blank(value)
            any_phone = any_phone or present
            if _DRIVER_KEY_RE.search(str(key)):
                driver_contact = driver_contact or present
            continue
        clean[key] = value

    flags = RowFlags(
        driver_contact_present=driver_contact,
        any_phone_field_present=any_phone,
        has_timezone_arrival_time=not is_blank(clean.get("timezone_arrival_time")),
        is_csv_source=is_csv_source,
    )
    return clean, flags
