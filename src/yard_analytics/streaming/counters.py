from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

BLANK_KEY = "(blank)"


@dataclass(frozen=True)
class CountEntry:
    key: str
    value: int


class CounterMap:
    """Exact frequency table over string keys."""

    def __init__(self) -> None:
        self._counts: dict[str, int] = {}

    def inc(self, key: Any, by: int = 1) -> None:
        normalized = "" if key is None else str(key).strip()
        normalized = normalized or BLANK_KEY
        self._counts[normalized] = self._counts.get(normalized, 0) + by

    def get(self, key: str, default: int = 0) -> int:
        return self._counts.get(key, default)

    def top(self, n: int = 10) -> list[CountEntry]:
        ordered = sorted(self._counts.items(), key=lambda item: -item[1])
        return [CountEntry(key=key, value=value) for key, value in ordered[: max(0, n)]]

    def to_sorted_dict(self) -> dict[str, int]:
        return {entry.key: entry.value for entry in self.top(len(self._counts))}

    def total(self) -> int:
        return sum(self._counts.values())

    def items(self) -> list[tuple[str, int]]:
        return list(self._counts.items())

    def keys(self) -> list[str]:
        return list(self._counts.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._counts

    def __iter__(self) -> Iterator[str]:
        return iter(self._counts)

    def __len__(self) -> int:
        return len(self._counts)
