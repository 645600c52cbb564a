from __future__ import annotations

import re
from collections.abc import Iterator

MAX_FACILITY_NAME_LENGTH = 100
_UNSAFE_CHARS_RE = re.compile(r"[<>&\"'`]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_facility_name(raw: object) -> str | None:
    """Trim, strip HTML-unsafe characters and cap length; blank names become ``None``."""
    if raw is None:
        return None
    text = _UNSAFE_CHARS_RE.sub("", str(raw))
    text = _WHITESPACE_RE.sub(" ", text).strip()
    if not text:
        return None
    return text[:MAX_FACILITY_NAME_LENGTH].strip()


class FacilityRegistry:
    """Run-scoped set of facility names seen by any analyzer in the run."""

    def __init__(self) -> None:
        self._names: dict[str, None] = {}

    def register(self, raw: object) -> str | None:
        name = normalize_facility_name(raw)
        if name is not None:
            self._names.setdefault(name, None)
        return name

    @property
    def names(self) -> list[str]:
        return sorted(self._names)

    @property
    def is_multi_facility(self) -> bool:
        return len(self._names) >= 2

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __iter__(self) -> Iterator[str]:
        return iter(self.names)

    def __len__(self) -> int:
        return len(self._names)
