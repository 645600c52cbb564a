from __future__ import annotations

import re
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pandas as pd

from yard_analytics.config import InputConfig
from yard_analytics.preprocess.rows import RowFlags, scrub_row

_NON_WORD_RE = re.compile(r"[^0-9a-z]+")


def normalize_column_name(name: object) -> str:
    """``"Arrival Time "`` -> ``"arrival_time"``."""
    return _NON_WORD_RE.sub("_", str(name).strip().lower()).strip("_")


def iter_csv_chunks(csv_path: Path, config: InputConfig | None = None) -> Iterator[pd.DataFrame]:
    cfg = config or InputConfig()
    if not csv_path.exists():
        raise ValueError(f"CSV file not found: {csv_path}")
    # Everything stays text; analyzers parse timestamps and numbers themselves.
    reader = pd.read_csv(
        csv_path,
        encoding=cfg.encoding,
        dtype=str,
        keep_default_na=False,
        chunksize=cfg.chunk_size,
    )
    with reader:
        for chunk in reader:
            chunk.columns = [normalize_column_name(column) for column in chunk.columns]
            yield chunk


def iter_rows(
    csv_path: Path,
    config: InputConfig | None = None,
) -> Iterator[tuple[dict[str, Any], RowFlags]]:
    """Yield scrubbed rows with their presence flags, one chunk in memory at a time."""
    cfg = config or InputConfig()
    for chunk in iter_csv_chunks(csv_path, cfg):
        for record in chunk.to_dict(orient="records"):
            yield scrub_row(record, is_csv_source=cfg.is_csv_source)
