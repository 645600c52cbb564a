from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pandas as pd

TABLE_FORMATS = ("csv", "parquet")


def chart_frame(chart: Mapping[str, Any]) -> pd.DataFrame:
    """Tabular view of a serialized chart, columns in declared order."""
    table = chart.get("table") or {}
    columns = list(table.get("columns") or [])
    return pd.DataFrame(list(table.get("rows") or []), columns=columns or None)


def chart_table_path(tables_dir: Path, report_name: str, chart_id: str, fmt: str) -> Path:
    return tables_dir / f"{report_name}__{chart_id}.{fmt}"


def write_chart_tables(report: Mapping[str, Any], tables_dir: Path, fmt: str = "csv") -> list[Path]:
    """Write one table per chart in ``report``; charts without rows still get a header-only file."""
    if fmt not in TABLE_FORMATS:
        raise ValueError(f"Unsupported table format: {fmt}")
    charts = report.get("charts") or []
    if not charts:
        return []

    tables_dir.mkdir(parents=True, exist_ok=True)
    paths: list[Path] = []
    for chart in charts:
        path = chart_table_path(tables_dir, report["report"], chart["id"], fmt)
        frame = chart_frame(chart)
        if fmt == "parquet":
            frame.to_parquet(path, index=False)
        else:
            frame.to_csv(path, index=False)
        paths.append(path)
    return paths


def write_summary(report: Mapping[str, Any], summary_dir: Path) -> Path:
    """Write ``report`` as ``<summary_dir>/<report name>.json`` with stable key order."""
    summary_dir.mkdir(parents=True, exist_ok=True)
    path = summary_dir / f"{report['report']}.json"
    path.write_text(json.dumps(report, indent=2, sort_keys=True, default=str), encoding="utf-8")
    return path


def write_report(
    report: Mapping[str, Any], summary_dir: Path, tables_dir: Path, fmt: str = "csv"
) -> tuple[Path, list[Path]]:
    return write_summary(report, summary_dir), write_chart_tables(report, tables_dir, fmt)


def read_summary(path: Path) -> dict[str, Any]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict) or "report" not in data:
        raise ValueError(f"Not a report summary: {path}")
    return data
