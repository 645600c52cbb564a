from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class OutputPaths:
    root: Path
    summary: Path
    tables: Path
    facilities: Path


def build_output_paths(out_dir: Path) -> OutputPaths:
    paths = OutputPaths(
        root=out_dir,
        summary=out_dir / "summary",
        tables=out_dir / "tables",
        facilities=out_dir / "facilities",
    )
    for path in (paths.root, paths.summary, paths.tables, paths.facilities):
        path.mkdir(parents=True, exist_ok=True)
    return paths
