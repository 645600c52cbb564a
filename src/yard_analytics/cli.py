from __future__ import annotations

from datetime import datetime
from pathlib import Path

import typer
import yaml

from yard_analytics.analyzers.registry import ReportType, parse_report_type
from yard_analytics.config import DEFAULT_CONFIG_PATH, AppConfig, TimeConfig, load_config
from yard_analytics.io.write import read_summary
from yard_analytics.logging import configure_logging
from yard_analytics.pipeline.run import run_report
from yard_analytics.preprocess.time import UTC

app = typer.Typer(no_args_is_help=True, add_completion=False)

_LEVEL_MARKERS = {"green": "+", "yellow": "!", "red": "x"}


def _load_app_config(config_path: Path) -> AppConfig:
    try:
        return load_config(config_path)
    except (ValueError, yaml.YAMLError) as exc:
        raise typer.BadParameter(f"Invalid config {config_path}: {exc}") from exc


def _resolve_report_type(report: str) -> ReportType:
    try:
        return parse_report_type(report)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.command()
def analyze(
    csv: Path = typer.Option(..., exists=True, readable=True, resolve_path=True),
    report: str = typer.Option(
        ...,
        help="Report type: " + ", ".join(report_type.value for report_type in ReportType),
    ),
    out: Path = typer.Option(Path("out"), resolve_path=True),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
    timezone: str | None = typer.Option(None, help="IANA timezone override for period keys."),
    as_of: datetime | None = typer.Option(
        None,
        formats=["%Y-%m-%dT%H:%M:%S", "%Y-%m-%d"],
        help="Reference time (UTC) for recency buckets. Defaults to now.",
    ),
    log_level: str = typer.Option("INFO"),
) -> None:
    """Stream one exported report CSV into JSON summaries and chart tables."""
    configure_logging(log_level)
    report_type = _resolve_report_type(report)
    cfg = _load_app_config(config)
    if timezone:
        try:
            time_config = TimeConfig(timezone=timezone, assume_utc=cfg.time.assume_utc)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        cfg = cfg.model_copy(update={"time": time_config})

    now = None
    if as_of is not None:
        now = as_of.replace(tzinfo=UTC) if as_of.tzinfo is None else as_of

    result = run_report(csv_path=csv, report_type=report_type, out_dir=out, config=cfg, now=now)
    bundle = result.bundle
    typer.echo(f"Analysis complete. Report: {bundle.report_type.value}")
    typer.echo(f"- rows: {bundle.rows}")
    typer.echo(f"- summary: {result.summary_path}")
    typer.echo(f"- tables: {len(result.table_paths)}")
    quality = bundle.report["data_quality"]
    typer.echo(f"- data_quality: {quality['score']} ({quality['label']})")
    if bundle.facilities:
        typer.echo(f"- facilities: {', '.join(sorted(bundle.facilities))}")
    if bundle.warnings:
        typer.echo(f"- warnings: {len(bundle.warnings)}")


@app.command()
def findings(
    summary: Path = typer.Option(..., exists=True, readable=True, resolve_path=True),
) -> None:
    """Print findings and recommendations from a written report summary."""
    try:
        data = read_summary(summary)
    except ValueError as exc:
        raise typer.BadParameter(f"Not a JSON summary: {summary}") from exc

    typer.echo(f"{data.get('report', 'report')}:")
    for finding in data.get("findings") or []:
        marker = _LEVEL_MARKERS.get(finding.get("level"), "-")
        typer.echo(f"[{marker}] {finding.get('text')} ({finding.get('confidence')})")
    recommendations = data.get("recommendations") or []
    if recommendations:
        typer.echo("Recommendations:")
        for line in recommendations:
            typer.echo(f"- {line}")


if __name__ == "__main__":
    app()
