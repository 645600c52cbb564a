from __future__ import annotations

import os
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_TIMEZONE = "America/Los_Angeles"
DEFAULT_LABOR_RATE_PER_HOUR = 42.0


class TimeConfig(BaseModel):
    timezone: str = DEFAULT_TIMEZONE
    assume_utc: bool = True

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown IANA timezone: {value!r}") from exc
        return value


class GranularityConfig(BaseModel):
    max_daily_points: int = Field(default=60, ge=1)
    max_weekly_points: int = Field(default=26, ge=1)
    min_points: int = Field(default=1, ge=1)


class OutlierConfig(BaseModel):
    iqr_multiplier: float = Field(default=1.5, gt=0.0)
    # 24h in minutes; catches pathological dwell values that thin samples hide from IQR.
    absolute_ceiling: float = Field(default=1440.0, gt=0.0)
    min_points: int = Field(default=4, ge=4)


class TrendConfig(BaseModel):
    stable_change_pct: float = Field(default=5.0, ge=0.0)
    consistent_r_squared: float = Field(default=0.7, ge=0.0, le=1.0)
    moderate_r_squared: float = Field(default=0.4, ge=0.0, le=1.0)
    min_regression_points: int = Field(default=3, ge=2)
    min_comparison_points: int = Field(default=4, ge=2)
    min_peak_points: int = Field(default=4, ge=2)
    peak_top_n: int = Field(default=10, ge=1)
    weekend_pattern_share: float = Field(default=0.6, gt=0.0, le=1.0)
    partial_period_ratio: float = Field(default=0.5, gt=0.0, lt=1.0)


class AnalysisConfig(BaseModel):
    granularity: GranularityConfig = Field(default_factory=GranularityConfig)
    outliers: OutlierConfig = Field(default_factory=OutlierConfig)
    trends: TrendConfig = Field(default_factory=TrendConfig)
    leaderboard_size: int = Field(default=10, ge=1)
    compliance_max_minutes: float = Field(default=2.0, ge=0.0)


class SketchConfig(BaseModel):
    distinct_bits: int = Field(default=2048, ge=8)


class AssumptionsConfig(BaseModel):
    detention_cost_per_hour: float | None = Field(default=None, ge=0.0)
    labor_fully_loaded_rate_per_hour: float | None = Field(default=None, ge=0.0)
    target_moves_per_driver_per_day: float | None = Field(default=None, gt=0.0)
    target_turns_per_door_per_day: float | None = Field(default=None, gt=0.0)
    cost_per_dock_door_hour: float | None = Field(default=None, ge=0.0)


class InputConfig(BaseModel):
    chunk_size: int = Field(default=50_000, ge=1)
    encoding: str = "utf-8-sig"
    is_csv_source: bool = True


class OutputsConfig(BaseModel):
    tables_format: Literal["csv", "parquet"] = "csv"
    write_facility_reports: bool = True
    partial_period_mode: Literal["include", "trim", "highlight"] = "include"


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    time: TimeConfig = Field(default_factory=TimeConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    sketches: SketchConfig = Field(default_factory=SketchConfig)
    assumptions: AssumptionsConfig = Field(default_factory=AssumptionsConfig)
    input: InputConfig = Field(default_factory=InputConfig)
    outputs: OutputsConfig = Field(default_factory=OutputsConfig)


DEFAULT_CONFIG_PATH = Path("configs/default.yaml")


def load_config(path: Path) -> AppConfig:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    env_timezone = os.getenv("YARD_ANALYTICS_TIMEZONE")
    if env_timezone:
        time_section = dict(data.get("time") or {})
        time_section["timezone"] = env_timezone
        data["time"] = time_section

    return AppConfig.model_validate(data)
