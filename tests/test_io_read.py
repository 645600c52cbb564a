from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from yard_analytics.config import InputConfig
from yard_analytics.io.read import iter_rows, normalize_column_name
from yard_analytics.io.write import (
    chart_frame,
    chart_table_path,
    read_summary,
    write_chart_tables,
    write_report,
)


def test_iter_rows_streams_chunks_and_scrubs_phone_columns(tmp_path: Path) -> None:
    csv_path = tmp_path / "inventory.csv"
    csv_path.write_text(
        "\ufeffMove Type Name,Driver Cell Phone,SCAC,Updated At\n"
        "Outbound,555-0100,ABCD,2024-05-01 08:00\n"
        "Inbound,,XXXX,\n"
        "Outbound,,0042,2024-05-02 09:00\n",
        encoding="utf-8",
    )

    rows = list(iter_rows(csv_path, InputConfig(chunk_size=2)))

    assert len(rows) == 3
    first, first_flags = rows[0]
    assert first == {"move_type_name": "Outbound", "scac": "ABCD", "updated_at": "2024-05-01 08:00"}
    assert first_flags.driver_contact_present
    assert first_flags.is_csv_source
    second, second_flags = rows[1]
    assert second["updated_at"] == ""
    assert not second_flags.any_phone_field_present
    # Values stay text, so leading zeros survive.
    assert rows[2][0]["scac"] == "0042"


def test_iter_rows_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="CSV file not found"):
        list(iter_rows(tmp_path / "missing.csv"))


def test_normalize_column_name() -> None:
    assert normalize_column_name(" Arrival Time ") == "arrival_time"
    assert normalize_column_name("Dwell Start (UTC)") == "dwell_start_utc"


REPORT = {
    "report": "trailer_history",
    "metrics": {"b": 2, "a": 1},
    "charts": [
        {"id": "error_events_daily", "table": {"columns": ["day", "count"], "rows": [{"day": "2024-01-01", "count": 3}]}},
        {"id": "top_carriers_lost_events", "table": {"columns": ["carrier", "count"], "rows": []}},
    ],
}


def test_write_report_writes_summary_and_one_table_per_chart(tmp_path: Path) -> None:
    summary_path, table_paths = write_report(REPORT, tmp_path / "summary", tmp_path / "tables")

    assert summary_path == tmp_path / "summary" / "trailer_history.json"
    assert read_summary(summary_path)["metrics"] == {"a": 1, "b": 2}
    assert [path.name for path in table_paths] == [
        "trailer_history__error_events_daily.csv",
        "trailer_history__top_carriers_lost_events.csv",
    ]
    daily = pd.read_csv(table_paths[0])
    assert list(daily.columns) == ["day", "count"]
    assert daily.loc[0, "count"] == 3
    # Empty charts still get their header row.
    assert table_paths[1].read_text(encoding="utf-8").strip() == "carrier,count"


def test_write_chart_tables_parquet_and_unknown_format(tmp_path: Path) -> None:
    (path, _) = write_chart_tables(REPORT, tmp_path, fmt="parquet")

    assert path == chart_table_path(tmp_path, "trailer_history", "error_events_daily", "parquet")
    assert pd.read_parquet(path)["count"].tolist() == [3]
    assert write_chart_tables({"report": "trailer_history"}, tmp_path / "none") == []
    assert not (tmp_path / "none").exists()

    with pytest.raises(ValueError, match="Unsupported table format"):
        write_chart_tables(REPORT, tmp_path, fmt="xlsx")


def test_chart_frame_keeps_declared_columns() -> None:
    frame = chart_frame({"table": {"columns": ["day", "moves"], "rows": [{"moves": 5, "day": "2024-05-01"}]}})

    assert list(frame.columns) == ["day", "moves"]
    assert list(chart_frame({"table": {"columns": ["day"], "rows": []}}).columns) == ["day"]


def test_read_summary_rejects_non_report_json(tmp_path: Path) -> None:
    path = tmp_path / "list.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ValueError, match="Not a report summary"):
        read_summary(path)
