"""Tests for the transform layer that maps records to warehouse rows."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from ingest import transform
from ingest.const import TsoName
from ingest.parse import KWH_FIELDS
from ingest.validate import AreaRow


def test_to_row_keys_and_jst_strings(area_record):
    row = transform.to_row(TsoName.TEPCO, AreaRow(**area_record))

    assert row["data_id"] == "tepco_2024-06-03_00:00"
    assert row["tso"] == "tepco"
    assert row["date_jst"] == "2024-06-03"
    assert row["time_from_jst"] == "00:00"
    assert row["time_to_jst"] == "00:30"
    assert set(KWH_FIELDS) <= set(row)


def test_to_row_quantises_decimals_and_keeps_none(area_record):
    area_record["other_kwh"] = None
    area_record["hydro_kwh"] = 908000.12345

    row = transform.to_row("tepco", AreaRow(**area_record))

    assert row["hydro_kwh"] == Decimal("908000.123")
    assert row["pumped_storage_kwh"] == Decimal("-3500.000")
    assert row["other_kwh"] is None


def test_build_area_file_covers_all_records(area_record):
    first = AreaRow(**area_record)
    second = AreaRow(
        **{
            **area_record,
            "datetime_from": area_record["datetime_to"],
            "datetime_to": area_record["datetime_to"] + timedelta(minutes=30),
        }
    )

    f = transform.build_area_file("tepco", "https://example.jp/a.csv", [second, first])

    assert f.file_key == "tepco_2024-06-03"
    assert f.from_datetime == first.datetime_from
    assert f.to_datetime == second.datetime_to
    assert [r["time_from_jst"] for r in f.rows] == ["00:30", "00:00"]


def test_build_area_file_rejects_empty():
    with pytest.raises(ValueError):
        transform.build_area_file("tepco", "https://example.jp/a.csv", [])
