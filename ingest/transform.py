"""
ingest/transform.py

Mapping layer from validated records to the warehouse schema.

Responsibilities
----------------
- Build natural keys (`data_id`, `file_key`) from the operator and the JST
  date/time of a block.
- Provide `to_row` for turning an `AreaRow` into a warehouse-ready dict
  with JST display strings and exact decimal kWh values.
- Bundle the rows of one source file into an `AreaDataFile` together with
  its covered time range.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from .const import DECIMAL_PLACES, JST, TsoName
from .parse import KWH_FIELDS
from .validate import AreaRow

KWH_QUANTUM = Decimal(1).scaleb(-DECIMAL_PLACES)


def to_decimal(value: float | None) -> Decimal | None:
    """Quantise a kWh float to a 3-dp Decimal, keeping None as None."""
    if value is None:
        return None
    return Decimal(repr(value)).quantize(KWH_QUANTUM)


def jst_date(dt: datetime) -> str:
    """JST calendar date of `dt` as ``YYYY-MM-DD``."""
    return dt.astimezone(JST).strftime("%Y-%m-%d")


def jst_time(dt: datetime) -> str:
    """JST wall-clock time of `dt` as ``HH:MM``."""
    return dt.astimezone(JST).strftime("%H:%M")


def make_data_id(prefix: str, datetime_from: datetime) -> str:
    """Natural key of a block, e.g. ``tepco_2024-06-03_00:00``."""
    return f"{prefix}_{jst_date(datetime_from)}_{jst_time(datetime_from)}"


def to_row(tso: TsoName, record: AreaRow) -> dict:
    """Return the warehouse row for one validated record.

    Args:
        tso: Operator the record belongs to.
        record: Validated record.

    Returns:
        dict: Keys match ``area_data_processed`` columns (except
        ``last_updated``, which the database sets).
    """
    tso = TsoName(tso)
    out = {
        "data_id": make_data_id(tso.value, record.datetime_from),
        "tso": tso.value,
        "date_jst": jst_date(record.datetime_from),
        "time_from_jst": jst_time(record.datetime_from),
        "time_to_jst": jst_time(record.datetime_to),
        "datetime_from": record.datetime_from,
        "datetime_to": record.datetime_to,
    }
    for name in KWH_FIELDS:
        out[name] = to_decimal(getattr(record, name))
    return out


@dataclass
class AreaDataFile:
    """All warehouse rows parsed from one source file."""

    tso: TsoName
    url: str
    from_datetime: datetime
    to_datetime: datetime
    rows: list[dict] = field(default_factory=list)

    @property
    def file_key(self) -> str:
        """``{tso}_{JST date of the first block}``."""
        return f"{TsoName(self.tso).value}_{jst_date(self.from_datetime)}"


def build_area_file(tso: TsoName, url: str, records: list[AreaRow]) -> AreaDataFile:
    """Bundle validated records from one file.

    Raises:
        ValueError: If `records` is empty; an empty file covers no range.
    """
    if not records:
        raise ValueError(f"No records parsed from {url}")
    return AreaDataFile(
        tso=TsoName(tso),
        url=url,
        from_datetime=min(r.datetime_from for r in records),
        to_datetime=max(r.datetime_to for r in records),
        rows=[to_row(tso, r) for r in records],
    )
