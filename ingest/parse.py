"""
ingest/parse.py

Row parsers turning operator file grids into canonical record dicts.

Responsibilities
----------------
- `parse_new_csv`: the 30-minute layout every operator adopted in 2024
  (values are average MW per block).
- `parse_legacy_csv`: the older 60-minute layouts (values are energy per
  block in MWh or 万kWh), driven by a per-operator `LegacyLayout`.
- Unit conversion to kWh and derivation of total generation.

Conventions
-----------
- Parsed records are plain dicts keyed by storage column names
  (``total_demand_kwh``, ``lng_kwh`` ...) plus ``datetime_from`` and
  ``datetime_to`` as timezone-aware UTC datetimes.
- Source timestamps are JST wall-clock times.
- A field a layout never reports is ``None`` for every row. A field listed
  in `LegacyLayout.zero_fields` is known to be zero for that operator.
- Placeholder cells ("", "－", "-") are zero. Text that cannot be read as a
  number becomes NaN and is rejected later by validation.

Notes
-----
- The new layout also carries a "合計" column, but it nets off storage
  charging and interconnector flows, so total generation is recomputed
  from the positive contributions instead.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import NamedTuple

from .const import JST
from .errors import MalformedRowError

logger = logging.getLogger(__name__)

PLACEHOLDERS = {"", "－", "−", "-", "―"}
_NON_NUMERIC = re.compile(r"[^-\d.]")
_HAS_DIGIT = re.compile(r"\d")

# First cell of the header row in the new layout.
NEW_FORMAT_HEADER_TOKENS = ("DATE", "年月日")

# Columns 2-18 of the new layout; column 19 (合計) is ignored.
NEW_FORMAT_FIELDS = (
    "total_demand_kwh",  # エリア需要
    "nuclear_kwh",  # 原子力
    "lng_kwh",  # 火力(LNG)
    "coal_kwh",  # 火力(石炭)
    "oil_kwh",  # 火力(石油)
    "other_fossil_kwh",  # 火力(その他)
    "hydro_kwh",  # 水力
    "geothermal_kwh",  # 地熱
    "biomass_kwh",  # バイオマス
    "solar_output_kwh",  # 太陽光発電実績
    "solar_throttling_kwh",  # 太陽光出力制御量
    "wind_output_kwh",  # 風力発電実績
    "wind_throttling_kwh",  # 風力出力制御量
    "pumped_storage_kwh",  # 揚水
    "battery_storage_kwh",  # 蓄電池
    "interconnectors_kwh",  # 連系線
    "other_kwh",  # その他
)
NEW_FORMAT_COLUMNS = 2 + len(NEW_FORMAT_FIELDS) + 1

FOSSIL_FIELDS = ("lng_kwh", "coal_kwh", "oil_kwh", "other_fossil_kwh")

# Every kWh field of a canonical record, in storage order.
KWH_FIELDS = (
    "total_demand_kwh",
    "nuclear_kwh",
    "all_fossil_kwh",
    *FOSSIL_FIELDS,
    "hydro_kwh",
    "geothermal_kwh",
    "biomass_kwh",
    "solar_output_kwh",
    "solar_throttling_kwh",
    "wind_output_kwh",
    "wind_throttling_kwh",
    "pumped_storage_kwh",
    "battery_storage_kwh",
    "interconnectors_kwh",
    "other_kwh",
    "total_generation_kwh",
)

# Fields that count towards total generation when positive. Curtailment and
# demand are not generation; all_fossil is used only without a breakdown.
GENERATION_FIELDS = (
    "nuclear_kwh",
    "hydro_kwh",
    "geothermal_kwh",
    "biomass_kwh",
    "solar_output_kwh",
    "wind_output_kwh",
    "pumped_storage_kwh",
    "battery_storage_kwh",
    "interconnectors_kwh",
    "other_kwh",
)

# Column markers that are not kWh fields.
TIMESTAMP_COLUMNS = {"date", "time", "datetime"}


class ParsedFile(NamedTuple):
    """Parsed records with the raw source row each one came from."""

    records: list[dict]
    raw: list[list[str]]


@dataclass(frozen=True)
class NewFormatConfig:
    """Per-operator quirks of the new 30-minute layout."""

    date_format: str = "%Y/%m/%d"
    # Kyuden stamps each block with its end time rather than its start.
    is_time_at_end_of_block: bool = False
    # Kyuden reports interconnector flow with the opposite sign.
    flip_interconnectors: bool = False
    interval_minutes: int = 30


@dataclass(frozen=True)
class LegacyLayout:
    """Description of one operator's pre-2024 hourly file layout.

    Attributes:
        columns: Field for each source column, in order. Use ``"date"`` and
            ``"time"`` for split timestamp columns, ``"datetime"`` for a
            combined one, a kWh field name for data, ``None`` to skip.
        unit_multiplier: Factor from the source unit to kWh (1000 for MWh,
            10000 for 万kWh).
        interval_minutes: Block length.
        datetime_format: `strptime` format of "<date> <time>" or of the
            combined datetime cell.
        header_token: When set, the header row is the first row whose first
            cell contains this token; data starts after it plus
            `header_extra_rows`.
        header_rows: Fixed number of header rows, used without a token.
        header_extra_rows: Rows of a multi-line header below the token row.
        carry_forward_date: The date is only written on the first row of
            each day.
        zero_fields: Fields this operator never reports but are known zero.
    """

    columns: tuple[str | None, ...]
    unit_multiplier: float = 1000
    interval_minutes: int = 60
    datetime_format: str = "%Y/%m/%d %H:%M"
    header_token: str | None = None
    header_rows: int = 0
    header_extra_rows: int = 0
    carry_forward_date: bool = False
    zero_fields: tuple[str, ...] = ()

    @property
    def provides_total(self) -> bool:
        return "total_generation_kwh" in self.columns


def parse_number(raw: str | None) -> float:
    """Read a numeric cell; placeholders are 0, garbage is NaN."""
    text = (raw or "").strip()
    if text in PLACEHOLDERS:
        return 0.0
    cleaned = _NON_NUMERIC.sub("", text)
    try:
        return float(cleaned)
    except ValueError:
        return math.nan


def parse_average_mw_to_kwh(raw: str | None, interval_minutes: int = 30) -> float:
    """Convert an average-MW cell over one block to kWh.

    ``kWh = MW * 1000 * (minutes / 60)``, so 1 MW over 30 minutes is 500 kWh.
    """
    return parse_number(raw) * 1000 * (interval_minutes / 60)


def parse_energy_to_kwh(raw: str | None, multiplier: float = 1000) -> float:
    """Convert an energy cell (MWh by default) to kWh."""
    return parse_number(raw) * multiplier


def total_generation(record: dict) -> float:
    """Sum the positive generation contributions of a parsed record.

    Fossil generation is taken from the LNG/coal/oil/other breakdown when
    present, otherwise from the combined figure. Exports and storage
    charging (negative values) are excluded.
    """
    if all(record.get(f) is not None for f in FOSSIL_FIELDS):
        fields: Iterable[str] = (*FOSSIL_FIELDS, *GENERATION_FIELDS)
    else:
        fields = ("all_fossil_kwh", *GENERATION_FIELDS)
    values = (record.get(f) for f in fields)
    return sum(v for v in values if v is not None and v > 0)


def clean_time(text: str) -> str:
    """Normalise a time cell to ``H:MM``.

    Handles ranges such as ``"0:00～0:30"`` (start is kept) and stray
    seconds such as ``"13:30:00"``.
    """
    text = text.strip().split("～")[0].strip()
    return text.replace(":00:00", ":00").replace(":30:00", ":30")


def parse_jst(text: str, fmt: str) -> datetime:
    """Parse a JST wall-clock timestamp and return it as an aware datetime.

    ``24:00`` is read as midnight of the following day.

    Raises:
        ValueError: If `text` does not match `fmt`.
    """
    text = " ".join(text.split())
    shift = timedelta(0)
    if text.endswith(" 24:00"):
        text = text[: -len("24:00")] + "0:00"
        shift = timedelta(days=1)
    return (datetime.strptime(text, fmt) + shift).replace(tzinfo=JST)


def _malformed(message: str, row: list[str]) -> MalformedRowError:
    logger.error("%s; raw row: %r", message, row)
    return MalformedRowError(message, raw_row=row)


def _find_header(grid: list[list[str]], matches) -> int:
    for i, row in enumerate(grid):
        if row and matches(row[0]):
            return i
    return -1


def parse_new_csv(
    grid: list[list[str]], config: NewFormatConfig | None = None
) -> ParsedFile:
    """Parse a new-layout file.

    Args:
        grid: Rows of cells as produced by `client.download_grid`.
        config: Operator quirks; defaults to the common layout.

    Returns:
        ParsedFile: Records plus their raw rows. Rows with a blank total
        demand (intervals that have not happened yet) are skipped.

    Raises:
        MalformedRowError: If the header is missing or a timestamp cannot be
            parsed.
    """
    config = config or NewFormatConfig()
    header = _find_header(grid, lambda cell: cell.strip() in NEW_FORMAT_HEADER_TOKENS)
    if header < 0:
        raise MalformedRowError("New-format header row not found")

    start = header + 1
    # Skip a blank spacer row or a second header row carrying the units.
    if start < len(grid) and (
        all(c.strip() == "" for c in grid[start]) or any("MW" in c for c in grid[start])
    ):
        start += 1

    interval = timedelta(minutes=config.interval_minutes)
    fmt = f"{config.date_format} %H:%M"
    records: list[dict] = []
    raw: list[list[str]] = []
    skipped = 0

    for row in grid[start:]:
        cells = row + [""] * (NEW_FORMAT_COLUMNS - len(row))
        if not cells[2].strip():
            skipped += 1
            continue

        try:
            stamp = parse_jst(f"{cells[0].strip()} {clean_time(cells[1])}", fmt)
        except ValueError:
            raise _malformed(f"Unparseable timestamp {cells[0]!r} {cells[1]!r}", row) from None
        if config.is_time_at_end_of_block:
            stamp -= interval

        record = {
            field: parse_average_mw_to_kwh(cell, config.interval_minutes)
            for field, cell in zip(NEW_FORMAT_FIELDS, cells[2:])
        }
        if math.isnan(record["total_demand_kwh"]):
            skipped += 1
            continue
        if config.flip_interconnectors:
            record["interconnectors_kwh"] = -record["interconnectors_kwh"]
        record["all_fossil_kwh"] = sum(record[f] for f in FOSSIL_FIELDS)
        record["total_generation_kwh"] = total_generation(record)
        record["datetime_from"] = stamp.astimezone(timezone.utc)
        record["datetime_to"] = (stamp + interval).astimezone(timezone.utc)
        records.append(record)
        raw.append(row)

    logger.debug("New-format parse: %d rows kept, %d skipped", len(records), skipped)
    return ParsedFile(records, raw)


def _legacy_data_start(grid: list[list[str]], layout: LegacyLayout) -> int:
    if layout.header_token is None:
        return layout.header_rows
    header = _find_header(grid, lambda cell: layout.header_token in cell)
    if header < 0:
        raise MalformedRowError(f"Header row {layout.header_token!r} not found")
    return header + 1 + layout.header_extra_rows


def parse_legacy_csv(
    grid: list[list[str]],
    layout: LegacyLayout,
    cutover: datetime | None = None,
) -> ParsedFile:
    """Parse a legacy hourly file described by `layout`.

    Args:
        grid: Rows of cells as produced by `client.download_grid`.
        layout: Column mapping and header/unit rules for the operator.
        cutover: When given, rows starting at or after this instant are
            dropped because the new-format files cover them.

    Returns:
        ParsedFile: Records plus their raw rows. Fossil sub-types, battery
        and other are ``None`` on every record.

    Raises:
        MalformedRowError: If the header is missing, the date cannot be
            resolved, or a timestamp cannot be parsed.
    """
    index = {name: i for i, name in enumerate(layout.columns) if name is not None}
    stamp_col = index.get("datetime", index.get("time"))
    interval = timedelta(minutes=layout.interval_minutes)
    records: list[dict] = []
    raw: list[list[str]] = []
    last_date: str | None = None

    for row in grid[_legacy_data_start(grid, layout):]:
        cells = row + [""] * (len(layout.columns) - len(row))
        # Sub-header and spacer rows have no digits in the timestamp cell.
        if not _HAS_DIGIT.search(cells[stamp_col]):
            continue

        if "datetime" in index:
            text = cells[index["datetime"]]
        else:
            date_text = cells[index["date"]].strip()
            if date_text:
                last_date = date_text
            elif layout.carry_forward_date and last_date:
                date_text = last_date
            else:
                raise _malformed("Cannot resolve date for row", row)
            text = f"{date_text} {clean_time(cells[index['time']])}"

        try:
            stamp = parse_jst(text, layout.datetime_format)
        except ValueError:
            raise _malformed(f"Unparseable timestamp {text!r}", row) from None

        record: dict = {field: None for field in KWH_FIELDS}
        for field, i in index.items():
            if field in TIMESTAMP_COLUMNS:
                continue
            record[field] = parse_energy_to_kwh(cells[i], layout.unit_multiplier)
        for field in layout.zero_fields:
            record[field] = 0.0
        if not layout.provides_total:
            record["total_generation_kwh"] = total_generation(record)
        record["datetime_from"] = stamp.astimezone(timezone.utc)
        record["datetime_to"] = (stamp + interval).astimezone(timezone.utc)

        if cutover is not None and stamp >= cutover:
            continue
        records.append(record)
        raw.append(row)

    logger.debug("Legacy parse: %d rows kept", len(records))
    return ParsedFile(records, raw)
