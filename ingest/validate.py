"""
ingest/validate.py

Validation and typing layer for parsed area records.

Responsibilities
----------------
- Define an `AreaRow` model that captures one canonical block:
  * `datetime_from` / `datetime_to`: timezone-aware instants (normalised to
    UTC).
  * Required kWh fields that every layout reports.
  * Optional kWh fields (fossil breakdown, battery, other) that only some
    layouts report; `None` means "not reported", never zero.
- Provide `validate_parsed` to turn a `ParsedFile` into models, logging the
  raw source row of the first record that fails.

Conventions
-----------
- Every present numeric value must be finite. A NaN means a cell could not
  be read and the whole file is rejected.
- The four fossil sub-types are either all present or all absent.
- Blocks must have a positive length.

Notes
-----
- This module only checks and types values; storage keys and rounding are
  applied in `ingest/transform.py`.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone

from pydantic import BaseModel, ValidationError, field_validator, model_validator

from .errors import MalformedRowError
from .parse import FOSSIL_FIELDS, ParsedFile

logger = logging.getLogger(__name__)


class AreaRow(BaseModel):
    """Validated canonical record passed to the transform/load stages.

    Attributes:
        datetime_from: Inclusive block start (aware, UTC).
        datetime_to: Exclusive block end (aware, UTC).
        *_kwh: Energy over the block in kWh. Storage and interconnector
            fields are signed: positive is generation/export, negative is
            consumption/import.
    """

    datetime_from: datetime
    datetime_to: datetime

    total_demand_kwh: float
    nuclear_kwh: float
    all_fossil_kwh: float
    lng_kwh: float | None = None
    coal_kwh: float | None = None
    oil_kwh: float | None = None
    other_fossil_kwh: float | None = None
    hydro_kwh: float
    geothermal_kwh: float
    biomass_kwh: float
    solar_output_kwh: float
    solar_throttling_kwh: float
    wind_output_kwh: float
    wind_throttling_kwh: float
    pumped_storage_kwh: float
    battery_storage_kwh: float | None = None
    interconnectors_kwh: float
    other_kwh: float | None = None
    total_generation_kwh: float

    @field_validator("datetime_from", "datetime_to")
    @classmethod
    def aware_utc(cls, v: datetime) -> datetime:
        """Reject naive datetimes and normalise aware ones to UTC.

        A naive value has lost its JST context and would be stored at the
        wrong instant.
        """
        if v.tzinfo is None:
            raise ValueError("datetime must be timezone-aware")
        return v.astimezone(timezone.utc)

    @field_validator("*", mode="after")
    @classmethod
    def finite(cls, v):
        if isinstance(v, float) and not math.isfinite(v):
            raise ValueError("value must be finite")
        return v

    @model_validator(mode="after")
    def check_invariants(self):
        present = [getattr(self, f) is not None for f in FOSSIL_FIELDS]
        if any(present) and not all(present):
            raise ValueError("fossil breakdown must be all present or all absent")
        if self.datetime_to <= self.datetime_from:
            raise ValueError("datetime_to must be after datetime_from")
        return self

    @property
    def has_fossil_breakdown(self) -> bool:
        return self.lng_kwh is not None


def validate_parsed(parsed: ParsedFile, url: str = "") -> list[AreaRow]:
    """Validate every record of a parsed file.

    Args:
        parsed: Records and their aligned raw source rows.
        url: Source URL, used only for log context.

    Returns:
        list[AreaRow]: One model per record, in file order.

    Raises:
        MalformedRowError: On the first invalid record. The raw source row
            is logged and attached to the exception.
    """
    rows = []
    for i, (record, raw) in enumerate(zip(parsed.records, parsed.raw)):
        try:
            rows.append(AreaRow(**record))
        except ValidationError as exc:
            logger.error("Invalid row #%d in %s: %s", i, url, record)
            logger.error("Raw row: %r", raw)
            raise MalformedRowError(f"Invalid row #{i} in {url}: {exc}", raw_row=raw) from exc
    return rows
