"""
db/models.py

SQLAlchemy table definitions mirroring the warehouse schema.

Responsibilities
----------------
- Provide a programmatic (SQLAlchemy Core) representation of the tables so
  the loader can derive column lists and tests can reference the schema
  without raw SQL.
- Keep column names/types aligned with `db/ddl.sql`.

Conventions
-----------
- `data_id` / `file_key` are natural keys built from the operator (or
  interconnector) and the JST date/time of the block.
- `datetime_from` / `datetime_to` are timezone-aware instants; `date_jst`
  and `time_*_jst` are derived display values.
- *_kwh columns store energy over the block in kWh.
- `last_updated` defaults to the current timestamp on the database server
  and is refreshed on every upsert.

Notes
-----
- All energy values use `Numeric(20, 3)` so stored precision is exact;
  code converts to `float` only when calculating.
"""

from sqlalchemy import (
    TIMESTAMP,
    Column,
    Date,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    text,
)

metadata = MetaData()

KWH = Numeric(20, 3)

# One row per operator per block (30 or 60 minutes).
area_data_processed = Table(
    "area_data_processed",
    metadata,
    Column("data_id", Text, primary_key=True),
    Column("tso", String(16), nullable=False),
    Column("date_jst", Date, nullable=False),
    Column("time_from_jst", String(5), nullable=False),
    Column("time_to_jst", String(5), nullable=False),
    Column("datetime_from", TIMESTAMP(timezone=True), nullable=False),
    Column("datetime_to", TIMESTAMP(timezone=True), nullable=False),
    # Energy by source (kWh)
    Column("total_demand_kwh", KWH),
    Column("nuclear_kwh", KWH),
    Column("all_fossil_kwh", KWH),
    Column("lng_kwh", KWH),
    Column("coal_kwh", KWH),
    Column("oil_kwh", KWH),
    Column("other_fossil_kwh", KWH),
    Column("hydro_kwh", KWH),
    Column("geothermal_kwh", KWH),
    Column("biomass_kwh", KWH),
    Column("solar_output_kwh", KWH),
    Column("solar_throttling_kwh", KWH),
    Column("wind_output_kwh", KWH),
    Column("wind_throttling_kwh", KWH),
    # Signed: positive = generation/export, negative = charging/import
    Column("pumped_storage_kwh", KWH),
    Column("battery_storage_kwh", KWH),
    Column("interconnectors_kwh", KWH),
    Column("other_kwh", KWH),
    Column("total_generation_kwh", KWH),
    # Ingestion metadata
    Column("last_updated", TIMESTAMP(timezone=True), server_default=text("now()")),
)

# One row per source file, keyed by operator and the JST date it starts on.
area_data_files = Table(
    "area_data_files",
    metadata,
    Column("file_key", Text, primary_key=True),
    Column("tso", String(16), nullable=False),
    Column("from_datetime", TIMESTAMP(timezone=True), nullable=False),
    Column("to_datetime", TIMESTAMP(timezone=True), nullable=False),
    Column("data_rows", Integer, nullable=False),
    Column("url", Text, nullable=False),
    Column("last_updated", TIMESTAMP(timezone=True), server_default=text("now()")),
)

# 30-minute interconnector flows consolidated from OCCTO 5-minute data.
interconnector_data_processed = Table(
    "interconnector_data_processed",
    metadata,
    Column("data_id", Text, primary_key=True),
    Column("interconnector", String(32), nullable=False),
    Column("date_jst", Date, nullable=False),
    Column("time_from_jst", String(5), nullable=False),
    Column("time_to_jst", String(5), nullable=False),
    Column("datetime_from", TIMESTAMP(timezone=True), nullable=False),
    Column("datetime_to", TIMESTAMP(timezone=True), nullable=False),
    # Signed: positive = flow in the interconnector's forward direction
    Column("flow_kwh", KWH),
    Column("last_updated", TIMESTAMP(timezone=True), server_default=text("now()")),
)

# Written by an external forecasting job; read back alongside actuals.
carbon_intensity_forecasts = Table(
    "carbon_intensity_forecasts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tso", String(16), nullable=False),
    Column("datetime_from", TIMESTAMP(timezone=True), nullable=False),
    Column("datetime_to", TIMESTAMP(timezone=True), nullable=False),
    Column("predicted_carbon_intensity", Numeric(10, 3), nullable=False),
    Column("created_at", TIMESTAMP(timezone=True), server_default=text("now()")),
)
