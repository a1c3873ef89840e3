"""Pytest configuration shared across the test suite."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Ensure the project root is on sys.path so ``import ingest`` works when running
# the test suite without installing the package.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def area_record():
    """A parsed new-format record: TEPCO, 2024-06-03 00:00 JST."""

    return {
        "datetime_from": datetime(2024, 6, 2, 15, tzinfo=timezone.utc),
        "datetime_to": datetime(2024, 6, 2, 15, 30, tzinfo=timezone.utc),
        "total_demand_kwh": 11040000.0,
        "nuclear_kwh": 0.0,
        "all_fossil_kwh": 7599500.0,
        "lng_kwh": 5066000.0,
        "coal_kwh": 1984000.0,
        "oil_kwh": 86500.0,
        "other_fossil_kwh": 463000.0,
        "hydro_kwh": 908000.0,
        "geothermal_kwh": 0.0,
        "biomass_kwh": 254000.0,
        "solar_output_kwh": 0.0,
        "solar_throttling_kwh": 0.0,
        "wind_output_kwh": 14500.0,
        "wind_throttling_kwh": 0.0,
        "pumped_storage_kwh": -3500.0,
        "battery_storage_kwh": 0.0,
        "interconnectors_kwh": 2134500.0,
        "other_kwh": 133500.0,
        "total_generation_kwh": 11043500.0,
    }
