"""
ingest/carbon.py

Lifecycle carbon-intensity calculation for canonical area records.

Responsibilities
----------------
- Load the emission-factor and fuel-mix tables from YAML into an immutable
  `CarbonTables` object (bundled `carbon_factors.yaml`, or the file named by
  `CARBON_FACTORS_PATH`).
- Compute gCO2eq/kWh for a single record with `compute_intensity`.

Calculation
-----------
- Fuel-separated records (LNG, coal, oil and other fossil all present) use
  each fossil sub-type's own factor.
- Aggregate records (one combined thermal figure) blend the coal, oil and
  LNG factors, weighted by the operator's fuel-mix profile.
- Only positive contributions count: charging storage and exports are not
  generation. The emission total is divided by total generation.
- A record with zero total generation has an intensity of 0.
- Results are rounded to 3 decimal places, halves away from zero.

Environment Variables
---------------------
CARBON_FACTORS_PATH
    Optional path to a YAML file replacing the bundled tables.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from types import MappingProxyType

import yaml

from .const import DECIMAL_PLACES, GenerationSource, TsoName

DEFAULT_FACTORS_PATH = Path(__file__).parent / "carbon_factors.yaml"

# Fossil sub-type columns, only present on fuel-separated records.
FOSSIL_TERMS = (
    ("lng_kwh", GenerationSource.LNG),
    ("coal_kwh", GenerationSource.COAL),
    ("oil_kwh", GenerationSource.OIL),
    ("other_fossil_kwh", GenerationSource.OTHER_FOSSIL),
)

# Non-fossil columns, used on both calculation paths.
COMMON_TERMS = (
    ("nuclear_kwh", GenerationSource.NUCLEAR),
    ("hydro_kwh", GenerationSource.HYDRO),
    ("geothermal_kwh", GenerationSource.GEOTHERMAL),
    ("biomass_kwh", GenerationSource.BIOMASS),
    ("solar_output_kwh", GenerationSource.SOLAR),
    ("wind_output_kwh", GenerationSource.WIND),
    ("pumped_storage_kwh", GenerationSource.PUMPED_HYDRO),
    ("battery_storage_kwh", GenerationSource.BATTERY),
    ("other_kwh", GenerationSource.OTHER),
)

BLENDED_FUELS = (GenerationSource.COAL, GenerationSource.OIL, GenerationSource.LNG)


@dataclass(frozen=True)
class CarbonTables:
    """Emission factors (gCO2eq/kWh) and per-operator fossil fuel mix."""

    emission_factors: Mapping[GenerationSource, float]
    fuel_mix: Mapping[TsoName, Mapping[GenerationSource, float]]

    def factor(self, source: GenerationSource) -> float:
        """Return the emission factor for `source`.

        Raises:
            KeyError: If the table has no factor for `source`.
        """
        try:
            return self.emission_factors[source]
        except KeyError:
            raise KeyError(f"Unsupported generation source: {source}") from None

    def fossil_blend(self, tso: TsoName) -> float:
        """Capacity-weighted average of the coal, oil and LNG factors for `tso`."""
        mix = self.fuel_mix[tso]
        total = sum(mix[fuel] for fuel in BLENDED_FUELS)
        return sum(mix[fuel] * self.factor(fuel) for fuel in BLENDED_FUELS) / total


def _weight(value) -> float:
    # A weight may be given as a list of per-plant capacities.
    if isinstance(value, list):
        return float(sum(value))
    return float(value)


def load_carbon_tables(path: str | Path | None = None) -> CarbonTables:
    """Load `CarbonTables` from YAML.

    Args:
        path: Optional YAML path. Falls back to ``CARBON_FACTORS_PATH`` and
            then to the bundled ``carbon_factors.yaml``.

    Returns:
        CarbonTables: Read-only tables keyed by enum members.

    Raises:
        ValueError: If the file names an unknown source or operator.
    """
    path = Path(path or os.getenv("CARBON_FACTORS_PATH") or DEFAULT_FACTORS_PATH)
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    factors = {
        GenerationSource(name): float(value)
        for name, value in data.get("emission_factors", {}).items()
    }
    fuel_mix = {}
    for tso, weights in data.get("fuel_mix", {}).items():
        fuel_mix[TsoName(tso)] = MappingProxyType(
            {GenerationSource(fuel): _weight(value) for fuel, value in weights.items()}
        )
    return CarbonTables(
        emission_factors=MappingProxyType(factors),
        fuel_mix=MappingProxyType(fuel_mix),
    )


def _kwh(row: Mapping, key: str) -> float:
    value = row.get(key)
    return 0.0 if value is None else float(value)


def round_half_up(value: float, places: int = DECIMAL_PLACES) -> float:
    """Round `value` to `places` decimals with halves away from zero."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def has_fossil_breakdown(row: Mapping) -> bool:
    """True when all four fossil sub-type fields are present on `row`."""
    return all(row.get(key) is not None for key, _ in FOSSIL_TERMS)


def compute_intensity(
    row: Mapping,
    tables: CarbonTables,
    interconnector_factor: float | None = None,
) -> float:
    """Compute the lifecycle carbon intensity of one record.

    Args:
        row: A canonical record keyed by storage column names. Must include
            ``tso``; kWh values may be floats, Decimals, numeric strings or
            None (treated as 0).
        tables: Emission factor and fuel-mix tables.
        interconnector_factor: Optional override for the interconnector
            factor, e.g. a neighbour's own intensity.

    Returns:
        float: gCO2eq/kWh rounded to 3 decimal places, never negative.

    Raises:
        KeyError: If a needed source or operator is missing from `tables`.
    """
    total_generation = _kwh(row, "total_generation_kwh")
    if total_generation == 0:
        return 0.0

    contributions: list[float] = []
    if has_fossil_breakdown(row):
        for key, source in FOSSIL_TERMS:
            contributions.append(_kwh(row, key) * tables.factor(source))
    else:
        blend = tables.fossil_blend(TsoName(row["tso"]))
        contributions.append(_kwh(row, "all_fossil_kwh") * blend)

    for key, source in COMMON_TERMS:
        contributions.append(_kwh(row, key) * tables.factor(source))

    if interconnector_factor is None:
        interconnector_factor = tables.factor(GenerationSource.INTERCONNECTORS)
    contributions.append(_kwh(row, "interconnectors_kwh") * interconnector_factor)

    emissions = sum(c for c in contributions if c > 0)
    return round_half_up(emissions / total_generation)
