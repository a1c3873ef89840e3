"""
ingest/tso/okinawa.py

Okinawa Electric Power. The island grid has no nuclear, geothermal,
pumped storage or interconnectors, and the legacy files omit those
columns; they are stored as known zeros rather than unknowns.
"""

from __future__ import annotations

from datetime import datetime

from ..client import get_urls_from_page
from ..const import TsoName
from ..parse import LegacyLayout
from .base import SourceFormat, TsoConfig, as_sources, by_scope

PAGE_URL = "https://www.okiden.co.jp/business-support/service/supply-and-demand/index.html"

LEGACY_LAYOUT = LegacyLayout(
    columns=(
        "date",
        "time",
        "total_demand_kwh",
        None,
        "all_fossil_kwh",
        "hydro_kwh",
        "biomass_kwh",
        "solar_output_kwh",
        "solar_throttling_kwh",
        "wind_output_kwh",
        "wind_throttling_kwh",
    ),
    header_token="DATE",
    # Three header rows plus a blank spacer.
    header_extra_rows=3,
    zero_fields=("nuclear_kwh", "geothermal_kwh", "pumped_storage_kwh", "interconnectors_kwh"),
)


def discover_sources(scope, now: datetime):
    def new():
        return as_sources(get_urls_from_page(PAGE_URL, r"eria_jukyu_\d{6}_10\.csv"), SourceFormat.NEW)

    return by_scope(
        scope,
        old=lambda: as_sources(get_urls_from_page(PAGE_URL, r"jukyu/csv/\d{4}"), SourceFormat.OLD),
        new=new,
        latest=lambda: new()[-1:],
    )


CONFIG = TsoConfig(tso=TsoName.OKINAWA, discover=discover_sources, legacy_layout=LEGACY_LAYOUT)
