"""
ingest/tso/hepco.py

Hokkaido Electric Power Network (HEPCO).

Notes
-----
- The archive page lists quarterly legacy files (``sup_dem_results_...``)
  and monthly new-format files (``eria_jukyu_...``).
- The archive lags by several days. The live page only links today's file,
  but yesterday's is reachable by swapping the date in that URL. Anything
  older 404s, so an initial seed can have a short gap that closes itself
  as the daily job runs.
- Legacy files only write the date on the first hour of each day.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from ..client import get_urls_from_page
from ..const import JST, TsoName
from ..parse import LegacyLayout
from .base import SourceFormat, TsoConfig, as_sources, by_scope

ARCHIVE_URL = "https://www.hepco.co.jp/network/con_service/public_document/supply_demand_results/index.html"
LIVE_URL = "https://denkiyoho.hepco.co.jp/supply_demand_results.html"

LEGACY_LAYOUT = LegacyLayout(
    columns=(
        "date",
        "time",
        "total_demand_kwh",
        "nuclear_kwh",
        "all_fossil_kwh",
        "hydro_kwh",
        "geothermal_kwh",
        "biomass_kwh",
        "solar_output_kwh",
        "solar_throttling_kwh",
        "wind_output_kwh",
        "wind_throttling_kwh",
        "pumped_storage_kwh",
        "interconnectors_kwh",
        "total_generation_kwh",
    ),
    datetime_format="%Y/%m/%d %H時",
    header_token="月日",
    carry_forward_date=True,
)


def live_urls(now: datetime) -> list[str]:
    """Return [yesterday, today] live file URLs."""
    links = get_urls_from_page(LIVE_URL, r"\.csv$")
    if not links:
        return []
    today_url = links[0]
    today = now.astimezone(JST)
    yesterday = today - timedelta(days=1)
    yesterday_url = today_url.replace(today.strftime("%Y%m%d"), yesterday.strftime("%Y%m%d"))
    return [yesterday_url, today_url]


def discover_sources(scope, now: datetime):
    def archive(marker):
        urls = get_urls_from_page(ARCHIVE_URL, r"\.csv$")
        return [u for u in urls if marker in u]

    def live():
        return as_sources(live_urls(now), SourceFormat.NEW)

    return by_scope(
        scope,
        old=lambda: as_sources(archive("sup_dem_results"), SourceFormat.OLD),
        new=lambda: as_sources(archive("eria_jukyu"), SourceFormat.NEW) + live(),
        latest=live,
    )


CONFIG = TsoConfig(tso=TsoName.HEPCO, discover=discover_sources, legacy_layout=LEGACY_LAYOUT)
