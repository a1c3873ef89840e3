"""
ingest/tso/kepco.py

Kansai Transmission and Distribution (KEPCO).

Notes
-----
- The new-format download page renders its links client-side, so the
  JSON file list the page itself loads is read instead.
"""

from __future__ import annotations

from datetime import datetime

from ..client import fetch_json, get_urls_from_page
from ..const import TsoName
from ..parse import LegacyLayout
from .base import SourceFormat, TsoConfig, as_sources, by_scope

LEGACY_PAGE_URL = "https://www.kansai-td.co.jp/denkiyoho/area-performance/past.html"
FILE_LIST_URL = "https://www.kansai-td.co.jp/interchange/denkiyoho/area-performance/filelist.json"
NEW_BASE_URL = "https://www.kansai-td.co.jp/interchange/denkiyoho/area-performance/"

# Combined DATE_TIME column followed by MWh values.
LEGACY_LAYOUT = LegacyLayout(
    columns=(
        "datetime",
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
    ),
    header_token="DATE_TIME",
)


def new_urls() -> list[str]:
    """Read ``{"past": [{"list": [{"name": ...}]}], "latest": [...]}``."""
    listing = fetch_json(FILE_LIST_URL)
    urls = {
        NEW_BASE_URL + item["name"]
        for group in ("latest", "past")
        for entry in listing.get(group, [])
        for item in entry.get("list", [])
    }
    return sorted(urls)


def discover_sources(scope, now: datetime):
    return by_scope(
        scope,
        old=lambda: as_sources(
            get_urls_from_page(LEGACY_PAGE_URL, r"area_jyukyu_jisseki_\d{4}\.csv"), SourceFormat.OLD
        ),
        new=lambda: as_sources(new_urls(), SourceFormat.NEW),
        latest=lambda: as_sources(new_urls()[-1:], SourceFormat.NEW),
    )


CONFIG = TsoConfig(tso=TsoName.KEPCO, discover=discover_sources, legacy_layout=LEGACY_LAYOUT)
