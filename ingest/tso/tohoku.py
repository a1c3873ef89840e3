"""
ingest/tso/tohoku.py

Tohoku Electric Power Network.

Notes
-----
- Confirmed monthly files are listed on the download page. The current
  month (and the previous one until its monthly file appears) is only
  available as one real-time file per day, built from the date.
- The server rejects bursts of parallel requests, so files are fetched
  sequentially.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta

from ..client import get_urls_from_page
from ..const import JST, TsoName
from ..parse import LegacyLayout
from .base import SourceFormat, TsoConfig, as_sources, by_scope

DOWNLOAD_URL = "https://setsuden.nw.tohoku-epco.co.jp/download.html"
DAILY_URL = (
    "https://setsuden.nw.tohoku-epco.co.jp/common/demand/realtime_jukyu/"
    "realtime_jukyu_{date}_02.csv"
)
DAILY_ENCODING = "utf-8-sig"

LEGACY_LAYOUT = LegacyLayout(
    columns=(
        "datetime",
        "total_demand_kwh",
        "hydro_kwh",
        "all_fossil_kwh",
        "nuclear_kwh",
        "solar_output_kwh",
        "solar_throttling_kwh",
        "wind_output_kwh",
        "wind_throttling_kwh",
        "geothermal_kwh",
        "biomass_kwh",
        "pumped_storage_kwh",
        "interconnectors_kwh",
    ),
    header_rows=1,
)

_MONTH = re.compile(r"_(\d{4})(\d{2})_")


def daily_urls(monthly_urls: list[str], now: datetime) -> list[str]:
    """Build real-time file URLs from the start of the uncovered month(s) to today.

    Starts at the beginning of the current month when last month's confirmed
    file is already listed, otherwise at the beginning of last month.
    """
    today = now.astimezone(JST)
    this_month = today.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    last_month = (this_month - timedelta(days=1)).replace(day=1)

    seen = {(int(m.group(1)), int(m.group(2))) for m in map(_MONTH.search, monthly_urls) if m}
    start = this_month if (last_month.year, last_month.month) in seen else last_month

    urls = []
    day = start
    while day.date() <= today.date():
        urls.append(DAILY_URL.format(date=day.strftime("%Y%m%d")))
        day += timedelta(days=1)
    return urls


def discover_sources(scope, now: datetime):
    def monthly():
        return get_urls_from_page(DOWNLOAD_URL, r"eria_jukyu_\d{6}_\d{2}\.csv$")

    def new():
        urls = monthly()
        return as_sources(urls, SourceFormat.NEW) + as_sources(
            daily_urls(urls, now), SourceFormat.NEW, DAILY_ENCODING
        )

    return by_scope(
        scope,
        old=lambda: as_sources(
            get_urls_from_page(DOWNLOAD_URL, r"juyo_\d{4}_tohoku_\dQ\.csv$"), SourceFormat.OLD
        ),
        new=new,
        latest=lambda: as_sources(daily_urls(monthly(), now), SourceFormat.NEW, DAILY_ENCODING),
    )


CONFIG = TsoConfig(
    tso=TsoName.TOHOKU,
    discover=discover_sources,
    legacy_layout=LEGACY_LAYOUT,
    sequential=True,
)
