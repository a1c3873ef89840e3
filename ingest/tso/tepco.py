"""
ingest/tso/tepco.py

TEPCO Power Grid. Legacy files are in 万kWh (10 MWh) and carry their own
supply total.
"""

from __future__ import annotations

from datetime import datetime

from ..client import get_urls_from_page
from ..const import TsoName
from ..parse import LegacyLayout
from .base import STANDARD_LEGACY_COLUMNS, SourceFormat, TsoConfig, as_sources, by_scope

LEGACY_PAGE_URL = "https://www.tepco.co.jp/forecast/html/area_jukyu_p-j.html"
NEW_PAGE_URL = "https://www.tepco.co.jp/forecast/html/area_jukyu-j.html"

LEGACY_LAYOUT = LegacyLayout(
    columns=(*STANDARD_LEGACY_COLUMNS, "total_generation_kwh"),
    unit_multiplier=10000,
    header_rows=3,
)


def discover_sources(scope, now: datetime):
    def new():
        return as_sources(get_urls_from_page(NEW_PAGE_URL, r"\.csv$"), SourceFormat.NEW)

    return by_scope(
        scope,
        old=lambda: as_sources(get_urls_from_page(LEGACY_PAGE_URL, r"\.csv$"), SourceFormat.OLD),
        new=new,
        latest=lambda: new()[-1:],
    )


CONFIG = TsoConfig(tso=TsoName.TEPCO, discover=discover_sources, legacy_layout=LEGACY_LAYOUT)
