"""
ingest/tso/yonden.py

Shikoku Electric Power Transmission & Distribution (Yonden).

Notes
-----
- Legacy archives are yearly Excel workbooks in 万kWh with a header split
  across three rows. Their last column is a demand total, not generation,
  so it is ignored and total generation is computed.
- Recent months may be published zipped.
"""

from __future__ import annotations

from datetime import datetime

from ..client import get_urls_from_page
from ..const import TsoName
from ..parse import LegacyLayout
from .base import STANDARD_LEGACY_COLUMNS, SourceFormat, TsoConfig, as_sources, by_scope

DOWNLOAD_PAGE_URL = "https://www.yonden.co.jp/nw/supply_demand/data_download.html"
LIVE_PAGE_URL = "https://www.yonden.co.jp/nw/supply_demand/index.html"

NEW_PATTERN = r"eria_jukyu_\d{6}_08\.(csv|zip)"

LEGACY_LAYOUT = LegacyLayout(
    columns=STANDARD_LEGACY_COLUMNS,
    unit_multiplier=10000,
    header_token="DATE",
    header_extra_rows=2,
)


def discover_sources(scope, now: datetime):
    def live():
        return as_sources(get_urls_from_page(LIVE_PAGE_URL, NEW_PATTERN), SourceFormat.NEW)

    return by_scope(
        scope,
        old=lambda: as_sources(
            get_urls_from_page(DOWNLOAD_PAGE_URL, r"jukyu\d{4}\.xlsx"), SourceFormat.OLD
        ),
        new=lambda: as_sources(get_urls_from_page(DOWNLOAD_PAGE_URL, NEW_PATTERN), SourceFormat.NEW)
        + live(),
        latest=live,
    )


CONFIG = TsoConfig(tso=TsoName.YONDEN, discover=discover_sources, legacy_layout=LEGACY_LAYOUT)
