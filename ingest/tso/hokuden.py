"""
ingest/tso/hokuden.py

Hokuriku Electric Power Transmission & Distribution (Rikuden).

The new-format download page does not link its monthly files in a
scrapeable way, so their URLs are built from the month. Legacy files
overlap the first new-format month and are truncated at the cutover.
"""

from __future__ import annotations

from datetime import datetime

from ..client import get_urls_from_page
from ..const import JST, TsoName
from ..intervals import month_starts
from ..parse import LegacyLayout
from .base import STANDARD_LEGACY_COLUMNS, SourceFormat, TsoConfig, as_sources, by_scope

LEGACY_PAGE_URL = "https://www.rikuden.co.jp/nw_jyukyudata/area_jisseki.html"
NEW_URL = "https://www.rikuden.co.jp/nw/denki-yoho/csv/eria_jukyu_{month}_05.csv"

NEW_DATA_START = datetime(2024, 3, 1, tzinfo=JST)
CUTOVER = datetime(2024, 3, 26, tzinfo=JST)

# The number of rows above the header varies between files.
LEGACY_LAYOUT = LegacyLayout(columns=STANDARD_LEGACY_COLUMNS, header_token="DATE")


def new_urls(now: datetime) -> list[str]:
    return [
        NEW_URL.format(month=m.strftime("%Y%m"))
        for m in month_starts(NEW_DATA_START, now.astimezone(JST))
    ]


def discover_sources(scope, now: datetime):
    return by_scope(
        scope,
        old=lambda: as_sources(
            get_urls_from_page(LEGACY_PAGE_URL, r"area_jisseki_rikuden.+\.csv"), SourceFormat.OLD
        ),
        new=lambda: as_sources(new_urls(now), SourceFormat.NEW),
        latest=lambda: as_sources(new_urls(now)[-1:], SourceFormat.NEW),
    )


CONFIG = TsoConfig(
    tso=TsoName.HOKUDEN,
    discover=discover_sources,
    legacy_layout=LEGACY_LAYOUT,
    cutover=CUTOVER,
)
