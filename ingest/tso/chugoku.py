"""
ingest/tso/chugoku.py

Chugoku Electric Power Transmission & Distribution (Energia).

Monthly new-format URLs are built from the month, with a cache-busting
``ver`` query parameter in milliseconds like the operator's own page adds.
"""

from __future__ import annotations

from datetime import datetime

from ..client import get_urls_from_page
from ..const import JST, TsoName
from ..intervals import month_starts
from ..parse import LegacyLayout
from .base import STANDARD_LEGACY_COLUMNS, SourceFormat, TsoConfig, as_sources, by_scope

LEGACY_PAGE_URL = "https://www.energia.co.jp/nw/service/retailer/data/area/"
NEW_URL = "https://www.energia.co.jp/nw/jukyuu/sys/eria_jukyu_{month}_07.csv?ver={ver}"

CUTOVER = datetime(2024, 2, 1, tzinfo=JST)

LEGACY_LAYOUT = LegacyLayout(columns=STANDARD_LEGACY_COLUMNS, header_rows=3)


def new_urls(now: datetime) -> list[str]:
    ver = int(now.timestamp() * 1000)
    return [
        NEW_URL.format(month=m.strftime("%Y%m"), ver=ver)
        for m in month_starts(CUTOVER, now.astimezone(JST))
    ]


def discover_sources(scope, now: datetime):
    return by_scope(
        scope,
        old=lambda: as_sources(
            get_urls_from_page(LEGACY_PAGE_URL, r"csv/kako-\d{4}\.csv$"), SourceFormat.OLD
        ),
        new=lambda: as_sources(new_urls(now), SourceFormat.NEW),
        latest=lambda: as_sources(new_urls(now)[-1:], SourceFormat.NEW),
    )


CONFIG = TsoConfig(
    tso=TsoName.CHUGOKU,
    discover=discover_sources,
    legacy_layout=LEGACY_LAYOUT,
    cutover=CUTOVER,
)
