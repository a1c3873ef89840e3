"""
ingest/tso/kyuden.py

Kyushu Electric Power Transmission and Distribution (Kyuden).

Notes
-----
- New-format files differ from everyone else's: dates are ``YYYYMMDD``,
  each row is stamped with the END of its block, and interconnector flow
  has the opposite sign.
- The new-format page renders its links client-side from a plain-text file
  list, fetched with the same truncated-millisecond cache buster the page
  uses.
- Legacy quarterly names mix ``_1Q`` and ``_H1Q`` styles; ``_H`` sorts as
  ``_00`` so files stay in date order.
"""

from __future__ import annotations

import re
from datetime import datetime

from ..client import fetch_text, get_urls_from_page
from ..const import JST, TsoName
from ..parse import LegacyLayout, NewFormatConfig
from .base import SourceFormat, TsoConfig, as_sources, by_scope
from .kepco import LEGACY_LAYOUT as KEPCO_LEGACY_LAYOUT

LEGACY_PAGE_URL = "https://www.kyuden.co.jp/td_area_jukyu/jukyu.html"
FILE_LIST_URL = "https://www.kyuden.co.jp/td_area_jukyu/csv/eria_jukyu_nendo_list.csv?{ts}"
NEW_URL = "https://www.kyuden.co.jp/td_area_jukyu/csv/{name}?{ts}"

CUTOVER = datetime(2024, 3, 1, tzinfo=JST)

LEGACY_LAYOUT = LegacyLayout(columns=KEPCO_LEGACY_LAYOUT.columns, header_token="DATE_TIME")

NEW_FORMAT = NewFormatConfig(
    date_format="%Y%m%d",
    is_time_at_end_of_block=True,
    flip_interconnectors=True,
)

_NEW_FILE = re.compile(r"eria_jukyu_\d{6}_09\.csv")


def cache_buster(now: datetime) -> str:
    return str(int(now.timestamp() * 1000))[:-5]


def new_urls(now: datetime) -> list[str]:
    ts = cache_buster(now)
    listing = fetch_text(FILE_LIST_URL.format(ts=ts))
    names = sorted(set(_NEW_FILE.findall(listing)))
    return [NEW_URL.format(name=name, ts=ts) for name in names]


def legacy_urls() -> list[str]:
    urls = get_urls_from_page(LEGACY_PAGE_URL, r"area_jyukyu_jisseki\S+_\dQ\.csv")
    return sorted(urls, key=lambda u: u.replace("_H", "_00"))


def discover_sources(scope, now: datetime):
    return by_scope(
        scope,
        old=lambda: as_sources(legacy_urls(), SourceFormat.OLD),
        new=lambda: as_sources(new_urls(now), SourceFormat.NEW),
        latest=lambda: as_sources(new_urls(now)[-1:], SourceFormat.NEW),
    )


CONFIG = TsoConfig(
    tso=TsoName.KYUDEN,
    discover=discover_sources,
    legacy_layout=LEGACY_LAYOUT,
    new_format=NEW_FORMAT,
    cutover=CUTOVER,
)
