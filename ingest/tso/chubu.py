"""
ingest/tso/chubu.py

Chubu Electric Power Grid. Both generations of files are listed by a JSON
endpoint used by the operator's download page.
"""

from __future__ import annotations

from datetime import datetime

from ..client import fetch_json
from ..const import TsoName
from ..parse import LegacyLayout
from .base import STANDARD_LEGACY_COLUMNS, SourceFile, SourceFormat, TsoConfig, by_scope

FILE_LIST_URL = "https://powergrid.chuden.co.jp/denkiyoho/resource/php/getFilesInfo.php"
BASE_URL = "https://powergrid.chuden.co.jp"

# 年別 = yearly legacy archives, 直近 = recent monthly files.
AREA_CATEGORIES = {"年別エリア需給実績", "直近のエリア需要実績"}

LEGACY_LAYOUT = LegacyLayout(columns=STANDARD_LEGACY_COLUMNS, header_rows=5)


def list_files() -> list[SourceFile]:
    """Return every area supply/demand file from the JSON listing."""
    files = []
    for entry in fetch_json(FILE_LIST_URL):
        if entry.get("category") not in AREA_CATEGORIES:
            continue
        path = entry["path"]
        fmt = SourceFormat.OLD if "areabalance" in path else SourceFormat.NEW
        files.append(SourceFile(BASE_URL + path, fmt))
    return sorted(files, key=lambda f: f.url)


def discover_sources(scope, now: datetime):
    def of_format(fmt):
        return [f for f in list_files() if f.format is fmt]

    return by_scope(
        scope,
        old=lambda: of_format(SourceFormat.OLD),
        new=lambda: of_format(SourceFormat.NEW),
        latest=lambda: of_format(SourceFormat.NEW)[-1:],
    )


CONFIG = TsoConfig(tso=TsoName.CHUBU, discover=discover_sources, legacy_layout=LEGACY_LAYOUT)
