"""
ingest/const.py

Shared enumerations and constants for the Japan grid ingestion pipeline.

Conventions
-----------
- Enum values are the lowercase identifiers used in storage and on the CLI.
- Local wall-clock time for every operator is Japan Standard Time (JST,
  UTC+9, no daylight saving).
"""

from __future__ import annotations

from enum import Enum
from zoneinfo import ZoneInfo

JST = ZoneInfo("Asia/Tokyo")

# kWh values are stored to the nearest Wh.
DECIMAL_PLACES = 3


class TsoName(str, Enum):
    """The ten regional transmission system operators."""

    HEPCO = "hepco"
    TOHOKU = "tohoku"
    TEPCO = "tepco"
    CHUBU = "chubu"
    HOKUDEN = "hokuden"
    KEPCO = "kepco"
    CHUGOKU = "chugoku"
    YONDEN = "yonden"
    KYUDEN = "kyuden"
    OKINAWA = "okinawa"


class GenerationSource(str, Enum):
    """Generation categories with an emission factor."""

    NUCLEAR = "nuclear"  # 原子力
    LNG = "lng"  # 火力(LNG)
    COAL = "coal"  # 火力(石炭)
    OIL = "oil"  # 火力(石油)
    # 火力(その他): mixed-fuel or fuel-switchable thermal plants.
    OTHER_FOSSIL = "other_fossil"
    HYDRO = "hydro"  # 水力
    GEOTHERMAL = "geothermal"  # 地熱
    BIOMASS = "biomass"  # バイオマス
    SOLAR = "solar"  # 太陽光発電実績
    WIND = "wind"  # 風力発電実績
    PUMPED_HYDRO = "pumped_hydro"  # 揚水, generation only when discharging
    BATTERY = "battery"  # 蓄電池, generation only when discharging
    INTERCONNECTORS = "interconnectors"  # 連系線
    # その他: VPPs and plants whose fuel cannot be identified.
    OTHER = "other"


class ScrapeType(str, Enum):
    """How much of an operator's published history to fetch."""

    ALL = "all"  # legacy archives + new-format files + live files
    NEW = "new"  # new-format files only
    LATEST = "latest"  # most recent file(s) only


class Interconnector(str, Enum):
    """Inter-regional links published by OCCTO, named FROM_TO."""

    HEPCO_TOHOKU = "hepco_tohoku"
    TOHOKU_TEPCO = "tohoku_tepco"
    TEPCO_CHUBU = "tepco_chubu"
    CHUBU_KEPCO = "chubu_kepco"
    CHUBU_HOKUDEN = "chubu_hokuden"
    HOKUDEN_KEPCO = "hokuden_kepco"
    KEPCO_CHUGOKU = "kepco_chugoku"
    KEPCO_YONDEN = "kepco_yonden"
    CHUGOKU_YONDEN = "chugoku_yonden"
    CHUGOKU_KYUDEN = "chugoku_kyuden"


# OCCTO display name and form code for each link. A positive flow runs from
# `from_tso` to `to_tso`.
INTERCONNECTOR_DETAILS: dict[Interconnector, dict] = {
    Interconnector.HEPCO_TOHOKU: {
        "occto_name": "北海道・本州間電力連系設備",
        "occto_code": "01",
        "from_tso": TsoName.HEPCO,
        "to_tso": TsoName.TOHOKU,
    },
    Interconnector.TOHOKU_TEPCO: {
        "occto_name": "相馬双葉幹線",
        "occto_code": "02",
        "from_tso": TsoName.TOHOKU,
        "to_tso": TsoName.TEPCO,
    },
    Interconnector.TEPCO_CHUBU: {
        "occto_name": "周波数変換設備",
        "occto_code": "03",
        "from_tso": TsoName.TEPCO,
        "to_tso": TsoName.CHUBU,
    },
    Interconnector.CHUBU_KEPCO: {
        "occto_name": "三重東近江線",
        "occto_code": "04",
        "from_tso": TsoName.CHUBU,
        "to_tso": TsoName.KEPCO,
    },
    Interconnector.CHUBU_HOKUDEN: {
        "occto_name": "南福光連系所・南福光変電所の連系設備",
        "occto_code": "05",
        "from_tso": TsoName.CHUBU,
        "to_tso": TsoName.HOKUDEN,
    },
    Interconnector.HOKUDEN_KEPCO: {
        "occto_name": "越前嶺南線",
        "occto_code": "06",
        "from_tso": TsoName.HOKUDEN,
        "to_tso": TsoName.KEPCO,
    },
    Interconnector.KEPCO_CHUGOKU: {
        "occto_name": "西播東岡山線・山崎智頭線",
        "occto_code": "07",
        "from_tso": TsoName.KEPCO,
        "to_tso": TsoName.CHUGOKU,
    },
    Interconnector.KEPCO_YONDEN: {
        "occto_name": "阿南紀北直流幹線",
        "occto_code": "08",
        "from_tso": TsoName.KEPCO,
        "to_tso": TsoName.YONDEN,
    },
    Interconnector.CHUGOKU_YONDEN: {
        "occto_name": "本四連系線",
        "occto_code": "09",
        "from_tso": TsoName.CHUGOKU,
        "to_tso": TsoName.YONDEN,
    },
    Interconnector.CHUGOKU_KYUDEN: {
        "occto_name": "関門連系線",
        "occto_code": "10",
        "from_tso": TsoName.CHUGOKU,
        "to_tso": TsoName.KYUDEN,
    },
}
