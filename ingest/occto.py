"""
ingest/occto.py

Interconnector flows from OCCTO, the Organization for Cross-regional
Coordination of Transmission Operators.

Responsibilities
----------------
- Download 5-minute flow readings for every inter-regional link through
  OCCTO's form-based download service.
- Consolidate them into 30-minute blocks in kWh, matching the area data.
- Upsert the blocks into `interconnector_data_processed`.
- Provide a CLI: ``python -m ingest.occto --scrape <all|new|latest>``.

Notes
-----
- The download is a three-step exchange on one `requests.Session`: a login
  page that sets cookies, a form post that returns a download key and
  request token, then the same form re-posted with those values to get
  the CSV.
- OCCTO caps a download at roughly 52 days of readings, so the window is
  fetched in 45-day chunks, one at a time.
- Readings are stamped at the END of each 5-minute slot, so a block
  (start, end] holds six of them.
"""

from __future__ import annotations

import argparse
import csv
import io
import logging
import math
from collections import defaultdict
from datetime import datetime, timedelta
from typing import NamedTuple

import requests

from .carbon import round_half_up
from .client import HTTP_TIMEOUT, USER_AGENT
from .const import INTERCONNECTOR_DETAILS, JST, Interconnector, ScrapeType
from .errors import FetchError, IngestError, MissingInterconnectorMappingError, UpstreamDataIntegrityError
from .intervals import split_interval
from .load import get_engine, upsert_interconnector_rows
from .parse import parse_jst
from .transform import jst_date, jst_time, make_data_id, to_decimal
from .tso.base import resolve_scope

logger = logging.getLogger(__name__)

LOGIN_URL = "http://occtonet.occto.or.jp/public/dfw/RP11/OCCTO/SD/LOGIN_login"
DOWNLOAD_URL = "https://occtonet3.occto.or.jp/public/dfw/RP11/OCCTO/SD/CF01S010C"
CSV_ENCODING = "cp932"

CHUNK = timedelta(days=45)
BLOCK = timedelta(minutes=30)
READINGS_PER_BLOCK = 6
# Blocks with this many finite readings or fewer are not stored.
MIN_VALID_READINGS = 2

HEADER_CELL = "連系線"
FLOW_COLUMN = 13  # 潮流実績

_BY_OCCTO_NAME = {d["occto_name"]: ic for ic, d in INTERCONNECTOR_DETAILS.items()}


class FlowReading(NamedTuple):
    interconnector: Interconnector
    timestamp: datetime
    flow_mw: float


def scrape_window(scope, now: datetime) -> tuple[datetime, datetime]:
    """Return the JST ``(from, to)`` range to download for `scope`.

    - to: midnight at the end of today.
    - all: the April 1st that starts the previous fiscal year.
    - new: start of last month.
    - latest: start of yesterday.
    """
    scope = resolve_scope(scope)
    today = now.astimezone(JST).replace(hour=0, minute=0, second=0, microsecond=0)
    end = today + timedelta(days=1)

    if scope is ScrapeType.ALL:
        years_back = 1 if today.month >= 4 and today.day > 1 else 2
        start = today.replace(year=today.year - years_back, month=4, day=1)
    elif scope is ScrapeType.NEW:
        this_month = today.replace(day=1)
        start = (this_month - timedelta(days=1)).replace(day=1)
    else:
        start = today - timedelta(days=1)
    return start, end


def build_form(start: datetime, end: datetime) -> dict[str, str]:
    """Initial form for flows of every link from `start` to `end`.

    OCCTO's end date is inclusive, so the exclusive `end` is moved back a day.
    """
    form = {
        "fwExtention.actionType": "reference",
        "fwExtention.actionSubType": "ok",
        "fwExtention.pagingTargetTable": "",
        "fwExtention.pathInfo": "CF01S010C",
        "fwExtention.prgbrh": "0",
        "fwExtention.formId": "CF01S010P",
        "fwExtention.jsonString": "",
        "ajaxToken": "",
        "requestToken": "",
        "requestTokenBk": "",
        "transitionContextKey": "DEFAULT",
        "tabSntk": "0",
        "downloadKey": "",
        "dvlSlashLblUpdaf": "1",
        "rklDataKnd": "11",
        "rklNngpFrom": start.astimezone(JST).strftime("%Y/%m/%d"),
        "rklNngpTo": (end.astimezone(JST) - timedelta(days=1)).strftime("%Y/%m/%d"),
    }
    for i, details in enumerate(INTERCONNECTOR_DETAILS.values(), start=1):
        form[f"rkl{i}"] = details["occto_code"]
    return form


def _post_form(session: requests.Session, form: dict[str, str]) -> requests.Response:
    # The service expects multipart form fields.
    files = {k: (None, v) for k, v in form.items()}
    try:
        r = session.post(DOWNLOAD_URL, files=files, timeout=HTTP_TIMEOUT)
        r.raise_for_status()
    except requests.RequestException as exc:
        raise FetchError(DOWNLOAD_URL, str(exc)) from exc
    return r


def download_flows_csv(session: requests.Session, start: datetime, end: datetime) -> str:
    """Run the cookie/token exchange and return the decoded CSV text.

    Raises:
        FetchError: On network failure or when OCCTO answers with an error
            instead of a download key.
    """
    try:
        session.get(LOGIN_URL, timeout=HTTP_TIMEOUT).raise_for_status()
    except requests.RequestException as exc:
        raise FetchError(LOGIN_URL, str(exc)) from exc

    form = build_form(start, end)
    payload = _post_form(session, form).json()
    root = payload.get("root") if isinstance(payload, dict) else None
    if not root or root.get("errFields") or root.get("errMessage"):
        logger.error("OCCTO download form rejected: %r", payload)
        raise FetchError(DOWNLOAD_URL, "error in download form response")

    header = root.get("bizRoot", {}).get("header", {})
    download_key = header.get("downloadKey", {}).get("value")
    request_token = header.get("requestToken", {}).get("value")
    if not download_key or not request_token:
        raise FetchError(DOWNLOAD_URL, "missing download key or request token")

    form.update(
        {
            "downloadKey": download_key,
            "requestToken": request_token,
            "fwExtention.actionSubType": "download",
        }
    )
    return _post_form(session, form).content.decode(CSV_ENCODING, errors="replace")


def parse_flows_csv(text: str) -> list[FlowReading]:
    """Parse OCCTO's CSV into readings.

    Blank or unparseable flow cells become NaN; they mark slots that have
    not happened yet.

    Raises:
        MissingInterconnectorMappingError: If a link name is not known.
        UpstreamDataIntegrityError: If the header row is missing or a
            timestamp cannot be parsed.
    """
    rows = [r for r in csv.reader(io.StringIO(text)) if r]
    header = next((i for i, r in enumerate(rows) if r[0] == HEADER_CELL), None)
    if header is None:
        raise UpstreamDataIntegrityError("OCCTO header row not found")

    readings = []
    for row in rows[header + 1 :]:
        name = row[0]
        interconnector = _BY_OCCTO_NAME.get(name)
        if interconnector is None:
            logger.error("Could not find interconnector for %r", name)
            raise MissingInterconnectorMappingError(name)
        try:
            stamp = parse_jst(f"{row[1]} {row[2]}", "%Y/%m/%d %H:%M")
        except (ValueError, IndexError):
            logger.error("Invalid OCCTO timestamp in row %r", row)
            raise UpstreamDataIntegrityError(f"Invalid timestamp in row {row!r}") from None
        try:
            flow = float(row[FLOW_COLUMN])
        except (ValueError, IndexError):
            flow = math.nan
        readings.append(FlowReading(interconnector, stamp, flow))
    return readings


def _block_index(t: datetime, blocks: list[tuple[datetime, datetime]]) -> int | None:
    # A reading on a boundary closes the earlier block; the window start opens the first.
    if not blocks or t < blocks[0][0] or t > blocks[-1][1]:
        return None
    offset = t - blocks[0][0]
    i = max(0, -(-offset // BLOCK) - 1)
    return min(i, len(blocks) - 1)


def consolidate(
    readings: list[FlowReading], start: datetime, end: datetime, now: datetime
) -> list[dict]:
    """Average 5-minute readings into 30-minute blocks in kWh.

    Each reading belongs to the first block with ``start <= t < end`` or
    ``t == end``. Blocks ending after `now`, or with too few finite
    readings, are skipped.

    Returns:
        list[dict]: ``{"interconnector", "datetime_from", "datetime_to",
        "flow_kwh"}`` per stored block.

    Raises:
        UpstreamDataIntegrityError: If a reading falls outside the window or
            a block does not hold exactly six readings.
    """
    blocks = split_interval(start, end, BLOCK)
    by_link = defaultdict(list)
    for r in readings:
        by_link[r.interconnector].append(r)

    out = []
    for interconnector, link_readings in by_link.items():
        grouped = [[] for _ in blocks]
        for r in link_readings:
            i = _block_index(r.timestamp, blocks)
            if i is None:
                raise UpstreamDataIntegrityError(
                    f"No block for {interconnector.value} reading at {r.timestamp.isoformat()}"
                )
            grouped[i].append(r.flow_mw)

        for (b_from, b_to), flows in zip(blocks, grouped):
            if len(flows) != READINGS_PER_BLOCK:
                logger.error(
                    "%s: %d readings for %s to %s",
                    interconnector.value, len(flows), b_from.isoformat(), b_to.isoformat(),
                )
                raise UpstreamDataIntegrityError(
                    f"Expected {READINGS_PER_BLOCK} readings for {interconnector.value} "
                    f"block starting {b_from.isoformat()}, got {len(flows)}"
                )
            finite = [f for f in flows if math.isfinite(f)]
            if b_to > now or len(finite) <= MIN_VALID_READINGS:
                if b_to < now:
                    logger.debug(
                        "Skipping %s block %s: %r", interconnector.value, b_from.isoformat(), flows
                    )
                continue
            mean_mw = sum(finite) / len(finite)
            out.append(
                {
                    "interconnector": interconnector,
                    "datetime_from": b_from,
                    "datetime_to": b_to,
                    "flow_kwh": round_half_up(mean_mw * 1000 * 0.5),
                }
            )
    return out


def to_row(block: dict) -> dict:
    """Return the warehouse row for one consolidated block."""
    ic = Interconnector(block["interconnector"])
    return {
        "data_id": make_data_id(ic.value, block["datetime_from"]),
        "interconnector": ic.value,
        "date_jst": jst_date(block["datetime_from"]),
        "time_from_jst": jst_time(block["datetime_from"]),
        "time_to_jst": jst_time(block["datetime_to"]),
        "datetime_from": block["datetime_from"],
        "datetime_to": block["datetime_to"],
        "flow_kwh": to_decimal(block["flow_kwh"]),
    }


def scrape_occto(scope, now: datetime | None = None, session: requests.Session | None = None) -> list[dict]:
    """Download and consolidate every chunk of the scrape window.

    Chunks are fetched sequentially on one session; any failure aborts
    the run.
    """
    now = now or datetime.now(JST)
    start, end = scrape_window(scope, now)
    chunks = split_interval(start, end, CHUNK)
    logger.info(
        "Scraping OCCTO from %s to %s in %d chunks", start.isoformat(), end.isoformat(), len(chunks)
    )

    session = session or requests.Session()
    session.headers["User-Agent"] = USER_AGENT

    blocks = []
    for n, (c_from, c_to) in enumerate(chunks):
        logger.info("Chunk #%d: %s to %s", n, c_from.isoformat(), c_to.isoformat())
        readings = parse_flows_csv(download_flows_csv(session, c_from, c_to))
        chunk_blocks = consolidate(readings, c_from, c_to, now)
        logger.info("Chunk #%d: %d readings, %d blocks", n, len(readings), len(chunk_blocks))
        blocks.extend(chunk_blocks)
    return blocks


def run(engine, scope, now: datetime | None = None) -> dict:
    """Scrape OCCTO and upsert the blocks.

    Returns:
        dict: ``{"new_rows", "latest_datetime_saved"}``.
    """
    rows = [to_row(b) for b in scrape_occto(scope, now)]
    new_rows = upsert_interconnector_rows(engine, rows)
    latest = max((r["datetime_from"] for r in rows), default=None)
    return {"new_rows": new_rows, "latest_datetime_saved": latest}


def main(argv=None):
    """CLI entry point for the OCCTO interconnector job.

    Returns:
        int: 0 on success, 1 when the job fails, 2 for invalid arguments.
    """
    p = argparse.ArgumentParser(description="Scrape OCCTO interconnector flows")
    p.add_argument("--scrape", required=True, choices=[s.value for s in ScrapeType])
    p.add_argument("--log-level", default="INFO")
    args = p.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    engine = get_engine()
    try:
        stats = run(engine, args.scrape)
    except IngestError as exc:
        logger.error("OCCTO scrape failed: %s", exc)
        return 1

    latest = stats["latest_datetime_saved"]
    print(
        f"Done. Stats: new_rows={stats['new_rows']}, "
        f"latest_datetime_jst={latest.astimezone(JST).isoformat() if latest else None}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
