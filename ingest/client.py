"""
ingest/client.py

HTTP client and raw-file decoding for operator data files.

Responsibilities
---------------
- Perform HTTP GET requests with a bounded timeout, a custom User-Agent,
  and exponential backoff retries for transient failures.
- Retry zero-byte responses a few times: some operators intermittently
  serve an empty body for a file that exists.
- Turn a downloaded CSV, ZIP (single CSV inside) or XLS/XLSX file into a
  grid of strings (`list[list[str]]`).
- Trim summary and padding rows from the end of a grid.
- Discover file links on an HTML page (BeautifulSoup) and fetch JSON or
  plain-text file lists.

Environment Variables
---------------------
SCRAPER_USER_AGENT
    Optional override for the User-Agent header.
SCRAPER_HTTP_TIMEOUT
    Per-request timeout in seconds (default 10).

Notes
-----
- Encodings follow Python codec names. Operators publishing "Shift_JIS"
  files actually use the Windows superset, so callers pass ``cp932``.
- Undecodable bytes are replaced rather than raised, so one bad byte in a
  label row does not lose the file.
- A body that cannot be unpacked or read as a workbook raises
  `MalformedRowError`, so the orchestrator skips just that file.
"""

from __future__ import annotations

import csv
import io
import logging
import os
import re
import time
import zipfile
from datetime import date, datetime
from datetime import time as dtime
from urllib.parse import urljoin, urlparse

import pandas as pd
import requests
from bs4 import BeautifulSoup
from dotenv import load_dotenv
from openpyxl.utils.exceptions import InvalidFileException

from .errors import FetchError, MalformedRowError

load_dotenv()

logger = logging.getLogger(__name__)

# HTTP client settings.
HTTP_TIMEOUT = float(os.getenv("SCRAPER_HTTP_TIMEOUT", "10"))  # seconds
USER_AGENT = os.getenv(
    "SCRAPER_USER_AGENT", "japan-grid-carbon/0.1 (+https://github.com/)"
)
MAX_RETRIES = 5  # total attempts including the first try
EMPTY_BODY_RETRIES = 3  # extra attempts when the body is zero bytes
EMPTY_BODY_WAIT = 1  # seconds between empty-body retries

# First-cell marker of summary rows (合計 etc.) at the end of some files.
SUMMARY_MARKER = "合"


def http_get(url: str, **kwargs) -> requests.Response:
    """GET `url` with timeout, User-Agent and exponential backoff.

    Args:
        url: Absolute URL to fetch.
        **kwargs: Passed through to `requests.get` (e.g. ``params``).

    Returns:
        requests.Response: A response with a 2xx status.

    Raises:
        FetchError: If every attempt failed with a `requests` exception.
    """
    headers = {"User-Agent": USER_AGENT}

    for attempt in range(MAX_RETRIES):
        try:
            r = requests.get(url, headers=headers, timeout=HTTP_TIMEOUT, **kwargs)
            r.raise_for_status()
            return r
        except requests.RequestException as exc:
            # On the final attempt, surface a pipeline error to the caller.
            if attempt == MAX_RETRIES - 1:
                raise FetchError(url, str(exc)) from exc
            logger.warning("GET %s failed (%s), retry %d", url, exc, attempt + 1)
            # Exponential backoff: 1, 2, 4, 8... seconds between retries.
            time.sleep(2**attempt)

    raise RuntimeError("Unreachable")


def fetch_bytes(url: str) -> bytes:
    """Download `url` and return the body, retrying empty responses.

    Raises:
        FetchError: On network failure, or if the body is still empty after
            `EMPTY_BODY_RETRIES` extra attempts.
    """
    for attempt in range(EMPTY_BODY_RETRIES + 1):
        content = http_get(url).content
        if content:
            return content
        if attempt < EMPTY_BODY_RETRIES:
            logger.warning("Empty response for %s, retry %d", url, attempt + 1)
            time.sleep(EMPTY_BODY_WAIT)
    raise FetchError(url, "empty response")


def fetch_text(url: str, encoding: str | None = None) -> str:
    """Download `url` as text, decoding with `encoding` when given."""
    r = http_get(url)
    if encoding:
        return r.content.decode(encoding, errors="replace")
    return r.text


def fetch_json(url: str):
    """Download `url` and parse the body as JSON.

    Raises:
        FetchError: On network failure or when the body is not JSON (e.g. an
            HTML error page served with a 200).
    """
    r = http_get(url)
    try:
        return r.json()
    except requests.JSONDecodeError as exc:
        raise FetchError(url, f"invalid JSON: {exc}") from exc


def get_urls_from_page(page_url: str, pattern: str) -> list[str]:
    """Return absolute URLs of links on `page_url` whose href matches `pattern`.

    Relative hrefs are resolved against the page URL. The result is sorted
    and de-duplicated so discovery order is stable between runs.
    """
    html = fetch_text(page_url)
    soup = BeautifulSoup(html, "html.parser")
    regex = re.compile(pattern)
    urls = set()
    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if regex.search(href):
            urls.add(urljoin(page_url, href))
    return sorted(urls)


def file_kind(url: str) -> str:
    """Infer the file container from the URL path: ``zip``, ``xls`` or ``csv``."""
    path = urlparse(url).path.lower()
    if path.endswith(".zip"):
        return "zip"
    if path.endswith((".xls", ".xlsx")):
        return "xls"
    return "csv"


def text_to_grid(text: str) -> list[list[str]]:
    """Split CSV text into rows of cells, dropping completely empty lines."""
    return [row for row in csv.reader(io.StringIO(text)) if row]


def unzip_single(content: bytes) -> bytes:
    """Return the bytes of the first file in a ZIP archive, ignoring folders."""
    with zipfile.ZipFile(io.BytesIO(content)) as zf:
        for info in zf.infolist():
            if info.is_dir():
                continue
            return zf.read(info)
    raise ValueError("ZIP archive contains no files")


def _excel_cell(value, column: int) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    if isinstance(value, (datetime, date)) and column == 0:
        return value.strftime("%Y/%m/%d")
    if isinstance(value, datetime) and column == 1:
        return value.strftime("%H:%M")
    if isinstance(value, dtime):
        return value.strftime("%H:%M")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def excel_to_grid(content: bytes) -> list[list[str]]:
    """Read the first sheet of an XLS/XLSX workbook into a string grid.

    Date cells in the first column become ``YYYY/MM/DD`` and time cells in
    the second column become ``HH:MM``, matching the CSV layouts.
    """
    df = pd.read_excel(io.BytesIO(content), sheet_name=0, header=None, dtype=object)
    grid = []
    for values in df.itertuples(index=False, name=None):
        row = [_excel_cell(v, i) for i, v in enumerate(values)]
        if any(row):
            grid.append(row)
    return grid


def trim_tail_rows(grid: list[list[str]]) -> list[list[str]]:
    """Drop trailing padding and summary rows.

    Working back from the end only, a row is removed while it has two or
    fewer cells, is entirely blank, or starts with the summary marker. The
    first row that fails all three checks stops the trim.
    """
    end = len(grid)
    while end > 0:
        row = grid[end - 1]
        if len(row) <= 2 or all(c == "" for c in row) or SUMMARY_MARKER in row[0]:
            end -= 1
        else:
            break
    return grid[:end]


def download_grid(url: str, encoding: str, kind: str | None = None) -> list[list[str]]:
    """Download a data file and return it as a trimmed grid of strings.

    Args:
        url: File URL.
        encoding: Text encoding for CSV content (ignored for spreadsheets).
        kind: Container type; inferred from the URL when omitted.

    Returns:
        list[list[str]]: Rows of cells with trailing summary rows removed.

    Raises:
        FetchError: If the file cannot be downloaded.
        MalformedRowError: If the body is not a readable ZIP or workbook.
    """
    kind = kind or file_kind(url)
    content = fetch_bytes(url)
    try:
        if kind == "xls":
            grid = excel_to_grid(content)
        else:
            if kind == "zip":
                content = unzip_single(content)
            grid = text_to_grid(content.decode(encoding, errors="replace"))
    except (zipfile.BadZipFile, InvalidFileException, ValueError, KeyError, OSError) as exc:
        logger.error("Could not read %s as %s: %s", url, kind, exc)
        raise MalformedRowError(f"Could not read {url} as {kind}: {exc}") from exc
    logger.debug("Downloaded %s: %d rows", url, len(grid))
    return trim_tail_rows(grid)
