"""
ingest/run.py

End-to-end scrape orchestrator for Japanese area supply/demand data.

Responsibilities
----------------
- Discover the files to fetch for one operator (or all of them) and scope.
- Download, parse, validate and transform each file, best effort: a file
  that fails to download or parse is logged and skipped, the rest proceed.
- Write each successful file with its file record.
- Expose a CLI for scheduled and ad-hoc runs.

Conventions
-----------
- All stored timestamps are UTC; "now" and file dates are reasoned about in
  JST.
- Files for one operator are fetched in a bounded thread pool unless the
  operator is marked sequential.
- With ``--skip-known``, legacy files already recorded in `area_data_files`
  are not downloaded again. New-format files are always refetched because
  the current month keeps growing.
"""

from __future__ import annotations

import argparse
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

from .client import download_grid
from .const import JST, ScrapeType, TsoName
from .errors import BEST_EFFORT_ERRORS, FetchError, IngestError
from .load import get_engine, get_recorded_urls, save_area_data_file
from .parse import parse_legacy_csv, parse_new_csv
from .transform import AreaDataFile, build_area_file
from .tso import SUPPORTED_TSOS, SourceFile, SourceFormat, TsoConfig, get_tso
from .tso.base import resolve_scope
from .validate import validate_parsed

logger = logging.getLogger(__name__)

# Upper bound on concurrent downloads for one operator.
MAX_WORKERS = 6


def fetch_and_parse(config: TsoConfig, source: SourceFile) -> AreaDataFile | None:
    """Download one file and turn it into warehouse rows.

    Returns:
        AreaDataFile | None: None when the file holds no rows to keep
        (e.g. a legacy file entirely past the cutover).

    Raises:
        FetchError: If the download fails.
        MalformedRowError: If a row cannot be parsed or validated.
    """
    logger.debug("Downloading %s", source.url)
    grid = download_grid(source.url, source.encoding)
    if source.format is SourceFormat.OLD:
        parsed = parse_legacy_csv(grid, config.legacy_layout, config.cutover)
    else:
        parsed = parse_new_csv(grid, config.new_format)

    records = validate_parsed(parsed, source.url)
    if not records:
        logger.info("No rows kept from %s", source.url)
        return None
    return build_area_file(config.tso, source.url, records)


def collect_files(
    config: TsoConfig, sources: list[SourceFile]
) -> tuple[list[AreaDataFile], list[dict]]:
    """Fetch every source, collecting failures instead of raising them.

    Returns:
        tuple: ``(files, failures)`` where files keep discovery order and
        each failure is ``{"url": ..., "error": ...}``.
    """

    def attempt(source):
        try:
            return fetch_and_parse(config, source), None
        except BEST_EFFORT_ERRORS as exc:
            logger.error("Failed %s: %s", source.url, exc)
            return None, {"url": source.url, "error": str(exc)}

    if config.sequential or len(sources) <= 1:
        results = [attempt(s) for s in sources]
    else:
        with ThreadPoolExecutor(max_workers=MAX_WORKERS) as pool:
            results = list(pool.map(attempt, sources))

    files = [f for f, _ in results if f is not None]
    failures = [err for _, err in results if err is not None]
    return files, failures


def scrape_tso(
    engine,
    tso: TsoName,
    scope: ScrapeType,
    now: datetime | None = None,
    skip_known: bool = False,
) -> dict:
    """Run one scrape for one operator.

    Args:
        engine: SQLAlchemy engine.
        tso: Operator to scrape.
        scope: all, new or latest.
        now: Reference time for date-built URLs; defaults to the current time.
        skip_known: Skip legacy files whose URL is already recorded.

    Returns:
        dict: Per-operator stats (files found, saved, failed, rows written,
        latest block saved).

    Raises:
        UnsupportedScrapeScopeError: If `scope` is not valid.
    """
    config = get_tso(tso)
    scope = resolve_scope(scope)
    now = now or datetime.now(JST)
    stats = {
        "tso": config.tso.value,
        "sources": 0,
        "skipped": 0,
        "saved_files": 0,
        "failed_files": [],
        "new_rows": 0,
        "latest_datetime_saved": None,
    }

    logger.info("Scraping %s (%s)", config.tso.value, scope.value)
    try:
        sources = config.discover(scope, now)
    except FetchError as exc:
        logger.error("Discovery failed for %s: %s", config.tso.value, exc)
        stats["failed_files"].append({"url": exc.url, "error": str(exc)})
        return stats
    stats["sources"] = len(sources)

    if skip_known:
        known = get_recorded_urls(engine, config.tso)
        kept = [s for s in sources if not (s.format is SourceFormat.OLD and s.url in known)]
        stats["skipped"] = len(sources) - len(kept)
        sources = kept

    files, failures = collect_files(config, sources)
    stats["failed_files"].extend(failures)

    for f in files:
        saved = save_area_data_file(engine, f)
        stats["saved_files"] += 1
        stats["new_rows"] += saved["new_rows"]
        latest = saved["latest_datetime_saved"]
        if latest and (stats["latest_datetime_saved"] is None or latest > stats["latest_datetime_saved"]):
            stats["latest_datetime_saved"] = latest

    logger.info(
        "%s: %d files saved, %d failed, %d rows",
        config.tso.value, stats["saved_files"], len(stats["failed_files"]), stats["new_rows"],
    )
    return stats


def run(tso: str = "all", scope: str = "latest", skip_known: bool = False) -> list[dict]:
    """Scrape one operator, or every operator in turn.

    Returns:
        list[dict]: One stats dict per operator.
    """
    scope = resolve_scope(scope)
    engine = get_engine()
    names = SUPPORTED_TSOS if tso == "all" else [tso]
    return [scrape_tso(engine, name, scope, skip_known=skip_known) for name in names]


def main(argv=None):
    """CLI entry point for the area data scraper.

    Args:
        argv: Optional list of CLI arguments (useful for testing).

    Returns:
        int: Exit code: 0 when the job completes (even if some files
        failed), 1 on a fatal error.
    """
    parser = argparse.ArgumentParser(description="Scrape area supply/demand data")
    parser.add_argument("--tso", default="all", choices=[*SUPPORTED_TSOS, "all"])
    parser.add_argument("--scrape", required=True, choices=[s.value for s in ScrapeType])
    parser.add_argument(
        "--skip-known", action="store_true", help="Skip legacy files already ingested"
    )
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        stats = run(tso=args.tso, scope=args.scrape, skip_known=args.skip_known)
    except IngestError as exc:
        logger.error("Scrape failed: %s", exc)
        return 1

    print(f"Done. Stats: {stats}")
    return 0


if __name__ == "__main__":
    # Convert the `main()` return value into a process exit status.
    raise SystemExit(main())
