"""
ingest/tso/base.py

Shared types for the per-operator source discovery modules.

Each operator module exposes a `discover_sources(scope, now)` function and a
module-level `CONFIG` (`TsoConfig`) that ties discovery to the parser
settings for that operator's files.

Conventions
-----------
- `now` is always passed in explicitly so discovery that builds URLs from
  dates (monthly or daily files) is deterministic under test.
- Archive pages are only fetched when the scope needs them: a `latest`
  scrape never touches the legacy listing.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ..const import ScrapeType, TsoName
from ..errors import UnsupportedScrapeScopeError
from ..parse import LegacyLayout, NewFormatConfig

# Column order shared by most legacy hourly files.
STANDARD_LEGACY_COLUMNS = (
    "date",
    "time",
    "total_demand_kwh",
    "nuclear_kwh",
    "all_fossil_kwh",
    "hydro_kwh",
    "geothermal_kwh",
    "biomass_kwh",
    "solar_output_kwh",
    "solar_throttling_kwh",
    "wind_output_kwh",
    "wind_throttling_kwh",
    "pumped_storage_kwh",
    "interconnectors_kwh",
)


class SourceFormat(str, Enum):
    OLD = "old"
    NEW = "new"


@dataclass(frozen=True)
class SourceFile:
    """One downloadable data file."""

    url: str
    format: SourceFormat
    encoding: str = "cp932"


@dataclass(frozen=True)
class TsoConfig:
    """Everything the orchestrator needs to scrape one operator.

    Attributes:
        tso: Operator identifier.
        discover: ``discover_sources(scope, now)`` for this operator.
        legacy_layout: Layout of the pre-2024 hourly files.
        new_format: Quirks of the 30-minute files.
        cutover: Legacy rows at or after this instant are dropped.
        sequential: Fetch files one at a time instead of in a thread pool.
    """

    tso: TsoName
    discover: Callable[[ScrapeType, datetime], list[SourceFile]]
    legacy_layout: LegacyLayout
    new_format: NewFormatConfig = field(default_factory=NewFormatConfig)
    cutover: datetime | None = None
    sequential: bool = False


def resolve_scope(scope) -> ScrapeType:
    """Coerce `scope` to a `ScrapeType`.

    Raises:
        UnsupportedScrapeScopeError: If `scope` is not all/new/latest.
    """
    try:
        return ScrapeType(scope)
    except ValueError:
        raise UnsupportedScrapeScopeError(f"Invalid scrape type: {scope!r}") from None


def by_scope(
    scope,
    *,
    old: Callable[[], list[SourceFile]],
    new: Callable[[], list[SourceFile]],
    latest: Callable[[], list[SourceFile]],
) -> list[SourceFile]:
    """Select sources for `scope`, calling only the listings it needs.

    - all: ``old() + new()``
    - new: ``new()``
    - latest: ``latest()``
    """
    scope = resolve_scope(scope)
    if scope is ScrapeType.LATEST:
        return latest()
    sources = new()
    if scope is ScrapeType.ALL:
        sources = old() + sources
    return sources


def as_sources(urls, fmt: SourceFormat, encoding: str = "cp932") -> list[SourceFile]:
    return [SourceFile(url, SourceFormat(fmt), encoding) for url in urls]
