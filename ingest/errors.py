"""
ingest/errors.py

Exception taxonomy for the ingestion pipeline.

`BEST_EFFORT_ERRORS` lists the failures that are contained to a single
source file: the orchestrator records them and carries on with the rest of
the batch. Anything else aborts the run.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for all pipeline errors."""


class FetchError(IngestError):
    """A source file could not be downloaded (network error or empty body)."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


class UnsupportedScrapeScopeError(IngestError):
    """The requested scrape scope is not one of all/new/latest."""


class MalformedRowError(IngestError):
    """A data row could not be turned into a canonical record."""

    def __init__(self, message: str, raw_row=None):
        super().__init__(message)
        self.raw_row = raw_row


class MissingInterconnectorMappingError(IngestError):
    """An OCCTO interconnector name has no entry in the interconnector table."""


class UpstreamDataIntegrityError(IngestError):
    """Upstream data cannot be grouped into the expected intervals."""


BEST_EFFORT_ERRORS = (FetchError, MalformedRowError, UpstreamDataIntegrityError)
