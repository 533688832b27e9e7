from __future__ import annotations

from typing import Optional


class IngestError(Exception):
    """Base class for failures of one ingestion stage."""

    stage: str = "unknown"


class FetchError(IngestError):
    """
    The feed could not be retrieved: transport failure, timeout, invalid
    address, or a non-200 response (status_code is set in that case).
    """

    stage = "fetch"

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(IngestError):
    """
    The document could not be decoded as a feed at all.
    Individual entries with unusable dates are skipped, not raised.
    """

    stage = "parse"


class StoreError(IngestError):
    """Persistence failed (connection, query, timeout)."""

    stage = "save"


class ProcessError(Exception):
    """
    One feed's processing failed at `stage` (fetch | parse | save).
    The original stage error is chained as __cause__.
    """

    def __init__(self, stage: str, feed_name: str, address: str, cause: BaseException):
        super().__init__(f"{stage} failed for {feed_name}: {cause}")
        self.stage = stage
        self.feed_name = feed_name
        self.address = address
        self.cause = cause
