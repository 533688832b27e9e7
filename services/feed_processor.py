from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

from services.feed_contracts import EntryStore, FeedFetcher, FeedParser
from services.ingest_errors import IngestError, ProcessError

UNKNOWN_FEED_NAME = "unknown"


@dataclass(frozen=True)
class ProcessResult:
    feed_name: str
    address: str
    items_found: int
    items_saved: int
    duration_s: float


def resolve_feed_name(address: str, feed_names: Optional[Mapping[str, str]] = None) -> str:
    """
    Display name for log lines: the configured name, else the host without a
    leading "www.", else "unknown".
    """
    if feed_names:
        name = feed_names.get(address)
        if name:
            return name
    try:
        host = urlparse(address).hostname or ""
    except ValueError:
        host = ""
    if host.startswith("www."):
        host = host[len("www."):]
    return host or UNKNOWN_FEED_NAME


class FeedProcessor:
    """
    Runs fetch -> parse -> save for one feed address.

    The fetched stream is released before the save starts. The first failing
    stage stops the run and is reported as ProcessError(stage=...).
    """

    def __init__(
        self,
        fetcher: FeedFetcher,
        parser: FeedParser,
        store: EntryStore,
        *,
        logger: Any,
        feed_names: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._fetcher = fetcher
        self._parser = parser
        self._store = store
        self._feed_names = feed_names or {}
        self._logger = logger.bind(component="feed-processor")

    def resolve_feed_name(self, address: str) -> str:
        return resolve_feed_name(address, self._feed_names)

    async def process_feed(self, address: str) -> ProcessResult:
        feed_name = self.resolve_feed_name(address)
        log = self._logger.bind(feed=feed_name, url=address)
        log.info("feed_processing_started")
        started = perf_counter()

        stage = "fetch"
        try:
            async with self._fetcher.fetch(address) as stream:
                stage = "parse"
                feed = await self._parser.parse(stream)
            stage = "save"
            saved = await self._store.save_entries(feed.entries)
        except Exception as exc:
            # a body read failing mid-parse is still a fetch failure
            if isinstance(exc, IngestError) and exc.stage != "unknown":
                stage = exc.stage
            log.error("feed_stage_failed", stage=stage, error=str(exc))
            raise ProcessError(stage, feed_name, address, exc) from exc

        duration_s = perf_counter() - started
        log.info(
            "feed_processing_completed",
            items_found=len(feed.entries),
            items_saved=saved,
            duration_ms=round(duration_s * 1000, 2),
        )
        return ProcessResult(
            feed_name=feed_name,
            address=address,
            items_found=len(feed.entries),
            items_saved=saved,
            duration_s=duration_s,
        )
