# app/runtime.py
"""
Object graph shared by the API process and the worker CLI.

build() wires settings -> pool -> migrations -> store / fetcher / parser ->
processor -> scheduler. aclose() tears it down in reverse: the scheduler is
stopped before the HTTP client and the pool are closed.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from app.config import Settings
from app.models.news_sources import FeedSource, feed_names, load_feed_sources
from services.db_service import create_pool
from services.feed_parser import FeedParser
from services.feed_processor import FeedProcessor
from services.feed_scheduler import FeedScheduler
from services.http_fetcher import HttpFeedFetcher
from services.news_schema import apply_migrations
from services.news_service import NewsService
from services.news_store import PostgresNewsStore


@dataclass
class IngestRuntime:
    sources: tuple[FeedSource, ...]
    fetcher: Any
    store: Any
    processor: FeedProcessor
    scheduler: FeedScheduler
    news_service: NewsService
    logger: Any

    @classmethod
    async def build(
        cls,
        settings: Settings,
        *,
        logger: Any,
        sources_path: Optional[Path] = None,
    ) -> "IngestRuntime":
        sources = load_feed_sources(sources_path or settings.NEWS_SOURCES_PATH)
        logger.info("news_sources_loaded", feed_count=len(sources))

        pool = await create_pool(
            settings.DATABASE_URL,
            min_size=settings.DB_POOL_MIN_SIZE,
            max_size=settings.DB_POOL_MAX_SIZE,
            command_timeout=settings.DB_QUERY_TIMEOUT_S,
            logger=logger,
        )
        try:
            await apply_migrations(pool, logger=logger)
        except Exception:
            await pool.close()
            raise

        store = PostgresNewsStore(
            pool,
            logger=logger,
            default_limit=settings.DEFAULT_NEWS_LIMIT,
            query_timeout_s=settings.DB_QUERY_TIMEOUT_S,
        )
        fetcher = HttpFeedFetcher(
            logger=logger,
            timeout_s=settings.FETCH_TIMEOUT_S,
            user_agent=settings.USER_AGENT,
        )
        return cls.assemble(
            sources,
            fetcher=fetcher,
            parser=FeedParser(logger=logger),
            store=store,
            interval_s=settings.PROCESSING_INTERVAL,
            feed_timeout_s=settings.FEED_TIMEOUT_S,
            logger=logger,
        )

    @classmethod
    def assemble(
        cls,
        sources: tuple[FeedSource, ...],
        *,
        fetcher: Any,
        parser: Any,
        store: Any,
        interval_s: float,
        feed_timeout_s: float,
        logger: Any,
    ) -> "IngestRuntime":
        """Wire already-built capabilities together (tests pass fakes here)."""
        processor = FeedProcessor(
            fetcher,
            parser,
            store,
            logger=logger,
            feed_names=feed_names(sources),
        )
        scheduler = FeedScheduler(
            processor,
            [s.address for s in sources],
            interval_s,
            logger=logger,
            feed_timeout_s=feed_timeout_s,
        )
        return cls(
            sources=sources,
            fetcher=fetcher,
            store=store,
            processor=processor,
            scheduler=scheduler,
            news_service=NewsService(store),
            logger=logger,
        )

    async def aclose(self) -> None:
        try:
            try:
                await self.scheduler.stop()
            finally:
                aclose_fetcher = getattr(self.fetcher, "aclose", None)
                if aclose_fetcher is not None:
                    await aclose_fetcher()
        finally:
            close_store = getattr(self.store, "close", None)
            if close_store is not None:
                await close_store()
        self.logger.info("ingest_runtime_closed")
