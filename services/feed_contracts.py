"""
Capabilities the ingestion pipeline consumes.

Any adapter with matching signatures can stand in for the production one
(HttpFeedFetcher, FeedParser, PostgresNewsStore); tests use in-memory fakes.
"""

from __future__ import annotations

from typing import AsyncContextManager, AsyncIterable, List, Protocol, Sequence

from app.models.news import NewsEntry, ParsedFeed

ByteStream = AsyncIterable[bytes]


class FeedFetcher(Protocol):
    def fetch(self, address: str) -> AsyncContextManager[ByteStream]:
        """
        Open the feed at `address`. The yielded stream is released when the
        context exits. Raises FetchError.
        """
        ...


class FeedParser(Protocol):
    async def parse(self, stream: ByteStream) -> ParsedFeed:
        """Decode a whole document. Raises ParseError."""
        ...


class EntryStore(Protocol):
    async def save_entries(self, entries: Sequence[NewsEntry]) -> int:
        """Insert new entries, skipping known links. Raises StoreError."""
        ...


class NewsStore(EntryStore, Protocol):
    async def get_recent(self, limit: int) -> List[NewsEntry]:
        """Newest first; limit <= 0 means the configured default. Raises StoreError."""
        ...
