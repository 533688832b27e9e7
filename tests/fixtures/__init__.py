# tests/fixtures/__init__.py
"""
Test doubles and sample documents for the ingest pipeline tests.

- make_entry() / make_rss()
- FakeFetcher, RecordingParser, InMemoryNewsStore
- FakePool / FakeConnection for store and migration SQL
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import structlog

from app.models.news import NewsEntry, ParsedFeed
from services.ingest_errors import StoreError

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

SAMPLE_RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Test Feed</title>
    <link>http://example.com</link>
    <description>Test Description</description>
    <item>
      <title>Item 1</title>
      <link>http://example.com/item1</link>
      <description>Item 1 Description</description>
      <pubDate>Mon, 02 Jan 2006 15:04:05 MST</pubDate>
    </item>
    <item>
      <title>Item 2</title>
      <link>http://example.com/item2</link>
      <description>Item 2 Description</description>
      <pubDate>Tue, 03 Jan 2006 12:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Item 3</title>
      <link>http://example.com/item3</link>
      <description>Item 3 Description</description>
      <pubDate>not-a-date</pubDate>
    </item>
  </channel>
</rss>
"""

SAMPLE_ATOM = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Example</title>
  <subtitle>Updates from the example site</subtitle>
  <link href="https://atom.example.com/" rel="alternate"/>
  <id>urn:uuid:60a76c80-d399-11d9-b93C-0003939e0af6</id>
  <updated>2024-05-01T10:00:00Z</updated>
  <entry>
    <title>First post</title>
    <link href="https://atom.example.com/posts/1" rel="alternate"/>
    <id>urn:uuid:1225c695-cfb8-4ebb-aaaa-80da344efa6a</id>
    <updated>2024-05-01T10:00:00Z</updated>
    <summary>Short summary</summary>
  </entry>
</feed>
"""


def make_logger() -> Any:
    return structlog.get_logger()


def make_entry(index: int = 0, *, prefix: str = "https://news.example.com/item", **overrides: Any) -> NewsEntry:
    data: Dict[str, Any] = {
        "title": f"Item {index}",
        "link": f"{prefix}{index}",
        "description": f"Description {index}",
        "published_at": BASE_TIME + timedelta(minutes=index),
    }
    data.update(overrides)
    return NewsEntry(**data)


def make_rss(items: Sequence[tuple[str, str]], *, title: str = "Generated Feed") -> bytes:
    """Build an RSS document from (link, pubDate) pairs."""
    parts = [f'<?xml version="1.0" encoding="UTF-8"?><rss version="2.0"><channel><title>{title}</title>']
    for idx, (link, pub_date) in enumerate(items):
        parts.append(
            f"<item><title>Entry {idx}</title><link>{link}</link>"
            f"<description>Body {idx}</description><pubDate>{pub_date}</pubDate></item>"
        )
    parts.append("</channel></rss>")
    return "".join(parts).encode("utf-8")


async def _chunks(document: bytes, size: int = 64) -> AsyncIterator[bytes]:
    for start in range(0, len(document), size):
        yield document[start:start + size]


class FakeFetcher:
    """Serves documents from memory; records calls and released streams."""

    def __init__(
        self,
        documents: Optional[Dict[str, bytes]] = None,
        *,
        errors: Optional[Dict[str, Exception]] = None,
        delay_s: float = 0.0,
    ) -> None:
        self.documents = dict(documents or {})
        self.errors = dict(errors or {})
        self.delay_s = delay_s
        self.calls: List[str] = []
        self.released: List[str] = []
        self.closed = False

    @asynccontextmanager
    async def fetch(self, address: str) -> AsyncIterator[AsyncIterator[bytes]]:
        self.calls.append(address)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if address in self.errors:
            raise self.errors[address]
        try:
            yield _chunks(self.documents[address])
        finally:
            self.released.append(address)

    async def aclose(self) -> None:
        self.closed = True


class RecordingParser:
    """Counts parse() calls; delegates to `inner` or raises `error`."""

    def __init__(self, inner: Any = None, *, error: Optional[Exception] = None) -> None:
        self.inner = inner
        self.error = error
        self.calls = 0

    async def parse(self, stream: Any) -> ParsedFeed:
        self.calls += 1
        if self.error is not None:
            raise self.error
        if self.inner is not None:
            return await self.inner.parse(stream)
        async for _ in stream:
            pass
        return ParsedFeed(title="empty")


class InMemoryNewsStore:
    """Unique-by-link store with the same contract as PostgresNewsStore."""

    def __init__(self, *, default_limit: int = 10, fail_with: Optional[Exception] = None) -> None:
        self.default_limit = default_limit
        self.fail_with = fail_with
        self.rows: Dict[str, NewsEntry] = {}
        self.save_calls = 0
        self.on_save: Optional[Any] = None
        self.closed = False

    async def save_entries(self, entries: Sequence[NewsEntry]) -> int:
        self.save_calls += 1
        if self.on_save is not None:
            self.on_save()
        if self.fail_with is not None:
            raise self.fail_with
        inserted = 0
        for entry in entries:
            if entry.link not in self.rows:
                self.rows[entry.link] = entry
                inserted += 1
        return inserted

    async def get_recent(self, limit: int) -> List[NewsEntry]:
        if self.fail_with is not None:
            raise self.fail_with
        if limit <= 0:
            limit = self.default_limit
        ordered = sorted(self.rows.values(), key=lambda e: e.published_at, reverse=True)
        return ordered[:limit]

    async def close(self) -> None:
        self.closed = True


def failing_store() -> InMemoryNewsStore:
    return InMemoryNewsStore(fail_with=StoreError("connection refused"))


class FakeTransaction:
    def __init__(self, conn: "FakeConnection") -> None:
        self.conn = conn

    async def start(self) -> None:
        self.conn.events.append("begin")

    async def commit(self) -> None:
        self.conn.events.append("commit")

    async def rollback(self) -> None:
        self.conn.events.append("rollback")


class FakeConnection:
    """Records SQL; returns canned statuses/rows."""

    def __init__(
        self,
        *,
        status: str = "INSERT 0 0",
        rows: Optional[List[Dict[str, Any]]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.status = status
        self.rows = rows or []
        self.error = error
        self.events: List[str] = []
        self.calls: List[tuple] = []

    def transaction(self, isolation: Optional[str] = None) -> FakeTransaction:
        return FakeTransaction(self)

    async def execute(self, query: str, *args: Any, timeout: Optional[float] = None) -> str:
        self.calls.append(("execute", query, args, timeout))
        if self.error is not None:
            raise self.error
        return self.status

    async def fetch(self, query: str, *args: Any, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        self.calls.append(("fetch", query, args, timeout))
        if self.error is not None:
            raise self.error
        return list(self.rows)


class FakePool:
    def __init__(self, conn: FakeConnection) -> None:
        self.conn = conn
        self.acquired = 0
        self.closed = False

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[FakeConnection]:
        self.acquired += 1
        yield self.conn

    async def close(self) -> None:
        self.closed = True
