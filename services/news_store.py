from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Sequence

import asyncpg

from app.models.news import NewsEntry
from services.db_service import execute_with_timing, run_in_transaction
from services.ingest_errors import StoreError

DEFAULT_NEWS_LIMIT = 10
DEFAULT_QUERY_TIMEOUT_S = 10.0

_STORE_FAILURES = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)

INSERT_ENTRIES_SQL = """
INSERT INTO news (title, content, pub_date, link)
SELECT * FROM unnest($1::text[], $2::text[], $3::timestamptz[], $4::text[])
ON CONFLICT (link) DO NOTHING
"""

SELECT_RECENT_SQL = """
SELECT title, content, pub_date, link
FROM news
ORDER BY pub_date DESC, id DESC
LIMIT $1
"""


def _inserted_count(status: str) -> int:
    # asyncpg returns the command tag, e.g. "INSERT 0 3"
    try:
        return int(str(status).rsplit(" ", 1)[-1])
    except ValueError:
        return 0


def _dedupe_by_link(entries: Sequence[NewsEntry]) -> List[NewsEntry]:
    unique: Dict[str, NewsEntry] = {}
    for entry in entries:
        unique.setdefault(entry.link, entry)
    return list(unique.values())


class PostgresNewsStore:
    """
    News entries in PostgreSQL, unique by link.

    save_entries() writes the whole batch in one statement inside one
    transaction and returns how many rows were actually new.
    """

    def __init__(
        self,
        pool: Any,
        *,
        logger: Any,
        default_limit: int = DEFAULT_NEWS_LIMIT,
        query_timeout_s: float = DEFAULT_QUERY_TIMEOUT_S,
    ) -> None:
        if default_limit <= 0:
            raise ValueError("default_limit must be positive")
        self._pool = pool
        self._logger = logger.bind(component="news-store")
        self.default_limit = default_limit
        self.query_timeout_s = query_timeout_s

    async def save_entries(self, entries: Sequence[NewsEntry]) -> int:
        if not entries:
            return 0

        batch = _dedupe_by_link(entries)
        columns = (
            [e.title for e in batch],
            [e.description for e in batch],
            [e.published_at for e in batch],
            [e.link for e in batch],
        )
        try:
            async with run_in_transaction(self._pool) as conn:
                status = await execute_with_timing(
                    conn,
                    "execute",
                    INSERT_ENTRIES_SQL,
                    *columns,
                    timeout=self.query_timeout_s,
                    logger=self._logger,
                )
        except _STORE_FAILURES as exc:
            self._logger.error("news_save_failed", batch_size=len(batch), error=str(exc))
            raise StoreError(f"failed to save news batch: {exc}") from exc

        inserted = _inserted_count(status)
        self._logger.debug("news_saved", batch_size=len(batch), inserted=inserted)
        return inserted

    async def get_recent(self, limit: int) -> List[NewsEntry]:
        if limit <= 0:
            limit = self.default_limit

        try:
            async with self._pool.acquire() as conn:
                rows = await execute_with_timing(
                    conn,
                    "fetch",
                    SELECT_RECENT_SQL,
                    limit,
                    timeout=self.query_timeout_s,
                    logger=self._logger,
                )
        except _STORE_FAILURES as exc:
            self._logger.error("news_query_failed", limit=limit, error=str(exc))
            raise StoreError(f"failed to query news: {exc}") from exc

        return [
            NewsEntry(
                title=row["title"],
                link=row["link"],
                description=row["content"],
                published_at=row["pub_date"],
            )
            for row in rows
        ]

    async def close(self) -> None:
        await self._pool.close()
        self._logger.info("db_pool_closed")
