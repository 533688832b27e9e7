from __future__ import annotations

from typing import List

from app.models.news import NewsEntry
from services.feed_contracts import NewsStore


class NewsService:
    """Read side: newest entries straight from the store."""

    def __init__(self, store: NewsStore) -> None:
        self._store = store

    async def get_news(self, limit: int) -> List[NewsEntry]:
        # limit <= 0 falls back to the store's default
        return await self._store.get_recent(limit)
