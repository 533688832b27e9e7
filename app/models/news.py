from __future__ import annotations

from datetime import datetime
from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field


class NewsEntry(BaseModel):
    """
    One normalized news item.

    `link` is the natural identity: the store keeps at most one row per link.
    Instances are immutable once the parser has built them.
    """

    model_config = ConfigDict(frozen=True)

    title: str
    link: str = Field(min_length=1)
    description: str = ""
    published_at: datetime


class ParsedFeed(BaseModel):
    """
    A remote feed as parsed in a single processing cycle.

    Never persisted as a unit; only its entries are.
    """

    model_config = ConfigDict(frozen=True)

    title: str = ""
    link: str = ""
    description: str = ""
    entries: Tuple[NewsEntry, ...] = ()
