"""
Feed sources registry loader.

Parses configs/news_sources.yml into FeedSource objects. The registry is read
once at startup; any problem with it is fatal, so every check raises
NewsSourcesConfigError instead of skipping the entry.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlparse

import yaml

from app.config import DEFAULT_NEWS_SOURCES_PATH


class NewsSourcesConfigError(Exception):
    """The feed sources file is missing, unreadable or invalid."""


@dataclass(frozen=True)
class FeedSource:
    """Single RSS/Atom feed definition."""

    address: str
    display_name: str


def load_news_sources_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the raw YAML mapping."""
    cfg_path = Path(path) if path else DEFAULT_NEWS_SOURCES_PATH
    try:
        text = cfg_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise NewsSourcesConfigError(f"cannot read news sources file {cfg_path}: {exc}") from exc

    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise NewsSourcesConfigError(f"cannot parse YAML from {cfg_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise NewsSourcesConfigError(
            f"news sources file {cfg_path} must contain a mapping, got {type(data).__name__}"
        )
    return data


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _validate_source(index: int, raw: object) -> FeedSource:
    if not isinstance(raw, dict):
        raise NewsSourcesConfigError(f"feeds[{index}] must be a mapping, got {type(raw).__name__}")

    url = str(raw.get("url") or "").strip()
    name = str(raw.get("name") or "").strip()
    if not url or not _is_http_url(url):
        raise NewsSourcesConfigError(f"invalid url in feeds[{index}]: {raw.get('url')!r}")
    if not name:
        raise NewsSourcesConfigError(f"feed name cannot be empty for url: {url}")
    return FeedSource(address=url, display_name=name)


def parse_feed_sources(data: Mapping[str, Any]) -> Tuple[FeedSource, ...]:
    raw_feeds = data.get("feeds")
    if not isinstance(raw_feeds, list) or not raw_feeds:
        raise NewsSourcesConfigError("feeds must be a non-empty list")

    sources: List[FeedSource] = []
    seen: set[str] = set()
    for idx, raw in enumerate(raw_feeds):
        source = _validate_source(idx, raw)
        if source.address in seen:
            raise NewsSourcesConfigError(f"duplicate feed url: {source.address}")
        seen.add(source.address)
        sources.append(source)
    return tuple(sources)


def load_feed_sources(path: Optional[Path] = None) -> Tuple[FeedSource, ...]:
    """Read and validate the registry. Raises NewsSourcesConfigError."""
    return parse_feed_sources(load_news_sources_config(path))


def feed_names(sources: Sequence[FeedSource]) -> Mapping[str, str]:
    """Read-only address → display name lookup, used for diagnostics only."""
    return MappingProxyType({s.address: s.display_name for s in sources})
