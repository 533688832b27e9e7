from __future__ import annotations

import io
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import feedparser

from app.models.news import NewsEntry, ParsedFeed
from services.feed_contracts import ByteStream
from services.ingest_errors import ParseError

# Tried in order; the first match wins. strptime's %d also accepts
# single-digit days ("Mon, 2 Jan 2006 ..."). A trailing zone *name* (MST, GMT)
# is not resolved to an offset: the wall-clock time is read as UTC.
_PUB_DATE_FORMATS: Tuple[Tuple[str, bool], ...] = (
    ("%a, %d %b %Y %H:%M:%S %z", False),  # RFC 1123, numeric zone
    ("%a, %d %b %Y %H:%M:%S", True),      # RFC 1123, zone name
    ("%d %b %y %H:%M %z", False),         # RFC 822, numeric zone
    ("%d %b %y %H:%M", True),             # RFC 822, zone name
)


class EntrySkipped(Exception):
    """A single entry could not be normalized; the rest of the feed is kept."""

    def __init__(self, reason: str, entry_raw: Dict[str, Any] | None = None):
        super().__init__(reason)
        self.reason = reason
        self.entry_raw = entry_raw or {}


def _split_zone_name(value: str) -> Optional[str]:
    head, sep, zone = value.rpartition(" ")
    if not sep or not zone.isalpha() or len(zone) > 5:
        return None
    return head


def _parse_iso8601(value: str) -> Optional[datetime]:
    text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_pub_date(value: str) -> datetime:
    """
    Parse an RSS/Atom timestamp into an aware datetime.

    RFC 1123 and RFC 822 layouts come first, ISO 8601 (Atom) last.
    Raises ValueError when no format matches.
    """
    text = (value or "").strip()
    for layout, zone_name in _PUB_DATE_FORMATS:
        candidate = text
        if zone_name:
            candidate = _split_zone_name(text)
            if candidate is None:
                continue
        try:
            parsed = datetime.strptime(candidate, layout)
        except ValueError:
            continue
        if zone_name:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    iso = _parse_iso8601(text) if text else None
    if iso is not None:
        return iso
    raise ValueError(f"could not parse date in any known format: {value!r}")


def _get_first_content_value(entry: Dict[str, Any]) -> str:
    content = entry.get("content")
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict):
                val = block.get("value")
                if isinstance(val, str) and val.strip():
                    return val
    return ""


def _extract_title(entry: Dict[str, Any]) -> str:
    title = entry.get("title")
    if isinstance(title, str):
        return title.strip()
    return ""


def _extract_link(entry: Dict[str, Any]) -> str:
    link = entry.get("link")
    if isinstance(link, str) and link.strip():
        return link.strip()

    links = entry.get("links")
    if isinstance(links, list):
        for link_entry in links:
            if not isinstance(link_entry, dict):
                continue
            rel = str(link_entry.get("rel") or "").lower()
            href = link_entry.get("href")
            if isinstance(href, str) and href.strip() and rel in ("", "alternate"):
                return href.strip()

    entry_id = entry.get("id")
    if isinstance(entry_id, str) and entry_id.strip().startswith(("http://", "https://")):
        return entry_id.strip()
    return ""


def _extract_description(entry: Dict[str, Any]) -> str:
    summary = entry.get("summary") or entry.get("description")
    if isinstance(summary, str) and summary.strip():
        return summary.strip()
    return _get_first_content_value(entry).strip()


def _extract_raw_pub_date(entry: Dict[str, Any]) -> str:
    for key in ("published", "updated"):
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def normalize_entry(entry: Dict[str, Any]) -> NewsEntry:
    """Map one feedparser entry to a NewsEntry. Raises EntrySkipped."""
    link = _extract_link(entry)
    if not link:
        raise EntrySkipped("missing_link", entry_raw=entry)

    raw_date = _extract_raw_pub_date(entry)
    try:
        published_at = parse_pub_date(raw_date)
    except ValueError as exc:
        raise EntrySkipped(str(exc), entry_raw=entry) from exc

    return NewsEntry(
        title=_extract_title(entry),
        link=link,
        description=_extract_description(entry),
        published_at=published_at,
    )


def _decode_failure(parsed: Any) -> Optional[str]:
    if parsed.get("bozo"):
        exc = parsed.get("bozo_exception")
        if not isinstance(exc, feedparser.CharacterEncodingOverride):
            return str(exc) if exc else "malformed document"
    if not parsed.get("version"):
        return "document is not an RSS or Atom feed"
    return None


class FeedParser:
    """
    RSS 2.0 / Atom parser built on feedparser.

    A document that cannot be decoded raises ParseError. Entries with no link or
    an unparsable publish date are dropped with a warning.
    """

    def __init__(self, *, logger: Any) -> None:
        self._logger = logger.bind(component="feed-parser")

    async def parse(self, stream: ByteStream) -> ParsedFeed:
        chunks: List[bytes] = []
        async for chunk in stream:
            chunks.append(chunk)
        return self.parse_document(b"".join(chunks))

    def parse_document(self, document: bytes) -> ParsedFeed:
        # a file-like object keeps feedparser from treating the body as a path or URL
        parsed = feedparser.parse(io.BytesIO(document))
        failure = _decode_failure(parsed)
        if failure is not None:
            self._logger.error("feed_decode_failed", error=failure)
            raise ParseError(f"failed to decode feed: {failure}")

        feed_meta = parsed.get("feed") or {}
        entries: List[NewsEntry] = []
        for raw_entry in parsed.get("entries") or []:
            try:
                entries.append(normalize_entry(raw_entry))
            except EntrySkipped as skipped:
                self._logger.warning(
                    "feed_entry_skipped",
                    reason=skipped.reason,
                    pub_date=_extract_raw_pub_date(skipped.entry_raw),
                    item_title=_extract_title(skipped.entry_raw),
                )

        return ParsedFeed(
            title=str(feed_meta.get("title") or "").strip(),
            link=str(feed_meta.get("link") or "").strip(),
            description=str(feed_meta.get("subtitle") or feed_meta.get("description") or "").strip(),
            entries=tuple(entries),
        )
