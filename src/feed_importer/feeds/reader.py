"""HTTP feed reader.

Fetches a feed with ``httpx`` and parses it with ``feedparser``, then converts
the feedparser entries into :class:`~feed_importer.feeds.items.FeedItem`
instances.  Every failure surfaces as a single
:class:`~feed_importer.core.exceptions.FetchError` whose message is recorded
verbatim in the run history.
"""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

import feedparser
import httpx

from feed_importer.core.exceptions import FetchError
from feed_importer.feeds.items import Category, Enclosure, FeedItem, ParsedFeed

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "FeedImporter/1.0 (+https://github.com/feed-importer)"


class FeedReader(Protocol):
    def fetch(self, url: str) -> ParsedFeed: ...


# ---------------------------------------------------------------------------
# Entry conversion
# ---------------------------------------------------------------------------


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _entry_datetime(entry: Any) -> datetime | None:
    """Extract a timezone-aware publication datetime from a feedparser entry."""
    pub_struct = entry.get("published_parsed") or entry.get("updated_parsed")
    if pub_struct is None:
        return None
    try:
        ts = calendar.timegm(pub_struct)
        return datetime.fromtimestamp(ts, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _entry_content(entry: Any) -> str:
    for block in entry.get("content") or []:
        value = _text(block.get("value"))
        if value:
            return value
    return ""


def _entry_author(entry: Any) -> str:
    """Return the name part of the entry author.  The raw ``author`` string may be an email."""
    detail = entry.get("author_detail") or {}
    return _text(detail.get("name"))


def _entry_urls(blocks: Any) -> list[str]:
    urls: list[str] = []
    for block in blocks or []:
        url = _text(block.get("url"))
        if url:
            urls.append(url)
    return urls


def entry_to_item(entry: Any) -> FeedItem:
    """Convert one feedparser entry into a :class:`FeedItem`.

    Args:
        entry: A ``feedparser.FeedParserDict`` entry.

    Returns:
        The parser-independent item.
    """
    return FeedItem(
        title=_text(entry.get("title")),
        link=_text(entry.get("link")),
        guid=_text(entry.get("id")),
        description=_text(entry.get("summary")),
        content=_entry_content(entry),
        published=_entry_datetime(entry),
        author=_entry_author(entry),
        categories=[
            Category(term=_text(tag.get("term")), label=_text(tag.get("label")))
            for tag in entry.get("tags") or []
        ],
        media_content=_entry_urls(entry.get("media_content")),
        media_thumbnails=_entry_urls(entry.get("media_thumbnail")),
        enclosures=[
            Enclosure(url=_text(enc.get("href") or enc.get("url")), type=_text(enc.get("type")))
            for enc in entry.get("enclosures") or []
        ],
    )


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------


class HttpFeedReader:
    """Fetch and parse RSS/Atom feeds over HTTP.

    Args:
        timeout: Request timeout in seconds.
        user_agent: ``User-Agent`` header value.
        http_client: Optional injected :class:`httpx.Client`.  When omitted a
            short-lived client is created per fetch.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._timeout = timeout
        self._user_agent = user_agent
        self._http_client = http_client

    def _build_http_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self._timeout,
            follow_redirects=True,
            headers={"User-Agent": self._user_agent},
        )

    def _get(self, url: str) -> httpx.Response:
        if self._http_client is not None:
            return self._http_client.get(url)
        with self._build_http_client() as client:
            return client.get(url)

    def fetch(self, url: str) -> ParsedFeed:
        """Fetch *url* and return the parsed feed.

        Raises:
            FetchError: If the URL is empty, the request fails, the server
                answers with an error status, or the body is not a feed.
        """
        url = (url or "").strip()
        if not url:
            raise FetchError("Feed fetch failed: feed URL is empty.", url=url)

        try:
            response = self._get(url)
        except httpx.RequestError as exc:
            raise FetchError(f"Feed fetch failed: {exc}", url=url) from exc

        if response.status_code >= 400:
            raise FetchError(
                f"Feed fetch failed: HTTP {response.status_code} from {url}",
                url=url,
            )

        feed = feedparser.parse(response.content)
        if feed.bozo and not feed.entries and not feed.feed.get("title"):
            reason = getattr(feed, "bozo_exception", None) or "not a valid RSS or Atom document"
            raise FetchError(f"Feed fetch failed: {reason}", url=url)

        parsed = ParsedFeed(
            title=_text(feed.feed.get("title")),
            entries=[entry_to_item(entry) for entry in feed.entries],
        )
        logger.debug("fetched %s: %d items", url, parsed.item_count)
        return parsed
