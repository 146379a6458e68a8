"""Unit tests for feeds/reader.py using mocked httpx responses."""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest
import respx

from feed_importer.core.exceptions import FetchError
from feed_importer.feeds.reader import HttpFeedReader, entry_to_item

FEED_URL = "https://news.example.com/rss.xml"

RSS_BODY = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:content="http://purl.org/rss/1.0/modules/content/"
     xmlns:dc="http://purl.org/dc/elements/1.1/"
     xmlns:media="http://search.yahoo.com/mrss/">
  <channel>
    <title>Example News</title>
    <link>https://news.example.com/</link>
    <description>Latest stories</description>
    <item>
      <title>Harbour bridge reopens</title>
      <link>https://news.example.com/articles/bridge</link>
      <guid isPermaLink="false">urn:example:bridge</guid>
      <description>Short summary.</description>
      <content:encoded><![CDATA[<p>The full story.</p>]]></content:encoded>
      <pubDate>Tue, 04 Jun 2024 12:30:00 +0200</pubDate>
      <dc:creator>Jane Reporter</dc:creator>
      <category>Infrastructure</category>
      <category>City</category>
      <media:content url="https://img.example.com/bridge.jpg" medium="image" />
      <media:thumbnail url="https://img.example.com/bridge-thumb.jpg" />
      <enclosure url="https://cdn.example.com/bridge.mp3" type="audio/mpeg" length="1024" />
    </item>
    <item>
      <title>Second story</title>
      <link>https://news.example.com/articles/second</link>
    </item>
  </channel>
</rss>
"""


class TestHttpFeedReader:
    @respx.mock
    def test_fetch_parses_rss(self) -> None:
        route = respx.get(FEED_URL).mock(
            return_value=httpx.Response(
                200, text=RSS_BODY, headers={"content-type": "application/rss+xml"}
            )
        )

        feed = HttpFeedReader(user_agent="TestAgent/1.0").fetch(FEED_URL)

        assert route.called
        assert route.calls.last.request.headers["user-agent"] == "TestAgent/1.0"
        assert feed.title == "Example News"
        assert feed.item_count == 2

        item = feed.entries[0]
        assert item.title == "Harbour bridge reopens"
        assert item.link == "https://news.example.com/articles/bridge"
        assert item.guid == "urn:example:bridge"
        assert item.description == "Short summary."
        assert item.content == "<p>The full story.</p>"
        assert item.published == datetime(2024, 6, 4, 10, 30, 0, tzinfo=timezone.utc)
        assert item.author == "Jane Reporter"
        assert [c.term for c in item.categories] == ["Infrastructure", "City"]
        assert item.media_content == ["https://img.example.com/bridge.jpg"]
        assert item.media_thumbnails == ["https://img.example.com/bridge-thumb.jpg"]
        assert item.enclosures[0].url == "https://cdn.example.com/bridge.mp3"
        assert item.enclosures[0].type == "audio/mpeg"

    @respx.mock
    def test_sparse_item_defaults(self) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text=RSS_BODY))

        item = HttpFeedReader().fetch(FEED_URL).entries[1]

        assert item.guid == ""
        assert item.published is None
        assert item.categories == []
        assert item.enclosures == []

    def test_empty_url(self) -> None:
        with pytest.raises(FetchError, match="feed URL is empty"):
            HttpFeedReader().fetch("   ")

    @respx.mock
    def test_http_error_status(self) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(503))

        with pytest.raises(FetchError, match="HTTP 503") as exc_info:
            HttpFeedReader().fetch(FEED_URL)
        assert exc_info.value.url == FEED_URL
        assert str(exc_info.value).startswith("Feed fetch failed:")

    @respx.mock
    def test_network_error(self) -> None:
        respx.get(FEED_URL).mock(side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(FetchError, match="connection refused"):
            HttpFeedReader().fetch(FEED_URL)

    @respx.mock
    def test_not_a_feed(self) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text="this is not a feed"))

        with pytest.raises(FetchError, match="Feed fetch failed"):
            HttpFeedReader().fetch(FEED_URL)

    @respx.mock
    def test_injected_client_is_used(self) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text=RSS_BODY))

        with httpx.Client(headers={"User-Agent": "Injected/2.0"}) as client:
            HttpFeedReader(http_client=client).fetch(FEED_URL)

        assert respx.calls.last.request.headers["user-agent"] == "Injected/2.0"


class TestEntryToItem:
    def test_author_detail_preferred(self) -> None:
        entry = {"author": "jane@example.com (Jane)", "author_detail": {"name": "Jane"}}
        assert entry_to_item(entry).author == "Jane"

    @pytest.mark.parametrize(
        "entry",
        [
            {"author": "jane@example.com", "author_detail": {"email": "jane@example.com"}},
            {"author": "jane@example.com"},
        ],
    )
    def test_author_without_name_is_empty(self, entry) -> None:
        assert entry_to_item(entry).author == ""

    def test_category_label_kept(self) -> None:
        entry = {"tags": [{"term": "tech", "label": "Technology"}]}
        category = entry_to_item(entry).categories[0]
        assert (category.term, category.label) == ("tech", "Technology")

    def test_updated_date_used_when_published_missing(self) -> None:
        entry = {"updated_parsed": (2024, 1, 2, 3, 4, 5, 1, 2, 0)}
        assert entry_to_item(entry).published == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
