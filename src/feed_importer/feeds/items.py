"""Parser-independent feed and item representations.

The reader converts whatever the parser library returns into these plain
dataclasses, so the field mapper and pipeline never touch parser internals
and tests can build items directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Category:
    term: str = ""
    label: str = ""


@dataclass
class Enclosure:
    url: str = ""
    type: str = ""


@dataclass
class FeedItem:
    """One parsed feed item.

    Attributes:
        title: Item title, HTML entities decoded.
        link: Permalink of the item.
        guid: Publisher-assigned unique id (RSS ``guid`` / Atom ``id``).
        description: Summary text (RSS ``description`` / Atom ``summary``).
        content: Full body (``content:encoded`` / Atom ``content``).
        published: Publication time, timezone-aware UTC, if the item has one.
        author: Name of the attributed author.
        categories: Categories in document order.
        media_content: ``media:content`` URLs in document order.
        media_thumbnails: ``media:thumbnail`` URLs in document order.
        enclosures: Enclosures in document order.
    """

    title: str = ""
    link: str = ""
    guid: str = ""
    description: str = ""
    content: str = ""
    published: datetime | None = None
    author: str = ""
    categories: list[Category] = field(default_factory=list)
    media_content: list[str] = field(default_factory=list)
    media_thumbnails: list[str] = field(default_factory=list)
    enclosures: list[Enclosure] = field(default_factory=list)


@dataclass
class ParsedFeed:
    """A fetched and parsed feed."""

    title: str = ""
    entries: list[FeedItem] = field(default_factory=list)

    @property
    def item_count(self) -> int:
        return len(self.entries)

    def items(self, offset: int = 0, limit: int | None = None) -> list[FeedItem]:
        """Return items ``offset .. offset + limit`` in feed order."""
        if limit is None:
            return self.entries[offset:]
        return self.entries[offset : offset + max(0, limit)]
