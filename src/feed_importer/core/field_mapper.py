"""Projection of parsed feed items onto target records.

Two halves:

- Discovery: :meth:`FieldMapper.source_fields` lists the fixed source
  vocabulary; :meth:`FieldMapper.target_fields` lists what a collection can
  receive, combining the fixed native fields with schema discovery.
- Resolution: :func:`extract` reads one source field from an item and
  :meth:`FieldMapper.apply_mapping` folds a rule list into a
  :class:`ResolvedRecord`.

Extraction is pure and never raises; an absent value is ``""`` (scalar
fields) or ``[]`` (``categories``).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import timezone

from feed_importer.core.schema_discovery import (
    FEATURED_IMAGE_KEY,
    NATIVE_TARGET_KEYS,
    SchemaDiscovery,
)
from feed_importer.core.schemas.feeds import MappingRule, SourceField, TargetKind
from feed_importer.core.schemas.mapping import MappedValue, ResolvedRecord, TargetFields
from feed_importer.feeds.items import FeedItem

logger = logging.getLogger(__name__)

PUB_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

SOURCE_FIELD_LABELS: dict[SourceField, str] = {
    SourceField.TITLE: "Title",
    SourceField.DESCRIPTION: "Description / Summary",
    SourceField.CONTENT: "Full Content",
    SourceField.LINK: "Link / URL",
    SourceField.PUB_DATE: "Publication Date",
    SourceField.AUTHOR: "Author",
    SourceField.CATEGORIES: "Categories",
    SourceField.GUID: "GUID",
    SourceField.MEDIA_CONTENT_URL: "Media Content URL",
    SourceField.MEDIA_THUMBNAIL_URL: "Media Thumbnail URL",
    SourceField.ENCLOSURE_URL: "Enclosure URL",
    SourceField.ENCLOSURE_TYPE: "Enclosure Type",
}


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def _first(values: Iterable[str]) -> str:
    for value in values:
        if value:
            return value
    return ""


def _category_names(item: FeedItem) -> list[str]:
    names: list[str] = []
    for category in item.categories:
        name = category.label or category.term
        if name:
            names.append(name)
    return names


def _media_content_url(item: FeedItem) -> str:
    url = _first(item.media_content)
    if url:
        return url
    if item.enclosures:
        enclosure = item.enclosures[0]
        if enclosure.url and "image" in (enclosure.type or "").lower():
            return enclosure.url
    return ""


def extract(item: FeedItem, source_field: SourceField | str) -> MappedValue:
    """Read one source field from *item*.

    Args:
        item: The parsed feed item.
        source_field: A :class:`SourceField` or its string value.  Unknown
            names yield ``""``.

    Returns:
        The extracted string, or the list of category names for
        ``categories``.
    """
    try:
        source = SourceField(source_field)
    except ValueError:
        return ""

    if source is SourceField.TITLE:
        return item.title or ""
    if source is SourceField.LINK:
        return item.link or ""
    if source is SourceField.GUID:
        return item.guid or ""
    if source is SourceField.DESCRIPTION:
        return item.description or item.content or ""
    if source is SourceField.CONTENT:
        return item.content or item.description or ""
    if source is SourceField.PUB_DATE:
        if item.published is None:
            return ""
        published = item.published
        if published.tzinfo is not None:
            published = published.astimezone(timezone.utc)
        return published.strftime(PUB_DATE_FORMAT)
    if source is SourceField.AUTHOR:
        return item.author or ""
    if source is SourceField.CATEGORIES:
        return _category_names(item)
    if source is SourceField.MEDIA_CONTENT_URL:
        return _media_content_url(item)
    if source is SourceField.MEDIA_THUMBNAIL_URL:
        return _first(item.media_thumbnails)
    if source is SourceField.ENCLOSURE_URL:
        return item.enclosures[0].url if item.enclosures else ""
    if source is SourceField.ENCLOSURE_TYPE:
        return item.enclosures[0].type if item.enclosures else ""
    return ""


# ---------------------------------------------------------------------------
# Mapper
# ---------------------------------------------------------------------------


class FieldMapper:
    """Source/target discovery and rule application.

    Args:
        schema: Schema discovery used for custom fields and taxonomies.
    """

    def __init__(self, schema: SchemaDiscovery) -> None:
        self._schema = schema

    @staticmethod
    def source_fields() -> dict[str, str]:
        """Return the source vocabulary in display order, keyed by field name."""
        return {field.value: label for field, label in SOURCE_FIELD_LABELS.items()}

    def target_fields(self, collection: str) -> TargetFields:
        """Return the targets a record of *collection* can receive."""
        return TargetFields(
            native_fields=self._schema.native_fields(),
            custom_fields=self._schema.custom_fields(collection),
            taxonomy_like_fields=self._schema.taxonomies(collection),
            custom_fields_available=self._schema.has_collection(collection),
        )

    @staticmethod
    def apply_mapping(item: FeedItem, rules: Iterable[MappingRule]) -> ResolvedRecord:
        """Fold *rules* over *item* in order.

        Rules whose extraction is empty contribute nothing.  For every target
        kind a later rule overwrites an earlier one with the same key; for
        taxonomies this means the later term list replaces the earlier one
        rather than extending it.

        Args:
            item: The parsed feed item.
            rules: Mapping rules in configured order.

        Returns:
            The resolved record.
        """
        resolved = ResolvedRecord()
        for rule in rules:
            value = extract(item, rule.source_field)
            if not value:
                continue

            if rule.target_kind is TargetKind.NATIVE_FIELD:
                if rule.target_key == FEATURED_IMAGE_KEY:
                    resolved.featured_image_url = value[0] if isinstance(value, list) else value
                elif rule.target_key in NATIVE_TARGET_KEYS:
                    resolved.native_values[rule.target_key] = value
                else:
                    logger.debug("ignoring unknown native target %r", rule.target_key)
            elif rule.target_kind is TargetKind.CUSTOM_FIELD:
                resolved.custom_values[rule.target_key] = value
            elif rule.target_kind is TargetKind.TAXONOMY_TERM_SET:
                resolved.taxonomy_terms[rule.target_key] = (
                    list(value) if isinstance(value, list) else [value]
                )
            elif rule.target_kind is TargetKind.FREE_META:
                resolved.meta_values[rule.target_key] = value
        return resolved
