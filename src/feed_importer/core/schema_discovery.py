"""Target schema discovery backed by the ``COLLECTION_SCHEMAS`` setting.

A collection schema lists the custom fields and taxonomies that records of
that collection can carry.  The setting is a JSON object::

    {
      "post": {
        "custom_fields": [{"key": "source_url", "label": "Source URL", "type": "url"}],
        "taxonomies": [{"key": "category", "label": "Categories"}]
      }
    }

Field and taxonomy entries may also be bare strings, in which case the key
doubles as the label.  Unknown collections have no custom fields and no
taxonomies; asking about them is never an error.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from feed_importer.core.schemas.mapping import FieldDescriptor

logger = logging.getLogger(__name__)

#: Sentinel native target key that routes a value to the record's primary image.
FEATURED_IMAGE_KEY = "featured_image"

NATIVE_FIELDS: tuple[FieldDescriptor, ...] = (
    FieldDescriptor(key="title", label="Title", type="text"),
    FieldDescriptor(key="content", label="Content", type="html"),
    FieldDescriptor(key="excerpt", label="Excerpt", type="text"),
    FieldDescriptor(key="published_at", label="Publish Date", type="datetime"),
    FieldDescriptor(key=FEATURED_IMAGE_KEY, label="Featured Image (from URL)", type="image"),
)

NATIVE_TARGET_KEYS: frozenset[str] = frozenset(f.key for f in NATIVE_FIELDS)

#: Used when the setting is empty so a fresh install can map categories and tags.
DEFAULT_COLLECTION_SCHEMAS: dict[str, Any] = {
    "post": {
        "custom_fields": [],
        "taxonomies": [
            {"key": "category", "label": "Categories"},
            {"key": "tag", "label": "Tags"},
        ],
    },
}


class SchemaDiscovery(Protocol):
    """What the field mapper and content store need to know about target schemas."""

    def native_fields(self) -> list[FieldDescriptor]: ...

    def has_collection(self, collection: str) -> bool: ...

    def custom_fields(self, collection: str) -> list[FieldDescriptor]: ...

    def taxonomies(self, collection: str) -> list[FieldDescriptor]: ...

    def all_taxonomies(self) -> set[str]: ...


def _descriptors(raw: Any, default_type: str) -> list[FieldDescriptor]:
    descriptors: list[FieldDescriptor] = []
    if not isinstance(raw, list):
        return descriptors
    for entry in raw:
        if isinstance(entry, str):
            key = entry.strip()
            if key:
                descriptors.append(FieldDescriptor(key=key, label=key, type=default_type))
        elif isinstance(entry, dict) and str(entry.get("key", "")).strip():
            key = str(entry["key"]).strip()
            descriptors.append(
                FieldDescriptor(
                    key=key,
                    label=str(entry.get("label") or key),
                    type=str(entry.get("type") or default_type),
                )
            )
        else:
            logger.warning("ignoring malformed schema entry: %r", entry)
    return descriptors


class ConfiguredSchemaDiscovery:
    """Schema discovery over a static collection map.

    Args:
        collection_schemas: Mapping of collection name to its schema.  An
            empty or missing map falls back to :data:`DEFAULT_COLLECTION_SCHEMAS`.
    """

    def __init__(self, collection_schemas: Optional[dict[str, Any]] = None) -> None:
        schemas = collection_schemas or DEFAULT_COLLECTION_SCHEMAS
        self._custom: dict[str, list[FieldDescriptor]] = {}
        self._taxonomies: dict[str, list[FieldDescriptor]] = {}
        for collection, schema in schemas.items():
            if not isinstance(schema, dict):
                logger.warning("ignoring schema for %r: expected an object", collection)
                continue
            self._custom[collection] = _descriptors(schema.get("custom_fields"), "text")
            self._taxonomies[collection] = _descriptors(schema.get("taxonomies"), "taxonomy")

    def native_fields(self) -> list[FieldDescriptor]:
        return list(NATIVE_FIELDS)

    def has_collection(self, collection: str) -> bool:
        return collection in self._custom

    def custom_fields(self, collection: str) -> list[FieldDescriptor]:
        return list(self._custom.get(collection, []))

    def taxonomies(self, collection: str) -> list[FieldDescriptor]:
        return list(self._taxonomies.get(collection, []))

    def all_taxonomies(self) -> set[str]:
        return {t.key for terms in self._taxonomies.values() for t in terms}
