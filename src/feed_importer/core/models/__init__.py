"""SQLAlchemy ORM models for the feed importer.

All models are imported here so that:
1. Alembic autogenerate can discover them via Base.metadata.
2. Application code can do ``from feed_importer.core.models import Feed``
   without knowing which sub-module a model lives in.
3. SQLAlchemy's relationship resolution finds all mapper targets at
   configuration time.
"""

from feed_importer.core.models.base import Base, JSONDocument, TimestampMixin
from feed_importer.core.models.content import (
    ContentRecord,
    MediaAsset,
    RecordCustomField,
    RecordTag,
    RecordTerm,
    TaxonomyTerm,
    tag_value_hash,
)
from feed_importer.core.models.feeds import Feed, ImportRun

__all__ = [
    # base
    "Base",
    "JSONDocument",
    "TimestampMixin",
    # feeds
    "Feed",
    "ImportRun",
    # content store
    "ContentRecord",
    "MediaAsset",
    "RecordCustomField",
    "RecordTag",
    "RecordTerm",
    "TaxonomyTerm",
    "tag_value_hash",
]
