"""Content store ORM models.

The importer's default content store keeps imported records in these tables:

- ContentRecord: one upserted record in a target collection.
- RecordTag: free key/value tags on a record.  The importer's tracking tags
  (``_feed_import_guid`` and friends) and free-meta mapping targets live here.
- RecordCustomField: schema-declared custom field values (JSON).
- TaxonomyTerm / RecordTerm: named terms per taxonomy and their assignment.
- MediaAsset: a downloaded image attached to records as primary image.

Tag lookups filter on ``(key, value_hash, value)`` and join to the record's
collection, so the dedup key is always scoped per target collection.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from typing import Any, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from feed_importer.core.models.base import Base, JSONDocument, TimestampMixin


def tag_value_hash(value: str) -> str:
    """Return the lookup hash stored beside a tag value."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


class MediaAsset(Base):
    """A materialized image."""

    __tablename__ = "media_assets"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    source_url: Mapped[str] = mapped_column(sa.Text, nullable=False)
    mime_type: Mapped[str] = mapped_column(sa.String(100), nullable=False, default="")
    size_bytes: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    sha256: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)
    data: Mapped[bytes] = mapped_column(sa.LargeBinary, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


class ContentRecord(TimestampMixin, Base):
    """A record in a target collection (e.g. ``post``)."""

    __tablename__ = "content_records"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    collection: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(sa.Text, nullable=False)
    content: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    excerpt: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=True,
    )
    visibility: Mapped[str] = mapped_column(sa.String(20), nullable=False, default="draft")
    owner: Mapped[str] = mapped_column(sa.String(100), nullable=False, default="")
    primary_image_id: Mapped[Optional[int]] = mapped_column(
        sa.Integer,
        sa.ForeignKey("media_assets.id", ondelete="SET NULL"),
        nullable=True,
    )

    tags: Mapped[list[RecordTag]] = relationship(
        back_populates="record",
        cascade="all, delete-orphan",
    )
    primary_image: Mapped[Optional[MediaAsset]] = relationship()


class RecordTag(Base):
    """A key/value tag on a content record.  One value per key per record.

    Values are unbounded text, so lookups go through ``value_hash`` (SHA-256
    of the value, kept in step by a validator) and the index covers
    ``(key, value_hash)`` only.
    """

    __tablename__ = "record_tags"
    __table_args__ = (
        sa.UniqueConstraint("record_id", "key", name="uq_record_tags_record_key"),
        sa.Index("ix_record_tags_key_value_hash", "key", "value_hash"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    record_id: Mapped[int] = mapped_column(
        sa.Integer,
        sa.ForeignKey("content_records.id", ondelete="CASCADE"),
        nullable=False,
    )
    key: Mapped[str] = mapped_column(sa.String(191), nullable=False)
    value: Mapped[str] = mapped_column(sa.Text, nullable=False, default="")
    value_hash: Mapped[str] = mapped_column(sa.String(64), nullable=False)

    record: Mapped[ContentRecord] = relationship(back_populates="tags")

    @validates("value")
    def _hash_value(self, _key: str, value: str) -> str:
        self.value_hash = tag_value_hash(value)
        return value


class RecordCustomField(Base):
    """A schema-declared custom field value on a content record."""

    __tablename__ = "record_custom_fields"
    __table_args__ = (
        sa.UniqueConstraint("record_id", "key", name="uq_record_custom_fields_record_key"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    record_id: Mapped[int] = mapped_column(
        sa.Integer,
        sa.ForeignKey("content_records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    key: Mapped[str] = mapped_column(sa.String(191), nullable=False)
    value: Mapped[Any] = mapped_column(JSONDocument, nullable=True)


class TaxonomyTerm(Base):
    """A named term within a taxonomy.  Names are unique per taxonomy (case-sensitive)."""

    __tablename__ = "taxonomy_terms"
    __table_args__ = (
        sa.UniqueConstraint("taxonomy", "name", name="uq_taxonomy_terms_taxonomy_name"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    taxonomy: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)


class RecordTerm(Base):
    """Assignment of a taxonomy term to a content record."""

    __tablename__ = "record_terms"

    record_id: Mapped[int] = mapped_column(
        sa.Integer,
        sa.ForeignKey("content_records.id", ondelete="CASCADE"),
        primary_key=True,
    )
    term_id: Mapped[int] = mapped_column(
        sa.Integer,
        sa.ForeignKey("taxonomy_terms.id", ondelete="CASCADE"),
        primary_key=True,
    )
    taxonomy: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)
