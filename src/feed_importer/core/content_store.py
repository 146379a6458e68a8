"""Content store: where imported records land.

:class:`ContentStore` is the interface the import pipeline needs.
:class:`SqlContentStore` implements it on the ``content_records`` family of
tables.  Every method runs in its own short transaction; a failure part way
through an item leaves the earlier writes in place, exactly as the pipeline
expects from an external store.  Tags passed to :meth:`SqlContentStore.insert`
and :meth:`SqlContentStore.update` commit together with the record.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from feed_importer.core.models import (
    ContentRecord,
    MediaAsset,
    RecordCustomField,
    RecordTag,
    RecordTerm,
    TaxonomyTerm,
    tag_value_hash,
)
from feed_importer.core.schema_discovery import SchemaDiscovery

logger = logging.getLogger(__name__)


def _write_tags(session: Session, record_id: int, tags: Mapping[str, str]) -> None:
    for key, value in tags.items():
        tag = session.scalars(
            select(RecordTag).where(RecordTag.record_id == record_id, RecordTag.key == key)
        ).one_or_none()
        if tag is None:
            session.add(RecordTag(record_id=record_id, key=key, value=str(value)))
        else:
            tag.value = str(value)


@dataclass
class RecordPayload:
    """Field values written on insert or update.

    ``None`` for ``content``, ``excerpt`` or ``published_at`` leaves the
    stored value untouched on update and empty on insert.
    """

    title: str
    visibility: str
    owner: str
    content: Optional[str] = None
    excerpt: Optional[str] = None
    published_at: Optional[datetime] = None


class ContentStore(Protocol):
    def find_by_tag(self, collection: str, key: str, value: str) -> Optional[int]: ...

    def insert(
        self,
        collection: str,
        payload: RecordPayload,
        tags: Optional[Mapping[str, str]] = None,
    ) -> int: ...

    def update(
        self,
        record_id: int,
        payload: RecordPayload,
        tags: Optional[Mapping[str, str]] = None,
    ) -> int: ...

    def set_tag(self, record_id: int, key: str, value: str) -> None: ...

    def get_tag(self, record_id: int, key: str) -> Optional[str]: ...

    def attach_primary_image(self, record_id: int, asset_id: int) -> None: ...

    def primary_image_source(self, record_id: int) -> Optional[str]: ...

    def taxonomy_exists(self, taxonomy: str) -> bool: ...

    def ensure_taxonomy_term(self, taxonomy: str, name: str) -> int: ...

    def assign_terms(self, record_id: int, taxonomy: str, term_ids: Sequence[int]) -> None: ...

    def set_custom_field(self, record_id: int, key: str, value: Any) -> None: ...


class SqlContentStore:
    """SQLAlchemy-backed :class:`ContentStore`.

    Args:
        session_factory: Factory producing sessions bound to the content database.
        schema: Schema discovery; a taxonomy exists when any collection declares it.
    """

    def __init__(self, session_factory: sessionmaker[Session], schema: SchemaDiscovery) -> None:
        self._session_factory = session_factory
        self._schema = schema

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def find_by_tag(self, collection: str, key: str, value: str) -> Optional[int]:
        """Return the id of the oldest record in *collection* tagged ``key=value``."""
        stmt = (
            select(ContentRecord.id)
            .join(RecordTag, RecordTag.record_id == ContentRecord.id)
            .where(
                ContentRecord.collection == collection,
                RecordTag.key == key,
                RecordTag.value_hash == tag_value_hash(value),
                RecordTag.value == value,
            )
            .order_by(ContentRecord.id)
            .limit(1)
        )
        with self._session_factory() as session:
            return session.scalar(stmt)

    def insert(
        self,
        collection: str,
        payload: RecordPayload,
        tags: Optional[Mapping[str, str]] = None,
    ) -> int:
        """Create a record and its *tags* in one transaction."""
        with self._session_factory() as session, session.begin():
            record = ContentRecord(
                collection=collection,
                title=payload.title,
                content=payload.content,
                excerpt=payload.excerpt,
                published_at=payload.published_at,
                visibility=payload.visibility,
                owner=payload.owner,
            )
            session.add(record)
            session.flush()
            record_id = record.id
            _write_tags(session, record_id, tags or {})
        logger.debug("content record %d inserted into %s", record_id, collection)
        return record_id

    def update(
        self,
        record_id: int,
        payload: RecordPayload,
        tags: Optional[Mapping[str, str]] = None,
    ) -> int:
        """Overwrite a record's fields and set *tags* in one transaction.

        Raises:
            LookupError: If the record no longer exists.
        """
        with self._session_factory() as session, session.begin():
            record = session.get(ContentRecord, record_id, with_for_update=True)
            if record is None:
                raise LookupError(f"content record {record_id} does not exist")
            record.title = payload.title
            record.visibility = payload.visibility
            record.owner = payload.owner
            if payload.content is not None:
                record.content = payload.content
            if payload.excerpt is not None:
                record.excerpt = payload.excerpt
            if payload.published_at is not None:
                record.published_at = payload.published_at
            _write_tags(session, record_id, tags or {})
        return record_id

    def get(self, record_id: int) -> Optional[ContentRecord]:
        with self._session_factory() as session:
            return session.get(ContentRecord, record_id)

    # ------------------------------------------------------------------
    # Tags and custom fields
    # ------------------------------------------------------------------

    def set_tag(self, record_id: int, key: str, value: str) -> None:
        with self._session_factory() as session, session.begin():
            _write_tags(session, record_id, {key: value})

    def get_tag(self, record_id: int, key: str) -> Optional[str]:
        with self._session_factory() as session:
            return session.scalar(
                select(RecordTag.value).where(RecordTag.record_id == record_id, RecordTag.key == key)
            )

    def set_custom_field(self, record_id: int, key: str, value: Any) -> None:
        with self._session_factory() as session, session.begin():
            field = session.scalars(
                select(RecordCustomField).where(
                    RecordCustomField.record_id == record_id,
                    RecordCustomField.key == key,
                )
            ).one_or_none()
            if field is None:
                session.add(RecordCustomField(record_id=record_id, key=key, value=value))
            else:
                field.value = value

    def get_custom_field(self, record_id: int, key: str) -> Any:
        with self._session_factory() as session:
            return session.scalar(
                select(RecordCustomField.value).where(
                    RecordCustomField.record_id == record_id,
                    RecordCustomField.key == key,
                )
            )

    # ------------------------------------------------------------------
    # Primary image
    # ------------------------------------------------------------------

    def attach_primary_image(self, record_id: int, asset_id: int) -> None:
        with self._session_factory() as session, session.begin():
            record = session.get(ContentRecord, record_id, with_for_update=True)
            if record is None:
                raise LookupError(f"content record {record_id} does not exist")
            record.primary_image_id = asset_id

    def primary_image_source(self, record_id: int) -> Optional[str]:
        """Return the source URL of the record's current primary image, if any."""
        with self._session_factory() as session:
            return session.scalar(
                select(MediaAsset.source_url)
                .join(ContentRecord, ContentRecord.primary_image_id == MediaAsset.id)
                .where(ContentRecord.id == record_id)
            )

    # ------------------------------------------------------------------
    # Taxonomies
    # ------------------------------------------------------------------

    def taxonomy_exists(self, taxonomy: str) -> bool:
        return taxonomy in self._schema.all_taxonomies()

    def ensure_taxonomy_term(self, taxonomy: str, name: str) -> int:
        """Return the id of the term named exactly *name*, creating it if needed."""
        with self._session_factory() as session, session.begin():
            term_id = session.scalar(
                select(TaxonomyTerm.id).where(
                    TaxonomyTerm.taxonomy == taxonomy,
                    TaxonomyTerm.name == name,
                )
            )
            if term_id is not None:
                return term_id
            term = TaxonomyTerm(taxonomy=taxonomy, name=name)
            session.add(term)
            session.flush()
            logger.debug("taxonomy term %r created in %s", name, taxonomy)
            return term.id

    def assign_terms(self, record_id: int, taxonomy: str, term_ids: Sequence[int]) -> None:
        """Replace the record's terms in *taxonomy* with *term_ids*."""
        with self._session_factory() as session, session.begin():
            session.execute(
                delete(RecordTerm).where(
                    RecordTerm.record_id == record_id,
                    RecordTerm.taxonomy == taxonomy,
                )
            )
            for term_id in dict.fromkeys(term_ids):
                session.add(RecordTerm(record_id=record_id, term_id=term_id, taxonomy=taxonomy))

    def terms_for(self, record_id: int, taxonomy: str) -> list[str]:
        """Return the names of the record's terms in *taxonomy*, ordered by term id."""
        with self._session_factory() as session:
            return list(
                session.scalars(
                    select(TaxonomyTerm.name)
                    .join(RecordTerm, RecordTerm.term_id == TaxonomyTerm.id)
                    .where(RecordTerm.record_id == record_id, RecordTerm.taxonomy == taxonomy)
                    .order_by(TaxonomyTerm.id)
                )
            )
