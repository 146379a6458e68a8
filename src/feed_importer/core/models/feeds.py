"""Feed configuration and import run history ORM models.

Covers:
- Feed: one configured remote RSS/Atom source mapped to a target collection.
  The mapping rules are stored as a JSON document on the row and always
  rewritten as a whole.
- ImportRun: an immutable history entry written once per import run.

``import_runs.feed_id`` is deliberately not a foreign key: history entries
outlive the deletion of their feed and keep the ``feed_name`` snapshot.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from feed_importer.core.models.base import Base, JSONDocument, TimestampMixin


class Feed(TimestampMixin, Base):
    """A feed configuration row.

    last_run_status progression:
        none → success | partial | error  (overwritten by every run)

    field_mappings holds an ordered list of rule objects:
        [{"source_field": "title", "target_kind": "native_field", "target_key": "title"}, ...]
    """

    __tablename__ = "feeds"

    id: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False, default="")
    source_url: Mapped[str] = mapped_column(sa.Text, nullable=False, default="")
    target_collection: Mapped[str] = mapped_column(
        sa.String(64),
        nullable=False,
        default="post",
    )
    target_visibility: Mapped[str] = mapped_column(
        sa.String(20),
        nullable=False,
        default="draft",
    )
    owner: Mapped[str] = mapped_column(sa.String(100), nullable=False, default="")
    interval: Mapped[str] = mapped_column(sa.String(20), nullable=False, default="daily")
    max_items_per_run: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=20)
    enabled: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False, index=True)
    field_mappings: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)
    last_run_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=True,
    )
    last_run_status: Mapped[str] = mapped_column(
        sa.String(10),
        nullable=False,
        default="none",
    )
    last_run_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Feed id={self.id!r} name={self.name!r} enabled={self.enabled}>"


class ImportRun(Base):
    """One import run outcome.  Written once, never updated.

    Rows are ordered newest-first by the autoincrement ``id``; the logger
    trims the table to the configured history limit after every insert.
    """

    __tablename__ = "import_runs"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    feed_id: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)
    feed_name: Mapped[str] = mapped_column(sa.String(200), nullable=False, default="")
    timestamp: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(sa.String(10), nullable=False)
    created_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    updated_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    skipped_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    error_messages: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)
    duration_seconds: Mapped[float] = mapped_column(sa.Float, nullable=False, default=0.0)

    def __repr__(self) -> str:
        return f"<ImportRun id={self.id} feed_id={self.feed_id!r} status={self.status!r}>"
