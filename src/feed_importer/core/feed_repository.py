"""Feed configuration persistence.

Each feed is one row in ``feeds``.  Every mutation is a whole-row
read-modify-write inside its own transaction, with the row locked
(``SELECT ... FOR UPDATE``) so that concurrent writers to the same feed id
serialize.  Writers to different feeds never contend.

Timestamps come from an injected clock rather than the database server so
that tests can pin them.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from feed_importer.core.models import Feed
from feed_importer.core.schemas.feeds import FeedConfig, RunStatus

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: the current UTC time."""
    return datetime.now(timezone.utc)


def new_feed_id() -> str:
    """Return a fresh opaque feed id."""
    return f"feed_{uuid.uuid4().hex[:16]}"


def _to_config(row: Feed) -> FeedConfig:
    return FeedConfig.model_validate(row)


class FeedRepository:
    """CRUD over feed configurations.

    Args:
        session_factory: Factory producing sessions bound to the feeds database.
        clock: Callable returning the current time.  Defaults to UTC wall time.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(self) -> list[FeedConfig]:
        """Return every feed, oldest first."""
        with self._session_factory() as session:
            rows = session.scalars(select(Feed).order_by(Feed.created_at, Feed.id)).all()
            return [_to_config(row) for row in rows]

    def list_enabled(self) -> list[FeedConfig]:
        """Return the enabled feeds, oldest first."""
        with self._session_factory() as session:
            rows = session.scalars(
                select(Feed).where(Feed.enabled.is_(True)).order_by(Feed.created_at, Feed.id)
            ).all()
            return [_to_config(row) for row in rows]

    def get(self, feed_id: str) -> Optional[FeedConfig]:
        """Return one feed, or ``None`` when *feed_id* is unknown."""
        if not feed_id:
            return None
        with self._session_factory() as session:
            row = session.get(Feed, feed_id)
            return _to_config(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, config: FeedConfig) -> str:
        """Insert or update a feed and return its id.

        The configuration is re-validated before writing, so sanitization
        applies no matter how *config* was built.  ``created_at`` and the
        ``last_run_*`` fields of an existing row are preserved; the mapping
        list is always replaced as a whole.

        Args:
            config: The feed to persist.  A missing ``id`` gets a fresh one.

        Returns:
            The id of the saved feed.
        """
        clean = FeedConfig.model_validate(config.model_dump())
        feed_id = clean.id or new_feed_id()
        now = self._clock()

        with self._session_factory() as session, session.begin():
            row = self._lock_row(session, feed_id)
            if row is None:
                row = Feed(
                    id=feed_id,
                    created_at=now,
                    last_run_at=None,
                    last_run_status=RunStatus.NONE.value,
                    last_run_count=0,
                )
                session.add(row)
                logger.info("feed %s: created", feed_id)
            else:
                logger.info("feed %s: updated", feed_id)

            row.name = clean.name
            row.source_url = clean.source_url
            row.target_collection = clean.target_collection
            row.target_visibility = clean.target_visibility.value
            row.owner = clean.owner
            row.interval = clean.interval.value
            row.max_items_per_run = clean.max_items_per_run
            row.enabled = clean.enabled
            row.field_mappings = clean.mapping_document()
            row.updated_at = now

        return feed_id

    def delete(self, feed_id: str) -> bool:
        """Delete a feed.  Returns ``False`` when it did not exist."""
        with self._session_factory() as session, session.begin():
            row = self._lock_row(session, feed_id)
            if row is None:
                return False
            session.delete(row)
        logger.info("feed %s: deleted", feed_id)
        return True

    def record_run_outcome(self, feed_id: str, status: RunStatus, count: int) -> None:
        """Store the last-run fields of a feed.  Unknown ids are ignored."""
        with self._session_factory() as session, session.begin():
            row = self._lock_row(session, feed_id)
            if row is None:
                logger.debug("feed %s: run outcome for unknown feed ignored", feed_id)
                return
            row.last_run_at = self._clock()
            row.last_run_status = RunStatus(status).value
            row.last_run_count = int(count)

    def set_enabled(self, feed_id: str, enabled: bool) -> Optional[FeedConfig]:
        """Enable or disable a feed and return its new state.

        Returns:
            The updated feed, or ``None`` when *feed_id* is unknown.
        """
        with self._session_factory() as session, session.begin():
            row = self._lock_row(session, feed_id)
            if row is None:
                return None
            row.enabled = bool(enabled)
            row.updated_at = self._clock()
            session.flush()
            return _to_config(row)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _lock_row(session: Session, feed_id: str) -> Optional[Feed]:
        if not feed_id:
            return None
        return session.scalars(
            select(Feed).where(Feed.id == feed_id).with_for_update()
        ).one_or_none()
