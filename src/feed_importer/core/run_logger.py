"""Bounded, append-only history of import runs.

Entries are written once and never updated.  After each append the table is
trimmed to the configured limit (200 by default), dropping the oldest rows.
The only deletion an operator can trigger is :meth:`RunLogger.clear`.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, sessionmaker

from feed_importer.core.models import ImportRun
from feed_importer.core.schemas.feeds import RunStatus
from feed_importer.core.schemas.runs import ImportRunRecord

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 200

#: Per-run cap on stored error messages.  Extra messages are summarised.
MAX_ERROR_MESSAGES = 50


def _bound_messages(messages: Sequence[str]) -> list[str]:
    kept = [str(m) for m in messages[:MAX_ERROR_MESSAGES]]
    dropped = len(messages) - len(kept)
    if dropped > 0:
        kept.append(f"... and {dropped} more errors.")
    return kept


class RunLogger:
    """Writes and reads :class:`ImportRunRecord` entries.

    Args:
        session_factory: Factory producing sessions bound to the history database.
        limit: Maximum number of entries retained.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self._session_factory = session_factory
        self._limit = max(1, int(limit))

    def append(
        self,
        *,
        feed_id: str,
        feed_name: str,
        timestamp: datetime,
        status: RunStatus,
        created: int,
        updated: int,
        skipped: int,
        errors: int,
        error_messages: Sequence[str],
        duration_seconds: float,
    ) -> ImportRunRecord:
        """Insert one history entry at the head and trim the tail.

        Returns:
            The stored entry, with ``duration_seconds`` rounded to 2 decimals.
        """
        row = ImportRun(
            feed_id=feed_id,
            feed_name=feed_name,
            timestamp=timestamp,
            status=RunStatus(status).value,
            created_count=created,
            updated_count=updated,
            skipped_count=skipped,
            error_count=errors,
            error_messages=_bound_messages(list(error_messages)),
            duration_seconds=round(float(duration_seconds), 2),
        )
        with self._session_factory() as session, session.begin():
            session.add(row)
            session.flush()
            record = ImportRunRecord.model_validate(row)
            self._trim(session)
        return record

    def get_logs(self, limit: int = 50, feed_id: Optional[str] = None) -> list[ImportRunRecord]:
        """Return up to *limit* entries, newest first, optionally for one feed."""
        stmt = select(ImportRun).order_by(ImportRun.id.desc()).limit(max(0, int(limit)))
        if feed_id:
            stmt = stmt.where(ImportRun.feed_id == feed_id)
        with self._session_factory() as session:
            return [ImportRunRecord.model_validate(row) for row in session.scalars(stmt)]

    def clear(self) -> int:
        """Delete the whole history.  Returns the number of entries removed."""
        with self._session_factory() as session, session.begin():
            result = session.execute(delete(ImportRun))
        logger.info("import run history cleared (%d entries)", result.rowcount)
        return int(result.rowcount or 0)

    def count(self) -> int:
        with self._session_factory() as session:
            return int(session.scalar(select(func.count()).select_from(ImportRun)) or 0)

    def _trim(self, session: Session) -> None:
        cutoff = session.scalar(
            select(ImportRun.id).order_by(ImportRun.id.desc()).offset(self._limit - 1).limit(1)
        )
        if cutoff is None:
            return
        result = session.execute(delete(ImportRun).where(ImportRun.id < cutoff))
        if result.rowcount:
            logger.debug("run history trimmed by %d entries", result.rowcount)
