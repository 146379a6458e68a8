"""Per-feed run locks.

At most one import run may execute per feed id at a time.  A scheduled fire
and an operator's "run now" can otherwise overlap and race on the
find-or-create step, creating duplicate records.

Two implementations:

- :class:`RedisRunLocks`: shared across Celery workers and the API process.
  Uses a non-blocking ``redis-py`` lock that expires after the task hard
  time limit, so a crashed worker cannot wedge a feed.
- :class:`InProcessRunLocks`: a lock table for single-process use and tests.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import Protocol

import redis
from redis.exceptions import LockError

from feed_importer.core.exceptions import RunLockedError

logger = logging.getLogger(__name__)

_LOCK_KEY_PREFIX = "feed_importer:run_lock:"


class RunLocks(Protocol):
    def hold(self, feed_id: str) -> AbstractContextManager[None]: ...


class InProcessRunLocks:
    """Thread-safe per-feed locks within one process."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._held: set[str] = set()

    @contextmanager
    def hold(self, feed_id: str) -> Iterator[None]:
        """Hold the run lock for *feed_id* for the duration of the block.

        Raises:
            RunLockedError: If the lock is already held.
        """
        with self._guard:
            if feed_id in self._held:
                raise RunLockedError(feed_id)
            self._held.add(feed_id)
        try:
            yield
        finally:
            with self._guard:
                self._held.discard(feed_id)


class RedisRunLocks:
    """Redis-backed per-feed locks.

    Args:
        client: A ``redis.Redis`` client.
        timeout_seconds: Lock lifetime; the lock is released automatically
            after this many seconds even if its holder died.
    """

    def __init__(self, client: redis.Redis, timeout_seconds: int = 7_200) -> None:
        self._client = client
        self._timeout = timeout_seconds

    @classmethod
    def from_url(cls, redis_url: str, timeout_seconds: int = 7_200) -> RedisRunLocks:
        return cls(redis.from_url(redis_url, decode_responses=True), timeout_seconds)

    @contextmanager
    def hold(self, feed_id: str) -> Iterator[None]:
        """Hold the run lock for *feed_id* for the duration of the block.

        Raises:
            RunLockedError: If another process holds the lock.
        """
        lock = self._client.lock(
            f"{_LOCK_KEY_PREFIX}{feed_id}",
            timeout=self._timeout,
            blocking=False,
        )
        if not lock.acquire(blocking=False):
            raise RunLockedError(feed_id)
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError:
                logger.warning("run lock for feed %s expired before release", feed_id)
