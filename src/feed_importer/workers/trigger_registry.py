"""Recurring trigger registries.

A trigger is a hook id with a next fire time and an interval.  Celery Beat
calls :meth:`RedisTriggerRegistry.claim_due` every minute; each due hook is
advanced past ``now`` by whole intervals and returned so that the caller can
enqueue its import.  A trigger that was missed for several intervals fires
once, not once per missed interval.

Redis layout:

- ``feed_importer:triggers:next_fire``: sorted set, ``hook -> epoch seconds``
- ``feed_importer:triggers:interval``: hash, ``hook -> interval seconds``

Advancing uses ``ZADD XX GT CH``, so when two Beat processes race for the
same hook only the one whose write changes the score claims it.
"""

from __future__ import annotations

import logging
import math
import threading
from datetime import datetime, timezone
from typing import Optional

import redis

logger = logging.getLogger(__name__)

NEXT_FIRE_KEY = "feed_importer:triggers:next_fire"
INTERVAL_KEY = "feed_importer:triggers:interval"


def _to_epoch(moment: datetime) -> float:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()


def _from_epoch(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def next_fire_after(scheduled: float, interval: int, now: float) -> float:
    """Return the first ``scheduled + k * interval`` strictly after *now* (k >= 1)."""
    if interval <= 0:
        return now
    missed = max(0, math.floor((now - scheduled) / interval))
    return scheduled + (missed + 1) * interval


class RedisTriggerRegistry:
    """Trigger registry stored in Redis.

    Args:
        client: A ``redis.Redis`` client created with ``decode_responses=True``.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, redis_url: str) -> RedisTriggerRegistry:
        return cls(redis.from_url(redis_url, decode_responses=True))

    def schedule_recurring(self, hook: str, interval_seconds: int, start_time: datetime) -> None:
        pipe = self._client.pipeline()
        pipe.zadd(NEXT_FIRE_KEY, {hook: _to_epoch(start_time)})
        pipe.hset(INTERVAL_KEY, hook, int(interval_seconds))
        pipe.execute()

    def cancel(self, hook: str) -> bool:
        pipe = self._client.pipeline()
        pipe.zrem(NEXT_FIRE_KEY, hook)
        pipe.hdel(INTERVAL_KEY, hook)
        removed, _ = pipe.execute()
        return bool(removed)

    def next_fire(self, hook: str) -> Optional[datetime]:
        score = self._client.zscore(NEXT_FIRE_KEY, hook)
        return _from_epoch(float(score)) if score is not None else None

    def interval(self, hook: str) -> Optional[int]:
        value = self._client.hget(INTERVAL_KEY, hook)
        return int(value) if value is not None else None

    def hook_ids(self) -> list[str]:
        return list(self._client.zrange(NEXT_FIRE_KEY, 0, -1))

    def claim_due(self, now: datetime) -> list[str]:
        """Advance every due trigger and return the hooks that fired.

        Args:
            now: The current time.

        Returns:
            Hook ids whose fire time was at or before *now*, in fire order.
        """
        now_ts = _to_epoch(now)
        due = self._client.zrangebyscore(NEXT_FIRE_KEY, "-inf", now_ts, withscores=True)
        claimed: list[str] = []
        for hook, score in due:
            interval = self._client.hget(INTERVAL_KEY, hook)
            if interval is None:
                logger.warning("trigger %s has no interval; removing", hook)
                self._client.zrem(NEXT_FIRE_KEY, hook)
                continue
            advanced = next_fire_after(float(score), int(interval), now_ts)
            if self._client.zadd(NEXT_FIRE_KEY, {hook: advanced}, xx=True, gt=True, ch=True):
                claimed.append(hook)
        return claimed


class InMemoryTriggerRegistry:
    """Process-local trigger registry for single-process deployments and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._next_fire: dict[str, float] = {}
        self._intervals: dict[str, int] = {}

    def schedule_recurring(self, hook: str, interval_seconds: int, start_time: datetime) -> None:
        with self._lock:
            self._next_fire[hook] = _to_epoch(start_time)
            self._intervals[hook] = int(interval_seconds)

    def cancel(self, hook: str) -> bool:
        with self._lock:
            self._intervals.pop(hook, None)
            return self._next_fire.pop(hook, None) is not None

    def next_fire(self, hook: str) -> Optional[datetime]:
        with self._lock:
            score = self._next_fire.get(hook)
        return _from_epoch(score) if score is not None else None

    def interval(self, hook: str) -> Optional[int]:
        with self._lock:
            return self._intervals.get(hook)

    def hook_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._next_fire, key=self._next_fire.__getitem__)

    def claim_due(self, now: datetime) -> list[str]:
        now_ts = _to_epoch(now)
        with self._lock:
            due = sorted(
                (score, hook) for hook, score in self._next_fire.items() if score <= now_ts
            )
            for score, hook in due:
                self._next_fire[hook] = next_fire_after(score, self._intervals[hook], now_ts)
        return [hook for _, hook in due]
