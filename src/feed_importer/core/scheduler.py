"""Per-feed recurring import triggers.

Every enabled feed owns exactly one recurring trigger, identified by the hook
id ``feed_import:<feed_id>``, at the cadence of its ``interval``.  Disabled
and deleted feeds own none.  The trigger registry itself (Redis in
production) is external; this module only decides what should be in it.

Installing always cancels first, so repeated installs never stack triggers.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Protocol

from feed_importer.core.feed_repository import Clock, FeedRepository, utc_now
from feed_importer.core.schemas.feeds import Interval

logger = logging.getLogger(__name__)

HOOK_PREFIX = "feed_import:"

INTERVAL_SECONDS: dict[Interval, int] = {
    Interval.HOURLY: 3_600,
    Interval.TWICEDAILY: 43_200,
    Interval.DAILY: 86_400,
    Interval.WEEKLY: 604_800,
}


def hook_id(feed_id: str) -> str:
    """Return the trigger hook id for *feed_id*."""
    return f"{HOOK_PREFIX}{feed_id}"


def feed_id_from_hook(hook: str) -> Optional[str]:
    """Return the feed id encoded in *hook*, or ``None`` for foreign hooks."""
    if not hook.startswith(HOOK_PREFIX):
        return None
    return hook[len(HOOK_PREFIX) :] or None


class TriggerRegistry(Protocol):
    """External store of recurring triggers."""

    def schedule_recurring(self, hook: str, interval_seconds: int, start_time: datetime) -> None: ...

    def cancel(self, hook: str) -> bool: ...

    def next_fire(self, hook: str) -> Optional[datetime]: ...

    def interval(self, hook: str) -> Optional[int]: ...

    def hook_ids(self) -> list[str]: ...

    def claim_due(self, now: datetime) -> list[str]: ...


class FeedScheduler:
    """Keeps the trigger registry in line with the enabled feeds.

    Args:
        repository: Feed configuration store.
        triggers: The trigger registry.
        clock: Wall clock; new triggers first fire at ``clock()``.
    """

    def __init__(
        self,
        repository: FeedRepository,
        triggers: TriggerRegistry,
        clock: Clock = utc_now,
    ) -> None:
        self._repository = repository
        self._triggers = triggers
        self._clock = clock

    def schedule(self, feed_id: str) -> bool:
        """Install a fresh trigger for *feed_id*, firing immediately.

        Any existing trigger is cancelled first.  A missing or disabled feed
        ends up with no trigger.

        Returns:
            ``True`` when a trigger was installed.
        """
        self._triggers.cancel(hook_id(feed_id))
        feed = self._repository.get(feed_id)
        if feed is None or not feed.enabled:
            return False
        self._triggers.schedule_recurring(
            hook_id(feed_id),
            INTERVAL_SECONDS[feed.interval],
            self._clock(),
        )
        logger.info("feed %s: scheduled %s", feed_id, feed.interval.value)
        return True

    def unschedule(self, feed_id: str) -> bool:
        """Remove the trigger for *feed_id*.  Returns ``True`` if one existed."""
        removed = self._triggers.cancel(hook_id(feed_id))
        if removed:
            logger.info("feed %s: unscheduled", feed_id)
        return removed

    def reschedule(self, feed_id: str) -> bool:
        """Unschedule then schedule if enabled.  Used after a feed changes."""
        self.unschedule(feed_id)
        return self.schedule(feed_id)

    def reconcile_all(self) -> dict[str, int]:
        """Bring the registry in line with every known feed.

        Installs triggers for enabled feeds that have none or whose interval
        no longer matches the feed, and removes those of disabled or deleted
        feeds.  Feeds already in the desired state are left untouched, so
        calling this repeatedly causes no churn.

        Returns:
            ``{"installed": n, "removed": m}``.
        """
        installed = removed = 0
        known: set[str] = set()
        for feed in self._repository.list():
            if feed.id is None:
                continue
            known.add(feed.id)
            hook = hook_id(feed.id)
            has_trigger = self._triggers.next_fire(hook) is not None
            stale = has_trigger and self._triggers.interval(hook) != INTERVAL_SECONDS[feed.interval]
            if feed.enabled and (not has_trigger or stale):
                if self.schedule(feed.id):
                    installed += 1
            elif not feed.enabled and has_trigger:
                if self.unschedule(feed.id):
                    removed += 1

        for hook in self._triggers.hook_ids():
            feed_id = feed_id_from_hook(hook)
            if feed_id is not None and feed_id not in known:
                if self._triggers.cancel(hook):
                    logger.info("feed %s: orphaned trigger removed", feed_id)
                    removed += 1

        if installed or removed:
            logger.info("schedules reconciled: %d installed, %d removed", installed, removed)
        return {"installed": installed, "removed": removed}
