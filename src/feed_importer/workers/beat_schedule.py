"""Celery Beat periodic task schedule for the feed importer.

This module is imported by ``celery_app.py`` and applied via
``celery_app.conf.beat_schedule``.

Schedule overview:

+---------------------------+---------------------+-----------------------------+
| Task name                 | Schedule            | Purpose                     |
+===========================+=====================+=============================+
| dispatch_due_imports      | Every minute        | Claim due feed triggers and |
|                           |                     | enqueue their imports.      |
+---------------------------+---------------------+-----------------------------+
| reconcile_feed_schedules  | Every 15 minutes    | Install missing triggers    |
|                           |                     | for enabled feeds and drop  |
|                           |                     | those of disabled feeds.    |
+---------------------------+---------------------+-----------------------------+
"""

from __future__ import annotations

from celery.schedules import crontab

#: Celery Beat schedule dict.  Applied to ``celery_app.conf.beat_schedule``
#: in ``celery_app.py``.
beat_schedule: dict[str, dict] = {  # type: ignore[type-arg]
    # ------------------------------------------------------------------
    # Trigger dispatch - every minute
    # ------------------------------------------------------------------
    "dispatch_due_imports": {
        "task": "feed_importer.workers.tasks.dispatch_due_imports",
        "schedule": crontab(),
        "options": {
            "queue": "celery",
            "expires": 55,  # a late dispatch is superseded by the next one
        },
    },
    # ------------------------------------------------------------------
    # Schedule reconciliation - every 15 minutes
    # ------------------------------------------------------------------
    "reconcile_feed_schedules": {
        "task": "feed_importer.workers.tasks.reconcile_feed_schedules",
        "schedule": crontab(minute="*/15"),
        "options": {
            "queue": "celery",
            "expires": 600,
        },
    },
}
