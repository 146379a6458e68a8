"""Celery tasks for the feed importer.

- ``run_feed_import``: one import run for one feed.  Enqueued by
  ``dispatch_due_imports`` for scheduled fires (``force=False``) and by the
  API for the first run of a newly created feed (``force=True``).
- ``dispatch_due_imports``: Beat target, every minute.  Claims due triggers
  from the registry and enqueues one ``run_feed_import`` per claimed feed.
- ``reconcile_feed_schedules``: Beat target.  Runs
  :meth:`~feed_importer.core.scheduler.FeedScheduler.reconcile_all`.

Error handling policy: ``run_feed_import`` cannot fail, because the pipeline
never raises.  The two orchestration tasks catch all exceptions at the
outermost level, log them at ERROR level and return an error summary instead
of re-raising, so a Redis or database outage does not trigger a retry storm;
the next Beat tick simply tries again.

Task names must match the references in ``workers/beat_schedule.py``::

    feed_importer.workers.tasks.run_feed_import
    feed_importer.workers.tasks.dispatch_due_imports
    feed_importer.workers.tasks.reconcile_feed_schedules
"""

from __future__ import annotations

import logging
import time
from typing import Any

import structlog

from feed_importer.core.feed_repository import utc_now
from feed_importer.core.scheduler import feed_id_from_hook
from feed_importer.services import get_services
from feed_importer.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)
_stdlib_logger = logging.getLogger(__name__)


def _record_task_metrics(task_name: str, status: str, started: float) -> None:
    try:
        from feed_importer.api.metrics import (  # noqa: PLC0415
            celery_task_duration_seconds,
            celery_tasks_total,
        )

        celery_tasks_total.labels(task_name=task_name, status=status).inc()
        celery_task_duration_seconds.labels(task_name=task_name).observe(
            time.perf_counter() - started
        )
    except Exception as exc:  # noqa: BLE001
        _stdlib_logger.debug("%s: metrics recording failed: %s", task_name, exc)


# ---------------------------------------------------------------------------
# Import run
# ---------------------------------------------------------------------------


@celery_app.task(
    name="feed_importer.workers.tasks.run_feed_import",
    bind=True,
    acks_late=True,
)
def run_feed_import(self: Any, feed_id: str, force: bool = False) -> dict[str, Any]:
    """Run one import for *feed_id*.

    Args:
        feed_id: The feed to import.
        force: Import even if the feed is disabled.  Scheduled fires pass
            ``False`` so that the enabled flag is re-checked at run time.

    Returns:
        The :class:`~feed_importer.core.schemas.runs.RunResult` as a dict.
    """
    from feed_importer.api.metrics import observe_import_run  # noqa: PLC0415

    started = time.perf_counter()
    structlog.contextvars.bind_contextvars(feed_id=feed_id, task_id=self.request.id)
    try:
        log = logger.bind(task="run_feed_import", force=force)
        log.info("run_feed_import: starting")

        result = get_services().pipeline.run(feed_id, force=force)
        duration = time.perf_counter() - started
        observe_import_run(result, duration)

        summary = result.model_dump(mode="json")
        log.info("run_feed_import: complete", duration_seconds=round(duration, 2), **summary)
        _record_task_metrics("run_feed_import", "success" if result.success else "error", started)
        return summary
    finally:
        structlog.contextvars.unbind_contextvars("feed_id", "task_id")


# ---------------------------------------------------------------------------
# Trigger dispatch
# ---------------------------------------------------------------------------


@celery_app.task(name="feed_importer.workers.tasks.dispatch_due_imports")
def dispatch_due_imports() -> dict[str, Any]:
    """Claim due triggers and enqueue their imports.

    Returns:
        Dict with ``dispatched`` count and the dispatched ``feed_ids``.
    """
    started = time.perf_counter()
    log = logger.bind(task="dispatch_due_imports")

    try:
        hooks = get_services().triggers.claim_due(utc_now())
    except Exception as exc:  # noqa: BLE001
        log.error("dispatch_due_imports: claiming due triggers failed", error=str(exc), exc_info=True)
        _record_task_metrics("dispatch_due_imports", "error", started)
        return {"error": str(exc), "dispatched": 0}

    feed_ids: list[str] = []
    for hook in hooks:
        feed_id = feed_id_from_hook(hook)
        if feed_id is None:
            log.warning("dispatch_due_imports: ignoring foreign hook", hook=hook)
            continue
        try:
            run_feed_import.delay(feed_id, force=False)
        except Exception as exc:  # noqa: BLE001
            log.error("dispatch_due_imports: enqueue failed", feed_id=feed_id, error=str(exc))
            continue
        feed_ids.append(feed_id)

    summary = {"dispatched": len(feed_ids), "feed_ids": feed_ids}
    if feed_ids:
        log.info("dispatch_due_imports: complete", **summary)
    _record_task_metrics("dispatch_due_imports", "success", started)
    return summary


# ---------------------------------------------------------------------------
# Schedule reconciliation
# ---------------------------------------------------------------------------


@celery_app.task(name="feed_importer.workers.tasks.reconcile_feed_schedules")
def reconcile_feed_schedules() -> dict[str, Any]:
    """Bring the trigger registry in line with the enabled feeds.

    Returns:
        Dict with ``installed`` and ``removed`` counts.
    """
    started = time.perf_counter()
    log = logger.bind(task="reconcile_feed_schedules")

    try:
        summary = get_services().scheduler.reconcile_all()
    except Exception as exc:  # noqa: BLE001
        log.error("reconcile_feed_schedules: failed", error=str(exc), exc_info=True)
        _record_task_metrics("reconcile_feed_schedules", "error", started)
        return {"error": str(exc), "installed": 0, "removed": 0}

    log.info("reconcile_feed_schedules: complete", **summary)
    _record_task_metrics("reconcile_feed_schedules", "success", started)
    return summary
