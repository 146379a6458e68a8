"""Prometheus metrics for the feed importer.

All metrics are module-level singletons registered on the default
``REGISTRY``.  They are safe to import from multiple modules because
prometheus_client deduplicates by metric name.

Metrics defined here:

  feed_import_runs_total{status}
      Counter - import runs by outcome (success, partial, error, refused).

  feed_import_items_total{outcome}
      Counter - processed feed items by outcome (created, updated, skipped,
      failed).

  feed_import_duration_seconds
      Histogram - wall-clock duration of import runs.

  http_requests_total{method, path, status}
      Counter - HTTP requests handled by the FastAPI application.

  http_request_duration_seconds{method, path}
      Histogram - HTTP request latency in seconds.

  celery_tasks_total{task_name, status}
      Counter - Celery task completions by task name and outcome.

  celery_task_duration_seconds{task_name}
      Histogram - Celery task wall-clock duration in seconds.

Usage::

    from feed_importer.api.metrics import observe_import_run
    observe_import_run(result, duration_seconds)
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

from feed_importer.core.schemas.runs import RunResult

# ---------------------------------------------------------------------------
# Import metrics
# ---------------------------------------------------------------------------

feed_import_runs_total: Counter = Counter(
    "feed_import_runs_total",
    "Feed import runs by outcome.",
    labelnames=["status"],
)
"""Counter incremented once per import run.

Labels:
  status: one of success, partial, error, refused
"""

feed_import_items_total: Counter = Counter(
    "feed_import_items_total",
    "Feed items processed by outcome.",
    labelnames=["outcome"],
)

feed_import_duration_seconds: Histogram = Histogram(
    "feed_import_duration_seconds",
    "Feed import run duration in seconds.",
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0],
)

# ---------------------------------------------------------------------------
# HTTP metrics (populated by middleware in main.py)
# ---------------------------------------------------------------------------

http_requests_total: Counter = Counter(
    "http_requests_total",
    "HTTP requests handled by the FastAPI application.",
    labelnames=["method", "path", "status"],
)
"""Counter incremented after every HTTP response.

Labels:
  method: HTTP method (GET, POST, …)
  path:   route template where possible (e.g. /feeds/{feed_id})
  status: HTTP response status code as string (e.g. '200', '404')
"""

http_request_duration_seconds: Histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "path"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# ---------------------------------------------------------------------------
# Celery task metrics (populated in workers/tasks.py)
# ---------------------------------------------------------------------------

celery_tasks_total: Counter = Counter(
    "celery_tasks_total",
    "Celery task completions by task name and outcome.",
    labelnames=["task_name", "status"],
)

celery_task_duration_seconds: Histogram = Histogram(
    "celery_task_duration_seconds",
    "Celery task wall-clock duration in seconds.",
    labelnames=["task_name"],
    buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 1800.0],
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def observe_import_run(result: RunResult, duration_seconds: float) -> None:
    """Record one import run.  Refused runs count under ``status="refused"``."""
    status = result.status.value if result.status is not None else "refused"
    feed_import_runs_total.labels(status=status).inc()
    if result.status is None:
        return
    feed_import_duration_seconds.observe(duration_seconds)
    for outcome, count in (
        ("created", result.created),
        ("updated", result.updated),
        ("skipped", result.skipped),
        ("failed", result.errors),
    ):
        if count:
            feed_import_items_total.labels(outcome=outcome).inc(count)


def get_metrics_response() -> tuple[bytes, str]:
    """Generate a Prometheus text-format metrics response.

    Returns:
        A tuple of (body_bytes, content_type_string) suitable for constructing
        a FastAPI ``Response`` object.
    """
    from prometheus_client import CONTENT_TYPE_LATEST, generate_latest  # noqa: PLC0415

    return generate_latest(), CONTENT_TYPE_LATEST
