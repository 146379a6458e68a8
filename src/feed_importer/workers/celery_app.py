"""Celery application factory for the feed importer.

Configures the broker, result backend, serialization and time limits.  All
configuration values are sourced from ``Settings`` so that no secrets or
environment-specific values are hard-coded here.

Usage (starting a worker)::

    celery -A feed_importer.workers.celery_app worker --loglevel=info

Usage (starting the Beat scheduler that fires due feed imports)::

    celery -A feed_importer.workers.celery_app beat --loglevel=info

Usage (within application code)::

    from feed_importer.workers.tasks import run_feed_import

    run_feed_import.delay("feed_0123456789abcdef", force=True)
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import setup_logging, worker_process_init
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Load .env values into os.environ before settings are read, so workers
# started outside a shell that sourced .env see the same configuration.
# ---------------------------------------------------------------------------

load_dotenv()

from feed_importer.config.settings import get_settings  # noqa: E402

settings = get_settings()

#: The global Celery application instance.
celery_app = Celery(
    "feed_importer",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["feed_importer.workers.tasks"],
)

# ---------------------------------------------------------------------------
# Core configuration
# ---------------------------------------------------------------------------

celery_app.conf.update(
    # Serialization - JSON keeps tasks inspectable.  All task arguments and
    # return values must be JSON-serializable.
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Acknowledge after completion so a crashed worker's import is redelivered.
    task_acks_late=True,
    # Import runs can be long; do not let them pile up on one worker.
    worker_prefetch_multiplier=1,
    result_expires=86_400,
    # Soft limit raises inside the task; hard limit kills it.  The hard limit
    # matches the run lock lifetime so a killed run never blocks its feed.
    task_soft_time_limit=3_600,
    task_time_limit=settings.run_lock_timeout_seconds,
    task_routes={
        "feed_importer.workers.tasks.run_feed_import": {"queue": "imports"},
    },
    beat_schedule_filename="celerybeat-schedule",
)

# Import and apply the Beat schedule after the app is configured.
from feed_importer.workers.beat_schedule import beat_schedule  # noqa: E402

celery_app.conf.beat_schedule = beat_schedule


@setup_logging.connect
def _configure_worker_logging(**kwargs: object) -> None:  # noqa: ARG001
    """Route Celery's own logging through the structlog processor chain."""
    from feed_importer.core.logging_config import configure_logging  # noqa: PLC0415

    configure_logging(settings.log_level)


# ---------------------------------------------------------------------------
# Engine disposal on fork - pooled connections must not cross processes
# ---------------------------------------------------------------------------
@worker_process_init.connect
def _dispose_engine_on_fork(**kwargs: object) -> None:  # noqa: ARG001
    """Dispose the SQLAlchemy engine after Celery forks a worker process.

    Connections opened by the parent before ``fork()`` share sockets with
    it; disposing without closing makes the child open its own.
    """
    from feed_importer.core import database as _db  # noqa: PLC0415

    _db.engine.dispose(close=False)
