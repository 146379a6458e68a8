"""FastAPI dependency injection providers.

Routes never build collaborators themselves; they receive them through the
providers below, which tests replace via ``app.dependency_overrides``.

    get_feed_services     - the process-wide :class:`~feed_importer.services.Services`
    get_import_dispatcher - callable that queues a background import run
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends

from feed_importer.services import Services, get_services

ImportDispatcher = Callable[[str, bool], None]


def get_feed_services() -> Services:
    """Return the wired collaborators."""
    return get_services()


def _queue_import(feed_id: str, force: bool) -> None:
    from feed_importer.workers.tasks import run_feed_import  # noqa: PLC0415

    run_feed_import.delay(feed_id, force=force)


def get_import_dispatcher() -> ImportDispatcher:
    """Return the callable used to queue an import on the Celery worker."""
    return _queue_import


ServicesDep = Annotated[Services, Depends(get_feed_services)]
DispatcherDep = Annotated[ImportDispatcher, Depends(get_import_dispatcher)]
