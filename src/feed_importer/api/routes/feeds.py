"""Feed configuration routes.

Routes:
    GET    /feeds                 - reconcile schedules, then list feeds
    POST   /feeds                 - create a feed; schedule it; queue a first run
    POST   /feeds/preview         - fetch a URL and summarise its first items
    GET    /feeds/{feed_id}       - get one feed
    PUT    /feeds/{feed_id}       - replace a feed's settings; reschedule
    DELETE /feeds/{feed_id}       - unschedule and delete a feed
    POST   /feeds/{feed_id}/toggle - flip ``enabled``; reschedule
    POST   /feeds/{feed_id}/run   - forced synchronous import run

Scheduling side effects always follow the repository write, so the trigger
registry is updated only for feeds that were actually stored.  A trigger
registry outage is logged and does not fail the request; the periodic
reconciliation task repairs the registry later.
"""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse

from feed_importer.api.dependencies import DispatcherDep, ServicesDep
from feed_importer.api.metrics import observe_import_run
from feed_importer.core.exceptions import FetchError, RunLockedError
from feed_importer.core.schemas.feeds import FeedConfig, FeedInput
from feed_importer.core.schemas.runs import FeedPreview, PreviewRequest, RunResult
from feed_importer.services import Services

logger = structlog.get_logger(__name__)

router = APIRouter()


def _get_or_404(services: Services, feed_id: str) -> FeedConfig:
    feed = services.repository.get(feed_id)
    if feed is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Feed not found.")
    return feed


def _reschedule(services: Services, feed_id: str) -> None:
    try:
        services.scheduler.reschedule(feed_id)
    except Exception as exc:  # noqa: BLE001
        logger.error("feed_reschedule_failed", feed_id=feed_id, error=str(exc))


# ---------------------------------------------------------------------------
# Collection routes
# ---------------------------------------------------------------------------


@router.get("", response_model=list[FeedConfig])
def list_feeds(services: ServicesDep) -> list[FeedConfig]:
    """List every feed, oldest first.

    Schedules are reconciled first so that the listing doubles as a repair
    point after out-of-band changes.
    """
    try:
        services.scheduler.reconcile_all()
    except Exception as exc:  # noqa: BLE001
        logger.error("feed_reconcile_failed", error=str(exc))
    return services.repository.list()


@router.post("", status_code=status.HTTP_201_CREATED, response_model=FeedConfig)
def create_feed(
    body: FeedInput,
    services: ServicesDep,
    dispatch: DispatcherDep,
) -> FeedConfig:
    """Create a feed.

    An enabled feed is scheduled and gets a forced first run queued on the
    worker so that its records appear without waiting for the first fire.
    """
    feed_id = services.repository.save(FeedConfig(**body.model_dump()))
    logger.info("feed_created", feed_id=feed_id, enabled=body.enabled)
    _reschedule(services, feed_id)
    if body.enabled:
        try:
            dispatch(feed_id, True)
        except Exception as exc:  # noqa: BLE001
            logger.error("feed_first_run_dispatch_failed", feed_id=feed_id, error=str(exc))
    return _get_or_404(services, feed_id)


@router.post("/preview", response_model=FeedPreview)
def preview_feed(body: PreviewRequest, services: ServicesDep) -> FeedPreview:
    """Fetch a feed URL and summarise its first items without saving anything.

    Raises:
        HTTPException 422: If the feed cannot be fetched or parsed.
    """
    try:
        return services.pipeline.preview(body.url)
    except FetchError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc


# ---------------------------------------------------------------------------
# Item routes
# ---------------------------------------------------------------------------


@router.get("/{feed_id}", response_model=FeedConfig)
def get_feed(feed_id: str, services: ServicesDep) -> FeedConfig:
    return _get_or_404(services, feed_id)


@router.put("/{feed_id}", response_model=FeedConfig)
def update_feed(feed_id: str, body: FeedInput, services: ServicesDep) -> FeedConfig:
    """Replace a feed's settings.  Run status and ``created_at`` are kept."""
    _get_or_404(services, feed_id)
    services.repository.save(FeedConfig(id=feed_id, **body.model_dump()))
    logger.info("feed_updated", feed_id=feed_id, enabled=body.enabled)
    _reschedule(services, feed_id)
    return _get_or_404(services, feed_id)


@router.delete("/{feed_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_feed(feed_id: str, services: ServicesDep) -> None:
    """Unschedule and delete a feed.  Its run history is kept."""
    _get_or_404(services, feed_id)
    try:
        services.scheduler.unschedule(feed_id)
    except Exception as exc:  # noqa: BLE001
        logger.error("feed_unschedule_failed", feed_id=feed_id, error=str(exc))
    services.repository.delete(feed_id)
    logger.info("feed_deleted", feed_id=feed_id)


@router.post("/{feed_id}/toggle", response_model=FeedConfig)
def toggle_feed(feed_id: str, services: ServicesDep) -> FeedConfig:
    """Flip a feed's ``enabled`` flag and reschedule it."""
    feed = _get_or_404(services, feed_id)
    updated = services.repository.set_enabled(feed_id, not feed.enabled)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Feed not found.")
    logger.info("feed_toggled", feed_id=feed_id, enabled=updated.enabled)
    _reschedule(services, feed_id)
    return updated


@router.post("/{feed_id}/run", response_model=RunResult)
def run_feed_now(feed_id: str, services: ServicesDep) -> RunResult | JSONResponse:
    """Run an import now, in the request, even if the feed is disabled.

    Returns:
        The run summary.  HTTP 409 when the feed is already being imported.
    """
    _get_or_404(services, feed_id)
    started = time.perf_counter()
    result = services.pipeline.run(feed_id, force=True)
    observe_import_run(result, time.perf_counter() - started)
    logger.info("feed_run_now", feed_id=feed_id, **result.model_dump(mode="json"))
    if result.status is None and result.message == RunLockedError.message:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=result.model_dump(mode="json"),
        )
    return result
