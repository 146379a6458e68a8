"""Health and metrics route handlers.

``GET /health``
    Liveness check: verifies the process can reach the database
    (``SELECT 1``) and Redis (``PING``).  Always returns HTTP 200; the
    ``status`` field distinguishes ``"ok"`` from ``"degraded"``.

``GET /metrics``
    Prometheus text exposition, when ``METRICS_ENABLED`` is set.

These endpoints are diagnostic - they must never raise HTTP 5xx errors.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import redis
import sqlalchemy as sa
from fastapi import APIRouter, HTTPException, Response, status
from fastapi.responses import JSONResponse

from feed_importer import __version__
from feed_importer.api.metrics import get_metrics_response
from feed_importer.config.settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


def _check_database() -> str:
    """Run ``SELECT 1`` against the configured database.

    Returns:
        ``"ok"`` if the query succeeds, ``"error"`` otherwise.
    """
    from feed_importer.core.database import get_sync_session  # noqa: PLC0415

    try:
        with get_sync_session() as session:
            session.execute(sa.text("SELECT 1"))
        return "ok"
    except Exception:  # noqa: BLE001
        logger.exception("Health check: database unreachable")
        return "error"


def _check_redis() -> str:
    """Send ``PING`` to the configured Redis instance.

    Returns:
        ``"ok"`` if Redis responds, ``"error"`` otherwise.
    """
    settings = get_settings()
    try:
        client = redis.from_url(
            settings.redis_url,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        client.ping()
        client.close()
        return "ok"
    except Exception:  # noqa: BLE001
        logger.exception("Health check: Redis unreachable")
        return "error"


@router.get("/health")
def system_health() -> JSONResponse:
    """Return process health including database and Redis connectivity.

    Returns:
        JSON with keys: ``status``, ``version``, ``database``, ``redis``,
        ``timestamp``.
    """
    db_status = _check_database()
    redis_status = _check_redis()
    overall = "ok" if db_status == "ok" and redis_status == "ok" else "degraded"
    payload = {
        "status": overall,
        "version": __version__,
        "database": db_status,
        "redis": redis_status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if overall != "ok":
        logger.warning("system_health_check degraded: %s", payload)
    return JSONResponse(payload)


@router.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    """Expose Prometheus metrics."""
    if not get_settings().metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Metrics disabled.")
    body, content_type = get_metrics_response()
    return Response(content=body, media_type=content_type)
