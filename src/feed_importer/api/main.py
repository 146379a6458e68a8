"""FastAPI application factory and entry point.

Creates the application instance, registers the request logging middleware
and mounts the route routers.  The API is a thin JSON surface for operators;
imports themselves run in the Celery worker (scheduled) or in the request
(``POST /feeds/{feed_id}/run``).

Usage::

    # Development server (from project root)
    uvicorn feed_importer.api.main:app --reload

    # Production
    gunicorn feed_importer.api.main:app -k uvicorn.workers.UvicornWorker
"""

from __future__ import annotations

import time
import uuid
from typing import Callable

import structlog
from fastapi import FastAPI, Request, Response

from feed_importer import __version__
from feed_importer.api.metrics import http_request_duration_seconds, http_requests_total
from feed_importer.api.routes import feeds, health, import_runs, schema
from feed_importer.config.settings import get_settings
from feed_importer.core.logging_config import configure_logging, request_id_var

# ---------------------------------------------------------------------------
# Logging configuration - applied once at module import time so that log
# records emitted during app construction are captured correctly.
# The log level is re-applied inside create_app() after settings are loaded.
# ---------------------------------------------------------------------------

configure_logging("INFO")

logger = structlog.get_logger(__name__)


def _route_path(request: Request) -> str:
    """Return the matched route template, so metrics labels stay bounded."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application.

    Separated from the module-level ``app`` singleton so that tests can
    call ``create_app()`` with a patched settings environment before the
    singleton is created.

    Returns:
        A fully configured ``FastAPI`` instance.
    """
    settings = get_settings()

    # Re-apply logging configuration with the correct level from settings.
    configure_logging(settings.log_level)

    application = FastAPI(
        title=settings.app_name,
        description="Scheduled RSS/Atom feed import into structured content records.",
        version=__version__,
        debug=settings.debug,
        redirect_slashes=False,
    )

    # ---- Request logging middleware ----------------------------------------

    @application.middleware("http")
    async def request_logging_middleware(
        request: Request, call_next: Callable
    ) -> Response:
        """Log every request with its status and duration, and record HTTP metrics.

        Attaches a unique ``request_id`` to the structlog context so that all
        log lines emitted during a request can be correlated.
        """
        request_id = str(uuid.uuid4())
        # Populate the ContextVar so stdlib logging records also carry the ID.
        request_id_var.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("unhandled_exception", exc_info=exc)
            raise
        finally:
            elapsed = time.perf_counter() - start
            status_code = getattr(response, "status_code", 500)
            log_fn = logger.warning if status_code >= 400 else logger.info
            log_fn(
                "request_complete",
                status_code=status_code,
                elapsed_ms=round(elapsed * 1000, 2),
            )
            path = _route_path(request)
            http_requests_total.labels(
                method=request.method, path=path, status=str(status_code)
            ).inc()
            http_request_duration_seconds.labels(method=request.method, path=path).observe(elapsed)

        response.headers["X-Request-ID"] = request_id
        return response

    # ---- Routers -------------------------------------------------------------

    application.include_router(health.router)
    application.include_router(feeds.router, prefix="/feeds", tags=["feeds"])
    application.include_router(schema.router, prefix="/schema", tags=["schema"])
    application.include_router(import_runs.router, prefix="/import-runs", tags=["import-runs"])

    # ---- Lifecycle events -------------------------------------------------

    @application.on_event("startup")
    def on_startup() -> None:
        """Log startup; create tables when running on a local SQLite file."""
        if settings.database_url.startswith("sqlite"):
            from feed_importer.core.database import init_db  # noqa: PLC0415

            init_db()
        logger.info(
            "application_startup",
            app_name=settings.app_name,
            debug=settings.debug,
            log_level=settings.log_level,
            database_url=settings.database_url,
        )

    @application.on_event("shutdown")
    def on_shutdown() -> None:
        logger.info("application_shutdown")

    return application


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

app = create_app()
"""The FastAPI application instance.

This is the ASGI callable passed to Uvicorn / Gunicorn.
"""
