"""Import run history routes.

Routes:
    GET    /import-runs   - history entries, newest first
    DELETE /import-runs   - clear the whole history
"""

from __future__ import annotations

from typing import Annotated, Optional

import structlog
from fastapi import APIRouter, Query

from feed_importer.api.dependencies import ServicesDep
from feed_importer.core.schemas.runs import ImportRunRecord

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("", response_model=list[ImportRunRecord])
def list_import_runs(
    services: ServicesDep,
    feed_id: Annotated[Optional[str], Query()] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[ImportRunRecord]:
    """Return up to *limit* history entries, optionally for one feed."""
    return services.run_logger.get_logs(limit=limit, feed_id=feed_id)


@router.delete("")
def clear_import_runs(services: ServicesDep) -> dict[str, int]:
    deleted = services.run_logger.clear()
    logger.info("import_runs_cleared", deleted=deleted)
    return {"deleted": deleted}
