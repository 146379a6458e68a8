"""Mapping vocabulary routes.

Routes:
    GET /schema/source-fields                    - source fields and labels
    GET /schema/collections/{collection}/fields  - targets for one collection
"""

from __future__ import annotations

from fastapi import APIRouter

from feed_importer.api.dependencies import ServicesDep
from feed_importer.core.schemas.mapping import TargetFields

router = APIRouter()


@router.get("/source-fields", response_model=dict[str, str])
def source_fields(services: ServicesDep) -> dict[str, str]:
    return services.mapper.source_fields()


@router.get("/collections/{collection}/fields", response_model=TargetFields)
def target_fields(collection: str, services: ServicesDep) -> TargetFields:
    """List the targets of *collection*.  Unknown collections get native fields only."""
    return services.mapper.target_fields(collection)
