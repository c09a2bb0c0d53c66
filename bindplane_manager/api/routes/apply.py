"""
Batch routes - apply and delete lists of resource documents.
"""

import logging
from typing import Any, List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from bindplane_manager.models import ResourceMeta, ResourceParseError, parse_resource

from .dependencies import auth_dependency, get_store
from .models import ResourcesPayload, UpdatesResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["apply"])


def _parse(payload: ResourcesPayload) -> List[ResourceMeta]:
    try:
        return [parse_resource(document) for document in payload.resources]
    except ResourceParseError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/apply", response_model=UpdatesResponse)
def apply_resources(
    payload: ResourcesPayload,
    store: Any = Depends(get_store),
    _user: str = auth_dependency,
) -> UpdatesResponse:
    """
    Validate and store each resource.

    The batch is not atomic; ``updates`` holds one status per resource in
    request order.
    """
    resources = _parse(payload)
    logger.info(f"/apply count={len(resources)}")
    return UpdatesResponse(updates=store.apply_resources(resources))


@router.post("/delete", status_code=202, response_model=UpdatesResponse)
def delete_resources(
    payload: ResourcesPayload,
    store: Any = Depends(get_store),
    _user: str = auth_dependency,
) -> Any:
    """Delete each resource by kind and name. Resources still in use are kept."""
    resources = _parse(payload)
    logger.info(f"/delete count={len(resources)}")
    updates = store.delete_resources(resources)
    return JSONResponse(
        status_code=202,
        content=UpdatesResponse(updates=updates).model_dump(mode="json"),
    )
