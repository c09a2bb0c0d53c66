"""
Resource routes - list, get and delete for each stored kind.

Every kind is served at ``/{plural}`` and ``/{plural}/{name}``. Configurations
additionally return their rendered document and can be duplicated.
"""

import logging
import threading
from typing import Any, Callable, Dict

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from bindplane_manager.models import (
    Configuration,
    Kind,
    RenderCancelledError,
    Selector,
    SelectorError,
    selector_from_string,
)
from bindplane_manager.store import DependencyError, UnknownResourceError, parse_query

from .dependencies import CLIENT_CLOSED_REQUEST, auth_dependency, get_store, request_cancel
from .models import ConfigurationResponse, DuplicateConfigurationRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["resources"])

RESOURCE_NOT_FOUND = "resource not found"

# path, singular response key, plural response key
RESOURCE_ROUTES: Dict[Kind, tuple] = {
    Kind.SOURCE: ("sources", "source", "sources"),
    Kind.SOURCE_TYPE: ("source-types", "sourceType", "sourceTypes"),
    Kind.PROCESSOR: ("processors", "processor", "processors"),
    Kind.PROCESSOR_TYPE: ("processor-types", "processorType", "processorTypes"),
    Kind.DESTINATION: ("destinations", "destination", "destinations"),
    Kind.DESTINATION_TYPE: ("destination-types", "destinationType", "destinationTypes"),
}


def _delete(store: Any, kind: Kind, name: str) -> Response:
    try:
        deleted = store.delete_resource(kind, name)
    except DependencyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if deleted is None:
        raise HTTPException(status_code=404, detail=RESOURCE_NOT_FOUND)
    logger.info(f"Deleted {kind.value} {name}")
    return Response(status_code=204)


def _register(kind: Kind, path: str, singular: str, plural: str) -> None:
    def list_resources(
        store: Any = Depends(get_store), _user: str = auth_dependency
    ) -> Dict[str, Any]:
        return {plural: [r.to_dict() for r in store.resources(kind)]}

    def get_resource(
        name: str, store: Any = Depends(get_store), _user: str = auth_dependency
    ) -> Dict[str, Any]:
        resource = store.resource(kind, name)
        if resource is None:
            raise HTTPException(status_code=404, detail=RESOURCE_NOT_FOUND)
        return {singular: resource.to_dict()}

    def delete_resource(
        name: str, store: Any = Depends(get_store), _user: str = auth_dependency
    ) -> Response:
        return _delete(store, kind, name)

    label = kind.value
    router.add_api_route(
        f"/{path}", list_resources, methods=["GET"], summary=f"List {label}s", name=f"list_{path}"
    )
    router.add_api_route(
        f"/{path}/{{name}}", get_resource, methods=["GET"], summary=f"Get {label}", name=f"get_{path}"
    )
    router.add_api_route(
        f"/{path}/{{name}}",
        delete_resource,
        methods=["DELETE"],
        status_code=204,
        response_class=Response,
        summary=f"Delete {label}",
        name=f"delete_{path}",
    )


for _kind, (_path, _singular, _plural) in RESOURCE_ROUTES.items():
    _register(_kind, _path, _singular, _plural)


# Configurations


def _configuration_filter(selector: str, query: str) -> Callable[[Configuration, Any], bool]:
    try:
        parsed: Selector = selector_from_string(selector)
    except SelectorError as e:
        raise HTTPException(status_code=400, detail=str(e))
    parsed_query = parse_query(query) if query else None

    def keep(configuration: Configuration, index: Any) -> bool:
        if not parsed.matches(configuration.get_labels()):
            return False
        return parsed_query is None or index.matches(parsed_query, configuration.name())

    return keep


@router.get("/configurations")
def list_configurations(
    selector: str = "",
    query: str = "",
    store: Any = Depends(get_store),
    _user: str = auth_dependency,
) -> Dict[str, Any]:
    """List configurations, optionally filtered by label selector and search query."""
    keep = _configuration_filter(selector, query)
    index = store.configuration_index()
    return {
        "configurations": [c.to_dict() for c in store.configurations() if keep(c, index)]
    }


@router.get("/configurations/{name}", response_model=ConfigurationResponse)
def get_configuration(
    name: str,
    store: Any = Depends(get_store),
    cancel: threading.Event = Depends(request_cancel),
    _user: str = auth_dependency,
) -> ConfigurationResponse:
    """Return the configuration along with its rendered collector document."""
    configuration = store.configuration(name)
    if configuration is None:
        raise HTTPException(status_code=404, detail=RESOURCE_NOT_FOUND)
    try:
        raw = configuration.render(store, cancel=cancel)
    except UnknownResourceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except RenderCancelledError:
        raise HTTPException(status_code=CLIENT_CLOSED_REQUEST, detail="client disconnected")
    return ConfigurationResponse(configuration=configuration.to_dict(), raw=raw)


@router.delete("/configurations/{name}", status_code=204, response_class=Response)
def delete_configuration(
    name: str,
    store: Any = Depends(get_store),
    _user: str = auth_dependency,
) -> Response:
    return _delete(store, Kind.CONFIGURATION, name)


@router.post("/configurations/{name}/duplicate", status_code=201)
def duplicate_configuration(
    name: str,
    request: DuplicateConfigurationRequest,
    store: Any = Depends(get_store),
    _user: str = auth_dependency,
) -> Dict[str, Any]:
    """Copy a configuration under a new name."""
    configuration = store.configuration(name)
    if configuration is None:
        raise HTTPException(status_code=404, detail=RESOURCE_NOT_FOUND)
    if store.configuration(request.name) is not None:
        raise HTTPException(
            status_code=409, detail=f"configuration with name {request.name} already exists"
        )

    duplicate = configuration.model_copy(deep=True)
    duplicate.metadata.name = request.name
    duplicate.metadata.id = ""
    status = store.apply_resources([duplicate])[0]
    if status.reason:
        raise HTTPException(status_code=400, detail=status.reason)
    return {"updates": [status.model_dump(mode="json")]}
