"""
Agent routes - listing, deletion, labels, configuration and queued operations.
"""

import logging
import threading
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, Response

from bindplane_manager.logging_config import log_agent_event
from bindplane_manager.models import (
    Agent,
    RenderCancelledError,
    labels_from_map,
    labels_from_merge,
)
from bindplane_manager.models.labels import Labels
from bindplane_manager.models.selector import SelectorError, selector_from_string
from bindplane_manager.store import UnknownResourceError

from .dependencies import (
    CLIENT_CLOSED_REQUEST,
    auth_dependency,
    get_manager,
    get_store,
    request_cancel,
)
from .models import (
    AgentLabelsPayload,
    AgentLabelsResponse,
    AgentResponse,
    AgentsResponse,
    BulkAgentLabelsPayload,
    BulkAgentLabelsResponse,
    ConfigurationResponse,
    DeleteAgentsPayload,
    DeleteAgentsResponse,
    PostAgentVersionRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["agents"])

AGENT_NOT_FOUND = "agent not found"
LABEL_CONFLICT = "new labels conflict with existing labels, add ?overwrite=true to replace labels"


class LabelConflictError(Exception):
    """Incoming labels conflict with the agent's labels and overwrite was not requested."""

    def __init__(self, labels: Labels):
        self.labels = labels
        super().__init__(LABEL_CONFLICT)


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"{name} must be a number: {e}")


def _validated_labels(labels: Optional[Dict[str, str]]) -> Labels:
    if labels is None:
        raise HTTPException(status_code=400, detail="body is missing the required labels field")
    new_labels, err = labels_from_map(labels)
    if err is not None:
        raise HTTPException(status_code=400, detail=err.messages)
    return new_labels


def _label_patcher(new_labels: Labels, overwrite: bool):
    def patch(agent: Agent) -> None:
        if not overwrite and agent.labels.conflicts(new_labels):
            raise LabelConflictError(Labels(agent.labels))
        agent.labels = labels_from_merge(agent.labels, new_labels)

    return patch


def _require_agent(store: Any, agent_id: str) -> Agent:
    agent = store.agent(agent_id)
    if agent is None:
        raise HTTPException(status_code=404, detail=AGENT_NOT_FOUND)
    return agent


@router.get("/agents", response_model=AgentsResponse, response_model_exclude_none=True)
async def list_agents(
    selector: str = "",
    query: str = "",
    offset: str = "0",
    limit: str = "0",
    sort: str = "",
    store: Any = Depends(get_store),
    _user: str = auth_dependency,
) -> AgentsResponse:
    """List agents, optionally filtered by label selector and search query."""
    try:
        parsed_selector = selector_from_string(selector)
    except SelectorError as e:
        raise HTTPException(status_code=400, detail=str(e))

    agents = store.agents(
        selector=parsed_selector,
        query=query or None,
        offset=_parse_int("offset", offset),
        limit=_parse_int("limit", limit),
        sort=sort,
    )
    return AgentsResponse(agents=agents)


@router.delete("/agents", response_model=DeleteAgentsResponse, response_model_exclude_none=True)
async def delete_agents(
    payload: DeleteAgentsPayload,
    store: Any = Depends(get_store),
    _user: str = auth_dependency,
) -> DeleteAgentsResponse:
    deleted = store.delete_agents(payload.ids)
    for agent in deleted:
        log_agent_event(agent.id, "deleted")
    return DeleteAgentsResponse(agents=deleted)


@router.patch("/agents/labels", response_model=BulkAgentLabelsResponse)
async def bulk_label_agents(
    payload: BulkAgentLabelsPayload,
    store: Any = Depends(get_store),
    _user: str = auth_dependency,
) -> BulkAgentLabelsResponse:
    """
    Apply labels to several agents.

    Agents that do not exist or whose labels conflict are reported in
    ``errors``; the others are updated.
    """
    new_labels = _validated_labels(payload.labels)
    if payload.ids is None:
        raise HTTPException(status_code=400, detail="body is missing the required ids field")

    errors = []
    patch = _label_patcher(new_labels, payload.overwrite)
    for agent_id in payload.ids:
        prefix = f"failed to apply labels for agent with id {agent_id}"
        if store.agent(agent_id) is None:
            errors.append(f"{prefix}, agent not found")
            continue
        try:
            store.upsert_agent(agent_id, patch)
        except LabelConflictError:
            errors.append(f"{prefix}, labels conflict, include overwrite: true in body to overwrite")

    logger.info(f"Applied labels {new_labels} to {len(payload.ids) - len(errors)} agents")
    return BulkAgentLabelsResponse(errors=errors)


@router.get("/agents/{agent_id}", response_model=AgentResponse, response_model_exclude_none=True)
async def get_agent(
    agent_id: str,
    store: Any = Depends(get_store),
    _user: str = auth_dependency,
) -> AgentResponse:
    return AgentResponse(agent=_require_agent(store, agent_id))


@router.get("/agents/{agent_id}/labels", response_model=AgentLabelsResponse)
async def get_agent_labels(
    agent_id: str,
    store: Any = Depends(get_store),
    _user: str = auth_dependency,
) -> AgentLabelsResponse:
    agent = _require_agent(store, agent_id)
    return AgentLabelsResponse(labels=agent.labels)


@router.patch("/agents/{agent_id}/labels", response_model=AgentLabelsResponse)
async def patch_agent_labels(
    agent_id: str,
    payload: AgentLabelsPayload,
    overwrite: bool = Query(False, description="Replace existing labels with the same names"),
    store: Any = Depends(get_store),
    _user: str = auth_dependency,
) -> Any:
    """
    Merge labels into an agent's labels. Empty values delete a label.

    Without ``overwrite`` a conflicting value returns 409 along with the
    agent's current labels.
    """
    new_labels = _validated_labels(payload.labels)
    _require_agent(store, agent_id)

    try:
        agent = store.upsert_agent(agent_id, _label_patcher(new_labels, overwrite))
    except LabelConflictError as e:
        return JSONResponse(
            status_code=409,
            content=AgentLabelsResponse(labels=e.labels, errors=[str(e)]).model_dump(),
        )

    log_agent_event(agent_id, "labeled", labels=str(new_labels), result=str(agent.labels))
    return AgentLabelsResponse(labels=agent.labels)


@router.get("/agents/{agent_id}/configuration", response_model=ConfigurationResponse)
def get_agent_configuration(
    agent_id: str,
    store: Any = Depends(get_store),
    cancel: threading.Event = Depends(request_cancel),
    _user: str = auth_dependency,
) -> ConfigurationResponse:
    """The configuration that applies to the agent, with its rendered document."""
    _require_agent(store, agent_id)
    configuration = store.agent_configuration(agent_id)
    if configuration is None:
        return ConfigurationResponse()
    try:
        raw = configuration.render(store, cancel=cancel)
    except UnknownResourceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except RenderCancelledError:
        raise HTTPException(status_code=CLIENT_CLOSED_REQUEST, detail="client disconnected")
    return ConfigurationResponse(configuration=configuration.to_dict(), raw=raw)


@router.put("/agents/{agent_id}/restart", status_code=202)
async def restart_agent(
    agent_id: str,
    manager: Any = Depends(get_manager),
    _user: str = auth_dependency,
) -> Response:
    _require_agent(manager.store, agent_id)
    manager.restart_agent(agent_id)
    return Response(status_code=202)


@router.post("/agents/{agent_id}/version", status_code=202)
async def update_agent_version(
    agent_id: str,
    request: PostAgentVersionRequest,
    manager: Any = Depends(get_manager),
    _user: str = auth_dependency,
) -> Response:
    _require_agent(manager.store, agent_id)
    manager.update_agent_version(agent_id, request.version)
    return Response(status_code=202)
