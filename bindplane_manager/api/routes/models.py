"""
Request and response models for the REST API.

Bodies use camel-case keys to match resource documents.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from bindplane_manager.models import Agent, ResourceStatus


class AgentsResponse(BaseModel):
    agents: List[Agent]


class AgentResponse(BaseModel):
    agent: Agent


class DeleteAgentsPayload(BaseModel):
    ids: List[str] = Field(default_factory=list, description="Ids of the agents to delete")


class DeleteAgentsResponse(BaseModel):
    agents: List[Agent] = Field(..., description="Snapshots of the deleted agents")


class AgentLabelsPayload(BaseModel):
    """Labels merged into the agent's labels. Empty values delete a label."""

    labels: Optional[Dict[str, str]] = None

    model_config = ConfigDict(json_schema_extra={"example": {"labels": {"env": "prod"}}})


class AgentLabelsResponse(BaseModel):
    labels: Dict[str, str] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)


class BulkAgentLabelsPayload(BaseModel):
    ids: Optional[List[str]] = None
    labels: Optional[Dict[str, str]] = None
    overwrite: bool = False

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"ids": ["agent-1", "agent-2"], "labels": {"env": "prod"}, "overwrite": True}
        }
    )


class BulkAgentLabelsResponse(BaseModel):
    errors: List[str] = Field(default_factory=list)


class PostAgentVersionRequest(BaseModel):
    version: str = Field(..., description="Agent version to install, e.g. v1.4.0")


class ConfigurationResponse(BaseModel):
    configuration: Optional[Dict[str, Any]] = None
    raw: str = Field("", description="Rendered collector document")


class DuplicateConfigurationRequest(BaseModel):
    name: str = Field(..., description="Name of the new configuration")


class ResourcesPayload(BaseModel):
    """Body of /apply and /delete."""

    resources: List[Dict[str, Any]] = Field(default_factory=list)


class UpdatesResponse(BaseModel):
    updates: List[ResourceStatus]


class InstallCommandResponse(BaseModel):
    command: str
