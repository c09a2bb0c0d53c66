"""
Profile and Context resources.

Profiles hold a named client/server configuration and a Context names the
profile in use. Both are parsed like any other resource but are never stored
by the server.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config.settings import BindPlaneConfig
from .resource import Kind, Metadata, ResourceMeta, API_VERSION


class Profile(ResourceMeta):
    kind: str = Kind.PROFILE.value
    spec: BindPlaneConfig = Field(default_factory=BindPlaneConfig)

    @field_validator("spec", mode="before")
    @classmethod
    def _null_spec(cls, v):
        return {} if v is None else v


class ContextSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    current_context: str = Field("", alias="currentContext", description="Profile in use")


class Context(ResourceMeta):
    kind: str = Kind.CONTEXT.value
    spec: ContextSpec = Field(default_factory=ContextSpec)

    @field_validator("spec", mode="before")
    @classmethod
    def _null_spec(cls, v):
        return {} if v is None else v


def new_profile(name: str, spec: BindPlaneConfig) -> Profile:
    return Profile(api_version=API_VERSION, metadata=Metadata(name=name), spec=spec)


def new_context(name: str, current_context: str) -> Context:
    return Context(
        api_version=API_VERSION,
        metadata=Metadata(name=name),
        spec=ContextSpec(current_context=current_context),
    )
