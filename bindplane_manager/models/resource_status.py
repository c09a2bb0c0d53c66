"""Per-resource outcome of an apply or delete."""

from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class UpdateStatus(str, Enum):
    UNCHANGED = "unchanged"
    CONFIGURED = "configured"
    CREATED = "created"
    DELETED = "deleted"
    INVALID = "invalid"
    ERROR = "error"
    IN_USE = "in-use"


class ResourceStatus(BaseModel):
    """A resource together with what happened to it."""

    resource: Dict[str, Any] = Field(..., description="The resource document")
    status: UpdateStatus = Field(..., description="Outcome for this resource")
    reason: str = Field("", description="Why the resource is invalid, in use or errored")

    @classmethod
    def of(cls, resource: Any, status: UpdateStatus, reason: str = "") -> "ResourceStatus":
        document = resource.to_dict() if hasattr(resource, "to_dict") else dict(resource)
        return cls(resource=document, status=status, reason=reason)

    def kind(self) -> str:
        return str(self.resource.get("kind", ""))

    def name(self) -> str:
        return str((self.resource.get("metadata") or {}).get("name", ""))

    def message(self) -> str:
        """One line summary, with the reason on an indented second line."""
        line = f"{self.kind()} {self.name()} {self.status.value}"
        if self.reason:
            return f"{line}\n\t{self.reason}"
        return line

    def __str__(self) -> str:
        return f"{self.kind()} {self.name()} {self.status.value}"
