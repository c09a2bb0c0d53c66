"""
Pydantic model for managed agents.

Agents are created the first time they are observed and updated by
connection events, operator label patches and configuration status reports.
"""

from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .labels import Labels
from .resource import Indexer
from .selector import Selector


class AgentStatus(IntEnum):
    """Agent connection and configuration status."""

    DISCONNECTED = 0
    CONNECTED = 1
    ERROR = 2
    COMPONENT_FAILED = 4
    DELETED = 5
    CONFIGURING = 6

    def display_text(self) -> str:
        return _STATUS_TEXT[self]


_STATUS_TEXT = {
    AgentStatus.DISCONNECTED: "Disconnected",
    AgentStatus.CONNECTED: "Connected",
    AgentStatus.ERROR: "Error",
    AgentStatus.COMPONENT_FAILED: "Component Failed",
    AgentStatus.DELETED: "Deleted",
    AgentStatus.CONFIGURING: "Configuring",
}


class InvalidTransitionError(ValueError):
    """The requested status change is not allowed from the current status."""

    def __init__(self, agent_id: str, status: AgentStatus, action: str):
        self.agent_id = agent_id
        self.status = status
        self.action = action
        super().__init__(
            f"agent {agent_id} cannot {action} while {status.display_text().lower()}"
        )


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Agent(BaseModel):
    """
    A managed telemetry collector.

    ``secret_key`` is accepted on input but never serialized.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "01GAB5PGZ0XW0P7GD0SFV06B16",
                "name": "web-01",
                "type": "observiq-otel-collector",
                "arch": "amd64",
                "hostname": "web-01",
                "labels": {"env": "prod", "bindplane/agent-os": "linux"},
                "version": "v1.4.0",
                "platform": "linux",
                "operatingSystem": "Ubuntu 22.04",
                "status": 1,
                "connectedAt": "2025-01-15T10:30:00Z",
            }
        },
    )

    id: str = Field(..., description="Unique agent identifier")
    name: str = Field("", description="Agent name")
    type: str = Field("", description="Agent type")
    architecture: str = Field("", alias="arch", description="CPU architecture")
    host_name: str = Field("", alias="hostname", description="Host name")
    labels: Labels = Field(default_factory=Labels, description="Agent labels")
    version: str = Field("", description="Agent version")
    home: str = Field("", description="Installation directory")
    platform: str = Field("", description="Platform, e.g. linux")
    operating_system: str = Field("", alias="operatingSystem", description="OS description")
    mac_address: str = Field("", alias="macAddress", description="MAC address")
    remote_address: str = Field("", alias="remoteAddress", description="Address of the connection")

    secret_key: str = Field("", alias="secretKey", exclude=True)

    status: AgentStatus = Field(AgentStatus.DISCONNECTED, description="Current status")
    error_message: str = Field("", alias="errorMessage", description="Last reported error")

    configuration: Optional[Any] = Field(None, description="Reported configuration reference")
    connected_at: Optional[datetime] = Field(None, alias="connectedAt")
    disconnected_at: Optional[datetime] = Field(None, alias="disconnectedAt")

    @field_validator(
        "name",
        "type",
        "architecture",
        "host_name",
        "version",
        "home",
        "platform",
        "operating_system",
        "mac_address",
        "remote_address",
        "secret_key",
        "error_message",
        mode="before",
    )
    @classmethod
    def _null_to_empty(cls, v):
        return "" if v is None else v

    def unique_key(self) -> str:
        return self.id

    def get_labels(self) -> Labels:
        return self.labels

    def status_display_text(self) -> str:
        try:
            return AgentStatus(self.status).display_text()
        except ValueError:
            return "Unknown"

    def matches(self, selector: Selector) -> bool:
        return selector.matches(self.labels)

    # Lifecycle

    def connect(self, new_version: str) -> None:
        """
        Mark the agent connected.

        ``connected_at`` is reset for a new version or when the agent was
        disconnected. Otherwise it is kept.
        """
        self._require_not_deleted("connect")
        if (
            self.status == AgentStatus.DISCONNECTED
            or self.version != new_version
            or self.connected_at is None
        ):
            self.connected_at = _now()
        self.version = new_version
        self.disconnected_at = None
        self.status = AgentStatus.CONNECTED

    def disconnect(self) -> None:
        self._require_not_deleted("disconnect")
        self.disconnected_at = _now()
        self.status = AgentStatus.DISCONNECTED

    def disconnected_since(self, since: datetime) -> bool:
        """True if the agent disconnected before ``since``."""
        return self.disconnected_at is not None and self.disconnected_at < since

    def configure(self) -> None:
        self._require("configure", AgentStatus.CONNECTED)
        self.status = AgentStatus.CONFIGURING

    def ack(self, error_message: str = "") -> None:
        """Configuration applied; an error message moves the agent to Error."""
        self._require("acknowledge a configuration", AgentStatus.CONFIGURING)
        if error_message:
            self.status = AgentStatus.ERROR
            self.error_message = error_message
        else:
            self.status = AgentStatus.CONNECTED
            self.error_message = ""

    def fail(self, error_message: str) -> None:
        self._require("report an error", AgentStatus.CONNECTED, AgentStatus.CONFIGURING)
        self.status = AgentStatus.ERROR
        self.error_message = error_message

    def recover(self) -> None:
        self._require("recover", AgentStatus.ERROR)
        self.status = AgentStatus.CONNECTED
        self.error_message = ""

    def delete(self) -> None:
        self.status = AgentStatus.DELETED
        self.disconnected_at = None

    def _require_not_deleted(self, action: str) -> None:
        if self.status == AgentStatus.DELETED:
            raise InvalidTransitionError(self.id, AgentStatus.DELETED, action)

    def _require(self, action: str, *allowed: AgentStatus) -> None:
        if self.status not in allowed:
            raise InvalidTransitionError(self.id, AgentStatus(self.status), action)

    # Printable

    def print_kind_singular(self) -> str:
        return "Agent"

    def print_kind_plural(self) -> str:
        return "Agents"

    def print_field_titles(self) -> List[str]:
        return ["ID", "Name", "Version", "Status", "Connected", "Disconnected", "Labels"]

    def print_field_value(self, title: str) -> str:
        if title == "ID":
            return self.id
        if title == "Name":
            return self.name
        if title == "Version":
            return self.version
        if title == "Status":
            return self.status_display_text()
        if title == "Connected":
            if self.status == AgentStatus.DISCONNECTED:
                return "-"
            return _duration_display(self.connected_at)
        if title == "Disconnected":
            return _duration_display(self.disconnected_at)
        if title == "Labels":
            return str(self.labels.custom())
        return ""

    # Indexed

    def index_id(self) -> str:
        return self.id

    def index_fields(self, index: Indexer) -> None:
        index("id", self.id)
        index("arch", self.architecture)
        index("hostname", self.host_name)
        index("platform", self.platform)
        index("version", self.version)
        index("name", self.name)
        index("home", self.home)
        index("os", self.operating_system)
        index("macAddress", self.mac_address)
        index("type", self.type)
        index("status", self.status_display_text())

    def index_labels(self, index: Indexer) -> None:
        for name, value in self.labels.items():
            index(name, value)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


def _duration_display(t: Optional[datetime]) -> str:
    if t is None:
        return "-"
    seconds = int(round((_now() - t).total_seconds()))
    hours, remainder = divmod(seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{minutes}m{seconds}s"
    return f"{seconds}s"


def sort_agents_by_name(agents: List[Agent]) -> None:
    agents.sort(key=lambda a: a.name)
