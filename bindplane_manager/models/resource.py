"""
Common resource model.

Every resource document has the envelope ``{apiVersion, kind, metadata, spec}``.
``ResourceMeta`` carries the shared envelope fields and behavior; typed
resources add a ``spec`` model.
"""

import uuid
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .labels import Labels, label_value_errors
from .validation import Errors, MultiError

if TYPE_CHECKING:
    from ..store.protocols import ResourceStore

API_VERSION = "bindplane.observiq.com/v1beta"

# Called with (field_name, value) to populate a search index
Indexer = Callable[[str, str], None]


class Kind(str, Enum):
    """Resource kinds."""

    PROFILE = "Profile"
    CONTEXT = "Context"
    CONFIGURATION = "Configuration"
    AGENT = "Agent"
    SOURCE = "Source"
    SOURCE_TYPE = "SourceType"
    PROCESSOR = "Processor"
    PROCESSOR_TYPE = "ProcessorType"
    DESTINATION = "Destination"
    DESTINATION_TYPE = "DestinationType"
    UNKNOWN = "Unknown"


def _kind_lookup() -> Dict[str, Kind]:
    lookup: Dict[str, Kind] = {}
    for kind in Kind:
        if kind == Kind.UNKNOWN:
            continue
        key = kind.value.lower()
        lookup[key] = kind
        lookup[f"{key}s"] = kind
    return lookup


_KIND_LOOKUP = _kind_lookup()


def parse_kind(kind: str) -> Kind:
    """Resolve a kind case-insensitively, accepting plurals. Unrecognized kinds are UNKNOWN."""
    return _KIND_LOOKUP.get((kind or "").lower(), Kind.UNKNOWN)


def validate_kind(errors: Errors, kind: str) -> None:
    if parse_kind(kind) == Kind.UNKNOWN:
        errors.add(f"{kind} is not a valid resource kind")


def validate_name(errors: Errors, name: str) -> None:
    if not name:
        errors.add("missing name for resource")
        return
    errs = label_value_errors(name)
    if errs:
        errors.add(f"{name} is not a valid resource name: {'; '.join(errs)}")


class Metadata(BaseModel):
    """Metadata shared by every resource."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    id: str = Field("", description="Stable identifier, generated on first persist")
    name: str = Field("", description="Unique name within the kind")
    display_name: str = Field("", alias="displayName", description="Name shown in user interfaces")
    description: str = Field("", description="Resource description")
    icon: str = Field("", description="Icon reference")
    labels: Labels = Field(default_factory=Labels, description="Resource labels")

    @field_validator("id", "name", "display_name", "description", "icon", mode="before")
    @classmethod
    def _null_to_empty(cls, v):
        return "" if v is None else v

    def validate_metadata(self, errors: Errors) -> None:
        validate_name(errors, self.name)
        self.labels.validate(errors)

    def index_fields(self, index: Indexer) -> None:
        index("id", self.id)
        index("name", self.name)
        index("displayName", self.display_name)
        index("description", self.description)

    def index_labels(self, index: Indexer) -> None:
        for name, value in self.labels.items():
            index(name, value)


class ResourceMeta(BaseModel):
    """Envelope fields and behavior common to every typed resource."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    api_version: str = Field(API_VERSION, alias="apiVersion", description="Schema version")
    kind: str = Field(Kind.UNKNOWN.value, description="Resource kind")
    metadata: Metadata = Field(default_factory=Metadata, description="Resource metadata")

    # Identity

    def id(self) -> str:
        return self.metadata.id

    def set_id(self, resource_id: str) -> None:
        self.metadata.id = resource_id

    def ensure_id(self) -> None:
        """Assign a new UUID if the resource has no id."""
        if not self.metadata.id:
            self.metadata.id = str(uuid.uuid4())

    def name(self) -> str:
        return self.metadata.name

    def unique_key(self) -> str:
        return self.metadata.name

    def description(self) -> str:
        return self.metadata.description

    def get_kind(self) -> Kind:
        return parse_kind(self.kind)

    def get_labels(self) -> Labels:
        return self.metadata.labels

    # Validation

    def validate(self) -> Optional[MultiError]:  # type: ignore[override]
        """Validate the resource on its own. Returns every problem found, or None."""
        errors = Errors()
        self._validate(errors)
        return errors.result()

    def validate_with_store(self, store: "ResourceStore") -> Optional[MultiError]:
        """Validate the resource, resolving references through ``store``."""
        return self.validate()

    def _validate(self, errors: Errors) -> None:
        validate_kind(errors, self.kind)
        self.metadata.validate_metadata(errors)

    # Printable

    def print_kind_singular(self) -> str:
        return self.kind

    def print_kind_plural(self) -> str:
        return f"{self.kind}s"

    def print_field_titles(self) -> List[str]:
        return ["Name"]

    def print_field_value(self, title: str) -> str:
        if title == "ID":
            return self.id()
        if title == "Name":
            return self.name()
        if title == "Display":
            return self.metadata.display_name
        if title == "Description":
            return self.metadata.description
        return "-"

    # Indexed

    def index_id(self) -> str:
        return self.metadata.name

    def index_fields(self, index: Indexer) -> None:
        index("kind", self.kind)
        self.metadata.index_fields(index)

    def index_labels(self, index: Indexer) -> None:
        self.metadata.index_labels(index)

    # Serialization

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with camel-case keys."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)

    def has_changed(self, other: "ResourceMeta") -> bool:
        """True if ``other`` differs from this resource ignoring the id."""
        mine = self.to_dict()
        theirs = other.to_dict()
        mine["metadata"].pop("id", None)
        theirs["metadata"].pop("id", None)
        return mine != theirs


class AnyResource(ResourceMeta):
    """A resource whose spec has not been decoded yet."""

    kind: str = ""
    spec: Dict[str, Any] = Field(default_factory=dict, description="Undecoded spec")

    @field_validator("spec", mode="before")
    @classmethod
    def _null_spec(cls, v):
        return {} if v is None else v


def new_resource_meta(kind: Kind, name: str, **metadata: Any) -> Dict[str, Any]:
    """Keyword arguments for building a typed resource in code."""
    return {
        "api_version": API_VERSION,
        "kind": kind.value,
        "metadata": Metadata(name=name, **metadata),
    }
