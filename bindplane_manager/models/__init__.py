"""Resource models for the BindPlane manager."""

from .agent import Agent, AgentStatus, InvalidTransitionError
from .configuration import (
    Configuration,
    ConfigurationSpec,
    ConfigurationType,
    RenderCancelledError,
    new_configuration,
    new_raw_configuration,
)
from .labels import Labels, labels_conflict, labels_from_map, labels_from_merge, labels_from_selector
from .parameter import Parameter, ParameterDefinition
from .parameterized import (
    Destination,
    Processor,
    ResourceConfiguration,
    Source,
    UnknownResourceError,
    new_destination,
    new_processor,
    new_source,
)
from .parse import (
    STORED_KINDS,
    ResourceParseError,
    parse_resource,
    parse_resources,
    resources_from_file,
    resources_from_reader,
)
from .profile import Context, Profile
from .resource import API_VERSION, Kind, Metadata, ResourceMeta, parse_kind
from .resource_status import ResourceStatus, UpdateStatus
from .resource_type import DestinationType, ProcessorType, ResourceType, SourceType
from .selector import AgentSelector, Selector, SelectorError, selector_from_map, selector_from_string
from .validation import Errors, MultiError, ValidationError

__all__ = [
    "API_VERSION",
    "Agent",
    "AgentSelector",
    "AgentStatus",
    "Configuration",
    "ConfigurationSpec",
    "ConfigurationType",
    "Context",
    "Destination",
    "DestinationType",
    "Errors",
    "InvalidTransitionError",
    "Kind",
    "Labels",
    "Metadata",
    "MultiError",
    "Parameter",
    "ParameterDefinition",
    "Processor",
    "ProcessorType",
    "Profile",
    "RenderCancelledError",
    "ResourceConfiguration",
    "ResourceMeta",
    "ResourceParseError",
    "ResourceStatus",
    "ResourceType",
    "STORED_KINDS",
    "Selector",
    "SelectorError",
    "Source",
    "SourceType",
    "UnknownResourceError",
    "UpdateStatus",
    "ValidationError",
    "labels_conflict",
    "labels_from_map",
    "labels_from_merge",
    "labels_from_selector",
    "new_configuration",
    "new_destination",
    "new_processor",
    "new_raw_configuration",
    "new_source",
    "parse_kind",
    "parse_resource",
    "parse_resources",
    "resources_from_file",
    "resources_from_reader",
    "selector_from_map",
    "selector_from_string",
]
