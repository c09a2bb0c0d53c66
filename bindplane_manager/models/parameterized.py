"""
Parameterized resources: Source, Processor and Destination.

Each names a resource type and supplies parameter values for it. Component
ids rendered for a resource are made unique by prefixing the type and
resource names.
"""

from typing import TYPE_CHECKING, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .. import otel
from .parameter import Parameter
from .resource import Indexer, Kind, Metadata, ResourceMeta, API_VERSION
from .resource_type import DestinationType, ProcessorType, ResourceType, SourceType
from .validation import Errors, MultiError

if TYPE_CHECKING:
    from ..store.protocols import ResourceStore


class UnknownResourceError(LookupError):
    """A referenced resource does not exist in the store."""

    def __init__(self, kind: Kind, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"unknown {kind.value}: {name}")

    def __str__(self) -> str:
        return f"unknown {self.kind.value}: {self.name}"


def override_parameters(parameters: List[Parameter], overrides: List[Parameter]) -> List[Parameter]:
    """Replace parameters by name, appending any that are new."""
    result = [p.model_copy() for p in parameters]
    index = {p.name: i for i, p in enumerate(result)}
    for override in overrides:
        if override.name in index:
            result[index[override.name]] = override.model_copy()
        else:
            index[override.name] = len(result)
            result.append(override.model_copy())
    return result


class ResourceConfiguration(BaseModel):
    """
    A reference to a Source, Processor or Destination inside a Configuration.

    Either ``name`` refers to a stored resource (``parameters`` override its
    values by name) or ``type`` and ``parameters`` describe an inline one.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = ""
    type: str = ""
    parameters: List[Parameter] = Field(default_factory=list)
    processors: List["ResourceConfiguration"] = Field(default_factory=list)

    @field_validator("parameters", "processors", mode="before")
    @classmethod
    def _null_list(cls, v):
        return [] if v is None else v

    def validate_configuration(
        self, kind: Kind, errors: Errors, store: "ResourceStore"
    ) -> None:
        if self._validate_has_name_or_type(kind, errors):
            self.validate_parameters(kind, errors, store)
        for processor in self.processors:
            processor.validate_configuration(Kind.PROCESSOR, errors, store)

    def _validate_has_name_or_type(self, kind: Kind, errors: Errors) -> bool:
        if not self.name and not self.type:
            errors.add(f"all {kind.value} must have either a name or type")
            return False
        return True

    def validate_parameters(self, kind: Kind, errors: Errors, store: "ResourceStore") -> None:
        for parameter in self.parameters:
            if not parameter.name:
                errors.add(f"all {kind.value} parameters must have a name")
        try:
            _, resource_type = find_resource_and_type(kind, self, kind.value, store)
        except UnknownResourceError as e:
            errors.add(e)
            return
        for parameter in self.parameters:
            if not parameter.name:
                continue
            definition = resource_type.spec.parameter_definition(parameter.name)
            if definition is None:
                errors.add(
                    f"parameter {parameter.name} not defined in type {resource_type.name()}"
                )
                continue
            errors.add(definition.validate_value(parameter.value))

    def index_fields(self, name_field: str, type_field: str, index: Indexer) -> None:
        index(name_field, self.name)
        index(type_field, self.type)


class ParameterizedSpec(BaseModel):
    """Resource type name and parameter values."""

    model_config = ConfigDict(extra="forbid")

    type: str = ""
    parameters: List[Parameter] = Field(default_factory=list)

    @field_validator("parameters", mode="before")
    @classmethod
    def _null_list(cls, v):
        return [] if v is None else v


class SourceSpec(ParameterizedSpec):
    """Source spec; a source may carry its own processors."""

    processors: List[ResourceConfiguration] = Field(default_factory=list)

    @field_validator("processors", mode="before")
    @classmethod
    def _null_processors(cls, v):
        return [] if v is None else v


class ParameterizedResourceBase(ResourceMeta):
    """Shared behavior of Source, Processor and Destination."""

    spec: ParameterizedSpec = Field(default_factory=ParameterizedSpec)

    def resource_type_name(self) -> str:
        return self.spec.type

    def resource_parameters(self) -> List[Parameter]:
        return self.spec.parameters

    def component_id(self, component_name: str) -> str:
        return otel.unique_component_id(component_name, self.spec.type, self.name())

    def validate_with_store(self, store: "ResourceStore") -> Optional[MultiError]:
        errors = Errors()
        self._validate(errors)
        ResourceConfiguration(
            type=self.spec.type, parameters=self.spec.parameters
        ).validate_parameters(self.get_kind(), errors, store)
        return errors.result()

    def print_field_titles(self) -> List[str]:
        return ["Name", "Type", "Description"]

    def print_field_value(self, title: str) -> str:
        if title == "Type":
            return self.resource_type_name()
        return super().print_field_value(title)

    def index_fields(self, index: Indexer) -> None:
        super().index_fields(index)
        index("type", self.spec.type)


class Source(ParameterizedResourceBase):
    kind: str = Kind.SOURCE.value
    spec: SourceSpec = Field(default_factory=SourceSpec)

    def validate_with_store(self, store: "ResourceStore") -> Optional[MultiError]:
        errors = Errors()
        err = super().validate_with_store(store)
        errors.add(err)
        for processor in self.spec.processors:
            processor.validate_configuration(Kind.PROCESSOR, errors, store)
        return errors.result()

    def index_fields(self, index: Indexer) -> None:
        super().index_fields(index)
        for processor in self.spec.processors:
            processor.index_fields("processor", "processorType", index)


class Processor(ParameterizedResourceBase):
    kind: str = Kind.PROCESSOR.value


class Destination(ParameterizedResourceBase):
    kind: str = Kind.DESTINATION.value


R = TypeVar("R", bound=ParameterizedResourceBase)


def new_parameterized(
    cls: Type[R],
    name: str,
    type_name: str,
    parameters: Optional[List[Parameter]] = None,
    **spec_fields,
) -> R:
    """Build a Source, Processor or Destination in code."""
    return cls(
        api_version=API_VERSION,
        metadata=Metadata(name=name),
        spec={"type": type_name, "parameters": list(parameters or []), **spec_fields},
    )


def new_source(
    name: str, type_name: str, parameters: Optional[List[Parameter]] = None, **spec_fields
) -> Source:
    return new_parameterized(Source, name, type_name, parameters, **spec_fields)


def new_processor(name: str, type_name: str, parameters: Optional[List[Parameter]] = None) -> Processor:
    return new_parameterized(Processor, name, type_name, parameters)


def new_destination(
    name: str, type_name: str, parameters: Optional[List[Parameter]] = None
) -> Destination:
    return new_parameterized(Destination, name, type_name, parameters)


def find_source(
    config: ResourceConfiguration, default_name: str, store: "ResourceStore"
) -> Source:
    """
    Resolve a source reference.

    Raises:
        UnknownResourceError: the named source does not exist
    """
    if not config.name:
        return new_source(default_name, config.type, config.parameters)
    stored = store.source(config.name)
    if stored is None:
        raise UnknownResourceError(Kind.SOURCE, config.name)
    return new_source(
        stored.name(),
        stored.spec.type,
        override_parameters(stored.spec.parameters, config.parameters),
        processors=[p.model_copy(deep=True) for p in stored.spec.processors],
    )


def find_processor(
    config: ResourceConfiguration, default_name: str, store: "ResourceStore"
) -> Processor:
    if not config.name:
        return new_processor(default_name, config.type, config.parameters)
    stored = store.processor(config.name)
    if stored is None:
        raise UnknownResourceError(Kind.PROCESSOR, config.name)
    return new_processor(
        stored.name(),
        stored.spec.type,
        override_parameters(stored.spec.parameters, config.parameters),
    )


def find_destination(
    config: ResourceConfiguration, default_name: str, store: "ResourceStore"
) -> Destination:
    if not config.name:
        return new_destination(default_name, config.type, config.parameters)
    stored = store.destination(config.name)
    if stored is None:
        raise UnknownResourceError(Kind.DESTINATION, config.name)
    return new_destination(
        stored.name(),
        stored.spec.type,
        override_parameters(stored.spec.parameters, config.parameters),
    )


def find_source_and_type(
    config: ResourceConfiguration, default_name: str, store: "ResourceStore"
) -> Tuple[Source, SourceType]:
    source = find_source(config, default_name, store)
    source_type = store.source_type(source.spec.type)
    if source_type is None:
        raise UnknownResourceError(Kind.SOURCE_TYPE, source.spec.type)
    return source, source_type


def find_processor_and_type(
    config: ResourceConfiguration, default_name: str, store: "ResourceStore"
) -> Tuple[Processor, ProcessorType]:
    processor = find_processor(config, default_name, store)
    processor_type = store.processor_type(processor.spec.type)
    if processor_type is None:
        raise UnknownResourceError(Kind.PROCESSOR_TYPE, processor.spec.type)
    return processor, processor_type


def find_destination_and_type(
    config: ResourceConfiguration, default_name: str, store: "ResourceStore"
) -> Tuple[Destination, DestinationType]:
    destination = find_destination(config, default_name, store)
    destination_type = store.destination_type(destination.spec.type)
    if destination_type is None:
        raise UnknownResourceError(Kind.DESTINATION_TYPE, destination.spec.type)
    return destination, destination_type


def find_resource_and_type(
    kind: Kind, config: ResourceConfiguration, default_name: str, store: "ResourceStore"
) -> Tuple[ParameterizedResourceBase, ResourceType]:
    finders = {
        Kind.SOURCE: find_source_and_type,
        Kind.PROCESSOR: find_processor_and_type,
        Kind.DESTINATION: find_destination_and_type,
    }
    if kind not in finders:
        raise ValueError(f"{kind.value} is not a parameterized resource kind")
    return finders[kind](config, default_name, store)
