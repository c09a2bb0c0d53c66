"""
Polymorphic resource parsing.

Documents are first read into the generic ``AnyResource`` envelope and then
decoded into the typed model registered for their kind.
"""

import json
from pathlib import Path
from typing import IO, Any, Dict, List, Type, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from .configuration import Configuration
from .parameterized import Destination, Processor, Source
from .profile import Context, Profile
from .resource import AnyResource, Kind, ResourceMeta, parse_kind
from .resource_type import DestinationType, ProcessorType, SourceType


class ResourceParseError(ValueError):
    """A document could not be decoded into a resource."""

    pass


RESOURCE_CLASSES: Dict[Kind, Type[ResourceMeta]] = {
    Kind.PROFILE: Profile,
    Kind.CONTEXT: Context,
    Kind.CONFIGURATION: Configuration,
    Kind.SOURCE: Source,
    Kind.SOURCE_TYPE: SourceType,
    Kind.PROCESSOR: Processor,
    Kind.PROCESSOR_TYPE: ProcessorType,
    Kind.DESTINATION: Destination,
    Kind.DESTINATION_TYPE: DestinationType,
}

# Kinds stored by apply
STORED_KINDS = (
    Kind.CONFIGURATION,
    Kind.SOURCE,
    Kind.SOURCE_TYPE,
    Kind.PROCESSOR,
    Kind.PROCESSOR_TYPE,
    Kind.DESTINATION,
    Kind.DESTINATION_TYPE,
)


def _format_pydantic_error(e: PydanticValidationError) -> str:
    problems = []
    for error in e.errors():
        location = ".".join(str(part) for part in error["loc"])
        problems.append(f"{location}: {error['msg']}" if location else error["msg"])
    return "; ".join(problems)


def any_resource(document: Any) -> AnyResource:
    """Decode the generic envelope of a single document."""
    if isinstance(document, AnyResource):
        return document
    if not isinstance(document, dict):
        raise ResourceParseError(
            f"failed to decode definition: expected a mapping, got {type(document).__name__}"
        )
    try:
        return AnyResource.model_validate(document)
    except PydanticValidationError as e:
        raise ResourceParseError(f"failed to decode definition: {_format_pydantic_error(e)}")


def parse_resource(resource: Union[AnyResource, Dict[str, Any]]) -> ResourceMeta:
    """
    Decode a resource into its typed model.

    Raises:
        ResourceParseError: the kind is missing or unknown, or the spec does not decode
    """
    envelope = any_resource(resource)
    if not envelope.kind:
        raise ResourceParseError("missing resource kind")
    kind = parse_kind(envelope.kind)
    if kind == Kind.UNKNOWN:
        if envelope.kind.lower() == Kind.UNKNOWN.value.lower():
            raise ResourceParseError(f"{envelope.kind} is not a parseable resource kind")
        raise ResourceParseError(f"unknown resource kind: {envelope.kind}")

    cls = RESOURCE_CLASSES.get(kind)
    if cls is None:
        raise ResourceParseError(f"unknown resource kind: {envelope.kind}")
    data = envelope.model_dump(by_alias=True)
    data["kind"] = kind.value
    try:
        return cls.model_validate(data)
    except PydanticValidationError as e:
        raise ResourceParseError(f"failed to decode definition: {_format_pydantic_error(e)}")


def parse_resources(resources: List[Union[AnyResource, Dict[str, Any]]]) -> List[ResourceMeta]:
    """Decode every resource, stopping at the first failure."""
    return [parse_resource(r) for r in resources]


def resources_from_reader(reader: Union[IO[str], str]) -> List[AnyResource]:
    """
    Read envelopes from multi-document YAML or a JSON array.

    Empty documents are skipped.
    """
    text = reader if isinstance(reader, str) else reader.read()
    stripped = text.lstrip()
    if stripped.startswith("["):
        try:
            documents = json.loads(text)
        except json.JSONDecodeError as e:
            raise ResourceParseError(f"failed to decode definition: {e}")
    else:
        try:
            documents = list(yaml.safe_load_all(text))
        except yaml.YAMLError as e:
            raise ResourceParseError(f"failed to decode definition: {e}")
        if len(documents) == 1 and isinstance(documents[0], list):
            documents = documents[0]

    return [any_resource(d) for d in documents if d is not None]


def resources_from_file(path: Union[str, Path]) -> List[AnyResource]:
    with open(path, "r") as f:
        return resources_from_reader(f)
