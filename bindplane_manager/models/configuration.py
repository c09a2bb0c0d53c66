"""
Configuration resource and renderer.

A Configuration either carries a raw collector document or composes stored or
inline Sources and Destinations into one. Rendering resolves every reference
through a ResourceStore, evaluates the resource type templates and joins each
source with each destination into pipelines.
"""

import logging
import threading
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .. import otel
from .labels import Labels
from .parameterized import (
    ResourceConfiguration,
    find_destination_and_type,
    find_processor_and_type,
    find_source_and_type,
)
from .resource import Indexer, Kind, Metadata, ResourceMeta, API_VERSION
from .resource_type import TemplateErrorHandler
from .selector import AgentSelector, Selector
from .validation import Errors, MultiError

if TYPE_CHECKING:
    from .agent import Agent
    from ..store.protocols import ResourceStore

logger = logging.getLogger(__name__)


class ConfigurationType(str, Enum):
    RAW = "raw"
    MODULAR = "modular"


class RenderCancelledError(RuntimeError):
    """Rendering stopped because the caller cancelled it."""

    pass


class ConfigurationSpec(BaseModel):
    """Raw document or sources and destinations, plus the agent selector."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    content_type: str = Field("", alias="contentType", description="Content type of raw")
    raw: str = Field("", description="Collector document passed to agents verbatim")
    sources: List[ResourceConfiguration] = Field(default_factory=list)
    destinations: List[ResourceConfiguration] = Field(default_factory=list)
    selector: AgentSelector = Field(default_factory=AgentSelector)

    @field_validator("content_type", "raw", mode="before")
    @classmethod
    def _null_string(cls, v):
        return "" if v is None else v

    @field_validator("sources", "destinations", mode="before")
    @classmethod
    def _null_list(cls, v):
        return [] if v is None else v

    @field_validator("selector", mode="before")
    @classmethod
    def _null_selector(cls, v):
        return {} if v is None else v

    def validate_spec(self, errors: Errors, store: Optional["ResourceStore"]) -> None:
        self._validate_spec_fields(errors)
        self._validate_raw(errors)
        if store is not None:
            self._validate_sources_and_destinations(errors, store)
        self.selector.validate_selector(errors)

    def _validate_spec_fields(self, errors: Errors) -> None:
        if self.raw:
            if self.sources or self.destinations:
                errors.add("configuration must specify raw or sources and destinations")
        elif not self.sources and not self.destinations:
            errors.add("configuration must specify raw or sources and destinations")

    def _validate_raw(self, errors: Errors) -> None:
        if not self.raw:
            return
        try:
            yaml.safe_load(self.raw)
        except yaml.YAMLError as e:
            errors.add(f"unable to parse spec.raw as yaml: {e}")

    def _validate_sources_and_destinations(self, errors: Errors, store: "ResourceStore") -> None:
        for source in self.sources:
            source.validate_configuration(Kind.SOURCE, errors, store)
        for destination in self.destinations:
            destination.validate_configuration(Kind.DESTINATION, errors, store)


class Configuration(ResourceMeta):
    """The resource describing the entire collector configuration of matching agents."""

    kind: str = Kind.CONFIGURATION.value
    spec: ConfigurationSpec = Field(default_factory=ConfigurationSpec)

    def config_type(self) -> ConfigurationType:
        if self.spec.raw:
            return ConfigurationType.RAW
        return ConfigurationType.MODULAR

    def validate(self) -> Optional[MultiError]:  # type: ignore[override]
        errors = Errors()
        self._validate(errors)
        self.spec.validate_spec(errors, None)
        return errors.result()

    def validate_with_store(self, store: "ResourceStore") -> Optional[MultiError]:
        errors = Errors()
        self._validate(errors)
        self.spec.validate_spec(errors, store)
        return errors.result()

    def agent_selector(self) -> Selector:
        return self.spec.selector.selector()

    def is_for_agent(self, agent: "Agent") -> bool:
        return self.agent_selector().matches(agent.labels)

    # Rendering

    def render(
        self,
        store: "ResourceStore",
        error_handler: Optional[TemplateErrorHandler] = None,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        """
        Render the collector document for this configuration.

        Template and YAML errors go to ``error_handler`` (logged when none is
        given) and rendering continues with whatever could be produced.

        Raises:
            UnknownResourceError: a referenced resource or type does not exist
            RenderCancelledError: ``cancel`` was set during resolution
        """
        if self.spec.raw:
            return self.spec.raw
        if error_handler is None:
            error_handler = self._log_template_error
        return self.otel_configuration(store, error_handler, cancel).yaml()

    def render_with_errors(
        self, store: "ResourceStore", cancel: Optional[threading.Event] = None
    ) -> Tuple[str, Optional[MultiError]]:
        """Render, returning the best-effort document along with every template error."""
        errors = Errors()
        document = self.render(store, errors.add, cancel)
        return document, errors.result()

    def _log_template_error(self, err: Exception) -> None:
        logger.warning(f"Template error rendering configuration {self.name()}: {err}")

    def otel_configuration(
        self,
        store: "ResourceStore",
        error_handler: TemplateErrorHandler,
        cancel: Optional[threading.Event] = None,
    ) -> otel.Configuration:
        configuration = otel.Configuration()
        if not self.spec.sources or not self.spec.destinations:
            return configuration

        sources, destinations = self._eval_components(store, error_handler, cancel)
        for source_key, source_partials in sources:
            for dest_key, dest_partials in destinations:
                name = f"{source_key}__{dest_key}"
                for pipeline_type in otel.PIPELINE_TYPES:
                    configuration.add_pipeline(name, pipeline_type, source_partials, dest_partials)
        return configuration

    def _eval_components(
        self,
        store: "ResourceStore",
        error_handler: TemplateErrorHandler,
        cancel: Optional[threading.Event],
    ) -> Tuple[List[Tuple[str, otel.Partials]], List[Tuple[str, otel.Partials]]]:
        sources: List[Tuple[str, otel.Partials]] = []
        for i, source in enumerate(self.spec.sources):
            _check_cancelled(cancel)
            sources.append(_eval_source(source, f"source{i}", store, error_handler, cancel))

        destinations: List[Tuple[str, otel.Partials]] = []
        for i, destination in enumerate(self.spec.destinations):
            _check_cancelled(cancel)
            destinations.append(
                _eval_destination(destination, f"destination{i}", store, error_handler)
            )
        return sources, destinations

    # Printable

    def print_field_titles(self) -> List[str]:
        return ["Name", "Match"]

    def print_field_value(self, title: str) -> str:
        if title == "Match":
            return str(self.agent_selector())
        return super().print_field_value(title)

    # Indexed

    def index_fields(self, index: Indexer) -> None:
        super().index_fields(index)
        index("type", self.config_type().value)
        for source in self.spec.sources:
            source.index_fields("source", "sourceType", index)
            for processor in source.processors:
                processor.index_fields("processor", "processorType", index)
        for destination in self.spec.destinations:
            destination.index_fields("destination", "destinationType", index)


def _check_cancelled(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise RenderCancelledError("rendering cancelled")


def _eval_source(
    config: ResourceConfiguration,
    default_name: str,
    store: "ResourceStore",
    error_handler: TemplateErrorHandler,
    cancel: Optional[threading.Event],
) -> Tuple[str, otel.Partials]:
    source, source_type = find_source_and_type(config, default_name, store)
    source_key = f"{source_type.name()}__{source.name()}"
    partials = source_type.eval(source, error_handler)

    # processors embedded in the stored source come before those on the reference
    processors = list(source.spec.processors) + list(config.processors)
    for j, processor_config in enumerate(processors):
        _check_cancelled(cancel)
        processor, processor_type = find_processor_and_type(
            processor_config, f"{source_key}__processor{j}", store
        )
        otel.add_partials(partials, processor_type.eval(processor, error_handler))
    return source_key, partials


def _eval_destination(
    config: ResourceConfiguration,
    default_name: str,
    store: "ResourceStore",
    error_handler: TemplateErrorHandler,
) -> Tuple[str, otel.Partials]:
    destination, destination_type = find_destination_and_type(config, default_name, store)
    dest_key = f"{destination_type.name()}__{destination.name()}"
    return dest_key, destination_type.eval(destination, error_handler)


def new_configuration(
    name: str,
    spec: Optional[ConfigurationSpec] = None,
    labels: Optional[Dict[str, str]] = None,
) -> Configuration:
    return Configuration(
        api_version=API_VERSION,
        metadata=Metadata(name=name, labels=Labels(labels or {})),
        spec=spec or ConfigurationSpec(),
    )


def new_raw_configuration(name: str, raw: str) -> Configuration:
    return new_configuration(name, ConfigurationSpec(raw=raw))
