"""
Resource types: SourceType, ProcessorType and DestinationType.

A resource type declares parameters and per-telemetry-type templates. The
templates are rendered with Jinja2 using strict undefined handling so that a
reference to an unknown parameter is an error, never a silent blank.
"""

from typing import Any, Callable, Dict, List, Optional, Protocol

import jinja2
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .. import otel
from .parameter import Parameter, ParameterDefinition, ParameterField, placeholder_value
from .resource import Kind, ResourceMeta
from .validation import Errors, MultiError, ValidationError

TemplateErrorHandler = Callable[[Exception], None]


class ParameterizedResource(Protocol):
    """Something that supplies parameter values and names its components."""

    def resource_parameters(self) -> List[Parameter]: ...

    def component_id(self, component_name: str) -> str: ...


def template_environment() -> jinja2.Environment:
    """Jinja2 environment used for every resource type template."""
    return jinja2.Environment(
        undefined=jinja2.StrictUndefined,
        keep_trailing_newline=True,
        autoescape=False,
    )


class ResourceTypeOutput(BaseModel):
    """Templates for one telemetry type group."""

    model_config = ConfigDict(extra="forbid")

    receivers: str = ""
    processors: str = ""
    exporters: str = ""
    extensions: str = ""

    @field_validator("receivers", "processors", "exporters", "extensions", mode="before")
    @classmethod
    def _null_template(cls, v):
        return "" if v is None else v

    def empty(self) -> bool:
        return not (self.receivers or self.processors or self.exporters or self.extensions)

    def templates(self) -> Dict[str, str]:
        return {
            "receivers": self.receivers,
            "processors": self.processors,
            "exporters": self.exporters,
            "extensions": self.extensions,
        }


# Template group name -> telemetry types it contributes to
OUTPUT_GROUPS = {
    "logs": (otel.LOGS,),
    "metrics": (otel.METRICS,),
    "traces": (otel.TRACES,),
    "logs+metrics": (otel.LOGS, otel.METRICS),
    "logs+traces": (otel.LOGS, otel.TRACES),
    "metrics+traces": (otel.METRICS, otel.TRACES),
    "logs+metrics+traces": (otel.LOGS, otel.METRICS, otel.TRACES),
}


class ResourceTypeSpec(BaseModel):
    """Parameters and templates of a resource type."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    version: str = ""
    parameters: List[ParameterDefinition] = Field(default_factory=list)
    supported_platforms: List[str] = Field(default_factory=list, alias="supportedPlatforms")

    logs: ResourceTypeOutput = Field(default_factory=ResourceTypeOutput)
    metrics: ResourceTypeOutput = Field(default_factory=ResourceTypeOutput)
    traces: ResourceTypeOutput = Field(default_factory=ResourceTypeOutput)
    logs_metrics: ResourceTypeOutput = Field(
        default_factory=ResourceTypeOutput, alias="logs+metrics"
    )
    logs_traces: ResourceTypeOutput = Field(default_factory=ResourceTypeOutput, alias="logs+traces")
    metrics_traces: ResourceTypeOutput = Field(
        default_factory=ResourceTypeOutput, alias="metrics+traces"
    )
    logs_metrics_traces: ResourceTypeOutput = Field(
        default_factory=ResourceTypeOutput, alias="logs+metrics+traces"
    )

    @field_validator("parameters", "supported_platforms", mode="before")
    @classmethod
    def _null_list(cls, v):
        return [] if v is None else v

    @field_validator(
        "logs",
        "metrics",
        "traces",
        "logs_metrics",
        "logs_traces",
        "metrics_traces",
        "logs_metrics_traces",
        mode="before",
    )
    @classmethod
    def _null_output(cls, v):
        return {} if v is None else v

    def output(self, group: str) -> ResourceTypeOutput:
        """Return the templates for a group name such as ``logs+metrics``."""
        return getattr(self, group.replace("+", "_"))

    def parameter_definition(self, name: str) -> Optional[ParameterDefinition]:
        for definition in self.parameters:
            if definition.name == name:
                return definition
        return None

    def telemetry_types(self) -> List[str]:
        """Telemetry types for which this resource type produces output."""
        supported = []
        for pipeline_type in otel.PIPELINE_TYPES:
            for group, types in OUTPUT_GROUPS.items():
                if pipeline_type in types and not self.output(group).empty():
                    supported.append(pipeline_type)
                    break
        return supported

    def validate_spec(self, errors: Errors) -> None:
        self._validate_parameter_definitions(errors)

        params: Dict[str, Any] = {}
        for definition in self.parameters:
            if definition.default is not None:
                params[definition.name] = definition.default
            else:
                params[definition.name] = placeholder_value(definition)

        env = template_environment()
        for group in OUTPUT_GROUPS:
            for section, source in self.output(group).templates().items():
                _check_template(env, errors, f"{group}.{section}", source, params)

    def _validate_parameter_definitions(self, errors: Errors) -> None:
        for definition in self.parameters:
            definition.validate_definition(errors)
            self._validate_relevant_if(definition, errors)

    def _validate_relevant_if(self, definition: ParameterDefinition, errors: Errors) -> None:
        for condition in definition.relevant_if or []:
            if not condition.name:
                errors.add(f"relevantIf for '{definition.name}' must have a name")
                continue
            ref = self.parameter_definition(condition.name)
            if ref is None:
                errors.add(
                    f"relevantIf for '{definition.name}' refers to nonexistant parameter "
                    f"'{condition.name}'"
                )
                continue
            if not condition.operator:
                errors.add(
                    f"relevantIf '{ref.name}' for '{definition.name}' must have an operator"
                )
            if condition.value is None:
                errors.add(f"relevantIf '{ref.name}' for '{definition.name}' must have a value")
                continue
            err = ref.validate_value_type(ParameterField.RELEVANT_IF, condition.value)
            if err is not None:
                errors.add(
                    ValidationError(f"relevantIf '{ref.name}' for '{definition.name}': {err}")
                )


def _check_template(
    env: jinja2.Environment, errors: Errors, name: str, source: str, params: Dict[str, Any]
) -> None:
    if not source:
        return
    try:
        env.from_string(source).render(params)
    except (jinja2.TemplateError, TypeError, ValueError) as e:
        errors.add(ValidationError(f"template: {name}: {e}"))


class ResourceType(ResourceMeta):
    """Base for SourceType, ProcessorType and DestinationType."""

    spec: ResourceTypeSpec = Field(default_factory=ResourceTypeSpec)

    def print_field_titles(self) -> List[str]:
        return ["Name", "Display"]

    def validate(self) -> Optional[MultiError]:  # type: ignore[override]
        errors = Errors()
        self._validate(errors)
        self.spec.validate_spec(errors)
        return errors.result()

    def telemetry_types(self) -> List[str]:
        return self.spec.telemetry_types()

    def eval(
        self, resource: ParameterizedResource, error_handler: TemplateErrorHandler
    ) -> otel.Partials:
        """
        Render every template group for ``resource``.

        Multi-telemetry groups are added to each telemetry type they name.
        Template errors go to ``error_handler`` and evaluation continues.
        """
        env = template_environment()
        params = self._parameter_values(resource)
        result = otel.new_partials()
        for group, types in OUTPUT_GROUPS.items():
            partial = self._eval_output(env, group, resource, params, error_handler)
            for pipeline_type in types:
                result[pipeline_type].add(partial)
        return result

    def _parameter_values(self, resource: ParameterizedResource) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        for definition in self.spec.parameters:
            if definition.default is not None:
                params[definition.name] = definition.default
        for parameter in resource.resource_parameters():
            params[parameter.name] = parameter.value
        return params

    def _eval_output(
        self,
        env: jinja2.Environment,
        group: str,
        resource: ParameterizedResource,
        params: Dict[str, Any],
        error_handler: TemplateErrorHandler,
    ) -> otel.Partial:
        output = self.spec.output(group)
        if output.empty():
            return otel.Partial()
        return otel.Partial(
            receivers=self._eval_template(env, output.receivers, resource, params, error_handler),
            processors=self._eval_template(
                env, output.processors, resource, params, error_handler
            ),
            exporters=self._eval_template(env, output.exporters, resource, params, error_handler),
            extensions=self._eval_template(
                env, output.extensions, resource, params, error_handler
            ),
        )

    def _eval_template(
        self,
        env: jinja2.Environment,
        source: str,
        resource: ParameterizedResource,
        params: Dict[str, Any],
        error_handler: TemplateErrorHandler,
    ) -> otel.ComponentList:
        components: otel.ComponentList = []
        if not source:
            return components

        try:
            rendered = env.from_string(source).render(params)
        except (jinja2.TemplateError, TypeError, ValueError) as e:
            error_handler(ValidationError(f"template: {self.name()}: {e}"))
            return components

        try:
            parsed = yaml.safe_load(rendered)
        except yaml.YAMLError as e:
            error_handler(ValidationError(f"yaml: {self.name()}: {e}"))
            return components

        if parsed is None:
            return components
        if not isinstance(parsed, list):
            error_handler(
                ValidationError(f"yaml: {self.name()}: expected a sequence of components")
            )
            return components

        for block in parsed:
            if not isinstance(block, dict):
                error_handler(
                    ValidationError(f"yaml: {self.name()}: expected a mapping for each component")
                )
                continue
            for key, body in block.items():
                components.append({resource.component_id(str(key)): body})
        return components


class SourceType(ResourceType):
    kind: str = Kind.SOURCE_TYPE.value


class ProcessorType(ResourceType):
    kind: str = Kind.PROCESSOR_TYPE.value


class DestinationType(ResourceType):
    kind: str = Kind.DESTINATION_TYPE.value
