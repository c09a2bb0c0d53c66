"""OpenTelemetry collector configuration documents."""

from .configuration import (
    LOGS,
    METRICS,
    PIPELINE_TYPES,
    TRACES,
    ComponentList,
    Configuration,
    Partial,
    Partials,
    Pipeline,
    add_partials,
    new_component_id,
    new_partials,
    parse_component_id,
    unique_component_id,
)
from .noop import NOOP_CONFIG

__all__ = [
    "LOGS",
    "METRICS",
    "TRACES",
    "PIPELINE_TYPES",
    "Configuration",
    "Partial",
    "Partials",
    "Pipeline",
    "ComponentList",
    "add_partials",
    "NOOP_CONFIG",
    "new_component_id",
    "new_partials",
    "parse_component_id",
    "unique_component_id",
]
