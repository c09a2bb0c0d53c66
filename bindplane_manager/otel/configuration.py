"""
Collector configuration assembly.

Resources contribute ``Partial`` fragments per telemetry type; a
``Configuration`` joins source and destination partials into pipelines and
serializes the result as YAML.
"""

from typing import Any, Dict, List, Optional, Tuple

import yaml

from .noop import NOOP_CONFIG

LOGS = "logs"
METRICS = "metrics"
TRACES = "traces"

PIPELINE_TYPES = (LOGS, METRICS, TRACES)

# An ordered list of single-entry {component_id: body} mappings
ComponentList = List[Dict[str, Any]]


def new_component_id(component_type: str, name: str = "") -> str:
    if not name:
        return component_type
    return f"{component_type}/{name}"


def parse_component_id(component_id: str) -> Tuple[str, str]:
    """Split ``type/name`` into its parts. The name is empty when absent."""
    component_type, _, name = component_id.partition("/")
    return component_type, name


def unique_component_id(original: str, type_name: str, resource_name: str) -> str:
    """
    Make a component id unique to one resource instance.

    ``receiver/name`` becomes ``receiver/Type__resource__name`` so that two
    resources of the same type never collide in a rendered document.
    """
    component_type, name = parse_component_id(original)
    if name:
        new_name = f"{type_name}__{resource_name}__{name}"
    else:
        new_name = f"{type_name}__{resource_name}"
    return new_component_id(component_type, new_name)


class Partial:
    """The components one resource contributes for one telemetry type."""

    def __init__(
        self,
        receivers: Optional[ComponentList] = None,
        processors: Optional[ComponentList] = None,
        exporters: Optional[ComponentList] = None,
        extensions: Optional[ComponentList] = None,
    ):
        self.receivers: ComponentList = list(receivers or [])
        self.processors: ComponentList = list(processors or [])
        self.exporters: ComponentList = list(exporters or [])
        self.extensions: ComponentList = list(extensions or [])

    def size(self) -> int:
        return (
            len(self.receivers) + len(self.processors) + len(self.exporters) + len(self.extensions)
        )

    def add(self, other: "Partial") -> None:
        """Append the components of ``other``, preserving order."""
        self.receivers.extend(other.receivers)
        self.processors.extend(other.processors)
        self.exporters.extend(other.exporters)
        self.extensions.extend(other.extensions)

    def __repr__(self) -> str:
        return (
            f"Partial(receivers={self.receivers!r}, processors={self.processors!r}, "
            f"exporters={self.exporters!r}, extensions={self.extensions!r})"
        )


Partials = Dict[str, Partial]


def new_partials() -> Partials:
    return {pipeline_type: Partial() for pipeline_type in PIPELINE_TYPES}


def add_partials(target: Partials, other: Partials) -> None:
    """Concatenate every telemetry bucket of ``other`` onto ``target``."""
    for pipeline_type in PIPELINE_TYPES:
        target.setdefault(pipeline_type, Partial()).add(other.get(pipeline_type, Partial()))


class Pipeline:
    """Ordered receiver, processor and exporter ids for one pipeline."""

    def __init__(self) -> None:
        self.receivers: List[str] = []
        self.processors: List[str] = []
        self.exporters: List[str] = []

    def incomplete(self) -> bool:
        return not self.receivers or not self.exporters

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "receivers": list(self.receivers),
            "processors": list(self.processors),
            "exporters": list(self.exporters),
        }


def _add_components(target: Dict[str, Any], components: ComponentList) -> List[str]:
    ids: List[str] = []
    for block in components:
        for component_id, body in block.items():
            target[component_id] = body
            ids.append(component_id)
    return ids


class Configuration:
    """A collector configuration document under construction."""

    def __init__(self) -> None:
        self.receivers: Dict[str, Any] = {}
        self.processors: Dict[str, Any] = {}
        self.exporters: Dict[str, Any] = {}
        self.extensions: Dict[str, Any] = {}
        self.service_extensions: List[str] = []
        self.pipelines: Dict[str, Pipeline] = {}

    def has_pipelines(self) -> bool:
        return bool(self.pipelines)

    def add_extension(self, component_id: str, body: Any) -> None:
        self.extensions[component_id] = body
        if component_id not in self.service_extensions:
            self.service_extensions.append(component_id)

    def add_extensions(self, extensions: ComponentList) -> None:
        for block in extensions:
            for component_id, body in block.items():
                self.add_extension(component_id, body)

    def add_pipeline(
        self, name: str, pipeline_type: str, source: Partials, destination: Partials
    ) -> None:
        """
        Join the source and destination partials of one telemetry type.

        Nothing is added if either side is empty for ``pipeline_type`` or if
        the joined pipeline would have no receivers or no exporters.
        """
        s = source.get(pipeline_type) or Partial()
        d = destination.get(pipeline_type) or Partial()
        if s.size() == 0 or d.size() == 0:
            return

        pipeline = Pipeline()
        pipeline.receivers.extend(_add_components(self.receivers, s.receivers))
        pipeline.receivers.extend(_add_components(self.receivers, d.receivers))
        pipeline.processors.extend(_add_components(self.processors, s.processors))
        pipeline.processors.extend(_add_components(self.processors, d.processors))
        pipeline.exporters.extend(_add_components(self.exporters, s.exporters))
        pipeline.exporters.extend(_add_components(self.exporters, d.exporters))

        if pipeline.incomplete():
            return

        self.add_extensions(s.extensions)
        self.add_extensions(d.extensions)
        self.pipelines[f"{pipeline_type}/{name}"] = pipeline

    def to_dict(self) -> Dict[str, Any]:
        document: Dict[str, Any] = {}
        for key, components in (
            ("receivers", self.receivers),
            ("processors", self.processors),
            ("exporters", self.exporters),
            ("extensions", self.extensions),
        ):
            if components:
                document[key] = components
        service: Dict[str, Any] = {}
        if self.service_extensions:
            service["extensions"] = list(self.service_extensions)
        service["pipelines"] = {name: p.to_dict() for name, p in self.pipelines.items()}
        document["service"] = service
        return document

    def yaml(self) -> str:
        """Serialize the document, or return the NOOP configuration if it has no pipelines."""
        if not self.has_pipelines():
            return NOOP_CONFIG
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)
