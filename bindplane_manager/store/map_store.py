"""
In-memory resource and agent store.

Resources are keyed by (kind, name) and agents by id. The store can persist
itself to a JSON file, written atomically after every change.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from ..models.agent import Agent, AgentStatus
from ..models.configuration import Configuration
from ..models.parse import STORED_KINDS, parse_resource, parse_resources, resources_from_file
from ..models.parameterized import Destination, Processor, Source
from ..models.resource import Kind, ResourceMeta
from ..models.resource_status import ResourceStatus, UpdateStatus
from ..models.resource_type import DestinationType, ProcessorType, SourceType
from ..models.selector import Selector
from .errors import Dependencies, DependencyError, StoreError
from .protocols import AgentUpdater
from .search import InMemoryIndex, field_search, parse_query

logger = logging.getLogger(__name__)

CONFIGURATION_LABEL = "configuration"


class MapStore:
    """
    Store backed by dictionaries.

    A re-entrant lock guards every map. Agent upserts additionally hold a
    per-agent lock so that read-modify-write updates of one agent serialize
    while updates of different agents proceed independently.
    """

    def __init__(self, storage_path: Optional[Union[str, Path]] = None):
        self.storage_path = Path(storage_path) if storage_path else None
        self._lock = threading.RLock()
        self._agent_locks: Dict[str, threading.Lock] = {}
        self._resources: Dict[Kind, Dict[str, ResourceMeta]] = {k: {} for k in STORED_KINDS}
        self._agents: Dict[str, Agent] = {}
        self._agent_index = InMemoryIndex("agents")
        self._configuration_index = InMemoryIndex("configurations")
        self._source_index = InMemoryIndex("sources")

        if self.storage_path:
            self._load()

    # Persistence

    def _load(self) -> None:
        if not self.storage_path or not self.storage_path.exists():
            logger.info(f"No existing store at {self.storage_path}")
            return

        try:
            with open(self.storage_path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"failed to load store from {self.storage_path}: {e}")

        for document in data.get("resources", []):
            try:
                resource = parse_resource(document)
            except ValueError as e:
                logger.error(f"Ignoring stored resource that failed to parse: {e}")
                continue
            self._put(resource)

        for agent_data in data.get("agents", []):
            agent = Agent.model_validate(agent_data)
            self._agents[agent.id] = agent
            self._agent_index.upsert(agent)

        logger.info(
            f"Loaded {sum(len(m) for m in self._resources.values())} resources and "
            f"{len(self._agents)} agents from {self.storage_path}"
        )

    def _save(self) -> None:
        if not self.storage_path:
            return
        data = {
            "version": "1.0",
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "resources": [
                r.to_dict() for kind in STORED_KINDS for r in self._resources[kind].values()
            ],
            "agents": [_agent_record(a) for a in self._agents.values()],
        }
        try:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self.storage_path.with_suffix(".tmp")
            with open(temp_path, "w") as f:
                json.dump(data, f, indent=2)
            temp_path.replace(self.storage_path)
            logger.debug("Saved store to disk")
        except OSError as e:
            logger.error(f"Failed to save store: {e}")
            raise StoreError(f"failed to save store: {e}")

    # Indexes

    def agent_index(self) -> InMemoryIndex:
        return self._agent_index

    def configuration_index(self) -> InMemoryIndex:
        return self._configuration_index

    # Agents

    def agents(
        self,
        selector: Optional[Selector] = None,
        query: Optional[str] = None,
        offset: int = 0,
        limit: int = 0,
        sort: str = "",
    ) -> List[Agent]:
        with self._lock:
            agents = self._select_agents(selector, query)
        if sort:
            field, reverse = (sort[1:], True) if sort.startswith("-") else (sort, False)
            agents.sort(key=lambda a: _agent_field(a, field), reverse=reverse)
        else:
            agents.sort(key=lambda a: (a.name, a.id))
        if offset:
            agents = agents[offset:]
        if limit:
            agents = agents[:limit]
        return agents

    def agents_count(self, selector: Optional[Selector] = None, query: Optional[str] = None) -> int:
        with self._lock:
            return len(self._select_agents(selector, query))

    def _select_agents(self, selector: Optional[Selector], query: Optional[str]) -> List[Agent]:
        candidates = self._agents.values()
        if query:
            parsed = parse_query(query)
            candidates = [a for a in candidates if self._agent_index.matches(parsed, a.id)]
        return [
            a.model_copy(deep=True)
            for a in candidates
            if selector is None or selector.matches(a.labels)
        ]

    def agent(self, agent_id: str) -> Optional[Agent]:
        with self._lock:
            agent = self._agents.get(agent_id)
            return agent.model_copy(deep=True) if agent else None

    def _agent_lock(self, agent_id: str) -> threading.Lock:
        with self._lock:
            return self._agent_locks.setdefault(agent_id, threading.Lock())

    def upsert_agent(self, agent_id: str, updater: AgentUpdater) -> Agent:
        """
        Create or update an agent.

        ``updater`` receives a copy of the current agent (or a new one) and
        may raise to abandon the update.
        """
        with self._agent_lock(agent_id):
            with self._lock:
                current = self._agents.get(agent_id)
                agent = current.model_copy(deep=True) if current else Agent(id=agent_id)

            updater(agent)

            with self._lock:
                self._agents[agent_id] = agent
                self._agent_index.upsert(agent)
                self._save()
                return agent.model_copy(deep=True)

    def delete_agents(self, agent_ids: List[str]) -> List[Agent]:
        deleted = []
        with self._lock:
            for agent_id in agent_ids:
                agent = self._agents.pop(agent_id, None)
                if agent is None:
                    continue
                agent.delete()
                self._agent_index.remove(agent)
                self._agent_locks.pop(agent_id, None)
                deleted.append(agent)
            if deleted:
                self._save()
        return deleted

    def agent_configuration(self, agent_id: str) -> Optional[Configuration]:
        """
        Return the configuration for an agent.

        A ``configuration`` label on the agent names it directly; otherwise
        the first configuration (by name) whose selector matches is used.
        """
        with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None:
                return None
            name = agent.labels.get(CONFIGURATION_LABEL)
            if name:
                return self.configuration(name)
            for configuration in self.configurations():
                if configuration.is_for_agent(agent):
                    return configuration
            return None

    def agents_for_configuration(self, configuration: Configuration) -> List[str]:
        selector = configuration.agent_selector()
        with self._lock:
            return sorted(a.id for a in self._agents.values() if selector.matches(a.labels))

    def cleanup_disconnected_agents(self, since: datetime) -> List[Agent]:
        with self._lock:
            stale = [a.id for a in self._agents.values() if a.disconnected_since(since)]
            removed = self.delete_agents(stale)
        if removed:
            logger.info(f"Removed {len(removed)} agents disconnected before {since.isoformat()}")
        return removed

    # Resources

    def resources(self, kind: Kind) -> List[ResourceMeta]:
        with self._lock:
            items = self._resources.get(kind, {})
            return [items[name].model_copy(deep=True) for name in sorted(items)]

    def resource(self, kind: Kind, name: str) -> Optional[ResourceMeta]:
        with self._lock:
            item = self._resources.get(kind, {}).get(name)
            return item.model_copy(deep=True) if item else None

    def delete_resource(self, kind: Kind, name: str) -> Optional[ResourceMeta]:
        """
        Remove a resource by kind and name.

        Raises:
            DependencyError: other resources reference it
        """
        with self._lock:
            existing = self._resources.get(kind, {}).get(name)
            if existing is None:
                return None
            dependencies = self.dependent_resources(kind, name)
            if dependencies:
                raise DependencyError(kind, name, dependencies)
            self._remove(existing)
            try:
                self._save()
            except StoreError:
                self._put(existing)
                raise
            return existing

    def configurations(self) -> List[Configuration]:
        return self.resources(Kind.CONFIGURATION)  # type: ignore[return-value]

    def configuration(self, name: str) -> Optional[Configuration]:
        return self.resource(Kind.CONFIGURATION, name)  # type: ignore[return-value]

    def delete_configuration(self, name: str) -> Optional[Configuration]:
        return self.delete_resource(Kind.CONFIGURATION, name)  # type: ignore[return-value]

    def sources(self) -> List[Source]:
        return self.resources(Kind.SOURCE)  # type: ignore[return-value]

    def source(self, name: str) -> Optional[Source]:
        return self.resource(Kind.SOURCE, name)  # type: ignore[return-value]

    def delete_source(self, name: str) -> Optional[Source]:
        return self.delete_resource(Kind.SOURCE, name)  # type: ignore[return-value]

    def source_types(self) -> List[SourceType]:
        return self.resources(Kind.SOURCE_TYPE)  # type: ignore[return-value]

    def source_type(self, name: str) -> Optional[SourceType]:
        return self.resource(Kind.SOURCE_TYPE, name)  # type: ignore[return-value]

    def delete_source_type(self, name: str) -> Optional[SourceType]:
        return self.delete_resource(Kind.SOURCE_TYPE, name)  # type: ignore[return-value]

    def processors(self) -> List[Processor]:
        return self.resources(Kind.PROCESSOR)  # type: ignore[return-value]

    def processor(self, name: str) -> Optional[Processor]:
        return self.resource(Kind.PROCESSOR, name)  # type: ignore[return-value]

    def delete_processor(self, name: str) -> Optional[Processor]:
        return self.delete_resource(Kind.PROCESSOR, name)  # type: ignore[return-value]

    def processor_types(self) -> List[ProcessorType]:
        return self.resources(Kind.PROCESSOR_TYPE)  # type: ignore[return-value]

    def processor_type(self, name: str) -> Optional[ProcessorType]:
        return self.resource(Kind.PROCESSOR_TYPE, name)  # type: ignore[return-value]

    def delete_processor_type(self, name: str) -> Optional[ProcessorType]:
        return self.delete_resource(Kind.PROCESSOR_TYPE, name)  # type: ignore[return-value]

    def destinations(self) -> List[Destination]:
        return self.resources(Kind.DESTINATION)  # type: ignore[return-value]

    def destination(self, name: str) -> Optional[Destination]:
        return self.resource(Kind.DESTINATION, name)  # type: ignore[return-value]

    def delete_destination(self, name: str) -> Optional[Destination]:
        return self.delete_resource(Kind.DESTINATION, name)  # type: ignore[return-value]

    def destination_types(self) -> List[DestinationType]:
        return self.resources(Kind.DESTINATION_TYPE)  # type: ignore[return-value]

    def destination_type(self, name: str) -> Optional[DestinationType]:
        return self.resource(Kind.DESTINATION_TYPE, name)  # type: ignore[return-value]

    def delete_destination_type(self, name: str) -> Optional[DestinationType]:
        return self.delete_resource(Kind.DESTINATION_TYPE, name)  # type: ignore[return-value]

    def _put(self, resource: ResourceMeta) -> None:
        kind = resource.get_kind()
        self._resources[kind][resource.name()] = resource
        if kind == Kind.CONFIGURATION:
            self._configuration_index.upsert(resource)
        elif kind == Kind.SOURCE:
            self._source_index.upsert(resource)

    def _remove(self, resource: ResourceMeta) -> None:
        kind = resource.get_kind()
        self._resources[kind].pop(resource.name(), None)
        if kind == Kind.CONFIGURATION:
            self._configuration_index.remove(resource)
        elif kind == Kind.SOURCE:
            self._source_index.remove(resource)

    def _restore(self, previous: Dict[Tuple[Kind, str], Optional[ResourceMeta]]) -> None:
        """Put back resources as they were before an unsaved change."""
        for (kind, name), resource in previous.items():
            current = self._resources[kind].get(name)
            if current is not None:
                self._remove(current)
            if resource is not None:
                self._put(resource)

    def apply_resources(self, resources: List[ResourceMeta]) -> List[ResourceStatus]:
        """
        Validate and store each resource in order.

        The batch is not atomic; each resource gets its own status. If the
        store cannot be saved, the stored changes are undone and reported as
        errors.
        """
        statuses = []
        previous: Dict[Tuple[Kind, str], Optional[ResourceMeta]] = {}
        with self._lock:
            for resource in resources:
                kind = resource.get_kind()
                if kind in STORED_KINDS:
                    previous.setdefault(
                        (kind, resource.name()), self._resources[kind].get(resource.name())
                    )
                statuses.append(self._apply(resource))
            if any(s.status in (UpdateStatus.CREATED, UpdateStatus.CONFIGURED) for s in statuses):
                try:
                    self._save()
                except StoreError as e:
                    self._restore(previous)
                    statuses = [
                        ResourceStatus(resource=s.resource, status=UpdateStatus.ERROR, reason=str(e))
                        if s.status in (UpdateStatus.CREATED, UpdateStatus.CONFIGURED)
                        else s
                        for s in statuses
                    ]
        return statuses

    def _apply(self, resource: ResourceMeta) -> ResourceStatus:
        kind = resource.get_kind()
        if kind not in STORED_KINDS:
            return ResourceStatus.of(
                resource,
                UpdateStatus.INVALID,
                f"{resource.kind} is not a valid resource kind for apply",
            )

        err = resource.validate_with_store(self)
        if err is not None:
            return ResourceStatus.of(resource, UpdateStatus.INVALID, str(err))

        existing = self._resources[kind].get(resource.name())
        if existing is not None:
            if not existing.has_changed(resource):
                return ResourceStatus.of(existing, UpdateStatus.UNCHANGED)
            resource.set_id(existing.id())
            status = UpdateStatus.CONFIGURED
        else:
            resource.ensure_id()
            status = UpdateStatus.CREATED

        stored = resource.model_copy(deep=True)
        self._put(stored)
        logger.debug(f"{kind.value} {resource.name()} {status.value}")
        return ResourceStatus.of(stored, status)

    def delete_resources(self, resources: List[ResourceMeta]) -> List[ResourceStatus]:
        """
        Delete each resource by kind and name.

        Resources still referenced are reported ``in-use`` and kept. Resources
        that do not exist are skipped.
        """
        statuses = []
        removed: List[ResourceMeta] = []
        with self._lock:
            for resource in resources:
                kind = resource.get_kind()
                if kind not in STORED_KINDS:
                    statuses.append(
                        ResourceStatus.of(
                            resource,
                            UpdateStatus.INVALID,
                            f"{resource.kind} is not a valid resource kind for delete",
                        )
                    )
                    continue
                dependencies = self.dependent_resources(kind, resource.name())
                if dependencies:
                    error = DependencyError(kind, resource.name(), dependencies)
                    statuses.append(ResourceStatus.of(resource, UpdateStatus.IN_USE, str(error)))
                    continue
                existing = self._resources[kind].get(resource.name())
                if existing is None:
                    continue
                self._remove(existing)
                removed.append(existing)
                statuses.append(ResourceStatus.of(existing, UpdateStatus.DELETED))
            if removed:
                try:
                    self._save()
                except StoreError:
                    for existing in removed:
                        self._put(existing)
                    raise
        return statuses

    def dependent_resources(self, kind: Kind, name: str) -> Dependencies:
        """Resources that reference ``kind``/``name``, sorted by kind then name."""
        dependencies: List[Tuple[Kind, str]] = []

        def by_field(index: InMemoryIndex, referrer: Kind, field: str) -> None:
            for referrer_name in field_search(index, field, name):
                dependencies.append((referrer, referrer_name))

        def by_type(referrer: Kind) -> None:
            for item in self._resources[referrer].values():
                if item.spec.type == name:  # type: ignore[attr-defined]
                    dependencies.append((referrer, item.name()))

        with self._lock:
            if kind == Kind.SOURCE:
                by_field(self._configuration_index, Kind.CONFIGURATION, "source")
            elif kind == Kind.DESTINATION:
                by_field(self._configuration_index, Kind.CONFIGURATION, "destination")
            elif kind == Kind.PROCESSOR:
                by_field(self._configuration_index, Kind.CONFIGURATION, "processor")
                by_field(self._source_index, Kind.SOURCE, "processor")
            elif kind == Kind.SOURCE_TYPE:
                by_field(self._configuration_index, Kind.CONFIGURATION, "sourceType")
                by_type(Kind.SOURCE)
            elif kind == Kind.PROCESSOR_TYPE:
                by_field(self._configuration_index, Kind.CONFIGURATION, "processorType")
                by_field(self._source_index, Kind.SOURCE, "processorType")
                by_type(Kind.PROCESSOR)
            elif kind == Kind.DESTINATION_TYPE:
                by_field(self._configuration_index, Kind.CONFIGURATION, "destinationType")
                by_type(Kind.DESTINATION)

        order = {k: i for i, k in enumerate(STORED_KINDS)}
        return sorted(set(dependencies), key=lambda d: (order.get(d[0], 99), d[1]))

    # Seeding

    def seed(self, directory: Union[str, Path]) -> List[ResourceStatus]:
        """Apply every YAML resource file in ``directory``, types before instances."""
        path = Path(directory)
        if not path.is_dir():
            logger.warning(f"Resources directory {path} does not exist")
            return []

        files = sorted(list(path.rglob("*.yaml")) + list(path.rglob("*.yml")))
        resources: List[ResourceMeta] = []
        for file in files:
            try:
                resources.extend(parse_resources(resources_from_file(file)))
            except (OSError, ValueError) as e:
                logger.error(f"Failed to read resources from {file}: {e}")

        resources.sort(key=lambda r: _SEED_ORDER.get(r.get_kind(), len(_SEED_ORDER)))
        statuses = self.apply_resources(resources)
        for status in statuses:
            if status.status in (UpdateStatus.INVALID, UpdateStatus.ERROR):
                logger.warning(f"Seed resource {status.message()}")
        logger.info(f"Seeded {len(statuses)} resources from {path}")
        return statuses


# Types first so that instances validate against them
_SEED_ORDER = {
    Kind.SOURCE_TYPE: 0,
    Kind.PROCESSOR_TYPE: 1,
    Kind.DESTINATION_TYPE: 2,
    Kind.PROCESSOR: 3,
    Kind.SOURCE: 4,
    Kind.DESTINATION: 5,
    Kind.CONFIGURATION: 6,
}


def _agent_record(agent: Agent) -> Dict:
    record = agent.model_dump(by_alias=True, mode="json", exclude_none=True)
    if agent.secret_key:
        record["secretKey"] = agent.secret_key
    return record


def _agent_field(agent: Agent, field: str) -> str:
    values: Dict[str, str] = {}
    agent.index_fields(lambda name, value: values.setdefault(name.lower(), value))
    agent.index_labels(lambda name, value: values.setdefault(name.lower(), value))
    return values.get(field.lower(), "")
