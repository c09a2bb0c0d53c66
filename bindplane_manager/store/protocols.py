"""
Store interfaces.

``ResourceStore`` is the read-only lookup used while validating and rendering.
``Store`` is the full interface the REST layer and manager work against.
Lookups return ``None`` on a miss and raise ``StoreError`` on failure.
"""

from datetime import datetime
from typing import Callable, List, Optional, Protocol

from ..models.agent import Agent
from ..models.configuration import Configuration
from ..models.parameterized import Destination, Processor, Source
from ..models.resource import Kind, ResourceMeta
from ..models.resource_status import ResourceStatus
from ..models.resource_type import DestinationType, ProcessorType, SourceType
from ..models.selector import Selector
from .search import InMemoryIndex

AgentUpdater = Callable[[Agent], None]


class ResourceStore(Protocol):
    def source(self, name: str) -> Optional[Source]: ...

    def source_type(self, name: str) -> Optional[SourceType]: ...

    def processor(self, name: str) -> Optional[Processor]: ...

    def processor_type(self, name: str) -> Optional[ProcessorType]: ...

    def destination(self, name: str) -> Optional[Destination]: ...

    def destination_type(self, name: str) -> Optional[DestinationType]: ...


class Store(ResourceStore, Protocol):
    # Agents

    def agents(
        self,
        selector: Optional[Selector] = None,
        query: Optional[str] = None,
        offset: int = 0,
        limit: int = 0,
        sort: str = "",
    ) -> List[Agent]: ...

    def agents_count(self, selector: Optional[Selector] = None, query: Optional[str] = None) -> int: ...

    def agent(self, agent_id: str) -> Optional[Agent]: ...

    def upsert_agent(self, agent_id: str, updater: AgentUpdater) -> Agent: ...

    def delete_agents(self, agent_ids: List[str]) -> List[Agent]: ...

    def agent_configuration(self, agent_id: str) -> Optional[Configuration]: ...

    def agents_for_configuration(self, configuration: Configuration) -> List[str]: ...

    def cleanup_disconnected_agents(self, since: datetime) -> List[Agent]: ...

    # Resources

    def resources(self, kind: Kind) -> List[ResourceMeta]: ...

    def resource(self, kind: Kind, name: str) -> Optional[ResourceMeta]: ...

    def delete_resource(self, kind: Kind, name: str) -> Optional[ResourceMeta]: ...

    def configurations(self) -> List[Configuration]: ...

    def configuration(self, name: str) -> Optional[Configuration]: ...

    def delete_configuration(self, name: str) -> Optional[Configuration]: ...

    def sources(self) -> List[Source]: ...

    def delete_source(self, name: str) -> Optional[Source]: ...

    def source_types(self) -> List[SourceType]: ...

    def delete_source_type(self, name: str) -> Optional[SourceType]: ...

    def processors(self) -> List[Processor]: ...

    def delete_processor(self, name: str) -> Optional[Processor]: ...

    def processor_types(self) -> List[ProcessorType]: ...

    def delete_processor_type(self, name: str) -> Optional[ProcessorType]: ...

    def destinations(self) -> List[Destination]: ...

    def delete_destination(self, name: str) -> Optional[Destination]: ...

    def destination_types(self) -> List[DestinationType]: ...

    def delete_destination_type(self, name: str) -> Optional[DestinationType]: ...

    def apply_resources(self, resources: List[ResourceMeta]) -> List[ResourceStatus]: ...

    def delete_resources(self, resources: List[ResourceMeta]) -> List[ResourceStatus]: ...

    # Indexes

    def agent_index(self) -> InMemoryIndex: ...

    def configuration_index(self) -> InMemoryIndex: ...
