"""Resource and agent storage."""

from .errors import DependencyError, StoreError, UnknownResourceError
from .map_store import MapStore
from .protocols import AgentUpdater, ResourceStore, Store
from .search import InMemoryIndex, Query, Suggestion, field_search, parse_query

__all__ = [
    "MapStore",
    "Store",
    "ResourceStore",
    "AgentUpdater",
    "StoreError",
    "DependencyError",
    "UnknownResourceError",
    "InMemoryIndex",
    "Query",
    "Suggestion",
    "parse_query",
    "field_search",
]
