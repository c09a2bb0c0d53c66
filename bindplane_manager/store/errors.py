"""Errors raised by resource stores."""

from typing import List, Tuple

from ..models.parameterized import UnknownResourceError
from ..models.resource import Kind

__all__ = [
    "StoreError",
    "DependencyError",
    "UnknownResourceError",
]


class StoreError(Exception):
    """The store could not complete an operation."""

    pass


# (kind, name) of each resource referencing the one being deleted
Dependencies = List[Tuple[Kind, str]]


class DependencyError(Exception):
    """A resource cannot be deleted because other resources reference it."""

    def __init__(self, kind: Kind, name: str, dependencies: Dependencies):
        self.kind = kind
        self.name = name
        self.dependencies = list(dependencies)
        super().__init__(self.message())

    def message(self) -> str:
        lines = "".join(f"{kind.value} {name}\n" for kind, name in self.dependencies)
        return f"{self.kind.value} {self.name} is in use. Dependent resources:\n{lines}"

    def __str__(self) -> str:
        return self.message()
