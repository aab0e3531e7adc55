# hydrastore/graph.py
"""
Dependency graph recorded during dehydration.

Nodes are locator strings; an edge parent -> child means the parent
fragment holds a stub pointing at the child. The graph is rebuilt on
every dehydration and never persisted.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Set

from . import uhl as uhl_
from .uhl import Uhl


def _key(locator) -> str:
    if isinstance(locator, Uhl):
        return uhl_.to_string(locator)
    return str(locator)


@dataclass
class DependencyGraph:
    """
    Directed graph of fragment dependencies.

    Attributes:
        edges: parent locator string -> child locator strings
    """
    edges: Dict[str, Set[str]] = field(default_factory=dict)

    def add_node(self, locator) -> str:
        """Add a node, returning its key."""
        key = _key(locator)
        self.edges.setdefault(key, set())
        return key

    def add_edge(self, parent, child) -> None:
        parent_key = self.add_node(parent)
        child_key = self.add_node(child)
        self.edges[parent_key].add(child_key)

    @property
    def nodes(self) -> List[str]:
        return list(self.edges)

    def children(self, locator) -> List[str]:
        return sorted(self.edges.get(_key(locator), ()))

    def parents(self, locator) -> List[str]:
        key = _key(locator)
        return sorted(p for p, children in self.edges.items() if key in children)

    def dependents(self, locator) -> List[str]:
        """Every node that transitively depends on the given one."""
        result: Set[str] = set()
        pending = [_key(locator)]
        while pending:
            current = pending.pop()
            for parent in self.parents(current):
                if parent not in result:
                    result.add(parent)
                    pending.append(parent)
        return sorted(result)

    def topological_order(self) -> List[str]:
        """Return nodes with dependencies (children) before their parents."""
        visited = set()
        order = []

        def visit(key: str):
            if key in visited:
                return
            visited.add(key)
            for child in sorted(self.edges.get(key, ())):
                visit(child)
            order.append(key)

        for key in sorted(self.edges):
            visit(key)
        return order

    def merge(self, other: "DependencyGraph") -> "DependencyGraph":
        for parent, children in other.edges.items():
            self.add_node(parent)
            self.edges[parent].update(children)
        return self

    def __len__(self) -> int:
        return len(self.edges)

    def __contains__(self, locator) -> bool:
        return _key(locator) in self.edges

    def to_dict(self) -> Dict[str, Any]:
        return {"edges": {k: sorted(v) for k, v in sorted(self.edges.items())}}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DependencyGraph":
        return cls(edges={k: set(v) for k, v in data.get("edges", {}).items()})

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> "DependencyGraph":
        return cls.from_dict(json.loads(json_str))
