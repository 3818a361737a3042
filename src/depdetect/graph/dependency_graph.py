"""Mergeable dependency graph keyed by external identifier."""

import threading
from collections.abc import Iterable

from depdetect.graph.external_id import Dependency, ExternalId


class DependencyGraph:
    """A multi-root directed graph of dependencies.

    Nodes are keyed by :class:`ExternalId`, so a dependency reachable from
    several parents is stored once and referenced from each of them. Cycles
    are tolerated. All mutations hold an internal lock, which makes it safe
    for several threads to write into the same graph, although the pipeline
    gives every extraction its own graph and merges afterwards.

    Insertion order is preserved everywhere so output is deterministic.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._dependencies: dict[ExternalId, Dependency] = {}
        self._root: dict[ExternalId, None] = {}
        self._children: dict[ExternalId, dict[ExternalId, None]] = {}
        self._parents: dict[ExternalId, dict[ExternalId, None]] = {}

    def _ensure(self, dependency: Dependency) -> ExternalId:
        key = dependency.external_id
        if key not in self._dependencies:
            self._dependencies[key] = dependency
            self._children[key] = {}
            self._parents[key] = {}
        return key

    def add_child_to_root(self, dependency: Dependency) -> None:
        with self._lock:
            self._root[self._ensure(dependency)] = None

    def add_children_to_root(self, dependencies: Iterable[Dependency]) -> None:
        with self._lock:
            for dependency in dependencies:
                self._root[self._ensure(dependency)] = None

    def add_child_with_parent(self, child: Dependency, parent: Dependency) -> None:
        """Add an edge ``parent -> child``, adding either node when missing."""
        with self._lock:
            child_key = self._ensure(child)
            parent_key = self._ensure(parent)
            self._children[parent_key][child_key] = None
            self._parents[child_key][parent_key] = None

    def add_children_with_parent(
        self, children: Iterable[Dependency], parent: Dependency
    ) -> None:
        with self._lock:
            for child in children:
                self.add_child_with_parent(child, parent)

    def add_parent_with_child(self, parent: Dependency, child: Dependency) -> None:
        self.add_child_with_parent(child, parent)

    def merge(self, other: "DependencyGraph") -> None:
        """Copy every node, root relationship and edge of *other* into this graph.

        Nodes are matched by external id equality, never object identity.
        """
        if other is self:
            return
        dependencies, root, edges = other._snapshot()
        with self._lock:
            for dependency in dependencies:
                self._ensure(dependency)
            for key in root:
                self._root[key] = None
            for parent_key, child_key in edges:
                self._children[parent_key][child_key] = None
                self._parents[child_key][parent_key] = None

    def add_graph_as_children_to_root(self, other: "DependencyGraph") -> None:
        self.merge(other)

    def _snapshot(
        self,
    ) -> tuple[list[Dependency], list[ExternalId], list[tuple[ExternalId, ExternalId]]]:
        with self._lock:
            dependencies = list(self._dependencies.values())
            root = list(self._root)
            edges = [
                (parent, child)
                for parent, children in self._children.items()
                for child in children
            ]
        return dependencies, root, edges

    def copy(self) -> "DependencyGraph":
        graph = DependencyGraph()
        graph.merge(self)
        return graph

    def has_dependency(self, external_id: ExternalId | Dependency) -> bool:
        with self._lock:
            return _key(external_id) in self._dependencies

    def get_dependency(self, external_id: ExternalId) -> Dependency | None:
        with self._lock:
            return self._dependencies.get(external_id)

    def root_dependencies(self) -> list[Dependency]:
        with self._lock:
            return [self._dependencies[key] for key in self._root]

    def is_root(self, external_id: ExternalId | Dependency) -> bool:
        with self._lock:
            return _key(external_id) in self._root

    def children_of(self, parent: ExternalId | Dependency) -> list[Dependency]:
        with self._lock:
            children = self._children.get(_key(parent), {})
            return [self._dependencies[key] for key in children]

    def parents_of(self, child: ExternalId | Dependency) -> list[Dependency]:
        with self._lock:
            parents = self._parents.get(_key(child), {})
            return [self._dependencies[key] for key in parents]

    def dependencies(self) -> list[Dependency]:
        with self._lock:
            return list(self._dependencies.values())

    def external_ids(self) -> set[ExternalId]:
        with self._lock:
            return set(self._dependencies)

    def edges(self) -> list[tuple[Dependency, Dependency]]:
        """Return all ``(parent, child)`` pairs."""
        with self._lock:
            return [
                (self._dependencies[parent], self._dependencies[child])
                for parent, children in self._children.items()
                for child in children
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._dependencies)

    def __bool__(self) -> bool:
        return True

    def __repr__(self) -> str:
        with self._lock:
            return (
                f"DependencyGraph(nodes={len(self._dependencies)}, "
                f"roots={len(self._root)})"
            )


def _key(value: ExternalId | Dependency) -> ExternalId:
    if isinstance(value, Dependency):
        return value.external_id
    return value
