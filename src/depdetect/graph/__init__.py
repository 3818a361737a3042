"""Dependency graph model and external identifiers."""

from depdetect.graph.dependency_graph import DependencyGraph
from depdetect.graph.external_id import (
    Dependency,
    ExternalId,
    ExternalIdFactory,
    Forge,
)

__all__ = [
    "Dependency",
    "DependencyGraph",
    "ExternalId",
    "ExternalIdFactory",
    "Forge",
]
