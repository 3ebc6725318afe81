"""Data structures for the resource relationship graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from kubegraph.models.resources import EntityKey


class RelationshipType(StrEnum):
    """Types of relationships between Kubernetes resources."""

    RUNS_ON = "runs_on"  # Pod -> Node
    OWNED_BY = "owned_by"  # Pod -> ReplicaSet, ReplicaSet -> Deployment
    TARGETS = "targets"  # Service -> Pod
    USES = "uses"  # Deployment -> ConfigMap


@dataclass(frozen=True, order=True)
class EdgeId:
    """Edge identity. At most one edge exists per identity."""

    source: EntityKey
    target: EntityKey
    relationship_type: RelationshipType

    def touches(self, key: EntityKey) -> bool:
        return self.source == key or self.target == key


@dataclass(frozen=True)
class GraphEdge:
    """A derived, typed edge between two entities."""

    source: EntityKey
    target: EntityKey
    relationship_type: RelationshipType
    properties: dict[str, str] = field(default_factory=dict, compare=False, hash=False)
    revision: int = field(default=1, compare=False, hash=False)

    @property
    def id(self) -> EdgeId:
        return EdgeId(self.source, self.target, self.relationship_type)

    def to_dict(self) -> dict[str, object]:
        return {
            "source": self.source.to_dict(),
            "target": self.target.to_dict(),
            "relationshipType": self.relationship_type.value,
            "properties": dict(self.properties),
            "revision": self.revision,
        }


@dataclass(frozen=True)
class GraphNode:
    """Projection of a live entity into the graph."""

    key: EntityKey
    properties: dict[str, str] = field(default_factory=dict)
    revision: int = 1

    def to_dict(self) -> dict[str, object]:
        return {
            "key": self.key.to_dict(),
            "properties": dict(self.properties),
            "revision": self.revision,
        }


@dataclass(frozen=True)
class EdgeDiff:
    """Edge changes produced by one derivation, applied as a unit."""

    add: frozenset[GraphEdge] = frozenset()
    remove: frozenset[EdgeId] = frozenset()

    def __bool__(self) -> bool:
        return bool(self.add or self.remove)


@dataclass
class GraphSnapshot:
    """Point-in-time view of the graph, ordered by key for stable output."""

    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)

    def edge_ids(self) -> set[EdgeId]:
        return {edge.id for edge in self.edges}

    def node_keys(self) -> set[EntityKey]:
        return {node.key for node in self.nodes}

    def to_document(self) -> dict[str, list[dict[str, object]]]:
        """Serialisable form with top-level ``nodes`` and ``relationships``."""
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "relationships": [edge.to_dict() for edge in self.edges],
        }
