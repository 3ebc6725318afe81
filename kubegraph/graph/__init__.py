"""Resource relationship graph.

Derives typed edges between Kubernetes resources from declared configuration
(ownerReferences, Pod->Node assignments, Service selectors, ConfigMap volume
mounts) and keeps them current as the underlying entities change.
"""

from kubegraph.graph.models import (
    EdgeDiff,
    EdgeId,
    GraphEdge,
    GraphNode,
    GraphSnapshot,
    RelationshipType,
)
from kubegraph.graph.rules import ChangeKind, RelationshipEngine
from kubegraph.graph.store import GraphStore

__all__ = [
    "ChangeKind",
    "EdgeDiff",
    "EdgeId",
    "GraphEdge",
    "GraphNode",
    "GraphSnapshot",
    "GraphStore",
    "RelationshipEngine",
    "RelationshipType",
]
