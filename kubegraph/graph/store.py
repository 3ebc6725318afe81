"""Authoritative node/edge store for the relationship graph.

The store records what the relationship engine tells it; it does not decide
which edges should exist. It does enforce one invariant on its own: an edge is
only kept while both of its endpoints are present as nodes. Removing a node
cascades to every incident edge, and an edge whose endpoint is absent is
dropped on arrival.

All mutations and ``snapshot()`` share one lock, so a reader never sees half of
an edge diff.
"""

from __future__ import annotations

import threading
from collections import defaultdict

from kubegraph.graph.models import EdgeDiff, EdgeId, GraphEdge, GraphNode, GraphSnapshot
from kubegraph.models.resources import EntityKey
from kubegraph.observability.logging import get_logger
from kubegraph.observability.metrics import edges_dropped_total, graph_edges, graph_nodes

_logger = get_logger("graph.store")


class GraphStore:
    """In-memory graph of nodes and derived edges."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._nodes: dict[EntityKey, GraphNode] = {}
        self._edges: dict[EdgeId, GraphEdge] = {}
        self._incident: dict[EntityKey, set[EdgeId]] = defaultdict(set)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def apply_node(
        self,
        key: EntityKey,
        properties: dict[str, str] | None,
        revision: int = 1,
    ) -> None:
        """Upsert the node for *key*, or remove it (and its edges) when *properties* is None."""
        with self._lock:
            self._apply_node(key, properties, revision)
            self._update_gauges()

    def apply_edge_diff(self, diff: EdgeDiff) -> None:
        """Apply removals then additions as one atomic step."""
        with self._lock:
            self._apply_edge_diff(diff)
            self._update_gauges()

    def commit(
        self,
        key: EntityKey,
        properties: dict[str, str] | None,
        revision: int,
        diff: EdgeDiff,
    ) -> None:
        """Apply a node change and its edge diff in a single critical section.

        Node upserts are applied before the diff so new edges can attach to the
        node; node removals are applied after so the cascade sees the final
        edge set.
        """
        with self._lock:
            if properties is not None:
                self._apply_node(key, properties, revision)
                self._apply_edge_diff(diff)
            else:
                self._apply_edge_diff(diff)
                self._apply_node(key, None, revision)
            self._update_gauges()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def snapshot(self) -> GraphSnapshot:
        with self._lock:
            nodes = [self._nodes[key] for key in sorted(self._nodes)]
            edges = [self._edges[edge_id] for edge_id in sorted(self._edges)]
        return GraphSnapshot(nodes=nodes, edges=edges)

    def get_node(self, key: EntityKey) -> GraphNode | None:
        with self._lock:
            return self._nodes.get(key)

    def get_edge(self, edge_id: EdgeId) -> GraphEdge | None:
        with self._lock:
            return self._edges.get(edge_id)

    def has_edge(self, edge_id: EdgeId) -> bool:
        with self._lock:
            return edge_id in self._edges

    def edges_of(self, key: EntityKey) -> list[GraphEdge]:
        """Edges with *key* as source or target, ordered by identity."""
        with self._lock:
            return [self._edges[edge_id] for edge_id in sorted(self._incident.get(key, ()))]

    @property
    def node_count(self) -> int:
        with self._lock:
            return len(self._nodes)

    @property
    def edge_count(self) -> int:
        with self._lock:
            return len(self._edges)

    # ------------------------------------------------------------------
    # Internals (lock held)
    # ------------------------------------------------------------------

    def _apply_node(self, key: EntityKey, properties: dict[str, str] | None, revision: int) -> None:
        if properties is None:
            if self._nodes.pop(key, None) is None:
                return
            for edge_id in sorted(self._incident.pop(key, set())):
                self._drop_edge(edge_id)
            return
        self._nodes[key] = GraphNode(key=key, properties=dict(properties), revision=revision)

    def _apply_edge_diff(self, diff: EdgeDiff) -> None:
        for edge_id in sorted(diff.remove):
            self._drop_edge(edge_id)
        for edge in sorted(diff.add, key=lambda e: e.id):
            if edge.source not in self._nodes or edge.target not in self._nodes:
                edges_dropped_total.labels(reason="absent_endpoint").inc()
                _logger.debug(
                    "edge_dropped_absent_endpoint",
                    source=str(edge.source),
                    target=str(edge.target),
                    relationship=edge.relationship_type.value,
                )
                continue
            self._put_edge(edge)

    def _put_edge(self, edge: GraphEdge) -> None:
        edge_id = edge.id
        current = self._edges.get(edge_id)
        if current is not None:
            if current.properties == edge.properties:
                return
            revision = current.revision + 1
        else:
            revision = 1
        self._edges[edge_id] = GraphEdge(
            source=edge.source,
            target=edge.target,
            relationship_type=edge.relationship_type,
            properties=dict(edge.properties),
            revision=revision,
        )
        self._incident[edge.source].add(edge_id)
        self._incident[edge.target].add(edge_id)

    def _drop_edge(self, edge_id: EdgeId) -> None:
        if self._edges.pop(edge_id, None) is None:
            return
        for endpoint in (edge_id.source, edge_id.target):
            members = self._incident.get(endpoint)
            if members is not None:
                members.discard(edge_id)
                if not members:
                    del self._incident[endpoint]

    def _update_gauges(self) -> None:
        graph_nodes.set(len(self._nodes))
        graph_edges.set(len(self._edges))
