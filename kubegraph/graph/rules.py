"""Relationship rules and incremental edge derivation.

The rule set is fixed:

    runs_on   Pod -> Node          from spec.nodeName
    owned_by  Pod -> ReplicaSet    from the ReplicaSet owner reference
    owned_by  ReplicaSet -> Deployment
    targets   Service -> Pod       from spec.selector matched against Pod labels
    uses      Deployment -> ConfigMap  from pod template volumes

An edge is only derived while both endpoints are present in the EntityIndex;
a reference to an entity that has not been observed yet is "no match".

``RelationshipEngine.derive`` re-derives every edge incident on the changed
entity and nothing else. Outbound edges come from the entity's own rules;
inbound edges come from its referrers (via the index's reference index) or,
for Pods, from every Service whose selector matches, in any namespace. The engine keeps a ledger
of the edges it has emitted so the edges that are no longer derivable can be
retracted in the same diff that adds their replacements.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from enum import StrEnum

from kubegraph.cache.entity_index import EntityIndex
from kubegraph.graph.models import EdgeDiff, EdgeId, GraphEdge, RelationshipType
from kubegraph.models.resources import (
    DeploymentProperties,
    EntityKey,
    EntityProperties,
    PodProperties,
    ReplicaSetProperties,
    ResourceKind,
    ServiceProperties,
)
from kubegraph.observability.logging import get_logger

_logger = get_logger("graph.rules")


class ChangeKind(StrEnum):
    UPSERTED = "upserted"
    REMOVED = "removed"


# ---------------------------------------------------------------------------
# Outbound rules: edges an entity derives from its own properties
# ---------------------------------------------------------------------------


def _pod_edges(key: EntityKey, props: PodProperties, index: EntityIndex) -> list[GraphEdge]:
    edges: list[GraphEdge] = []
    if props.node_name:
        node = EntityKey(ResourceKind.NODE, "", props.node_name)
        if index.contains(node):
            edges.append(GraphEdge(key, node, RelationshipType.RUNS_ON))
    owner = props.owner()
    if owner is not None:
        replica_set = EntityKey(ResourceKind.REPLICA_SET, key.namespace, owner.name)
        if index.contains(replica_set):
            edges.append(_owned_by(key, replica_set, owner.controller))
    return edges


def _replica_set_edges(key: EntityKey, props: ReplicaSetProperties, index: EntityIndex) -> list[GraphEdge]:
    owner = props.owner()
    if owner is None:
        return []
    deployment = EntityKey(ResourceKind.DEPLOYMENT, key.namespace, owner.name)
    if not index.contains(deployment):
        return []
    return [_owned_by(key, deployment, owner.controller)]


def _deployment_edges(key: EntityKey, props: DeploymentProperties, index: EntityIndex) -> list[GraphEdge]:
    edges: list[GraphEdge] = []
    for name, volume in sorted(props.configmap_refs.items()):
        config_map = EntityKey(ResourceKind.CONFIG_MAP, key.namespace, name)
        if index.contains(config_map):
            edges.append(GraphEdge(key, config_map, RelationshipType.USES, {"volume": volume}))
    return edges


def _service_edges(key: EntityKey, props: ServiceProperties, index: EntityIndex) -> list[GraphEdge]:
    return [
        GraphEdge(key, pod, RelationshipType.TARGETS)
        for pod in sorted(index.selector_matches(props.selector))
    ]


def _owned_by(source: EntityKey, owner: EntityKey, controller: bool) -> GraphEdge:
    return GraphEdge(
        source,
        owner,
        RelationshipType.OWNED_BY,
        {"controller": "true" if controller else "false"},
    )


def outbound_edges(key: EntityKey, props: EntityProperties, index: EntityIndex) -> list[GraphEdge]:
    """Edges *key* derives from its own properties. Node and ConfigMap derive none."""
    if isinstance(props, PodProperties):
        return _pod_edges(key, props, index)
    if isinstance(props, ReplicaSetProperties):
        return _replica_set_edges(key, props, index)
    if isinstance(props, DeploymentProperties):
        return _deployment_edges(key, props, index)
    if isinstance(props, ServiceProperties):
        return _service_edges(key, props, index)
    return []


def selector_matches_labels(selector: dict[str, str] | None, labels: dict[str, str]) -> bool:
    """True when every selector pair appears in *labels*. Empty selectors match nothing."""
    if not selector:
        return False
    return all(labels.get(k) == v for k, v in selector.items())


def inbound_edges(key: EntityKey, props: EntityProperties, index: EntityIndex) -> list[GraphEdge]:
    """Edges other entities derive that point at *key*."""
    edges: list[GraphEdge] = []
    if isinstance(props, PodProperties):
        for service_key, service in index.list_by_kind(ResourceKind.SERVICE):
            if isinstance(service, ServiceProperties) and selector_matches_labels(service.selector, props.labels):
                edges.append(GraphEdge(service_key, key, RelationshipType.TARGETS))
    for referrer in sorted(index.referrers(key)):
        referrer_props = index.get(referrer)
        if referrer_props is None:
            continue
        edges.extend(e for e in outbound_edges(referrer, referrer_props, index) if e.target == key)
    return edges


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class RelationshipEngine:
    """Computes edge diffs for entity changes.

    For an upsert the desired edge set is every edge incident on the changed
    entity that is derivable from current index state; the retracted set is
    every ledger edge incident on the entity that is no longer desired. A
    removal retracts every ledger edge incident on the entity.

    ``add`` always carries the full desired set, so replaying an event yields
    the same additions and no removals, and applying it again is a no-op.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._ledger: dict[EdgeId, GraphEdge] = {}
        self._by_endpoint: dict[EntityKey, set[EdgeId]] = defaultdict(set)

    def derive(self, changed_key: EntityKey, change_kind: ChangeKind, index: EntityIndex) -> EdgeDiff:
        with self._lock:
            previous = set(self._by_endpoint.get(changed_key, ()))
            props = index.get(changed_key) if change_kind == ChangeKind.UPSERTED else None
            if props is None:
                desired: dict[EdgeId, GraphEdge] = {}
            else:
                desired = {
                    edge.id: edge
                    for edge in (*outbound_edges(changed_key, props, index), *inbound_edges(changed_key, props, index))
                }

            retracted = previous - desired.keys()
            for edge_id in retracted:
                self._forget(edge_id)
            for edge_id, edge in desired.items():
                self._record(edge_id, edge)

            if retracted or desired.keys() - previous:
                _logger.debug(
                    "edges_derived",
                    entity=str(changed_key),
                    change=change_kind.value,
                    added=len(desired.keys() - previous),
                    retracted=len(retracted),
                )
            return EdgeDiff(add=frozenset(desired.values()), remove=frozenset(retracted))

    def edges(self) -> list[GraphEdge]:
        """Edges currently in the ledger, ordered by identity."""
        with self._lock:
            return [self._ledger[edge_id] for edge_id in sorted(self._ledger)]

    def _record(self, edge_id: EdgeId, edge: GraphEdge) -> None:
        self._ledger[edge_id] = edge
        self._by_endpoint[edge_id.source].add(edge_id)
        self._by_endpoint[edge_id.target].add(edge_id)

    def _forget(self, edge_id: EdgeId) -> None:
        self._ledger.pop(edge_id, None)
        for endpoint in (edge_id.source, edge_id.target):
            members = self._by_endpoint.get(endpoint)
            if members is not None:
                members.discard(edge_id)
                if not members:
                    del self._by_endpoint[endpoint]
