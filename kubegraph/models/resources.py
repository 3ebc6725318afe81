"""Entity identity and per-kind property variants.

Raw Kubernetes objects are decoded once at ingestion (see ``kubegraph.models.decode``)
into one of the frozen property dataclasses below. Relationship rules dispatch on
the variant type and only ever read these named fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class ResourceKind(StrEnum):
    """Resource kinds tracked by the graph."""

    POD = "Pod"
    REPLICA_SET = "ReplicaSet"
    DEPLOYMENT = "Deployment"
    NODE = "Node"
    SERVICE = "Service"
    CONFIG_MAP = "ConfigMap"


class WatchEventType(StrEnum):
    """Watch stream event types consumed by the processors."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True, order=True)
class EntityKey:
    """Identity of a tracked entity. Cluster-scoped kinds use an empty namespace."""

    kind: ResourceKind
    namespace: str
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "namespace": self.namespace, "type": self.kind.value}

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"


@dataclass(frozen=True)
class OwnerReference:
    """A decoded ``metadata.ownerReferences`` entry."""

    kind: str
    name: str
    controller: bool = False


def _select_owner(refs: tuple[OwnerReference, ...], kind: ResourceKind) -> OwnerReference | None:
    """Pick the single owner of *kind*: the controller reference, else the first match."""
    candidates = [ref for ref in refs if ref.kind == kind.value]
    for ref in candidates:
        if ref.controller:
            return ref
    return candidates[0] if candidates else None


@dataclass(frozen=True)
class PodProperties:
    phase: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    node_name: str | None = None
    owner_references: tuple[OwnerReference, ...] = ()

    def owner(self) -> OwnerReference | None:
        return _select_owner(self.owner_references, ResourceKind.REPLICA_SET)

    def node_properties(self) -> dict[str, str]:
        props = {"status": self.phase}
        if self.node_name:
            props["nodeName"] = self.node_name
        return props

    def references(self, namespace: str) -> set[EntityKey]:
        refs: set[EntityKey] = set()
        if self.node_name:
            refs.add(EntityKey(ResourceKind.NODE, "", self.node_name))
        owner = self.owner()
        if owner is not None:
            refs.add(EntityKey(ResourceKind.REPLICA_SET, namespace, owner.name))
        return refs


@dataclass(frozen=True)
class ReplicaSetProperties:
    labels: dict[str, str] = field(default_factory=dict)
    replicas: int | None = None
    owner_references: tuple[OwnerReference, ...] = ()

    def owner(self) -> OwnerReference | None:
        return _select_owner(self.owner_references, ResourceKind.DEPLOYMENT)

    def node_properties(self) -> dict[str, str]:
        return {"replicas": str(self.replicas)} if self.replicas is not None else {}

    def references(self, namespace: str) -> set[EntityKey]:
        owner = self.owner()
        if owner is None:
            return set()
        return {EntityKey(ResourceKind.DEPLOYMENT, namespace, owner.name)}


@dataclass(frozen=True)
class DeploymentProperties:
    labels: dict[str, str] = field(default_factory=dict)
    replicas: int | None = None
    # ConfigMap name -> name of the first volume that mounts it
    configmap_refs: dict[str, str] = field(default_factory=dict)

    def node_properties(self) -> dict[str, str]:
        return {"replicas": str(self.replicas)} if self.replicas is not None else {}

    def references(self, namespace: str) -> set[EntityKey]:
        return {EntityKey(ResourceKind.CONFIG_MAP, namespace, name) for name in self.configmap_refs}


@dataclass(frozen=True)
class NodeProperties:
    labels: dict[str, str] = field(default_factory=dict)
    ready: bool | None = None
    unschedulable: bool = False

    def node_properties(self) -> dict[str, str]:
        if self.ready is None:
            status = "Unknown"
        else:
            status = "Ready" if self.ready else "NotReady"
        props = {"status": status}
        if self.unschedulable:
            props["unschedulable"] = "true"
        return props

    def references(self, namespace: str) -> set[EntityKey]:
        return set()


@dataclass(frozen=True)
class ServiceProperties:
    labels: dict[str, str] = field(default_factory=dict)
    service_type: str = "ClusterIP"
    selector: dict[str, str] | None = None

    def node_properties(self) -> dict[str, str]:
        return {"type": self.service_type}

    def references(self, namespace: str) -> set[EntityKey]:
        # Selector edges are resolved through the label index, not references.
        return set()


@dataclass(frozen=True)
class ConfigMapProperties:
    labels: dict[str, str] = field(default_factory=dict)
    data_keys: tuple[str, ...] = ()

    def node_properties(self) -> dict[str, str]:
        return {"keys": str(len(self.data_keys))}

    def references(self, namespace: str) -> set[EntityKey]:
        return set()


EntityProperties = (
    PodProperties
    | ReplicaSetProperties
    | DeploymentProperties
    | NodeProperties
    | ServiceProperties
    | ConfigMapProperties
)

PROPERTIES_BY_KIND: dict[ResourceKind, type] = {
    ResourceKind.POD: PodProperties,
    ResourceKind.REPLICA_SET: ReplicaSetProperties,
    ResourceKind.DEPLOYMENT: DeploymentProperties,
    ResourceKind.NODE: NodeProperties,
    ResourceKind.SERVICE: ServiceProperties,
    ResourceKind.CONFIG_MAP: ConfigMapProperties,
}


@dataclass(frozen=True)
class EntityRecord:
    """An indexed entity: its key, decoded properties and local revision."""

    key: EntityKey
    properties: EntityProperties
    revision: int


@dataclass(frozen=True)
class ResourceEvent:
    """One decoded watch event. ``properties`` is None only for tombstones we could not decode."""

    type: WatchEventType
    key: EntityKey
    properties: EntityProperties | None = None
