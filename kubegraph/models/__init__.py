"""Core data structures for kubegraph."""

from kubegraph.models.config import KubeGraphConfig
from kubegraph.models.resources import (
    ConfigMapProperties,
    DeploymentProperties,
    EntityKey,
    EntityProperties,
    EntityRecord,
    NodeProperties,
    OwnerReference,
    PodProperties,
    ReplicaSetProperties,
    ResourceEvent,
    ResourceKind,
    ServiceProperties,
    WatchEventType,
)

__all__ = [
    "ConfigMapProperties",
    "DeploymentProperties",
    "EntityKey",
    "EntityProperties",
    "EntityRecord",
    "KubeGraphConfig",
    "NodeProperties",
    "OwnerReference",
    "PodProperties",
    "ReplicaSetProperties",
    "ResourceEvent",
    "ResourceKind",
    "ServiceProperties",
    "WatchEventType",
]
