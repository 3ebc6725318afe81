"""Decode raw Kubernetes objects into typed entity properties.

Input is the camelCase dict form of an API object (what the watch stream
delivers as ``raw_object`` and what ``ApiClient.sanitize_for_serialization``
produces for list items). A field of the wrong shape becomes a typed absence
and is logged; only the rule that consumes it is affected.
"""

from __future__ import annotations

from typing import Any

from kubegraph.models.resources import (
    ConfigMapProperties,
    DeploymentProperties,
    EntityKey,
    EntityProperties,
    NodeProperties,
    OwnerReference,
    PodProperties,
    ReplicaSetProperties,
    ResourceKind,
    ServiceProperties,
)
from kubegraph.observability.logging import get_logger

_logger = get_logger("models.decode")


class MalformedResourceError(ValueError):
    """Raised when an object cannot be identified (no metadata.name)."""


def decode_key(kind: ResourceKind, raw: dict[str, Any]) -> EntityKey:
    """Extract the EntityKey of *raw*."""
    metadata = raw.get("metadata") if isinstance(raw, dict) else None
    if not isinstance(metadata, dict):
        raise MalformedResourceError(f"{kind} object has no metadata")
    name = metadata.get("name")
    if not isinstance(name, str) or not name:
        raise MalformedResourceError(f"{kind} object has no metadata.name")
    namespace = metadata.get("namespace") or ""
    if kind == ResourceKind.NODE or not isinstance(namespace, str):
        namespace = ""
    return EntityKey(kind, namespace, name)


def decode_resource(kind: ResourceKind, raw: dict[str, Any]) -> tuple[EntityKey, EntityProperties]:
    """Decode *raw* into its key and the property variant for *kind*."""
    key = decode_key(kind, raw)
    decoder = _DECODERS[kind]
    return key, decoder(_Reader(key, raw))


class _Reader:
    """Shape-checked field access that logs and substitutes on mismatch."""

    def __init__(self, key: EntityKey, raw: dict[str, Any]) -> None:
        self._key = key
        self._raw = raw

    def get(self, path: str, expected: type | tuple[type, ...], default: Any = None) -> Any:
        node: Any = self._raw
        for part in path.split("."):
            if not isinstance(node, dict):
                self.malformed(path, node)
                return default
            node = node.get(part)
            if node is None:
                return default
        if isinstance(node, bool) and expected is int:
            self.malformed(path, node)
            return default
        if not isinstance(node, expected):
            self.malformed(path, node)
            return default
        return node

    def string_map(self, path: str) -> dict[str, str] | None:
        value = self.get(path, dict)
        if value is None:
            return None
        if not all(isinstance(k, str) and isinstance(v, str) for k, v in value.items()):
            self.malformed(path, value)
            return None
        return dict(value)

    def malformed(self, path: str, value: Any) -> None:
        _logger.warning(
            "entity_malformed_field",
            entity=str(self._key),
            field=path,
            value_type=type(value).__name__,
        )


def _owner_references(reader: _Reader) -> tuple[OwnerReference, ...]:
    refs = reader.get("metadata.ownerReferences", list, [])
    owners: list[OwnerReference] = []
    for ref in refs:
        if not isinstance(ref, dict) or not isinstance(ref.get("kind"), str) or not isinstance(ref.get("name"), str):
            reader.malformed("metadata.ownerReferences[]", ref)
            continue
        owners.append(OwnerReference(kind=ref["kind"], name=ref["name"], controller=ref.get("controller") is True))
    return tuple(owners)


def _labels(reader: _Reader) -> dict[str, str]:
    return reader.string_map("metadata.labels") or {}


def _decode_pod(reader: _Reader) -> PodProperties:
    return PodProperties(
        phase=reader.get("status.phase", str, ""),
        labels=_labels(reader),
        node_name=reader.get("spec.nodeName", str) or None,
        owner_references=_owner_references(reader),
    )


def _decode_replica_set(reader: _Reader) -> ReplicaSetProperties:
    return ReplicaSetProperties(
        labels=_labels(reader),
        replicas=reader.get("spec.replicas", int),
        owner_references=_owner_references(reader),
    )


def _configmap_refs(reader: _Reader) -> dict[str, str]:
    """Map referenced ConfigMap names to the first volume mounting them."""
    volumes = reader.get("spec.template.spec.volumes", list, [])
    refs: dict[str, str] = {}
    for volume in volumes:
        if not isinstance(volume, dict):
            reader.malformed("spec.template.spec.volumes[]", volume)
            continue
        volume_name = volume.get("name") if isinstance(volume.get("name"), str) else ""
        names: list[Any] = []
        config_map = volume.get("configMap")
        if isinstance(config_map, dict):
            names.append(config_map.get("name"))
        projected = volume.get("projected")
        if isinstance(projected, dict) and isinstance(projected.get("sources"), list):
            for source in projected["sources"]:
                if isinstance(source, dict) and isinstance(source.get("configMap"), dict):
                    names.append(source["configMap"].get("name"))
        for name in names:
            if isinstance(name, str) and name:
                refs.setdefault(name, volume_name)
            else:
                reader.malformed("spec.template.spec.volumes[].configMap.name", name)
    return refs


def _decode_deployment(reader: _Reader) -> DeploymentProperties:
    return DeploymentProperties(
        labels=_labels(reader),
        replicas=reader.get("spec.replicas", int),
        configmap_refs=_configmap_refs(reader),
    )


def _decode_node(reader: _Reader) -> NodeProperties:
    ready: bool | None = None
    for condition in reader.get("status.conditions", list, []):
        if isinstance(condition, dict) and condition.get("type") == "Ready":
            ready = condition.get("status") == "True"
    return NodeProperties(
        labels=_labels(reader),
        ready=ready,
        unschedulable=reader.get("spec.unschedulable", bool, False),
    )


def _decode_service(reader: _Reader) -> ServiceProperties:
    return ServiceProperties(
        labels=_labels(reader),
        service_type=reader.get("spec.type", str, "ClusterIP"),
        selector=reader.string_map("spec.selector"),
    )


def _decode_config_map(reader: _Reader) -> ConfigMapProperties:
    data = reader.get("data", dict, {})
    binary = reader.get("binaryData", dict, {})
    return ConfigMapProperties(
        labels=_labels(reader),
        data_keys=tuple(sorted({*data, *binary})),
    )


_DECODERS = {
    ResourceKind.POD: _decode_pod,
    ResourceKind.REPLICA_SET: _decode_replica_set,
    ResourceKind.DEPLOYMENT: _decode_deployment,
    ResourceKind.NODE: _decode_node,
    ResourceKind.SERVICE: _decode_service,
    ResourceKind.CONFIG_MAP: _decode_config_map,
}
