"""Shared fixtures for kubegraph integration tests.

Provides raw Kubernetes object factories (the camelCase dicts the API
returns), an in-memory ResourceSource whose list/watch streams tests drive by
hand, and helpers for pushing events through a GraphPipeline, so full
pipelines run without touching a real cluster.
"""

from __future__ import annotations

import asyncio
from collections import Counter, defaultdict
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest

from kubegraph.collector.pipeline import GraphPipeline
from kubegraph.collector.source import ListResult, ResourceSource, TransientAccessError, WatchStreamError
from kubegraph.graph.models import EdgeId, RelationshipType
from kubegraph.models.decode import decode_key, decode_resource
from kubegraph.models.resources import EntityKey, ResourceEvent, ResourceKind, WatchEventType

# ---------------------------------------------------------------------------
# Raw object factories
# ---------------------------------------------------------------------------


def _metadata(
    name: str,
    namespace: str | None,
    labels: dict[str, str] | None = None,
    owner: tuple[str, str] | None = None,
) -> dict[str, Any]:
    meta: dict[str, Any] = {"name": name, "labels": labels or {}, "resourceVersion": "1"}
    if namespace is not None:
        meta["namespace"] = namespace
    if owner is not None:
        meta["ownerReferences"] = [{"kind": owner[0], "name": owner[1], "controller": True}]
    return meta


def make_pod(
    name: str = "p1",
    labels: dict[str, str] | None = None,
    node: str = "",
    owner_rs: str | None = None,
    namespace: str = "default",
    phase: str = "Running",
) -> dict[str, Any]:
    return {
        "metadata": _metadata(name, namespace, labels, ("ReplicaSet", owner_rs) if owner_rs else None),
        "spec": {"nodeName": node, "containers": [{"name": "app", "image": "app:v1"}]},
        "status": {"phase": phase},
    }


def make_node(name: str = "n1", ready: bool = True) -> dict[str, Any]:
    return {
        "metadata": _metadata(name, None, {"kubernetes.io/hostname": name}),
        "spec": {},
        "status": {"conditions": [{"type": "Ready", "status": "True" if ready else "False"}]},
    }


def make_service(
    name: str = "svc1",
    selector: dict[str, str] | None = None,
    namespace: str = "default",
) -> dict[str, Any]:
    spec: dict[str, Any] = {"type": "ClusterIP", "ports": [{"port": 80, "targetPort": 8080}]}
    if selector is not None:
        spec["selector"] = selector
    return {"metadata": _metadata(name, namespace), "spec": spec, "status": {}}


def make_replica_set(
    name: str = "rs1",
    owner_deployment: str | None = None,
    namespace: str = "default",
) -> dict[str, Any]:
    owner = ("Deployment", owner_deployment) if owner_deployment else None
    return {"metadata": _metadata(name, namespace, owner=owner), "spec": {"replicas": 1}, "status": {}}


def make_deployment(
    name: str = "web",
    config_maps: list[str] | None = None,
    namespace: str = "default",
) -> dict[str, Any]:
    volumes = [{"name": f"{cm}-vol", "configMap": {"name": cm}} for cm in config_maps or []]
    return {
        "metadata": _metadata(name, namespace),
        "spec": {"replicas": 1, "template": {"spec": {"volumes": volumes, "containers": []}}},
        "status": {},
    }


def make_config_map(name: str = "web-config", namespace: str = "default") -> dict[str, Any]:
    return {"metadata": _metadata(name, namespace), "data": {"app.conf": "x=1"}}


# ---------------------------------------------------------------------------
# Key / edge helpers
# ---------------------------------------------------------------------------


def pod_key(name: str = "p1", namespace: str = "default") -> EntityKey:
    return EntityKey(ResourceKind.POD, namespace, name)


def node_key(name: str = "n1") -> EntityKey:
    return EntityKey(ResourceKind.NODE, "", name)


def service_key(name: str = "svc1", namespace: str = "default") -> EntityKey:
    return EntityKey(ResourceKind.SERVICE, namespace, name)


def rs_key(name: str = "rs1", namespace: str = "default") -> EntityKey:
    return EntityKey(ResourceKind.REPLICA_SET, namespace, name)


def edge(source: EntityKey, target: EntityKey, relationship: str) -> EdgeId:
    return EdgeId(source, target, RelationshipType(relationship))


def event(kind: ResourceKind, event_type: WatchEventType, raw: dict[str, Any]) -> ResourceEvent:
    """Decode *raw* into the ResourceEvent a source would deliver."""
    if event_type == WatchEventType.DELETED:
        return ResourceEvent(event_type, decode_key(kind, raw))
    key, properties = decode_resource(kind, raw)
    return ResourceEvent(event_type, key, properties)


def added(kind: ResourceKind, raw: dict[str, Any]) -> ResourceEvent:
    return event(kind, WatchEventType.ADDED, raw)


def modified(kind: ResourceKind, raw: dict[str, Any]) -> ResourceEvent:
    return event(kind, WatchEventType.MODIFIED, raw)


def deleted(kind: ResourceKind, raw: dict[str, Any]) -> ResourceEvent:
    return event(kind, WatchEventType.DELETED, raw)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll *predicate* until true, failing the test after *timeout* seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


# ---------------------------------------------------------------------------
# In-memory resource source
# ---------------------------------------------------------------------------

_CLOSE = object()


class FakeResourceSource(ResourceSource):
    """ResourceSource whose cluster state and watch streams are driven by the test.

    ``objects`` is what the next listing returns. ``push`` delivers an event
    on the kind's watch stream and keeps ``objects`` in step, ``close`` ends
    the current stream and ``fail_stream`` makes it raise. ``list_failures``
    and ``watch_failures`` make the next calls fail straight away.
    """

    def __init__(self) -> None:
        self.objects: dict[ResourceKind, dict[EntityKey, dict[str, Any]]] = defaultdict(dict)
        self.list_calls: Counter[ResourceKind] = Counter()
        self.watch_calls: Counter[ResourceKind] = Counter()
        self.list_failures: Counter[ResourceKind] = Counter()
        self.watch_failures: Counter[ResourceKind] = Counter()
        self._queues: dict[ResourceKind, asyncio.Queue[Any]] = defaultdict(asyncio.Queue)

    def seed(self, kind: ResourceKind, *raws: dict[str, Any]) -> None:
        for raw in raws:
            self.objects[kind][decode_key(kind, raw)] = raw

    async def list_all(self, kind: ResourceKind) -> ListResult:
        self.list_calls[kind] += 1
        if self.list_failures[kind] > 0:
            self.list_failures[kind] -= 1
            raise TransientAccessError(f"listing {kind} failed: 503 Service Unavailable")
        items = [decode_resource(kind, raw) for raw in self.objects[kind].values()]
        return ListResult(items=items, resource_version=str(self.list_calls[kind]))

    async def watch(self, kind: ResourceKind, resource_version: str | None = None) -> AsyncIterator[ResourceEvent]:
        self.watch_calls[kind] += 1
        if self.watch_failures[kind] > 0:
            self.watch_failures[kind] -= 1
            raise WatchStreamError(f"watch {kind} error: 500 Internal Server Error")
        queue = self._queues[kind]
        while True:
            item = await queue.get()
            if item is _CLOSE:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    def push(self, kind: ResourceKind, event_type: WatchEventType, raw: dict[str, Any]) -> None:
        key = decode_key(kind, raw)
        if event_type == WatchEventType.DELETED:
            self.objects[kind].pop(key, None)
        else:
            self.objects[kind][key] = raw
        self._queues[kind].put_nowait(event(kind, event_type, raw))

    def close(self, kind: ResourceKind) -> None:
        self._queues[kind].put_nowait(_CLOSE)

    def fail_stream(self, kind: ResourceKind, exc: Exception) -> None:
        self._queues[kind].put_nowait(exc)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def pipeline() -> GraphPipeline:
    """Fresh pipeline with empty index, engine and store."""
    return GraphPipeline()


@pytest.fixture()
def source() -> FakeResourceSource:
    return FakeResourceSource()
