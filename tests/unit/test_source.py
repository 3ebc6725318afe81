"""Tests for the kubernetes-asyncio resource source adapter."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from kubegraph.collector.source import (
    KubernetesResourceSource,
    TransientAccessError,
    WatchStreamError,
    _to_resource_event,
)
from kubegraph.models.resources import EntityKey, PodProperties, ResourceKind, WatchEventType


def _raw_pod(name: str = "p1", node: str = "n1") -> dict:
    return {
        "metadata": {"name": name, "namespace": "default", "labels": {"app": "x"}},
        "spec": {"nodeName": node},
        "status": {"phase": "Running"},
    }


def _make_source(list_result: object = None, list_error: Exception | None = None) -> KubernetesResourceSource:
    api_client = MagicMock()
    api_client.sanitize_for_serialization.side_effect = lambda item: item
    source = KubernetesResourceSource(api_client=api_client)
    core = MagicMock()
    core.list_pod_for_all_namespaces = AsyncMock(return_value=list_result, side_effect=list_error)
    source._core = core
    return source


# ---------------------------------------------------------------------------
# list_all
# ---------------------------------------------------------------------------


class TestListAll:
    async def test_items_are_decoded(self) -> None:
        response = SimpleNamespace(metadata=SimpleNamespace(resource_version="42"), items=[_raw_pod()])
        source = _make_source(response)

        result = await source.list_all(ResourceKind.POD)

        assert result.resource_version == "42"
        [(key, props)] = result.items
        assert key == EntityKey(ResourceKind.POD, "default", "p1")
        assert isinstance(props, PodProperties)
        assert props.node_name == "n1"

    async def test_unidentifiable_item_is_skipped(self) -> None:
        response = SimpleNamespace(
            metadata=SimpleNamespace(resource_version="7"),
            items=[{"metadata": {}}, _raw_pod("p2")],
        )
        source = _make_source(response)

        result = await source.list_all(ResourceKind.POD)

        assert [key.name for key, _ in result.items] == ["p2"]

    async def test_api_error_is_transient(self) -> None:
        source = _make_source(list_error=ApiException(status=503, reason="Service Unavailable"))

        with pytest.raises(TransientAccessError, match="503"):
            await source.list_all(ResourceKind.POD)

    async def test_connection_error_is_transient(self) -> None:
        source = _make_source(list_error=ConnectionRefusedError("connection refused"))

        with pytest.raises(TransientAccessError):
            await source.list_all(ResourceKind.POD)


# ---------------------------------------------------------------------------
# Watch event conversion
# ---------------------------------------------------------------------------


class TestWatchEventConversion:
    def test_added_carries_properties(self) -> None:
        event = _to_resource_event(ResourceKind.POD, {"type": "ADDED", "raw_object": _raw_pod()})

        assert event is not None
        assert event.type == WatchEventType.ADDED
        assert isinstance(event.properties, PodProperties)

    def test_deleted_carries_key_only(self) -> None:
        event = _to_resource_event(ResourceKind.POD, {"type": "DELETED", "raw_object": _raw_pod()})

        assert event is not None
        assert event.type == WatchEventType.DELETED
        assert event.key == EntityKey(ResourceKind.POD, "default", "p1")
        assert event.properties is None

    def test_bookmark_is_ignored(self) -> None:
        raw = {"type": "BOOKMARK", "raw_object": {"metadata": {"resourceVersion": "99"}}}
        assert _to_resource_event(ResourceKind.POD, raw) is None

    def test_error_event_raises(self) -> None:
        raw = {"type": "ERROR", "raw_object": {"code": 410, "message": "too old resource version"}}

        with pytest.raises(WatchStreamError, match="410"):
            _to_resource_event(ResourceKind.POD, raw)

    def test_unidentifiable_object_is_skipped(self) -> None:
        assert _to_resource_event(ResourceKind.POD, {"type": "MODIFIED", "raw_object": {"metadata": {}}}) is None

    def test_node_namespace_is_cleared(self) -> None:
        raw = {"type": "ADDED", "raw_object": {"metadata": {"name": "n1", "namespace": "ignored"}, "status": {}}}

        event = _to_resource_event(ResourceKind.NODE, raw)

        assert event is not None
        assert event.key == EntityKey(ResourceKind.NODE, "", "n1")
