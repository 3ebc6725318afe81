"""Resource sources: list and watch access to cluster objects.

``ResourceSource`` is the interface the processors consume.
``KubernetesResourceSource`` implements it with kubernetes-asyncio, decoding
every object once into typed properties before it leaves this module.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any

from kubegraph.models.decode import MalformedResourceError, decode_key, decode_resource
from kubegraph.models.resources import (
    EntityKey,
    EntityProperties,
    ResourceEvent,
    ResourceKind,
    WatchEventType,
)
from kubegraph.observability.logging import get_logger

_logger = get_logger("collector.source")

_WATCH_TIMEOUT_SECONDS = 300


class TransientAccessError(Exception):
    """The resource source could not be reached; the caller retries after backoff."""


class WatchStreamError(TransientAccessError):
    """The watch stream reported an error (e.g. 410 Gone) and must be re-listed."""


@dataclass
class ListResult:
    """One full enumeration of a kind."""

    items: list[tuple[EntityKey, EntityProperties]] = field(default_factory=list)
    resource_version: str | None = None


class ResourceSource(ABC):
    """List/watch access to one cluster."""

    @abstractmethod
    async def list_all(self, kind: ResourceKind) -> ListResult:
        """Enumerate every object of *kind*.

        Raises:
            TransientAccessError: the API is unavailable.
        """

    @abstractmethod
    def watch(self, kind: ResourceKind, resource_version: str | None = None) -> AsyncIterator[ResourceEvent]:
        """Stream change events for *kind*, starting after *resource_version*.

        The iterator may end at any time (server-side close) or raise
        TransientAccessError; either way the caller re-lists.
        """


class KubernetesResourceSource(ResourceSource):
    """ResourceSource backed by the kubernetes-asyncio API client.

    The client configuration (in-cluster or kubeconfig) must be loaded before
    construction; see ``kubegraph.app``.
    """

    def __init__(self, api_client: Any = None, watch_timeout: int = _WATCH_TIMEOUT_SECONDS) -> None:
        from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

        self.api_client = api_client or k8s_client.ApiClient()
        self._core = k8s_client.CoreV1Api(self.api_client)
        self._apps = k8s_client.AppsV1Api(self.api_client)
        self._watch_timeout = watch_timeout

    def _list_fn(self, kind: ResourceKind) -> Callable[..., Any]:
        return {
            ResourceKind.POD: self._core.list_pod_for_all_namespaces,
            ResourceKind.REPLICA_SET: self._apps.list_replica_set_for_all_namespaces,
            ResourceKind.DEPLOYMENT: self._apps.list_deployment_for_all_namespaces,
            ResourceKind.NODE: self._core.list_node,
            ResourceKind.SERVICE: self._core.list_service_for_all_namespaces,
            ResourceKind.CONFIG_MAP: self._core.list_config_map_for_all_namespaces,
        }[kind]

    async def list_all(self, kind: ResourceKind) -> ListResult:
        from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

        try:
            response = await self._list_fn(kind)()
        except ApiException as exc:
            raise TransientAccessError(f"listing {kind} failed: {exc.status} {exc.reason}") from exc
        except OSError as exc:
            raise TransientAccessError(f"listing {kind} failed: {exc}") from exc

        result = ListResult(resource_version=getattr(response.metadata, "resource_version", None))
        for item in response.items or []:
            raw = self.api_client.sanitize_for_serialization(item)
            try:
                result.items.append(decode_resource(kind, raw))
            except MalformedResourceError as exc:
                _logger.warning("list_item_skipped", kind=kind.value, error=str(exc))
        return result

    async def watch(
        self,
        kind: ResourceKind,
        resource_version: str | None = None,
    ) -> AsyncIterator[ResourceEvent]:
        from kubernetes_asyncio import watch as k8s_watch  # type: ignore[import-untyped]
        from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

        kwargs: dict[str, Any] = {"timeout_seconds": self._watch_timeout}
        if resource_version:
            kwargs["resource_version"] = resource_version

        watcher = k8s_watch.Watch()
        try:
            async with watcher.stream(self._list_fn(kind), **kwargs) as stream:
                async for raw_event in stream:
                    event = _to_resource_event(kind, raw_event)
                    if event is not None:
                        yield event
        except ApiException as exc:
            raise WatchStreamError(f"watch {kind} failed: {exc.status} {exc.reason}") from exc
        finally:
            watcher.stop()


def _to_resource_event(kind: ResourceKind, raw_event: dict[str, Any]) -> ResourceEvent | None:
    """Convert one kubernetes-asyncio watch event; None for events to ignore."""
    event_type = raw_event.get("type")
    raw_object = raw_event.get("raw_object")
    if event_type == "ERROR":
        status = raw_object if isinstance(raw_object, dict) else {}
        raise WatchStreamError(f"watch {kind} error: {status.get('code')} {status.get('message', '')}")
    if event_type == "BOOKMARK":
        return None
    if event_type not in {t.value for t in WatchEventType} or not isinstance(raw_object, dict):
        _logger.warning("watch_event_unrecognised", kind=kind.value, type=str(event_type))
        return None

    try:
        if event_type == WatchEventType.DELETED:
            return ResourceEvent(WatchEventType.DELETED, decode_key(kind, raw_object))
        key, properties = decode_resource(kind, raw_object)
    except MalformedResourceError as exc:
        _logger.warning("watch_event_skipped", kind=kind.value, error=str(exc))
        return None
    return ResourceEvent(WatchEventType(event_type), key, properties)
