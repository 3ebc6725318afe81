"""Single-writer apply step shared by every kind's processor.

Each event goes through index update -> edge derivation -> graph commit while
holding one lock, so derivations from different kinds never interleave and
the engine's view of "current index state" is always well defined. The step
contains no await, so task cancellation can never leave it half-done.
"""

from __future__ import annotations

import threading

from kubegraph.cache.entity_index import EntityIndex
from kubegraph.graph.models import EdgeDiff
from kubegraph.graph.rules import ChangeKind, RelationshipEngine
from kubegraph.graph.store import GraphStore
from kubegraph.models.resources import EntityKey, ResourceEvent, ResourceKind, WatchEventType
from kubegraph.observability.logging import get_logger
from kubegraph.observability.metrics import events_processed_total

_logger = get_logger("collector.pipeline")


class GraphPipeline:
    """Applies resource events to the index, engine and store in order."""

    def __init__(
        self,
        index: EntityIndex | None = None,
        engine: RelationshipEngine | None = None,
        store: GraphStore | None = None,
    ) -> None:
        self.index = index or EntityIndex()
        self.engine = engine or RelationshipEngine()
        self.store = store or GraphStore()
        self._lock = threading.RLock()

    def apply(self, event: ResourceEvent) -> EdgeDiff:
        """Process one event end to end and return the edge diff that was committed."""
        key = event.key
        with self._lock:
            if event.type == WatchEventType.DELETED:
                self.index.remove(key)
                diff = self.engine.derive(key, ChangeKind.REMOVED, self.index)
                self.store.commit(key, None, 0, diff)
            else:
                if event.properties is None:
                    _logger.warning("event_without_properties", entity=str(key), type=event.type.value)
                    return EdgeDiff()
                revision = self.index.upsert(key, event.properties)
                diff = self.engine.derive(key, ChangeKind.UPSERTED, self.index)
                self.store.commit(key, event.properties.node_properties(), revision, diff)
        events_processed_total.labels(kind=key.kind.value, type=event.type.value).inc()
        return diff

    def reconcile(self, kind: ResourceKind, live: set[EntityKey]) -> list[EntityKey]:
        """Delete indexed entities of *kind* that are missing from a fresh listing."""
        with self._lock:
            stale = sorted(self.index.keys_of_kind(kind) - live)
            for key in stale:
                _logger.info("entity_missing_from_listing", entity=str(key))
                self.apply(ResourceEvent(WatchEventType.DELETED, key))
        return stale
