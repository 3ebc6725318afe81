"""In-memory index of live entities.

Holds the decoded properties of every entity observed on the watch streams
plus two auxiliary indexes the relationship rules query:

* a label index ``(label, value) -> pod keys`` used for selector matching;
* a reverse reference index ``target -> referrer keys`` built from owner
  references, node assignments and ConfigMap volume references.

Every public operation takes the same lock, so readers never observe a record
whose auxiliary index entries are only partially updated. The index never
triggers relationship derivation itself.
"""

from __future__ import annotations

import threading
from collections import defaultdict

from kubegraph.models.resources import (
    EntityKey,
    EntityProperties,
    EntityRecord,
    PodProperties,
    ResourceKind,
)
from kubegraph.observability.logging import get_logger

_logger = get_logger("cache.entity_index")


class EntityIndex:
    """Thread-safe store of live entities keyed by EntityKey."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: dict[EntityKey, EntityRecord] = {}
        self._by_kind: dict[ResourceKind, set[EntityKey]] = defaultdict(set)
        self._labels: dict[tuple[str, str], set[EntityKey]] = defaultdict(set)
        self._referrers: dict[EntityKey, set[EntityKey]] = defaultdict(set)
        self._references: dict[EntityKey, set[EntityKey]] = {}
        # Last revision handed out per key, kept across removals.
        self._high_water: dict[EntityKey, int] = {}

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def upsert(self, key: EntityKey, properties: EntityProperties) -> int:
        """Insert or replace *key* (last write wins) and return its revision.

        The revision only advances when the properties actually change, so a
        duplicate delivery of the same object is not counted as a mutation. A
        key that is removed and added again continues from its last revision.
        """
        with self._lock:
            existing = self._records.get(key)
            if existing is not None and existing.properties == properties:
                return existing.revision
            revision = self._high_water.get(key, 0) + 1
            self._high_water[key] = revision
            if existing is not None:
                self._unindex(existing)
            record = EntityRecord(key=key, properties=properties, revision=revision)
            self._records[key] = record
            self._index(record)
            return revision

    def remove(self, key: EntityKey) -> EntityProperties | None:
        """Remove *key*; returns its last properties, or None if it was absent."""
        with self._lock:
            record = self._records.pop(key, None)
            if record is None:
                _logger.debug("remove_absent_entity", entity=str(key))
                return None
            self._unindex(record)
            return record.properties

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, key: EntityKey) -> EntityProperties | None:
        with self._lock:
            record = self._records.get(key)
            return record.properties if record is not None else None

    def record(self, key: EntityKey) -> EntityRecord | None:
        with self._lock:
            return self._records.get(key)

    def contains(self, key: EntityKey) -> bool:
        with self._lock:
            return key in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def keys_of_kind(self, kind: ResourceKind) -> set[EntityKey]:
        with self._lock:
            return set(self._by_kind.get(kind, ()))

    def list_by_kind(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
    ) -> list[tuple[EntityKey, EntityProperties]]:
        """Return ``(key, properties)`` pairs of *kind*, sorted by key."""
        with self._lock:
            keys = sorted(self._by_kind.get(kind, ()))
            return [
                (key, self._records[key].properties)
                for key in keys
                if namespace is None or key.namespace == namespace
            ]

    def selector_matches(
        self,
        selector: dict[str, str] | None,
        namespace: str | None = None,
    ) -> set[EntityKey]:
        """Pods whose labels contain every ``selector`` pair.

        An empty or absent selector matches nothing. When *namespace* is given
        only Pods in that namespace are considered.
        """
        if not selector:
            return set()
        with self._lock:
            # Intersect smallest posting lists first.
            first, *rest = sorted(
                (self._labels.get(pair, set()) for pair in selector.items()),
                key=len,
            )
            matched = set(first)
            for posting in rest:
                if not matched:
                    return set()
                matched &= posting
            if namespace is not None:
                matched = {key for key in matched if key.namespace == namespace}
            return matched

    def referrers(self, target: EntityKey, kind: ResourceKind | None = None) -> set[EntityKey]:
        """Entities whose properties reference *target* (optionally of one kind)."""
        with self._lock:
            refs = self._referrers.get(target, set())
            if kind is None:
                return set(refs)
            return {ref for ref in refs if ref.kind == kind}

    # ------------------------------------------------------------------
    # Internal index maintenance (lock held)
    # ------------------------------------------------------------------

    def _index(self, record: EntityRecord) -> None:
        key = record.key
        self._by_kind[key.kind].add(key)
        if isinstance(record.properties, PodProperties):
            for pair in record.properties.labels.items():
                self._labels[pair].add(key)
        references = record.properties.references(key.namespace)
        self._references[key] = references
        for target in references:
            self._referrers[target].add(key)

    def _unindex(self, record: EntityRecord) -> None:
        key = record.key
        _discard(self._by_kind, key.kind, key)
        if isinstance(record.properties, PodProperties):
            for pair in record.properties.labels.items():
                _discard(self._labels, pair, key)
        for target in self._references.pop(key, set()):
            _discard(self._referrers, target, key)


def _discard(mapping: dict, bucket: object, key: EntityKey) -> None:
    members = mapping.get(bucket)
    if members is None:
        return
    members.discard(key)
    if not members:
        del mapping[bucket]
