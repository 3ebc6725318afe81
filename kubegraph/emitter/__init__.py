"""Periodic graph snapshot emission."""

from kubegraph.emitter.snapshot import SnapshotEmitter, write_snapshot

__all__ = ["SnapshotEmitter", "write_snapshot"]
