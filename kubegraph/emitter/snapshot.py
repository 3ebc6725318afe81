"""Write GraphStore snapshots to a JSON file on a fixed interval.

The file is replaced atomically (temp file in the same directory, then
``os.replace``) so readers never see a partially written document.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path

from kubegraph.graph.models import GraphSnapshot
from kubegraph.graph.store import GraphStore
from kubegraph.observability.logging import get_logger
from kubegraph.observability.metrics import snapshot_writes_total

_logger = get_logger("emitter.snapshot")

_DEFAULT_INTERVAL_SECONDS = 30


def write_snapshot(snapshot: GraphSnapshot, path: str | Path) -> None:
    """Serialise *snapshot* to *path* as indented JSON, atomically."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=target.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(snapshot.to_document(), fh, indent=2)
            fh.write("\n")
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class SnapshotEmitter:
    """Reads the graph on a fixed interval and writes it to a file. Never writes to the graph."""

    def __init__(
        self,
        store: GraphStore,
        path: str | Path,
        interval: float = _DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        self._store = store
        self._path = Path(path)
        self._interval = interval
        self._stop = asyncio.Event()
        self.writes = 0

    async def emit_once(self) -> bool:
        """Write one snapshot; returns False (after logging) if the write failed.

        Any failure to build or write the document is counted and logged, so
        the periodic loop keeps running and the previous file stays in place.
        """
        try:
            snapshot = self._store.snapshot()
            await asyncio.to_thread(write_snapshot, snapshot, self._path)
        except Exception as exc:
            snapshot_writes_total.labels(success="false").inc()
            _logger.error(
                "snapshot_write_failed",
                path=str(self._path),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return False
        self.writes += 1
        snapshot_writes_total.labels(success="true").inc()
        _logger.debug(
            "snapshot_written",
            path=str(self._path),
            nodes=len(snapshot.nodes),
            relationships=len(snapshot.edges),
        )
        return True

    async def run(self) -> None:
        """Emit every ``interval`` seconds until ``stop()`` is called."""
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            except TimeoutError:
                await self.emit_once()

    async def stop(self) -> None:
        """Stop the loop and write a final snapshot."""
        self._stop.set()
        await self.emit_once()
