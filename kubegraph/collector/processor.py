"""Per-kind list/watch state machine.

    DISCONNECTED -> LISTING -> WATCHING -> (stream end / error) BACKOFF -> LISTING

One EventProcessor runs per resource kind as its own asyncio task. A failure
in one kind only puts that kind into backoff; the others keep running.
"""

from __future__ import annotations

import asyncio
import contextlib
from enum import StrEnum

from kubegraph.collector.pipeline import GraphPipeline
from kubegraph.collector.source import ResourceSource
from kubegraph.models.resources import EntityKey, ResourceEvent, ResourceKind, WatchEventType
from kubegraph.observability.logging import get_logger
from kubegraph.observability.metrics import watch_restarts_total

_DEFAULT_BACKOFF_INITIAL = 5.0
_DEFAULT_BACKOFF_MAX = 60.0


class ProcessorState(StrEnum):
    DISCONNECTED = "disconnected"
    LISTING = "listing"
    WATCHING = "watching"
    BACKOFF = "backoff"
    STOPPED = "stopped"


class EventProcessor:
    """Keeps the graph in sync with one kind's list + watch stream.

    Args:
        kind:            Resource kind handled by this processor.
        source:          List/watch access to the cluster.
        pipeline:        Shared single-writer apply step.
        backoff_initial: First backoff delay in seconds; doubled per failure.
        backoff_max:     Upper bound for the backoff delay.
    """

    def __init__(
        self,
        kind: ResourceKind,
        source: ResourceSource,
        pipeline: GraphPipeline,
        backoff_initial: float = _DEFAULT_BACKOFF_INITIAL,
        backoff_max: float = _DEFAULT_BACKOFF_MAX,
    ) -> None:
        self.kind = kind
        self._source = source
        self._pipeline = pipeline
        self._backoff_initial = backoff_initial
        self._backoff_max = backoff_max
        self._state = ProcessorState.DISCONNECTED
        self._delay = backoff_initial
        self._restarts = 0
        self._log = get_logger("collector.processor").bind(kind=kind.value)

    @property
    def state(self) -> ProcessorState:
        return self._state

    @property
    def restarts(self) -> int:
        """Number of times this processor has entered backoff."""
        return self._restarts

    async def run(self, stop: asyncio.Event) -> None:
        """Run until *stop* is set or the task is cancelled."""
        try:
            while not stop.is_set():
                try:
                    resource_version = await self._list()
                    if stop.is_set():
                        break
                    await self._watch(resource_version, stop)
                    if stop.is_set():
                        break
                    self._log.info("watch_stream_closed")
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    self._log.warning(
                        "processor_stream_error",
                        state=self._state.value,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                if stop.is_set():
                    break
                await self._backoff(stop)
        finally:
            self._state = ProcessorState.STOPPED
            self._log.info("processor_stopped")

    async def _list(self) -> str | None:
        self._state = ProcessorState.LISTING
        result = await self._source.list_all(self.kind)
        live: set[EntityKey] = set()
        for key, properties in result.items:
            self._pipeline.apply(ResourceEvent(WatchEventType.ADDED, key, properties))
            live.add(key)
            # Yield between items; each item is already fully committed.
            await asyncio.sleep(0)
        stale = self._pipeline.reconcile(self.kind, live)
        self._log.info(
            "listing_complete",
            items=len(result.items),
            stale_removed=len(stale),
            resource_version=result.resource_version,
        )
        return result.resource_version

    async def _watch(self, resource_version: str | None, stop: asyncio.Event) -> None:
        self._state = ProcessorState.WATCHING
        loop = asyncio.get_running_loop()
        opened = loop.time()
        stream = self._source.watch(self.kind, resource_version)
        try:
            async with contextlib.aclosing(stream):
                async for event in stream:
                    self._pipeline.apply(event)
                    self._reset_backoff()
                    if stop.is_set():
                        return
        finally:
            if loop.time() - opened >= self._backoff_max:
                self._reset_backoff()

    def _reset_backoff(self) -> None:
        """A stream that delivered events or stayed open long enough is healthy."""
        self._delay = self._backoff_initial

    async def _backoff(self, stop: asyncio.Event) -> None:
        self._state = ProcessorState.BACKOFF
        self._restarts += 1
        watch_restarts_total.labels(kind=self.kind.value).inc()
        delay = self._delay
        self._delay = min(self._delay * 2, self._backoff_max)
        self._log.info("processor_backoff", delay_seconds=delay, restarts=self._restarts)
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(stop.wait(), timeout=delay)
