"""Application bootstrap for kubegraph.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → metrics → K8s client → graph (index, engine,
              store) → per-kind processors → snapshot emitter

Shutdown is fully graceful: processors are signalled and cancelled first, then
components are stopped in reverse startup order. Each component's stop error is
caught and logged independently.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from kubegraph.collector.pipeline import GraphPipeline
from kubegraph.collector.processor import EventProcessor
from kubegraph.collector.source import ResourceSource
from kubegraph.config import load_config
from kubegraph.emitter.snapshot import SnapshotEmitter
from kubegraph.models.config import KubeGraphConfig
from kubegraph.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeGraphApp:
    """Application root. Owns every component and coordinates their lifecycle.

    ``stop()`` is safe to call on an app that was never started or has already
    stopped. Tests inject a ``source`` and ``config`` to run without a cluster.
    """

    def __init__(
        self,
        config: KubeGraphConfig | None = None,
        source: ResourceSource | None = None,
    ) -> None:
        self.config = config
        self._source = source
        self._k8s_client: object | None = None
        self.pipeline: GraphPipeline | None = None
        self.processors: list[EventProcessor] = []
        self._emitter: SnapshotEmitter | None = None

        self._stop_event = asyncio.Event()
        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level, self.config.log.format)
        self._log = get_logger("app")
        self._log.info("app_starting", version=_kubegraph_version())

        # --- 3. Metrics endpoint ----------------------------------------
        self._start_metrics()

        # --- 4. Kubernetes client ---------------------------------------
        if self._source is None:
            await self._start_k8s_client()

        # --- 5. Graph components ----------------------------------------
        self.pipeline = GraphPipeline()

        # --- 6. Per-kind processors -------------------------------------
        self._start_processors()

        # --- 7. Snapshot emitter ----------------------------------------
        self._start_emitter()

        self._running = True
        self._log.info("app_started", kinds=[kind.value for kind in self.config.watch.kinds])

    def _start_metrics(self) -> None:
        assert self._log is not None
        assert self.config is not None
        if not self.config.metrics.enabled:
            self._log.info("metrics_disabled")
            return
        try:
            from kubegraph.observability.metrics import start_metrics_server

            start_metrics_server(self.config.metrics.port)
            self._log.info("metrics_started", port=self.config.metrics.port)
        except OSError as exc:
            # Metrics are optional; the graph keeps running without them.
            self._log.warning("metrics_start_failed", error=str(exc))

    async def _start_k8s_client(self) -> None:
        """Load in-cluster config or kubeconfig and build the resource source."""
        assert self._log is not None
        self._log.debug("k8s_client_starting")
        try:
            import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]

            from kubegraph.collector.source import KubernetesResourceSource

            try:
                k8s_config.load_incluster_config()
                self._log.info("k8s_client_configured", source="incluster")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config()
                self._log.info("k8s_client_configured", source="kubeconfig")

            source = KubernetesResourceSource()
            self._k8s_client = source.api_client
            self._source = source
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    def _start_processors(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self._source is not None
        assert self.pipeline is not None
        watch_cfg = self.config.watch
        for kind in watch_cfg.kinds:
            processor = EventProcessor(
                kind,
                self._source,
                self.pipeline,
                backoff_initial=watch_cfg.backoff_initial_seconds,
                backoff_max=watch_cfg.backoff_max_seconds,
            )
            task = asyncio.create_task(processor.run(self._stop_event), name=f"processor-{kind.value}")
            self.processors.append(processor)
            self._background_tasks.append(task)
        self._log.info("processors_started", count=len(self.processors))

    def _start_emitter(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self.pipeline is not None
        emitter = SnapshotEmitter(
            self.pipeline.store,
            self.config.snapshot.path,
            interval=self.config.snapshot.interval_seconds,
        )
        task = asyncio.create_task(emitter.run(), name="snapshot-emitter")
        self._background_tasks.append(task)
        self._emitter = emitter
        self._log.info(
            "emitter_started",
            path=self.config.snapshot.path,
            interval=self.config.snapshot.interval_seconds,
        )

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("app_stopping")
        self._running = False

        # Signal processors first so no new events are taken, then cancel
        # whatever is still blocked waiting on a stream.
        self._stop_event.set()
        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        await self._stop_component("emitter", self._emitter)
        await self._stop_k8s_client()

        log.info("app_stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component_stop_timeout", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component_stop_failed", component=name, error=str(exc))

    async def _stop_k8s_client(self) -> None:
        """Close the kubernetes-asyncio ApiClient connection pool."""
        if self._k8s_client is None:
            return
        log = self._log or get_logger("app")
        try:
            await self._k8s_client.close()  # type: ignore[attr-defined]
        except Exception as exc:
            log.debug("k8s_client_close_failed", error=str(exc))
        self._k8s_client = None


def _kubegraph_version() -> str:
    from kubegraph import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = KubeGraphApp()
    loop = asyncio.get_running_loop()

    shutdown_triggered = False

    def _request_shutdown() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            return
        shutdown_triggered = True
        asyncio.create_task(app.stop(), name="shutdown")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        while app._running:
            await asyncio.sleep(1)
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "startup_failed",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app._running:
            await app.stop()


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())
