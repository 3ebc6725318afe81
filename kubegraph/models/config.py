"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field

from kubegraph.models.resources import ResourceKind


@dataclass
class WatchConfig:
    """Per-kind list/watch processor configuration."""

    kinds: list[ResourceKind] = field(default_factory=lambda: list(ResourceKind))
    backoff_initial_seconds: float = 5.0
    backoff_max_seconds: float = 60.0


@dataclass
class SnapshotConfig:
    """Periodic graph snapshot emission."""

    path: str = "graph.json"
    interval_seconds: int = 30


@dataclass
class MetricsConfig:
    """Prometheus metrics endpoint."""

    enabled: bool = True
    port: int = 9090


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    format: str = "json"


@dataclass
class KubeGraphConfig:
    """Top-level kubegraph configuration."""

    watch: WatchConfig = field(default_factory=WatchConfig)
    snapshot: SnapshotConfig = field(default_factory=SnapshotConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    log: LogConfig = field(default_factory=LogConfig)
