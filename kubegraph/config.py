"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from kubegraph.models.config import (
    KubeGraphConfig,
    LogConfig,
    MetricsConfig,
    SnapshotConfig,
    WatchConfig,
)
from kubegraph.models.resources import ResourceKind


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEGRAPH_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    return val


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_log_format(value: str) -> str:
    if value.lower() not in ("json", "console"):
        raise ValueError(f"Invalid log format: {value}. Must be json or console")
    return value.lower()


def _parse_kinds(value: str) -> list[ResourceKind]:
    """Parse a comma-separated kind list; empty means every kind."""
    if not value.strip():
        return list(ResourceKind)
    by_name = {kind.value.lower(): kind for kind in ResourceKind}
    kinds: list[ResourceKind] = []
    for item in value.split(","):
        name = item.strip().lower()
        if not name:
            continue
        if name not in by_name:
            raise ValueError(f"Invalid resource kind: {item.strip()}. Must be one of {sorted(by_name)}")
        if by_name[name] not in kinds:
            kinds.append(by_name[name])
    return kinds


def load_config() -> KubeGraphConfig:
    """Load configuration from KUBEGRAPH_* environment variables."""
    backoff_initial = _env_float("BACKOFF_INITIAL", 5.0, min_val=0.1)
    return KubeGraphConfig(
        watch=WatchConfig(
            kinds=_parse_kinds(_env("KINDS", "")),
            backoff_initial_seconds=backoff_initial,
            backoff_max_seconds=_env_float("BACKOFF_MAX", 60.0, min_val=backoff_initial),
        ),
        snapshot=SnapshotConfig(
            path=_env("SNAPSHOT_PATH", "graph.json"),
            interval_seconds=_env_int("SNAPSHOT_INTERVAL", 30, min_val=1, max_val=3600),
        ),
        metrics=MetricsConfig(
            enabled=_env_bool("METRICS_ENABLED", True),
            port=_env_int("METRICS_PORT", 9090, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            format=_validate_log_format(_env("LOG_FORMAT", "json")),
        ),
    )
