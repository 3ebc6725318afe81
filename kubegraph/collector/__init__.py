"""Collector package for kubegraph.

Feeds Kubernetes list/watch streams into the relationship graph.

Submodules
----------
source    -- ResourceSource interface and the kubernetes-asyncio implementation.
pipeline  -- GraphPipeline: index -> derive -> commit, one event at a time.
processor -- EventProcessor: per-kind list/watch state machine with exponential back-off.
"""

from kubegraph.collector.pipeline import GraphPipeline
from kubegraph.collector.processor import EventProcessor, ProcessorState
from kubegraph.collector.source import (
    KubernetesResourceSource,
    ListResult,
    ResourceSource,
    TransientAccessError,
    WatchStreamError,
)

__all__ = [
    "EventProcessor",
    "GraphPipeline",
    "KubernetesResourceSource",
    "ListResult",
    "ProcessorState",
    "ResourceSource",
    "TransientAccessError",
    "WatchStreamError",
]
