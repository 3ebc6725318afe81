"""Prometheus metrics for kubegraph."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, start_http_server

events_processed_total = Counter(
    "kubegraph_events_processed_total",
    "Resource events applied to the graph.",
    ["kind", "type"],
)

watch_restarts_total = Counter(
    "kubegraph_watch_restarts_total",
    "Times a kind's processor entered backoff and re-listed.",
    ["kind"],
)

edges_dropped_total = Counter(
    "kubegraph_edges_dropped_total",
    "Derived edges the graph store refused to materialise.",
    ["reason"],
)

snapshot_writes_total = Counter(
    "kubegraph_snapshot_writes_total",
    "Graph snapshot file writes.",
    ["success"],
)

graph_nodes = Gauge("kubegraph_graph_nodes", "Nodes currently in the graph.")
graph_edges = Gauge("kubegraph_graph_edges", "Edges currently in the graph.")


def start_metrics_server(port: int) -> None:
    """Expose the default registry over HTTP on *port*."""
    start_http_server(port)
