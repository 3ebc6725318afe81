"""kubegraph: incremental relationship graph over Kubernetes resources."""

__version__ = "0.1.0"
