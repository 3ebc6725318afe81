"""Cache layer for kubegraph.

Holds the live entity set observed on the watch streams, with the label and
reference indexes the relationship rules query.

Submodules:
    entity_index -- EntityIndex: thread-safe entity store with label and reference indexes.
"""

from kubegraph.cache.entity_index import EntityIndex

__all__ = ["EntityIndex"]
