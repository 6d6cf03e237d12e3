"""Small shared helpers."""

from taskgraph.utils.io import atomic_write

__all__ = ["atomic_write"]
