"""Persistence adapters for checkpoints."""

from taskgraph.storage.base import PersistenceAdapter
from taskgraph.storage.checkpoint_store import CheckpointStore
from taskgraph.storage.memory import InMemoryCheckpointStore

__all__ = ["PersistenceAdapter", "CheckpointStore", "InMemoryCheckpointStore"]
