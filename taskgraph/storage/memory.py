"""In-memory persistence adapter for tests and single-process use."""

import logging

from taskgraph.schemas.checkpoint import Checkpoint

logger = logging.getLogger(__name__)


class InMemoryCheckpointStore:
    """
    Dict-backed checkpoint store.

    Checkpoints are copied on the way in and on the way out, so callers can
    never mutate what the store holds.
    """

    def __init__(self):
        self._checkpoints: dict[str, Checkpoint] = {}

    async def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        self._checkpoints[checkpoint.id] = checkpoint.model_copy(deep=True)
        logger.debug(f"Saved checkpoint {checkpoint.id}")

    async def load_checkpoint(self, checkpoint_id: str) -> Checkpoint | None:
        checkpoint = self._checkpoints.get(checkpoint_id)
        return checkpoint.model_copy(deep=True) if checkpoint else None

    async def list_checkpoints(self, state_id: str) -> list[Checkpoint]:
        """Checkpoints for ``state_id`` in save order."""
        return [
            cp.model_copy(deep=True) for cp in self._checkpoints.values() if cp.state_id == state_id
        ]

    async def delete_checkpoint(self, checkpoint_id: str) -> bool:
        return self._checkpoints.pop(checkpoint_id, None) is not None

    def __len__(self) -> int:
        return len(self._checkpoints)
