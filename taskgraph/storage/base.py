"""
Persistence adapter protocol.

The engine never implements storage itself; it talks to whatever object
satisfies this protocol. ``InMemoryCheckpointStore`` and ``CheckpointStore``
are the bundled implementations.
"""

from typing import Protocol, runtime_checkable

from taskgraph.schemas.checkpoint import Checkpoint


@runtime_checkable
class PersistenceAdapter(Protocol):
    async def save_checkpoint(self, checkpoint: Checkpoint) -> None: ...

    async def load_checkpoint(self, checkpoint_id: str) -> Checkpoint | None: ...

    async def list_checkpoints(self, state_id: str) -> list[Checkpoint]: ...

    async def delete_checkpoint(self, checkpoint_id: str) -> bool: ...
