"""
Checkpoint Store - File-backed persistence adapter with atomic writes.

Handles saving, loading, listing, and pruning of checkpoints so a run can
be resumed after the process exits.
"""

import asyncio
import logging
import time
from pathlib import Path

from taskgraph.schemas.checkpoint import Checkpoint, CheckpointIndex, CheckpointSummary
from taskgraph.utils.io import atomic_write

logger = logging.getLogger(__name__)


class CheckpointStore:
    """
    Stores checkpoints as JSON files with an index for fast lookup.

    Directory structure:
        <base_path>/checkpoints/
            index.json              # Checkpoint manifest
            cp_{node}_{timestamp}_{suffix}.json
    """

    def __init__(self, base_path: Path | str):
        """
        Initialize checkpoint store.

        Args:
            base_path: Run directory (e.g., ~/.taskgraph/runs/<run_id>/)
        """
        self.base_path = Path(base_path)
        self.checkpoints_dir = self.base_path / "checkpoints"
        self.index_path = self.checkpoints_dir / "index.json"
        self._index_lock = asyncio.Lock()

    def _checkpoint_path(self, checkpoint_id: str) -> Path:
        return self.checkpoints_dir / f"{checkpoint_id}.json"

    async def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        """
        Atomically save checkpoint and update index.

        The checkpoint file is written before the index, so the index never
        points at a missing file.

        Raises:
            OSError: If file write fails
        """

        def _write():
            self.checkpoints_dir.mkdir(parents=True, exist_ok=True)
            with atomic_write(self._checkpoint_path(checkpoint.id)) as f:
                f.write(checkpoint.model_dump_json(indent=2))
            logger.debug(f"Saved checkpoint {checkpoint.id}")

        await asyncio.to_thread(_write)

        async with self._index_lock:
            await self._update_index_add(checkpoint)

    async def load_checkpoint(self, checkpoint_id: str | None = None) -> Checkpoint | None:
        """
        Load checkpoint by ID, or the latest one when no ID is given.

        Returns:
            Checkpoint object, or None if not found
        """

        def _read(checkpoint_id: str) -> Checkpoint | None:
            checkpoint_path = self._checkpoint_path(checkpoint_id)

            if not checkpoint_path.exists():
                logger.warning(f"Checkpoint file not found: {checkpoint_path}")
                return None

            try:
                return Checkpoint.model_validate_json(checkpoint_path.read_text(encoding="utf-8"))
            except Exception as e:
                logger.error(f"Failed to load checkpoint {checkpoint_id}: {e}")
                return None

        if checkpoint_id is None:
            index = await self.load_index()
            if not index or not index.latest_checkpoint_id:
                logger.warning("No checkpoints found in index")
                return None
            checkpoint_id = index.latest_checkpoint_id

        return await asyncio.to_thread(_read, checkpoint_id)

    async def load_index(self) -> CheckpointIndex | None:
        """
        Load checkpoint index.

        Returns:
            CheckpointIndex or None if not found
        """

        def _read() -> CheckpointIndex | None:
            if not self.index_path.exists():
                return None

            try:
                return CheckpointIndex.model_validate_json(
                    self.index_path.read_text(encoding="utf-8")
                )
            except Exception as e:
                logger.error(f"Failed to load checkpoint index: {e}")
                return None

        return await asyncio.to_thread(_read)

    async def list_summaries(self, state_id: str | None = None) -> list[CheckpointSummary]:
        """List checkpoint summaries from the index, optionally for one state."""
        index = await self.load_index()
        if not index:
            return []
        if state_id is not None:
            return index.filter_by_state(state_id)
        return list(index.checkpoints)

    async def list_checkpoints(self, state_id: str) -> list[Checkpoint]:
        """Load every checkpoint recorded for ``state_id``, in save order."""
        checkpoints = []
        for summary in await self.list_summaries(state_id):
            checkpoint = await self.load_checkpoint(summary.id)
            if checkpoint is not None:
                checkpoints.append(checkpoint)
        return checkpoints

    async def delete_checkpoint(self, checkpoint_id: str) -> bool:
        """
        Delete a specific checkpoint.

        Returns:
            True if deleted, False if not found
        """

        def _delete(checkpoint_id: str) -> bool:
            checkpoint_path = self._checkpoint_path(checkpoint_id)

            if not checkpoint_path.exists():
                logger.warning(f"Checkpoint file not found: {checkpoint_path}")
                return False

            try:
                checkpoint_path.unlink()
                logger.info(f"Deleted checkpoint {checkpoint_id}")
                return True
            except OSError as e:
                logger.error(f"Failed to delete checkpoint {checkpoint_id}: {e}")
                return False

        deleted = await asyncio.to_thread(_delete, checkpoint_id)

        if deleted:
            async with self._index_lock:
                await self._update_index_remove(checkpoint_id)

        return deleted

    async def prune_checkpoints(self, max_age_days: int = 7) -> int:
        """
        Prune checkpoints older than max_age_days.

        Administrative operation; never called by the engine during a run.

        Returns:
            Number of checkpoints deleted
        """
        index = await self.load_index()
        if not index or not index.checkpoints:
            return 0

        cutoff = time.time() - max_age_days * 86400
        old_checkpoints = [cp.id for cp in index.checkpoints if cp.timestamp < cutoff]

        deleted_count = 0
        for checkpoint_id in old_checkpoints:
            if await self.delete_checkpoint(checkpoint_id):
                deleted_count += 1

        if deleted_count > 0:
            logger.info(f"Pruned {deleted_count} checkpoints older than {max_age_days} days")

        return deleted_count

    async def checkpoint_exists(self, checkpoint_id: str) -> bool:
        return await asyncio.to_thread(self._checkpoint_path(checkpoint_id).exists)

    async def _update_index_add(self, checkpoint: Checkpoint) -> None:
        """Add a checkpoint to the index. Call with _index_lock held."""

        def _write(index: CheckpointIndex):
            self.checkpoints_dir.mkdir(parents=True, exist_ok=True)
            with atomic_write(self.index_path) as f:
                f.write(index.model_dump_json(indent=2))

        index = await self.load_index() or CheckpointIndex()
        index.add_checkpoint(checkpoint)
        await asyncio.to_thread(_write, index)

        logger.debug(f"Updated index with checkpoint {checkpoint.id}")

    async def _update_index_remove(self, checkpoint_id: str) -> None:
        """Remove a checkpoint from the index. Call with _index_lock held."""

        def _write(index: CheckpointIndex):
            with atomic_write(self.index_path) as f:
                f.write(index.model_dump_json(indent=2))

        index = await self.load_index()
        if not index:
            return

        index.remove_checkpoint(checkpoint_id)
        await asyncio.to_thread(_write, index)

        logger.debug(f"Removed checkpoint {checkpoint_id} from index")
