"""Checkpoint store: the highest block height fully applied to the store."""

from __future__ import annotations

import bittensor as bt

from didmirror.ledger.models import Checkpoint
from didmirror.store.interface import DocumentStore


class CheckpointStore:
    """Reads and monotonically advances the persisted checkpoint."""

    def __init__(self, store: DocumentStore, lookback_window: int = 10_000):
        if lookback_window < 0:
            raise ValueError("lookback_window must be >= 0")
        self.store = store
        self.lookback_window = lookback_window
        self._current: int | None = None

    @property
    def current(self) -> int | None:
        """Last height read or written by this process."""
        return self._current

    async def get(self, head: int) -> int:
        """Return the persisted height.

        With nothing persisted yet, returns the height just below
        ``head - lookback_window`` so the first scan includes that block.
        -1 means no block has been applied.
        """
        checkpoint = await self.store.get_checkpoint()
        if checkpoint is None:
            default = max(-1, head - self.lookback_window - 1)
            bt.logging.info({"checkpoint": {"status": "default", "head": head, "height": default}})
            self._current = default
            return default
        self._current = checkpoint.height
        return checkpoint.height

    async def set(self, height: int) -> bool:
        """Persist ``height``. Returns False if it would move the checkpoint backwards.

        Callers must only pass a height once every event at or below it has
        been durably applied.
        """
        existing = await self.store.get_checkpoint()
        if existing is not None and height < existing.height:
            bt.logging.warning({
                "checkpoint": {"status": "ignored_regression", "current": existing.height, "requested": height}
            })
            self._current = existing.height
            return False
        await self.store.put_checkpoint(Checkpoint(height=height))
        self._current = height
        bt.logging.debug({"checkpoint": {"status": "advanced", "height": height}})
        return True


__all__ = ["CheckpointStore"]
