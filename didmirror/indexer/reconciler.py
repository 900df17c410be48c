"""Periodic reconciler: rescans [checkpoint + 1, head] on a fixed schedule.

This is the correctness backstop for the live listener. The scanner checkpoints
after every window, so a tick that fails partway keeps the windows it
finished and the next tick resumes after them.
"""

from __future__ import annotations

import asyncio

import bittensor as bt

from didmirror.indexer.checkpoint import CheckpointStore
from didmirror.indexer.scanner import HistoricalScanner, ScanResult
from didmirror.ledger.source.interface import LedgerEventSource


class Reconciler:
    """Drives the historical scanner over any gap since the checkpoint."""

    def __init__(
        self,
        source: LedgerEventSource,
        scanner: HistoricalScanner,
        checkpoints: CheckpointStore,
        interval: float = 300.0,
        max_retries: int = 3,
        backoff_base: float = 2.0,
    ):
        self.source = source
        self.scanner = scanner
        self.checkpoints = checkpoints
        self.interval = interval
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def reconcile_once(self) -> ScanResult | None:
        """Scan the gap once. Returns None when already caught up."""
        head = await self.source.get_current_height()
        checkpoint = await self.checkpoints.get(head)
        from_block = checkpoint + 1
        if from_block > head:
            bt.logging.debug({"reconciler": {"status": "up_to_date", "checkpoint": checkpoint, "head": head}})
            return None
        return await self.scanner.scan(from_block, head)

    async def tick(self) -> ScanResult | None:
        """``reconcile_once`` retried with exponential backoff.

        Re-raises the last error once retries are exhausted.
        """
        for attempt in range(self.max_retries):
            try:
                return await self.reconcile_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = str(e) or type(e).__name__
                if attempt == self.max_retries - 1:
                    raise
                wait = self.backoff_base * 2 ** attempt
                bt.logging.warning({
                    "reconciler": {"status": "retry", "attempt": attempt + 1, "wait": wait, "error": error}
                })
                await asyncio.sleep(wait)
        return None

    async def run(self) -> None:
        """Reconcile every ``interval`` seconds until stopped."""
        self._running = True
        bt.logging.info({"reconciler": {"status": "starting", "interval": self.interval}})

        while self._running:
            try:
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break
            if not self._running:
                break

            try:
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                bt.logging.error({
                    "reconciler": {"status": "tick_abandoned", "error": str(e) or type(e).__name__}
                })

        self._running = False
        bt.logging.info({"reconciler": "stopped"})

    def stop(self) -> None:
        """Signal the loop to stop after the current tick."""
        self._running = False


__all__ = ["Reconciler"]
