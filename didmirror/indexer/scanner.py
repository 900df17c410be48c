"""Historical scanner: replays a bounded block range through the event processor."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import bittensor as bt

from didmirror.indexer.checkpoint import CheckpointStore
from didmirror.indexer.dispatcher import EventProcessor, ProcessResult
from didmirror.ledger.source.interface import LedgerEventSource


@dataclass
class ScanResult:
    from_block: int
    to_block: int
    applied: int = 0
    replayed: int = 0
    skipped: int = 0

    def record(self, result: ProcessResult) -> None:
        setattr(self, result.status, getattr(self, result.status) + 1)

    @property
    def total(self) -> int:
        return self.applied + self.replayed + self.skipped


class HistoricalScanner:
    """Fetches every configured ledger's logs for a range, in ledger order.

    The range is walked in windows of ``batch_size`` blocks. Each window
    reads both ledgers, processes the combined logs in
    (block_number, log_index) order, and only then advances the checkpoint
    to the window's last block. An exception aborts the scan with the
    checkpoint at the last fully-applied window, so the next scan resumes
    from there.
    """

    def __init__(
        self,
        source: LedgerEventSource,
        processor: EventProcessor,
        checkpoints: CheckpointStore,
        batch_size: int = 2000,
        window_timeout: float | None = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.source = source
        self.processor = processor
        self.checkpoints = checkpoints
        self.batch_size = batch_size
        self.window_timeout = window_timeout

    async def scan(self, from_block: int, to_block: int) -> ScanResult:
        result = ScanResult(from_block=from_block, to_block=to_block)
        if from_block > to_block:
            return result

        for start in range(from_block, to_block + 1, self.batch_size):
            end = min(start + self.batch_size - 1, to_block)
            await asyncio.wait_for(self._scan_window(start, end, result), timeout=self.window_timeout)
            await self.checkpoints.set(end)

        bt.logging.info({
            "historical_scan": {
                "from": from_block,
                "to": to_block,
                "applied": result.applied,
                "replayed": result.replayed,
                "skipped": result.skipped,
            }
        })
        return result

    async def _scan_window(self, start: int, end: int, result: ScanResult) -> None:
        logs = []
        for address in self.processor.addresses:
            logs.extend(await self.source.get_events(address, start, end))
        for raw in sorted(logs, key=lambda log: log.position):
            result.record(await self.processor.process(raw))
        bt.logging.debug({"historical_scan": {"from": start, "to": end, "logs": len(logs)}})


__all__ = ["HistoricalScanner", "ScanResult"]
