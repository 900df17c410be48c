"""DIDIndexer: wires the indexer components and controls their lifecycle."""

from __future__ import annotations

import asyncio

import bittensor as bt

from didmirror.indexer.checkpoint import CheckpointStore
from didmirror.indexer.dispatcher import EventProcessor
from didmirror.indexer.listener import LiveListener
from didmirror.indexer.materializer import PointerMaterializer
from didmirror.indexer.queries import IndexerQueries
from didmirror.indexer.reconciler import Reconciler
from didmirror.indexer.scanner import HistoricalScanner
from didmirror.ledger.models import LedgerFamily
from didmirror.ledger.source.interface import LedgerEventSource
from didmirror.store.interface import DocumentStore


class DIDIndexer:
    """Mirrors the DID registry and DID storage ledgers into a document store.

    start() catches up from the checkpoint, subscribes to live events and
    schedules the periodic reconciler. A ledger whose address is not
    configured is never scanned or subscribed.
    """

    def __init__(
        self,
        source: LedgerEventSource,
        store: DocumentStore,
        identity_address: str | None = None,
        data_address: str | None = None,
        lookback_window: int = 10_000,
        batch_size: int = 2000,
        reconcile_interval: float = 300.0,
        reconcile_timeout: float | None = 120.0,
        max_retries: int = 3,
    ):
        self.source = source
        self.store = store
        self.identity_address = identity_address.lower() if identity_address else None
        self.data_address = data_address.lower() if data_address else None

        addresses: dict[str, LedgerFamily] = {}
        if self.identity_address:
            addresses[self.identity_address] = LedgerFamily.IDENTITY
        if self.data_address:
            addresses[self.data_address] = LedgerFamily.DATA

        self.checkpoints = CheckpointStore(store, lookback_window=lookback_window)
        self.materializer = PointerMaterializer(store)
        self.processor = EventProcessor(store, self.materializer, addresses)
        self.scanner = HistoricalScanner(
            source,
            self.processor,
            self.checkpoints,
            batch_size=batch_size,
            window_timeout=reconcile_timeout,
        )
        self.listener = LiveListener(source, self.processor)
        self.reconciler = Reconciler(
            source,
            self.scanner,
            self.checkpoints,
            interval=reconcile_interval,
            max_retries=max_retries,
        )
        self.queries = IndexerQueries(store, addresses, is_running=self.is_running)

        self._initialized = False
        self._running = False
        self._reconcile_task: asyncio.Task | None = None

    async def initialize(self) -> None:
        """Prepare the document store. StoreError here is fatal."""
        await self.store.initialize()
        if not self.identity_address:
            bt.logging.warning({"did_indexer": "identity ledger address not set, DID registry events will not be indexed"})
        if not self.data_address:
            bt.logging.warning({"did_indexer": "data ledger address not set, DID storage events will not be indexed"})
        self._initialized = True

    async def start(self) -> None:
        if self._running:
            bt.logging.info({"did_indexer": "already running"})
            return
        if not self._initialized:
            await self.initialize()

        bt.logging.info({
            "did_indexer": {
                "status": "starting",
                "identity_address": self.identity_address,
                "data_address": self.data_address,
            }
        })

        try:
            await self.reconciler.reconcile_once()
        except Exception as e:
            bt.logging.error({"did_indexer": {"status": "catch_up_failed", "error": str(e) or type(e).__name__}})

        await self.listener.start()
        self._reconcile_task = asyncio.create_task(self.reconciler.run())
        self._running = True
        bt.logging.info({"did_indexer": {"status": "running", "checkpoint": self.checkpoints.current}})

    async def stop(self) -> None:
        if not self._running:
            return
        await self.listener.stop()
        self.reconciler.stop()
        if self._reconcile_task is not None:
            self._reconcile_task.cancel()
            try:
                await self._reconcile_task
            except asyncio.CancelledError:
                pass
            self._reconcile_task = None
        self._running = False
        bt.logging.info({"did_indexer": "stopped"})

    def is_running(self) -> bool:
        return self._running

    async def close(self) -> None:
        """Stop and release the source and store."""
        await self.stop()
        await self.source.close()
        await self.store.close()


__all__ = ["DIDIndexer"]
