"""Indexer components: checkpoint, dispatch, materialization, scanning and scheduling."""

from didmirror.indexer.checkpoint import CheckpointStore
from didmirror.indexer.dispatcher import EventProcessor, ProcessResult
from didmirror.indexer.listener import LiveListener
from didmirror.indexer.materializer import PointerMaterializer, apply_event
from didmirror.indexer.queries import IndexerQueries
from didmirror.indexer.reconciler import Reconciler
from didmirror.indexer.scanner import HistoricalScanner, ScanResult
from didmirror.indexer.service import DIDIndexer

__all__ = [
    "CheckpointStore",
    "DIDIndexer",
    "EventProcessor",
    "HistoricalScanner",
    "IndexerQueries",
    "LiveListener",
    "PointerMaterializer",
    "ProcessResult",
    "Reconciler",
    "ScanResult",
    "apply_event",
]
