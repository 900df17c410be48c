"""DID mirror indexer entrypoint.

Mirrors the DID registry and DID storage ledgers into the configured
document store until SIGINT/SIGTERM.
"""

import asyncio
import os
import signal
import sys

import bittensor as bt
from dotenv import load_dotenv

from didmirror.config import IndexerSettings, build_parser, settings_from_args
from didmirror.errors import ConfigError, DIDMirrorError
from didmirror.indexer.service import DIDIndexer
from didmirror.ledger.source.jsonrpc import JsonRpcLedgerSource
from didmirror.store.filesystem import FilesystemStore
from didmirror.store.interface import DocumentStore
from didmirror.store.sql import SQLStore


def build_store(settings: IndexerSettings) -> DocumentStore:
    if settings.store.backend == "sql":
        return SQLStore(settings.store.database_url)
    return FilesystemStore(settings.store.data_dir)


def build_indexer(settings: IndexerSettings) -> DIDIndexer:
    source = JsonRpcLedgerSource(
        rpc_url=settings.ledger.rpc_url,
        timeout=settings.indexer.rpc_timeout,
        max_retries=settings.indexer.max_retries,
        confirmations=settings.ledger.confirmations,
        poll_interval=settings.indexer.poll_interval,
    )
    return DIDIndexer(
        source=source,
        store=build_store(settings),
        identity_address=settings.ledger.identity_address,
        data_address=settings.ledger.data_address,
        lookback_window=settings.indexer.lookback_window,
        batch_size=settings.indexer.batch_size,
        reconcile_interval=settings.indexer.reconcile_interval,
        reconcile_timeout=settings.indexer.reconcile_timeout,
        max_retries=settings.indexer.max_retries,
    )


async def serve(indexer: DIDIndexer, stop: asyncio.Event) -> None:
    """Run ``indexer`` until ``stop`` is set, then release its resources."""
    try:
        await indexer.start()
        await stop.wait()
    finally:
        await indexer.close()


def main(argv: list[str] | None = None) -> None:
    # Load .env if not in test mode
    if os.environ.get("DIDMIRROR_TEST_MODE") != "true":
        load_dotenv()

    parser = build_parser()
    bt.logging.add_args(parser)
    args = parser.parse_args(argv)
    bt.logging.set_config(config=bt.Config(parser, args=argv).logging)

    try:
        settings = settings_from_args(args)
    except ConfigError as e:
        bt.logging.error({"indexer": {"status": "bad_config", "error": str(e)}})
        sys.exit(1)

    bt.logging.info({
        "indexer_config": {
            "rpc_url": settings.ledger.rpc_url,
            "identity_address": settings.ledger.identity_address,
            "data_address": settings.ledger.data_address,
            "store": settings.store.backend,
            "lookback_window": settings.indexer.lookback_window,
            "reconcile_interval": settings.indexer.reconcile_interval,
        }
    })

    try:
        indexer = build_indexer(settings)
    except DIDMirrorError as e:
        bt.logging.error({"indexer": {"status": "startup_failed", "error": str(e)}})
        sys.exit(1)

    loop = asyncio.new_event_loop()
    stop = asyncio.Event()

    def _signal_handler():
        bt.logging.info({"indexer": "shutdown_signal_received"})
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    exit_code = 0
    try:
        loop.run_until_complete(serve(indexer, stop))
    except DIDMirrorError as e:
        bt.logging.error({"indexer": {"status": "fatal", "error": str(e)}})
        exit_code = 1
    finally:
        loop.close()
        bt.logging.info({"indexer": "stopped"})
    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
