"""Tests for LiveListener subscriptions and failure isolation."""

from unittest.mock import AsyncMock

import pytest

from didmirror.errors import LedgerSourceError, StoreError
from didmirror.indexer.dispatcher import ProcessResult
from didmirror.indexer.listener import LiveListener
from didmirror.ledger.abi import did_hash, encode_log
from didmirror.ledger.models import DataStored, DIDCreated, LedgerFamily
from didmirror.ledger.source.memory import InMemoryLedgerSource

REGISTRY = "0x" + "11" * 20
STORAGE = "0x" + "22" * 20
H = did_hash("did:safepsy:abc")

CREATED = encode_log(
    DIDCreated(did_hash=H, owner="0x" + "aa" * 20, did="did:safepsy:abc"),
    address=REGISTRY, block_number=10, transaction_hash="0x0a", log_index=0,
)
STORED = encode_log(
    DataStored(did_hash=H, data_type="profile", data_hash="0x" + "cd" * 32),
    address=STORAGE, block_number=11, transaction_hash="0x0b", log_index=0,
)


def _processor(addresses=None):
    processor = AsyncMock()
    processor.addresses = addresses or {REGISTRY: LedgerFamily.IDENTITY, STORAGE: LedgerFamily.DATA}
    processor.process.return_value = ProcessResult(status="applied")
    return processor


class TestLiveListener:

    @pytest.mark.asyncio
    async def test_forwards_each_ledger(self):
        source = InMemoryLedgerSource()
        processor = _processor()
        listener = LiveListener(source, processor)
        await listener.start()
        assert listener.active

        await source.emit(CREATED, STORED)
        delivered = [c.args[0] for c in processor.process.call_args_list]
        assert delivered == [CREATED, STORED]

    @pytest.mark.asyncio
    async def test_duplicates_are_forwarded(self):
        source = InMemoryLedgerSource()
        processor = _processor()
        listener = LiveListener(source, processor)
        await listener.start()
        await source.emit(CREATED, CREATED)
        assert processor.process.await_count == 2

    @pytest.mark.asyncio
    async def test_unconfigured_ledger_not_subscribed(self):
        source = InMemoryLedgerSource()
        processor = _processor({REGISTRY: LedgerFamily.IDENTITY})
        await LiveListener(source, processor).start()
        await source.emit(STORED)
        processor.process.assert_not_called()

    @pytest.mark.asyncio
    async def test_handler_failure_is_contained(self):
        source = InMemoryLedgerSource()
        processor = _processor()
        processor.process.side_effect = [StoreError("write failed"), ProcessResult(status="applied")]
        await LiveListener(source, processor).start()

        await source.emit(CREATED)
        await source.emit(STORED)
        assert processor.process.await_count == 2

    @pytest.mark.asyncio
    async def test_stop_cancels_subscriptions(self):
        source = InMemoryLedgerSource()
        processor = _processor()
        listener = LiveListener(source, processor)
        await listener.start()
        await listener.stop()
        assert not listener.active

        await source.emit(CREATED)
        processor.process.assert_not_called()

    @pytest.mark.asyncio
    async def test_subscribe_failure_leaves_other_ledger_running(self):
        source = InMemoryLedgerSource()
        real_subscribe = source.subscribe

        async def flaky_subscribe(address, handler):
            if address == REGISTRY:
                raise LedgerSourceError("subscription refused")
            return await real_subscribe(address, handler)

        source.subscribe = flaky_subscribe
        processor = _processor()
        listener = LiveListener(source, processor)
        await listener.start()
        assert listener.active

        await source.emit(CREATED, STORED)
        delivered = [c.args[0] for c in processor.process.call_args_list]
        assert delivered == [STORED]
