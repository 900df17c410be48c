"""End-to-end tests for DIDIndexer wiring, lifecycle and queries.

Runs the full pipeline against an in-memory ledger source and a real
FilesystemStore in a temporary directory.
"""

import tempfile
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from didmirror.errors import LedgerSourceError, StoreError
from didmirror.indexer.materializer import apply_event
from didmirror.indexer.service import DIDIndexer
from didmirror.ledger.abi import did_hash, encode_log
from didmirror.ledger.models import (
    AccessGranted,
    DataStored,
    DIDCreated,
    DIDRevoked,
    DIDUpdated,
    LedgerFamily,
)
from didmirror.ledger.source.memory import InMemoryLedgerSource
from didmirror.store.filesystem import FilesystemStore

REGISTRY = "0x" + "11" * 20
STORAGE = "0x" + "22" * 20
OWNER_A = "0x" + "aa" * 20
OWNER_B = "0x" + "bb" * 20
READER = "0x" + "dd" * 20
H1 = did_hash("did:safepsy:one")
H2 = did_hash("did:safepsy:two")


def _log(payload, address, block, log_index=0):
    return encode_log(
        payload,
        address=address,
        block_number=block,
        transaction_hash=f"0x{block:060x}{log_index:04x}",
        log_index=log_index,
        block_timestamp=1_700_000_000 + block,
    )


HISTORY = [
    _log(DIDCreated(did_hash=H1, owner=OWNER_A, did="did:safepsy:one"), REGISTRY, 100),
    _log(DIDCreated(did_hash=H2, owner=OWNER_B, did="did:safepsy:two"), REGISTRY, 101),
    _log(DataStored(did_hash=H1, data_type="profile", data_hash="0x" + "01" * 32), STORAGE, 102),
    _log(DIDUpdated(did_hash=H1, document="{v1}"), REGISTRY, 103),
]


@pytest.fixture
def data_dir():
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest_asyncio.fixture
async def indexer(data_dir):
    source = InMemoryLedgerSource()
    source.add(*HISTORY)
    idx = DIDIndexer(
        source,
        FilesystemStore(data_dir=data_dir),
        identity_address=REGISTRY,
        data_address=STORAGE,
        lookback_window=50,
        reconcile_interval=3600,
    )
    yield idx
    await idx.close()


@pytest.mark.integration
class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_catches_up_and_runs(self, indexer):
        assert not indexer.is_running()
        await indexer.start()
        assert indexer.is_running()

        assert (await indexer.store.get_checkpoint()).height == 103
        pointer = await indexer.queries.get_pointer(H1)
        assert pointer.document == "{v1}"
        assert pointer.data_hashes == {"profile": "0x" + "01" * 32}

    @pytest.mark.asyncio
    async def test_live_events_applied_after_start(self, indexer):
        await indexer.start()
        await indexer.source.emit(_log(DIDRevoked(did_hash=H2), REGISTRY, 104))
        assert (await indexer.queries.get_pointer(H2)).active is False
        # Live delivery does not move the checkpoint
        assert (await indexer.store.get_checkpoint()).height == 103

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, indexer):
        await indexer.start()
        task = indexer._reconcile_task
        await indexer.start()
        assert indexer._reconcile_task is task

    @pytest.mark.asyncio
    async def test_stop_cancels_listener_and_reconciler(self, indexer):
        await indexer.start()
        task = indexer._reconcile_task
        await indexer.stop()
        assert not indexer.is_running()
        assert task.done()

        await indexer.source.emit(_log(DIDRevoked(did_hash=H2), REGISTRY, 104))
        assert (await indexer.queries.get_pointer(H2)).active is True

    @pytest.mark.asyncio
    async def test_store_initialize_failure_is_fatal(self):
        store = AsyncMock()
        store.initialize.side_effect = StoreError("cannot create store directory")
        idx = DIDIndexer(InMemoryLedgerSource(), store, identity_address=REGISTRY)
        with pytest.raises(StoreError):
            await idx.start()
        assert not idx.is_running()

    @pytest.mark.asyncio
    async def test_catch_up_failure_left_to_reconciler(self, indexer):
        indexer.source.get_current_height = AsyncMock(side_effect=LedgerSourceError("node down"))
        await indexer.start()
        assert indexer.is_running()
        assert await indexer.store.get_checkpoint() is None

    @pytest.mark.asyncio
    async def test_missing_data_address_ignores_data_ledger(self, data_dir):
        source = InMemoryLedgerSource()
        source.add(*HISTORY)
        idx = DIDIndexer(source, FilesystemStore(data_dir=data_dir), identity_address=REGISTRY)
        await idx.start()
        try:
            pointer = await idx.queries.get_pointer(H1)
            assert pointer.data_types == []
            assert (await idx.queries.health())["ledgers"] == {"identity": REGISTRY}
        finally:
            await idx.close()


@pytest.mark.integration
class TestDeliveryConvergence:

    @pytest.mark.asyncio
    async def test_live_out_of_order_then_reconcile_matches_ordered_fold(self, indexer):
        await indexer.start()
        new = [
            _log(DIDUpdated(did_hash=H1, document="{v2}"), REGISTRY, 110, 0),
            _log(DIDUpdated(did_hash=H1, document="{v3}"), REGISTRY, 110, 1),
            _log(AccessGranted(did_hash=H1, accessor=READER, data_type="profile"), STORAGE, 111),
        ]
        # Live delivery out of order, with a duplicate
        await indexer.source.emit(new[2], new[1], new[0], new[1])
        await indexer.reconciler.reconcile_once()

        expected = None
        for event in (indexer.processor.classify(raw) for raw in HISTORY + new):
            if event.did_hash == H1:
                expected = apply_event(expected, event)
        pointer = await indexer.queries.get_pointer(H1)
        assert pointer.document == "{v3}"
        assert pointer.model_dump() == expected.model_dump()
        assert (await indexer.store.get_checkpoint()).height == 111


@pytest.mark.integration
class TestQueries:

    @pytest.mark.asyncio
    async def test_list_events_paginates_newest_first(self, indexer):
        await indexer.start()
        page = await indexer.queries.list_events(limit=3)
        assert page.total == 4
        assert page.has_more
        assert [e.block_number for e in page.items] == [103, 102, 101]

        rest = await indexer.queries.list_events(limit=3, offset=3)
        assert [e.block_number for e in rest.items] == [100]
        assert not rest.has_more

    @pytest.mark.asyncio
    async def test_list_events_filters(self, indexer):
        await indexer.start()
        page = await indexer.queries.list_events(did_hash=H1, kind="DIDUpdated")
        assert [e.block_number for e in page.items] == [103]

    @pytest.mark.asyncio
    async def test_list_pointers_defaults_to_active(self, indexer):
        await indexer.start()
        await indexer.source.emit(_log(DIDRevoked(did_hash=H2), REGISTRY, 104))
        page = await indexer.queries.list_pointers()
        assert [p.did_hash for p in page.items] == [H1]
        everything = await indexer.queries.list_pointers(active=None)
        assert everything.total == 2

    @pytest.mark.asyncio
    async def test_pointers_by_owner(self, indexer):
        await indexer.start()
        owned = await indexer.queries.pointers_by_owner(OWNER_A.upper().replace("0X", "0x"))
        assert [p.did for p in owned] == ["did:safepsy:one"]

    @pytest.mark.asyncio
    async def test_stats(self, indexer):
        await indexer.start()
        await indexer.source.emit(_log(DIDRevoked(did_hash=H2), REGISTRY, 104))
        stats = await indexer.queries.stats()
        assert stats.checkpoint_height == 103
        assert stats.total_events == 5
        assert stats.event_kinds == {"DIDCreated": 2, "DataStored": 1, "DIDUpdated": 1, "DIDRevoked": 1}
        assert (stats.total_pointers, stats.active_pointers, stats.inactive_pointers) == (2, 1, 1)
        assert stats.recent_events[0].block_number == 104

    @pytest.mark.asyncio
    async def test_health(self, indexer):
        await indexer.start()
        health = await indexer.queries.health()
        assert health == {
            "running": True,
            "checkpoint": 103,
            "ledgers": {"identity": REGISTRY, "data": STORAGE},
        }

    @pytest.mark.asyncio
    async def test_page_bounds(self, indexer):
        with pytest.raises(ValueError):
            await indexer.queries.list_events(limit=0)
        with pytest.raises(ValueError):
            await indexer.queries.list_pointers(offset=-1)
        page = await indexer.queries.list_events(limit=1000)
        assert page.limit == 100


def test_addresses_normalized():
    idx = DIDIndexer(InMemoryLedgerSource(), AsyncMock(), data_address="0x" + "Ab" * 20)
    assert idx.processor.addresses == {"0x" + "ab" * 20: LedgerFamily.DATA}
