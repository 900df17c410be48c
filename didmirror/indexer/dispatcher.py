"""Event processor: classify raw logs, record them, hand them to the materializer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import bittensor as bt

from didmirror.errors import EventDecodeError
from didmirror.indexer.materializer import PointerMaterializer
from didmirror.ledger.abi import decode_log
from didmirror.ledger.models import EventKind, LedgerEvent, LedgerFamily, RawLog
from didmirror.store.interface import DocumentStore

ProcessStatus = Literal["applied", "replayed", "skipped"]


@dataclass
class ProcessResult:
    """Outcome of processing one raw log.

    applied: first time this (transaction_hash, log_index) was recorded
    replayed: already recorded; the materializer was still invoked
    skipped: not a recognized event, nothing written
    """

    status: ProcessStatus
    event: LedgerEvent | None = None
    reason: str = ""


class EventProcessor:
    """Routes raw logs from any producer into the store.

    ``addresses`` maps each configured contract address to the ledger
    family it emits. Logs from any other address are skipped.
    """

    def __init__(
        self,
        store: DocumentStore,
        materializer: PointerMaterializer,
        addresses: dict[str, LedgerFamily],
    ):
        self.store = store
        self.materializer = materializer
        self.addresses = {addr.lower(): family for addr, family in addresses.items() if addr}

    def classify(self, raw: RawLog) -> LedgerEvent:
        """Decode ``raw`` into a LedgerEvent. Raises EventDecodeError."""
        family = self.addresses.get(raw.address.lower())
        if family is None:
            raise EventDecodeError(f"log from unconfigured address {raw.address}")
        payload = decode_log(raw, family=family)
        return LedgerEvent(
            block_number=raw.block_number,
            transaction_hash=raw.transaction_hash,
            log_index=raw.log_index,
            block_timestamp=raw.block_timestamp,
            contract_address=raw.address.lower(),
            family=family,
            kind=EventKind(payload.kind),
            did_hash=payload.did_hash,
            payload=payload,
        )

    async def process(self, raw: RawLog) -> ProcessResult:
        """Record and apply one raw log.

        Decode failures are logged and skipped; store failures propagate.
        """
        if raw.removed:
            bt.logging.warning({
                "event_processor": {"status": "skipped_removed", "tx": raw.transaction_hash, "log_index": raw.log_index}
            })
            return ProcessResult(status="skipped", reason="removed")

        try:
            event = self.classify(raw)
        except EventDecodeError as e:
            bt.logging.warning({
                "event_processor": {
                    "status": "skipped",
                    "address": raw.address,
                    "tx": raw.transaction_hash,
                    "log_index": raw.log_index,
                    "error": str(e),
                }
            })
            return ProcessResult(status="skipped", reason=str(e))

        inserted = await self.store.insert_event(event)
        await self.materializer.apply(event)

        status: ProcessStatus = "applied" if inserted else "replayed"
        bt.logging.debug({
            "event_processor": {
                "status": status,
                "kind": event.kind.value,
                "did_hash": event.did_hash,
                "block": event.block_number,
                "log_index": event.log_index,
            }
        })
        return ProcessResult(status=status, event=event)


__all__ = ["EventProcessor", "ProcessResult", "ProcessStatus"]
