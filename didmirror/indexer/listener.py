"""Live listener: forwards newly emitted logs to the event processor."""

from __future__ import annotations

import bittensor as bt

from didmirror.indexer.dispatcher import EventProcessor
from didmirror.ledger.models import LedgerFamily, RawLog
from didmirror.ledger.source.interface import LedgerEventSource, LogHandler, Subscription


class LiveListener:
    """Subscribes to every configured ledger.

    Delivery is independent of the checkpoint. Failures are logged here
    and healed by the next reconciliation pass over the same range.
    """

    def __init__(self, source: LedgerEventSource, processor: EventProcessor):
        self.source = source
        self.processor = processor
        self._subscriptions: list[Subscription] = []

    @property
    def active(self) -> bool:
        return any(s.active for s in self._subscriptions)

    async def start(self) -> None:
        for address, family in self.processor.addresses.items():
            try:
                subscription = await self.source.subscribe(address, self._handler(family))
            except Exception as e:
                bt.logging.error({
                    "live_listener": {"status": "subscribe_failed", "family": family.value, "error": str(e)}
                })
                continue
            self._subscriptions.append(subscription)
            bt.logging.info({"live_listener": {"status": "subscribed", "family": family.value, "address": address}})

    async def stop(self) -> None:
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions.clear()
        bt.logging.info({"live_listener": "stopped"})

    def _handler(self, family: LedgerFamily) -> LogHandler:
        async def handle(raw: RawLog) -> None:
            try:
                await self.processor.process(raw)
            except Exception as e:
                bt.logging.warning({
                    "live_listener": {
                        "status": "handler_failed",
                        "family": family.value,
                        "tx": raw.transaction_hash,
                        "log_index": raw.log_index,
                        "error": str(e),
                    }
                })

        return handle


__all__ = ["LiveListener"]
