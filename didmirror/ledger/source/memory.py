"""In-memory LedgerEventSource for local replay and tests."""

from __future__ import annotations

from didmirror.ledger.models import RawLog
from didmirror.ledger.source.interface import LogHandler


class MemorySubscription:
    def __init__(self, source: InMemoryLedgerSource, address: str, handler: LogHandler):
        self.address = address
        self.handler = handler
        self._source = source
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if self._active:
            self._active = False
            self._source._subscriptions.remove(self)


class InMemoryLedgerSource:
    """Holds logs in a list; ``emit`` also pushes them to live subscribers."""

    def __init__(self, head: int = 0):
        self.head = head
        self.logs: list[RawLog] = []
        self.closed = False
        self._subscriptions: list[MemorySubscription] = []

    def add(self, *logs: RawLog) -> None:
        """Record logs as historical, raising the head to cover them."""
        for log in logs:
            self.logs.append(log)
            self.head = max(self.head, log.block_number)

    async def emit(self, *logs: RawLog) -> None:
        """Record logs and deliver them, in the given order, to subscribers."""
        self.add(*logs)
        for log in logs:
            for subscription in list(self._subscriptions):
                if subscription.address == log.address.lower():
                    await subscription.handler(log)

    async def get_current_height(self) -> int:
        return self.head

    async def get_events(self, address: str, from_block: int, to_block: int) -> list[RawLog]:
        address = address.lower()
        return sorted(
            (
                log for log in self.logs
                if log.address.lower() == address and from_block <= log.block_number <= to_block
            ),
            key=lambda log: log.position,
        )

    async def subscribe(self, address: str, handler: LogHandler) -> MemorySubscription:
        subscription = MemorySubscription(self, address.lower(), handler)
        self._subscriptions.append(subscription)
        return subscription

    async def close(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.cancel()
        self.closed = True


__all__ = ["InMemoryLedgerSource", "MemorySubscription"]
