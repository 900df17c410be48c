"""LedgerEventSource protocol - pluggable chain access.

Implementations: JsonRpcLedgerSource (EVM JSON-RPC over httpx); tests
use in-memory fakes.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Protocol, runtime_checkable

from didmirror.ledger.models import RawLog

LogHandler = Callable[[RawLog], Awaitable[None]]


@runtime_checkable
class Subscription(Protocol):
    """Cancellable handle for a live event subscription."""

    @property
    def active(self) -> bool:
        ...

    def cancel(self) -> None:
        ...


@runtime_checkable
class LedgerEventSource(Protocol):
    """Historical query, live subscription and head height for a chain."""

    async def get_current_height(self) -> int:
        """Highest block the source considers final."""
        ...

    async def get_events(
        self, address: str, from_block: int, to_block: int,
    ) -> list[RawLog]:
        """All logs emitted by ``address`` in the inclusive range, sorted
        by (block_number, log_index)."""
        ...

    async def subscribe(self, address: str, handler: LogHandler) -> Subscription:
        """Deliver logs from ``address`` as new blocks arrive."""
        ...

    async def close(self) -> None:
        ...


__all__ = ["LedgerEventSource", "LogHandler", "Subscription"]
