"""Read-side query surface over the mirrored events and pointers."""

from __future__ import annotations

from typing import Any, Callable

from didmirror.ledger.models import IdentityPointer, IndexerStats, LedgerEvent, LedgerFamily, Page
from didmirror.store.interface import DocumentStore

MAX_PAGE_SIZE = 100
RECENT_EVENTS = 10


def _page_bounds(limit: int, offset: int) -> tuple[int, int]:
    if limit < 1:
        raise ValueError("limit must be >= 1")
    if offset < 0:
        raise ValueError("offset must be >= 0")
    return min(limit, MAX_PAGE_SIZE), offset


class IndexerQueries:
    """Paginated lookups and aggregate stats for an API layer."""

    def __init__(
        self,
        store: DocumentStore,
        addresses: dict[str, LedgerFamily] | None = None,
        is_running: Callable[[], bool] | None = None,
    ):
        self.store = store
        self.addresses = addresses or {}
        self._is_running = is_running or (lambda: False)

    async def list_events(
        self,
        did_hash: str | None = None,
        kind: str | None = None,
        from_block: int | None = None,
        to_block: int | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Page[LedgerEvent]:
        """Events matching all given filters, newest first."""
        limit, offset = _page_bounds(limit, offset)
        items, total = await self.store.list_events(
            did_hash=did_hash,
            kind=kind,
            from_block=from_block,
            to_block=to_block,
            limit=limit,
            offset=offset,
        )
        return Page[LedgerEvent](items=items, total=total, limit=limit, offset=offset)

    async def get_pointer(self, did_hash: str) -> IdentityPointer | None:
        return await self.store.get_pointer(did_hash)

    async def list_pointers(
        self,
        owner: str | None = None,
        did: str | None = None,
        active: bool | None = True,
        limit: int = 50,
        offset: int = 0,
    ) -> Page[IdentityPointer]:
        """Pointers matching all given filters, most recently updated first.

        Pass ``active=None`` to include revoked identities.
        """
        limit, offset = _page_bounds(limit, offset)
        items, total = await self.store.list_pointers(
            owner=owner.lower() if owner else None,
            did=did,
            active=active,
            limit=limit,
            offset=offset,
        )
        return Page[IdentityPointer](items=items, total=total, limit=limit, offset=offset)

    async def pointers_by_owner(self, owner: str, active: bool | None = True) -> list[IdentityPointer]:
        """Every pointer owned by ``owner``, walking all pages."""
        pointers: list[IdentityPointer] = []
        offset = 0
        while True:
            page = await self.list_pointers(owner=owner, active=active, limit=MAX_PAGE_SIZE, offset=offset)
            pointers.extend(page.items)
            if not page.has_more or not page.items:
                return pointers
            offset += len(page.items)

    async def stats(self) -> IndexerStats:
        event_kinds = await self.store.count_events_by_kind()
        total_pointers, active_pointers = await self.store.count_pointers()
        recent, _ = await self.store.list_events(limit=RECENT_EVENTS)
        checkpoint = await self.store.get_checkpoint()
        return IndexerStats(
            checkpoint_height=checkpoint.height if checkpoint else None,
            total_events=sum(event_kinds.values()),
            event_kinds=event_kinds,
            total_pointers=total_pointers,
            active_pointers=active_pointers,
            inactive_pointers=total_pointers - active_pointers,
            recent_events=recent,
        )

    async def health(self) -> dict[str, Any]:
        checkpoint = await self.store.get_checkpoint()
        return {
            "running": self._is_running(),
            "checkpoint": checkpoint.height if checkpoint else None,
            "ledgers": {family.value: address for address, family in self.addresses.items()},
        }


__all__ = ["MAX_PAGE_SIZE", "IndexerQueries"]
