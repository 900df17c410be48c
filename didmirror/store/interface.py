"""DocumentStore protocol - pluggable persistence interface.

Implementations: FilesystemStore (JSON documents on local disk),
SQLStore (SQLAlchemy async, SQLite or PostgreSQL).
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from didmirror.ledger.models import Checkpoint, IdentityPointer, LedgerEvent


@runtime_checkable
class DocumentStore(Protocol):
    """Keyed storage for ledger events, identity pointers and the checkpoint."""

    async def initialize(self) -> None:
        """Prepare storage. Raises StoreError if the store is unreachable."""
        ...

    async def close(self) -> None:
        ...

    async def insert_event(self, event: LedgerEvent) -> bool:
        """Insert an event keyed by (transaction_hash, log_index).

        Returns False without writing if the key already exists.
        """
        ...

    async def get_pointer(self, did_hash: str) -> IdentityPointer | None:
        ...

    async def put_pointer(self, pointer: IdentityPointer) -> None:
        """Upsert a pointer keyed by did_hash."""
        ...

    async def get_checkpoint(self) -> Checkpoint | None:
        ...

    async def put_checkpoint(self, checkpoint: Checkpoint) -> None:
        ...

    async def list_events(
        self,
        did_hash: str | None = None,
        kind: str | None = None,
        from_block: int | None = None,
        to_block: int | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[LedgerEvent], int]:
        """Filtered events, newest first, plus the unpaginated total."""
        ...

    async def list_pointers(
        self,
        owner: str | None = None,
        did: str | None = None,
        active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[IdentityPointer], int]:
        """Filtered pointers, most recently updated first, plus the total."""
        ...

    async def count_events_by_kind(self) -> dict[str, int]:
        ...

    async def count_pointers(self) -> tuple[int, int]:
        """(total, active) pointer counts."""
        ...


__all__ = ["DocumentStore"]
