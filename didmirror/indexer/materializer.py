"""Pointer materializer: folds ledger events into IdentityPointer state.

``apply_event`` is a pure function. Every field it writes, and every
element of the controller set and the data/access maps, is stamped in
``pointer.revisions`` with the (block_number, log_index) of the event
that wrote it. An event only touches a field whose stamp is strictly
lower than its own position, so:

- redelivering any already-applied event is a no-op,
- applying one ledger's events in any order yields the same state as
  applying them in ledger order,
- identity and data events write disjoint fields, so interleaving the
  two ledgers cannot change the result.
"""

from __future__ import annotations

import asyncio
from typing import assert_never

import bittensor as bt

from didmirror.ledger.models import (
    AccessGranted,
    AccessRevoked,
    ControllerAdded,
    ControllerRemoved,
    DataDeleted,
    DataStored,
    DataUpdated,
    DIDCreated,
    DIDRevoked,
    DIDTransferred,
    DIDUpdated,
    IdentityPointer,
    LedgerEvent,
)
from didmirror.store.interface import DocumentStore


def _max(current: int | None, value: int | None) -> int | None:
    if value is None:
        return current
    if current is None:
        return value
    return max(current, value)


class _Fold:
    """Mutable working copy of a pointer for one event."""

    def __init__(self, pointer: IdentityPointer, event: LedgerEvent):
        self.pointer = pointer
        self.position = event.position

    def claim(self, key: str) -> bool:
        """Stamp ``key`` with this event's position if it is newer."""
        recorded = self.pointer.revisions.get(key)
        if recorded is not None and tuple(recorded) >= self.position:
            return False
        self.pointer.revisions[key] = self.position
        return True


def _set_member(members: list[str], value: str, present: bool) -> list[str]:
    updated = set(members)
    if present:
        updated.add(value)
    else:
        updated.discard(value)
    return sorted(updated)


def apply_event(pointer: IdentityPointer | None, event: LedgerEvent) -> IdentityPointer:
    """Return the pointer that results from applying ``event``.

    ``pointer`` is not modified. A missing pointer starts as a
    placeholder (no did, no owner, active) which DIDCreated fills in.
    """
    if pointer is None:
        p = IdentityPointer(did_hash=event.did_hash)
    else:
        p = pointer.model_copy(deep=True)
    fold = _Fold(p, event)
    payload = event.payload

    if isinstance(payload, DIDCreated):
        # Only the first creation counts; a re-delivered DIDCreated is a no-op
        if p.is_placeholder:
            fold.claim("did")
            p.did = payload.did
            p.created_at = event.block_timestamp
            if fold.claim("owner"):
                p.owner = payload.owner
            if fold.claim("document"):
                p.document = ""
            if fold.claim("active"):
                p.active = True
    elif isinstance(payload, DIDUpdated):
        if fold.claim("document"):
            p.document = payload.document
    elif isinstance(payload, DIDRevoked):
        if fold.claim("active"):
            p.active = False
    elif isinstance(payload, DIDTransferred):
        if fold.claim("owner"):
            p.owner = payload.new_owner
    elif isinstance(payload, (ControllerAdded, ControllerRemoved)):
        if fold.claim(f"controller:{payload.controller}"):
            p.controllers = _set_member(
                p.controllers, payload.controller, isinstance(payload, ControllerAdded),
            )
    elif isinstance(payload, (DataStored, DataUpdated)):
        if fold.claim(f"data:{payload.data_type}"):
            p.data_hashes[payload.data_type] = payload.data_hash
            p.data_types = _set_member(p.data_types, payload.data_type, True)
    elif isinstance(payload, DataDeleted):
        if fold.claim(f"data:{payload.data_type}"):
            p.data_hashes.pop(payload.data_type, None)
            p.data_types = _set_member(p.data_types, payload.data_type, False)
    elif isinstance(payload, (AccessGranted, AccessRevoked)):
        if fold.claim(f"access:{payload.data_type}:{payload.accessor}"):
            grants = p.access_control.setdefault(payload.data_type, {})
            grants[payload.accessor] = isinstance(payload, AccessGranted)
    else:
        assert_never(payload)

    p.updated_at = _max(p.updated_at, event.block_timestamp)
    p.last_event_timestamp = _max(p.last_event_timestamp, event.block_timestamp)
    p.last_event_block = _max(p.last_event_block, event.block_number)
    return p


class PointerMaterializer:
    """Applies events to stored pointers, one identity at a time.

    Identities share a fixed pool of ``lock_shards`` locks keyed by their
    hash, so memory stays bounded however many identities are seen.
    """

    def __init__(self, store: DocumentStore, lock_shards: int = 64):
        if lock_shards < 1:
            raise ValueError("lock_shards must be >= 1")
        self.store = store
        self._locks = [asyncio.Lock() for _ in range(lock_shards)]

    def lock_for(self, did_hash: str) -> asyncio.Lock:
        return self._locks[hash(did_hash) % len(self._locks)]

    async def apply(self, event: LedgerEvent) -> IdentityPointer:
        async with self.lock_for(event.did_hash):
            current = await self.store.get_pointer(event.did_hash)
            updated = apply_event(current, event)
            if updated != current:
                await self.store.put_pointer(updated)
                bt.logging.debug({
                    "materializer": {
                        "did_hash": event.did_hash,
                        "kind": event.kind.value,
                        "block": event.block_number,
                        "log_index": event.log_index,
                    }
                })
            return updated


__all__ = ["PointerMaterializer", "apply_event"]
