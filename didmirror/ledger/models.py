"""Pydantic models for the DID ledger mirror.

Three record types:
- LedgerEvent: immutable fact decoded from one contract log
- IdentityPointer: mutable materialized view of one DID
- Checkpoint: highest block height guaranteed fully processed

Event payloads form a closed tagged union discriminated on ``kind``,
split into the identity family (DID registry contract) and the data
family (DID storage contract).
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Generic, Literal, TypeVar, Union

from pydantic import BaseModel, Field

# (block_number, log_index) of the event that produced a value
EventPosition = tuple[int, int]


def _hex_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Ledger families and event kinds
# ---------------------------------------------------------------------------


class LedgerFamily(str, Enum):
    """Which contract emitted an event."""

    IDENTITY = "identity"
    DATA = "data"


class EventKind(str, Enum):
    """Every event kind the indexer understands."""

    DID_CREATED = "DIDCreated"
    DID_UPDATED = "DIDUpdated"
    DID_REVOKED = "DIDRevoked"
    DID_TRANSFERRED = "DIDTransferred"
    CONTROLLER_ADDED = "ControllerAdded"
    CONTROLLER_REMOVED = "ControllerRemoved"
    DATA_STORED = "DataStored"
    DATA_UPDATED = "DataUpdated"
    DATA_DELETED = "DataDeleted"
    ACCESS_GRANTED = "AccessGranted"
    ACCESS_REVOKED = "AccessRevoked"

    @property
    def family(self) -> LedgerFamily:
        if self in IDENTITY_KINDS:
            return LedgerFamily.IDENTITY
        return LedgerFamily.DATA


IDENTITY_KINDS = frozenset({
    EventKind.DID_CREATED,
    EventKind.DID_UPDATED,
    EventKind.DID_REVOKED,
    EventKind.DID_TRANSFERRED,
    EventKind.CONTROLLER_ADDED,
    EventKind.CONTROLLER_REMOVED,
})

DATA_KINDS = frozenset({
    EventKind.DATA_STORED,
    EventKind.DATA_UPDATED,
    EventKind.DATA_DELETED,
    EventKind.ACCESS_GRANTED,
    EventKind.ACCESS_REVOKED,
})


# ---------------------------------------------------------------------------
# Raw log (as delivered by the ledger event source)
# ---------------------------------------------------------------------------


class RawLog(BaseModel):
    """One undecoded contract log plus its enclosing block metadata."""

    address: str
    topics: list[str] = Field(default_factory=list)
    data: str = "0x"
    block_number: int
    block_hash: str | None = None
    block_timestamp: int | None = None
    transaction_hash: str
    log_index: int
    removed: bool = False

    @property
    def position(self) -> EventPosition:
        return (self.block_number, self.log_index)

    @classmethod
    def from_rpc(cls, log: dict[str, Any], block_timestamp: int | None = None) -> RawLog:
        """Build from an ``eth_getLogs`` entry (hex-encoded quantities)."""
        return cls(
            address=log["address"].lower(),
            topics=[t.lower() for t in log.get("topics") or []],
            data=log.get("data") or "0x",
            block_number=_hex_int(log["blockNumber"]),
            block_hash=log.get("blockHash"),
            block_timestamp=block_timestamp,
            transaction_hash=log["transactionHash"].lower(),
            log_index=_hex_int(log["logIndex"]),
            removed=bool(log.get("removed", False)),
        )


# ---------------------------------------------------------------------------
# Identity family payloads (DID registry)
# ---------------------------------------------------------------------------


class DIDCreated(BaseModel):
    kind: Literal["DIDCreated"] = "DIDCreated"
    did_hash: str
    owner: str
    did: str


class DIDUpdated(BaseModel):
    kind: Literal["DIDUpdated"] = "DIDUpdated"
    did_hash: str
    document: str


class DIDRevoked(BaseModel):
    kind: Literal["DIDRevoked"] = "DIDRevoked"
    did_hash: str


class DIDTransferred(BaseModel):
    kind: Literal["DIDTransferred"] = "DIDTransferred"
    did_hash: str
    new_owner: str


class ControllerAdded(BaseModel):
    kind: Literal["ControllerAdded"] = "ControllerAdded"
    did_hash: str
    controller: str


class ControllerRemoved(BaseModel):
    kind: Literal["ControllerRemoved"] = "ControllerRemoved"
    did_hash: str
    controller: str


# ---------------------------------------------------------------------------
# Data family payloads (DID storage)
# ---------------------------------------------------------------------------


class DataStored(BaseModel):
    kind: Literal["DataStored"] = "DataStored"
    did_hash: str
    data_type: str
    data_hash: str


class DataUpdated(BaseModel):
    kind: Literal["DataUpdated"] = "DataUpdated"
    did_hash: str
    data_type: str
    data_hash: str


class DataDeleted(BaseModel):
    kind: Literal["DataDeleted"] = "DataDeleted"
    did_hash: str
    data_type: str


class AccessGranted(BaseModel):
    kind: Literal["AccessGranted"] = "AccessGranted"
    did_hash: str
    accessor: str
    data_type: str


class AccessRevoked(BaseModel):
    kind: Literal["AccessRevoked"] = "AccessRevoked"
    did_hash: str
    accessor: str
    data_type: str


IdentityPayload = Union[
    DIDCreated, DIDUpdated, DIDRevoked, DIDTransferred, ControllerAdded, ControllerRemoved,
]
DataPayload = Union[DataStored, DataUpdated, DataDeleted, AccessGranted, AccessRevoked]
EventPayload = Annotated[Union[IdentityPayload, DataPayload], Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# Ledger event (immutable audit record)
# ---------------------------------------------------------------------------


class LedgerEvent(BaseModel):
    """Immutable record of one classified contract event.

    Identity key is (transaction_hash, log_index); the store treats a
    second insert with the same key as a no-op.
    """

    model_config = {"frozen": True}

    block_number: int
    transaction_hash: str
    log_index: int
    block_timestamp: int | None = None
    contract_address: str
    family: LedgerFamily
    kind: EventKind
    did_hash: str
    payload: EventPayload
    indexed_at: datetime = Field(default_factory=_utcnow)

    @property
    def key(self) -> str:
        return f"{self.transaction_hash}:{self.log_index}"

    @property
    def position(self) -> EventPosition:
        return (self.block_number, self.log_index)


# ---------------------------------------------------------------------------
# Identity pointer (mutable materialized view)
# ---------------------------------------------------------------------------


class IdentityPointer(BaseModel):
    """Current mirrored state of one DID.

    ``revisions`` records, per field or per set/map element, the ledger
    position of the event that last wrote it. An event only writes a
    field whose recorded position is lower than its own.
    """

    did_hash: str
    did: str = ""
    owner: str = ""
    document: str = ""
    controllers: list[str] = Field(default_factory=list)
    data_types: list[str] = Field(default_factory=list)
    data_hashes: dict[str, str] = Field(default_factory=dict)
    access_control: dict[str, dict[str, bool]] = Field(
        default_factory=dict,
        description="data_type -> accessor -> granted",
    )
    active: bool = True
    created_at: int | None = None
    updated_at: int | None = None
    last_event_block: int | None = None
    last_event_timestamp: int | None = None
    revisions: dict[str, EventPosition] = Field(default_factory=dict)

    @property
    def is_placeholder(self) -> bool:
        """True until the DIDCreated event for this identity is applied."""
        return "did" not in self.revisions

    def has_access(self, data_type: str, accessor: str) -> bool:
        return self.access_control.get(data_type, {}).get(accessor, False)


# ---------------------------------------------------------------------------
# Checkpoint
# ---------------------------------------------------------------------------


class Checkpoint(BaseModel):
    """Highest block height whose events are all durably applied."""

    height: int = Field(ge=0)
    updated_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Query results
# ---------------------------------------------------------------------------

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """One page of a filtered listing."""

    items: list[T] = Field(default_factory=list)
    total: int = 0
    limit: int = 50
    offset: int = 0

    @property
    def has_more(self) -> bool:
        return self.total > self.offset + self.limit


class IndexerStats(BaseModel):
    """Aggregate counters for the query surface."""

    checkpoint_height: int | None = None
    total_events: int = 0
    event_kinds: dict[str, int] = Field(default_factory=dict)
    total_pointers: int = 0
    active_pointers: int = 0
    inactive_pointers: int = 0
    recent_events: list[LedgerEvent] = Field(default_factory=list)


__all__ = [
    "DATA_KINDS",
    "IDENTITY_KINDS",
    "AccessGranted",
    "AccessRevoked",
    "Checkpoint",
    "ControllerAdded",
    "ControllerRemoved",
    "DIDCreated",
    "DIDRevoked",
    "DIDTransferred",
    "DIDUpdated",
    "DataDeleted",
    "DataPayload",
    "DataStored",
    "DataUpdated",
    "EventKind",
    "EventPayload",
    "EventPosition",
    "IdentityPayload",
    "IdentityPointer",
    "IndexerStats",
    "LedgerEvent",
    "LedgerFamily",
    "Page",
    "RawLog",
]
