"""Event ABI for the DID registry and DID storage contracts.

Maps topic0 (keccak of the canonical event signature) to an EventSpec,
decodes raw logs into typed payloads, and encodes payloads back into
log form for fixtures and local tooling.
"""

from __future__ import annotations

from dataclasses import dataclass

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak
from pydantic import TypeAdapter, ValidationError

from didmirror.errors import EventDecodeError
from didmirror.ledger.models import (
    EventKind,
    EventPayload,
    LedgerFamily,
    RawLog,
)


@dataclass(frozen=True)
class EventInput:
    name: str  # payload field name
    abi_type: str
    indexed: bool = False


@dataclass(frozen=True)
class EventSpec:
    """One contract event: kind plus ordered ABI inputs."""

    kind: EventKind
    inputs: tuple[EventInput, ...]

    @property
    def family(self) -> LedgerFamily:
        return self.kind.family

    @property
    def signature(self) -> str:
        types = ",".join(i.abi_type for i in self.inputs)
        return f"{self.kind.value}({types})"

    @property
    def topic(self) -> str:
        return "0x" + keccak(text=self.signature).hex()


_DID = EventInput("did_hash", "bytes32", indexed=True)

EVENT_SPECS: tuple[EventSpec, ...] = (
    # DID registry
    EventSpec(EventKind.DID_CREATED, (
        _DID, EventInput("owner", "address", indexed=True), EventInput("did", "string"),
    )),
    EventSpec(EventKind.DID_UPDATED, (_DID, EventInput("document", "string"))),
    EventSpec(EventKind.DID_REVOKED, (_DID,)),
    EventSpec(EventKind.DID_TRANSFERRED, (_DID, EventInput("new_owner", "address", indexed=True))),
    EventSpec(EventKind.CONTROLLER_ADDED, (_DID, EventInput("controller", "address", indexed=True))),
    EventSpec(EventKind.CONTROLLER_REMOVED, (_DID, EventInput("controller", "address", indexed=True))),
    # DID storage
    EventSpec(EventKind.DATA_STORED, (
        _DID, EventInput("data_type", "string"), EventInput("data_hash", "bytes32"),
    )),
    EventSpec(EventKind.DATA_UPDATED, (
        _DID, EventInput("data_type", "string"), EventInput("data_hash", "bytes32"),
    )),
    EventSpec(EventKind.DATA_DELETED, (_DID, EventInput("data_type", "string"))),
    EventSpec(EventKind.ACCESS_GRANTED, (
        _DID, EventInput("accessor", "address", indexed=True), EventInput("data_type", "string"),
    )),
    EventSpec(EventKind.ACCESS_REVOKED, (
        _DID, EventInput("accessor", "address", indexed=True), EventInput("data_type", "string"),
    )),
)

SPECS_BY_TOPIC: dict[str, EventSpec] = {spec.topic: spec for spec in EVENT_SPECS}
SPECS_BY_KIND: dict[EventKind, EventSpec] = {spec.kind: spec for spec in EVENT_SPECS}

_payload_adapter: TypeAdapter = TypeAdapter(EventPayload)


def did_hash(did: str) -> str:
    """Identity hash as computed on chain: keccak256 of the DID string."""
    return "0x" + keccak(text=did).hex()


def event_topic(kind: EventKind) -> str:
    return SPECS_BY_KIND[kind].topic


def _from_abi(abi_type: str, value) -> str:
    if isinstance(value, bytes):
        return "0x" + value.hex()
    if abi_type == "address":
        return str(value).lower()
    return value


def _to_abi(abi_type: str, value: str):
    if abi_type == "bytes32":
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    return value


def decode_log(raw: RawLog, family: LedgerFamily | None = None) -> EventPayload:
    """Decode a raw log into its typed payload.

    Raises EventDecodeError for unknown signatures, logs emitted by the
    other family's contract, or malformed topic/data encodings.
    """
    if not raw.topics:
        raise EventDecodeError("log has no topics")

    spec = SPECS_BY_TOPIC.get(raw.topics[0].lower())
    if spec is None:
        raise EventDecodeError(f"unknown event signature {raw.topics[0]}")
    if family is not None and spec.family != family:
        raise EventDecodeError(
            f"{spec.kind.value} is a {spec.family.value} event but was emitted by the {family.value} ledger"
        )

    indexed = [i for i in spec.inputs if i.indexed]
    plain = [i for i in spec.inputs if not i.indexed]
    if len(raw.topics) != len(indexed) + 1:
        raise EventDecodeError(
            f"{spec.kind.value} expects {len(indexed)} indexed topics, got {len(raw.topics) - 1}"
        )

    fields: dict[str, str] = {"kind": spec.kind.value}
    try:
        for inp, topic in zip(indexed, raw.topics[1:]):
            (value,) = decode([inp.abi_type], bytes.fromhex(topic[2:]))
            fields[inp.name] = _from_abi(inp.abi_type, value)

        data = bytes.fromhex(raw.data[2:] if raw.data.startswith("0x") else raw.data)
        values = decode([i.abi_type for i in plain], data) if plain else ()
        for inp, value in zip(plain, values):
            fields[inp.name] = _from_abi(inp.abi_type, value)
    except (DecodingError, ValueError) as e:
        raise EventDecodeError(f"malformed {spec.kind.value} log: {e}") from e

    try:
        return _payload_adapter.validate_python(fields)
    except ValidationError as e:
        raise EventDecodeError(f"invalid {spec.kind.value} payload: {e}") from e


def encode_log(
    payload: EventPayload,
    *,
    address: str,
    block_number: int,
    transaction_hash: str,
    log_index: int,
    block_timestamp: int | None = None,
) -> RawLog:
    """Encode a payload as the raw log the contract would emit."""
    spec = SPECS_BY_KIND[EventKind(payload.kind)]
    topics = [spec.topic]
    plain_types: list[str] = []
    plain_values: list = []
    for inp in spec.inputs:
        value = _to_abi(inp.abi_type, getattr(payload, inp.name))
        if inp.indexed:
            topics.append("0x" + encode([inp.abi_type], [value]).hex())
        else:
            plain_types.append(inp.abi_type)
            plain_values.append(value)

    data = "0x" + encode(plain_types, plain_values).hex() if plain_types else "0x"
    return RawLog(
        address=address.lower(),
        topics=topics,
        data=data,
        block_number=block_number,
        block_timestamp=block_timestamp,
        transaction_hash=transaction_hash,
        log_index=log_index,
    )


__all__ = [
    "EVENT_SPECS",
    "SPECS_BY_KIND",
    "SPECS_BY_TOPIC",
    "EventInput",
    "EventSpec",
    "decode_log",
    "did_hash",
    "encode_log",
    "event_topic",
]
