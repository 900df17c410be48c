"""Ledger side of the DID mirror.

Models for the two contract event families (DID registry = identity
ledger, DID storage = data ledger), the event ABI codec, and the event
sources that deliver raw logs.
"""

from .abi import decode_log, did_hash, encode_log, event_topic
from .models import (
    Checkpoint,
    EventKind,
    IdentityPointer,
    LedgerEvent,
    LedgerFamily,
    RawLog,
)

__all__ = [
    "Checkpoint",
    "EventKind",
    "IdentityPointer",
    "LedgerEvent",
    "LedgerFamily",
    "RawLog",
    "decode_log",
    "did_hash",
    "encode_log",
    "event_topic",
]
