"""Exception hierarchy for the DID mirror indexer."""

from __future__ import annotations


class DIDMirrorError(Exception):
    """Base class for all indexer errors."""


class ConfigError(DIDMirrorError):
    """Invalid or incomplete configuration."""


class LedgerSourceError(DIDMirrorError):
    """The ledger event source failed (transport or JSON-RPC error)."""


class EventDecodeError(DIDMirrorError):
    """A raw log could not be classified or decoded."""


class StoreError(DIDMirrorError):
    """The document store is unreachable or rejected a write."""


__all__ = [
    "ConfigError",
    "DIDMirrorError",
    "EventDecodeError",
    "LedgerSourceError",
    "StoreError",
]
