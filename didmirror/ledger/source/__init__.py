"""Ledger event sources: historical query, live subscription, head height."""

from .interface import LedgerEventSource, LogHandler, Subscription
from .jsonrpc import JsonRpcLedgerSource, PollingSubscription
from .memory import InMemoryLedgerSource, MemorySubscription

__all__ = [
    "InMemoryLedgerSource",
    "JsonRpcLedgerSource",
    "LedgerEventSource",
    "LogHandler",
    "MemorySubscription",
    "PollingSubscription",
    "Subscription",
]
