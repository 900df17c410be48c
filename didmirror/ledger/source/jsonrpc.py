"""EVM JSON-RPC LedgerEventSource.

Talks to a node over HTTP with httpx, retries transport failures with
exponential backoff, caches block timestamps, and implements live
subscriptions as polling tasks that walk new blocks in order.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any

import bittensor as bt
import httpx

from didmirror.errors import LedgerSourceError
from didmirror.ledger.models import RawLog
from didmirror.ledger.source.interface import LogHandler

_RETRYABLE_STATUS = {429, 502, 503, 504}


class PollingSubscription:
    """Subscription handle backed by an asyncio task."""

    def __init__(self, address: str, task: asyncio.Task):
        self.address = address
        self._task = task

    @property
    def active(self) -> bool:
        return not self._task.done()

    def cancel(self) -> None:
        if not self._task.done():
            self._task.cancel()


class JsonRpcLedgerSource:
    """LedgerEventSource over an Ethereum-compatible JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        confirmations: int = 0,
        poll_interval: float = 4.0,
        backoff_base: float = 1.0,
        client: httpx.AsyncClient | None = None,
        timestamp_cache_size: int = 4096,
    ):
        self.rpc_url = rpc_url
        self.confirmations = confirmations
        self.poll_interval = poll_interval
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._max_retries = max(1, max_retries)
        self._backoff_base = backoff_base
        self._ids = itertools.count(1)
        self._timestamps: dict[int, int] = {}
        self._timestamp_cache_size = timestamp_cache_size

    async def close(self) -> None:
        await self._client.aclose()

    # -- Transport --

    async def _call(self, method: str, params: list[Any]) -> Any:
        """JSON-RPC call with retry on transport errors and 429/5xx."""
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        last_error = ""
        for attempt in range(self._max_retries):
            try:
                resp = await self._client.post(self.rpc_url, json=payload)
                if resp.status_code not in _RETRYABLE_STATUS:
                    break
                last_error = f"HTTP {resp.status_code}"
            except httpx.TransportError as e:
                last_error = str(e) or type(e).__name__

            if attempt == self._max_retries - 1:
                raise LedgerSourceError(
                    f"{method} failed after {self._max_retries} attempts: {last_error}"
                )
            wait = self._backoff_base * 2 ** attempt
            bt.logging.warning({"ledger_rpc": {"method": method, "retry": attempt, "wait": wait, "error": last_error}})
            await asyncio.sleep(wait)

        if resp.status_code != 200:
            raise LedgerSourceError(f"{method} failed: HTTP {resp.status_code} {resp.text[:200]}")
        try:
            body = resp.json()
        except ValueError as e:
            raise LedgerSourceError(f"{method} returned invalid JSON") from e
        if body.get("error"):
            raise LedgerSourceError(f"{method} error: {body['error']}")
        return body.get("result")

    # -- LedgerEventSource interface --

    async def get_current_height(self) -> int:
        head = int(await self._call("eth_blockNumber", []), 16)
        return max(0, head - self.confirmations)

    async def get_events(
        self, address: str, from_block: int, to_block: int,
    ) -> list[RawLog]:
        if from_block > to_block:
            return []
        logs = await self._call("eth_getLogs", [{
            "address": address,
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
        }])
        events = []
        for log in logs or []:
            block_number = int(log["blockNumber"], 16)
            ts = await self._block_timestamp(block_number)
            events.append(RawLog.from_rpc(log, block_timestamp=ts))
        events.sort(key=lambda e: e.position)
        return events

    async def subscribe(self, address: str, handler: LogHandler) -> PollingSubscription:
        start = await self.get_current_height() + 1
        task = asyncio.create_task(self._poll(address, handler, start))
        bt.logging.info({"ledger_subscription": {"address": address, "from_block": start}})
        return PollingSubscription(address, task)

    # -- Internals --

    async def _block_timestamp(self, block_number: int) -> int:
        cached = self._timestamps.get(block_number)
        if cached is not None:
            return cached
        block = await self._call("eth_getBlockByNumber", [hex(block_number), False])
        if not block:
            raise LedgerSourceError(f"block {block_number} not found")
        ts = int(block["timestamp"], 16)
        if len(self._timestamps) >= self._timestamp_cache_size:
            self._timestamps.pop(next(iter(self._timestamps)))
        self._timestamps[block_number] = ts
        return ts

    async def _poll(self, address: str, handler: LogHandler, next_block: int) -> None:
        """Walk new blocks in order, delivering each log to ``handler``."""
        failures = 0
        while True:
            try:
                head = await self.get_current_height()
                if next_block <= head:
                    for log in await self.get_events(address, next_block, head):
                        await handler(log)
                    next_block = head + 1
                failures = 0
                await asyncio.sleep(self.poll_interval)
            except Exception as e:
                failures += 1
                wait = min(30, 5 * failures)
                bt.logging.warning({"ledger_subscription": {
                    "address": address, "error": str(e), "consecutive": failures, "wait": wait,
                }})
                await asyncio.sleep(wait)


__all__ = ["JsonRpcLedgerSource", "PollingSubscription"]
