"""Filesystem-based DocumentStore implementation.

Writes one JSON document per record under a local directory tree:
  {data_dir}/index/events/{transaction_hash}_{log_index}.json
  {data_dir}/index/pointers/{did_hash}.json
  {data_dir}/index/checkpoint.json

Events are created with an atomic hard link so a second insert of the
same key is a no-op; pointers and the checkpoint are replaced
atomically (tmp + rename). Listing reads every document, so this
backend suits development, tests and small deployments.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any
from urllib.parse import quote

from didmirror.errors import StoreError
from didmirror.ledger.models import Checkpoint, IdentityPointer, LedgerEvent


def _dump(data: Any) -> str:
    return json.dumps(data, default=str, sort_keys=True)


def _write_tmp(directory: Path, data: Any) -> str:
    """Write data to a temp file in ``directory`` and return its path."""
    tmp_fd, tmp_path = tempfile.mkstemp(dir=str(directory), suffix=".tmp")
    try:
        with os.fdopen(tmp_fd, "w") as f:
            f.write(_dump(data))
    except Exception:
        os.unlink(tmp_path)
        raise
    return tmp_path


def _replace_json(path: Path, data: Any) -> None:
    """Atomically write data as JSON (tmp + rename)."""
    tmp_path = _write_tmp(path.parent, data)
    try:
        os.replace(tmp_path, str(path))
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def _read_json(path: Path) -> Any:
    with open(path) as f:
        return json.load(f)


class FilesystemStore:
    """Local filesystem DocumentStore implementation."""

    def __init__(self, data_dir: str):
        self.base = Path(data_dir) / "index"
        self.events_dir = self.base / "events"
        self.pointers_dir = self.base / "pointers"
        self.checkpoint_path = self.base / "checkpoint.json"

    async def initialize(self) -> None:
        try:
            self.events_dir.mkdir(parents=True, exist_ok=True)
            self.pointers_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"cannot create store directory {self.base}: {e}") from e
        if not os.access(self.base, os.W_OK):
            raise StoreError(f"store directory {self.base} is not writable")

    async def close(self) -> None:
        return None

    # -- Writes --

    async def insert_event(self, event: LedgerEvent) -> bool:
        path = self.events_dir / f"{event.transaction_hash}_{event.log_index}.json"
        if path.exists():
            return False
        try:
            tmp_path = _write_tmp(self.events_dir, event.model_dump(mode="json"))
        except OSError as e:
            raise StoreError(f"event write failed for {event.key}: {e}") from e
        try:
            os.link(tmp_path, str(path))
            return True
        except FileExistsError:
            return False
        except OSError as e:
            raise StoreError(f"event write failed for {event.key}: {e}") from e
        finally:
            os.unlink(tmp_path)

    async def put_pointer(self, pointer: IdentityPointer) -> None:
        try:
            _replace_json(self._pointer_path(pointer.did_hash), pointer.model_dump(mode="json"))
        except OSError as e:
            raise StoreError(f"pointer write failed for {pointer.did_hash}: {e}") from e

    async def put_checkpoint(self, checkpoint: Checkpoint) -> None:
        try:
            _replace_json(self.checkpoint_path, checkpoint.model_dump(mode="json"))
        except OSError as e:
            raise StoreError(f"checkpoint write failed: {e}") from e

    # -- Reads --

    async def get_pointer(self, did_hash: str) -> IdentityPointer | None:
        path = self._pointer_path(did_hash)
        if not path.exists():
            return None
        return IdentityPointer.model_validate(_read_json(path))

    async def get_checkpoint(self) -> Checkpoint | None:
        if not self.checkpoint_path.exists():
            return None
        return Checkpoint.model_validate(_read_json(self.checkpoint_path))

    async def list_events(
        self,
        did_hash: str | None = None,
        kind: str | None = None,
        from_block: int | None = None,
        to_block: int | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[LedgerEvent], int]:
        events = [
            e for e in self._load_events()
            if (did_hash is None or e.did_hash == did_hash)
            and (kind is None or e.kind.value == kind)
            and (from_block is None or e.block_number >= from_block)
            and (to_block is None or e.block_number <= to_block)
        ]
        events.sort(key=lambda e: e.position, reverse=True)
        return events[offset:offset + limit], len(events)

    async def list_pointers(
        self,
        owner: str | None = None,
        did: str | None = None,
        active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[IdentityPointer], int]:
        pointers = [
            p for p in self._load_pointers()
            if (owner is None or p.owner == owner)
            and (did is None or p.did == did)
            and (active is None or p.active == active)
        ]
        pointers.sort(key=lambda p: (p.updated_at or -1, p.did_hash), reverse=True)
        return pointers[offset:offset + limit], len(pointers)

    async def count_events_by_kind(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for e in self._load_events():
            counts[e.kind.value] = counts.get(e.kind.value, 0) + 1
        return counts

    async def count_pointers(self) -> tuple[int, int]:
        pointers = self._load_pointers()
        return len(pointers), sum(1 for p in pointers if p.active)

    # -- Internals --

    def _pointer_path(self, did_hash: str) -> Path:
        return self.pointers_dir / f"{quote(did_hash, safe='')}.json"

    def _load_events(self) -> list[LedgerEvent]:
        if not self.events_dir.exists():
            return []
        return [
            LedgerEvent.model_validate(_read_json(p))
            for p in self.events_dir.glob("*.json")
        ]

    def _load_pointers(self) -> list[IdentityPointer]:
        if not self.pointers_dir.exists():
            return []
        return [
            IdentityPointer.model_validate(_read_json(p))
            for p in self.pointers_dir.glob("*.json")
        ]


__all__ = ["FilesystemStore"]
