"""SQLAlchemy DocumentStore implementation.

Works against SQLite (``sqlite+aiosqlite://``) and PostgreSQL
(``postgresql+asyncpg://``). Events are inserted with
``ON CONFLICT DO NOTHING`` on (transaction_hash, log_index); pointers and
the singleton checkpoint row are upserted with ``ON CONFLICT DO UPDATE``.
"""

from __future__ import annotations

from typing import Any

import bittensor as bt
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from didmirror.errors import StoreError
from didmirror.ledger.models import Checkpoint, IdentityPointer, LedgerEvent
from didmirror.store.schema import Base, IdentityPointerRow, IndexerState, LedgerEventRow

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class SQLStore:
    """DocumentStore backed by a SQL database."""

    def __init__(self, database_url: str, echo: bool = False, engine: AsyncEngine | None = None):
        self.database_url = database_url
        self._engine = engine or create_async_engine(database_url, echo=echo)
        dialect = self._engine.dialect.name
        if dialect not in _INSERTS:
            raise StoreError(f"unsupported database dialect: {dialect}")
        self._insert = _INSERTS[dialect]

    async def initialize(self) -> None:
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            raise StoreError(f"cannot initialize database {self._engine.url!r}: {e}") from e
        bt.logging.info({"sql_store": {"status": "ready", "dialect": self._engine.dialect.name}})

    async def close(self) -> None:
        await self._engine.dispose()

    # -- Helpers --

    async def _write(self, stmt) -> int:
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(stmt)
                return result.rowcount
        except SQLAlchemyError as e:
            raise StoreError(f"database write failed: {e}") from e

    async def _read(self, stmt) -> list[Any]:
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(stmt)
                return list(result.all())
        except SQLAlchemyError as e:
            raise StoreError(f"database read failed: {e}") from e

    # -- Writes --

    async def insert_event(self, event: LedgerEvent) -> bool:
        stmt = self._insert(LedgerEventRow).values(
            transaction_hash=event.transaction_hash,
            log_index=event.log_index,
            block_number=event.block_number,
            block_timestamp=event.block_timestamp,
            contract_address=event.contract_address,
            family=event.family.value,
            kind=event.kind.value,
            did_hash=event.did_hash,
            body=event.model_dump(mode="json"),
        ).on_conflict_do_nothing(index_elements=["transaction_hash", "log_index"])
        return await self._write(stmt) == 1

    async def put_pointer(self, pointer: IdentityPointer) -> None:
        values = {
            "did": pointer.did,
            "owner": pointer.owner,
            "active": pointer.active,
            "updated_at": pointer.updated_at,
            "body": pointer.model_dump(mode="json"),
        }
        stmt = self._insert(IdentityPointerRow).values(did_hash=pointer.did_hash, **values)
        stmt = stmt.on_conflict_do_update(index_elements=["did_hash"], set_=values)
        await self._write(stmt)

    async def put_checkpoint(self, checkpoint: Checkpoint) -> None:
        values = {
            "checkpoint_height": checkpoint.height,
            "updated_at": checkpoint.updated_at,
        }
        stmt = self._insert(IndexerState).values(id=1, **values)
        stmt = stmt.on_conflict_do_update(index_elements=["id"], set_=values)
        await self._write(stmt)

    # -- Reads --

    async def get_pointer(self, did_hash: str) -> IdentityPointer | None:
        rows = await self._read(
            select(IdentityPointerRow.body).where(IdentityPointerRow.did_hash == did_hash)
        )
        if not rows:
            return None
        return IdentityPointer.model_validate(rows[0].body)

    async def get_checkpoint(self) -> Checkpoint | None:
        rows = await self._read(
            select(IndexerState.checkpoint_height, IndexerState.updated_at).where(IndexerState.id == 1)
        )
        if not rows:
            return None
        height, updated_at = rows[0]
        if updated_at is None:
            return Checkpoint(height=height)
        return Checkpoint(height=height, updated_at=updated_at)

    async def list_events(
        self,
        did_hash: str | None = None,
        kind: str | None = None,
        from_block: int | None = None,
        to_block: int | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[LedgerEvent], int]:
        conditions = []
        if did_hash is not None:
            conditions.append(LedgerEventRow.did_hash == did_hash)
        if kind is not None:
            conditions.append(LedgerEventRow.kind == kind)
        if from_block is not None:
            conditions.append(LedgerEventRow.block_number >= from_block)
        if to_block is not None:
            conditions.append(LedgerEventRow.block_number <= to_block)

        total_rows = await self._read(
            select(func.count()).select_from(LedgerEventRow).where(*conditions)
        )
        rows = await self._read(
            select(LedgerEventRow.body)
            .where(*conditions)
            .order_by(LedgerEventRow.block_number.desc(), LedgerEventRow.log_index.desc())
            .limit(limit)
            .offset(offset)
        )
        return [LedgerEvent.model_validate(r.body) for r in rows], int(total_rows[0][0])

    async def list_pointers(
        self,
        owner: str | None = None,
        did: str | None = None,
        active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[IdentityPointer], int]:
        conditions = []
        if owner is not None:
            conditions.append(IdentityPointerRow.owner == owner)
        if did is not None:
            conditions.append(IdentityPointerRow.did == did)
        if active is not None:
            conditions.append(IdentityPointerRow.active == active)

        total_rows = await self._read(
            select(func.count()).select_from(IdentityPointerRow).where(*conditions)
        )
        rows = await self._read(
            select(IdentityPointerRow.body)
            .where(*conditions)
            .order_by(
                IdentityPointerRow.updated_at.desc().nulls_last(),
                IdentityPointerRow.did_hash.desc(),
            )
            .limit(limit)
            .offset(offset)
        )
        return [IdentityPointer.model_validate(r.body) for r in rows], int(total_rows[0][0])

    async def count_events_by_kind(self) -> dict[str, int]:
        rows = await self._read(
            select(LedgerEventRow.kind, func.count()).group_by(LedgerEventRow.kind)
        )
        return {kind: int(count) for kind, count in rows}

    async def count_pointers(self) -> tuple[int, int]:
        rows = await self._read(
            select(func.count(), func.count().filter(IdentityPointerRow.active.is_(True)))
            .select_from(IdentityPointerRow)
        )
        total, active = rows[0]
        return int(total), int(active)


__all__ = ["SQLStore"]
