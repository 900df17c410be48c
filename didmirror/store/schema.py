"""SQL tables backing SQLStore."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class LedgerEventRow(Base):
    """Append-only audit log of classified contract events."""

    __tablename__ = "ledger_events"
    __table_args__ = (
        Index("ix_ledger_events_position", "block_number", "log_index"),
    )

    transaction_hash: Mapped[str] = mapped_column(String, primary_key=True)
    log_index: Mapped[int] = mapped_column(Integer, primary_key=True)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    block_timestamp: Mapped[int | None] = mapped_column(BigInteger)
    contract_address: Mapped[str] = mapped_column(String, nullable=False)
    family: Mapped[str] = mapped_column(String, nullable=False)
    kind: Mapped[str] = mapped_column(String, nullable=False, index=True)
    did_hash: Mapped[str] = mapped_column(String, nullable=False, index=True)
    body: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        comment="Full LedgerEvent document",
    )


class IdentityPointerRow(Base):
    """Current mirrored state per DID, one row per identity hash."""

    __tablename__ = "identity_pointers"

    did_hash: Mapped[str] = mapped_column(String, primary_key=True)
    did: Mapped[str] = mapped_column(String, nullable=False, default="", index=True)
    owner: Mapped[str] = mapped_column(String, nullable=False, default="", index=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    updated_at: Mapped[int | None] = mapped_column(
        BigInteger,
        comment="Block timestamp of the latest applied event",
    )
    body: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        comment="Full IdentityPointer document",
    )


class IndexerState(Base):
    """Singleton table holding the indexer checkpoint.

    Always contains at most one row (id=1).
    """

    __tablename__ = "indexer_state"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        default=1,
        comment="Singleton row (always id=1)",
    )
    checkpoint_height: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Highest block whose events are all applied",
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        comment="When the checkpoint was last advanced",
    )


__all__ = ["Base", "IdentityPointerRow", "IndexerState", "LedgerEventRow"]
