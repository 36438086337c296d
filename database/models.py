"""
Database - ORM Models.

============================================================
PURPOSE
============================================================
SQLAlchemy ORM models for the ledger store.

TABLES:
- bridge_monitor_cursor: next history sequence per account
- bridge_deposit_events: ingested transfers, unique per
  (monitor_account, seq_no)
- bridge_withdrawal_requests: outbound payment queue and
  audit trail

AUDIT REQUIREMENTS:
- Rows are never deleted
- Deposit rows are immutable except process_status

============================================================
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .engine import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# MONITOR CURSOR
# ============================================================

class MonitorCursorModel(Base):
    """Persisted ingestion checkpoint."""

    __tablename__ = "bridge_monitor_cursor"

    monitor_account: Mapped[str] = mapped_column(String(32), primary_key=True)
    next_seq_no: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


# ============================================================
# DEPOSIT EVENTS
# ============================================================

class DepositEventModel(Base):
    """
    Ingested transfer.

    The composite primary key enforces exactly-once ingestion.
    """

    __tablename__ = "bridge_deposit_events"

    monitor_account: Mapped[str] = mapped_column(String(32), primary_key=True)
    seq_no: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)

    from_account: Mapped[str] = mapped_column(String(32), nullable=False)
    to_account: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    asset_id: Mapped[int] = mapped_column(Integer, nullable=False)
    decrypted_memo: Mapped[Optional[str]] = mapped_column(Text)
    description: Mapped[Optional[str]] = mapped_column(Text)

    block_num: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    block_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    trx_in_block: Mapped[int] = mapped_column(Integer, nullable=False)
    op_in_trx: Mapped[int] = mapped_column(Integer, nullable=False)
    virtual_op: Mapped[int] = mapped_column(BigInteger, nullable=False)
    trx_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    process_status: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


# ============================================================
# WITHDRAWAL REQUESTS
# ============================================================

class WithdrawalRequestModel(Base):
    """
    Outbound payment request.

    Rows are produced upstream in QUEUED state and only
    transitioned by the disbursement engine.
    """

    __tablename__ = "bridge_withdrawal_requests"

    row_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    seq_no: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    out_platform: Mapped[Optional[str]] = mapped_column(String(16))
    out_address: Mapped[str] = mapped_column(String(64), nullable=False)
    out_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    out_memo: Mapped[Optional[str]] = mapped_column(Text)

    process_status: Mapped[int] = mapped_column(Integer, nullable=False)
    out_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    out_trx_id: Mapped[Optional[str]] = mapped_column(String(64))
    out_detail: Mapped[Optional[str]] = mapped_column(Text)
    out_block_num: Mapped[Optional[int]] = mapped_column(BigInteger)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_bridge_withdrawal_status_seq", "process_status", "seq_no"),
        Index("ix_bridge_withdrawal_trx", "out_trx_id", "process_status"),
    )
