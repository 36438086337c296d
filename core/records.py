"""
Core Module - Ledger Records.

============================================================
RESPONSIBILITY
============================================================
Domain records shared by the ingestion engine, the
disbursement engine and the ledger repository.

STATUS CODES (persisted as integers):

    Deposit events
        2    OUTBOUND_ACK   our own outgoing transfer
        11   GOOD_MEMO      eligible for crediting
        101  WRONG_ASSET
        102  EMPTY_MEMO
        104  BAD_MEMO

    Withdrawal requests
        11   QUEUED
        21   SUBMITTING
        22   SENT
        23   CONFIRMED
        201  FAILED
        202  UNKNOWN

============================================================
"""

from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Optional


# ============================================================
# DEPOSIT EVENTS
# ============================================================

class DepositStatus(IntEnum):
    """Settlement outcome of an ingested transfer."""

    OUTBOUND_ACK = 2
    """Transfer sent from the monitored account."""

    GOOD_MEMO = 11
    """Valid memo; eligible for downstream crediting."""

    WRONG_ASSET = 101
    """Asset differs from the configured asset."""

    EMPTY_MEMO = 102
    """No memo attached."""

    BAD_MEMO = 104
    """Memo failed validation."""


@dataclass(frozen=True)
class DepositEvent:
    """One ingested transfer, keyed by (monitor_account, sequence_no)."""

    monitor_account: str
    sequence_no: int
    from_account: str
    to_account: str
    amount: int
    asset_id: int
    decrypted_memo: Optional[str]
    description: Optional[str]
    block_num: int
    block_time: datetime
    trx_in_block: int
    op_in_trx: int
    virtual_op: int
    trx_id: str
    process_status: DepositStatus


# ============================================================
# WITHDRAWAL REQUESTS
# ============================================================

class WithdrawalStatus(IntEnum):
    """
    Withdrawal lifecycle state.

        QUEUED -> SUBMITTING -> {FAILED | SENT | UNKNOWN}
        SENT -> CONFIRMED
    """

    QUEUED = 11
    SUBMITTING = 21
    SENT = 22
    CONFIRMED = 23
    FAILED = 201
    UNKNOWN = 202

    def is_terminal(self) -> bool:
        """FAILED, CONFIRMED and UNKNOWN accept no further transitions."""
        return self in {
            WithdrawalStatus.FAILED,
            WithdrawalStatus.CONFIRMED,
            WithdrawalStatus.UNKNOWN,
        }


@dataclass
class WithdrawalRecord:
    """A requested outbound payment."""

    row_id: int
    out_address: str
    out_amount: int
    """Minor units."""
    process_status: WithdrawalStatus
    out_memo: Optional[str] = None
    seq_no: int = 0
    out_platform: Optional[str] = None
    out_time: Optional[datetime] = None
    out_trx_id: Optional[str] = None
    out_detail: Optional[str] = None
    out_block_num: Optional[int] = None
