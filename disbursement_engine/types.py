"""
Disbursement Engine - Result Types.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from core.records import WithdrawalStatus


class DisbursementOutcome(Enum):
    """How a disbursement pass ended."""

    IDLE = "idle"
    """Nothing queued."""

    RESERVE_LOW = "reserve_low"
    """CSAF below floor; replenishment requested, pass aborted."""

    INSUFFICIENT_BALANCE = "insufficient_balance"
    """Head of queue exceeds spendable balance; waiting."""

    DRY_RUN = "dry_run"
    """Transfer logged but not submitted."""

    DISBURSED = "disbursed"
    """At least one transfer attempted."""


@dataclass
class DisbursementAttempt:
    """One submitted transfer and where its row ended up."""

    row_id: int
    out_address: str
    out_amount: int
    amount_str: str
    final_status: WithdrawalStatus
    out_trx_id: Optional[str] = None
    detail: Optional[str] = None


@dataclass
class DisburseResult:
    """Summary of one disbursement pass."""

    outcome: DisbursementOutcome
    queued: int = 0
    csaf: Optional[int] = None
    available: Optional[int] = None
    blocked_row_id: Optional[int] = None
    """Head-of-queue row that could not be covered."""
    attempts: List[DisbursementAttempt] = field(default_factory=list)

    @property
    def disbursed(self) -> int:
        return len(self.attempts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "queued": self.queued,
            "csaf": self.csaf,
            "available": self.available,
            "blocked_row_id": self.blocked_row_id,
            "attempts": [
                {
                    "row_id": a.row_id,
                    "amount": a.amount_str,
                    "status": a.final_status.name,
                    "trx_id": a.out_trx_id,
                }
                for a in self.attempts
            ],
        }
