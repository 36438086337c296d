"""
Ingestion Engine - Result Types.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from core.records import DepositStatus


class PageOutcome(Enum):
    """How processing of one history page ended."""

    CONTINUE = "continue"
    """Page fully processed; fetch the next one if any remain."""

    STOP = "stop"
    """Irreversibility cutoff reached; end the pass."""


@dataclass
class IngestResult:
    """Summary of one ingestion pass."""

    account: str
    start_seq: int
    """Cursor value at the start of the pass."""

    next_seq: int
    """Cursor value persisted at the end of the pass."""

    max_seq: int = 0
    """Highest sequence the node reported."""

    cutoff_block_num: int = 0
    """Last irreversible block used as the cutoff."""

    cutoff_sequence: Optional[int] = None
    """First sequence held back by the cutoff, if any."""

    inserted: int = 0
    duplicates: int = 0
    non_transfers: int = 0
    confirmed_withdrawals: int = 0
    by_status: Dict[DepositStatus, int] = field(default_factory=dict)

    @property
    def stopped_at_cutoff(self) -> bool:
        return self.cutoff_sequence is not None

    @property
    def advanced(self) -> int:
        return self.next_seq - self.start_seq

    def count(self, status: DepositStatus) -> None:
        self.inserted += 1
        self.by_status[status] = self.by_status.get(status, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account": self.account,
            "start_seq": self.start_seq,
            "next_seq": self.next_seq,
            "max_seq": self.max_seq,
            "cutoff_block_num": self.cutoff_block_num,
            "cutoff_sequence": self.cutoff_sequence,
            "inserted": self.inserted,
            "duplicates": self.duplicates,
            "non_transfers": self.non_transfers,
            "confirmed_withdrawals": self.confirmed_withdrawals,
            "by_status": {s.name: n for s, n in self.by_status.items()},
        }
