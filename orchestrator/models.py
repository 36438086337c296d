"""
Orchestrator - Models.

============================================================
RESPONSIBILITY
============================================================
Per-cycle reports and their bounded in-memory history.

============================================================
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from disbursement_engine import DisburseResult
from ingestion_engine import IngestResult


# ============================================================
# CYCLE REPORT
# ============================================================

@dataclass
class CycleReport:
    """Outcome of one reconciliation cycle."""

    cycle_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None

    admitted: Optional[bool] = None
    """Gate decision; None if the gate never completed."""

    rejection_reason: Optional[str] = None
    """Reason code when the gate rejected the node."""

    ingest: Optional[IngestResult] = None
    disburse: Optional[DisburseResult] = None

    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def success(self) -> bool:
        """Admitted and both engines completed."""
        return self.admitted is True and self.error is None

    @property
    def duration_seconds(self) -> float:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "cycle_id": self.cycle_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "success": self.success,
            "admitted": self.admitted,
            "rejection_reason": self.rejection_reason,
            "ingest": self.ingest.to_dict() if self.ingest else None,
            "disburse": self.disburse.to_dict() if self.disburse else None,
            "error": self.error,
            "error_type": self.error_type,
        }


# ============================================================
# CYCLE HISTORY
# ============================================================

class CycleHistory:
    """
    Tracks recent cycle reports.
    """

    def __init__(self, max_size: int = 100):
        """
        Initialize history.

        Args:
            max_size: Maximum cycles to keep
        """
        self._max_size = max_size
        self._cycles: List[CycleReport] = []
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._cycles)

    async def add(self, report: CycleReport) -> None:
        """Add a cycle report."""
        async with self._lock:
            self._cycles.append(report)
            if len(self._cycles) > self._max_size:
                self._cycles = self._cycles[-self._max_size:]

    def get_recent(self, limit: int = 10) -> List[CycleReport]:
        """Get recent cycles."""
        return self._cycles[-limit:]

    def get_last(self) -> Optional[CycleReport]:
        """Get last cycle."""
        return self._cycles[-1] if self._cycles else None

    def get_success_rate(self, last_n: int = 10) -> float:
        """Get success rate of last N cycles."""
        recent = self._cycles[-last_n:]
        if not recent:
            return 0.0
        successes = sum(1 for c in recent if c.success)
        return successes / len(recent)
