"""
Disbursement Engine - Withdrawal State Machine.

============================================================
PURPOSE
============================================================
Guards and persists withdrawal status transitions.

STATE MACHINE:

    QUEUED(11)
        │
        ▼
    SUBMITTING(21) ──► FAILED(201)
        │         └──► UNKNOWN(202)
        ▼
    SENT(22) ──► CONFIRMED(23)

INVARIANTS:
- No transition skips SUBMITTING
- SUBMITTING is entered at most once per row
- FAILED, UNKNOWN and CONFIRMED are final
- Every transition is a compare-and-set on the stored status,
  committed before the method returns

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from core.clock import ClockFactory, ClockProtocol
from core.exceptions import InvalidTransitionError
from core.records import WithdrawalRecord, WithdrawalStatus
from database import LedgerRepository


logger = logging.getLogger(__name__)


# ============================================================
# STATE TRANSITION RULES
# ============================================================

VALID_TRANSITIONS: Dict[WithdrawalStatus, Set[WithdrawalStatus]] = {
    WithdrawalStatus.QUEUED: {
        WithdrawalStatus.SUBMITTING,
    },
    WithdrawalStatus.SUBMITTING: {
        WithdrawalStatus.FAILED,
        WithdrawalStatus.SENT,
        WithdrawalStatus.UNKNOWN,
    },
    WithdrawalStatus.SENT: {
        WithdrawalStatus.CONFIRMED,
    },
    # Terminal states - no transitions out
    WithdrawalStatus.FAILED: set(),
    WithdrawalStatus.UNKNOWN: set(),
    WithdrawalStatus.CONFIRMED: set(),
}


@dataclass
class WithdrawalTransition:
    """A recorded status change."""

    row_id: int
    from_status: WithdrawalStatus
    to_status: WithdrawalStatus
    timestamp: datetime
    reason: str = ""
    details: Dict[str, str] = field(default_factory=dict)


# ============================================================
# TRANSITION GUARD
# ============================================================

class TransitionGuard:
    """
    Guard for withdrawal transitions.
    """

    @staticmethod
    def can_transition(
        from_status: WithdrawalStatus,
        to_status: WithdrawalStatus,
    ) -> Tuple[bool, str]:
        """
        Check if transition is allowed.

        Returns:
            Tuple of (allowed, reason)
        """
        if to_status in VALID_TRANSITIONS.get(from_status, set()):
            return True, "Valid transition"

        if from_status.is_terminal():
            return False, f"{from_status.name} is terminal"

        if from_status == to_status:
            return False, f"Already {from_status.name}"

        return False, f"Invalid transition: {from_status.name} -> {to_status.name}"


# ============================================================
# WITHDRAWAL STATE MACHINE
# ============================================================

class WithdrawalStateMachine:
    """
    Drives one withdrawal row through its lifecycle.

    The in-memory record is only updated after the store
    accepted the transition.
    """

    def __init__(
        self,
        record: WithdrawalRecord,
        store: LedgerRepository,
        clock: Optional[ClockProtocol] = None,
    ):
        self._record = record
        self._store = store
        self._clock = clock or ClockFactory.get_clock()
        self._history: List[WithdrawalTransition] = []
        self._submitted_at: Optional[datetime] = None

    @property
    def record(self) -> WithdrawalRecord:
        return self._record

    @property
    def current_status(self) -> WithdrawalStatus:
        return self._record.process_status

    @property
    def history(self) -> List[WithdrawalTransition]:
        return list(self._history)

    async def transition_to(
        self,
        target: WithdrawalStatus,
        reason: str = "",
        out_trx_id: Optional[str] = None,
        out_detail: Optional[str] = None,
        out_time: Optional[datetime] = None,
    ) -> WithdrawalTransition:
        """
        Persist a transition.

        Raises:
            InvalidTransitionError: If the guard refuses or the stored
                row is no longer in the expected status
            StoreError: If the write fails
        """
        current = self.current_status
        allowed, guard_reason = TransitionGuard.can_transition(current, target)
        if not allowed:
            raise InvalidTransitionError(self._record.row_id, current.name, target.name, guard_reason)

        now = self._clock.now()

        written = await self._store.transition_withdrawal(
            self._record.row_id,
            current,
            target,
            out_time=out_time,
            out_trx_id=out_trx_id,
            out_detail=out_detail,
        )
        if not written:
            raise InvalidTransitionError(
                self._record.row_id,
                current.name,
                target.name,
                "stored status changed underneath",
            )

        self._record.process_status = target
        if out_time is not None:
            self._record.out_time = out_time
        if out_trx_id is not None:
            self._record.out_trx_id = out_trx_id
        if out_detail is not None:
            self._record.out_detail = out_detail

        event = WithdrawalTransition(
            row_id=self._record.row_id,
            from_status=current,
            to_status=target,
            timestamp=now,
            reason=reason,
            details={"out_trx_id": out_trx_id} if out_trx_id else {},
        )
        self._history.append(event)

        log = logger.warning if target in (WithdrawalStatus.FAILED, WithdrawalStatus.UNKNOWN) else logger.info
        log(
            f"Withdrawal {self._record.row_id}: {current.name} -> {target.name}"
            + (f" ({reason})" if reason else "")
        )
        return event

    # --------------------------------------------------------
    # CONVENIENCE METHODS
    # --------------------------------------------------------

    async def mark_submitting(self) -> WithdrawalTransition:
        event = await self.transition_to(WithdrawalStatus.SUBMITTING, "transfer about to be submitted")
        self._submitted_at = event.timestamp
        return event

    def _out_time(self) -> datetime:
        """Time the transfer went out, or now if mark_submitting ran elsewhere."""
        return self._submitted_at or self._clock.now()

    async def mark_failed(self, detail: str) -> WithdrawalTransition:
        return await self.transition_to(
            WithdrawalStatus.FAILED,
            "node rejected transfer",
            out_detail=detail,
            out_time=self._out_time(),
        )

    async def mark_sent(self, trx_id: str, detail: str) -> WithdrawalTransition:
        return await self.transition_to(
            WithdrawalStatus.SENT,
            f"broadcast as {trx_id}",
            out_trx_id=trx_id,
            out_detail=detail,
            out_time=self._out_time(),
        )

    async def mark_unknown(self, detail: str) -> WithdrawalTransition:
        return await self.transition_to(
            WithdrawalStatus.UNKNOWN,
            "outcome unknown, manual review",
            out_detail=detail,
            out_time=self._out_time(),
        )
