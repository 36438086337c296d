"""
Disbursement Engine Package.

Pays queued withdrawals one at a time, gated on CSAF
reserve and spendable balance, with a persisted
state machine around every submission.
"""

from .config import DisbursementConfig
from .state_machine import (
    VALID_TRANSITIONS,
    TransitionGuard,
    WithdrawalStateMachine,
    WithdrawalTransition,
)
from .types import DisbursementAttempt, DisbursementOutcome, DisburseResult
from .engine import DisbursementEngine


__all__ = [
    "DisbursementConfig",
    "VALID_TRANSITIONS",
    "TransitionGuard",
    "WithdrawalStateMachine",
    "WithdrawalTransition",
    "DisbursementAttempt",
    "DisbursementOutcome",
    "DisburseResult",
    "DisbursementEngine",
]
