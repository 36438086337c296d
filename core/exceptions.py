"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the bridge.

- Provides clear exception hierarchy
- Separates expected operational conditions from faults
- Includes context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
BridgeError (base)
├── ConfigurationError
├── TransportError
├── NodeUnhealthy
│   ├── NodeLocked
│   ├── StaleHead
│   └── LowParticipation
├── StoreError
├── DataInconsistency
├── InsufficientReserve
├── InsufficientBalance
├── AmbiguousTransferOutcome
└── InvalidTransitionError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels."""

    LOW = "low"
    """Expected steady-state condition, informational."""

    MEDIUM = "medium"
    """Moderate issue, cycle is retried on next tick."""

    HIGH = "high"
    """Serious issue, may need operator attention."""

    CRITICAL = "critical"
    """Money may have moved without a recorded outcome."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class BridgeError(Exception):
    """
    Base exception for all bridge errors.

    All exceptions carry:
    - severity: for log level selection
    - context: for debugging
    - recoverable: whether the next cycle may succeed
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_recoverable: bool = True

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.recoverable = recoverable if recoverable is not None else self.default_recoverable
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_expected(self) -> bool:
        """Whether this is an expected operational condition (warning, not fault)."""
        return self.severity == Severity.LOW

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def to_log_format(self) -> str:
        """Format exception for structured logging."""
        ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        line = f"[{self.severity.value.upper()}] {type(self).__name__}: {self.message}"
        if ctx_str:
            line += f" | {ctx_str}"
        return line


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(BridgeError):
    """Error in configuration."""

    default_severity = Severity.HIGH
    default_recoverable = False


# ============================================================
# TRANSPORT ERRORS
# ============================================================

class TransportError(BridgeError):
    """RPC timeout, connection failure, or unusable node response."""

    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        status_code: Optional[int] = None,
        rpc_error: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if command:
            context["command"] = command
        if status_code is not None:
            context["status_code"] = status_code
        if rpc_error is not None:
            context["rpc_error"] = str(rpc_error)[:200]

        super().__init__(message, context=context, **kwargs)
        self.command = command
        self.status_code = status_code
        self.rpc_error = rpc_error


# ============================================================
# NODE HEALTH
# ============================================================

class NodeUnhealthy(BridgeError):
    """Node is reachable but not trustworthy this cycle."""

    default_severity = Severity.LOW
    reason_code: str = "NODE_UNHEALTHY"


class NodeLocked(NodeUnhealthy):
    """The node's wallet is locked."""

    reason_code = "NODE_LOCKED"

    def __init__(self):
        super().__init__("Node wallet is locked")


class StaleHead(NodeUnhealthy):
    """Head block is too old."""

    reason_code = "STALE_HEAD"

    def __init__(self, age_seconds: float, threshold_seconds: float):
        super().__init__(
            f"Head block age {age_seconds:.0f}s exceeds threshold {threshold_seconds:.0f}s",
            context={"age_seconds": age_seconds, "threshold_seconds": threshold_seconds},
        )
        self.age_seconds = age_seconds
        self.threshold_seconds = threshold_seconds


class LowParticipation(NodeUnhealthy):
    """Network participation rate is too low."""

    reason_code = "LOW_PARTICIPATION"

    def __init__(self, rate: Decimal, threshold: Decimal):
        super().__init__(
            f"Participation rate {rate:.2f}% at or below threshold {threshold}%",
            context={"rate": str(rate), "threshold": str(threshold)},
        )
        self.rate = rate
        self.threshold = threshold


# ============================================================
# STORE ERRORS
# ============================================================

class StoreError(BridgeError):
    """Ledger store connection or query failure."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if operation:
            context["operation"] = operation
        super().__init__(message, context=context, **kwargs)
        self.operation = operation


# ============================================================
# DATA ERRORS
# ============================================================

class DataInconsistency(BridgeError):
    """Unexpected missing or malformed field in a remote response."""

    default_severity = Severity.HIGH

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        actual: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if field:
            context["field"] = field
        if actual is not None:
            context["actual"] = str(actual)[:100]
        super().__init__(message, context=context, **kwargs)
        self.field = field


# ============================================================
# DISBURSEMENT CONDITIONS
# ============================================================

class InsufficientReserve(BridgeError):
    """CSAF reserve below floor; disbursement waits for replenishment."""

    default_severity = Severity.LOW

    def __init__(self, csaf: int, floor: int):
        super().__init__(
            f"CSAF reserve {csaf} below floor {floor}",
            context={"csaf": csaf, "floor": floor},
        )
        self.csaf = csaf
        self.floor = floor


class InsufficientBalance(BridgeError):
    """Spendable balance cannot cover the head-of-queue withdrawal."""

    default_severity = Severity.LOW

    def __init__(self, available: int, required: int, row_id: Optional[int] = None):
        super().__init__(
            f"Available balance {available} below required {required}",
            context={"available": available, "required": required, "row_id": row_id},
        )
        self.available = available
        self.required = required
        self.row_id = row_id


class AmbiguousTransferOutcome(BridgeError):
    """Transfer response carried neither an error nor a result."""

    default_severity = Severity.CRITICAL
    default_recoverable = False


# ============================================================
# STATE MACHINE ERRORS
# ============================================================

class InvalidTransitionError(BridgeError):
    """Attempted withdrawal transition is not permitted."""

    default_severity = Severity.HIGH
    default_recoverable = False

    def __init__(self, row_id: Any, from_status: Any, to_status: Any, reason: str):
        super().__init__(
            f"Cannot transition withdrawal {row_id} from {from_status} to {to_status}: {reason}",
            context={"row_id": row_id, "from": str(from_status), "to": str(to_status)},
        )


__all__ = [
    "Severity",
    "BridgeError",
    "ConfigurationError",
    "TransportError",
    "NodeUnhealthy",
    "NodeLocked",
    "StaleHead",
    "LowParticipation",
    "StoreError",
    "DataInconsistency",
    "InsufficientReserve",
    "InsufficientBalance",
    "AmbiguousTransferOutcome",
    "InvalidTransitionError",
]
