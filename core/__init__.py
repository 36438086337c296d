"""
Core Module Package.

This package contains the core infrastructure components
that all other modules depend on.

Components:
- clock: Unified time abstraction
- exceptions: Custom exception hierarchy
- amounts: Fixed-point amount helpers
"""

from .clock import ClockProtocol, SystemClock, MockClock, ClockFactory, parse_node_time, format_node_time
from .amounts import AMOUNT_SCALE, format_amount, to_minor_units, to_whole_units
from .exceptions import (
    Severity,
    BridgeError,
    ConfigurationError,
    TransportError,
    NodeUnhealthy,
    NodeLocked,
    StaleHead,
    LowParticipation,
    StoreError,
    DataInconsistency,
    InsufficientReserve,
    InsufficientBalance,
    AmbiguousTransferOutcome,
    InvalidTransitionError,
)
from .records import (
    DepositStatus,
    DepositEvent,
    WithdrawalStatus,
    WithdrawalRecord,
)
