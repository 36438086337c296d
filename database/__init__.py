"""
Database Package Initialization.

============================================================
LEDGER STORE
============================================================

Async SQLAlchemy persistence for the bridge:

- Monitor cursor per account
- Deposit events, exactly once per (account, sequence)
- Withdrawal request queue and audit trail

All writes are explicit and committed by the repository.
Failures raise StoreError.

============================================================
"""

from .config import DEFAULT_DATABASE_URL, DatabaseConfig
from .engine import Base, Database
from .models import (
    DepositEventModel,
    MonitorCursorModel,
    WithdrawalRequestModel,
)
from .repository import LedgerRepository


__all__ = [
    "DEFAULT_DATABASE_URL",
    "DatabaseConfig",
    "Base",
    "Database",
    "MonitorCursorModel",
    "DepositEventModel",
    "WithdrawalRequestModel",
    "LedgerRepository",
]
