"""
Orchestrator Package - Bridge Coordination Layer.

============================================================
PACKAGE OVERVIEW
============================================================
Single entrypoint that wires configuration, logging, the
node client, the ledger store and both engines into one
periodic worker.

============================================================
CORE PRINCIPLES
============================================================
1. The orchestrator has no settlement logic
2. An unhealthy node means no ingestion and no payment
3. A cycle error never stops the worker
4. Shutdown lets the in-flight cycle finish

============================================================
ARCHITECTURE
============================================================

    +-----------------------------------------------------+
    |               ReconciliationDriver                  |
    |-----------------------------------------------------|
    |  HealthGate          |  admit / reject              |
    |  IngestionEngine     |  history -> deposit rows     |
    |  DisbursementEngine  |  queued rows -> transfers    |
    |  CycleHistory        |  bounded cycle reports       |
    |  CLI                 |  argparse entry point        |
    +-----------------------------------------------------+

============================================================
"""

from .config import BridgeConfig, SchedulerConfig
from .models import CycleHistory, CycleReport
from .logging_setup import setup_logging
from .driver import ReconciliationDriver


__all__ = [
    "BridgeConfig",
    "SchedulerConfig",
    "CycleHistory",
    "CycleReport",
    "setup_logging",
    "ReconciliationDriver",
]
