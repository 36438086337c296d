"""
Health Gate Package.

Admits or rejects a reconciliation cycle based on node
lock state, head block age and participation rate.
"""

from .config import HealthConfig
from .types import Admit, HealthDecision, HealthSnapshot, Reject
from .gate import HealthGate


__all__ = [
    "HealthConfig",
    "HealthSnapshot",
    "Admit",
    "Reject",
    "HealthDecision",
    "HealthGate",
]
