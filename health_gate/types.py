"""
Health Gate - Decision Types.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Union

from core.exceptions import NodeUnhealthy


@dataclass(frozen=True)
class HealthSnapshot:
    """
    Node state observed at the start of a cycle.

    last_irreversible_block_num is the ingestion cutoff for the
    whole cycle and is never refetched mid-pass.
    """

    locked: bool
    head_block_num: int
    head_block_time: datetime
    head_age_seconds: float
    last_irreversible_block_num: int
    participation_rate: Decimal

    def summary(self) -> str:
        return (
            f"head={self.head_block_num} lib={self.last_irreversible_block_num} "
            f"age={self.head_age_seconds:.1f}s participation={self.participation_rate}%"
        )


@dataclass(frozen=True)
class Admit:
    """Node is healthy; proceed with the cycle."""

    snapshot: HealthSnapshot
    admitted: bool = True


@dataclass(frozen=True)
class Reject:
    """Node is unhealthy; skip the whole cycle."""

    reason: NodeUnhealthy
    admitted: bool = False

    @property
    def reason_code(self) -> str:
        return self.reason.reason_code


HealthDecision = Union[Admit, Reject]
