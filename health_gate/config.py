"""
Health Gate - Configuration.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List


@dataclass(frozen=True)
class HealthConfig:
    """
    Thresholds deciding whether the node is trustworthy this cycle.
    """

    head_age_threshold_seconds: float = 15.0
    """Reject when the head block is at least this old."""

    participation_threshold_percent: Decimal = Decimal("79.999")
    """Reject when participation is at or below this rate."""

    def validate(self) -> List[str]:
        errors = []
        if self.head_age_threshold_seconds <= 0:
            errors.append("head_age_threshold_seconds must be positive")
        if not Decimal("0") <= self.participation_threshold_percent <= Decimal("100"):
            errors.append("participation_threshold_percent must be within [0, 100]")
        return errors
