"""
Disbursement Engine - Configuration.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Optional


@dataclass(frozen=True)
class DisbursementConfig:
    """
    Settings for outbound payments.
    """

    asset_symbol: str = "YOYO"
    """Symbol passed to the wallet transfer command."""

    reserve_floor: int = 2_000_000
    """Minimum CSAF (minor units) before any transfer is attempted."""

    reserve_collect_amount: str = "20"
    """Whole-unit amount requested when replenishing CSAF."""

    out_platform: Optional[str] = "yoyow"
    """Platform tag of withdrawals this bridge confirms."""

    dry_run: bool = False
    """Log the transfer that would be made; leave the row queued."""

    def validate(self) -> List[str]:
        errors = []
        if not self.asset_symbol:
            errors.append("asset_symbol is required")
        if self.reserve_floor < 0:
            errors.append("reserve_floor must be non-negative")
        try:
            if Decimal(self.reserve_collect_amount) <= 0:
                errors.append("reserve_collect_amount must be positive")
        except InvalidOperation:
            errors.append(f"reserve_collect_amount is not a number: {self.reserve_collect_amount!r}")
        return errors
