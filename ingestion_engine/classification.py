"""
Ingestion Engine - Deposit Classification.

Rules, first match wins:

    from == monitored account   -> OUTBOUND_ACK
    asset != configured asset   -> WRONG_ASSET
    memo absent or empty        -> EMPTY_MEMO
    memo fails validation       -> BAD_MEMO
    otherwise                   -> GOOD_MEMO
"""

import re
from typing import Optional

from core.records import DepositStatus
from node_client import HistoryRecord


class MemoValidator:
    """Full-match regex check of a decrypted memo."""

    def __init__(self, pattern: str):
        self._regex = re.compile(pattern)

    @property
    def pattern(self) -> str:
        return self._regex.pattern

    def is_valid(self, memo: Optional[str]) -> bool:
        if not memo:
            return False
        return self._regex.fullmatch(memo) is not None


def classify(
    record: HistoryRecord,
    monitored_account: str,
    asset_id: int,
    validator: MemoValidator,
) -> DepositStatus:
    """
    Settlement outcome of a transfer record.

    Raises:
        ValueError: If the record is not a transfer
    """
    transfer = record.transfer
    if transfer is None:
        raise ValueError(f"History record {record.sequence} is not a transfer")

    if transfer.from_account == monitored_account:
        return DepositStatus.OUTBOUND_ACK
    if transfer.asset_id != asset_id:
        return DepositStatus.WRONG_ASSET
    if not record.memo:
        return DepositStatus.EMPTY_MEMO
    if not validator.is_valid(record.memo):
        return DepositStatus.BAD_MEMO
    return DepositStatus.GOOD_MEMO
