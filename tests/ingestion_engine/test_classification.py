"""
Deposit Classification Tests.
"""

from datetime import datetime, timezone
from typing import Optional

import pytest

from core.records import DepositStatus
from ingestion_engine import DEFAULT_MEMO_PATTERN, MemoValidator, classify
from node_client import HistoryRecord, TransferPayload
from tests.fakes import MONITORED


def record(from_account: str = "1001", asset_id: int = 0, memo: Optional[str] = "user42") -> HistoryRecord:
    return HistoryRecord(
        sequence=1,
        block_num=100,
        block_time=datetime(2024, 5, 1, tzinfo=timezone.utc),
        trx_in_block=0,
        op_in_trx=0,
        virtual_op=1,
        op_type=0,
        memo=memo,
        transfer=TransferPayload(
            from_account=from_account,
            to_account=MONITORED,
            amount=100,
            asset_id=asset_id,
        ),
    )


@pytest.fixture
def validator():
    return MemoValidator(DEFAULT_MEMO_PATTERN)


class TestClassify:
    """Classification rules, first match wins."""

    def test_outbound(self, validator):
        assert classify(record(from_account=MONITORED), MONITORED, 0, validator) == DepositStatus.OUTBOUND_ACK

    def test_outbound_wins_over_asset(self, validator):
        status = classify(record(from_account=MONITORED, asset_id=3, memo=None), MONITORED, 0, validator)
        assert status == DepositStatus.OUTBOUND_ACK

    def test_wrong_asset(self, validator):
        assert classify(record(asset_id=3), MONITORED, 0, validator) == DepositStatus.WRONG_ASSET

    def test_wrong_asset_wins_over_memo(self, validator):
        assert classify(record(asset_id=3, memo=None), MONITORED, 0, validator) == DepositStatus.WRONG_ASSET

    @pytest.mark.parametrize("memo", [None, ""])
    def test_empty_memo(self, validator, memo):
        assert classify(record(memo=memo), MONITORED, 0, validator) == DepositStatus.EMPTY_MEMO

    @pytest.mark.parametrize("memo", ["hello world", "x" * 65, "user;drop"])
    def test_bad_memo(self, validator, memo):
        assert classify(record(memo=memo), MONITORED, 0, validator) == DepositStatus.BAD_MEMO

    def test_good_memo(self, validator):
        assert classify(record(memo="user_42-a"), MONITORED, 0, validator) == DepositStatus.GOOD_MEMO

    def test_non_transfer_rejected(self, validator):
        entry = HistoryRecord(
            sequence=1,
            block_num=100,
            block_time=datetime(2024, 5, 1, tzinfo=timezone.utc),
            trx_in_block=0,
            op_in_trx=0,
            virtual_op=1,
            op_type=5,
        )
        with pytest.raises(ValueError):
            classify(entry, MONITORED, 0, validator)


class TestMemoValidator:
    """Tests for MemoValidator."""

    def test_full_match_required(self):
        validator = MemoValidator(r"\d+")
        assert validator.is_valid("123")
        assert not validator.is_valid("123abc")

    def test_empty_is_invalid(self):
        assert not MemoValidator(r".*").is_valid("")
