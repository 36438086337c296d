"""
Ledger Repository Tests.

============================================================
PURPOSE
============================================================
Tests for LedgerRepository against an in-memory SQLite store.

TEST CATEGORIES:
- Monitor cursor
- Deposit events (duplicates)
- Withdrawal selection and compare-and-set transitions
- Outbound confirmation

============================================================
"""

from datetime import datetime, timezone

import pytest

from core.records import DepositEvent, DepositStatus, WithdrawalStatus
from database import LedgerRepository
from tests.fakes import MONITORED


def make_event(sequence_no: int, status: DepositStatus = DepositStatus.GOOD_MEMO, trx_id: str = "aa") -> DepositEvent:
    return DepositEvent(
        monitor_account=MONITORED,
        sequence_no=sequence_no,
        from_account="1001",
        to_account=MONITORED,
        amount=1_000_000,
        asset_id=0,
        decrypted_memo="user42",
        description=None,
        block_num=900 + sequence_no,
        block_time=datetime(2024, 5, 1, 11, 55, tzinfo=timezone.utc),
        trx_in_block=0,
        op_in_trx=0,
        virtual_op=sequence_no,
        trx_id=trx_id,
        process_status=status,
    )


async def make_sent(store: LedgerRepository, trx_id: str, platform: str = "yoyow") -> int:
    record = await store.add_withdrawal("1001", 500_000, out_platform=platform)
    await store.transition_withdrawal(record.row_id, WithdrawalStatus.QUEUED, WithdrawalStatus.SUBMITTING)
    await store.transition_withdrawal(
        record.row_id, WithdrawalStatus.SUBMITTING, WithdrawalStatus.SENT, out_trx_id=trx_id
    )
    return record.row_id


# ============================================================
# CURSOR TESTS
# ============================================================

class TestCursor:
    """Tests for the monitor cursor."""

    @pytest.mark.asyncio
    async def test_absent_until_created(self, store):
        assert await store.get_cursor(MONITORED) is None

        assert await store.create_cursor(MONITORED) == 1
        assert await store.get_cursor(MONITORED) == 1

    @pytest.mark.asyncio
    async def test_advances(self, store):
        await store.create_cursor(MONITORED)

        assert await store.save_cursor(MONITORED, 15)
        assert await store.get_cursor(MONITORED) == 15

    @pytest.mark.asyncio
    async def test_never_moves_backwards(self, store):
        await store.create_cursor(MONITORED, 20)

        assert not await store.save_cursor(MONITORED, 10)
        assert await store.get_cursor(MONITORED) == 20

    @pytest.mark.asyncio
    async def test_persisted_across_sessions(self, database, store):
        await store.create_cursor(MONITORED)
        await store.save_cursor(MONITORED, 7)

        async with database.session_scope() as session:
            assert await LedgerRepository(session).get_cursor(MONITORED) == 7


# ============================================================
# DEPOSIT TESTS
# ============================================================

class TestDeposits:
    """Tests for deposit events."""

    @pytest.mark.asyncio
    async def test_insert_and_read(self, store):
        assert await store.insert_deposit(make_event(5))

        event = await store.get_deposit(MONITORED, 5)
        assert event.process_status == DepositStatus.GOOD_MEMO
        assert event.amount == 1_000_000
        assert await store.deposit_exists(MONITORED, 5)
        assert not await store.deposit_exists(MONITORED, 6)

    @pytest.mark.asyncio
    async def test_duplicate_reported_not_raised(self, store):
        await store.insert_deposit(make_event(5))

        assert not await store.insert_deposit(make_event(5, DepositStatus.BAD_MEMO))

        assert await store.count_deposits(MONITORED) == 1
        assert (await store.get_deposit(MONITORED, 5)).process_status == DepositStatus.GOOD_MEMO

    @pytest.mark.asyncio
    async def test_session_usable_after_duplicate(self, store):
        await store.insert_deposit(make_event(5))
        await store.insert_deposit(make_event(5))

        assert await store.insert_deposit(make_event(6))
        assert await store.count_deposits(MONITORED) == 2


# ============================================================
# WITHDRAWAL TESTS
# ============================================================

class TestWithdrawals:
    """Tests for withdrawal requests."""

    @pytest.mark.asyncio
    async def test_queued_oldest_first(self, store):
        await store.add_withdrawal("1003", 300, seq_no=3)
        await store.add_withdrawal("1001", 100, seq_no=1)
        await store.add_withdrawal("1002", 200, seq_no=2)
        await store.add_withdrawal("1009", 900, seq_no=0, status=WithdrawalStatus.FAILED)

        queued = await store.get_withdrawals_by_status(WithdrawalStatus.QUEUED)

        assert [w.seq_no for w in queued] == [1, 2, 3]
        assert len(await store.get_withdrawals_by_status(WithdrawalStatus.QUEUED, limit=1)) == 1

    @pytest.mark.asyncio
    async def test_transition_is_compare_and_set(self, store):
        record = await store.add_withdrawal("1001", 100)

        assert await store.transition_withdrawal(
            record.row_id, WithdrawalStatus.QUEUED, WithdrawalStatus.SUBMITTING
        )
        assert not await store.transition_withdrawal(
            record.row_id, WithdrawalStatus.QUEUED, WithdrawalStatus.SUBMITTING
        )

        stored = await store.get_withdrawal(record.row_id)
        assert stored.process_status == WithdrawalStatus.SUBMITTING

    @pytest.mark.asyncio
    async def test_transition_records_outcome(self, store):
        record = await store.add_withdrawal("1001", 100)
        await store.transition_withdrawal(record.row_id, WithdrawalStatus.QUEUED, WithdrawalStatus.SUBMITTING)

        out_time = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        await store.transition_withdrawal(
            record.row_id,
            WithdrawalStatus.SUBMITTING,
            WithdrawalStatus.FAILED,
            out_time=out_time,
            out_detail='{"message": "no balance"}',
        )

        stored = await store.get_withdrawal(record.row_id)
        assert stored.process_status == WithdrawalStatus.FAILED
        assert stored.out_detail == '{"message": "no balance"}'
        assert stored.out_time is not None


# ============================================================
# CONFIRMATION TESTS
# ============================================================

class TestConfirmation:
    """Tests for marking sent withdrawals confirmed."""

    @pytest.mark.asyncio
    async def test_confirms_matching_sent(self, store):
        row_id = await make_sent(store, "abc")
        other = await make_sent(store, "def")

        assert await store.confirm_withdrawals("abc", 950, out_platform="yoyow") == 1

        confirmed = await store.get_withdrawal(row_id)
        assert confirmed.process_status == WithdrawalStatus.CONFIRMED
        assert confirmed.out_block_num == 950
        assert (await store.get_withdrawal(other)).process_status == WithdrawalStatus.SENT

    @pytest.mark.asyncio
    async def test_platform_filter(self, store):
        row_id = await make_sent(store, "abc", platform="other")

        assert await store.confirm_withdrawals("abc", 950, out_platform="yoyow") == 0
        assert (await store.get_withdrawal(row_id)).process_status == WithdrawalStatus.SENT

    @pytest.mark.asyncio
    async def test_only_sent_rows(self, store):
        record = await store.add_withdrawal("1001", 100)
        assert await store.confirm_withdrawals("abc", 950) == 0
        assert (await store.get_withdrawal(record.row_id)).process_status == WithdrawalStatus.QUEUED

    @pytest.mark.asyncio
    async def test_uncommitted_confirmation_rides_on_deposit_insert(self, database, store):
        row_id = await make_sent(store, "abc")

        await store.confirm_withdrawals("abc", 950, commit=False)
        await store.insert_deposit(make_event(5, DepositStatus.OUTBOUND_ACK, trx_id="abc"))

        async with database.session_scope() as session:
            stored = await LedgerRepository(session).get_withdrawal(row_id)
        assert stored.process_status == WithdrawalStatus.CONFIRMED


# ============================================================
# ENGINE TESTS
# ============================================================

class TestDatabase:
    """Tests for the engine wrapper."""

    @pytest.mark.asyncio
    async def test_ensure_connected(self, database):
        await database.ensure_connected()

    @pytest.mark.asyncio
    async def test_create_all_idempotent(self, database):
        await database.create_all()
