"""
Reconciliation Driver Tests.

============================================================
PURPOSE
============================================================
Tests for ReconciliationDriver cycles, the startup audit,
and the scheduling loop.

TEST CATEGORIES:
- Cycle sequencing and error containment
- Startup audit of interrupted submissions
- Loop, graceful stop and drain timeout
- Status line
- Cycle history

============================================================
"""

import asyncio
import logging
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from core.exceptions import InsufficientBalance, TransportError
from core.records import WithdrawalStatus
from database import LedgerRepository
from ingestion_engine import IngestionConfig
from orchestrator import BridgeConfig, CycleHistory, CycleReport, ReconciliationDriver, SchedulerConfig
from tests.fakes import MONITORED


def make_config(**scheduler) -> BridgeConfig:
    return BridgeConfig(
        ingestion=IngestionConfig(monitored_account=MONITORED),
        scheduler=SchedulerConfig(**scheduler),
    )


@pytest.fixture
def driver(node, database, clock):
    return ReconciliationDriver(make_config(interval_seconds=0.01), node, database, clock)


async def wait_for_cycles(driver: ReconciliationDriver, count: int) -> None:
    while len(driver.history) < count:
        await asyncio.sleep(0.01)


async def wait_for_command(node, command: str) -> None:
    while not node.commands(command):
        await asyncio.sleep(0.01)


# ============================================================
# CYCLE TESTS
# ============================================================

class TestRunCycle:
    """Tests for a single cycle."""

    @pytest.mark.asyncio
    async def test_admitted_cycle_runs_both_engines(self, driver, node, database):
        node.add_transfer(1, block_num=900)
        async with database.session_scope() as session:
            record = await LedgerRepository(session).add_withdrawal("1001", 100, seq_no=1)

        report = await driver.run_cycle()

        assert report.success
        assert report.ingest.inserted == 1
        assert report.disburse.disbursed == 1
        async with database.session_scope() as session:
            stored = await LedgerRepository(session).get_withdrawal(record.row_id)
        assert stored.process_status == WithdrawalStatus.SENT

    @pytest.mark.asyncio
    async def test_gate_then_ingest_then_disburse(self, driver, node, database):
        node.add_transfer(1, block_num=900)
        async with database.session_scope() as session:
            await LedgerRepository(session).add_withdrawal("1001", 100, seq_no=1)

        await driver.run_cycle()

        names = [command for command, _ in node.calls]
        assert names[:2] == ["is_locked", "info"]
        assert names.index("get_block") < names.index("get_full_account") < names.index("transfer")

    @pytest.mark.asyncio
    async def test_rejected_cycle_touches_nothing(self, driver, node):
        node.locked = True
        node.add_transfer(1, block_num=900)

        report = await driver.run_cycle()

        assert report.admitted is False
        assert report.rejection_reason == "NODE_LOCKED"
        assert not report.success
        assert report.ingest is None
        assert [command for command, _ in node.calls] == ["is_locked"]

    @pytest.mark.asyncio
    async def test_transport_error_contained(self, driver, node):
        node.failures["info"] = TransportError("connection refused", command="info")

        report = await driver.run_cycle()

        assert report.error_type == "TransportError"
        assert report.error == "connection refused"
        assert report.admitted is None
        assert report.completed_at is not None

    @pytest.mark.asyncio
    async def test_unexpected_error_contained(self, driver):
        driver._ingestion.ingest = AsyncMock(side_effect=RuntimeError("bug"))

        report = await driver.run_cycle()

        assert report.admitted is True
        assert report.error_type == "RuntimeError"
        assert not report.success

    @pytest.mark.asyncio
    async def test_expected_error_logged_without_traceback(self, driver, caplog):
        driver._disbursement.disburse = AsyncMock(side_effect=InsufficientBalance(10, 100, row_id=7))

        with caplog.at_level(logging.WARNING, logger="orchestrator.driver"):
            report = await driver.run_cycle()

        assert report.error_type == "InsufficientBalance"
        aborted = [r for r in caplog.records if "aborted" in r.getMessage()]
        assert aborted[0].levelno == logging.WARNING
        assert aborted[0].exc_info is None

    @pytest.mark.asyncio
    async def test_cycle_ids_and_history(self, driver):
        first = await driver.run_cycle()
        second = await driver.run_cycle()

        assert (first.cycle_id, second.cycle_id) == ("cycle_1", "cycle_2")
        assert driver.history.get_last() is second
        assert driver.history.get_success_rate() == 1.0


# ============================================================
# AUDIT TESTS
# ============================================================

class TestStartupAudit:
    """Rows left SUBMITTING are reported, never re-driven."""

    @pytest.mark.asyncio
    async def test_reports_submitting_rows(self, driver, node, database, caplog):
        async with database.session_scope() as session:
            store = LedgerRepository(session)
            record = await store.add_withdrawal("1001", 100, status=WithdrawalStatus.SUBMITTING)

        with caplog.at_level(logging.CRITICAL):
            stuck = await driver.audit_interrupted_submissions()

        assert [r.row_id for r in stuck] == [record.row_id]
        assert "manual review" in caplog.text

        await driver.run_cycle()
        assert node.commands("transfer") == []

    @pytest.mark.asyncio
    async def test_clean_store(self, driver):
        assert await driver.audit_interrupted_submissions() == []


# ============================================================
# LOOP TESTS
# ============================================================

class TestRunForever:
    """Tests for the scheduling loop."""

    @pytest.mark.asyncio
    async def test_max_cycles(self, driver):
        await asyncio.wait_for(driver.run_forever(max_cycles=2), timeout=5)

        assert len(driver.history) == 2

    @pytest.mark.asyncio
    async def test_failed_cycles_do_not_stop_loop(self, driver, node):
        node.failures["is_locked"] = TransportError("down", command="is_locked")

        await asyncio.wait_for(driver.run_forever(max_cycles=3), timeout=5)

        assert len(driver.history) == 3
        assert driver.history.get_success_rate() == 0.0

    @pytest.mark.asyncio
    async def test_stop_request_ends_wait(self, node, database, clock):
        driver = ReconciliationDriver(make_config(interval_seconds=60), node, database, clock)
        task = asyncio.create_task(driver.run_forever())

        await asyncio.wait_for(wait_for_cycles(driver, 1), timeout=5)
        driver.request_stop()
        await asyncio.wait_for(task, timeout=5)

        assert len(driver.history) == 1
        assert driver.stop_requested

    @pytest.mark.asyncio
    async def test_drain_timeout_cancels_hung_cycle(self, node, database, clock):
        driver = ReconciliationDriver(
            make_config(interval_seconds=60, shutdown_timeout_seconds=0.05), node, database, clock
        )
        node.delays["is_locked"] = 3600
        task = asyncio.create_task(driver.run_forever())

        await asyncio.wait_for(wait_for_command(node, "is_locked"), timeout=5)
        driver.request_stop()

        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, timeout=5)
        assert node.commands("transfer") == []

    @pytest.mark.asyncio
    async def test_drain_timeout_waits_for_submitted_transfer(self, node, database, clock):
        driver = ReconciliationDriver(
            make_config(interval_seconds=60, shutdown_timeout_seconds=0.05), node, database, clock
        )
        async with database.session_scope() as session:
            record = await LedgerRepository(session).add_withdrawal("1001", 100, seq_no=1)
        node.delays["transfer"] = 0.3
        task = asyncio.create_task(driver.run_forever())

        await asyncio.wait_for(wait_for_command(node, "transfer"), timeout=5)
        driver.request_stop()

        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, timeout=5)
        async with database.session_scope() as session:
            stored = await LedgerRepository(session).get_withdrawal(record.row_id)
        assert stored.process_status == WithdrawalStatus.SENT
        assert stored.out_trx_id == node.trx_id

    @pytest.mark.asyncio
    async def test_status_line(self, node, database, clock, caplog):
        driver = ReconciliationDriver(
            make_config(interval_seconds=0.01, status_every_cycles=2), node, database, clock
        )
        node.locked = True

        with caplog.at_level(logging.INFO, logger="orchestrator.driver"):
            await asyncio.wait_for(driver.run_forever(max_cycles=2), timeout=5)

        status = [r.getMessage() for r in caplog.records if r.getMessage().startswith("Status")]
        assert status[0] == "Status | last 2 cycles | success_rate=0% | rejected=2 | errors=0"


# ============================================================
# HISTORY TESTS
# ============================================================

class TestCycleHistory:
    """Tests for CycleHistory."""

    def _report(self, n: int, admitted: bool = True) -> CycleReport:
        started = datetime(2024, 5, 1, 12, 0, n, tzinfo=timezone.utc)
        return CycleReport(cycle_id=f"cycle_{n}", started_at=started, completed_at=started, admitted=admitted)

    @pytest.mark.asyncio
    async def test_bounded(self):
        history = CycleHistory(max_size=3)
        for n in range(5):
            await history.add(self._report(n))

        assert len(history) == 3
        assert [r.cycle_id for r in history.get_recent()] == ["cycle_2", "cycle_3", "cycle_4"]

    @pytest.mark.asyncio
    async def test_success_rate(self):
        history = CycleHistory()
        await history.add(self._report(1))
        await history.add(self._report(2, admitted=False))

        assert history.get_success_rate() == 0.5

    def test_empty(self):
        history = CycleHistory()
        assert history.get_last() is None
        assert history.get_success_rate() == 0.0

    def test_report_to_dict(self):
        report = self._report(1)
        data = report.to_dict()

        assert data["success"] is True
        assert data["ingest"] is None
        assert data["duration_seconds"] == 0.0
