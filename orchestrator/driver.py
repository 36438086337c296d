"""
Orchestrator - Reconciliation Driver.

============================================================
RESPONSIBILITY
============================================================
Runs reconciliation cycles on a fixed interval.

- Gate -> ingest -> disburse, strictly sequential
- One cycle at a time; overrun ticks are skipped
- Any cycle error is logged and the loop continues
- SIGINT / SIGTERM let the in-flight cycle finish
- Startup audit of rows left in SUBMITTING
- Periodic status line from recent cycle history

============================================================
CYCLE
============================================================
1. Ping the store (reconnect once if the pool is stale)
2. Health gate; a rejection ends the cycle
3. Ingestion pass with the gate's snapshot
4. Disbursement pass with the same snapshot

============================================================
"""

import asyncio
import itertools
import logging
import signal
import sys
from typing import Any, Dict, List, Optional

from core.clock import ClockFactory, ClockProtocol
from core.exceptions import BridgeError, Severity
from core.records import WithdrawalRecord, WithdrawalStatus
from database import Database, LedgerRepository
from disbursement_engine import DisbursementEngine
from health_gate import HealthGate, Reject
from ingestion_engine import IngestionEngine
from node_client import NodeClient
from .config import BridgeConfig
from .models import CycleHistory, CycleReport


logger = logging.getLogger(__name__)


_SEVERITY_LEVELS = {
    Severity.LOW: logging.WARNING,
    Severity.MEDIUM: logging.ERROR,
    Severity.HIGH: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}


class ReconciliationDriver:
    """
    Owns the node client, the store and the engines for one process.
    """

    def __init__(
        self,
        config: BridgeConfig,
        node: NodeClient,
        database: Database,
        clock: Optional[ClockProtocol] = None,
    ):
        """
        Initialize driver.

        Args:
            config: Validated bridge configuration
            node: Node client
            database: Ledger store handle
            clock: Clock override (tests)
        """
        self._config = config
        self._node = node
        self._database = database
        self._clock = clock or ClockFactory.get_clock()

        self._gate = HealthGate(node, config.health, self._clock)
        self._ingestion = IngestionEngine(
            node,
            config.ingestion,
            out_platform=config.disbursement.out_platform,
        )
        self._disbursement = DisbursementEngine(node, config.disbursement, self._clock)

        self._history = CycleHistory(max_size=config.scheduler.history_size)
        self._cycle_ids = itertools.count(1)

        self._stop_event: Optional[asyncio.Event] = None
        self._main_task: Optional[asyncio.Task] = None
        self._drain_task: Optional[asyncio.Task] = None
        self._original_handlers: Dict[signal.Signals, Any] = {}

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def history(self) -> CycleHistory:
        return self._history

    @property
    def stop_requested(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    # --------------------------------------------------------
    # Single Cycle
    # --------------------------------------------------------

    async def run_cycle(self) -> CycleReport:
        """
        Run one reconciliation cycle.

        Never raises (except on cancellation); failures are logged and
        recorded on the returned report.
        """
        account = self._config.monitored_account
        report = CycleReport(
            cycle_id=f"cycle_{next(self._cycle_ids)}",
            started_at=self._clock.now(),
        )

        try:
            await self._database.ensure_connected()

            decision = await self._gate.evaluate()
            report.admitted = decision.admitted

            if isinstance(decision, Reject):
                report.rejection_reason = decision.reason_code
                logger.warning(f"{report.cycle_id} skipped: {decision.reason.message}")
            else:
                async with self._database.session_scope() as session:
                    store = LedgerRepository(session)
                    report.ingest = await self._ingestion.ingest(account, decision.snapshot, store)
                    report.disburse = await self._disbursement.disburse(account, decision.snapshot, store)

        except BridgeError as e:
            report.error = e.message
            report.error_type = type(e).__name__
            logger.log(
                _SEVERITY_LEVELS.get(e.severity, logging.ERROR),
                f"{report.cycle_id} aborted: {e.to_log_format()}",
                exc_info=not e.is_expected,
            )
        except Exception as e:
            report.error = str(e)
            report.error_type = type(e).__name__
            logger.error(f"{report.cycle_id} aborted: {e}", exc_info=True)
        finally:
            report.completed_at = self._clock.now()
            await self._history.add(report)

        if report.success:
            logger.info(
                f"{report.cycle_id} completed in {report.duration_seconds:.2f}s "
                f"| ingest={report.ingest.inserted if report.ingest else 0} "
                f"| disburse={report.disburse.outcome.value if report.disburse else 'none'}"
            )
        return report

    # --------------------------------------------------------
    # Startup Audit
    # --------------------------------------------------------

    async def audit_interrupted_submissions(self) -> List[WithdrawalRecord]:
        """
        Report withdrawals left in SUBMITTING by an earlier crash.

        They are never re-driven; an operator must check the chain.
        """
        await self._database.ensure_connected()
        async with self._database.session_scope() as session:
            store = LedgerRepository(session)
            stuck = await store.get_withdrawals_by_status(WithdrawalStatus.SUBMITTING)

        for record in stuck:
            logger.critical(
                f"Withdrawal {record.row_id} is still SUBMITTING "
                f"({record.out_amount} to {record.out_address}); transfer may have been "
                f"broadcast, manual review required"
            )
        if not stuck:
            logger.info("Startup audit: no interrupted submissions")
        return stuck

    # --------------------------------------------------------
    # Main Loop
    # --------------------------------------------------------

    async def run_forever(self, max_cycles: Optional[int] = None) -> None:
        """
        Run cycles every interval until stopped.

        Args:
            max_cycles: Stop after this many cycles (None: run until signalled)
        """
        self._stop_event = asyncio.Event()
        self._main_task = asyncio.current_task()
        self._install_signal_handlers()

        interval = self._config.scheduler.interval_seconds
        loop = asyncio.get_running_loop()
        logger.info(
            f"Starting reconciliation loop | account={self._config.monitored_account} "
            f"| interval={interval}s"
        )

        try:
            try:
                await self.audit_interrupted_submissions()
            except BridgeError as e:
                logger.error(f"Startup audit failed: {e.to_log_format()}", exc_info=True)

            cycles = 0
            next_tick = loop.time()
            while not self.stop_requested:
                await self.run_cycle()
                cycles += 1
                if cycles % self._config.scheduler.status_every_cycles == 0:
                    self._log_status()
                if max_cycles is not None and cycles >= max_cycles:
                    break

                next_tick += interval
                now = loop.time()
                if now > next_tick:
                    skipped = int((now - next_tick) // interval) + 1
                    logger.warning(f"Cycle overran interval; skipping {skipped} tick(s)")
                    next_tick += skipped * interval

                await self._wait_for_next_tick(next_tick - now)
        except asyncio.CancelledError:
            logger.critical("Reconciliation loop cancelled before the cycle drained")
            raise
        finally:
            self._restore_signal_handlers()
            if self._drain_task is not None and not self._drain_task.done():
                self._drain_task.cancel()
            self._main_task = None
            if len(self._history):
                self._log_status()
            logger.info("Reconciliation loop stopped")

    def _log_status(self) -> None:
        window = self._config.scheduler.status_every_cycles
        recent = self._history.get_recent(window)
        rejected = sum(1 for r in recent if r.admitted is False)
        errors = sum(1 for r in recent if r.error_type is not None)
        logger.info(
            f"Status | last {len(recent)} cycles "
            f"| success_rate={self._history.get_success_rate(window):.0%} "
            f"| rejected={rejected} | errors={errors}"
        )

    async def _wait_for_next_tick(self, wait_seconds: float) -> None:
        if wait_seconds <= 0:
            return
        logger.debug(f"Waiting {wait_seconds:.1f}s until next tick")
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=wait_seconds)
        except asyncio.TimeoutError:
            pass

    def request_stop(self) -> None:
        """
        Ask the loop to stop after the in-flight cycle.

        If that cycle does not finish within the shutdown timeout, the
        loop is cancelled. A transfer already submitted is still
        resolved before the cancellation takes effect.
        """
        if self._stop_event is None or self._stop_event.is_set():
            return
        logger.info("Shutdown requested; draining current cycle")
        self._stop_event.set()
        if self._main_task is not None:
            self._drain_task = asyncio.get_running_loop().create_task(self._drain_watchdog())

    async def _drain_watchdog(self) -> None:
        timeout = self._config.scheduler.shutdown_timeout_seconds
        await asyncio.sleep(timeout)
        if self._main_task is not None and not self._main_task.done():
            logger.critical(f"Cycle did not drain within {timeout}s; cancelling")
            self._main_task.cancel()

    # --------------------------------------------------------
    # Signal Handlers
    # --------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        """Install signal handlers for graceful shutdown."""
        if sys.platform == "win32":
            return
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.getsignal(sig)
            try:
                loop.add_signal_handler(sig, self._handle_signal, sig)
            except (NotImplementedError, RuntimeError):
                logger.debug(f"Cannot install handler for {sig.name} outside the main thread")

    def _restore_signal_handlers(self) -> None:
        """Remove loop signal handlers."""
        if sys.platform == "win32":
            return
        loop = asyncio.get_running_loop()
        for sig in self._original_handlers:
            loop.remove_signal_handler(sig)
        self._original_handlers.clear()

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}")
        self.request_stop()
