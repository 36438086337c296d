"""
Disbursement Engine - Outbound Payments.

============================================================
PURPOSE
============================================================
Pay queued withdrawals from the monitored account, one per
cycle, oldest first.

PASS:
1. Select QUEUED rows by seq_no (nothing queued: no-op)
2. CSAF below floor: request collect_csaf, abort the pass
3. available = core_balance - witness pledge - committee pledge
4. Head of queue not covered: warn and wait (FIFO)
5. QUEUED -> SUBMITTING, committed before the transfer call
6. Submit transfer with the amount as '<int>.<5 digits>'
7. Error -> FAILED; result -> SENT with trx id;
   neither -> UNKNOWN

SAFETY:
- A submitted transfer is never retried
- A row never stays SUBMITTING once the pass returns or raises
- Cancellation waits until the submitted row is resolved

============================================================
"""

import asyncio
import json
import logging
from typing import Any, Optional

from core.amounts import format_amount, to_whole_units
from core.clock import ClockProtocol
from core.exceptions import (
    AmbiguousTransferOutcome,
    BridgeError,
    InsufficientBalance,
    InsufficientReserve,
)
from core.records import WithdrawalRecord, WithdrawalStatus
from database import LedgerRepository
from health_gate import HealthSnapshot
from node_client import NodeClient
from .config import DisbursementConfig
from .state_machine import WithdrawalStateMachine
from .types import DisbursementAttempt, DisbursementOutcome, DisburseResult


logger = logging.getLogger(__name__)


def _detail(value: Any, limit: int = 4000) -> str:
    """Node payload as stored out_detail text."""
    text = value if isinstance(value, str) else json.dumps(value, default=str, sort_keys=True)
    return text[:limit]


def _failure_detail(error: BaseException, signed: Optional[Any] = None) -> Any:
    """Error record for out_detail, keeping the signed transfer when there is one."""
    if isinstance(error, BridgeError):
        info = error.to_dict()
    else:
        info = {"type": type(error).__name__, "message": str(error)}
    if signed is None:
        return info
    return {"transfer": signed, "error": info}


class DisbursementEngine:
    """
    Balance-gated, at-most-once transfer submission.
    """

    def __init__(
        self,
        node: NodeClient,
        config: DisbursementConfig,
        clock: Optional[ClockProtocol] = None,
    ):
        self._node = node
        self._config = config
        self._clock = clock

    async def disburse(
        self,
        account: str,
        health: HealthSnapshot,
        store: LedgerRepository,
    ) -> DisburseResult:
        """
        Run one disbursement pass.

        Args:
            account: Paying account uid
            health: Snapshot from this cycle's gate
            store: Ledger repository for this cycle

        Returns:
            DisburseResult
        """
        queued = await store.get_withdrawals_by_status(WithdrawalStatus.QUEUED)
        if not queued:
            return DisburseResult(outcome=DisbursementOutcome.IDLE)

        stats = await self._node.get_account_statistics(account)
        result = DisburseResult(
            outcome=DisbursementOutcome.DISBURSED,
            queued=len(queued),
            csaf=stats.csaf,
            available=stats.spendable,
        )

        if stats.csaf < self._config.reserve_floor:
            await self._replenish_reserve(account, InsufficientReserve(stats.csaf, self._config.reserve_floor))
            result.outcome = DisbursementOutcome.RESERVE_LOW
            return result

        available = stats.spendable
        record = queued[0]

        if available < record.out_amount:
            shortfall = InsufficientBalance(available, record.out_amount, record.row_id)
            logger.warning(f"Withdrawal {record.row_id} waiting: {shortfall.to_log_format()}")
            result.blocked_row_id = record.row_id
            result.outcome = DisbursementOutcome.INSUFFICIENT_BALANCE
            return result

        if self._config.dry_run:
            logger.info(
                f"[DRY RUN] Would transfer {format_amount(record.out_amount)} "
                f"{self._config.asset_symbol} from {account} to {record.out_address} "
                f"for withdrawal {record.row_id} (head={health.head_block_num})"
            )
            result.outcome = DisbursementOutcome.DRY_RUN
            return result

        result.attempts.append(await self._submit_to_completion(account, record, store))
        result.available = available - record.out_amount
        return result

    async def _replenish_reserve(self, account: str, shortfall: InsufficientReserve) -> None:
        logger.warning(f"Disbursement paused: {shortfall.to_log_format()}")
        response = await self._node.collect_csaf(
            account,
            account,
            self._config.reserve_collect_amount,
            self._config.asset_symbol,
        )
        if response.is_error:
            logger.warning(f"collect_csaf rejected by node: {_detail(response.error, 500)}")
        else:
            logger.info(f"Requested CSAF collection of {self._config.reserve_collect_amount} for {account}")

    async def _submit_to_completion(
        self,
        account: str,
        record: WithdrawalRecord,
        store: LedgerRepository,
    ) -> DisbursementAttempt:
        """
        Run _submit to the end even if this pass is cancelled.

        A cancellation that arrives mid-submission is held until the
        row has left SUBMITTING, then re-raised.
        """
        task = asyncio.ensure_future(self._submit(account, record, store))
        cancelled = False
        while True:
            try:
                attempt = await asyncio.shield(task)
                break
            except asyncio.CancelledError:
                if task.done():
                    raise
                if not cancelled:
                    logger.critical(
                        f"Cancellation deferred until withdrawal {record.row_id} is resolved"
                    )
                cancelled = True

        if cancelled:
            raise asyncio.CancelledError()
        return attempt

    async def _submit(
        self,
        account: str,
        record: WithdrawalRecord,
        store: LedgerRepository,
    ) -> DisbursementAttempt:
        machine = WithdrawalStateMachine(record, store, self._clock)
        await machine.mark_submitting()

        amount_str = format_amount(record.out_amount)
        logger.info(
            f"Submitting withdrawal {record.row_id}: {amount_str} {self._config.asset_symbol} "
            f"{account} -> {record.out_address}"
        )

        trx_id = None
        signed = None
        try:
            response = await self._node.transfer(
                account,
                record.out_address,
                amount_str,
                self._config.asset_symbol,
                record.out_memo,
            )

            if response.is_error:
                detail = _detail(response.error)
                await machine.mark_failed(detail)
            elif response.is_ambiguous:
                ambiguous = AmbiguousTransferOutcome(
                    f"Transfer for withdrawal {record.row_id} returned neither error nor result",
                    context={"row_id": record.row_id, "raw": _detail(response.raw, 200)},
                )
                logger.critical(ambiguous.to_log_format())
                detail = _detail(response.raw)
                await machine.mark_unknown(detail)
            else:
                signed = response.result
                detail = _detail(signed)
                trx_id = await self._node.get_transaction_id(signed)
                await machine.mark_sent(trx_id, detail)
        except (Exception, asyncio.CancelledError) as e:
            # The transfer may or may not have been broadcast.
            if machine.current_status != WithdrawalStatus.SUBMITTING:
                raise
            logger.critical(
                f"Withdrawal {record.row_id} outcome unknown after {type(e).__name__}: {e}",
                exc_info=True,
            )
            detail = _detail(_failure_detail(e, signed))
            await machine.mark_unknown(detail)
            if not isinstance(e, BridgeError):
                raise

        logger.info(
            f"Withdrawal {record.row_id} finished as {record.process_status.name} "
            f"({to_whole_units(record.out_amount)} {self._config.asset_symbol})"
        )
        return DisbursementAttempt(
            row_id=record.row_id,
            out_address=record.out_address,
            out_amount=record.out_amount,
            amount_str=amount_str,
            final_status=record.process_status,
            out_trx_id=trx_id,
            detail=detail,
        )
