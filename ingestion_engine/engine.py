"""
Ingestion Engine - History Ingestion.

============================================================
PURPOSE
============================================================
Advance the per-account history cursor and record each
transfer exactly once.

PASS:
1. Load cursor (seed 1 on first sight)
2. Read remote max sequence
3. Page [next, next + page_size - 1], ascending
4. Stop hard at block_num >= last irreversible block
5. Advance cursor past every processed record
6. Skip non-transfers and already-stored sequences
7. Resolve trx id (one block fetch per distinct block)
8. Classify and insert
9. Persist cursor after the pass (also after a cutoff)

A failure anywhere aborts the pass without saving the
cursor. Rows already inserted are skipped on the rerun.

============================================================
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from core.amounts import to_whole_units
from core.records import DepositEvent, DepositStatus
from database import LedgerRepository
from health_gate import HealthSnapshot
from node_client import BlockInfo, HistoryRecord, NodeClient
from .classification import MemoValidator, classify
from .config import IngestionConfig
from .types import IngestResult, PageOutcome


logger = logging.getLogger(__name__)


@dataclass
class _PassState:
    """Mutable state of one pass; never outlives it."""

    account: str
    cutoff_block_num: int
    next_seq: int
    result: IngestResult
    block: Optional[BlockInfo] = None


class IngestionEngine:
    """
    Exactly-once ingestion of account history into the ledger.
    """

    def __init__(
        self,
        node: NodeClient,
        config: IngestionConfig,
        out_platform: Optional[str] = None,
    ):
        """
        Initialize ingestion engine.

        Args:
            node: Node client
            config: Ingestion configuration
            out_platform: Only withdrawals of this platform are confirmed
        """
        self._node = node
        self._config = config
        self._out_platform = out_platform
        self._validator = MemoValidator(config.memo_pattern)

    async def ingest(
        self,
        account: str,
        health: HealthSnapshot,
        store: LedgerRepository,
    ) -> IngestResult:
        """
        Run one ingestion pass.

        Args:
            account: Monitored account uid
            health: Snapshot from this cycle's gate; supplies the cutoff
            store: Ledger repository for this cycle

        Returns:
            IngestResult
        """
        next_seq = await store.get_cursor(account)
        if next_seq is None:
            next_seq = await store.create_cursor(account, 1)

        result = IngestResult(
            account=account,
            start_seq=next_seq,
            next_seq=next_seq,
            cutoff_block_num=health.last_irreversible_block_num,
        )
        state = _PassState(
            account=account,
            cutoff_block_num=health.last_irreversible_block_num,
            next_seq=next_seq,
            result=result,
        )

        result.max_seq = await self._node.get_max_sequence(account)
        logger.info(
            f"Ingesting {account}: cursor={next_seq} max_seq={result.max_seq} "
            f"lib={state.cutoff_block_num}"
        )

        while state.next_seq <= result.max_seq:
            page_start = state.next_seq
            page = await self._node.get_history_page(account, page_start, self._config.page_size)

            if await self._process_page(page, state, store) is PageOutcome.STOP:
                break

            if state.next_seq == page_start:
                logger.warning(
                    f"History page at {page_start} for {account} returned no new "
                    f"entries (max_seq={result.max_seq}); ending pass"
                )
                break

        if state.next_seq != result.start_seq:
            await store.save_cursor(account, state.next_seq)
        result.next_seq = state.next_seq

        logger.info(
            f"Ingestion pass for {account} done: cursor {result.start_seq} -> {result.next_seq}, "
            f"inserted={result.inserted} duplicates={result.duplicates} "
            f"confirmed={result.confirmed_withdrawals}"
            + (f" held_back_from={result.cutoff_sequence}" if result.stopped_at_cutoff else "")
        )
        return result

    async def _process_page(
        self,
        page: List[HistoryRecord],
        state: _PassState,
        store: LedgerRepository,
    ) -> PageOutcome:
        # Node pages are newest first.
        for record in sorted(page, key=lambda r: r.sequence):
            if record.sequence < state.next_seq:
                continue

            if record.block_num >= state.cutoff_block_num:
                state.result.cutoff_sequence = record.sequence
                logger.info(
                    f"Sequence {record.sequence} in block {record.block_num} not yet "
                    f"irreversible (lib={state.cutoff_block_num}); stopping"
                )
                return PageOutcome.STOP

            state.next_seq = record.sequence + 1

            if not record.is_transfer:
                state.result.non_transfers += 1
                continue

            if await store.deposit_exists(state.account, record.sequence):
                state.result.duplicates += 1
                continue

            await self._ingest_transfer(record, state, store)

        return PageOutcome.CONTINUE

    async def _ingest_transfer(
        self,
        record: HistoryRecord,
        state: _PassState,
        store: LedgerRepository,
    ) -> None:
        if state.block is None or state.block.block_num != record.block_num:
            state.block = await self._node.get_block(record.block_num)
        trx_id = state.block.transaction_id(record.trx_in_block)

        status = classify(record, state.account, self._config.asset_id, self._validator)
        transfer = record.transfer
        event = DepositEvent(
            monitor_account=state.account,
            sequence_no=record.sequence,
            from_account=transfer.from_account,
            to_account=transfer.to_account,
            amount=transfer.amount,
            asset_id=transfer.asset_id,
            decrypted_memo=record.memo,
            description=record.description,
            block_num=record.block_num,
            block_time=record.block_time,
            trx_in_block=record.trx_in_block,
            op_in_trx=record.op_in_trx,
            virtual_op=record.virtual_op,
            trx_id=trx_id,
            process_status=status,
        )

        confirmed = 0
        if status == DepositStatus.OUTBOUND_ACK:
            # Committed together with the deposit row below.
            confirmed = await store.confirm_withdrawals(
                trx_id,
                record.block_num,
                out_platform=self._out_platform,
                commit=False,
            )

        if not await store.insert_deposit(event):
            state.result.duplicates += 1
            return

        state.result.count(status)
        state.result.confirmed_withdrawals += confirmed
        logger.info(
            f"Deposit [{state.account},{record.sequence}] {status.name}: "
            f"{transfer.from_account} -> {transfer.to_account} "
            f"{to_whole_units(transfer.amount)} (asset {transfer.asset_id}) trx={trx_id}"
        )
        if confirmed:
            logger.info(f"Confirmed {confirmed} sent withdrawal(s) for trx {trx_id} in block {record.block_num}")
