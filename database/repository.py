"""
Database - Ledger Repository.

============================================================
PURPOSE
============================================================
Ledger store operations used by the reconciliation cycle.

RESPONSIBILITIES:
- Read/create/advance the monitor cursor
- Insert deposit events (duplicate-tolerant)
- Select withdrawal requests by status
- Compare-and-set withdrawal status transitions
- Mark sent withdrawals confirmed on outbound match

CRITICAL REQUIREMENTS:
- Every write commits before returning (unless told not to)
- Status updates are conditional on the expected prior
  status, so a row never moves twice
- SQLAlchemy failures surface as StoreError

============================================================
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, List, Optional

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import StoreError
from core.records import (
    DepositEvent,
    DepositStatus,
    WithdrawalRecord,
    WithdrawalStatus,
)
from .models import DepositEventModel, MonitorCursorModel, WithdrawalRequestModel


logger = logging.getLogger(__name__)


# ============================================================
# LEDGER REPOSITORY
# ============================================================

class LedgerRepository:
    """
    Repository for the bridge's ledger tables.

    One instance per cycle, bound to that cycle's session.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize repository.

        Args:
            session: SQLAlchemy async session
        """
        self._session = session

    @asynccontextmanager
    async def _store_errors(self, operation: str) -> AsyncGenerator[None, None]:
        try:
            yield
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise StoreError(f"Store operation failed: {operation}", operation=operation, cause=e)

    async def commit(self) -> None:
        async with self._store_errors("commit"):
            await self._session.commit()

    # --------------------------------------------------------
    # MONITOR CURSOR
    # --------------------------------------------------------

    async def get_cursor(self, account: str) -> Optional[int]:
        """Persisted next sequence number, or None if never seen."""
        async with self._store_errors("get_cursor"):
            result = await self._session.execute(
                select(MonitorCursorModel.next_seq_no)
                .where(MonitorCursorModel.monitor_account == account)
            )
            return result.scalar_one_or_none()

    async def create_cursor(self, account: str, next_seq: int = 1) -> int:
        """Seed a cursor for a newly monitored account."""
        async with self._store_errors("create_cursor"):
            self._session.add(MonitorCursorModel(monitor_account=account, next_seq_no=next_seq))
            await self._session.commit()
        logger.info(f"Created monitor cursor for account {account} at {next_seq}")
        return next_seq

    async def save_cursor(self, account: str, next_seq: int) -> bool:
        """
        Advance the cursor.

        The update only applies when it does not move the cursor
        backwards.

        Returns:
            True if the row was written
        """
        async with self._store_errors("save_cursor"):
            result = await self._session.execute(
                update(MonitorCursorModel)
                .where(
                    MonitorCursorModel.monitor_account == account,
                    MonitorCursorModel.next_seq_no <= next_seq,
                )
                .values(next_seq_no=next_seq)
            )
            await self._session.commit()

        if result.rowcount != 1:
            logger.warning(
                f"Cursor for account {account} not moved to {next_seq} "
                f"(missing or already ahead)"
            )
            return False
        return True

    # --------------------------------------------------------
    # DEPOSIT EVENTS
    # --------------------------------------------------------

    async def deposit_exists(self, account: str, sequence_no: int) -> bool:
        async with self._store_errors("deposit_exists"):
            result = await self._session.execute(
                select(DepositEventModel.seq_no)
                .where(
                    DepositEventModel.monitor_account == account,
                    DepositEventModel.seq_no == sequence_no,
                )
                .limit(1)
            )
            return result.first() is not None

    async def insert_deposit(self, event: DepositEvent) -> bool:
        """
        Insert a deposit event and commit, together with any
        pending uncommitted writes of this session.

        Returns:
            True if inserted, False if (account, sequence) already exists
        """
        statement = insert(DepositEventModel).values(
            monitor_account=event.monitor_account,
            seq_no=event.sequence_no,
            from_account=event.from_account,
            to_account=event.to_account,
            amount=event.amount,
            asset_id=event.asset_id,
            decrypted_memo=event.decrypted_memo,
            description=event.description,
            block_num=event.block_num,
            block_time=event.block_time,
            trx_in_block=event.trx_in_block,
            op_in_trx=event.op_in_trx,
            virtual_op=event.virtual_op,
            trx_id=event.trx_id,
            process_status=int(event.process_status),
        )
        try:
            await self._session.execute(statement)
            await self._session.commit()
        except IntegrityError:
            await self._session.rollback()
            logger.info(
                f"Deposit [{event.monitor_account},{event.sequence_no}] already in store"
            )
            return False
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise StoreError("Store operation failed: insert_deposit", operation="insert_deposit", cause=e)
        return True

    async def get_deposit(self, account: str, sequence_no: int) -> Optional[DepositEvent]:
        async with self._store_errors("get_deposit"):
            result = await self._session.execute(
                select(DepositEventModel)
                .where(
                    DepositEventModel.monitor_account == account,
                    DepositEventModel.seq_no == sequence_no,
                )
            )
            model = result.scalar_one_or_none()
        return self._model_to_deposit(model) if model else None

    async def count_deposits(self, account: str) -> int:
        async with self._store_errors("count_deposits"):
            result = await self._session.execute(
                select(func.count())
                .select_from(DepositEventModel)
                .where(DepositEventModel.monitor_account == account)
            )
            return int(result.scalar_one())

    def _model_to_deposit(self, model: DepositEventModel) -> DepositEvent:
        return DepositEvent(
            monitor_account=model.monitor_account,
            sequence_no=model.seq_no,
            from_account=model.from_account,
            to_account=model.to_account,
            amount=model.amount,
            asset_id=model.asset_id,
            decrypted_memo=model.decrypted_memo,
            description=model.description,
            block_num=model.block_num,
            block_time=model.block_time,
            trx_in_block=model.trx_in_block,
            op_in_trx=model.op_in_trx,
            virtual_op=model.virtual_op,
            trx_id=model.trx_id,
            process_status=DepositStatus(model.process_status),
        )

    # --------------------------------------------------------
    # WITHDRAWAL REQUESTS
    # --------------------------------------------------------

    async def add_withdrawal(
        self,
        out_address: str,
        out_amount: int,
        out_memo: Optional[str] = None,
        seq_no: int = 0,
        out_platform: Optional[str] = None,
        status: WithdrawalStatus = WithdrawalStatus.QUEUED,
    ) -> WithdrawalRecord:
        """Enqueue a withdrawal (upstream producers and operator tooling)."""
        model = WithdrawalRequestModel(
            seq_no=seq_no,
            out_platform=out_platform,
            out_address=out_address,
            out_amount=out_amount,
            out_memo=out_memo,
            process_status=int(status),
        )
        async with self._store_errors("add_withdrawal"):
            self._session.add(model)
            await self._session.commit()
        return self._model_to_withdrawal(model)

    async def get_withdrawal(self, row_id: int) -> Optional[WithdrawalRecord]:
        async with self._store_errors("get_withdrawal"):
            result = await self._session.execute(
                select(WithdrawalRequestModel).where(WithdrawalRequestModel.row_id == row_id)
            )
            model = result.scalar_one_or_none()
        return self._model_to_withdrawal(model) if model else None

    async def get_withdrawals_by_status(
        self,
        status: WithdrawalStatus,
        limit: Optional[int] = None,
    ) -> List[WithdrawalRecord]:
        """Withdrawals in a status, oldest first."""
        stmt = (
            select(WithdrawalRequestModel)
            .where(WithdrawalRequestModel.process_status == int(status))
            .order_by(WithdrawalRequestModel.seq_no, WithdrawalRequestModel.row_id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self._store_errors("get_withdrawals_by_status"):
            result = await self._session.execute(stmt)
            models = list(result.scalars())
        return [self._model_to_withdrawal(m) for m in models]

    async def transition_withdrawal(
        self,
        row_id: int,
        from_status: WithdrawalStatus,
        to_status: WithdrawalStatus,
        out_time: Optional[datetime] = None,
        out_trx_id: Optional[str] = None,
        out_detail: Optional[str] = None,
    ) -> bool:
        """
        Move a withdrawal between statuses and commit.

        Returns:
            False if the row was no longer in from_status
        """
        values = {"process_status": int(to_status)}
        if out_time is not None:
            values["out_time"] = out_time
        if out_trx_id is not None:
            values["out_trx_id"] = out_trx_id
        if out_detail is not None:
            values["out_detail"] = out_detail

        async with self._store_errors("transition_withdrawal"):
            result = await self._session.execute(
                update(WithdrawalRequestModel)
                .where(
                    WithdrawalRequestModel.row_id == row_id,
                    WithdrawalRequestModel.process_status == int(from_status),
                )
                .values(**values)
            )
            await self._session.commit()
        return result.rowcount == 1

    async def confirm_withdrawals(
        self,
        trx_id: str,
        block_num: int,
        out_platform: Optional[str] = None,
        commit: bool = True,
    ) -> int:
        """
        Mark SENT withdrawals carrying trx_id as CONFIRMED.

        With commit=False the update rides on the next commit of
        this session (the deposit insert that observed it).

        Returns:
            Number of rows confirmed
        """
        conditions = [
            WithdrawalRequestModel.out_trx_id == trx_id,
            WithdrawalRequestModel.process_status == int(WithdrawalStatus.SENT),
        ]
        if out_platform is not None:
            conditions.append(WithdrawalRequestModel.out_platform == out_platform)

        async with self._store_errors("confirm_withdrawals"):
            result = await self._session.execute(
                update(WithdrawalRequestModel)
                .where(*conditions)
                .values(
                    process_status=int(WithdrawalStatus.CONFIRMED),
                    out_block_num=block_num,
                )
            )
            if commit:
                await self._session.commit()
        return result.rowcount

    def _model_to_withdrawal(self, model: WithdrawalRequestModel) -> WithdrawalRecord:
        return WithdrawalRecord(
            row_id=model.row_id,
            out_address=model.out_address,
            out_amount=model.out_amount,
            process_status=WithdrawalStatus(model.process_status),
            out_memo=model.out_memo,
            seq_no=model.seq_no,
            out_platform=model.out_platform,
            out_time=model.out_time,
            out_trx_id=model.out_trx_id,
            out_detail=model.out_detail,
            out_block_num=model.out_block_num,
        )
