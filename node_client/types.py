"""
Node Client - Types.

============================================================
PURPOSE
============================================================
Typed views of wallet RPC results.

Every structure is decoded through a from_dict classmethod
that raises DataInconsistency naming the missing or
malformed field. Nothing downstream touches raw JSON.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from core.amounts import to_minor_units
from core.clock import parse_node_time
from core.exceptions import DataInconsistency


# ============================================================
# DECODE HELPERS
# ============================================================

_MISSING = object()


def _get(data: Any, key: Any, path: str) -> Any:
    """Fetch a required key/index, raising DataInconsistency when absent."""
    try:
        value = data[key]
    except (KeyError, IndexError, TypeError):
        value = _MISSING
    if value is _MISSING or value is None:
        raise DataInconsistency(f"Missing field '{path}' in node response", field=path)
    return value


def _int(data: Any, key: Any, path: str) -> int:
    value = _get(data, key, path)
    if isinstance(value, bool):
        raise DataInconsistency(f"Field '{path}' is not an integer", field=path, actual=value)
    try:
        return to_minor_units(value)
    except (ValueError, InvalidOperation):
        raise DataInconsistency(f"Field '{path}' is not an integer", field=path, actual=value)


def _str(data: Any, key: Any, path: str) -> str:
    value = _get(data, key, path)
    if isinstance(value, (dict, list)):
        raise DataInconsistency(f"Field '{path}' is not a scalar", field=path, actual=value)
    return str(value)


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key) if isinstance(data, dict) else None
    if value is None:
        return None
    return str(value)


def _timestamp(data: Any, key: Any, path: str) -> datetime:
    raw = _str(data, key, path)
    try:
        return parse_node_time(raw)
    except ValueError:
        raise DataInconsistency(f"Field '{path}' is not an ISO timestamp", field=path, actual=raw)


# ============================================================
# RPC RESPONSE
# ============================================================

@dataclass
class RpcResponse:
    """Parsed JSON-RPC reply."""

    command: str
    """Invoked command."""

    result: Any = None
    """Populated on success."""

    error: Any = None
    """Populated on explicit failure."""

    raw: Dict[str, Any] = field(default_factory=dict)
    """Full decoded body."""

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def is_success(self) -> bool:
        return self.error is None and self.result is not None

    @property
    def is_ambiguous(self) -> bool:
        """Neither error nor result populated."""
        return self.error is None and self.result is None


# ============================================================
# CHAIN INFO
# ============================================================

@dataclass(frozen=True)
class ChainInfo:
    """Head and finality state reported by the node's info command."""

    head_block_num: int
    head_block_time: datetime
    last_irreversible_block_num: int
    participation: Decimal
    """Recent slot participation, percent."""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainInfo":
        raw_rate = _get(data, "participation", "participation")
        try:
            participation = Decimal(str(raw_rate))
        except InvalidOperation:
            raise DataInconsistency(
                "Field 'participation' is not numeric", field="participation", actual=raw_rate
            )
        if not participation.is_finite():
            raise DataInconsistency(
                "Field 'participation' is not finite", field="participation", actual=raw_rate
            )
        return cls(
            head_block_num=_int(data, "head_block_num", "head_block_num"),
            head_block_time=_timestamp(data, "head_block_time", "head_block_time"),
            last_irreversible_block_num=_int(
                data, "last_irreversible_block_num", "last_irreversible_block_num"
            ),
            participation=participation,
        )


# ============================================================
# ACCOUNT HISTORY
# ============================================================

@dataclass(frozen=True)
class TransferPayload:
    """Body of a transfer operation."""

    from_account: str
    to_account: str
    amount: int
    """Minor units."""
    asset_id: int


@dataclass(frozen=True)
class HistoryRecord:
    """One entry of relative account history."""

    sequence: int
    block_num: int
    block_time: datetime
    trx_in_block: int
    op_in_trx: int
    virtual_op: int
    op_type: int
    memo: Optional[str] = None
    description: Optional[str] = None
    transfer: Optional[TransferPayload] = None
    """Present only for transfer operations."""

    @property
    def is_transfer(self) -> bool:
        return self.transfer is not None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], transfer_op_type: int = 0) -> "HistoryRecord":
        op = _get(data, "op", "op")
        op_pair = _get(op, "op", "op.op")
        op_type = _int(op_pair, 0, "op.op[0]")

        transfer = None
        if op_type == transfer_op_type:
            body = _get(op_pair, 1, "op.op[1]")
            amount = _get(body, "amount", "op.op[1].amount")
            transfer = TransferPayload(
                from_account=_str(body, "from", "op.op[1].from"),
                to_account=_str(body, "to", "op.op[1].to"),
                amount=_int(amount, "amount", "op.op[1].amount.amount"),
                asset_id=_int(amount, "asset_id", "op.op[1].amount.asset_id"),
            )

        return cls(
            sequence=_int(data, "sequence", "sequence"),
            block_num=_int(op, "block_num", "op.block_num"),
            block_time=_timestamp(op, "block_timestamp", "op.block_timestamp"),
            trx_in_block=_int(op, "trx_in_block", "op.trx_in_block"),
            op_in_trx=_int(op, "op_in_trx", "op.op_in_trx"),
            virtual_op=_int(op, "virtual_op", "op.virtual_op"),
            op_type=op_type,
            memo=_optional_str(data, "memo"),
            description=_optional_str(data, "description"),
            transfer=transfer,
        )


# ============================================================
# BLOCKS
# ============================================================

@dataclass(frozen=True)
class BlockInfo:
    """Block with its transaction ids."""

    block_num: int
    transaction_ids: List[str]

    def transaction_id(self, trx_in_block: int) -> str:
        """Id of the transaction at a position in the block."""
        if not 0 <= trx_in_block < len(self.transaction_ids):
            raise DataInconsistency(
                f"Block {self.block_num} has no transaction at index {trx_in_block}",
                field="transaction_ids",
                actual=len(self.transaction_ids),
            )
        return self.transaction_ids[trx_in_block]

    @classmethod
    def from_dict(cls, block_num: int, data: Dict[str, Any]) -> "BlockInfo":
        ids = _get(data, "transaction_ids", "transaction_ids")
        if not isinstance(ids, list):
            raise DataInconsistency(
                "Field 'transaction_ids' is not a list", field="transaction_ids", actual=ids
            )
        return cls(block_num=block_num, transaction_ids=[str(i) for i in ids])


# ============================================================
# ACCOUNT STATISTICS
# ============================================================

@dataclass(frozen=True)
class AccountStatistics:
    """Balances relevant to disbursement, all in minor units."""

    csaf: int
    core_balance: int
    total_witness_pledge: int
    total_committee_member_pledge: int

    @property
    def spendable(self) -> int:
        """Core balance net of witness and committee pledges."""
        return self.core_balance - self.total_witness_pledge - self.total_committee_member_pledge

    @classmethod
    def from_full_account(cls, data: Dict[str, Any]) -> "AccountStatistics":
        stats = _get(data, "statistics", "statistics")
        return cls(
            csaf=_int(stats, "csaf", "statistics.csaf"),
            core_balance=_int(stats, "core_balance", "statistics.core_balance"),
            total_witness_pledge=_int(
                stats, "total_witness_pledge", "statistics.total_witness_pledge"
            ),
            total_committee_member_pledge=_int(
                stats,
                "total_committee_member_pledge",
                "statistics.total_committee_member_pledge",
            ),
        )
