"""
Node Client - JSON-RPC Invoker.

============================================================
PURPOSE
============================================================
Thin command invoker for the wallet node.

- invoke(): raw command call, returns RpcResponse
- call(): read-only command, raises on explicit RPC error
- Typed wrappers for every command the bridge uses

FAILURE MAPPING:
- Timeout / connection failure -> TransportError
- Non-JSON body / HTTP error without RPC body -> TransportError
- JSON-RPC "error" member -> RpcResponse.error (invoke)
                            or TransportError (call)
- Missing / malformed result fields -> DataInconsistency

============================================================
"""

import asyncio
import itertools
import json
import logging
from typing import Any, List, Optional

import aiohttp

from core.exceptions import DataInconsistency, TransportError
from .config import NodeConfig
from .types import (
    AccountStatistics,
    BlockInfo,
    ChainInfo,
    HistoryRecord,
    RpcResponse,
)


logger = logging.getLogger(__name__)


# ============================================================
# NODE CLIENT
# ============================================================

class NodeClient:
    """
    JSON-RPC 2.0 client for the wallet node.

    Owns its aiohttp session unless one is injected.
    """

    def __init__(
        self,
        config: NodeConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize node client.

        Args:
            config: Node configuration
            session: Optional pre-built session (tests, shared pools)
        """
        self._config = config
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

        self._auth: Optional[aiohttp.BasicAuth] = None
        if config.rpc_user:
            self._auth = aiohttp.BasicAuth(config.rpc_user, config.rpc_password or "")

    @property
    def config(self) -> NodeConfig:
        return self._config

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    async def connect(self) -> None:
        """Create the HTTP session if needed."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._config.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
            logger.info(f"Node client session opened for {self._config.rpc_url}")

    async def close(self) -> None:
        """Close the HTTP session if this client owns it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
            logger.info("Node client session closed")
        self._session = None

    async def __aenter__(self) -> "NodeClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # --------------------------------------------------------
    # RAW INVOCATION
    # --------------------------------------------------------

    async def invoke(
        self,
        command: str,
        params: List[Any],
        timeout: Optional[float] = None,
    ) -> RpcResponse:
        """
        Invoke a wallet command.

        Args:
            command: Command name
            params: Ordered parameter list
            timeout: Override of the configured timeout

        Returns:
            RpcResponse with result or error populated

        Raises:
            TransportError: On timeout, connection failure or unusable body
        """
        if self._session is None:
            await self.connect()

        payload = {
            "jsonrpc": "2.0",
            "method": command,
            "params": params,
            "id": next(self._ids),
        }
        call_timeout = aiohttp.ClientTimeout(total=timeout or self._config.timeout_seconds)

        try:
            async with self._session.post(
                self._config.rpc_url,
                json=payload,
                auth=self._auth,
                timeout=call_timeout,
            ) as response:
                status = response.status
                raw_body = await response.read()
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"Timeout calling {command}",
                command=command,
                cause=e,
            )
        except aiohttp.ClientError as e:
            raise TransportError(
                f"Connection failure calling {command}: {e}",
                command=command,
                cause=e,
            )

        try:
            body = raw_body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TransportError(
                f"Undecodable response to {command} (HTTP {status})",
                command=command,
                status_code=status,
                cause=e,
            )

        try:
            data = json.loads(body)
        except ValueError as e:
            raise TransportError(
                f"Non-JSON response to {command} (HTTP {status})",
                command=command,
                status_code=status,
                cause=e,
            )

        if not isinstance(data, dict) or ("result" not in data and "error" not in data):
            if status >= 400:
                raise TransportError(
                    f"HTTP {status} calling {command}",
                    command=command,
                    status_code=status,
                )
            # Well-formed HTTP reply without either member: caller decides.
            data = data if isinstance(data, dict) else {"body": data}

        return RpcResponse(
            command=command,
            result=data.get("result"),
            error=data.get("error"),
            raw=data,
        )

    async def call(self, command: str, params: List[Any]) -> Any:
        """
        Invoke a read-only command and return its result.

        Raises:
            TransportError: On transport failure or explicit RPC error
        """
        response = await self.invoke(command, params)
        if response.is_error:
            raise TransportError(
                f"Node returned error for {command}",
                command=command,
                rpc_error=response.error,
            )
        return response.result

    # --------------------------------------------------------
    # HEALTH COMMANDS
    # --------------------------------------------------------

    async def is_locked(self) -> bool:
        result = await self.call("is_locked", [])
        if not isinstance(result, bool):
            raise DataInconsistency("is_locked did not return a boolean", field="result", actual=result)
        return result

    async def get_info(self) -> ChainInfo:
        result = await self.call("info", [])
        return ChainInfo.from_dict(result)

    # --------------------------------------------------------
    # HISTORY COMMANDS
    # --------------------------------------------------------

    async def get_max_sequence(self, account: str) -> int:
        """Highest history sequence number available for the account (0 if none)."""
        records = await self.get_relative_account_history(account, stop=0, limit=1, start=0)
        if not records:
            return 0
        return records[0].sequence

    async def get_history_page(self, account: str, start: int, limit: int) -> List[HistoryRecord]:
        """
        Fetch sequences [start, start + limit - 1].

        Returned in the node's order (descending sequence).
        """
        return await self.get_relative_account_history(
            account,
            stop=start,
            limit=limit,
            start=start + limit - 1,
        )

    async def get_relative_account_history(
        self,
        account: str,
        stop: int,
        limit: int,
        start: int,
    ) -> List[HistoryRecord]:
        result = await self.call(
            "get_relative_account_history",
            [account, self._config.transfer_op_type, stop, limit, start],
        )
        if not isinstance(result, list):
            raise DataInconsistency(
                "get_relative_account_history did not return a list", field="result", actual=result
            )
        return [
            HistoryRecord.from_dict(item, transfer_op_type=self._config.transfer_op_type)
            for item in result
        ]

    async def get_block(self, block_num: int) -> BlockInfo:
        result = await self.call("get_block", [block_num])
        return BlockInfo.from_dict(block_num, result)

    # --------------------------------------------------------
    # ACCOUNT COMMANDS
    # --------------------------------------------------------

    async def get_account_statistics(self, account: str) -> AccountStatistics:
        result = await self.call("get_full_account", [account])
        return AccountStatistics.from_full_account(result)

    # --------------------------------------------------------
    # WRITE COMMANDS
    # --------------------------------------------------------

    async def transfer(
        self,
        from_account: str,
        to_account: str,
        amount: str,
        asset_symbol: str,
        memo: Optional[str],
    ) -> RpcResponse:
        """
        Submit and broadcast a transfer.

        Never raises on an explicit RPC error; the caller must record it.
        """
        return await self.invoke(
            "transfer",
            [from_account, to_account, amount, asset_symbol, memo or "", True],
        )

    async def get_transaction_id(self, signed_trx: Any) -> str:
        result = await self.call("get_transaction_id", [signed_trx])
        if not isinstance(result, str) or not result:
            raise DataInconsistency(
                "get_transaction_id did not return an id", field="result", actual=result
            )
        return result

    async def collect_csaf(
        self,
        from_account: str,
        to_account: str,
        amount: str,
        asset_symbol: str,
    ) -> RpcResponse:
        """Request CSAF replenishment; broadcast immediately."""
        return await self.invoke(
            "collect_csaf",
            [from_account, to_account, amount, asset_symbol, True],
        )
