"""
Node Client Package.

============================================================
PURPOSE
============================================================
JSON-RPC access to the wallet node with typed results.

============================================================
MODULES
============================================================
- config: Endpoint and timeout configuration
- types: Decoded result dataclasses
- client: aiohttp-based command invoker

============================================================
"""

from .config import NodeConfig
from .types import (
    RpcResponse,
    ChainInfo,
    TransferPayload,
    HistoryRecord,
    BlockInfo,
    AccountStatistics,
)
from .client import NodeClient


__all__ = [
    "NodeConfig",
    "RpcResponse",
    "ChainInfo",
    "TransferPayload",
    "HistoryRecord",
    "BlockInfo",
    "AccountStatistics",
    "NodeClient",
]
