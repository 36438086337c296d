"""
Node Client - Configuration.
"""

from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class NodeConfig:
    """
    Connection settings for the wallet RPC endpoint.
    """

    rpc_url: str = "http://127.0.0.1:8091/rpc"
    """JSON-RPC endpoint of the wallet node."""

    rpc_user: Optional[str] = None
    """HTTP basic auth user (optional)."""

    rpc_password: Optional[str] = None
    """HTTP basic auth password (optional)."""

    timeout_seconds: float = 55.0
    """Per-call timeout; a timeout aborts the cycle."""

    transfer_op_type: int = 0
    """Operation type id of a transfer in account history."""

    def validate(self) -> List[str]:
        errors = []
        if not self.rpc_url.startswith(("http://", "https://")):
            errors.append(f"rpc_url must be an http(s) URL, got {self.rpc_url!r}")
        if self.timeout_seconds <= 0:
            errors.append("timeout_seconds must be positive")
        if self.rpc_password and not self.rpc_user:
            errors.append("rpc_password set without rpc_user")
        return errors
