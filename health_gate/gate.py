"""
Health Gate - Evaluation.

============================================================
PURPOSE
============================================================
Decide, once per cycle, whether the node can be trusted.

CHECK ORDER (first failure wins):
1. Wallet lock state      -> NodeLocked
2. Head block age         -> StaleHead
3. Participation rate     -> LowParticipation

A rejection aborts the whole cycle. Transport and decode
failures are not rejections; they propagate to the driver.

============================================================
"""

import logging
from typing import Optional

from core.clock import ClockFactory, ClockProtocol
from core.exceptions import LowParticipation, NodeLocked, StaleHead
from node_client import NodeClient
from .config import HealthConfig
from .types import Admit, HealthDecision, HealthSnapshot, Reject


logger = logging.getLogger(__name__)


class HealthGate:
    """
    Liveness and safety gate in front of ingestion and disbursement.
    """

    def __init__(
        self,
        node: NodeClient,
        config: HealthConfig,
        clock: Optional[ClockProtocol] = None,
    ):
        self._node = node
        self._config = config
        self._clock = clock

    @property
    def clock(self) -> ClockProtocol:
        return self._clock or ClockFactory.get_clock()

    async def evaluate(self) -> HealthDecision:
        """
        Evaluate node health.

        Returns:
            Admit(snapshot) or Reject(reason)

        Raises:
            TransportError: Node unreachable
            DataInconsistency: Malformed info response
        """
        if await self._node.is_locked():
            return self._reject(NodeLocked())

        info = await self._node.get_info()
        age = self.clock.seconds_since(info.head_block_time)

        if self._config.head_age_threshold_seconds <= age:
            return self._reject(StaleHead(age, self._config.head_age_threshold_seconds))

        threshold = self._config.participation_threshold_percent
        if info.participation <= threshold:
            return self._reject(LowParticipation(info.participation, threshold))

        snapshot = HealthSnapshot(
            locked=False,
            head_block_num=info.head_block_num,
            head_block_time=info.head_block_time,
            head_age_seconds=age,
            last_irreversible_block_num=info.last_irreversible_block_num,
            participation_rate=info.participation,
        )
        logger.info(f"Node admitted: {snapshot.summary()}")
        return Admit(snapshot=snapshot)

    def _reject(self, reason) -> Reject:
        logger.warning(f"Node rejected [{reason.reason_code}]: {reason.message}")
        return Reject(reason=reason)
