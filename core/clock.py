"""
Core Module - Clock.

============================================================
RESPONSIBILITY
============================================================
Time source for the bridge and node timestamp codec.

- Head block age is measured against this clock
- Withdrawal out_time stamps come from this clock
- Staleness thresholds can be tested deterministically

Node timestamps are UTC written without a zone suffix
("2024-05-01T12:00:00"). Everything inside the bridge is
timezone-aware UTC.

============================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional


NODE_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Source of the current UTC time."""

    @abstractmethod
    def now(self) -> datetime:
        """Current timezone-aware UTC datetime."""

    def seconds_since(self, moment: datetime) -> float:
        """Seconds from moment to now; a naive moment is taken as UTC."""
        return (self.now() - _as_utc(moment)).total_seconds()


class SystemClock(ClockProtocol):
    """Wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class MockClock(ClockProtocol):
    """
    Clock that only moves when told to.

    Used to pin head block age and out_time stamps in tests.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        self._time = _as_utc(initial_time or datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self._time

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """Move forward; kwargs go to timedelta (minutes, hours...)."""
        self._time += timedelta(seconds=seconds, **kwargs)


# ============================================================
# PROCESS CLOCK
# ============================================================

class ClockFactory:
    """Holds the clock used when a component is given none."""

    _instance: Optional[ClockProtocol] = None

    @classmethod
    def get_clock(cls) -> ClockProtocol:
        if cls._instance is None:
            cls._instance = SystemClock()
        return cls._instance


# ============================================================
# NODE TIMESTAMPS
# ============================================================

def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def parse_node_time(raw: str) -> datetime:
    """
    Parse a node timestamp.

    Raises:
        ValueError: If raw is not an ISO 8601 timestamp
    """
    if raw.endswith("Z"):
        raw = raw[:-1]
    return _as_utc(datetime.fromisoformat(raw))


def format_node_time(moment: datetime) -> str:
    """Render a datetime the way the node writes it."""
    return _as_utc(moment).strftime(NODE_TIME_FORMAT)


__all__ = [
    "NODE_TIME_FORMAT",
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ClockFactory",
    "parse_node_time",
    "format_node_time",
]
