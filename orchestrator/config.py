"""
Orchestrator - Configuration.

============================================================
RESPONSIBILITY
============================================================
Builds the immutable BridgeConfig once at startup.

- Loads .env via python-dotenv, then environment variables
- One frozen dataclass per component
- validate() returns every problem at once

============================================================
ENVIRONMENT
============================================================
BRIDGE_RPC_URL, BRIDGE_RPC_USER, BRIDGE_RPC_PASSWORD,
BRIDGE_RPC_TIMEOUT_SECONDS, BRIDGE_TRANSFER_OP_TYPE
BRIDGE_HEAD_AGE_THRESHOLD_SECONDS, BRIDGE_PARTICIPATION_THRESHOLD
BRIDGE_MONITORED_ACCOUNT, BRIDGE_ASSET_ID, BRIDGE_PAGE_SIZE,
BRIDGE_MEMO_PATTERN
BRIDGE_ASSET_SYMBOL, BRIDGE_RESERVE_FLOOR,
BRIDGE_RESERVE_COLLECT_AMOUNT, BRIDGE_OUT_PLATFORM,
DRY_RUN
DATABASE_URL, DATABASE_ECHO, DATABASE_POOL_SIZE,
DATABASE_MAX_OVERFLOW
TICK_INTERVAL_SECONDS, SHUTDOWN_TIMEOUT_SECONDS,
CYCLE_HISTORY_SIZE, CYCLE_STATUS_EVERY
LOG_LEVEL, LOG_FORMAT

============================================================
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional, TypeVar

from dotenv import load_dotenv

from core.exceptions import ConfigurationError
from database import DatabaseConfig
from database.config import DEFAULT_DATABASE_URL
from disbursement_engine import DisbursementConfig
from health_gate import HealthConfig
from ingestion_engine import DEFAULT_MEMO_PATTERN, IngestionConfig
from node_client import NodeConfig


T = TypeVar("T")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


# ============================================================
# ENV HELPERS
# ============================================================

def _env(name: str, default: T, parse: Callable[[str], T]) -> T:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return parse(raw)
    except (ValueError, InvalidOperation) as e:
        raise ConfigurationError(
            f"Invalid value for {name}: {raw!r}",
            context={"variable": name},
            cause=e,
        )


def _bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _optional(raw: str) -> Optional[str]:
    return raw or None


# ============================================================
# SCHEDULER
# ============================================================

@dataclass(frozen=True)
class SchedulerConfig:
    """Cycle timing."""

    interval_seconds: float = 10.0
    """Time between cycle starts; overrun ticks are skipped."""

    shutdown_timeout_seconds: float = 120.0
    """How long a shutdown waits for the in-flight cycle."""

    history_size: int = 100
    """Cycle reports kept in memory."""

    status_every_cycles: int = 30
    """Cycles between status lines summarising recent history."""

    def validate(self) -> List[str]:
        errors = []
        if self.interval_seconds <= 0:
            errors.append("interval_seconds must be positive")
        if self.shutdown_timeout_seconds <= 0:
            errors.append("shutdown_timeout_seconds must be positive")
        if self.history_size < 1:
            errors.append("history_size must be at least 1")
        if self.status_every_cycles < 1:
            errors.append("status_every_cycles must be at least 1")
        return errors


# ============================================================
# BRIDGE CONFIG
# ============================================================

@dataclass(frozen=True)
class BridgeConfig:
    """Complete process configuration, passed by reference to every component."""

    node: NodeConfig = field(default_factory=NodeConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    disbursement: DisbursementConfig = field(default_factory=DisbursementConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)

    log_level: str = "INFO"
    """Logging level."""

    log_format: str = "text"
    """Log output format (text or json)."""

    @property
    def monitored_account(self) -> str:
        return self.ingestion.monitored_account

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "BridgeConfig":
        """
        Load configuration from .env and environment variables.

        Raises:
            ConfigurationError: If a variable cannot be parsed
        """
        load_dotenv(env_file)

        return cls(
            node=NodeConfig(
                rpc_url=_env("BRIDGE_RPC_URL", NodeConfig.rpc_url, str),
                rpc_user=_env("BRIDGE_RPC_USER", None, _optional),
                rpc_password=_env("BRIDGE_RPC_PASSWORD", None, _optional),
                timeout_seconds=_env("BRIDGE_RPC_TIMEOUT_SECONDS", NodeConfig.timeout_seconds, float),
                transfer_op_type=_env("BRIDGE_TRANSFER_OP_TYPE", NodeConfig.transfer_op_type, int),
            ),
            health=HealthConfig(
                head_age_threshold_seconds=_env(
                    "BRIDGE_HEAD_AGE_THRESHOLD_SECONDS", HealthConfig.head_age_threshold_seconds, float
                ),
                participation_threshold_percent=_env(
                    "BRIDGE_PARTICIPATION_THRESHOLD", HealthConfig.participation_threshold_percent, Decimal
                ),
            ),
            ingestion=IngestionConfig(
                monitored_account=_env("BRIDGE_MONITORED_ACCOUNT", "", str),
                asset_id=_env("BRIDGE_ASSET_ID", IngestionConfig.asset_id, int),
                page_size=_env("BRIDGE_PAGE_SIZE", IngestionConfig.page_size, int),
                memo_pattern=_env("BRIDGE_MEMO_PATTERN", DEFAULT_MEMO_PATTERN, str),
            ),
            disbursement=DisbursementConfig(
                asset_symbol=_env("BRIDGE_ASSET_SYMBOL", DisbursementConfig.asset_symbol, str),
                reserve_floor=_env("BRIDGE_RESERVE_FLOOR", DisbursementConfig.reserve_floor, int),
                reserve_collect_amount=_env(
                    "BRIDGE_RESERVE_COLLECT_AMOUNT", DisbursementConfig.reserve_collect_amount, str
                ),
                out_platform=_env("BRIDGE_OUT_PLATFORM", DisbursementConfig.out_platform, _optional),
                dry_run=_env("DRY_RUN", False, _bool),
            ),
            database=DatabaseConfig(
                url=_env("DATABASE_URL", DEFAULT_DATABASE_URL, str),
                echo=_env("DATABASE_ECHO", False, _bool),
                pool_size=_env("DATABASE_POOL_SIZE", DatabaseConfig.pool_size, int),
                max_overflow=_env("DATABASE_MAX_OVERFLOW", DatabaseConfig.max_overflow, int),
            ),
            scheduler=SchedulerConfig(
                interval_seconds=_env("TICK_INTERVAL_SECONDS", SchedulerConfig.interval_seconds, float),
                shutdown_timeout_seconds=_env(
                    "SHUTDOWN_TIMEOUT_SECONDS", SchedulerConfig.shutdown_timeout_seconds, float
                ),
                history_size=_env("CYCLE_HISTORY_SIZE", SchedulerConfig.history_size, int),
                status_every_cycles=_env("CYCLE_STATUS_EVERY", SchedulerConfig.status_every_cycles, int),
            ),
            log_level=_env("LOG_LEVEL", "INFO", str.upper),
            log_format=_env("LOG_FORMAT", "text", str.lower),
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []
        for section in ("node", "health", "ingestion", "disbursement", "database", "scheduler"):
            errors.extend(f"{section}: {e}" for e in getattr(self, section).validate())

        if self.log_level.upper() not in LOG_LEVELS:
            errors.append(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        if self.log_format not in LOG_FORMATS:
            errors.append(f"log_format must be one of {', '.join(LOG_FORMATS)}")

        return errors

    def require_valid(self) -> "BridgeConfig":
        """
        Raises:
            ConfigurationError: Listing every validation error
        """
        errors = self.validate()
        if errors:
            raise ConfigurationError(
                f"Invalid configuration: {'; '.join(errors)}",
                context={"errors": errors},
            )
        return self
