"""
Configuration, CLI and Logging Tests.

============================================================
PURPOSE
============================================================
Tests for BridgeConfig loading, CLI overrides, the CLI
entry point and process logging setup.

============================================================
"""

import json
import logging
from decimal import Decimal

import pytest

from core.exceptions import ConfigurationError
from orchestrator import BridgeConfig, setup_logging
from orchestrator.cli import build_config, create_parser, main


ENV_NAMES = (
    "BRIDGE_RPC_URL", "BRIDGE_RPC_USER", "BRIDGE_RPC_PASSWORD", "BRIDGE_RPC_TIMEOUT_SECONDS",
    "BRIDGE_TRANSFER_OP_TYPE", "BRIDGE_HEAD_AGE_THRESHOLD_SECONDS", "BRIDGE_PARTICIPATION_THRESHOLD",
    "BRIDGE_MONITORED_ACCOUNT", "BRIDGE_ASSET_ID", "BRIDGE_PAGE_SIZE", "BRIDGE_MEMO_PATTERN",
    "BRIDGE_ASSET_SYMBOL", "BRIDGE_RESERVE_FLOOR", "BRIDGE_RESERVE_COLLECT_AMOUNT",
    "BRIDGE_OUT_PLATFORM", "DRY_RUN", "DATABASE_URL", "DATABASE_ECHO",
    "DATABASE_POOL_SIZE", "DATABASE_MAX_OVERFLOW", "TICK_INTERVAL_SECONDS",
    "SHUTDOWN_TIMEOUT_SECONDS", "CYCLE_HISTORY_SIZE", "CYCLE_STATUS_EVERY", "LOG_LEVEL", "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Unset every bridge variable; values loaded from .env files are undone too."""
    for name in ENV_NAMES:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


@pytest.fixture
def env_file(tmp_path):
    def write(**values) -> str:
        path = tmp_path / "bridge.env"
        path.write_text("".join(f"{k}={v}\n" for k, v in values.items()))
        return str(path)
    return write


@pytest.fixture
def root_handlers():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


# ============================================================
# BRIDGE CONFIG
# ============================================================

class TestBridgeConfig:
    """Tests for BridgeConfig."""

    def test_defaults(self, env_file):
        config = BridgeConfig.from_env(env_file())

        assert config.node.rpc_url == "http://127.0.0.1:8091/rpc"
        assert config.health.head_age_threshold_seconds == 15.0
        assert config.health.participation_threshold_percent == Decimal("79.999")
        assert config.disbursement.reserve_floor == 2_000_000
        assert config.scheduler.interval_seconds == 10.0
        assert config.disbursement.dry_run is False

    def test_environment_values(self, env_file, monkeypatch):
        monkeypatch.setenv("BRIDGE_MONITORED_ACCOUNT", "25638")
        monkeypatch.setenv("BRIDGE_PARTICIPATION_THRESHOLD", "66.5")
        monkeypatch.setenv("TICK_INTERVAL_SECONDS", "30")
        monkeypatch.setenv("DRY_RUN", "true")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        config = BridgeConfig.from_env(env_file())

        assert config.monitored_account == "25638"
        assert config.health.participation_threshold_percent == Decimal("66.5")
        assert config.scheduler.interval_seconds == 30.0
        assert config.disbursement.dry_run is True
        assert config.log_level == "DEBUG"

    def test_dotenv_file(self, env_file):
        path = env_file(BRIDGE_MONITORED_ACCOUNT="25638", BRIDGE_PAGE_SIZE="25")

        config = BridgeConfig.from_env(path)

        assert config.monitored_account == "25638"
        assert config.ingestion.page_size == 25

    def test_environment_beats_dotenv(self, env_file, monkeypatch):
        monkeypatch.setenv("BRIDGE_MONITORED_ACCOUNT", "from-env")

        config = BridgeConfig.from_env(env_file(BRIDGE_MONITORED_ACCOUNT="from-file"))

        assert config.monitored_account == "from-env"

    def test_unparseable_value(self, env_file, monkeypatch):
        monkeypatch.setenv("BRIDGE_PAGE_SIZE", "ten")

        with pytest.raises(ConfigurationError) as info:
            BridgeConfig.from_env(env_file())

        assert info.value.context["variable"] == "BRIDGE_PAGE_SIZE"

    def test_validate_collects_all_errors(self, env_file, monkeypatch):
        monkeypatch.setenv("BRIDGE_RPC_URL", "127.0.0.1:8091")
        monkeypatch.setenv("BRIDGE_PAGE_SIZE", "0")
        monkeypatch.setenv("CYCLE_STATUS_EVERY", "0")

        errors = BridgeConfig.from_env(env_file()).validate()

        assert any(e.startswith("node: rpc_url") for e in errors)
        assert "ingestion: monitored_account is required" in errors
        assert "ingestion: page_size must be at least 1" in errors
        assert "scheduler: status_every_cycles must be at least 1" in errors

    def test_require_valid(self, env_file):
        config = BridgeConfig.from_env(env_file(BRIDGE_MONITORED_ACCOUNT="25638"))
        assert config.require_valid() is config

        with pytest.raises(ConfigurationError):
            BridgeConfig.from_env(env_file()).require_valid()


# ============================================================
# CLI
# ============================================================

class TestCli:
    """Tests for argument parsing and overrides."""

    def test_overrides(self, env_file):
        args = create_parser().parse_args([
            "--env-file", env_file(BRIDGE_MONITORED_ACCOUNT="25638"),
            "--interval", "5",
            "--account", "30000",
            "--dry-run",
            "--log-level", "debug",
            "--log-format", "json",
        ])

        config = build_config(args)

        assert config.scheduler.interval_seconds == 5.0
        assert config.monitored_account == "30000"
        assert config.disbursement.dry_run is True
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"

    def test_init_db_needs_no_account(self, env_file):
        args = create_parser().parse_args(["--env-file", env_file(), "--init-db"])

        config = build_config(args)

        assert config.monitored_account == ""

    def test_invalid_config_exit_code(self, env_file, capsys):
        assert main(["--env-file", env_file()]) == 1
        assert "monitored_account is required" in capsys.readouterr().err

    def test_init_db_creates_tables(self, env_file, tmp_path, root_handlers):
        url = f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"

        assert main(["--env-file", env_file(DATABASE_URL=url), "--init-db"]) == 0
        assert (tmp_path / "ledger.db").exists()


# ============================================================
# LOGGING
# ============================================================

class TestLogging:
    """Tests for setup_logging."""

    def test_json_lines(self, root_handlers, capsys):
        setup_logging("INFO", "json")

        logging.getLogger("ingestion_engine.engine").info("cursor advanced")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        payload = json.loads(line)
        assert payload["level"] == "INFO"
        assert payload["logger"] == "ingestion_engine.engine"
        assert payload["message"] == "cursor advanced"

    def test_single_handler_and_level(self, root_handlers):
        setup_logging("warning", "text")
        setup_logging("warning", "text")

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING
