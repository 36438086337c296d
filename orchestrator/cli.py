"""
Orchestrator - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the bridge worker.

- Provides argparse-based CLI
- Loads configuration from environment, then CLI overrides
- Entry point for the application

============================================================
USAGE
============================================================
python -m orchestrator.cli
python -m orchestrator.cli --single-cycle --dry-run
python -m orchestrator.cli --init-db
python -m orchestrator.cli --env-file /etc/bridge.env --interval 30

============================================================
"""

import argparse
import asyncio
import dataclasses
import logging
import sys
from typing import List, Optional

from core.exceptions import BridgeError, ConfigurationError
from database import Database
from node_client import NodeClient
from .config import LOG_FORMATS, LOG_LEVELS, BridgeConfig
from .driver import ReconciliationDriver
from .logging_setup import setup_logging


logger = logging.getLogger(__name__)


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="chain-bridge",
        description="Deposit/withdrawal bridge between a wallet node and the ledger store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Configuration is read from the environment (and a .env file);
flags below override it.

Examples:
  %(prog)s                              # Run forever
  %(prog)s --single-cycle --dry-run     # One cycle, no transfers
  %(prog)s --init-db                    # Create tables and exit
        """,
    )

    parser.add_argument(
        "--env-file",
        type=str,
        metavar="PATH",
        help="Path to a .env file (default: search from the working directory)",
    )

    # --------------------------------------------------------
    # Execution Options
    # --------------------------------------------------------
    execution_group = parser.add_argument_group("Execution Options")

    execution_group.add_argument(
        "--single-cycle",
        action="store_true",
        help="Run a single cycle and exit (0 on success, 1 on failure or rejection)",
    )

    execution_group.add_argument(
        "--init-db",
        action="store_true",
        help="Create the ledger tables and exit",
    )

    execution_group.add_argument(
        "--interval",
        type=float,
        metavar="SECONDS",
        help="Seconds between cycle starts (env: TICK_INTERVAL_SECONDS)",
    )

    execution_group.add_argument(
        "--account",
        type=str,
        metavar="UID",
        help="Monitored account (env: BRIDGE_MONITORED_ACCOUNT)",
    )

    execution_group.add_argument(
        "--dry-run",
        action="store_true",
        help="Log withdrawals instead of submitting them",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str.upper,
        choices=list(LOG_LEVELS),
        help="Logging level (env: LOG_LEVEL, default: INFO)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=list(LOG_FORMATS),
        help="Logging format (env: LOG_FORMAT, default: text)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )

    return parser


# ============================================================
# CLI CONFIGURATION BUILDER
# ============================================================

def build_config(args: argparse.Namespace) -> BridgeConfig:
    """
    Build bridge configuration from environment and CLI arguments.

    Raises:
        ConfigurationError: If the result is invalid
    """
    config = BridgeConfig.from_env(args.env_file)

    if args.interval is not None:
        config = dataclasses.replace(
            config,
            scheduler=dataclasses.replace(config.scheduler, interval_seconds=args.interval),
        )
    if args.account:
        config = dataclasses.replace(
            config,
            ingestion=dataclasses.replace(config.ingestion, monitored_account=args.account),
        )
    if args.dry_run:
        config = dataclasses.replace(
            config,
            disbursement=dataclasses.replace(config.disbursement, dry_run=True),
        )
    if args.log_level:
        config = dataclasses.replace(config, log_level=args.log_level)
    if args.log_format:
        config = dataclasses.replace(config, log_format=args.log_format)

    if args.init_db:
        # Schema bootstrap needs only the store settings.
        errors = config.database.validate()
        if errors:
            raise ConfigurationError(f"Invalid configuration: {'; '.join(errors)}")
        return config

    return config.require_valid()


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def async_main(args: argparse.Namespace, config: BridgeConfig) -> int:
    """
    Async main entry point.

    Returns:
        Exit code
    """
    database = Database(config.database)
    try:
        if args.init_db:
            await database.create_all()
            return 0

        async with NodeClient(config.node) as node:
            driver = ReconciliationDriver(config, node, database)

            if args.single_cycle:
                await driver.audit_interrupted_submissions()
                report = await driver.run_cycle()
                return 0 if report.success else 1

            await driver.run_forever()
            return 0

    except BridgeError as e:
        logger.error(f"Fatal error: {e.to_log_format()}", exc_info=True)
        return 1
    except asyncio.CancelledError:
        logger.critical("Worker cancelled during shutdown")
        return 1
    finally:
        await database.dispose()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    setup_logging(level=config.log_level, log_format=config.log_format)
    logger.info(
        f"Bridge starting | account={config.monitored_account or '-'} "
        f"| node={config.node.rpc_url} | db={config.database.safe_url} "
        f"| dry_run={config.disbursement.dry_run}"
    )

    try:
        return asyncio.run(async_main(args, config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
