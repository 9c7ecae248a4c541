"""
Orchestrator - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the feature engine.

- Provides argparse-based CLI
- Loads configuration from a YAML file or the environment
- Entry point for cycles, candle ingestion and table creation

============================================================
USAGE
============================================================
python -m orchestrator.cli --mode init-db
python -m orchestrator.cli --mode ingest --tokens <mint> <mint>
python -m orchestrator.cli --mode cycle --single-cycle
python -m orchestrator.cli --mode cycle --config engine.yaml

============================================================
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from core.exceptions import ConfigurationError, FeatureEngineError
from data_ingestion.collectors import create_candle_collector
from data_ingestion.ingestion_service import CandleIngestionService
from onchain_adapters.rate_limiter import RateLimiter
from orchestrator.config import EngineConfig
from orchestrator.core import build_cycle_runner, build_transfer_adapter, registry_loader
from prioritization.universe import UniverseFilter
from storage.database import (
    create_database_engine,
    create_session_factory,
    initialize_database,
)


MODES = ("cycle", "ingest", "init-db")

LOG_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)s | %(message)s"


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="token-feature-engine",
        description="Per-token technical and behavioral feature engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Modes:
  cycle     - Select tokens under the call budget and write feature snapshots
  ingest    - Bring stored candles up to date for the token universe
  init-db   - Create missing tables

Examples:
  %(prog)s --mode init-db
  %(prog)s --mode ingest --tokens So11111111111111111111111111111111111111112
  %(prog)s --mode cycle --single-cycle --log-level DEBUG
  %(prog)s --mode cycle --config engine.yaml
        """
    )

    parser.add_argument(
        "--mode", "-m",
        type=str,
        choices=MODES,
        default="cycle",
        help="Runtime mode (default: cycle)",
    )

    # --------------------------------------------------------
    # Configuration
    # --------------------------------------------------------
    config_group = parser.add_argument_group("Configuration")

    config_group.add_argument(
        "--config", "-c",
        type=str,
        metavar="PATH",
        help="YAML configuration file (default: environment variables)",
    )

    config_group.add_argument(
        "--database-url",
        type=str,
        metavar="URL",
        help="Override the configured database URL",
    )

    # --------------------------------------------------------
    # Execution Options
    # --------------------------------------------------------
    execution_group = parser.add_argument_group("Execution Options")

    execution_group.add_argument(
        "--single-cycle",
        action="store_true",
        help="Run a single cycle and exit (no loop)",
    )

    execution_group.add_argument(
        "--tokens",
        nargs="+",
        metavar="TOKEN",
        help="Ingest only these tokens (default: eligible universe)",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )

    return parser


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stdout,
        force=True,
    )


def load_config(args: argparse.Namespace) -> EngineConfig:
    config = EngineConfig.from_yaml(args.config) if args.config else EngineConfig.from_env()
    if args.database_url:
        config.database_url = args.database_url
    return config


# ============================================================
# MODES
# ============================================================

async def run_cycles(config: EngineConfig, session_factory, single_cycle: bool) -> int:
    adapter = build_transfer_adapter(config, session_factory)
    runner = build_cycle_runner(config, session_factory, adapter=adapter)

    try:
        if single_cycle:
            result = await runner.run_cycle()
            return 0 if result.success else 1

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, runner.stop)
            except NotImplementedError:
                # Windows event loops
                pass
        await runner.run_forever()
        return 0
    finally:
        await adapter.close()


async def run_ingestion(config: EngineConfig, session_factory, tokens: Optional[List[str]]) -> int:
    settings = config.candles
    collector = create_candle_collector(
        settings.provider,
        api_key=settings.api_key,
        timeout=settings.timeout_seconds,
        rate_limiter=RateLimiter(settings.requests_per_second, settings.burst),
    )
    service = CandleIngestionService(
        collector,
        session_factory,
        config=config.ingestion,
        retry_policy=config.transfers.retry_policy(),
    )

    if not tokens:
        registry = registry_loader(session_factory)()
        tokens = [t.token_id for t in UniverseFilter(config.universe).apply(registry)]

    try:
        results = await service.ingest_many(tokens)
    finally:
        await collector.close()

    return 0 if all(r.is_success for r in results) else 1


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)
    logger = logging.getLogger("orchestrator")

    try:
        config = load_config(args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    logger.info(f"Starting in {args.mode} mode")
    engine = create_database_engine(config.database_url)
    session_factory = create_session_factory(engine)

    try:
        if args.mode == "init-db":
            initialize_database(engine)
            return 0
        if args.mode == "ingest":
            return asyncio.run(run_ingestion(config, session_factory, args.tokens))
        return asyncio.run(run_cycles(config, session_factory, args.single_cycle))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except FeatureEngineError as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        engine.dispose()


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
