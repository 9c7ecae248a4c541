"""
Orchestrator Package - Batch Cycle Coordination.

============================================================
PACKAGE OVERVIEW
============================================================
Wires the engine together and runs it on a schedule.

============================================================
CORE PRINCIPLES
============================================================
1. The orchestrator has NO feature logic
2. The selector runs once per cycle, before any fan-out
3. Bounded parallelism: a fixed-size worker pool
4. Per-token failures never abort the cycle

============================================================
ARCHITECTURE
============================================================

    +-----------------------------------------------------+
    |                  FeatureCycleRunner                 |
    |-----------------------------------------------------|
    |  TokenUniverseCache | eligible tokens, refresh policy|
    |  PrioritySelector   | budgeted token selection       |
    |  Worker pool        | N asyncio workers              |
    |  TokenPipeline      | fetch, compute, fuse, persist  |
    |  CLI                | cycle / ingest / init-db       |
    +-----------------------------------------------------+

============================================================
USAGE
============================================================
    from orchestrator import EngineConfig, build_cycle_runner

    config = EngineConfig.from_env()
    runner = build_cycle_runner(config, session_factory)
    result = await runner.run_cycle()

============================================================
"""

from orchestrator.config import CandleSourceSettings, EngineConfig, TransferFeedSettings
from orchestrator.core import (
    CycleHistory,
    FeatureCycleRunner,
    build_cycle_runner,
    build_transfer_adapter,
    registry_loader,
)
from orchestrator.models import CycleResult, OutcomeStatus, TokenOutcome, WriteStatus
from orchestrator.pipeline import LatestClosePriceResolver, TokenPipeline


__all__ = [
    # Config
    "EngineConfig",
    "TransferFeedSettings",
    "CandleSourceSettings",
    # Runner
    "FeatureCycleRunner",
    "CycleHistory",
    "build_cycle_runner",
    "build_transfer_adapter",
    "registry_loader",
    # Pipeline
    "TokenPipeline",
    "LatestClosePriceResolver",
    # Models
    "CycleResult",
    "OutcomeStatus",
    "TokenOutcome",
    "WriteStatus",
]
