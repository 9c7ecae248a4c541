"""
Orchestrator - Engine Configuration.

============================================================
RESPONSIBILITY
============================================================
Composes the per-package configurations into one object and
loads it from the environment or a YAML file.

- Environment: process env after load_dotenv()
- YAML: one section per package, unknown keys rejected
- Validation happens in each dataclass' __post_init__

============================================================
SECTIONS
============================================================
indicators   -> technical_analysis.IndicatorConfig
behavioral   -> smart_money.BehavioralConfig
fusion       -> scoring_engine.FusionConfig
priority     -> prioritization.PriorityConfig
universe     -> prioritization.UniverseConfig
transfers    -> TransferFeedSettings
candles      -> CandleSourceSettings
ingestion    -> data_ingestion.IngestionServiceConfig

============================================================
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml
from dotenv import load_dotenv

from core.constants import Timeframe
from core.exceptions import ConfigurationError
from data_ingestion.ingestion_service import IngestionServiceConfig
from onchain_adapters.retry import RetryPolicy
from prioritization.config import PriorityConfig, UniverseConfig
from scoring_engine.config import FusionConfig
from smart_money.config import BehavioralConfig
from storage.database import DEFAULT_DATABASE_URL
from technical_analysis.config import IndicatorConfig


# ============================================================
# UPSTREAM SETTINGS
# ============================================================


def _reject_unknown(cls, data: Dict[str, Any], section: str) -> None:
    unknown = set(data) - set(cls.__dataclass_fields__)
    if unknown:
        raise ConfigurationError(
            f"Unknown {section} settings: {', '.join(sorted(unknown))}",
            config_key=section,
        )


@dataclass
class TransferFeedSettings:
    """Transfer feed adapter, its shared rate limiter and retry policy."""

    provider: str = "helius"
    api_key: Optional[str] = None

    # Per upstream call
    timeout_seconds: float = 10.0
    max_transactions: int = 1000

    # Shared token bucket
    requests_per_second: float = 3.0
    burst: int = 3

    # Bounded retry
    max_attempts: int = 2
    backoff_base_seconds: float = 1.0
    backoff_multiplier: float = 1.5
    max_backoff_seconds: float = 10.0

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be positive",
                                     config_key="transfers.timeout_seconds",
                                     actual_value=self.timeout_seconds)
        if self.max_transactions < 1:
            raise ConfigurationError("max_transactions must be >= 1",
                                     config_key="transfers.max_transactions",
                                     actual_value=self.max_transactions)
        if self.requests_per_second <= 0 or self.burst < 1:
            raise ConfigurationError("Rate limit must allow at least one request",
                                     config_key="transfers.requests_per_second")
        # Validates the retry fields
        self.retry_policy()

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            backoff_base_seconds=self.backoff_base_seconds,
            backoff_multiplier=self.backoff_multiplier,
            max_backoff_seconds=self.max_backoff_seconds,
        )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TransferFeedSettings":
        data = dict(data or {})
        _reject_unknown(cls, data, "transfers")
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "api_key": "***" if self.api_key else None,
            "timeout_seconds": self.timeout_seconds,
            "max_transactions": self.max_transactions,
            "requests_per_second": self.requests_per_second,
            "burst": self.burst,
            **self.retry_policy().to_dict(),
        }


@dataclass
class CandleSourceSettings:
    """OHLCV provider used by candle ingestion."""

    provider: str = "birdeye"
    api_key: Optional[str] = None
    timeout_seconds: float = 15.0
    requests_per_second: float = 1.0
    burst: int = 1

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be positive",
                                     config_key="candles.timeout_seconds",
                                     actual_value=self.timeout_seconds)
        if self.requests_per_second <= 0 or self.burst < 1:
            raise ConfigurationError("Rate limit must allow at least one request",
                                     config_key="candles.requests_per_second")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CandleSourceSettings":
        data = dict(data or {})
        _reject_unknown(cls, data, "candles")
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "api_key": "***" if self.api_key else None,
            "timeout_seconds": self.timeout_seconds,
            "requests_per_second": self.requests_per_second,
            "burst": self.burst,
        }


# ============================================================
# ENGINE CONFIG
# ============================================================


@dataclass
class EngineConfig:
    """Configuration for the whole feature engine."""

    database_url: str = DEFAULT_DATABASE_URL

    # Timeframes a snapshot is written for each cycle; the first is the
    # staleness reference for the selector
    snapshot_timeframes: Tuple[Timeframe, ...] = (Timeframe.H1,)

    cycle_interval_seconds: float = 300
    worker_pool_size: int = 4

    indicators: IndicatorConfig = field(default_factory=IndicatorConfig)
    behavioral: BehavioralConfig = field(default_factory=BehavioralConfig)
    fusion: FusionConfig = field(default_factory=FusionConfig)
    priority: PriorityConfig = field(default_factory=PriorityConfig)
    universe: UniverseConfig = field(default_factory=UniverseConfig)
    transfers: TransferFeedSettings = field(default_factory=TransferFeedSettings)
    candles: CandleSourceSettings = field(default_factory=CandleSourceSettings)
    ingestion: IngestionServiceConfig = field(default_factory=IngestionServiceConfig)

    def __post_init__(self) -> None:
        if isinstance(self.snapshot_timeframes, str):
            self.snapshot_timeframes = tuple(
                part for part in self.snapshot_timeframes.split(",") if part.strip()
            )
        try:
            self.snapshot_timeframes = tuple(Timeframe.parse(tf) for tf in self.snapshot_timeframes)
        except ValueError as e:
            raise ConfigurationError(str(e), config_key="snapshot_timeframes") from e
        if not self.snapshot_timeframes:
            raise ConfigurationError("At least one snapshot timeframe is required",
                                     config_key="snapshot_timeframes")
        if len(set(self.snapshot_timeframes)) != len(self.snapshot_timeframes):
            raise ConfigurationError("snapshot_timeframes contains duplicates",
                                     config_key="snapshot_timeframes")
        if self.worker_pool_size < 1:
            raise ConfigurationError("worker_pool_size must be >= 1",
                                     config_key="worker_pool_size",
                                     actual_value=self.worker_pool_size)
        if self.cycle_interval_seconds <= 0:
            raise ConfigurationError("cycle_interval_seconds must be positive",
                                     config_key="cycle_interval_seconds",
                                     actual_value=self.cycle_interval_seconds)

    @property
    def primary_timeframe(self) -> Timeframe:
        return self.snapshot_timeframes[0]

    # ----------------------------------------------------------
    # Loaders
    # ----------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EngineConfig":
        data = dict(data or {})
        sections = {
            "indicators": IndicatorConfig.from_dict,
            "behavioral": BehavioralConfig.from_dict,
            "fusion": FusionConfig.from_dict,
            "priority": PriorityConfig.from_dict,
            "universe": UniverseConfig.from_dict,
            "transfers": TransferFeedSettings.from_dict,
            "candles": CandleSourceSettings.from_dict,
            "ingestion": lambda section: IngestionServiceConfig.from_dict(section or {}),
        }
        kwargs: Dict[str, Any] = {}
        for name, loader in sections.items():
            if name in data:
                kwargs[name] = loader(data.pop(name))

        for name in ("database_url", "snapshot_timeframes", "cycle_interval_seconds", "worker_pool_size"):
            if name in data:
                kwargs[name] = data.pop(name)

        if data:
            raise ConfigurationError(
                f"Unknown engine settings: {', '.join(sorted(data))}",
                config_key="engine",
            )
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "EngineConfig":
        """Load from a YAML file, then fill secrets from the environment."""
        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file: {e}", config_key="config",
                                     actual_value=str(path), cause=e) from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}", config_key="config",
                                     cause=e) from e
        if not isinstance(data, dict):
            raise ConfigurationError("Config file must contain a mapping", config_key="config",
                                     actual_value=str(path))

        config = cls.from_dict(data)
        config.apply_env_secrets()
        return config

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Load configuration from environment variables."""
        load_dotenv()
        config = cls(
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            snapshot_timeframes=os.getenv("FEATURE_TIMEFRAMES", Timeframe.H1.value),
            cycle_interval_seconds=float(os.getenv("CYCLE_INTERVAL_SECONDS", "300")),
            worker_pool_size=int(os.getenv("WORKER_POOL_SIZE", "4")),
            behavioral=BehavioralConfig(
                whale_threshold_usd=float(os.getenv("WHALE_THRESHOLD_USD", "10000")),
            ),
            priority=PriorityConfig(
                budget=int(os.getenv("ENRICHMENT_BUDGET", "50")),
            ),
            transfers=TransferFeedSettings(
                provider=os.getenv("TRANSFER_PROVIDER", "helius"),
                timeout_seconds=float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "10")),
                requests_per_second=float(os.getenv("TRANSFER_REQUESTS_PER_SECOND", "3")),
            ),
            candles=CandleSourceSettings(
                provider=os.getenv("CANDLE_PROVIDER", "birdeye"),
            ),
        )
        config.apply_env_secrets()
        return config

    def apply_env_secrets(self) -> None:
        """Fill API keys missing from the config from the environment."""
        load_dotenv()
        self.transfers.api_key = self.transfers.api_key or os.getenv("HELIUS_API_KEY")
        self.candles.api_key = self.candles.api_key or os.getenv("BIRDEYE_API_KEY")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "database_url": self.database_url.split("@")[-1],
            "snapshot_timeframes": [tf.value for tf in self.snapshot_timeframes],
            "cycle_interval_seconds": self.cycle_interval_seconds,
            "worker_pool_size": self.worker_pool_size,
            "indicators": self.indicators.to_dict(),
            "behavioral": self.behavioral.to_dict(),
            "fusion": self.fusion.to_dict(),
            "priority": self.priority.to_dict(),
            "universe": self.universe.to_dict(),
            "transfers": self.transfers.to_dict(),
            "candles": self.candles.to_dict(),
            "ingestion": self.ingestion.to_dict(),
        }
