"""Configuration models for engine orchestration.

This module defines the configuration schemas used by the orchestrator,
the aggregator, the consensus validator and the result cache. Settings load
from ``ENGINE_ORCH_``-prefixed environment variables and, optionally, from a
YAML file.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConsensusWeighting(str, Enum):
    """How source reliabilities feed the consensus confidence."""

    MEAN_RELIABILITY = "mean_reliability"
    AGREEMENT_WEIGHTED = "agreement_weighted"


class OrchestrationConfig(BaseModel):
    """Fan-out, timeout and retry behaviour of the orchestrator."""
    max_concurrent_engines: int = Field(default=8, ge=1)
    default_timeout_ms: int = Field(default=30000, ge=1)
    run_deadline_ms: Optional[int] = Field(default=None, ge=1)
    max_retries: int = Field(default=0, ge=0)
    # Retry policy toggles
    retry_on_timeouts: bool = True
    retry_on_failures: bool = True
    retry_backoff_base_seconds: float = Field(default=0.05, ge=0.0)
    circuit_breaker_enabled: bool = False
    circuit_breaker_failure_threshold: int = Field(default=5, ge=1)
    circuit_breaker_recovery_timeout_seconds: int = Field(default=60, ge=0)


class AggregationConfig(BaseModel):
    """Cross-engine synthesis thresholds."""
    theme_min_engines: int = Field(default=2, ge=1)


class ConsensusConfig(BaseModel):
    """Thresholds used by the consensus validator (tunable, not domain rules)."""
    confidence_threshold: float = Field(default=85.0, ge=0.0, le=100.0)
    agreement_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    regression_threshold: float = Field(default=95.0, ge=0.0, le=100.0)
    weighting: ConsensusWeighting = ConsensusWeighting.MEAN_RELIABILITY


class CacheConfig(BaseModel):
    """In-process result cache and key derivation."""
    enabled: bool = True
    ttl_seconds: int = Field(default=3600, ge=0)
    max_entries: int = Field(default=200, ge=1)
    separator: str = Field(default=":", min_length=1)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    model_config = SettingsConfigDict(env_prefix="ENGINE_ORCH_", env_nested_delimiter="__")

    # Core
    environment: str = "dev"
    log_level: str = "INFO"
    log_format: str = "json"

    orchestration: OrchestrationConfig = OrchestrationConfig()
    aggregation: AggregationConfig = AggregationConfig()
    consensus: ConsensusConfig = ConsensusConfig()
    cache: CacheConfig = CacheConfig()

    def __init__(self, _config_file: Optional[str] = None, **values: Any) -> None:
        file_values: Dict[str, Any] = {}
        if _config_file:
            cfg_path = Path(_config_file)
            if cfg_path.exists():
                loaded = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
                if isinstance(loaded, dict):
                    file_values = loaded
        merged = {**file_values, **values}
        super().__init__(**merged)
