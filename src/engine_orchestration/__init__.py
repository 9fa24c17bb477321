"""Public package interface for engine orchestration."""

__version__ = "0.1.0"

from .aggregator import ResultAggregator
from .cache import CacheKeyDeriver, ResultCache, derive_key
from .config import (
    AggregationConfig,
    CacheConfig,
    ConsensusConfig,
    ConsensusWeighting,
    OrchestrationConfig,
    Settings,
)
from .consensus import ConsensusValidator, ValidationVariant
from .engine import Engine, EngineInput
from .errors import (
    CancellationError,
    CircuitOpenError,
    EngineExecutionError,
    EngineTimeoutError,
    InvalidRequestError,
    OrchestrationError,
    PreconditionError,
)
from .generator import EntropyGenerator, SeededGenerator, derive_seed, hash_seed
from .models import (
    AggregatedResult,
    ConsensusReport,
    Contribution,
    Discrepancy,
    EngineOutcome,
    EngineResult,
    EngineStatus,
    OrchestrationRun,
    RegressionCase,
    ValidationSource,
)
from .orchestrator import CancellationToken, EngineOrchestrator
from .registry import EngineRegistry
from .service import ExecutionReport, OrchestrationService

__all__ = [
    "__version__",
    "AggregatedResult",
    "AggregationConfig",
    "CacheConfig",
    "CacheKeyDeriver",
    "CancellationError",
    "CancellationToken",
    "CircuitOpenError",
    "ConsensusConfig",
    "ConsensusReport",
    "ConsensusValidator",
    "ConsensusWeighting",
    "Contribution",
    "Discrepancy",
    "Engine",
    "EngineExecutionError",
    "EngineInput",
    "EngineOrchestrator",
    "EngineOutcome",
    "EngineRegistry",
    "EngineResult",
    "EngineStatus",
    "EngineTimeoutError",
    "EntropyGenerator",
    "ExecutionReport",
    "InvalidRequestError",
    "OrchestrationConfig",
    "OrchestrationError",
    "OrchestrationRun",
    "OrchestrationService",
    "PreconditionError",
    "RegressionCase",
    "ResultAggregator",
    "ResultCache",
    "SeededGenerator",
    "Settings",
    "ValidationSource",
    "ValidationVariant",
    "derive_key",
    "derive_seed",
    "hash_seed",
]
