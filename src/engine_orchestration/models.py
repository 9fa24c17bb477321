from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EngineStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class Contribution(BaseModel):
    """A single fact an engine contributes to cross-engine synthesis."""

    model_config = ConfigDict(frozen=True)

    category: str = Field(..., min_length=1)
    message: str = ""
    weight: float = 1.0


class EngineResult(BaseModel):
    """Result produced by a successful engine run.

    Engines subclass this to declare a typed result schema; plain mappings
    returned from ``Engine.run`` are wrapped into ``data``.
    """

    model_config = ConfigDict(frozen=True)

    data: Dict[str, Any] = Field(default_factory=dict)
    contributions: List[Contribution] = Field(default_factory=list)
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class EngineOutcome(BaseModel):
    """Tagged outcome of attempting one engine: success, skipped or failed."""

    model_config = ConfigDict(frozen=True)

    engine: str
    status: EngineStatus
    result: Optional[EngineResult] = None
    reason: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @model_validator(mode="after")
    def _check_payload(self) -> "EngineOutcome":
        if self.status == EngineStatus.SUCCESS:
            if self.result is None or self.reason or self.error:
                raise ValueError("success outcomes carry only a result")
        elif self.status == EngineStatus.SKIPPED:
            if self.reason is None or self.result is not None or self.error:
                raise ValueError("skipped outcomes carry only a reason")
        elif self.error is None or self.result is not None or self.reason:
            raise ValueError("failed outcomes carry only an error")
        return self

    @classmethod
    def success(cls, engine: str, result: EngineResult) -> "EngineOutcome":
        return cls(engine=engine, status=EngineStatus.SUCCESS, result=result)

    @classmethod
    def skipped(cls, engine: str, reason: str) -> "EngineOutcome":
        return cls(engine=engine, status=EngineStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(
        cls, engine: str, error: str, error_type: Optional[str] = None
    ) -> "EngineOutcome":
        return cls(
            engine=engine,
            status=EngineStatus.FAILED,
            error=error,
            error_type=error_type,
        )

    @property
    def succeeded(self) -> bool:
        return self.status == EngineStatus.SUCCESS


class OrchestrationRun(BaseModel):
    """Everything one orchestrator run produced, keyed by engine name."""

    model_config = ConfigDict(frozen=True)

    outcomes: Dict[str, EngineOutcome]
    timings_ms: Dict[str, int] = Field(default_factory=dict)
    cancelled: bool = False
    total_processing_time_ms: int = 0

    def by_status(self, status: EngineStatus) -> List[str]:
        return sorted(
            name for name, outcome in self.outcomes.items() if outcome.status == status
        )


class Theme(BaseModel):
    """A contribution category reported by several engines."""

    model_config = ConfigDict(frozen=True)

    category: str
    engines: List[str]
    total_weight: float
    messages: List[str] = Field(default_factory=list)


class Contradiction(BaseModel):
    """A category on which engines pull in opposite directions."""

    model_config = ConfigDict(frozen=True)

    category: str
    supporting: List[str]
    opposing: List[str]


class AggregatedResult(BaseModel):
    """Caller-facing merge of one orchestrator run."""

    model_config = ConfigDict(frozen=True)

    outcomes: Dict[str, EngineOutcome]
    themes: List[Theme] = Field(default_factory=list)
    contradictions: List[Contradiction] = Field(default_factory=list)
    contributing_engines: List[str] = Field(default_factory=list)
    skipped_engines: List[str] = Field(default_factory=list)
    failed_engines: List[str] = Field(default_factory=list)
    coverage: float = 0.0
    generated_at: Optional[datetime] = None
    cache_key: Optional[str] = None

    def with_cache_key(self, cache_key: str) -> "AggregatedResult":
        """Return a copy tagged with ``cache_key``."""

        return self.model_copy(update={"cache_key": cache_key})


class ValidationSource(BaseModel):
    """One algorithm variant's answer for a computation under validation."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    reliability: float = Field(..., gt=0.0, le=1.0)
    value: Any = None
    algorithm: Optional[str] = None


class DiscrepancyKind(str, Enum):
    LOW_AGREEMENT = "low_agreement"
    SOURCE_FAILED = "source_failed"
    REGRESSION_MISMATCH = "regression_mismatch"


class Discrepancy(BaseModel):
    """Informational validation discrepancy attached to a consensus report."""

    model_config = ConfigDict(frozen=True)

    kind: DiscrepancyKind
    description: str
    expected: Any = None
    actual: Any = None
    sources: List[str] = Field(default_factory=list)


class ConsensusReport(BaseModel):
    """Outcome of a consensus validation or regression run."""

    model_config = ConfigDict(frozen=True)

    confidence: float = Field(..., ge=0.0, le=100.0)
    is_valid: bool
    sources: List[str] = Field(default_factory=list)
    discrepancies: List[Discrepancy] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    consensus_value: Any = None
    consensus_ratio: float = 0.0


class RegressionCase(BaseModel):
    """A known input and the output a deterministic implementation must produce."""

    model_config = ConfigDict(frozen=True)

    name: str
    input: Any
    expected: Any
