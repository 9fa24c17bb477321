"""Service facade: cache lookup, orchestration, aggregation and key tagging.

``OrchestrationService.execute`` is the caller-facing entry point that wires
the components together for one input:

1. derive the cache key and consult the result cache;
2. on a miss, fan out to the selected engines;
3. aggregate the outcomes with an injected timestamp;
4. tag the result with its cache key and store it.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .aggregator import ResultAggregator
from .cache import CacheKeyDeriver, ResultCache
from .config import Settings
from .engine import EngineInput
from .errors import CANCELLED, CIRCUIT_OPEN, TIMEOUT
from .logging import get_logger
from .metrics import OrchestrationMetricsCollector
from .models import AggregatedResult, EngineStatus
from .orchestrator import CancellationToken, EngineOrchestrator
from .registry import EngineRegistry

logger = get_logger(__name__)

# Failure reasons that say nothing about the input and must not be memoized
_TRANSIENT_FAILURES = frozenset({TIMEOUT, CANCELLED, CIRCUIT_OPEN})


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionReport(BaseModel):
    """What one ``execute`` call produced, including cache bookkeeping."""

    model_config = ConfigDict(frozen=True)

    result: AggregatedResult
    cache_key: str
    cache_hit: bool = False
    processing_time_ms: int = 0
    timings_ms: Dict[str, int] = Field(default_factory=dict)


class OrchestrationService:
    """Run registered engines for an input, memoizing aggregated results."""

    def __init__(
        self,
        registry: EngineRegistry,
        *,
        orchestrator: EngineOrchestrator | None = None,
        aggregator: ResultAggregator | None = None,
        cache: ResultCache[AggregatedResult] | None = None,
        deriver: CacheKeyDeriver | None = None,
        clock: Callable[[], datetime] = _utc_now,
        metrics: OrchestrationMetricsCollector | None = None,
    ):
        self.registry = registry
        self.metrics = metrics
        self.orchestrator = orchestrator or EngineOrchestrator(metrics=metrics)
        self.aggregator = aggregator or ResultAggregator(metrics=metrics)
        self.cache = cache
        self.deriver = deriver or CacheKeyDeriver()
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        registry: EngineRegistry,
        metrics: OrchestrationMetricsCollector | None = None,
    ) -> "OrchestrationService":
        cache: ResultCache[AggregatedResult] | None = None
        if settings.cache.enabled:
            cache = ResultCache(
                ttl_seconds=settings.cache.ttl_seconds,
                max_entries=settings.cache.max_entries,
            )
        return cls(
            registry,
            orchestrator=EngineOrchestrator(settings.orchestration, metrics=metrics),
            aggregator=ResultAggregator(settings.aggregation, metrics=metrics),
            cache=cache,
            deriver=CacheKeyDeriver(settings.cache.separator),
            metrics=metrics,
        )

    def cache_key(
        self,
        namespace: str,
        engine_input: EngineInput,
        engines: Optional[Sequence[str]] = None,
    ) -> str:
        """Key for ``engine_input``.

        An explicit engine subset is folded into the namespace segment as
        ``namespace@A+B``, apart from the input fields.
        """

        if engines is not None:
            namespace = f"{namespace}@{'+'.join(engines)}"
        return self.deriver.key_for(namespace, engine_input)

    async def execute(
        self,
        engine_input: EngineInput,
        namespace: str,
        *,
        engines: Optional[Sequence[str]] = None,
        use_cache: bool = True,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ExecutionReport:
        """Run ``engines`` (default: every registered engine) for ``engine_input``."""

        start = time.perf_counter()
        selected = self.registry.select(engines) if engines is not None else self.registry.all()
        key = self.cache_key(namespace, engine_input, engines)
        log = logger.bind(namespace=namespace, engine_count=len(selected))

        caching = use_cache and self.cache is not None
        if caching:
            cached = self.cache.get(key)
            if self.metrics:
                self.metrics.record_cache_operation("hit" if cached is not None else "miss")
            if cached is not None:
                log.debug("Result served from cache")
                return ExecutionReport(
                    result=cached,
                    cache_key=key,
                    cache_hit=True,
                    processing_time_ms=int((time.perf_counter() - start) * 1000),
                )

        run = await self.orchestrator.run(engine_input, selected, cancel_token=cancel_token)
        result = self.aggregator.aggregate(run, generated_at=self._clock()).with_cache_key(key)

        if caching and self._cacheable(result, run.cancelled):
            self.cache.set(key, result, namespace=namespace)
            if self.metrics:
                self.metrics.record_cache_operation("store")

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        log.info(
            "Execution completed",
            coverage=result.coverage,
            cancelled=run.cancelled,
            elapsed_ms=elapsed_ms,
        )
        return ExecutionReport(
            result=result,
            cache_key=key,
            cache_hit=False,
            processing_time_ms=elapsed_ms,
            timings_ms=dict(run.timings_ms),
        )

    def invalidate(self, namespace: str) -> int:
        if self.cache is None:
            return 0
        return self.cache.invalidate_namespace(namespace)

    @staticmethod
    def _cacheable(result: AggregatedResult, cancelled: bool) -> bool:
        if cancelled:
            return False
        return not any(
            outcome.status == EngineStatus.FAILED and outcome.error in _TRANSIENT_FAILURES
            for outcome in result.outcomes.values()
        )
