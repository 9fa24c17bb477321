from __future__ import annotations

from collections import defaultdict
from typing import Dict

from prometheus_client import Counter, Gauge, Histogram


_RUNS_TOTAL = Counter(
    "engine_orchestration_runs_total",
    "Total orchestrator runs",
    labelnames=["cancelled"],
)
_RUN_DURATION = Histogram(
    "engine_orchestration_run_duration_ms",
    "Orchestrator run duration in ms",
    buckets=(10, 50, 100, 200, 500, 1000, 2000, 5000, 10000, 30000),
)
_ENGINE_OUTCOMES = Counter(
    "engine_outcomes_total",
    "Engine outcomes by status",
    labelnames=["engine", "status"],
)
_ENGINE_LATENCY = Histogram(
    "engine_latency_ms",
    "Engine latency in ms",
    labelnames=["engine", "status"],
    buckets=(1, 5, 10, 50, 100, 500, 1000, 5000, 30000),
)
_CB_STATE = Gauge(
    "engine_circuit_breaker_state",
    "Circuit breaker state",
    labelnames=["engine", "state"],
)
_COVERAGE = Gauge(
    "engine_orchestration_coverage",
    "Fraction of engines that succeeded in the last aggregated run",
)
_CACHE_OPS = Counter(
    "engine_orchestration_cache_operations_total",
    "Result cache lookups",
    labelnames=["outcome"],
)
_CONSENSUS_CONFIDENCE = Histogram(
    "consensus_confidence",
    "Consensus confidence score (0-100)",
    labelnames=["valid"],
    buckets=(10, 25, 50, 70, 85, 95, 100),
)


class OrchestrationMetricsCollector:
    """Prometheus metrics plus in-memory mirrors for quick summaries."""

    def __init__(self) -> None:
        self._outcomes: Dict[str, int] = defaultdict(int)
        self._runs: int = 0
        self._run_latency_sum_ms: float = 0.0
        self._cache_ops: Dict[str, int] = defaultdict(int)

    def record_run(self, duration_ms: float, cancelled: bool = False) -> None:
        _RUNS_TOTAL.labels(cancelled=str(cancelled).lower()).inc()
        _RUN_DURATION.observe(duration_ms)
        self._runs += 1
        self._run_latency_sum_ms += duration_ms

    def record_engine_outcome(self, engine: str, status: str, duration_ms: float) -> None:
        _ENGINE_OUTCOMES.labels(engine=engine, status=status).inc()
        _ENGINE_LATENCY.labels(engine=engine, status=status).observe(duration_ms)
        self._outcomes[status] += 1

    def record_circuit_breaker(self, engine: str, state: str) -> None:
        for candidate in ("closed", "open", "half_open"):
            _CB_STATE.labels(engine=engine, state=candidate).set(1.0 if candidate == state else 0.0)

    def record_coverage(self, coverage: float) -> None:
        _COVERAGE.set(coverage)

    def record_cache_operation(self, outcome: str) -> None:
        label = outcome if outcome in {"hit", "miss", "store"} else "other"
        _CACHE_OPS.labels(outcome=label).inc()
        self._cache_ops[label] += 1

    def record_consensus(self, confidence: float, is_valid: bool) -> None:
        _CONSENSUS_CONFIDENCE.labels(valid=str(is_valid).lower()).observe(confidence)

    def get_average_run_latency(self) -> float:
        if self._runs == 0:
            return 0.0
        return self._run_latency_sum_ms / self._runs

    def get_metrics_summary(self) -> Dict[str, object]:
        return {
            "runs_total": self._runs,
            "average_run_latency_ms": self.get_average_run_latency(),
            "outcomes": dict(self._outcomes),
            "cache": dict(self._cache_ops),
        }

    def reset_metrics(self) -> None:
        # Prometheus objects keep their own state; only local mirrors reset.
        self._outcomes.clear()
        self._runs = 0
        self._run_latency_sum_ms = 0.0
        self._cache_ops.clear()
