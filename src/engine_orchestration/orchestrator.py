"""Parallel fan-out / synchronized fan-in over a set of engines.

Every engine gets exactly one outcome per run. Precondition checks run first;
runnable engines are then started concurrently and each invocation is wrapped
so that a raised exception, a timeout or a cancellation becomes a ``failed``
outcome for that engine alone.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from .circuit_breaker import CircuitBreakerManager
from .config import OrchestrationConfig
from .engine import DEFAULT_SKIP_REASON, Engine, EngineInput
from .errors import (
    INVALID_RESULT,
    CancellationError,
    CircuitOpenError,
    EngineExecutionError,
    EngineTimeoutError,
    InvalidRequestError,
    OrchestrationError,
    PreconditionError,
    classify_exception,
    is_retryable,
)
from .logging import get_logger
from .metrics import OrchestrationMetricsCollector
from .models import EngineOutcome, EngineResult, OrchestrationRun

logger = get_logger(__name__)

# How long cancelled engine tasks get to unwind before being abandoned
_CANCEL_GRACE_SECONDS = 0.1


class CancellationToken:
    """Cooperative cancellation signal shared between a caller and a run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, OrchestrationError):
        return exc.message
    return str(exc) or type(exc).__name__


def failed_outcome(engine: str, error: OrchestrationError) -> EngineOutcome:
    """Record ``error`` as the failed outcome of ``engine``."""

    return EngineOutcome.failed(engine, error.message, type(error).__name__)


class EngineOrchestrator:
    """Run engines concurrently with preconditions, timeouts and retries."""

    def __init__(
        self,
        config: OrchestrationConfig | None = None,
        breakers: CircuitBreakerManager | None = None,
        metrics: OrchestrationMetricsCollector | None = None,
    ):
        self.config = config or OrchestrationConfig()
        if breakers is None and self.config.circuit_breaker_enabled:
            breakers = CircuitBreakerManager(
                self.config.circuit_breaker_failure_threshold,
                self.config.circuit_breaker_recovery_timeout_seconds,
            )
        self.breakers = breakers
        self.metrics = metrics

    async def run(
        self,
        engine_input: EngineInput,
        engines: Sequence[Engine],
        *,
        cancel_token: Optional[CancellationToken] = None,
        deadline_ms: Optional[int] = None,
    ) -> OrchestrationRun:
        """Run ``engines`` against ``engine_input`` and collect one outcome each.

        Engine failures never propagate; only an invalid call (no engines,
        duplicate engine names) raises ``InvalidRequestError``.
        """

        self._validate_request(engines)
        deadline_ms = deadline_ms if deadline_ms is not None else self.config.run_deadline_ms
        start = time.perf_counter()

        logger.info("Orchestration run started", engine_count=len(engines))

        outcomes: Dict[str, EngineOutcome] = {}
        timings: Dict[str, int] = {}
        runnable: List[Engine] = []
        for engine in engines:
            gate = self._check_precondition(engine, engine_input)
            if gate is None:
                runnable.append(engine)
            else:
                outcomes[engine.name] = gate
                timings[engine.name] = 0

        cancelled = False
        if runnable:
            semaphore = asyncio.Semaphore(self.config.max_concurrent_engines)
            tasks = {
                asyncio.create_task(
                    self._execute_engine(engine, engine_input, semaphore),
                    name=f"engine:{engine.name}",
                ): engine
                for engine in runnable
            }
            try:
                cancelled = await self._wait_for_settlement(
                    set(tasks), cancel_token, deadline_ms
                )
            except asyncio.CancelledError:
                for task in tasks:
                    task.cancel()
                raise

            elapsed_ms = int((time.perf_counter() - start) * 1000)
            for task, engine in tasks.items():
                if task.done() and not task.cancelled():
                    outcome, duration_ms = task.result()
                else:
                    outcome = failed_outcome(engine.name, CancellationError())
                    duration_ms = elapsed_ms
                outcomes[engine.name] = outcome
                timings[engine.name] = duration_ms

        total_ms = int((time.perf_counter() - start) * 1000)
        if self.metrics:
            for name, outcome in outcomes.items():
                self.metrics.record_engine_outcome(name, outcome.status.value, timings[name])
            self.metrics.record_run(total_ms, cancelled=cancelled)

        # Preserve the caller's engine order in the mapping
        ordered = {engine.name: outcomes[engine.name] for engine in engines}
        logger.info(
            "Orchestration run completed",
            engine_count=len(engines),
            failed=sum(1 for o in ordered.values() if o.status.value == "failed"),
            skipped=sum(1 for o in ordered.values() if o.status.value == "skipped"),
            cancelled=cancelled,
            elapsed_ms=total_ms,
        )
        return OrchestrationRun(
            outcomes=ordered,
            timings_ms={engine.name: timings[engine.name] for engine in engines},
            cancelled=cancelled,
            total_processing_time_ms=total_ms,
        )

    def run_sync(
        self,
        engine_input: EngineInput,
        engines: Sequence[Engine],
        *,
        deadline_ms: Optional[int] = None,
    ) -> OrchestrationRun:
        """Blocking wrapper for callers outside an event loop."""

        return asyncio.run(self.run(engine_input, engines, deadline_ms=deadline_ms))

    @staticmethod
    def _validate_request(engines: Sequence[Engine]) -> None:
        if not engines:
            raise InvalidRequestError("at least one engine is required")
        seen: set[str] = set()
        for engine in engines:
            name = getattr(engine, "name", None)
            if not name:
                raise InvalidRequestError(
                    "engine has no name", details={"engine": repr(engine)}
                )
            if name in seen:
                raise InvalidRequestError(
                    f"duplicate engine name: {name}", details={"engine": name}
                )
            seen.add(name)

    @staticmethod
    def _check_precondition(
        engine: Engine, engine_input: EngineInput
    ) -> Optional[EngineOutcome]:
        """Return a skipped/failed outcome, or None when the engine may run."""

        try:
            if engine.can_run(engine_input):
                return None
            reason = engine.skip_reason(engine_input) or DEFAULT_SKIP_REASON
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Engine precondition check raised",
                engine=engine.name,
                exception=type(exc).__name__,
            )
            return failed_outcome(engine.name, PreconditionError(engine=engine.name))
        logger.debug("Engine skipped", engine=engine.name, reason=reason)
        return EngineOutcome.skipped(engine.name, reason)

    @staticmethod
    async def _wait_for_settlement(
        pending: set[asyncio.Task],
        cancel_token: Optional[CancellationToken],
        deadline_ms: Optional[int],
    ) -> bool:
        """Wait for every task to settle; return True if the run was cut short."""

        loop = asyncio.get_running_loop()
        deadline_at = loop.time() + deadline_ms / 1000 if deadline_ms else None
        cancel_waiter = (
            asyncio.create_task(cancel_token.wait()) if cancel_token is not None else None
        )
        try:
            while pending:
                if cancel_token is not None and cancel_token.is_cancelled:
                    break
                timeout = None
                if deadline_at is not None:
                    timeout = deadline_at - loop.time()
                    if timeout <= 0:
                        break
                waiters = set(pending)
                if cancel_waiter is not None:
                    waiters.add(cancel_waiter)
                done, _ = await asyncio.wait(
                    waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
                )
                pending -= done
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if not pending:
            return False
        logger.warning("Orchestration run cancelled", outstanding=len(pending))
        for task in pending:
            task.cancel()
        await asyncio.wait(pending, timeout=_CANCEL_GRACE_SECONDS)
        return True

    async def _execute_engine(
        self, engine: Engine, engine_input: EngineInput, semaphore: asyncio.Semaphore
    ) -> Tuple[EngineOutcome, int]:
        async with semaphore:
            start = time.perf_counter()
            outcome = await self._execute_with_retries(engine, engine_input)
            return outcome, int((time.perf_counter() - start) * 1000)

    async def _execute_with_retries(
        self, engine: Engine, engine_input: EngineInput
    ) -> EngineOutcome:
        name = engine.name
        timeout_ms = engine.timeout_ms or self.config.default_timeout_ms
        retries = engine.max_retries if engine.max_retries is not None else self.config.max_retries

        # Circuit breaker gate
        br = self.breakers.get(name) if self.breakers else None
        if br and not br.allow_request():
            if self.metrics:
                self.metrics.record_circuit_breaker(name, br.state.value)
            return failed_outcome(name, CircuitOpenError(engine=name))

        attempt_count = max(1, int(retries) + 1)
        last_outcome: Optional[EngineOutcome] = None
        for attempt in range(attempt_count):
            try:
                raw = await asyncio.wait_for(
                    self._invoke(engine, engine_input), timeout=timeout_ms / 1000
                )
            except asyncio.TimeoutError:
                timeout_error = EngineTimeoutError(timeout_ms=timeout_ms)
                error_code = timeout_error.error_code
                last_outcome = failed_outcome(name, timeout_error)
                logger.warning(
                    "Engine timed out",
                    engine=name,
                    attempt=attempt + 1,
                    attempts=attempt_count,
                    timeout_ms=timeout_ms,
                )
            except Exception as exc:  # noqa: BLE001
                error_code = classify_exception(exc)
                last_outcome = failed_outcome(
                    name, EngineExecutionError(_error_message(exc), engine=name)
                )
                logger.warning(
                    "Engine failed",
                    engine=name,
                    attempt=attempt + 1,
                    attempts=attempt_count,
                    exception=type(exc).__name__,
                )
            else:
                result = self._coerce_result(name, raw)
                if result is None:
                    self._record_breaker(name, success=False)
                    return failed_outcome(name, EngineExecutionError(INVALID_RESULT, engine=name))
                self._record_breaker(name, success=True)
                return EngineOutcome.success(name, result)

            self._record_breaker(name, success=False)
            if attempt < attempt_count - 1 and self._should_retry(error_code):
                await asyncio.sleep(self.config.retry_backoff_base_seconds * (2**attempt))
                continue
            break

        # Exhausted attempts
        return last_outcome or failed_outcome(name, EngineExecutionError("unknown", engine=name))

    def _should_retry(self, error_code: str) -> bool:
        if error_code == "TIMEOUT":
            return self.config.retry_on_timeouts
        return self.config.retry_on_failures and is_retryable(error_code)

    def _record_breaker(self, name: str, *, success: bool) -> None:
        br = self.breakers.get(name) if self.breakers else None
        if not br:
            return
        if success:
            br.record_success()
        else:
            br.record_failure()
        if self.metrics:
            self.metrics.record_circuit_breaker(name, br.state.value)

    @staticmethod
    async def _invoke(engine: Engine, engine_input: EngineInput) -> Any:
        if inspect.iscoroutinefunction(engine.run):
            return await engine.run(engine_input)
        result = await asyncio.to_thread(engine.run, engine_input)
        if inspect.isawaitable(result):
            result = await result
        return result

    @staticmethod
    def _coerce_result(name: str, raw: Any) -> Optional[EngineResult]:
        """Normalize an engine's return value; None when it is not a usable result."""

        if isinstance(raw, EngineResult):
            return raw
        if isinstance(raw, Mapping):
            try:
                return EngineResult(data=dict(raw))
            except ValidationError as exc:
                logger.warning(
                    "Engine returned an invalid result",
                    engine=name,
                    error_count=exc.error_count(),
                )
                return None
            except Exception as exc:  # noqa: BLE001
                # A broken Mapping can raise from its own iteration
                logger.warning(
                    "Engine returned an unreadable result",
                    engine=name,
                    exception=type(exc).__name__,
                )
                return None
        logger.warning(
            "Engine returned an unsupported result",
            engine=name,
            result_type=type(raw).__name__,
        )
        return None
