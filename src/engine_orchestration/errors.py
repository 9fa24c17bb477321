"""Error taxonomy for engine orchestration and consensus validation.

Engine-level failures never escape the orchestrator; they are converted into
``failed`` outcomes carrying one of the canonical reasons below. Only caller
mistakes (``InvalidRequestError``) are raised out of the public entry points.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Canonical failure reasons recorded on failed outcomes
PRECONDITION_ERROR = "precondition_error"
TIMEOUT = "timeout"
CANCELLED = "cancelled"
CIRCUIT_OPEN = "circuit_open"
INVALID_RESULT = "invalid_result"

# Retry guidance (true means the orchestrator may safely re-invoke the engine)
RETRYABLE = {
    "TIMEOUT": True,
    "ENGINE_EXECUTION_FAILED": True,
    "UNKNOWN_ERROR": True,
    "PRECONDITION_FAILED": False,
    "CANCELLED": False,
    "CIRCUIT_OPEN": False,
    "INVALID_REQUEST": False,
}


class OrchestrationError(Exception):
    """Base exception for orchestration errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__.upper()
        self.details = details or {}
        self.timestamp = timestamp or datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "retryable": is_retryable(self.error_code),
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}'"
            f")"
        )


class InvalidRequestError(OrchestrationError):
    """Raised for caller-level programming errors (empty engine list, bad sources)."""

    def __init__(
        self,
        message: str,
        error_code: str = "INVALID_REQUEST",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code, details)


class PreconditionError(OrchestrationError):
    """An engine's ``can_run`` check itself raised."""

    def __init__(
        self,
        message: str = PRECONDITION_ERROR,
        error_code: str = "PRECONDITION_FAILED",
        details: Optional[Dict[str, Any]] = None,
        engine: Optional[str] = None,
    ):
        super().__init__(message, error_code, details)
        if engine:
            self.details["engine"] = engine


class EngineExecutionError(OrchestrationError):
    """An engine ran but failed."""

    def __init__(
        self,
        message: str,
        error_code: str = "ENGINE_EXECUTION_FAILED",
        details: Optional[Dict[str, Any]] = None,
        engine: Optional[str] = None,
    ):
        super().__init__(message, error_code, details)
        if engine:
            self.details["engine"] = engine


class EngineTimeoutError(OrchestrationError):
    """An engine did not settle within its timeout."""

    def __init__(
        self,
        message: str = TIMEOUT,
        error_code: str = "TIMEOUT",
        details: Optional[Dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ):
        super().__init__(message, error_code, details)
        if timeout_ms is not None:
            self.details["timeout_ms"] = timeout_ms


class CancellationError(OrchestrationError):
    """An engine invocation was abandoned because the run was cancelled."""

    def __init__(
        self,
        message: str = CANCELLED,
        error_code: str = "CANCELLED",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code, details)


class CircuitOpenError(OrchestrationError):
    """An engine was short-circuited because its breaker is open."""

    def __init__(
        self,
        message: str = CIRCUIT_OPEN,
        error_code: str = "CIRCUIT_OPEN",
        details: Optional[Dict[str, Any]] = None,
        engine: Optional[str] = None,
    ):
        super().__init__(message, error_code, details)
        if engine:
            self.details["engine"] = engine


def is_retryable(code: str) -> bool:
    return bool(RETRYABLE.get(code, False))


def classify_exception(exc: BaseException) -> str:
    """Map an arbitrary exception raised by an engine to a canonical error code."""

    if isinstance(exc, OrchestrationError):
        return exc.error_code
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return "TIMEOUT"
    if isinstance(exc, asyncio.CancelledError):
        return "CANCELLED"
    if isinstance(exc, (ValueError, TypeError, KeyError)):
        # Bad input data will fail the same way on every attempt
        return "INVALID_REQUEST"
    if isinstance(exc, Exception):
        return "ENGINE_EXECUTION_FAILED"
    return "UNKNOWN_ERROR"
