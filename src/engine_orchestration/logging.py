"""Structured logging configuration with a metadata-only approach."""

from __future__ import annotations

import logging
import sys
from typing import Any, Dict

import structlog
from structlog.stdlib import LoggerFactory


class MetadataProcessor:
    """Structlog processor that keeps caller inputs out of log events.

    Engine inputs may carry personal data, so only engine names, counts,
    statuses and timings are allowed through.
    """

    SENSITIVE_KEYS = ("engine_input", "input", "fields", "value", "result")

    def __call__(self, logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        for key in self.SENSITIVE_KEYS:
            if key in event_dict:
                event_dict[key] = "[REDACTED]"
        return event_dict


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    metadata_only: bool = True,
) -> None:
    """
    Set up structured logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format (json, console)
        metadata_only: Redact input-bearing keys from log events
    """
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if metadata_only:
        processors.append(MetadataProcessor())

    if log_format.lower() == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,  # type: ignore[arg-type]
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(getattr(logging, level.upper()))
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Structlog logger
    """
    return structlog.get_logger(name)
