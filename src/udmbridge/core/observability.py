"""Structured logging set-up and operation metrics."""

from __future__ import annotations

import functools
import logging
import sys
import time
import tracemalloc
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, ParamSpec, TypeVar

import structlog

P = ParamSpec("P")
R = TypeVar("R")

logger = structlog.get_logger(__name__)


def _stderr_logger_factory(*args: Any) -> structlog.PrintLogger:
    # Resolve sys.stderr on every call so redirected streams are honoured
    return structlog.PrintLogger(file=sys.stderr)


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Configure structlog for the process.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR).
        json_output: Render events as JSON lines instead of console text.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    renderer: Any = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=_stderr_logger_factory,
        cache_logger_on_first_use=False,
    )


def _traced_memory() -> int:
    current, _peak = tracemalloc.get_traced_memory()
    return current


def track_metrics(operation: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Log duration and memory delta of each call to the decorated function.

    Memory is measured with tracemalloc. When tracing is not already active
    it is started for the duration of the call and stopped afterwards.
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            started_tracing = not tracemalloc.is_tracing()
            if started_tracing:
                tracemalloc.start()
            start = time.perf_counter()
            start_memory = _traced_memory()
            try:
                return func(*args, **kwargs)
            finally:
                memory_delta = _traced_memory() - start_memory
                if started_tracing:
                    tracemalloc.stop()
                logger.info(
                    "operation_metrics",
                    operation=operation,
                    duration_ms=round((time.perf_counter() - start) * 1000, 3),
                    memory_delta_bytes=memory_delta,
                    timestamp=datetime.now(tz=timezone.utc).isoformat(),
                )

        return wrapper

    return decorator
