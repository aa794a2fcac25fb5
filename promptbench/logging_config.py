"""Structured logging configuration using structlog.

Batch runs bind their ``batch_id`` into structlog's context variables so every
event emitted while a batch is in flight (worker, evaluator, generator) can be
correlated without threading the id through each call.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from promptbench.config import get_settings


def setup_logging(log_level: str | None = None, json_logs: bool | None = None) -> None:
    """Configure structlog for the engine.

    Args:
        log_level: Python log level name (DEBUG, INFO, WARNING, ERROR).
            Defaults to LOG_LEVEL from the environment.
        json_logs: Emit one JSON object per line instead of the console
            renderer. Defaults to JSON_LOGS from the environment.
    """
    if log_level is None or json_logs is None:
        settings = get_settings()
        log_level = log_level or settings.log_level
        json_logs = settings.json_logs if json_logs is None else json_logs

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


@contextmanager
def bound_batch_context(batch_id: str, **extra: object) -> Iterator[None]:
    """Bind ``batch_id`` (and any extra keys) to all log events in this block."""
    tokens = structlog.contextvars.bind_contextvars(batch_id=batch_id, **extra)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
