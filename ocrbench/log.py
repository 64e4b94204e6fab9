"""structlog configuration for the benchmark CLI."""
from __future__ import annotations

import logging
import os
import sys
from typing import Optional

import structlog


def _stderr_logger(*args: object) -> structlog.PrintLogger:
    # Resolved per logger so redirected stderr (tests, wrappers) is honoured.
    return structlog.PrintLogger(file=sys.stderr)


def configure_logging(level: Optional[str] = None) -> None:
    """Route structlog events to stderr so stdout carries only benchmark output."""

    level_name = (level or os.environ.get("OCRBENCH_LOG_LEVEL", "WARNING")).upper()
    numeric_level = getattr(logging, level_name, logging.WARNING)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )
