"""Structured logging configuration using structlog.

The REST server logs JSON lines; the CLI renders human-readable console
output so diagnostics about dropped records stay readable next to the
graph document written to stdout.
"""

from __future__ import annotations

import logging
import sys

import structlog


def setup_logging(level: str = "info", *, json_output: bool = True) -> None:
    """Configure structlog to write to stderr.

    Args:
        level:       Minimum level name (debug, info, warning, error).
        json_output: Render JSON lines when True, console text otherwise.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]
