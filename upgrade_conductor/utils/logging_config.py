"""
Logging configuration using structlog for structured logging.

Centralized logging setup for the CLI and the workflow engine. Humans get a
readable console renderer; ``--json-logs`` switches to one JSON object per
line for capture by other tools.
"""

import sys
from typing import Any

import structlog


def configure_logging(log_level: str = "INFO", json_logs: bool = False) -> None:
    """Configure structured logging.

    Sets up structlog with a pipeline of processors that add timestamps, log
    levels, stack traces and contextual information bound with
    ``structlog.contextvars`` (the running workflow title, for example).

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render JSON lines instead of the console format

    Raises:
        ValueError: If the log level is not recognised
    """
    valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    level = log_level.upper()
    if level not in valid_levels:
        raise ValueError(f"Invalid log level '{log_level}'. Must be one of: {', '.join(sorted(valid_levels))}")

    renderer: Any
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
