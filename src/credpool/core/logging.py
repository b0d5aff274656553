"""Structured logging setup for credpool.

Every module logs through ``structlog.get_logger(__name__)`` with snake_case
event names and key/value context. This module wires the processor chain once,
typically from the CLI entry point.
"""

import logging
import sys

import structlog


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def setup_logging(level: int | str = logging.INFO, json_logs: bool = False) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Minimum level to emit, as an int or a name such as ``"DEBUG"``
        json_logs: Render JSON lines instead of the human-readable console format
    """
    numeric_level = _resolve_level(level)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=numeric_level,
        force=True,
    )

    renderer: structlog.types.Processor = (
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
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
