"""
Runtime — process-level setup shared by the API and the audit CLI.
"""

from __future__ import annotations

import logging
import sys

import structlog

from stratos_structure.config import settings


def configure_logging() -> None:
    """Configure structured logging."""
    level = logging.getLevelName(settings.log_level.upper())

    # Module loggers use the standard library; route them to stderr at the same level.
    logging.basicConfig(level=level, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if settings.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
