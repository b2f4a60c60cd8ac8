"""
Structured Logging Configuration
Centralized structlog setup for the ORM extension helpers
"""
from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def configure_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """
    Configure structured logging for applications embedding the helpers.

    Sets up structlog with processors for:
    - Adding timestamps
    - Adding log levels and logger names
    - Merging bound context (e.g. request or job identifiers)
    - JSON formatting (production) or console (development)

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Whether to output JSON format (True for prod, False for dev)

    Raises:
        ValueError: If log_level is not a known level name
    """
    level_name = log_level.upper()
    if level_name not in _LOG_LEVELS:
        raise ValueError(f"log_level must be one of {_LOG_LEVELS}, got {log_level!r}")

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name),
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging_from_settings() -> None:
    """Configure logging from the cached library settings."""
    from orm_extensions.config import get_settings

    settings = get_settings()
    configure_logging(settings.log_level, settings.json_logs)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Configured structlog logger

    Usage:
        logger = get_logger(__name__)
        logger.debug("Merge executed", table="customers", rowcount=1)
    """
    return structlog.get_logger(name)

