"""
Structured logging setup shared by the service entry points.
"""

import logging
from typing import Union

import structlog

from erpwatch.config.models import LogFormat, LogLevel


def setup_logging(
    level: Union[LogLevel, str] = LogLevel.INFO,
    fmt: Union[LogFormat, str] = LogFormat.JSON,
) -> None:
    """
    Configure structlog over the standard library logging module.

    Args:
        level: Log level name (e.g., "INFO").
        fmt: "json" for machine-readable output, "text" for console output.

    Example:
        >>> setup_logging("DEBUG", "text")
    """
    level_name = LogLevel(str(getattr(level, "value", level)).upper()).value
    renderer = (
        structlog.processors.JSONRenderer()
        if LogFormat(getattr(fmt, "value", fmt)) == LogFormat.JSON
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Configure standard logging
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level_name),
    )
    logging.getLogger().setLevel(getattr(logging, level_name))

    # Reduce noise from uvicorn access logs
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
