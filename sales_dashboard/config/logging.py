"""
Structured Logging Setup

structlog renders both its own events and stdlib records (uvicorn, httpx)
through a single stdout handler, as JSON in deployments or as colored
console lines during development.
"""

import logging
import sys
from typing import Optional

import structlog

from sales_dashboard.config.settings import get_settings

# Third-party loggers rerouted to our handler
FOREIGN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "httpx")


def _renderer(log_format: str):
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Configure structlog and the root logger.

    Args:
        log_level: Overrides ``LOG_LEVEL`` (DEBUG, INFO, WARNING, ERROR)
        log_format: Overrides ``LOG_FORMAT`` ("json" or "text")
    """
    settings = get_settings()
    level_name = (log_level or settings.monitoring.log_level).upper()
    log_format = log_format or settings.monitoring.log_format
    level = getattr(logging, level_name, logging.INFO)

    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=pre_chain + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_renderer(log_format),
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    for name in FOREIGN_LOGGERS:
        foreign = logging.getLogger(name)
        foreign.handlers = [handler]
        foreign.propagate = False
        foreign.setLevel(level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level_name,
        format=log_format,
        environment=settings.app_env,
    )
