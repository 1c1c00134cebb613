from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from sentry_asgi.config import LogLevel


LEVELS: dict[str, int] = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

# sentry_sdk reports its own delivery problems on "sentry_sdk.errors".
ROUTED_LOGGERS = ("sentry_sdk.errors", "uvicorn", "uvicorn.error", "uvicorn.access")

_CONFIGURED = False


def resolve_level(level: LogLevel | int) -> int:
    if isinstance(level, int):
        return level
    try:
        return LEVELS[level.upper()]
    except KeyError:
        raise ValueError(f"unknown log level {level!r}, expected one of {', '.join(LEVELS)}") from None


def _json_handler(pre_chain: list[Any]) -> logging.Handler:
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=pre_chain,
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    return handler


def configure_logging(level: LogLevel | int = "INFO") -> None:
    """Route structlog and the stdlib loggers the middleware touches to one JSON handler.

    The level is checked before anything is reconfigured. Later calls are no-ops.
    """

    global _CONFIGURED
    numeric_level = resolve_level(level)
    if _CONFIGURED:
        return

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = _json_handler(pre_chain)
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(numeric_level)

    for name in ROUTED_LOGGERS:
        logger = logging.getLogger(name)
        logger.handlers = [handler]
        logger.propagate = False
        logger.setLevel(numeric_level)

    _CONFIGURED = True
