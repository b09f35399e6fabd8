"""Structured logging for ledger validation and posting."""

import logging
import sys
from decimal import Decimal
from typing import Any, Literal

import structlog

from guided_ledger.config.settings import get_settings


def _render_decimals(
    _logger: Any, _method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Render Decimal amounts as plain strings so JSON output keeps cents exact."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
) -> None:
    """Configure structlog on top of the standard library logging module.

    Args:
        level: Log level. Defaults to ``LOG_LEVEL`` from settings.
        format: ``json`` for machine-readable audit trails, ``console``
            for local development. Defaults to ``LOG_FORMAT``.
    """
    settings = get_settings()
    log_level = level or settings.log_level
    log_format = format or settings.log_format

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level),
    )

    renderer: structlog.types.Processor
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _render_decimals,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_ledger_context(company_id: str, period: str | None = None, user_id: str | None = None) -> None:
    """Attach tenant identifiers to every log line emitted in the current context."""
    context: dict[str, str] = {"company_id": company_id}
    if period:
        context["period"] = period
    if user_id:
        context["user_id"] = user_id
    structlog.contextvars.bind_contextvars(**context)


def clear_ledger_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)
