"""structlog configuration for hosts embedding the messaging core."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from messaging_gateway.config.settings import Settings


def configure_logging(settings: Settings | None = None) -> None:
    """Set up structlog with JSON or console rendering based on settings.

    Call once at process start-up.  The library itself only obtains
    loggers and never configures structlog on import.
    """
    if settings is None:
        from messaging_gateway.config.settings import settings as default_settings

        settings = default_settings

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.log_level.lower()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
