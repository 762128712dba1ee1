"""Structured logging configuration using structlog."""

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from campusfix.config import Settings


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    service_name: str = "campusfix",
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, output JSON; if False, output colored console format
        service_name: Name of the service for log context
    """
    log_level = getattr(logging, level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_format:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)


def configure_from_settings(settings: "Settings") -> None:
    """Configure logging from the service settings."""
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name=settings.service_name,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def bind_actor_context(request_id: str, actor_id: str, actor_role: str) -> None:
    """Bind the acting user to all subsequent log entries of the request."""
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        actor_id=actor_id,
        actor_role=actor_role,
    )


def clear_request_context() -> None:
    """Drop per-request context, keeping the service binding."""
    structlog.contextvars.unbind_contextvars("request_id", "actor_id", "actor_role")
