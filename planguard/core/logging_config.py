"""
Structured logging configuration.

Provides:
- JSON formatted logs for production
- Human-readable logs for development
- Request context (user, tenant, role, correlation ids) on every entry
- A dedicated channel for audit-store failures
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from planguard.config import settings

# Audit write failures are reported here instead of failing the caller.
AUDIT_TECHNICAL_LOGGER = "planguard.audit.technical"

SENSITIVE_KEYS = {
    "token",
    "secret",
    "authorization",
    "signature",
    "stripe_secret_key",
    "webhook_secret",
}


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add environment, service name and version to log entries."""
    event_dict["environment"] = settings.environment
    event_dict["service"] = settings.app_name
    event_dict["version"] = settings.app_version
    return event_dict


def add_request_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Merge the per-request identity set by middleware and auth dependencies."""
    from planguard.core.context import get_request_context

    for key, value in get_request_context().items():
        event_dict.setdefault(key, value)
    return event_dict


def censor_sensitive_data(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Redact credentials and provider secrets."""
    for key in list(event_dict.keys()):
        if any(sensitive in key.lower() for sensitive in SENSITIVE_KEYS):
            event_dict[key] = "***REDACTED***"
    return event_dict


def setup_logging() -> None:
    """
    Configure application-wide structured logging.

    Production: JSON logs to stdout
    Development: Colorized console logs
    """
    log_level = getattr(logging, settings.log_level.upper())

    shared_processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.contextvars.merge_contextvars,
        add_app_context,
        add_request_context,
        censor_sensitive_data,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.log_format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Audit failures are never filtered out by a quiet root level
    logging.getLogger(AUDIT_TECHNICAL_LOGGER).setLevel(logging.WARNING)

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("celery").setLevel(logging.INFO)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger = structlog.get_logger(__name__)
    logger.info(
        "logging_configured",
        log_level=settings.log_level,
        log_format=settings.log_format,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("role_changed", user_id=user.id, new_role=role.value)
    """
    return structlog.get_logger(name)
