"""Structured logging configuration using structlog.

Provides JSON-formatted logs with request correlation IDs, timestamps,
application context and masking of credentials passed as context.
"""

import logging
import sys
from typing import Any, Callable

import structlog
from structlog.types import EventDict, Processor

APP_NAME = "tour-booking-api"

# Keys compared lowercase; values under them never reach the log output.
SENSITIVE_KEYS = frozenset(
    {
        "password",
        "passwordconfirm",
        "passwordcurrent",
        "token",
        "jwt",
        "authorization",
        "resettoken",
        "passwordresettoken",
    }
)
MASK = "***MASKED***"


def mask_sensitive(data: Any) -> Any:
    """Recursively replace values stored under sensitive keys."""
    if isinstance(data, dict):
        return {
            key: MASK if str(key).lower() in SENSITIVE_KEYS else mask_sensitive(value)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [mask_sensitive(item) for item in data]
    return data


def mask_secrets(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """structlog processor masking credentials passed as log context."""
    return mask_sensitive(event_dict)


def app_context(app: str = APP_NAME, environment: str = "production") -> Callable[..., EventDict]:
    """Build a processor that stamps every entry with the app and environment.

    Args:
        app: Application name
        environment: Deployment environment

    Returns:
        structlog processor
    """
    def add_app_context(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("app", app)
        event_dict.setdefault("environment", environment)
        return event_dict

    return add_app_context

def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    environment: str = "production",
    service_name: str = APP_NAME,
) -> None:
    """Configure structured logging for the application.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Whether to output logs in JSON format
        environment: Deployment environment added to every entry
        service_name: Name of the service for log tagging
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        app_context(service_name, environment),
        mask_secrets,
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Configure standard logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )


def bind_context(**kwargs: Any) -> None:
    """Bind context variables to all subsequent log entries in this context.

    Args:
        **kwargs: Context key-value pairs to bind
    """
    structlog.contextvars.bind_contextvars(**kwargs)

def clear_context() -> None:
    """Clear all context variables."""
    structlog.contextvars.clear_contextvars()
