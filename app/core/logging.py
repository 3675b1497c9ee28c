"""
Structured logging configuration using structlog.

Provides JSON-formatted logs with contextual information that works across
request handlers and arq background jobs.

Features:
- JSON structured logging for staging/production
- Pretty console logging for development
- Request ID and account ID tracking
- A dedicated security alert channel
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any, cast

import structlog
from structlog.types import EventDict, Processor

from app.config import settings

# Context variables for request tracking
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
account_id_ctx: ContextVar[str | None] = ContextVar("account_id", default=None)

# Logger name for security-relevant events (token replay, mass revocation).
# Routed separately by log shippers so it can page on-call instead of
# blending in with routine authentication failures.
SECURITY_LOGGER_NAME = "app.security"


def add_context_info(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add contextual information to log records."""
    request_id = request_id_ctx.get(None)
    if request_id:
        event_dict["request_id"] = request_id

    account_id = account_id_ctx.get(None)
    if account_id and "account_id" not in event_dict:
        event_dict["account_id"] = account_id

    return event_dict


def configure_logging() -> None:
    """
    Configure structured logging for the application.

    In development: Pretty console output with colors
    Otherwise: JSON-formatted logs for aggregation
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_context_info,
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.ENVIRONMENT == "development":
        processors: list[Processor] = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True)
        ]
    else:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.NOTSET),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper()),
    )

    # Reduce noise from third-party libraries
    if settings.ENVIRONMENT != "development":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance

    Example:
        logger = get_logger(__name__)
        logger.info("login_succeeded", account_id="0190...", ip_address="192.168.1.1")
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))


def get_security_logger() -> structlog.stdlib.BoundLogger:
    """Logger for the out-of-band security alert channel."""
    return get_logger(SECURITY_LOGGER_NAME)


def set_request_context(request_id: str, account_id: str | None = None) -> None:
    """
    Set context variables for the current request.

    Args:
        request_id: Unique request identifier
        account_id: Optional account ID if authenticated
    """
    request_id_ctx.set(request_id)
    if account_id:
        account_id_ctx.set(account_id)


def clear_request_context() -> None:
    """Clear context variables after request completes."""
    request_id_ctx.set(None)
    account_id_ctx.set(None)


def bind_context(**kwargs: Any) -> None:
    """
    Bind additional context to all subsequent logs in this context.

    Useful for background jobs to add task-specific context.

    Example:
        bind_context(task="send_identity_email", kind="verification")
        logger.info("task_started")  # Will include task and kind
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove context variables."""
    structlog.contextvars.unbind_contextvars(*keys)
