"""
Structured logging configuration with structlog.

- All logs to STDOUT/STDERR for container log collection
- JSON lines in production, colored console output elsewhere
- Request correlation IDs merged from contextvars (see AccessLogMiddleware)
- Sensitive keys (tokens, secrets, push tokens) redacted before rendering
"""

import logging
import logging.config
import time
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from workspace_chat.config import settings


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add service metadata to every log entry."""
    event_dict["service"] = "workspace-chat"
    event_dict["app"] = settings.APP_NAME
    event_dict["version"] = settings.APP_VERSION
    event_dict["environment"] = settings.ENVIRONMENT
    return event_dict


def add_severity_level(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    if "level" in event_dict:
        event_dict["severity"] = event_dict["level"].upper()
    return event_dict


def add_trace_id_alias(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Expose the correlation id as trace_id for the observability stack."""
    if "correlation_id" in event_dict:
        event_dict["trace_id"] = event_dict["correlation_id"]
    elif "request_id" in event_dict:
        event_dict["trace_id"] = event_dict["request_id"]

    return event_dict


def censor_sensitive_data(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Redact passwords, bearer/push tokens, secrets and authorization headers."""
    sensitive_keys = ["password", "token", "api_key", "secret", "authorization"]

    for key in list(event_dict.keys()):
        if any(sensitive in key.lower() for sensitive in sensitive_keys):
            event_dict[key] = "***REDACTED***"

    return event_dict


def setup_logging() -> None:
    """
    Configure structlog and the standard library logging tree.

    Development renders colored console lines, production renders JSON.
    ERROR and above are additionally written to STDERR.
    """
    log_level_name = settings.LOG_LEVEL.upper()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_app_context,
        add_severity_level,
        add_trace_id_alias,
        censor_sensitive_data,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.ENVIRONMENT == "production":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Route third-party stdlib loggers (uvicorn, pymongo, httpx) through the same renderer
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": renderer,
                "foreign_pre_chain": shared_processors,
            },
        },
        "handlers": {
            "default": {
                "level": log_level_name,
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "structured",
            },
            "error": {
                "level": "ERROR",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
                "formatter": "structured",
            },
        },
        "loggers": {
            "": {
                "handlers": ["default", "error"],
                "level": log_level_name,
                "propagate": False,
            },
            "workspace_chat": {
                "handlers": ["default", "error"],
                "level": log_level_name,
                "propagate": False,
            },
            "uvicorn": {
                "handlers": ["default"],
                "level": log_level_name,
                "propagate": False,
            },
            "uvicorn.error": {
                "handlers": ["default", "error"],
                "level": log_level_name,
                "propagate": False,
            },
            "uvicorn.access": {
                "handlers": [],  # Replaced by AccessLogMiddleware
                "level": "CRITICAL",
                "propagate": False,
            },
            "pymongo": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False,
            },
            "httpx": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False,
            },
            "httpcore": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False,
            },
            "asyncio": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False,
            },
        },
    })

    logger = get_logger(__name__)
    logger.info(
        "logging_configured",
        log_level=log_level_name,
        environment=settings.ENVIRONMENT,
        format="json" if settings.ENVIRONMENT == "production" else "console",
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("group_created", group_id="...", member_count=3)
    """
    return structlog.get_logger(name)


class PerformanceLogger:
    """
    Context manager that logs how long an operation took.

    Usage:
        with PerformanceLogger("expo_push", logger, user_id=user_id):
            response = await client.post(...)
    """

    def __init__(self, operation: str, logger: structlog.stdlib.BoundLogger, **context):
        self.operation = operation
        self.logger = logger
        self.context = context
        self.start_time = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = (time.perf_counter() - self.start_time) * 1000

        if exc_type is None:
            self.logger.debug(
                "operation_completed",
                operation=self.operation,
                duration_ms=round(duration_ms, 2),
                **self.context
            )
        else:
            self.logger.warning(
                "operation_failed",
                operation=self.operation,
                duration_ms=round(duration_ms, 2),
                error_type=exc_type.__name__,
                error=str(exc_val),
                **self.context
            )

        return False
