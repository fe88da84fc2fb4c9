"""
Structured logging configuration.

Every module logs through structlog. Analysis runs bind their
``analysis_id`` with :class:`LogContext` so per-competitor events can be
correlated, and provider credentials are masked before rendering.
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

# Event keys that may carry provider credentials
SENSITIVE_KEYS = frozenset({"api_key", "google_api_key", "cse_id", "google_cse_id", "key"})


def redact_credentials(_logger: Any, _method: str, event_dict: EventDict) -> EventDict:
    """Mask credential values that were passed as log fields."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        value = event_dict[key]
        if value:
            event_dict[key] = "***"
    return event_dict


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure application-wide structured logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: Whether to output logs in JSON format.
        log_file: Optional file path for logging output.
    """
    numeric_level = getattr(logging, level.upper())

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        redact_credentials,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]
    processors.append(
        structlog.processors.JSONRenderer() if json_format
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        logging.getLogger().addHandler(file_handler)


def setup_logging_from_settings(settings: Any) -> None:
    """Configure logging from a :class:`~serp_intel.config.settings.Settings`."""
    setup_logging(level=settings.log_level, json_format=settings.log_json)


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger for the given module name.

    Args:
        name: Logger name, typically __name__.
    """
    return structlog.get_logger(name)


class LogContext:
    """Bind fields (e.g. ``analysis_id``) to every log event inside the block."""

    def __init__(self, **kwargs):
        self.context = kwargs

    def __enter__(self):
        structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        structlog.contextvars.unbind_contextvars(*self.context.keys())
