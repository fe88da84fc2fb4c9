"""Utils module for the SERP competitor intelligence pipeline."""

from serp_intel.utils.logger import LogContext, get_logger, setup_logging
from serp_intel.utils.errors import (
    AppError,
    ConfigValidationError,
    ErrorHandler,
    ExtractionError,
    InvalidStatusTransitionError,
    NoSearchResultsError,
    PageFetchError,
    PageTimeoutError,
    PersistenceError,
    SearchProviderError,
)
from serp_intel.utils.throttle import FixedDelayPolicy, NoDelayPolicy, RateLimitPolicy
from serp_intel.utils.formatters import ReportFormatter

__all__ = [
    "get_logger",
    "setup_logging",
    "LogContext",
    "ReportFormatter",
    "ErrorHandler",
    "AppError",
    "ConfigValidationError",
    "NoSearchResultsError",
    "SearchProviderError",
    "PageFetchError",
    "PageTimeoutError",
    "ExtractionError",
    "PersistenceError",
    "InvalidStatusTransitionError",
    "RateLimitPolicy",
    "FixedDelayPolicy",
    "NoDelayPolicy",
]
