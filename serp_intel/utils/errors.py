"""
Error taxonomy for the analysis pipeline.

Errors are split into fatal ones, which abort a run and mark the analysis
failed, and recoverable ones, which only degrade a single competitor record.
"""

import asyncio
from typing import Optional


# =============================================================================
# Custom Exceptions
# =============================================================================

class AppError(Exception):
    """Base application exception."""

    recoverable: bool = False

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigValidationError(AppError):
    """Submission is missing or has malformed fields. Raised before the run starts."""


class NoSearchResultsError(AppError):
    """The search provider returned zero candidates."""


class SearchProviderError(AppError):
    """Search call failed (auth, quota, network)."""


class PageFetchError(AppError):
    """A single competitor page could not be retrieved."""

    recoverable = True

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, details={"url": url, "status_code": status_code})
        self.url = url
        self.status_code = status_code


class PageTimeoutError(PageFetchError):
    """A page fetch exceeded its time budget."""

    def __init__(self, url: Optional[str], timeout_ms: int):
        super().__init__(f"Request timeout after {timeout_ms}ms", url=url)
        self.timeout_ms = timeout_ms


class ExtractionError(AppError):
    """Entity or sentiment extraction failed for one page."""

    recoverable = True


class PersistenceError(AppError):
    """Result store failure."""


class InvalidStatusTransitionError(PersistenceError):
    """An analysis status update would move the lifecycle backwards."""


# =============================================================================
# Error Handler
# =============================================================================

class ErrorHandler:
    """Centralized error categorization for logging and failure policy."""

    @staticmethod
    def categorize_error(error: Exception) -> str:
        """Categorize errors for structured logs."""
        if isinstance(error, ConfigValidationError):
            return "CONFIG_ERROR"
        if isinstance(error, NoSearchResultsError):
            return "NO_RESULTS"
        if isinstance(error, SearchProviderError):
            return "SEARCH_PROVIDER_ERROR"
        if isinstance(error, (PageTimeoutError, asyncio.TimeoutError)):
            return "TIMEOUT_ERROR"
        if isinstance(error, PageFetchError):
            return "FETCH_ERROR"
        if isinstance(error, ExtractionError):
            return "EXTRACTION_ERROR"
        if isinstance(error, PersistenceError):
            return "PERSISTENCE_ERROR"
        if isinstance(error, (ConnectionError, OSError)):
            return "NETWORK_ERROR"

        err_str = str(error).lower()
        if "timeout" in err_str:
            return "TIMEOUT_ERROR"
        if "api key" in err_str or "unauthorized" in err_str:
            return "API_KEY_ERROR"

        return "UNKNOWN_ERROR"

    @staticmethod
    def is_recoverable(error: Exception) -> bool:
        """Whether the pipeline may continue past this error."""
        return isinstance(error, AppError) and error.recoverable
