import logging
from typing import Any, Dict, Optional

import anthropic

from cwv_findings.core.result import TaskError

logger = logging.getLogger(__name__)

# --- Error codes
NETWORK_ERROR = "NETWORK_ERROR"
TIMEOUT = "TIMEOUT"
RATE_LIMIT = "RATE_LIMIT"
INVALID_DATA = "INVALID_DATA"
MISSING_FIELD = "MISSING_FIELD"
MISSING_DATA = "MISSING_DATA"
PARSE_ERROR = "PARSE_ERROR"
AUTH_FAILED = "AUTH_FAILED"
MISSING_CONFIG = "MISSING_CONFIG"
ANALYSIS_FAILED = "ANALYSIS_FAILED"

RETRYABLE_CODES = frozenset({NETWORK_ERROR, TIMEOUT, RATE_LIMIT})

ERROR_CATEGORIES = {
    NETWORK_ERROR: "network",
    TIMEOUT: "network",
    RATE_LIMIT: "network",
    INVALID_DATA: "validation",
    MISSING_FIELD: "validation",
    MISSING_DATA: "data",
    PARSE_ERROR: "data",
    AUTH_FAILED: "configuration",
    MISSING_CONFIG: "configuration",
    ANALYSIS_FAILED: "analysis",
}

RATE_LIMIT_MARKERS = ("429", "rate limit", "resource exhausted", "ratelimitexceeded")


class ConfigurationError(ValueError):
    """Rule table or config defect; raised immediately, never wrapped in a Result."""


class TaskFailure(Exception):
    """Raised by task code that already knows how its failure should be classified."""

    code = ANALYSIS_FAILED

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        if code is not None:
            self.code = code
        self.details = details or {}


class RetryableTaskError(TaskFailure):
    code = NETWORK_ERROR


class TerminalTaskError(TaskFailure):
    code = ANALYSIS_FAILED


def is_retryable(code: str) -> bool:
    return code in RETRYABLE_CODES


def get_error_category(code: str) -> str:
    return ERROR_CATEGORIES.get(code, "unknown")


def create_error(code: str, message: str, details: Optional[Dict[str, Any]] = None,
                 retryable: Optional[bool] = None) -> TaskError:
    if retryable is None:
        retryable = is_retryable(code)
    return TaskError(code=code, message=message, details=details or {}, retryable=retryable)


def _code_for_exception(exc: BaseException) -> str:
    if isinstance(exc, RetryableTaskError):
        return exc.code if is_retryable(exc.code) else NETWORK_ERROR
    if isinstance(exc, TaskFailure):
        return exc.code
    if isinstance(exc, anthropic.RateLimitError):
        return RATE_LIMIT
    # APITimeoutError subclasses APIConnectionError; check it first
    if isinstance(exc, anthropic.APITimeoutError):
        return TIMEOUT
    if isinstance(exc, (anthropic.APIConnectionError, anthropic.InternalServerError)):
        return NETWORK_ERROR
    if isinstance(exc, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return AUTH_FAILED
    if isinstance(exc, anthropic.BadRequestError):
        return INVALID_DATA
    if isinstance(exc, TimeoutError):
        return TIMEOUT
    if isinstance(exc, ConnectionError):
        return NETWORK_ERROR
    if isinstance(exc, ConfigurationError):
        return MISSING_CONFIG
    if isinstance(exc, KeyError):
        return MISSING_FIELD
    if isinstance(exc, (ValueError, TypeError)):
        return INVALID_DATA

    text = str(exc).lower()
    if any(marker in text for marker in RATE_LIMIT_MARKERS):
        return RATE_LIMIT
    return ANALYSIS_FAILED


def classify_exception(exc: BaseException, details: Optional[Dict[str, Any]] = None) -> TaskError:
    """Map an exception raised by a task into the retryable/terminal taxonomy."""
    code = _code_for_exception(exc)
    merged = {"exception_type": type(exc).__name__}
    merged.update(getattr(exc, "details", None) or {})
    merged.update(details or {})
    error = create_error(code, str(exc) or type(exc).__name__, details=merged)
    logger.debug("Classified %s as %s (retryable=%s)", type(exc).__name__, code, error.retryable)
    return error
