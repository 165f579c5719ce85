"""Map raw attempt failures to client-safe categories and messages.

Raw provider text and stack traces never reach clients; only the fixed
messages below do.
"""

from __future__ import annotations

import asyncio

from iconforge.core.errors import (
    ContentPolicyError,
    DecompositionError,
    ProviderConnectionError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)
from iconforge.core.generation.models import ErrorCategory

CATEGORY_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.CONTENT_POLICY: (
        "Your request could not be processed as it may violate content policy. "
        "Please try a different prompt."
    ),
    ErrorCategory.RATE_LIMIT: "Service temporarily unavailable",
    ErrorCategory.TIMEOUT: "Request timeout",
    ErrorCategory.CONNECTION: "Connection error",
    ErrorCategory.UNKNOWN: "Request failed",
}

# Most informative first when summarizing a fully failed request
CATEGORY_PRIORITY = (
    ErrorCategory.CONTENT_POLICY,
    ErrorCategory.RATE_LIMIT,
    ErrorCategory.TIMEOUT,
    ErrorCategory.CONNECTION,
    ErrorCategory.UNKNOWN,
)

_TEMPORARY_PATTERNS = (
    "temporarily unavailable",
    "service unavailable",
    "timeout",
    "timed out",
    "connection",
    "network",
    "server error",
    "internal error",
    "429",
    "502",
    "503",
    "504",
    "422",
)


def categorize_error(error: BaseException) -> ErrorCategory:
    """Classify an attempt failure.

    Typed errors are classified by type; anything else falls back to
    matching the message text.
    """
    if isinstance(error, ContentPolicyError):
        return ErrorCategory.CONTENT_POLICY
    if isinstance(error, ProviderRateLimitError):
        return ErrorCategory.RATE_LIMIT
    if isinstance(error, (ProviderTimeoutError, asyncio.TimeoutError, TimeoutError)):
        return ErrorCategory.TIMEOUT
    if isinstance(error, (ProviderConnectionError, ConnectionError)):
        return ErrorCategory.CONNECTION
    if isinstance(error, DecompositionError):
        return ErrorCategory.UNKNOWN
    return categorize_message(str(error))


def categorize_message(message: str | None) -> ErrorCategory:
    """Classify a raw error message by its text."""
    if not message:
        return ErrorCategory.UNKNOWN
    lowered = message.lower()
    if "content policy" in lowered or "content_policy" in lowered or "safety" in lowered:
        return ErrorCategory.CONTENT_POLICY
    if "429" in lowered or "rate limit" in lowered:
        return ErrorCategory.RATE_LIMIT
    if "timeout" in lowered or "timed out" in lowered:
        return ErrorCategory.TIMEOUT
    if "network" in lowered or "connection" in lowered:
        return ErrorCategory.CONNECTION
    return ErrorCategory.UNKNOWN


def sanitize(category: ErrorCategory) -> str:
    """User-facing message for a category."""
    return CATEGORY_MESSAGES[category]


def most_informative(categories: list[ErrorCategory]) -> ErrorCategory:
    """Pick the category to report when every attempt failed."""
    for category in CATEGORY_PRIORITY:
        if category in categories:
            return category
    return ErrorCategory.UNKNOWN


def is_temporary_failure(error: BaseException | str | None) -> bool:
    """Whether a failure looks like a transient provider outage.

    Used to decide single-provider refunds for generate-more requests.
    """
    if error is None:
        return False
    if isinstance(error, BaseException):
        if getattr(error, "retryable", False) or isinstance(error, asyncio.TimeoutError):
            return True
        error = str(error)
    lowered = error.lower()
    return any(pattern in lowered for pattern in _TEMPORARY_PATTERNS)
