"""Error taxonomy for the generation engine.

Request-scoped errors (validation, ledger) are raised from ``submit`` before any
work is scheduled. Attempt-scoped errors (provider, decomposition) never leave
the coordinator: they are categorized and reported through progress events.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorData(BaseModel):
    """Structured data attached to every engine error.

    Args:
        message: Internal, human-readable error description
        provider: Provider label (if the error came from a provider call)
        status_code: Upstream HTTP status code (if available)
        retryable: Whether the failure looks temporary
        cause: Original exception that caused this error
    """

    model_config = {"arbitrary_types_allowed": True}

    message: str
    provider: str | None = None
    status_code: int | None = None
    retryable: bool = False
    cause: BaseException | None = Field(default=None, repr=False)


class IconForgeError(Exception):
    """Base exception for all iconforge errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class RequestValidationError(IconForgeError):
    """Malformed generation request. Raised before any coins are reserved."""


class LedgerError(IconForgeError):
    """Coin ledger failure (double settlement, unknown reservation)."""


class InsufficientCoinsError(LedgerError):
    """User cannot afford the requested generation."""

    def __init__(self, message: str, *, required: int) -> None:
        self.required = required
        super().__init__(message)


class DecompositionError(IconForgeError):
    """Composite image could not be sliced into the expected icons."""


class ProviderError(IconForgeError):
    """Base exception for image provider failures.

    Attributes:
        data: Structured error data (ErrorData)
        provider: Provider label
        status_code: Upstream HTTP status code (if available)
        retryable: Whether a retry might succeed
        cause: Original exception
    """

    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        retryable: bool | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.data = ErrorData(
            message=message,
            provider=provider,
            status_code=status_code,
            retryable=self.default_retryable if retryable is None else retryable,
            cause=cause,
        )
        self.provider = self.data.provider
        self.status_code = self.data.status_code
        self.retryable = self.data.retryable
        self.cause = self.data.cause
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.provider:
            parts.append(f"provider={self.provider}")
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        return " | ".join(parts)


class ProviderTimeoutError(ProviderError):
    """Provider call exceeded its time budget."""

    default_retryable = True


class ProviderRateLimitError(ProviderError):
    """HTTP 429 or vendor-side quota exhaustion."""

    default_retryable = True


class ProviderConnectionError(ProviderError):
    """Network-level error (DNS, connection reset, etc.)."""

    default_retryable = True


class ProviderServerError(ProviderError):
    """HTTP 5xx from the provider."""

    default_retryable = True


class ContentPolicyError(ProviderError):
    """Prompt or image rejected by the provider's safety system."""


class ProviderAuthError(ProviderError):
    """HTTP 401/403 from the provider."""


class ProviderResponseError(ProviderError):
    """Provider answered but the payload carried no usable image."""
