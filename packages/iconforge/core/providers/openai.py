"""OpenAI Images API provider.

Wraps client.images.generate() / client.images.edit() with retry on transient
errors and base64 decoding. Written for gpt-image-1, which:
- Returns base64 by default (no response_format needed)
- Supports transparent backgrounds via ``background``
- Ignores seeds (the seed is accepted for interface parity only)
"""

from __future__ import annotations

import asyncio
import base64
import logging

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    BadRequestError,
    InternalServerError,
    OpenAIError,
    PermissionDeniedError,
    RateLimitError,
)

from iconforge.core.errors import (
    ContentPolicyError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderServerError,
    ProviderTimeoutError,
)
from iconforge.core.providers.base import ICON_PROMPT_SUFFIX

logger = logging.getLogger(__name__)

# Errors worth retrying
_RETRYABLE_ERRORS = (APIConnectionError, RateLimitError, InternalServerError)

_CONTENT_POLICY_CODES = {"content_policy_violation", "moderation_blocked"}

_OPENAI_SUFFIX = ICON_PROMPT_SUFFIX + ", transparent background"


def map_openai_error(error: OpenAIError, provider: str) -> ProviderError:
    """Translate an OpenAI SDK exception into the provider error taxonomy.

    Args:
        error: Exception raised by the OpenAI SDK
        provider: Provider label

    Returns:
        Matching ProviderError subclass instance
    """
    message = str(error)
    status = getattr(error, "status_code", None)

    # APITimeoutError subclasses APIConnectionError, so check it first
    if isinstance(error, APITimeoutError):
        return ProviderTimeoutError(message, provider=provider, cause=error)
    if isinstance(error, APIConnectionError):
        return ProviderConnectionError(message, provider=provider, cause=error)
    if isinstance(error, RateLimitError):
        return ProviderRateLimitError(message, provider=provider, status_code=status, cause=error)
    if isinstance(error, (AuthenticationError, PermissionDeniedError)):
        return ProviderAuthError(message, provider=provider, status_code=status, cause=error)
    if isinstance(error, BadRequestError) and getattr(error, "code", None) in _CONTENT_POLICY_CODES:
        return ContentPolicyError(message, provider=provider, status_code=status, cause=error)
    if isinstance(error, APIStatusError):
        if status == 422:
            return ContentPolicyError(message, provider=provider, status_code=status, cause=error)
        if status is not None and status >= 500:
            return ProviderServerError(message, provider=provider, status_code=status, cause=error)
        return ProviderError(message, provider=provider, status_code=status, cause=error)
    return ProviderError(message, provider=provider, cause=error)


class OpenAIImageProvider:
    """Image provider for the OpenAI Images API.

    Args:
        client: AsyncOpenAI client instance.
        name: Provider label.
        model: Image generation model name.
        size: API size for the composite grid.
        max_retries: Retries after the first attempt on transient errors.
        retry_delay_s: Delay between retries in seconds.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        name: str = "gpt",
        model: str = "gpt-image-1",
        size: str = "1024x1024",
        max_retries: int = 1,
        retry_delay_s: float = 2.0,
    ) -> None:
        self._client = client
        self._name = name
        self._model = model
        self._size = size
        self._max_retries = max_retries
        self._retry_delay_s = retry_delay_s

    @property
    def name(self) -> str:
        return self._name

    async def generate_from_text(self, prompt: str, seed: int | None = None) -> bytes:
        logger.debug(f"[{self._name}] text-to-image (seed={seed} ignored by OpenAI)")
        return await self._call_with_retry(
            lambda: self._client.images.generate(
                model=self._model,
                prompt=prompt + _OPENAI_SUFFIX,
                n=1,
                size=self._size,  # type: ignore[arg-type]
                background="transparent",
                output_format="png",
            )
        )

    async def generate_from_image(
        self,
        prompt: str,
        reference_image: bytes,
        seed: int | None = None,
    ) -> bytes:
        logger.debug(f"[{self._name}] image-to-image (seed={seed} ignored by OpenAI)")
        return await self._call_with_retry(
            lambda: self._client.images.edit(
                model=self._model,
                image=("reference.png", reference_image, "image/png"),
                prompt=prompt + _OPENAI_SUFFIX,
                n=1,
                size=self._size,  # type: ignore[arg-type]
                background="transparent",
                output_format="png",
            )
        )

    async def _call_with_retry(self, call) -> bytes:  # type: ignore[no-untyped-def]
        attempts = self._max_retries + 1
        last_error: OpenAIError | None = None

        for attempt in range(1, attempts + 1):
            try:
                response = await call()
            except _RETRYABLE_ERRORS as e:
                last_error = e
                logger.warning(
                    "[%s] image call attempt %d/%d failed (retryable): %s",
                    self._name,
                    attempt,
                    attempts,
                    e,
                )
                if attempt < attempts:
                    await asyncio.sleep(self._retry_delay_s)
                continue
            except OpenAIError as e:
                # Non-retryable, fail immediately
                raise map_openai_error(e, self._name) from e

            if not response.data:
                raise ProviderResponseError("API returned empty data list", provider=self._name)
            b64_data = response.data[0].b64_json
            if not b64_data:
                raise ProviderResponseError("API returned empty b64_json", provider=self._name)
            try:
                return base64.b64decode(b64_data)
            except ValueError as e:
                raise ProviderResponseError(
                    "API returned malformed base64 image data", provider=self._name, cause=e
                ) from e

        assert last_error is not None
        raise map_openai_error(last_error, self._name) from last_error
