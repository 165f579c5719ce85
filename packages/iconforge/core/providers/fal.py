"""fal.ai provider over the synchronous REST endpoint.

Requests go to ``https://fal.run/<endpoint>`` with ``sync_mode`` enabled, so
images usually come back inline as data URIs; plain URLs are downloaded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

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
from iconforge.core.providers.base import ICON_PROMPT_SUFFIX, from_data_uri, to_data_uri

logger = logging.getLogger(__name__)

FAL_BASE_URL = "https://fal.run"


def _categorize_status(status_code: int) -> type[ProviderError]:
    """Map HTTP status code to the provider error class."""
    if status_code in (401, 403):
        return ProviderAuthError
    if status_code == 429:
        return ProviderRateLimitError
    if status_code == 422:
        # fal reports safety-checker rejections as validation errors
        return ContentPolicyError
    if 500 <= status_code < 600:
        return ProviderServerError
    return ProviderError


def _snippet(response: httpx.Response, limit: int = 512) -> str:
    try:
        return response.text[:limit]
    except UnicodeDecodeError:
        return f"<{len(response.content)} bytes>"


class FalImageProvider:
    """Image provider for fal.ai hosted models (flux, recraft, nano-banana, ...).

    Args:
        client: httpx.AsyncClient (owned by the caller)
        api_key: fal API key
        name: Provider label
        text_endpoint: Endpoint id for text-to-image (e.g. "fal-ai/nano-banana")
        image_endpoint: Endpoint id for image-to-image (None = unsupported)
        base_url: fal REST base URL
        max_retries: Retries after the first attempt on transient errors
        retry_delay_s: Delay between retries in seconds
        extra_input: Additional endpoint-specific input fields

    Example:
        >>> async with httpx.AsyncClient(timeout=120) as http:
        ...     fal = FalImageProvider(http, api_key=key, name="banana",
        ...                            text_endpoint="fal-ai/nano-banana")
        ...     grid = await fal.generate_from_text("space icons", seed=7)
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str | None,
        name: str,
        text_endpoint: str,
        image_endpoint: str | None = None,
        base_url: str = FAL_BASE_URL,
        max_retries: int = 1,
        retry_delay_s: float = 2.0,
        extra_input: dict[str, Any] | None = None,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._name = name
        self._text_endpoint = text_endpoint
        self._image_endpoint = image_endpoint
        self._base_url = base_url.rstrip("/")
        self._max_retries = max_retries
        self._retry_delay_s = retry_delay_s
        self._extra_input = extra_input or {}

    @property
    def name(self) -> str:
        return self._name

    async def generate_from_text(self, prompt: str, seed: int | None = None) -> bytes:
        payload = self._base_input(prompt, seed)
        return await self._run(self._text_endpoint, payload)

    async def generate_from_image(
        self,
        prompt: str,
        reference_image: bytes,
        seed: int | None = None,
    ) -> bytes:
        if not self._image_endpoint:
            raise ProviderError(
                "Provider does not support image-to-image generation", provider=self._name
            )
        payload = self._base_input(prompt, seed)
        payload["image_urls"] = [to_data_uri(reference_image)]
        return await self._run(self._image_endpoint, payload)

    def _base_input(self, prompt: str, seed: int | None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "prompt": prompt + ICON_PROMPT_SUFFIX,
            "num_images": 1,
            "output_format": "png",
            "sync_mode": True,
            **self._extra_input,
        }
        if seed is not None:
            payload["seed"] = seed
        return payload

    async def _run(self, endpoint: str, payload: dict[str, Any]) -> bytes:
        attempts = self._max_retries + 1
        last_error: ProviderError | None = None

        for attempt in range(1, attempts + 1):
            try:
                return await self._call(endpoint, payload)
            except ProviderError as e:
                if not e.retryable:
                    raise
                last_error = e
                logger.warning(
                    "[%s] fal call attempt %d/%d failed (retryable): %s",
                    self._name,
                    attempt,
                    attempts,
                    e,
                )
                if attempt < attempts:
                    await asyncio.sleep(self._retry_delay_s)

        assert last_error is not None
        raise last_error

    async def _call(self, endpoint: str, payload: dict[str, Any]) -> bytes:
        url = f"{self._base_url}/{endpoint}"
        headers = {"Authorization": f"Key {self._api_key}"} if self._api_key else {}
        logger.debug(f"[{self._name}] POST {url} keys={sorted(payload)}")

        try:
            response = await self._client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"fal request timed out: {e}", provider=self._name, cause=e) from e
        except httpx.TransportError as e:
            raise ProviderConnectionError(
                f"fal connection error: {e}", provider=self._name, cause=e
            ) from e

        if response.status_code >= 400:
            body = _snippet(response)
            exc_type = _categorize_status(response.status_code)
            if "content_policy" in body.lower() or "nsfw" in body.lower():
                exc_type = ContentPolicyError
            raise exc_type(
                f"fal returned HTTP {response.status_code}: {body}",
                provider=self._name,
                status_code=response.status_code,
            )

        try:
            result = response.json()
        except ValueError as e:
            raise ProviderResponseError(
                "fal returned a non-JSON body", provider=self._name, cause=e
            ) from e

        if not isinstance(result, dict):
            raise ProviderResponseError(
                f"fal returned {type(result).__name__} instead of an object", provider=self._name
            )
        return await self._extract_image(result)

    async def _extract_image(self, result: dict[str, Any]) -> bytes:
        images = result.get("images") or []
        if not images and isinstance(result.get("image"), dict):
            images = [result["image"]]
        first = images[0] if isinstance(images, list) and images else None
        if not isinstance(first, dict) or not isinstance(first.get("url"), str) or not first["url"]:
            raise ProviderResponseError("fal response contained no images", provider=self._name)

        url: str = first["url"]
        if url.startswith("data:"):
            try:
                return from_data_uri(url)
            except ValueError as e:
                raise ProviderResponseError(
                    "fal returned a malformed data URI", provider=self._name, cause=e
                ) from e

        try:
            download = await self._client.get(url)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(
                f"Image download timed out: {e}", provider=self._name, cause=e
            ) from e
        except httpx.TransportError as e:
            raise ProviderConnectionError(
                f"Image download failed: {e}", provider=self._name, cause=e
            ) from e
        if download.status_code >= 400:
            raise _categorize_status(download.status_code)(
                f"Image download returned HTTP {download.status_code}",
                provider=self._name,
                status_code=download.status_code,
            )
        return download.content
