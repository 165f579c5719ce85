"""Tests for the OpenAI Images API provider."""

from __future__ import annotations

import base64
from io import BytesIO
from unittest.mock import AsyncMock, MagicMock

import httpx
from openai import (
    APITimeoutError,
    AuthenticationError,
    BadRequestError,
    InternalServerError,
    RateLimitError,
)
from PIL import Image
import pytest

from iconforge.core.errors import (
    ContentPolicyError,
    ProviderAuthError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderServerError,
    ProviderTimeoutError,
)
from iconforge.core.providers.base import ICON_PROMPT_SUFFIX
from iconforge.core.providers.openai import OpenAIImageProvider, map_openai_error

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/images/generations")


def _make_png_bytes(width: int = 64, height: int = 64) -> bytes:
    img = Image.new("RGBA", (width, height), (0, 128, 255, 255))
    buf = BytesIO()
    img.save(buf, "PNG")
    return buf.getvalue()


def _mock_response(b64_data: str | None = None) -> MagicMock:
    if b64_data is None:
        b64_data = base64.b64encode(_make_png_bytes()).decode()
    data_item = MagicMock()
    data_item.b64_json = b64_data
    response = MagicMock()
    response.data = [data_item]
    return response


def _make_async_client(
    response: MagicMock | None = None,
    side_effect: Exception | list | None = None,
) -> MagicMock:
    """Build a mock AsyncOpenAI client with images.generate/edit as AsyncMocks."""
    mock_client = MagicMock()
    mock_client.images = MagicMock()
    for method in ("generate", "edit"):
        mock = AsyncMock()
        if side_effect is not None:
            mock.side_effect = side_effect
        else:
            mock.return_value = response or _mock_response()
        setattr(mock_client.images, method, mock)
    return mock_client


def _status_error(cls: type, status: int, code: str | None = None):  # type: ignore[no-untyped-def]
    body = {"code": code, "message": "failure"} if code else None
    return cls(
        message="failure",
        response=httpx.Response(status, request=_REQUEST),
        body=body,
    )


class TestOpenAIImageProvider:
    async def test_generate_from_text_decodes_png(self) -> None:
        client = _make_async_client()
        provider = OpenAIImageProvider(client, model="test-model")

        data = await provider.generate_from_text("space icons", seed=3)

        assert Image.open(BytesIO(data)).size == (64, 64)
        kwargs = client.images.generate.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["output_format"] == "png"
        assert kwargs["background"] == "transparent"
        assert kwargs["prompt"].startswith("space icons" + ICON_PROMPT_SUFFIX)
        assert kwargs["prompt"].endswith("transparent background")

    async def test_generate_from_image_sends_reference(self) -> None:
        client = _make_async_client()
        provider = OpenAIImageProvider(client)
        reference = _make_png_bytes(32, 32)

        await provider.generate_from_image("match this", reference)

        kwargs = client.images.edit.call_args.kwargs
        assert kwargs["image"] == ("reference.png", reference, "image/png")
        client.images.generate.assert_not_called()

    async def test_retry_on_rate_limit(self) -> None:
        rate_err = RateLimitError(
            message="Rate limit",
            response=MagicMock(status_code=429, headers={}),
            body=None,
        )
        client = _make_async_client(side_effect=[rate_err, _mock_response()])
        provider = OpenAIImageProvider(client, max_retries=1, retry_delay_s=0.01)

        await provider.generate_from_text("prompt")
        assert client.images.generate.call_count == 2

    async def test_exhausted_retries_raise_typed_error(self) -> None:
        rate_err = RateLimitError(
            message="Rate limit",
            response=MagicMock(status_code=429, headers={}),
            body=None,
        )
        client = _make_async_client(side_effect=rate_err)
        provider = OpenAIImageProvider(client, name="gpt", max_retries=1, retry_delay_s=0.01)

        with pytest.raises(ProviderRateLimitError) as exc_info:
            await provider.generate_from_text("prompt")
        assert exc_info.value.provider == "gpt"
        assert exc_info.value.retryable
        assert client.images.generate.call_count == 2

    async def test_non_retryable_error_fails_immediately(self) -> None:
        auth_err = _status_error(AuthenticationError, 401)
        client = _make_async_client(side_effect=auth_err)
        provider = OpenAIImageProvider(client, max_retries=3)

        with pytest.raises(ProviderAuthError):
            await provider.generate_from_text("prompt")
        assert client.images.generate.call_count == 1

    async def test_empty_data_raises_response_error(self) -> None:
        response = MagicMock()
        response.data = []
        provider = OpenAIImageProvider(_make_async_client(response=response))

        with pytest.raises(ProviderResponseError, match="empty data"):
            await provider.generate_from_text("prompt")

    async def test_empty_b64_raises_response_error(self) -> None:
        provider = OpenAIImageProvider(_make_async_client(response=_mock_response(b64_data="")))
        with pytest.raises(ProviderResponseError, match="empty b64_json"):
            await provider.generate_from_text("prompt")

    async def test_malformed_b64_raises_response_error(self) -> None:
        provider = OpenAIImageProvider(_make_async_client(response=_mock_response(b64_data="abc")))
        with pytest.raises(ProviderResponseError, match="malformed base64"):
            await provider.generate_from_text("prompt")


class TestMapOpenAIError:
    def test_timeout(self) -> None:
        assert isinstance(map_openai_error(APITimeoutError(request=_REQUEST), "gpt"), ProviderTimeoutError)

    def test_content_policy_code(self) -> None:
        error = _status_error(BadRequestError, 400, code="content_policy_violation")
        mapped = map_openai_error(error, "gpt")
        assert isinstance(mapped, ContentPolicyError)
        assert not mapped.retryable

    def test_server_error(self) -> None:
        mapped = map_openai_error(_status_error(InternalServerError, 500), "gpt")
        assert isinstance(mapped, ProviderServerError)
        assert mapped.status_code == 500
