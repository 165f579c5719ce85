"""Provider factory for image provider dispatch."""

from __future__ import annotations

import httpx
from openai import AsyncOpenAI

from iconforge.core.config.models import AppConfig, ProviderConfig, ProviderKind
from iconforge.core.providers.base import ImageProvider
from iconforge.core.providers.fal import FalImageProvider
from iconforge.core.providers.openai import OpenAIImageProvider


def create_image_provider(
    name: str,
    config: ProviderConfig,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> ImageProvider:
    """Create one configured image provider.

    Args:
        name: Provider label
        config: Provider configuration
        http_client: Shared httpx client for fal providers (created if None)

    Returns:
        ImageProvider instance

    Raises:
        ValueError: If the provider kind is unknown
    """
    if config.kind is ProviderKind.OPENAI:
        return OpenAIImageProvider(
            AsyncOpenAI(api_key=config.api_key, timeout=config.timeout_seconds),
            name=name,
            model=config.model or "gpt-image-1",
            max_retries=config.max_retries,
        )

    if config.kind is ProviderKind.FAL:
        assert config.text_endpoint is not None
        return FalImageProvider(
            http_client or httpx.AsyncClient(timeout=config.timeout_seconds),
            api_key=config.api_key,
            name=name,
            text_endpoint=config.text_endpoint,
            image_endpoint=config.image_endpoint,
            max_retries=config.max_retries,
        )

    raise ValueError(f"Unknown provider kind configured for '{name}': {config.kind}")


def create_enabled_providers(
    app_config: AppConfig,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> dict[str, ImageProvider]:
    """Create every enabled provider, keyed by label, in configuration order."""
    return {
        name: create_image_provider(name, cfg, http_client=http_client)
        for name, cfg in app_config.providers.items()
        if cfg.enabled
    }
