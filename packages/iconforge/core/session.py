"""iconforge session - wires configuration into the generation services.

The session owns the shared collaborators a host application needs:
- Configuration (loaded from YAML/JSON, environment for secrets)
- Image providers for every enabled service
- Coin ledger, progress broadcaster, grid decomposer, icon store
- The request coordinator that ties them together

Every service is created lazily on first access.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import httpx
from openai import AsyncOpenAI

from iconforge.core.config.loader import load_app_config
from iconforge.core.config.models import AppConfig
from iconforge.core.generation.coordinator import RequestCoordinator
from iconforge.core.generation.enhancer import OpenAIPromptEnhancer, PromptEnhancer
from iconforge.core.imaging.grid import GridDecomposer
from iconforge.core.ledger.ledger import CoinLedger
from iconforge.core.ledger.store import BalanceStore, InMemoryBalanceStore
from iconforge.core.progress.broadcaster import ProgressBroadcaster
from iconforge.core.providers.base import ImageProvider
from iconforge.core.providers.factory import create_enabled_providers
from iconforge.core.storage.filesystem import FileSystemIconStore

logger = logging.getLogger(__name__)


class IconForgeSession:
    """Service container for one iconforge process.

    Args:
        app_config: AppConfig instance, path, or None (uses default path)
        balance_store: Balance store collaborator (in-memory if None)
        providers: Pre-built providers; bypasses the provider factory
        http_client: Shared httpx client for HTTP-based providers

    Example:
        >>> session = IconForgeSession(app_config="config.yaml")
        >>> request_id = await session.coordinator.submit(request)
        >>> await session.aclose()
    """

    def __init__(
        self,
        *,
        app_config: AppConfig | Path | str | None = None,
        balance_store: BalanceStore | None = None,
        providers: dict[str, ImageProvider] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.app_config: AppConfig = self._resolve_config(app_config)
        self.balance_store: BalanceStore = balance_store or InMemoryBalanceStore()
        self._injected_providers = providers
        self._http_client = http_client
        self._owns_http_client = http_client is None

        logger.debug(
            f"Session initialized: providers={self.app_config.enabled_providers()}, "
            f"storage={self.app_config.storage.root}"
        )

    @staticmethod
    def _resolve_config(value: Any) -> AppConfig:
        """Resolve config from value, path, or default.

        Raises:
            TypeError: If value is wrong type
            ValidationError: If config is invalid
        """
        if value is None:
            return load_app_config()
        elif isinstance(value, (Path, str)):
            return load_app_config(value)
        elif isinstance(value, AppConfig):
            return value
        else:
            raise TypeError(f"Expected AppConfig, Path, str, or None; got {type(value).__name__}")

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.app_config.generation.attempt_timeout_seconds)
        return self._http_client

    @property
    def providers(self) -> dict[str, ImageProvider]:
        """Enabled image providers in configuration order.

        Lazy-loaded on first access.
        """
        if not hasattr(self, "_providers"):
            if self._injected_providers is not None:
                self._providers = dict(self._injected_providers)
            else:
                self._providers = create_enabled_providers(
                    self.app_config, http_client=self.http_client
                )
        return self._providers

    @property
    def ledger(self) -> CoinLedger:
        if not hasattr(self, "_ledger"):
            self._ledger = CoinLedger(
                self.balance_store, policy=self.app_config.generation.settlement_policy
            )
        return self._ledger

    @property
    def broadcaster(self) -> ProgressBroadcaster:
        if not hasattr(self, "_broadcaster"):
            self._broadcaster = ProgressBroadcaster(self.app_config.progress)
        return self._broadcaster

    @property
    def decomposer(self) -> GridDecomposer:
        if not hasattr(self, "_decomposer"):
            self._decomposer = GridDecomposer(self.app_config.imaging)
        return self._decomposer

    @property
    def icon_store(self) -> FileSystemIconStore:
        if not hasattr(self, "_icon_store"):
            self._icon_store = FileSystemIconStore(self.app_config.storage.root)
        return self._icon_store

    @property
    def enhancer(self) -> PromptEnhancer | None:
        """Prompt enhancer, or None when no OpenAI key is configured.

        Lazy-loaded on first access.
        """
        if not hasattr(self, "_enhancer"):
            api_key = self.app_config.openai_api_key
            self._enhancer: PromptEnhancer | None = None
            if api_key:
                self._enhancer = OpenAIPromptEnhancer(
                    AsyncOpenAI(api_key=api_key),
                    model=self.app_config.generation.enhancer_model,
                )
        return self._enhancer

    @property
    def coordinator(self) -> RequestCoordinator:
        """Request coordinator wired to this session's services.

        Lazy-loaded on first access.
        """
        if not hasattr(self, "_coordinator"):
            self._coordinator = RequestCoordinator(
                self.providers,
                self.ledger,
                self.broadcaster,
                self.decomposer,
                store=self.icon_store,
                config=self.app_config.generation,
                enhancer=self.enhancer,
                retention_seconds=self.app_config.progress.retention_seconds,
            )
        return self._coordinator

    async def aclose(self) -> None:
        """Finish in-flight requests and release network clients."""
        if hasattr(self, "_coordinator"):
            await self._coordinator.shutdown()
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
