"""Unit tests for IconForgeSession wiring."""

from __future__ import annotations

from unittest.mock import patch

import httpx
import pytest

from iconforge.core.config.models import AppConfig, SettlementPolicy
from iconforge.core.generation.enhancer import OpenAIPromptEnhancer
from iconforge.core.ledger.models import Balance
from iconforge.core.ledger.store import InMemoryBalanceStore
from iconforge.core.session import IconForgeSession


def _make_app_config(**overrides) -> AppConfig:
    return AppConfig.model_validate(
        {
            "generation": {"settlement_policy": "proportional_refund"},
            "progress": {"retention_seconds": 30},
            "storage": {"root": "/tmp/iconforge-test"},
            **overrides,
        }
    )


def test_services_wired_from_app_config(provider_factory) -> None:
    """Coordinator should receive the session's collaborators and settings."""
    provider = provider_factory("gpt")
    store = InMemoryBalanceStore({"u": Balance(coins=1)})
    session = IconForgeSession(
        app_config=_make_app_config(), balance_store=store, providers={"gpt": provider}
    )

    coordinator = session.coordinator

    assert coordinator.providers == {"gpt": provider}
    assert coordinator.ledger is session.ledger
    assert coordinator.broadcaster is session.broadcaster
    assert coordinator.store is session.icon_store
    assert coordinator.retention_seconds == 30
    assert session.ledger.policy is SettlementPolicy.PROPORTIONAL_REFUND
    assert str(session.icon_store.root) == "/tmp/iconforge-test"
    assert session.coordinator is coordinator


def test_providers_built_from_factory_when_not_injected() -> None:
    """Session should build providers from configuration lazily."""
    session = IconForgeSession(app_config=_make_app_config())

    with patch("iconforge.core.session.create_enabled_providers") as mock_factory:
        mock_factory.return_value = {}
        _ = session.providers
        _ = session.providers

    mock_factory.assert_called_once()


def test_enhancer_requires_openai_key() -> None:
    assert IconForgeSession(app_config=_make_app_config()).enhancer is None

    session = IconForgeSession(app_config=_make_app_config(openai_api_key="sk-test"))
    assert isinstance(session.enhancer, OpenAIPromptEnhancer)


def test_rejects_unknown_config_type() -> None:
    with pytest.raises(TypeError, match="Expected AppConfig"):
        IconForgeSession(app_config=42)  # type: ignore[arg-type]


async def test_aclose_only_closes_owned_client() -> None:
    shared = httpx.AsyncClient()
    session = IconForgeSession(app_config=_make_app_config(), http_client=shared, providers={})
    await session.aclose()
    assert not shared.is_closed
    await shared.aclose()

    owned = IconForgeSession(app_config=_make_app_config(), providers={})
    client = owned.http_client
    await owned.aclose()
    assert client.is_closed
