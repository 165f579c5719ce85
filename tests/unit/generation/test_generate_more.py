"""Tests for follow-up grids in the style of an earlier attempt."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from iconforge.core.errors import (
    ContentPolicyError,
    InsufficientCoinsError,
    ProviderServerError,
    RequestValidationError,
)
from iconforge.core.generation.coordinator import RequestCoordinator
from iconforge.core.generation.models import (
    AttemptStatus,
    ErrorCategory,
    GenerationRequest,
    MoreIconsRequest,
    RequestStatus,
)
from iconforge.core.ledger.ledger import CoinLedger
from iconforge.core.ledger.models import Balance
from iconforge.core.ledger.store import InMemoryBalanceStore
from iconforge.core.storage.filesystem import FileSystemIconStore


def _more(**overrides: Any) -> MoreIconsRequest:
    fields: dict[str, Any] = {
        "user_id": "alice",
        "original_request_id": "orig",
        "provider": "gpt",
        "original_image": b"original-grid",
        "seed": 42,
    }
    fields.update(overrides)
    return MoreIconsRequest(**fields)


@pytest.fixture
def coordinator_for(ledger, broadcaster, decomposer, generation_config, seeds):
    def _make(provider, **kwargs: Any) -> RequestCoordinator:
        return RequestCoordinator(
            {provider.name: provider},
            ledger,
            broadcaster,
            decomposer,
            config=generation_config,
            seeds=seeds,
            **kwargs,
        )

    return _make


class TestGenerateMore:
    async def test_success_uses_original_grid_and_seed(
        self, coordinator_for, provider_factory, balance_store: InMemoryBalanceStore
    ) -> None:
        gpt = provider_factory("gpt")
        coordinator = coordinator_for(gpt)

        result = await coordinator.generate_more(_more(icon_descriptions=("comet", "")))

        assert result.status is RequestStatus.COMPLETED
        assert result.message == "Generated 9 more icon(s) with gpt"
        assert result.seed == 42
        assert gpt.calls[0]["mode"] == "image"
        assert gpt.calls[0]["reference"] == b"original-grid"
        assert gpt.calls[0]["seed"] == 42
        assert "comet" in gpt.calls[0]["prompt"]

        descriptions = [icon.description for icon in result.icons]
        assert descriptions[0] == "comet"
        assert descriptions[1] == "Generated Icon 2"
        assert descriptions[8] == "Generated Icon 9"
        assert balance_store.snapshot("alice") == Balance(coins=9)

    async def test_icons_are_persisted(
        self, coordinator_for, provider_factory, tmp_path: Path
    ) -> None:
        coordinator = coordinator_for(provider_factory("gpt"), store=FileSystemIconStore(tmp_path))

        result = await coordinator.generate_more(_more())

        assert len(result.stored_paths) == 9
        assert all(Path(p).is_file() for p in result.stored_paths)

    async def test_temporary_failure_refunds(
        self, coordinator_for, provider_factory, balance_store: InMemoryBalanceStore
    ) -> None:
        coordinator = coordinator_for(
            provider_factory("gpt", [ProviderServerError("upstream 503", status_code=503)])
        )

        result = await coordinator.generate_more(_more())

        assert result.status is RequestStatus.ERROR
        assert result.message is not None
        assert "gpt service is temporarily unavailable" in result.message
        assert result.refunded == 1
        assert result.attempts[0].status is AttemptStatus.FAILED
        assert balance_store.snapshot("alice") == Balance(coins=10)

    async def test_content_policy_failure_keeps_charge(
        self, coordinator_for, provider_factory, balance_store: InMemoryBalanceStore
    ) -> None:
        coordinator = coordinator_for(
            provider_factory("gpt", [ContentPolicyError("rejected: internal trace")])
        )

        result = await coordinator.generate_more(_more())

        assert result.status is RequestStatus.ERROR
        assert result.message is not None
        assert result.message.startswith("Your request could not be processed")
        assert "internal trace" not in result.message
        assert result.refunded == 0
        assert balance_store.snapshot("alice") == Balance(coins=9)

    async def test_unexpected_error_settles_and_reports(
        self, coordinator_for, provider_factory, balance_store: InMemoryBalanceStore
    ) -> None:
        coordinator = coordinator_for(provider_factory("gpt", [RuntimeError("boom")]))

        result = await coordinator.generate_more(_more())

        assert result.status is RequestStatus.ERROR
        assert result.message == "Request failed"
        assert result.attempts[0].status is AttemptStatus.FAILED
        assert result.attempts[0].error_category is ErrorCategory.UNKNOWN
        # Not a transient failure, so the charge is kept
        assert result.refunded == 0
        assert balance_store.snapshot("alice") == Balance(coins=9)

    async def test_unexpected_transient_error_refunds(
        self, coordinator_for, provider_factory, balance_store: InMemoryBalanceStore
    ) -> None:
        coordinator = coordinator_for(
            provider_factory("gpt", [RuntimeError("connection reset by peer")])
        )

        result = await coordinator.generate_more(_more())

        assert result.status is RequestStatus.ERROR
        assert result.refunded == 1
        assert balance_store.snapshot("alice") == Balance(coins=10)

    async def test_cancelled_call_refunds(
        self, coordinator_for, provider_factory, balance_store: InMemoryBalanceStore
    ) -> None:
        coordinator = coordinator_for(provider_factory("gpt", delay=5.0))

        task = asyncio.create_task(coordinator.generate_more(_more()))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert balance_store.snapshot("alice") == Balance(coins=10)

    async def test_original_looked_up_from_retained_request(
        self, coordinator_for, provider_factory, grid_png: bytes
    ) -> None:
        gpt = provider_factory("gpt", [grid_png])
        coordinator = coordinator_for(gpt)
        request_id = await coordinator.submit(
            GenerationRequest(user_id="alice", theme="ocean", seed=300)
        )
        original = await coordinator.wait(request_id)
        assert original.status is RequestStatus.COMPLETED

        result = await coordinator.generate_more(
            _more(original_request_id=request_id, original_image=None, seed=None)
        )

        assert result.status is RequestStatus.COMPLETED
        follow_up = gpt.calls[-1]
        assert follow_up["mode"] == "image"
        assert follow_up["seed"] == 300
        assert follow_up["reference"] == grid_png

    async def test_missing_original_rejected(
        self, coordinator_for, provider_factory, balance_store: InMemoryBalanceStore
    ) -> None:
        coordinator = coordinator_for(provider_factory("gpt"))

        with pytest.raises(RequestValidationError, match="not available"):
            await coordinator.generate_more(_more(original_image=None))

        assert balance_store.snapshot("alice") == Balance(coins=10)

    async def test_unknown_provider(self, coordinator_for, provider_factory) -> None:
        coordinator = coordinator_for(provider_factory("gpt"))

        with pytest.raises(RequestValidationError, match="not enabled"):
            await coordinator.generate_more(_more(provider="dalle"))

    async def test_insufficient_coins(
        self, provider_factory, broadcaster, decomposer, seeds
    ) -> None:
        store = InMemoryBalanceStore({"dave": Balance()})
        gpt = provider_factory("gpt")
        coordinator = RequestCoordinator(
            {"gpt": gpt}, CoinLedger(store), broadcaster, decomposer, seeds=seeds
        )

        with pytest.raises(InsufficientCoinsError):
            await coordinator.generate_more(_more(user_id="dave"))

        assert gpt.calls == []
