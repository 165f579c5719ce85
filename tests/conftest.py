"""Shared pytest fixtures for iconforge tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from io import BytesIO
import random

from PIL import Image, ImageDraw
import pytest

from iconforge.core.config.models import GenerationConfig, ImagingConfig, ProgressConfig
from iconforge.core.generation.seeds import SeedManager
from iconforge.core.imaging.grid import GridDecomposer
from iconforge.core.ledger.ledger import CoinLedger
from iconforge.core.ledger.models import Balance
from iconforge.core.ledger.store import InMemoryBalanceStore
from iconforge.core.progress.broadcaster import ProgressBroadcaster

# ============================================================================
# Image Fixtures
# ============================================================================


def make_grid_png(
    width: int = 300,
    height: int = 300,
    side: int = 3,
    background: tuple[int, int, int, int] = (0, 0, 0, 0),
) -> bytes:
    """Create a grid image with one colored square per cell."""
    img = Image.new("RGBA", (width, height), background)
    draw = ImageDraw.Draw(img)
    cell_w, cell_h = width // side, height // side
    for row in range(side):
        for col in range(side):
            x0, y0 = col * cell_w, row * cell_h
            color = (40 + row * 60, 40 + col * 60, 200, 255)
            draw.rectangle(
                [x0 + cell_w // 4, y0 + cell_h // 4, x0 + 3 * cell_w // 4, y0 + 3 * cell_h // 4],
                fill=color,
            )
    buf = BytesIO()
    img.save(buf, "PNG")
    return buf.getvalue()


@pytest.fixture
def grid_png() -> bytes:
    """A 300x300 3x3 grid image."""
    return make_grid_png()


@pytest.fixture
def grid_factory() -> Callable[..., bytes]:
    """Build grid images of arbitrary size."""
    return make_grid_png


# ============================================================================
# Provider Fixtures
# ============================================================================


class FakeProvider:
    """Scriptable ImageProvider.

    ``outcomes`` are consumed in call order (the last one repeats); each is
    image bytes to return or an exception to raise. Records every call.
    """

    def __init__(
        self,
        name: str,
        outcomes: list[bytes | BaseException] | None = None,
        *,
        delay: float = 0.0,
    ) -> None:
        self._name = name
        self._outcomes = list(outcomes or [make_grid_png()])
        self._delay = delay
        self.calls: list[dict] = []

    @property
    def name(self) -> str:
        return self._name

    async def _next(self) -> bytes:
        if self._delay:
            await asyncio.sleep(self._delay)
        outcome = self._outcomes[min(len(self.calls) - 1, len(self._outcomes) - 1)]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def generate_from_text(self, prompt: str, seed: int | None = None) -> bytes:
        self.calls.append({"mode": "text", "prompt": prompt, "seed": seed})
        return await self._next()

    async def generate_from_image(
        self, prompt: str, reference_image: bytes, seed: int | None = None
    ) -> bytes:
        self.calls.append(
            {"mode": "image", "prompt": prompt, "seed": seed, "reference": reference_image}
        )
        return await self._next()


@pytest.fixture
def provider_factory() -> Callable[..., FakeProvider]:
    """Build FakeProvider instances."""
    return FakeProvider


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def balance_store() -> InMemoryBalanceStore:
    return InMemoryBalanceStore({"alice": Balance(coins=10, trial_coins=0)})


@pytest.fixture
def ledger(balance_store: InMemoryBalanceStore) -> CoinLedger:
    return CoinLedger(balance_store)


@pytest.fixture
def broadcaster() -> ProgressBroadcaster:
    return ProgressBroadcaster(ProgressConfig(heartbeat_interval_seconds=0.05))


@pytest.fixture
def decomposer() -> GridDecomposer:
    return GridDecomposer(ImagingConfig(center_icons=False, remove_frame=False))


@pytest.fixture
def generation_config() -> GenerationConfig:
    return GenerationConfig(attempt_timeout_seconds=2.0)


@pytest.fixture
def seeds() -> SeedManager:
    return SeedManager(random.Random(1234))

