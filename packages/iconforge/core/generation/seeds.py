"""Seed derivation for reproducible generation rounds."""

from __future__ import annotations

import random

# Providers accept 32-bit signed seeds
MAX_SEED = 2**31 - 1


class SeedManager:
    """Derives base and per-attempt seeds.

    The same base seed always yields the same family of attempt seeds, and
    each generation round gets a distinct seed within that family.

    Args:
        rng: Random source for fresh seeds (injectable for tests)

    Example:
        >>> seeds = SeedManager()
        >>> base = seeds.base_seed(42)
        >>> [seeds.attempt_seed(base, i) for i in (1, 2)]
        [42, 43]
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.SystemRandom()

    def base_seed(self, caller_seed: int | None = None) -> int:
        """Return the caller's seed, or a fresh one if none was supplied."""
        if caller_seed is not None:
            return caller_seed
        # Leave headroom for the per-round offset
        return self._rng.randint(0, MAX_SEED - 16)

    @staticmethod
    def attempt_seed(base_seed: int, generation_index: int) -> int:
        """Seed for a given generation round (1-based).

        Raises:
            ValueError: If generation_index < 1
        """
        if generation_index < 1:
            raise ValueError(f"generation_index must be >= 1, got {generation_index}")
        return base_seed + generation_index - 1
