"""Capability interface for image generation providers."""

from __future__ import annotations

import base64
from typing import Protocol

# Appended to every prompt sent to a provider
ICON_PROMPT_SUFFIX = " - clean icon design, no text, no labels, no grid lines, no borders"


class ImageProvider(Protocol):
    """Generic protocol for image generation providers.

    Implementations must:
    - Return raw composite image bytes (any format PIL can decode)
    - Raise ProviderError subclasses for every failure
    - Handle vendor-level retries themselves (the coordinator does not retry)

    The coordinator only knows the provider by its ``name`` label.
    """

    @property
    def name(self) -> str:
        """Provider label used in attempt labels and progress events."""
        ...

    async def generate_from_text(self, prompt: str, seed: int | None = None) -> bytes:
        """Render a composite grid from a text prompt.

        Args:
            prompt: Full grid prompt
            seed: Seed for reproducible output (ignored by vendors without seed support)

        Returns:
            Raw image bytes

        Raises:
            ProviderError: On any failure
        """
        ...

    async def generate_from_image(
        self,
        prompt: str,
        reference_image: bytes,
        seed: int | None = None,
    ) -> bytes:
        """Render a composite grid styled after ``reference_image``.

        Args:
            prompt: Instruction text
            reference_image: Raw bytes of the reference image
            seed: Seed for reproducible output

        Returns:
            Raw image bytes

        Raises:
            ProviderError: On any failure
        """
        ...


def to_data_uri(image: bytes, mime_type: str = "image/png") -> str:
    """Encode image bytes as a base64 data URI."""
    return f"data:{mime_type};base64,{base64.b64encode(image).decode()}"


def from_data_uri(uri: str) -> bytes:
    """Decode a base64 data URI.

    Raises:
        ValueError: If ``uri`` is not a base64 data URI
    """
    header, sep, payload = uri.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("Not a base64 data URI")
    return base64.b64decode(payload)
