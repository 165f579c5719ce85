"""Optional theme rewriting through a chat model."""

from __future__ import annotations

import logging
from typing import Protocol

from openai import AsyncOpenAI, OpenAIError

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "You are an art director specializing in crafting vivid, cohesive icon pack prompts. "
    "Rewrite the user input into a clear, descriptive but concise creative brief. Mention "
    "color palette, tone, shapes, and stylistic cues. Keep it under 80 words and in natural "
    "sentences without bullet points."
)

_USER_TEMPLATE = (
    'Original description: "{theme}". Rewrite this so it guides an AI model to design a '
    "cohesive icon pack with a unified style, colors, materials, and lighting."
)


class PromptEnhancer(Protocol):
    """Rewrites a short theme into a richer creative brief."""

    async def enhance(self, theme: str) -> str:
        """Return the enhanced theme, or ``theme`` unchanged on failure."""
        ...


class OpenAIPromptEnhancer:
    """Prompt enhancer backed by the OpenAI Responses API.

    Failures never block generation: the original theme is returned.

    Args:
        client: AsyncOpenAI client instance
        model: Chat model name
    """

    def __init__(self, client: AsyncOpenAI, *, model: str = "gpt-4o-mini") -> None:
        self._client = client
        self._model = model

    async def enhance(self, theme: str) -> str:
        trimmed = theme.strip()
        if not trimmed:
            return theme

        try:
            response = await self._client.responses.create(
                model=self._model,
                instructions=_SYSTEM_PROMPT,
                input=_USER_TEMPLATE.format(theme=trimmed),
            )
        except OpenAIError as e:
            logger.warning(f"Prompt enhancement failed, using original theme: {e}")
            return theme

        enhanced = (response.output_text or "").strip()
        if not enhanced:
            return theme

        logger.debug(f"Prompt enhanced from '{trimmed}' to '{enhanced}'")
        return enhanced
