"""Prompt construction for composite icon grids."""

from __future__ import annotations

from collections.abc import Sequence
import logging

from iconforge.core.imaging.grid import grid_side

logger = logging.getLogger(__name__)

SECOND_GENERATION_VARIATION = (
    ". Icons should have subtle shading, depth, and highlights to give a slightly dimensional look. "
)

_BASE_TEMPLATE = (
    "Create a {side}x{side} arrangement of clean icons in a consistent style with no labels. "
    "Each icon should be contained within its own square area of equal size and there should be "
    "equal spaces between icons. If icons have backgrounds corners should be rounded, and "
    "backgrounds should be the same for each icon otherwise background should be white or "
    "transparent. Icons should use a consistent color scheme. "
    "IMPORTANT: Do NOT add visible grid lines, borders, or separators between icons. "
    "Do NOT add any text, labels, numbers, or captions below or around the icons. "
    "General theme: {theme}. "
)

_SPECIFIC_TEMPLATE = (
    "Specific icons to include in the arrangement (arranged left to right, top to bottom): {icons}. "
)

_PARTIAL_TEMPLATE = (
    "Include these specific icons: {icons}. For the remaining {missing} positions, intelligently "
    "choose icons that would logically fit with the general theme '{theme}' and complement the "
    "specified icons. Each icon should be distinct and clearly separated from others. "
)

_FALLBACK_TEMPLATE = (
    "Include {count} different icons that represent various aspects of the general theme. "
    "Each icon should be distinct and clearly separated from others. "
)

_AVOID_TEMPLATE = (
    "IMPORTANT: Do NOT include any icons similar to these already created ones: {icons}. "
    "Create completely different and unique icons that still fit the general theme. "
)

_STYLE_GUIDELINES = (
    "Style guidelines: Icons should use high detailed modern style with professional color "
    "palette. Ensure each icon is clearly distinguishable and fits well within its area with "
    "appropriate padding. NO grid lines, NO text labels, NO captions - just clean icons "
    "arranged in a {side}x{side} layout."
)

_REFERENCE_CLOSING = (
    "CRITICAL: Match the exact style, color scheme, and design approach from the reference image. "
    "Arrange the icons in a clean {side}x{side} grid layout with consistent spacing. "
    "IMPORTANT: Do NOT add visible grid lines, borders, or separators between icons. "
    "Do NOT add any text, labels, numbers, or captions. "
)


def _clean(descriptions: Sequence[str] | None) -> list[str]:
    return [d.strip() for d in descriptions or () if d and d.strip()]


class PromptBuilder:
    """Builds provider prompts for text-driven and image-driven grid generation.

    Example:
        >>> builder = PromptBuilder()
        >>> prompt = builder.grid_prompt("space exploration", ["rocket", "", "planet"])
        >>> "rocket, planet" in prompt
        True
    """

    def grid_prompt(
        self,
        theme: str,
        descriptions: Sequence[str] | None = None,
        *,
        icon_count: int = 9,
        icons_to_avoid: Sequence[str] | None = None,
    ) -> str:
        """Prompt for a text-to-image grid.

        Args:
            theme: General theme text
            descriptions: Per-slot descriptions; blanks are left to the model
            icon_count: Cells in the grid
            icons_to_avoid: Descriptions already used by an earlier grid

        Returns:
            Prompt text
        """
        side = grid_side(icon_count)
        parts = [_BASE_TEMPLATE.format(side=side, theme=theme)]

        valid = _clean(descriptions)
        if len(valid) >= icon_count:
            parts.append(_SPECIFIC_TEMPLATE.format(icons=", ".join(valid[:icon_count])))
        elif valid:
            parts.append(
                _PARTIAL_TEMPLATE.format(
                    icons=", ".join(valid), missing=icon_count - len(valid), theme=theme
                )
            )
        else:
            parts.append(_FALLBACK_TEMPLATE.format(count=icon_count))

        avoid = _clean(icons_to_avoid)
        if avoid:
            parts.append(_AVOID_TEMPLATE.format(icons=", ".join(avoid)))

        parts.append(_STYLE_GUIDELINES.format(side=side))
        prompt = "".join(parts)
        logger.debug(f"Grid prompt: {prompt[:150]}")
        return prompt

    def reference_prompt(
        self,
        descriptions: Sequence[str] | None = None,
        theme: str | None = None,
        *,
        icon_count: int = 9,
        icons_to_avoid: Sequence[str] | None = None,
    ) -> str:
        """Prompt for an image-to-image grid styled after a reference image."""
        side = grid_side(icon_count)
        parts = [
            f"Create a {side}x{side} arrangement of clean icons using the exact same style, "
            "design approach, and color scheme as shown in this reference image. "
            "Maintain the same visual consistency, line thickness, color palette, and overall "
            "aesthetic. "
        ]
        if theme and theme.strip():
            parts.append(f"General theme: {theme.strip()}. ")
        parts.append(
            "Each icon should be contained within its own square area of equal size. "
            "Image background should be transparent. "
        )

        valid = _clean(descriptions)
        if len(valid) >= icon_count:
            parts.append(
                "Create these specific icons in the reference style (arranged left to right, "
                f"top to bottom): {', '.join(valid[:icon_count])}. "
            )
        elif valid:
            parts.append(
                f"Include these specific icons: {', '.join(valid)}. "
                f"For the remaining {icon_count - len(valid)} positions, create complementary "
                "icons that match the style and would logically fit together. "
            )
        else:
            parts.append(
                f"Create {icon_count} different icons that match the style and theme suggested "
                "by the reference image. Each icon should be distinct and clearly separated "
                "from others. "
            )

        avoid = _clean(icons_to_avoid)
        if avoid:
            parts.append(_AVOID_TEMPLATE.format(icons=", ".join(avoid)))

        parts.append(_REFERENCE_CLOSING.format(side=side))
        parts.append("Ensure all new icons blend seamlessly with the style shown in the reference image.")
        return "".join(parts)

    def missing_icons_prompt(
        self,
        descriptions: Sequence[str] | None = None,
        *,
        icon_count: int = 9,
    ) -> str:
        """Prompt for a follow-up grid matching an earlier grid's style."""
        side = grid_side(icon_count)
        parts = [
            f"Generate {side}x{side} icon grid in the exact same style, design, and color scheme "
            "as shown in this reference image. Maintain the same visual consistency, line "
            "thickness, color palette, and overall aesthetic. "
        ]

        valid = _clean(descriptions)
        if valid:
            parts.append(f"But use these specific icons instead: {', '.join(valid)}. ")
            if len(valid) < icon_count:
                parts.append(
                    f"For the remaining {icon_count - len(valid)} positions, create icons that "
                    "complement the specified ones and fit the general theme. "
                )

        parts.append(_REFERENCE_CLOSING.format(side=side))
        parts.append(
            "Each icon should be contained within its own square area of equal size. "
            "The background should match the reference image background. "
            "Ensure the new icons blend seamlessly with the style shown in the reference image."
        )
        return "".join(parts)

    @staticmethod
    def with_variation(theme: str) -> str:
        """Theme text for a second-round variation grid."""
        return theme + SECOND_GENERATION_VARIATION
