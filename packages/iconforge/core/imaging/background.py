"""Background removal hook."""

from __future__ import annotations

from collections.abc import Callable
import logging

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

# Pluggable remover (e.g. an external matting service); receives and returns RGBA
BackgroundRemover = Callable[[Image.Image], Image.Image]

_MIN_CHECK_SIZE = 50
_ALPHA_THRESHOLD = 10
_MAX_OPAQUE_RATIO = 0.10


def has_transparent_border(image: Image.Image) -> bool:
    """Heuristic: is the background already transparent?

    Samples about 20 pixels per edge. Images under 50 px are never treated as
    transparent.
    """
    width, height = image.size
    if width < _MIN_CHECK_SIZE or height < _MIN_CHECK_SIZE:
        return False

    alpha = np.asarray(image.convert("RGBA"))[..., 3]
    step = max(1, min(width, height) // 20)
    samples = np.concatenate(
        [
            alpha[0, ::step],
            alpha[height - 1, ::step],
            alpha[1 : height - 1 : step, 0],
            alpha[1 : height - 1 : step, width - 1],
        ]
    )
    opaque_ratio = float((samples > _ALPHA_THRESHOLD).mean())
    logger.debug(f"Border transparency check: {opaque_ratio:.2f} opaque")
    return opaque_ratio < _MAX_OPAQUE_RATIO


def apply_background_removal(image: Image.Image, remover: BackgroundRemover | None) -> Image.Image:
    """Run ``remover`` unless absent or the border is already transparent."""
    if remover is None or has_transparent_border(image):
        return image
    return remover(image.convert("RGBA"))
