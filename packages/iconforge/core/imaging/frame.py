"""Detection and removal of thin solid frames around composite images.

Image-to-image generations sometimes come back with a 1-5 px coloured border
around the whole grid. Left in place it shifts every cell boundary and shows
up as a stripe on the outer icons.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

MIN_FRAME_IMAGE_SIZE = 50
MAX_FRAME_THICKNESS = 5
MAX_EDGE_DISAGREEMENT = 2
SOLID_LINE_RATIO = 0.8
_SAMPLES_PER_LINE = 50
_ALPHA_FLOOR = 10
_WHITE_FLOOR = 250
_MIN_RESULT_SIZE = 10


@dataclass(frozen=True)
class FrameThickness:
    """Detected solid-line thickness per edge, in pixels."""

    top: int
    bottom: int
    left: int
    right: int

    @property
    def max(self) -> int:
        return max(self.top, self.bottom, self.left, self.right)

    @property
    def min(self) -> int:
        return min(self.top, self.bottom, self.left, self.right)


def _solid_mask(pixels: np.ndarray) -> np.ndarray:
    """Pixels that are visible and not near-white."""
    alpha = pixels[..., 3]
    rgb = pixels[..., :3]
    white = np.all(rgb >= _WHITE_FLOOR, axis=-1)
    return (alpha > _ALPHA_FLOOR) & ~white


def _edge_thickness(lines: list[np.ndarray]) -> int:
    """Count consecutive predominantly-solid lines starting at an edge."""
    for depth, line in enumerate(lines):
        if line.size == 0 or line.mean() < SOLID_LINE_RATIO:
            return depth
    return len(lines)


def detect_frame(image: Image.Image) -> FrameThickness:
    """Measure solid-line thickness on each edge of ``image``."""
    pixels = np.asarray(image.convert("RGBA"))
    height, width = pixels.shape[:2]
    solid = _solid_mask(pixels)
    max_depth = min(MAX_FRAME_THICKNESS, min(width, height) // 10)

    x_step = max(1, width // _SAMPLES_PER_LINE)
    y_step = max(1, height // _SAMPLES_PER_LINE)
    depths = range(max_depth)

    return FrameThickness(
        top=_edge_thickness([solid[d, ::x_step] for d in depths]),
        bottom=_edge_thickness([solid[height - 1 - d, ::x_step] for d in depths]),
        left=_edge_thickness([solid[::y_step, d] for d in depths]),
        right=_edge_thickness([solid[::y_step, width - 1 - d] for d in depths]),
    )


def remove_solid_frame(image: Image.Image) -> Image.Image:
    """Crop a consistent thin frame off all four edges.

    Returns the input image unchanged when it is too small, when no frame is
    found, when edges disagree by more than 2 px, or when the crop would
    leave 10 px or less.
    """
    width, height = image.size
    if width < MIN_FRAME_IMAGE_SIZE or height < MIN_FRAME_IMAGE_SIZE:
        return image

    frame = detect_frame(image)
    if frame.max == 0:
        return image

    if frame.max > MAX_FRAME_THICKNESS or frame.max - frame.min > MAX_EDGE_DISAGREEMENT:
        logger.debug(f"Inconsistent frame {frame}, skipping removal")
        return image

    crop = max(1, frame.min)
    new_width = width - 2 * crop
    new_height = height - 2 * crop
    if new_width <= _MIN_RESULT_SIZE or new_height <= _MIN_RESULT_SIZE:
        return image

    logger.debug(f"Removing {crop}px solid frame ({frame})")
    return image.crop((crop, crop, width - crop, height - crop))
