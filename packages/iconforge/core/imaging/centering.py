"""Re-center icon content on a square transparent canvas."""

from __future__ import annotations

import numpy as np
from PIL import Image

Box = tuple[int, int, int, int]


def _bounds(mask: np.ndarray) -> Box | None:
    rows = np.flatnonzero(mask.any(axis=1))
    cols = np.flatnonzero(mask.any(axis=0))
    if rows.size == 0 or cols.size == 0:
        return None
    return int(cols[0]), int(rows[0]), int(cols[-1]) + 1, int(rows[-1]) + 1


def content_bounds(image: Image.Image) -> Box | None:
    """Bounding box (left, top, right, bottom) of non-background content.

    Background is near-transparent (alpha < 10) or near-white (RGB > 240).
    A looser second pass (alpha < 5, RGB > 245) runs when the first finds
    nothing. Returns None for an empty image.
    """
    pixels = np.asarray(image.convert("RGBA"))
    alpha = pixels[..., 3]
    rgb = pixels[..., :3]

    has_alpha = image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info
    visible = alpha >= 10 if has_alpha else np.ones(alpha.shape, dtype=bool)
    mask = visible & ~np.all(rgb > 240, axis=-1)
    box = _bounds(mask)
    if box is not None:
        return box

    return _bounds((alpha >= 5) & ~np.all(rgb > 245, axis=-1))


def center_icon(image: Image.Image, size: int, content_ratio: float = 0.9) -> Image.Image:
    """Crop to content and paste it centered on a ``size``x``size`` canvas.

    Content larger than ``content_ratio`` of the canvas is scaled down; smaller
    content keeps its pixel size. Images without detectable content are
    returned unchanged.

    Args:
        image: Cell image
        size: Canvas edge in pixels
        content_ratio: Maximum content extent relative to the canvas

    Returns:
        Centered RGBA image (or ``image`` if it has no content)
    """
    box = content_bounds(image)
    if box is None:
        return image

    content = image.convert("RGBA").crop(box)
    max_extent = size * content_ratio
    width, height = content.size
    if width > max_extent or height > max_extent:
        scale = min(max_extent / width, max_extent / height)
        content = content.resize(
            (max(1, int(width * scale)), max(1, int(height * scale))),
            Image.Resampling.LANCZOS,
        )

    canvas = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    offset = ((size - content.width) // 2, (size - content.height) // 2)
    canvas.paste(content, offset, content)
    return canvas
