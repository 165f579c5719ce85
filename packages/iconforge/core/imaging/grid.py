"""Slice composite grid images into individual icons.

Cells are equal-sized by integer division; the remainder pixels of a
non-divisible image go to the last row and column, so a 1000x1000 image split
3x3 yields columns of 333, 333 and 334 px. Misaligned-but-complete output is
preferred over failing the whole attempt.
"""

from __future__ import annotations

import asyncio
from io import BytesIO
import logging
import math

from PIL import Image, UnidentifiedImageError

from iconforge.core.config.models import ImagingConfig
from iconforge.core.errors import DecompositionError
from iconforge.core.imaging.background import BackgroundRemover, apply_background_removal
from iconforge.core.imaging.centering import center_icon
from iconforge.core.imaging.frame import remove_solid_frame

logger = logging.getLogger(__name__)

Box = tuple[int, int, int, int]


def grid_side(cell_count: int) -> int:
    """Side length of a square grid holding ``cell_count`` cells.

    Raises:
        ValueError: If cell_count is not a positive perfect square
    """
    side = math.isqrt(cell_count) if cell_count > 0 else 0
    if side < 1 or side * side != cell_count:
        raise ValueError(f"icon_count must be a perfect square, got {cell_count}")
    return side


def cell_boxes(width: int, height: int, side: int) -> list[Box]:
    """Row-major (left, top, right, bottom) boxes for a ``side``x``side`` grid.

    Args:
        width: Image width in pixels
        height: Image height in pixels
        side: Cells per row and column

    Returns:
        ``side * side`` boxes covering the image exactly

    Example:
        >>> [b[2] - b[0] for b in cell_boxes(1000, 1000, 3)[:3]]
        [333, 333, 334]
    """
    cell_w = width // side
    cell_h = height // side

    def _span(index: int, cell: int, total: int) -> tuple[int, int]:
        start = index * cell
        end = total if index == side - 1 else start + cell
        return start, end

    boxes: list[Box] = []
    for row in range(side):
        top, bottom = _span(row, cell_h, height)
        for col in range(side):
            left, right = _span(col, cell_w, width)
            boxes.append((left, top, right, bottom))
    return boxes


def _trim(cell: Image.Image, margin: int) -> Image.Image:
    if margin <= 0 or cell.width <= 2 * margin or cell.height <= 2 * margin:
        return cell
    return cell.crop((margin, margin, cell.width - margin, cell.height - margin))


def _encode_png(image: Image.Image) -> bytes:
    buf = BytesIO()
    image.save(buf, "PNG")
    return buf.getvalue()


def decode_image(data: bytes) -> Image.Image:
    """Decode raw image bytes into a fully loaded RGBA image.

    Raises:
        DecompositionError: If the data is empty or not a decodable image
    """
    if not data:
        raise DecompositionError("Image data is empty")
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecompositionError(f"Unreadable image data ({len(data)} bytes): {e}") from e
    return image.convert("RGBA")


class GridDecomposer:
    """Deterministically slices a composite image into ``cell_count`` icons.

    Pipeline per composite: optional background removal, solid-frame removal,
    equal-cell crop, optional uniform margin trim, optional re-centering onto
    a square transparent canvas of ``icon_target_size``.

    Args:
        config: Imaging configuration
        background_remover: Optional background removal callable

    Example:
        >>> decomposer = GridDecomposer(ImagingConfig(center_icons=False))
        >>> icons = decomposer.decompose(png_bytes, 9)
        >>> len(icons)
        9
    """

    def __init__(
        self,
        config: ImagingConfig | None = None,
        *,
        background_remover: BackgroundRemover | None = None,
    ) -> None:
        self.config = config or ImagingConfig()
        self._background_remover = background_remover

    def decompose(
        self,
        data: bytes,
        cell_count: int,
        *,
        remove_background: bool = True,
    ) -> list[bytes]:
        """Slice ``data`` into ``cell_count`` PNG icons in row-major order.

        Args:
            data: Composite image bytes
            cell_count: Expected number of cells (a perfect square)
            remove_background: Run the configured background remover

        Returns:
            ``cell_count`` PNG payloads

        Raises:
            DecompositionError: On unreadable data, a non-square cell count,
                an image smaller than the grid, or a cell-count mismatch
        """
        try:
            side = grid_side(cell_count)
        except ValueError as e:
            raise DecompositionError(str(e)) from e

        image = decode_image(data)
        if remove_background:
            image = apply_background_removal(image, self._background_remover)
        if self.config.remove_frame:
            image = remove_solid_frame(image)

        width, height = image.size
        if width < side or height < side:
            raise DecompositionError(f"Image {width}x{height} is smaller than a {side}x{side} grid")
        if width % side or height % side:
            logger.debug(f"{width}x{height} not divisible by {side}; remainder goes to last row/col")

        icons: list[bytes] = []
        for box in cell_boxes(width, height, side):
            cell = _trim(image.crop(box), self.config.margin_trim_px)
            if self.config.center_icons:
                cell = center_icon(cell, self.config.icon_target_size, self.config.content_ratio)
            icons.append(_encode_png(cell))

        if len(icons) != cell_count:
            raise DecompositionError(f"Expected {cell_count} icons, produced {len(icons)}")

        return icons

    async def decompose_async(
        self,
        data: bytes,
        cell_count: int,
        *,
        remove_background: bool = True,
    ) -> list[bytes]:
        """Run :meth:`decompose` in a worker thread."""
        return await asyncio.to_thread(
            self.decompose, data, cell_count, remove_background=remove_background
        )
