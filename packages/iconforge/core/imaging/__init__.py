"""Composite image decomposition."""

from iconforge.core.imaging.background import BackgroundRemover, has_transparent_border
from iconforge.core.imaging.centering import center_icon, content_bounds
from iconforge.core.imaging.frame import FrameThickness, detect_frame, remove_solid_frame
from iconforge.core.imaging.grid import GridDecomposer, cell_boxes, decode_image, grid_side

__all__ = [
    "BackgroundRemover",
    "FrameThickness",
    "GridDecomposer",
    "cell_boxes",
    "center_icon",
    "content_bounds",
    "decode_image",
    "detect_frame",
    "grid_side",
    "has_transparent_border",
    "remove_solid_frame",
]
