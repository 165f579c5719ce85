"""Tests for frame removal, icon centering, and the background hook."""

from __future__ import annotations

from PIL import Image, ImageDraw

from iconforge.core.imaging.background import apply_background_removal, has_transparent_border
from iconforge.core.imaging.centering import center_icon, content_bounds
from iconforge.core.imaging.frame import detect_frame, remove_solid_frame


def _framed(size: int = 200, thickness: int = 3) -> Image.Image:
    img = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    for i in range(thickness):
        draw.rectangle([i, i, size - 1 - i, size - 1 - i], outline=(20, 20, 20, 255))
    return img


class TestFrameRemoval:
    def test_detects_uniform_frame(self) -> None:
        frame = detect_frame(_framed(thickness=3))
        assert (frame.top, frame.bottom, frame.left, frame.right) == (3, 3, 3, 3)

    def test_removes_uniform_frame(self) -> None:
        result = remove_solid_frame(_framed(thickness=3))
        assert result.size == (194, 194)

    def test_no_frame_unchanged(self) -> None:
        img = Image.new("RGBA", (200, 200), (0, 0, 0, 0))
        assert remove_solid_frame(img) is img

    def test_white_border_is_not_a_frame(self) -> None:
        img = Image.new("RGBA", (200, 200), (255, 255, 255, 255))
        assert remove_solid_frame(img) is img

    def test_small_image_skipped(self) -> None:
        img = _framed(size=40, thickness=2)
        assert remove_solid_frame(img) is img

    def test_inconsistent_edges_skipped(self) -> None:
        img = Image.new("RGBA", (200, 200), (0, 0, 0, 0))
        draw = ImageDraw.Draw(img)
        draw.rectangle([0, 0, 199, 4], fill=(20, 20, 20, 255))  # 5px top bar only
        assert remove_solid_frame(img) is img

    def test_fully_solid_image_cropped_by_max_depth(self) -> None:
        img = Image.new("RGBA", (200, 200), (10, 10, 10, 255))
        assert remove_solid_frame(img).size == (190, 190)


class TestCentering:
    def test_content_bounds_ignores_transparent_and_white(self) -> None:
        img = Image.new("RGBA", (100, 100), (255, 255, 255, 255))
        ImageDraw.Draw(img).rectangle([10, 20, 29, 49], fill=(200, 0, 0, 255))
        assert content_bounds(img) == (10, 20, 30, 50)

    def test_empty_image_has_no_bounds(self) -> None:
        assert content_bounds(Image.new("RGBA", (50, 50), (0, 0, 0, 0))) is None

    def test_center_small_content_keeps_size(self) -> None:
        img = Image.new("RGBA", (100, 100), (0, 0, 0, 0))
        ImageDraw.Draw(img).rectangle([0, 0, 19, 19], fill=(0, 0, 255, 255))

        centered = center_icon(img, 100)

        assert centered.size == (100, 100)
        assert content_bounds(centered) == (40, 40, 60, 60)

    def test_center_large_content_scaled_to_ratio(self) -> None:
        img = Image.new("RGBA", (300, 300), (0, 0, 255, 255))
        centered = center_icon(img, 100, content_ratio=0.9)
        box = content_bounds(centered)
        assert box is not None
        assert box[2] - box[0] <= 90

    def test_center_without_content_returns_input(self) -> None:
        img = Image.new("RGBA", (50, 50), (0, 0, 0, 0))
        assert center_icon(img, 100) is img


class TestBackgroundHook:
    def test_transparent_border_detected(self) -> None:
        assert has_transparent_border(Image.new("RGBA", (100, 100), (0, 0, 0, 0)))

    def test_opaque_border_detected(self) -> None:
        assert not has_transparent_border(Image.new("RGBA", (100, 100), (255, 255, 255, 255)))

    def test_small_images_never_transparent(self) -> None:
        assert not has_transparent_border(Image.new("RGBA", (20, 20), (0, 0, 0, 0)))

    def test_remover_skipped_for_transparent_border(self) -> None:
        img = Image.new("RGBA", (100, 100), (0, 0, 0, 0))

        def remover(image: Image.Image) -> Image.Image:
            raise AssertionError("should not be called")

        assert apply_background_removal(img, remover) is img

    def test_no_remover(self) -> None:
        img = Image.new("RGBA", (100, 100), (255, 255, 255, 255))
        assert apply_background_removal(img, None) is img
