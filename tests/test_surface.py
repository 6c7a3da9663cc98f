"""
Unit tests for decoding and the raster surface.
"""

import numpy as np
import pytest
from PIL import Image

from catalog_composer.errors import CanvasUnavailableError, DecodeFailureError
from catalog_composer.geometry import Rect
from catalog_composer.surface import RasterSurface, decode_image, safe_decode, scale_image


class TestDecoding:
    """Test image decoding."""

    def test_decode_png_to_rgba(self, png):
        image = decode_image(png(Image.new('RGB', (30, 20), (1, 2, 3))))

        assert image.mode == 'RGBA'
        assert image.size == (30, 20)

    def test_corrupt_bytes_raise(self):
        with pytest.raises(DecodeFailureError) as exc_info:
            decode_image(b"definitely not an image", "broken.jpg")

        assert exc_info.value.details['source'] == "broken.jpg"

    def test_empty_bytes_raise(self):
        with pytest.raises(DecodeFailureError):
            decode_image(b"")

    def test_safe_decode_returns_none(self):
        assert safe_decode(b"garbage") is None
        assert safe_decode(None) is None


class TestRasterSurface:
    """Test drawing, clipping and pixel access."""

    def test_invalid_size_is_canvas_unavailable(self):
        with pytest.raises(CanvasUnavailableError):
            RasterSurface(-1, 10)

    def test_fill_color(self):
        surface = RasterSurface(4, 4, "#ffffff")
        assert surface.read_pixels()[0, 0].tolist() == [255, 255, 255, 255]

    def test_draw_scaled_covers_rect(self):
        surface = RasterSurface(100, 100)
        source = Image.new('RGBA', (10, 10), (255, 0, 0, 255))

        covered = surface.draw_scaled(source, Rect(10.2, 20.4, 50, 30))

        assert covered == Rect(10, 20, 50, 30)
        pixels = surface.read_pixels()
        assert pixels[35, 35].tolist() == [255, 0, 0, 255]
        assert pixels[5, 5, 3] == 0

    def test_draw_scaled_with_src_box(self):
        source = Image.new('RGBA', (20, 10), (0, 0, 255, 255))
        source.paste((0, 255, 0, 255), (10, 0, 20, 10))
        surface = RasterSurface(40, 40)

        surface.draw_scaled(source, Rect(0, 0, 40, 40), src_box=(10, 0, 20, 10))

        assert surface.read_pixels()[20, 20].tolist() == [0, 255, 0, 255]

    def test_clip_limits_fill(self):
        surface = RasterSurface(50, 50)

        with surface.clip_rect(Rect(10, 10, 10, 10)):
            surface.fill_rect(Rect(0, 0, 50, 50), "#000")

        alpha = surface.read_pixels()[..., 3]
        assert alpha[15, 15] == 255
        assert alpha[5, 5] == 0
        assert alpha[25, 25] == 0
        assert surface.current_clip is None

    def test_nested_clips_intersect(self):
        surface = RasterSurface(50, 50)

        with surface.clip_rect(Rect(0, 0, 30, 30)):
            with surface.clip_rect(Rect(20, 20, 30, 30)):
                assert surface.current_clip == Rect(20, 20, 10, 10)
                surface.fill_rect(surface.bounds, (0, 0, 0))

        alpha = surface.read_pixels()[..., 3]
        assert alpha[25, 25] == 255
        assert alpha[35, 35] == 0
        assert alpha[10, 10] == 0

    def test_circle_draw_masks_corners(self):
        surface = RasterSurface(40, 40)
        source = Image.new('RGBA', (40, 40), (0, 0, 255, 255))

        surface.draw_scaled(source, Rect(0, 0, 40, 40), circle=True)

        alpha = surface.read_pixels()[..., 3]
        assert alpha[20, 20] == 255
        assert alpha[1, 1] == 0

    def test_write_then_read_pixels(self):
        surface = RasterSurface(10, 10)
        patch = np.full((3, 4, 4), 77, dtype=np.uint8)

        surface.write_pixels(patch, 2, 5)

        np.testing.assert_array_equal(surface.read_pixels(Rect(2, 5, 4, 3)), patch)

    def test_png_encoding(self):
        data = RasterSurface(8, 8, "#ffffff").to_png_bytes()
        assert data.startswith(b"\x89PNG")

    def test_scale_image_exact_size(self):
        resized = scale_image(Image.new('RGB', (7, 3)), (21, 9), blur=0.15)
        assert resized.size == (21, 9)
        assert resized.mode == 'RGBA'
