"""
Tests for the base renderer: drawing, bounds publishing rules and overlays.
"""

import pytest
from PIL import Image

from catalog_composer.bounds import FULL_BOUNDS, BoundsAccumulator, NormalizedBounds
from catalog_composer.catalog import FillOverlay, IconOverlay, OverlayArea, ProductSpec
from catalog_composer.render import BaseRenderer, create_base_renderer


FULL_AREA = OverlayArea(x=0.0, y=0.0, width=1.0, height=1.0)


def _product(**kwargs) -> ProductSpec:
    values = {'id': 'test-product', 'title': 'Test product', 'category': 'screen'}
    values.update(kwargs)
    return ProductSpec(**values)


def _approx_bounds(bounds: NormalizedBounds, expected, tol=0.01):
    assert (bounds.x, bounds.y, bounds.width, bounds.height) == pytest.approx(expected, abs=tol)


@pytest.fixture
def renderer(config, assets) -> BaseRenderer:
    return create_base_renderer(config, assets)


class TestRenderBase:
    """Test drawing and bounds resolution."""

    def test_canvas_and_draw_rect(self, renderer, device_image):
        """Test contain-fit placement on the square canvas."""
        result = renderer.render_base(device_image, _product())

        assert result.surface.size == (800, 800)
        assert (result.draw_rect.x, result.draw_rect.width) == (200, 400)
        assert result.surface.read_pixels()[400, 400, 3] == 255
        assert result.surface.read_pixels()[400, 250, 3] == 0

    def test_device_render_publishes_bounds(self, renderer, device_image):
        """Test that device products publish their normalized bounds."""
        accumulator = BoundsAccumulator()

        result = renderer.render_base(device_image, _product(), accumulator=accumulator)

        assert result.published
        assert accumulator.publish_count == 1
        _approx_bounds(result.bounds, (0.25, 0.125, 0.5, 0.75))

    def test_later_render_uses_union(self, renderer, device_image, back_image):
        """Test that renders in one batch share the widened crop."""
        accumulator = BoundsAccumulator()
        front = renderer.render_base(device_image, _product(), accumulator=accumulator)

        back = renderer.render_base(back_image, _product(use_model_side='back'), accumulator=accumulator)

        assert back.bounds.contains(front.bounds)
        _approx_bounds(back.bounds, (0.2, 0.125, 0.6, 0.75))
        assert accumulator.current == back.bounds

    def test_prior_bounds_are_merged(self, renderer, device_image):
        prior = NormalizedBounds(0.0, 0.0, 0.1, 0.1)

        result = renderer.render_base(device_image, _product(), prior_bounds=prior)

        assert result.bounds.contains(prior)
        assert result.bounds.right == pytest.approx(0.75, abs=0.01)

    def test_accessory_never_publishes(self, renderer, white_logo_image):
        """Test that part photos keep their own bounds private."""
        accumulator = BoundsAccumulator()

        result = renderer.render_base(white_logo_image, _product(needs_part_image=True), accumulator=accumulator)

        assert not result.published
        assert accumulator.current is None
        assert result.bounds == FULL_BOUNDS

    def test_fixed_bounds_are_used_as_is(self, renderer, device_image):
        fixed = NormalizedBounds(0.1, 0.2, 0.3, 0.4)
        accumulator = BoundsAccumulator()

        result = renderer.render_base(device_image, _product(), accumulator=accumulator, fixed_bounds=fixed)

        assert result.bounds == fixed
        assert accumulator.publish_count == 0

    def test_missing_source_gives_blank_canvas(self, renderer):
        """Test that a failed decode resolves to a blank canvas."""
        result = renderer.render_base(None, _product())

        assert result.blank
        assert result.surface.size == (800, 800)
        assert result.surface.read_pixels()[..., 3].max() == 0

    def test_no_content_falls_back_to_batch_bounds(self, renderer):
        accumulator = BoundsAccumulator()
        accumulator.publish(NormalizedBounds(0.2, 0.2, 0.5, 0.5))
        empty = Image.new('RGBA', (300, 600), (0, 0, 0, 0))

        result = renderer.render_base(empty, _product(), accumulator=accumulator)

        assert result.bounds == NormalizedBounds(0.2, 0.2, 0.5, 0.5)
        assert not result.published
        assert accumulator.publish_count == 1

    def test_no_content_without_prior_uses_full_image(self, renderer):
        empty = Image.new('RGBA', (300, 600), (0, 0, 0, 0))

        assert renderer.render_base(empty, _product()).bounds == FULL_BOUNDS

    def test_pinholes_are_sealed(self, renderer):
        image = Image.new('RGBA', (800, 800), (0, 0, 0, 0))
        image.paste((10, 10, 10, 255), (200, 200, 600, 600))
        image.putpixel((400, 400), (10, 10, 10, 0))

        result = renderer.render_base(image, _product())

        assert result.surface.read_pixels()[400, 400, 3] > 240


class TestOverlays:
    """Test fill, decal and icon overlays."""

    def test_fill_is_clipped_to_area(self, renderer, device_image):
        product = _product(overlay=FillOverlay(area=FULL_AREA, fill_color='#000'))

        pixels = renderer.render_base(device_image, product).surface.read_pixels()

        assert pixels[400, 400].tolist() == [0, 0, 0, 255]
        assert pixels[400, 250, 3] == 0

    def test_fill_in_sub_area(self, renderer, device_image):
        area = OverlayArea(x=0.5, y=0.0, width=0.5, height=1.0)
        product = _product(overlay=FillOverlay(area=area, fill_color='#000'))

        pixels = renderer.render_base(device_image, product).surface.read_pixels()

        assert pixels[400, 450].tolist() == [0, 0, 0, 255]
        assert pixels[400, 350].tolist() == [200, 200, 200, 255]

    def test_decals_are_circle_clipped(self, renderer, device_image):
        product = _product(overlay=FillOverlay(
            area=FULL_AREA,
            fill_color='#000',
            decal_image='/assets/overlays/crack.png',
            decals=[{'x': 0.5, 'y': 0.5, 'size': 0.5}],
        ))

        pixels = renderer.render_base(device_image, product).surface.read_pixels()

        center = pixels[400, 400]
        assert center[2] > 200 and center[0] < 50
        assert pixels[352, 352].tolist() == [0, 0, 0, 255]

    def test_missing_decal_skips_only_the_decals(self, renderer, device_image):
        product = _product(overlay=FillOverlay(
            area=FULL_AREA,
            fill_color='#000',
            decal_image='/assets/overlays/missing.png',
            decals=[{'x': 0.5, 'y': 0.5, 'size': 0.5}],
        ))

        pixels = renderer.render_base(device_image, product).surface.read_pixels()

        assert pixels[400, 400].tolist() == [0, 0, 0, 255]

    def test_icon_is_centered(self, renderer, device_image):
        product = _product(overlay=IconOverlay(area=FULL_AREA, image='/assets/overlays/no-power.png'))

        pixels = renderer.render_base(device_image, product).surface.read_pixels()

        assert pixels[400, 400].tolist() == [255, 0, 0, 255]
        assert pixels[150, 400].tolist() == [200, 200, 200, 255]

    def test_missing_icon_leaves_device(self, renderer, device_image):
        product = _product(overlay=IconOverlay(area=FULL_AREA, image='/assets/overlays/missing.png'))

        pixels = renderer.render_base(device_image, product).surface.read_pixels()

        assert pixels[400, 400].tolist() == [200, 200, 200, 255]
