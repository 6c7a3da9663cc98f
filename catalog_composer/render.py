"""
Base render module for the catalog compositing engine.

This module handles:
- Drawing one source photo contain-fit into the square working canvas
- Sealing cutout pinholes over the drawn region
- Resolving the device bounds used by this render (own, merged or supplied)
- Drawing the product's overlay effect inside those bounds
"""

from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from PIL import Image
from loguru import logger

from .assets import AssetLibrary
from .bounds import (
    FULL_BOUNDS, BoundsAccumulator, NormalizedBounds,
    compute_alpha_bounds, merge, normalize, place_bounds,
)
from .catalog import CrackPoint, FillOverlay, IconOverlay, ProductSpec
from .config import AppConfig, get_config
from .geometry import Rect, fit_rect, relative_to_absolute
from .refine import refine_alpha
from .surface import RasterSurface
from .utils import timed


@dataclass
class RenderResult:
    """A finished base canvas plus the bounds it was laid out with."""
    surface: RasterSurface
    bounds: NormalizedBounds  # relative to the drawn image
    draw_rect: Rect           # where the source landed on the surface
    published: bool = False
    blank: bool = False


class BaseRenderer:
    """Renders the 'effect' panel for a product."""

    def __init__(self, config: Optional[AppConfig] = None, assets: Optional[AssetLibrary] = None):
        self.config = config or get_config()
        self.assets = assets or AssetLibrary(self.config.ASSETS_DIR)
        self.canvas_size = self.config.CANVAS_SIZE

    def render_base(self,
                    source: Optional[Image.Image],
                    product: ProductSpec,
                    prior_bounds: Optional[NormalizedBounds] = None,
                    accumulator: Optional[BoundsAccumulator] = None,
                    fixed_bounds: Optional[NormalizedBounds] = None,
                    cancel: Optional[Callable[[], bool]] = None) -> RenderResult:
        """
        Draw `source` into a fresh canvas and apply the product overlay.

        A None source (failed decode) yields a blank canvas. Device products
        merge their detected bounds with `prior_bounds` and publish the union
        to `accumulator`; products built from a part photo never publish.
        """
        size = self.canvas_size
        surface = RasterSurface(size, size)

        if source is None:
            logger.warning(f"No source image for {product.id}, rendering blank canvas")
            return RenderResult(surface, FULL_BOUNDS, Rect(0, 0, size, size), blank=True)

        with timed(f"render_base[{product.id}]"):
            draw_rect = fit_rect(source.width, source.height, size, size, 'contain')
            covered = surface.draw_scaled(source, draw_rect, blur=self.config.BASE_DRAW_BLUR)

            refine_alpha(surface,
                         int(covered.x), int(covered.y), int(covered.width), int(covered.height),
                         radius=self.config.REFINE_RADIUS,
                         boost=self.config.REFINE_BOOST)

            active, published = self._resolve_bounds(
                surface, covered, product, prior_bounds, accumulator, fixed_bounds, cancel
            )

            if product.overlay is not None:
                self.draw_overlay(surface, place_bounds(active, covered), product.overlay)

        logger.info(f"Rendered base for {product.id}: bounds={active}, published={published}")
        return RenderResult(surface, active, covered, published=published)

    def _resolve_bounds(self,
                        surface: RasterSurface,
                        covered: Rect,
                        product: ProductSpec,
                        prior_bounds: Optional[NormalizedBounds],
                        accumulator: Optional[BoundsAccumulator],
                        fixed_bounds: Optional[NormalizedBounds],
                        cancel: Optional[Callable[[], bool]]) -> Tuple[NormalizedBounds, bool]:
        if fixed_bounds is not None:
            return fixed_bounds, False

        detected = compute_alpha_bounds(
            surface.read_pixels(covered),
            threshold=self.config.ALPHA_THRESHOLD,
            padding=self.config.ALPHA_BOUNDS_PADDING_PX,
            cancel=cancel,
        )

        if product.needs_part_image:
            # The part photo's own cutout must not distort the shared device crop
            if detected is None:
                return FULL_BOUNDS, False
            return normalize(detected, int(covered.width), int(covered.height)), False

        if prior_bounds is None and accumulator is not None:
            prior_bounds = accumulator.current

        if detected is None:
            logger.warning(f"No content bounds found for {product.id}, using "
                           f"{'batch bounds' if prior_bounds else 'full image'}")
            return prior_bounds or FULL_BOUNDS, False

        merged = merge(prior_bounds, normalize(detected, int(covered.width), int(covered.height)))
        if accumulator is not None:
            merged = accumulator.publish(merged)
        return merged, True

    def draw_overlay(self, surface: RasterSurface, content_rect: Rect, overlay) -> None:
        """Draw a fill/decal or icon overlay clipped to its area."""
        area_spec = overlay.area
        area = relative_to_absolute(
            Rect(area_spec.x, area_spec.y, area_spec.width, area_spec.height), content_rect
        )
        if area.is_empty:
            logger.warning("Overlay area is empty, skipping overlay")
            return

        with surface.clip_rect(area):
            if isinstance(overlay, FillOverlay):
                if overlay.fill_color:
                    surface.fill_rect(area, overlay.fill_color)

                if overlay.decals:
                    decal = self.assets.try_load(overlay.decal_image)
                    if decal is not None:
                        for point in overlay.decals:
                            self._stamp_decal(surface, decal, area, point)

            elif isinstance(overlay, IconOverlay):
                icon = self.assets.try_load(overlay.image)
                if icon is not None:
                    width = area.width * overlay.width_ratio
                    height = width * icon.height / icon.width
                    rect = Rect(area.center_x - width / 2, area.center_y - height / 2, width, height)
                    surface.draw_scaled(icon, rect, blur=self.config.BASE_DRAW_BLUR)

        logger.debug(f"Drew {overlay.kind} overlay in {area}")

    def _stamp_decal(self, surface: RasterSurface, decal: Image.Image, area: Rect, point: CrackPoint) -> None:
        width = point.size * area.width
        height = width * decal.height / decal.width
        center_x = area.x + point.x * area.width
        center_y = area.y + point.y * area.height
        rect = Rect(center_x - width / 2, center_y - height / 2, width, height)
        # Circle mask avoids square edges from the decal's background
        surface.draw_scaled(decal, rect, blur=self.config.BASE_DRAW_BLUR, circle=True)


def create_base_renderer(config: Optional[AppConfig] = None,
                         assets: Optional[AssetLibrary] = None) -> BaseRenderer:
    """Factory function to create a BaseRenderer instance."""
    return BaseRenderer(config, assets)
