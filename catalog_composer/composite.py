"""
Composite module for the catalog compositing engine.

This module handles:
- Preparing the left panel, reference photo and film overlay for layout
- Drawing planned layout elements onto the final 800x800 canvas
- Drawing the SKU label with automatic font-size shrinking
- Encoding and saving finished composites
"""

import os
from typing import Dict, List, Optional, Tuple

from PIL import Image, ImageFont
from loguru import logger

from .assets import AssetLibrary
from .bounds import (
    ALPHA_MODE, NormalizedBounds, compute_white_bg_bounds,
    denormalize, place_bounds, require_content_bounds,
)
from .catalog import BadgeSpec, ProductSpec, SideBySideLayout, SingleCenteredLayout
from .config import AppConfig, get_config
from .errors import BoundsNotFoundError, CanvasUnavailableError
from .layout import LayoutElement, LayoutEngine, create_layout_engine, fit_font_size
from .render import RenderResult
from .surface import RasterSurface
from .utils import timed


DEFAULT_FONT = "DejaVuSans.ttf"


class CompositeEngine:
    """Main composite engine class."""

    def __init__(self,
                 config: Optional[AppConfig] = None,
                 assets: Optional[AssetLibrary] = None,
                 layout_engine: Optional[LayoutEngine] = None):
        self.config = config or get_config()
        self.assets = assets or AssetLibrary(self.config.ASSETS_DIR)
        self.layout_engine = layout_engine or create_layout_engine(self.config)
        self.canvas_size = self.config.CANVAS_SIZE
        self._font_cache: Dict[int, ImageFont.ImageFont] = {}

    def create_canvas(self) -> RasterSurface:
        """Create the white output canvas."""
        canvas = RasterSurface(self.canvas_size, self.canvas_size, self.config.BACKGROUND_COLOR)
        logger.debug(f"Created canvas: {canvas.size} with background {self.config.BACKGROUND_COLOR}")
        return canvas

    def compose(self,
                product: ProductSpec,
                base: RenderResult,
                reference: Optional[Image.Image] = None,
                active_bounds: Optional[NormalizedBounds] = None,
                sku_text: Optional[str] = None,
                reference_bounds: Optional[NormalizedBounds] = None) -> RasterSurface:
        """
        Lay out a rendered base (and reference photo) on the final canvas.

        `active_bounds` defaults to the bounds the base was rendered with and
        selects the left/subject crop. `reference_bounds` selects the crop of
        the reference photo; without it the reference's own alpha bounds are used.
        Never raises for a single broken element; if the output canvas cannot be
        allocated the base surface is returned as the best partial result.
        """
        try:
            canvas = self.create_canvas()
        except CanvasUnavailableError as e:
            logger.error(f"{e.message}, returning base canvas for {product.id}")
            return base.surface

        active = active_bounds or base.bounds
        layout = product.layout

        with timed(f"compose[{product.id}]"):
            if isinstance(layout, SingleCenteredLayout):
                elements = self._plan_single_centered(layout, base, active)
            else:
                elements = self._plan_side_by_side(layout, base, active, reference, reference_bounds)

            self.composite_elements(canvas, elements)

            if sku_text:
                self.draw_sku(canvas, sku_text)

        logger.info(f"Composed {product.id} ({layout.type}, {len(elements)} elements)")
        return canvas

    # Source preparation

    def left_source(self,
                    base: RenderResult,
                    active: NormalizedBounds,
                    white_crop: bool = False) -> Optional[Image.Image]:
        """The base canvas cut down to the active bounds, optionally white-cropped."""
        if base.blank:
            return None

        rect = place_bounds(active, base.draw_rect).intersect(base.surface.bounds)
        if rect.is_empty:
            logger.warning("Active bounds fall outside the base canvas, omitting left panel")
            return None

        image = base.surface.crop(rect)

        if white_crop:
            tight = compute_white_bg_bounds(
                image,
                threshold=self.config.LEFT_WHITE_CROP_THRESHOLD,
                padding=self.config.LEFT_WHITE_CROP_PADDING_PX,
            )
            if tight is not None:
                image = image.crop(tight.to_box())
            else:
                logger.debug("White crop found no content, keeping left panel as is")

        return image

    def reference_source(self,
                         reference: Optional[Image.Image],
                         reference_bounds: Optional[NormalizedBounds] = None) -> Optional[Image.Image]:
        """Crop the reference photo to the device bounds."""
        if reference is None:
            return None

        if reference_bounds is not None:
            box = denormalize(reference_bounds, reference.width, reference.height)
            return reference.crop(box.to_box())

        try:
            detected = require_content_bounds(reference, ALPHA_MODE, self.config.ALPHA_THRESHOLD)
        except BoundsNotFoundError as e:
            logger.warning(f"{e.message} on reference photo, using full image")
            return reference
        return reference.crop(detected.to_box())

    def film_source(self, layout: SingleCenteredLayout) -> Optional[Image.Image]:
        """Load the film piece and trim it to its opaque bezel."""
        film = self.assets.try_load(layout.film.image)
        if film is None:
            return None

        threshold = layout.film.alpha_threshold
        if threshold is None:
            threshold = self.config.FILM_ALPHA_THRESHOLD

        try:
            bounds = require_content_bounds(film, ALPHA_MODE, threshold)
        except BoundsNotFoundError as e:
            logger.warning(f"{e.message} on film {layout.film.image}, using full image")
            return film
        return film.crop(bounds.to_box())

    def load_badges(self, badges: List[BadgeSpec]) -> List[Tuple[BadgeSpec, Image.Image]]:
        """Pair each badge with its image; missing badges are dropped."""
        loaded = []
        for badge in badges:
            image = self.assets.try_load(badge.src)
            if image is not None:
                loaded.append((badge, image))
        return loaded

    # Planning

    def _plan_side_by_side(self,
                           layout: SideBySideLayout,
                           base: RenderResult,
                           active: NormalizedBounds,
                           reference: Optional[Image.Image],
                           reference_bounds: Optional[NormalizedBounds]) -> List[LayoutElement]:
        left = self.left_source(base, active, white_crop=layout.left_white_crop)
        right = self.reference_source(reference, reference_bounds)
        return self.layout_engine.plan_side_by_side(
            layout,
            left,
            right,
            badges=self.load_badges(layout.badges),
            center_badges=self.load_badges(layout.center_badges),
        )

    def _plan_single_centered(self,
                              layout: SingleCenteredLayout,
                              base: RenderResult,
                              active: NormalizedBounds) -> List[LayoutElement]:
        subject = self.left_source(base, active)
        film = self.film_source(layout) if layout.film is not None and subject is not None else None
        return self.layout_engine.plan_single_centered(
            layout,
            subject,
            film=film,
            edge_badges=self.load_badges(layout.edge_badges),
        )

    # Drawing

    def composite_elements(self, canvas: RasterSurface, elements: List[LayoutElement]) -> RasterSurface:
        """
        Draw all layout elements onto the canvas.

        Elements should be pre-sorted by z-index.
        """
        logger.debug(f"Compositing {len(elements)} elements onto {canvas.size} canvas")

        for i, element in enumerate(elements):
            try:
                self._composite_element(canvas, element)
                logger.debug(f"Composited element {i + 1}/{len(elements)}: {element.element_type}")
            except Exception as e:
                logger.error(f"Failed to composite element {element.element_type}: {e}")
                continue

        return canvas

    def _composite_element(self, canvas: RasterSurface, element: LayoutElement) -> None:
        if element.element_type == 'divider':
            canvas.fill_rect(element.dest, element.color)
            return

        if element.image is None:
            logger.warning(f"Element {element.element_type} has no image, skipping")
            return

        canvas.draw_scaled(element.image, element.dest,
                           src_box=element.src_box,
                           blur=self.config.COMPOSE_DRAW_BLUR)

    def load_font(self, size: int):
        """TrueType font at `size`, falling back to Pillow's bundled font."""
        if size in self._font_cache:
            return self._font_cache[size]

        try:
            font = ImageFont.truetype(self.config.FONT_PATH or DEFAULT_FONT, size)
        except OSError:
            logger.debug(f"Font {self.config.FONT_PATH or DEFAULT_FONT} unavailable, using default font")
            font = ImageFont.load_default(size=size)

        self._font_cache[size] = font
        return font

    def measure_text(self, text: str, size: int) -> float:
        left, _, right, _ = self.load_font(size).getbbox(text)
        return right - left

    def draw_sku(self, canvas: RasterSurface, text: str) -> int:
        """Draw the SKU label top-center; returns the font size used."""
        max_width = self.canvas_size - 2 * self.config.SKU_MARGIN_PX
        size = fit_font_size(
            text,
            max_width,
            self.measure_text,
            max_size=self.config.SKU_MAX_FONT_PX,
            min_size=self.config.SKU_MIN_FONT_PX,
        )

        try:
            canvas.draw_text(text, self.canvas_size / 2, self.config.SKU_Y_RATIO * self.canvas_size,
                             self.load_font(size), self.config.SKU_COLOR)
        except Exception as e:
            logger.error(f"Failed to draw SKU label '{text}': {e}")

        logger.debug(f"Drew SKU '{text}' at {size}px")
        return size

    # Output

    def get_image_bytes(self, canvas: RasterSurface) -> bytes:
        """Encode a finished canvas as PNG."""
        return canvas.to_png_bytes()

    def save_image(self, canvas: RasterSurface, output_path: str) -> bool:
        """Save the final composite to disk."""
        try:
            directory = os.path.dirname(output_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

            with open(output_path, 'wb') as f:
                f.write(canvas.to_png_bytes())

            file_size = os.path.getsize(output_path)
            logger.info(f"Saved composite image: {output_path} ({file_size:,} bytes)")
            return True

        except OSError as e:
            logger.error(f"Failed to save image {output_path}: {e}")
            return False


def create_composite_engine(config: Optional[AppConfig] = None,
                            assets: Optional[AssetLibrary] = None) -> CompositeEngine:
    """Factory function to create a CompositeEngine instance."""
    return CompositeEngine(config, assets)
