"""
Raster surface module for the catalog compositing engine.

This module handles:
- Decoding raw image bytes into RGBA images
- Scaled, smoothed drawing of one image onto another
- Rectangular clipping for overlay effects
- Direct pixel access for detection and refinement passes
"""

import io
from contextlib import contextmanager
from typing import List, Optional, Tuple

import numpy as np
from PIL import Image, ImageChops, ImageDraw, ImageFilter, ImageOps, UnidentifiedImageError
from loguru import logger

from .errors import CanvasUnavailableError, DecodeFailureError
from .geometry import Rect
from .utils import ColorLike, parse_color


def decode_image(data: bytes, source: str = "<bytes>") -> Image.Image:
    """Decode JPEG/PNG/WebP bytes into an RGBA image."""
    if not data:
        raise DecodeFailureError(source, "empty input")

    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeFailureError(source, str(e))

    # Phone photos carry their rotation in EXIF
    image = ImageOps.exif_transpose(image)
    return image.convert('RGBA')


def safe_decode(data: Optional[bytes], source: str = "<bytes>") -> Optional[Image.Image]:
    """Decode image bytes, returning None instead of raising."""
    if data is None:
        return None
    try:
        return decode_image(data, source)
    except DecodeFailureError as e:
        logger.warning(f"{e.message} ({e.details.get('reason')})")
        return None


def scale_image(image: Image.Image,
                size: Tuple[int, int],
                src_box: Optional[Tuple[float, float, float, float]] = None,
                blur: float = 0.0) -> Image.Image:
    """
    Resample (a region of) an image to an exact size.

    Uses Lanczos resampling; a small premultiplied Gaussian blur softens
    the aliasing that background cutouts leave on hard edges.
    """
    if image.mode != 'RGBA':
        image = image.convert('RGBA')

    resized = image.resize(size, Image.Resampling.LANCZOS, box=src_box)

    if blur > 0:
        # Premultiply so transparent pixels do not bleed their RGB into edges
        resized = resized.convert('RGBa').filter(ImageFilter.GaussianBlur(blur)).convert('RGBA')

    return resized


class RasterSurface:
    """A fixed-size RGBA drawing surface owned by a single processing step."""

    def __init__(self, width: int, height: int, fill: ColorLike = (0, 0, 0, 0)):
        try:
            self.image = Image.new('RGBA', (int(width), int(height)), parse_color(fill))
        except (ValueError, MemoryError) as e:
            raise CanvasUnavailableError(width, height, str(e))
        self._clips: List[Rect] = []

    @classmethod
    def from_image(cls, image: Image.Image) -> "RasterSurface":
        surface = cls(image.width, image.height)
        surface.image = image.convert('RGBA').copy()
        return surface

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size

    @property
    def bounds(self) -> Rect:
        return Rect(0, 0, self.width, self.height)

    @property
    def current_clip(self) -> Optional[Rect]:
        return self._clips[-1] if self._clips else None

    @contextmanager
    def clip_rect(self, rect: Rect):
        """Restrict subsequent draws to `rect` (nested clips intersect)."""
        clip = rect if not self._clips else self._clips[-1].intersect(rect)
        self._clips.append(clip)
        try:
            yield self
        finally:
            self._clips.pop()

    def _clip_mask(self, clip: Rect) -> Image.Image:
        mask = Image.new('L', self.size, 0)
        visible = clip.intersect(self.bounds)
        if not visible.is_empty:
            box = (
                int(round(visible.x)),
                int(round(visible.y)),
                int(round(visible.right)),
                int(round(visible.bottom)),
            )
            mask.paste(255, box)
        return mask

    def _blend(self, layer: Image.Image) -> None:
        clip = self.current_clip
        if clip is not None:
            alpha = ImageChops.multiply(layer.getchannel('A'), self._clip_mask(clip))
            layer.putalpha(alpha)
        self.image = Image.alpha_composite(self.image, layer)

    def draw_scaled(self,
                    image: Image.Image,
                    rect: Rect,
                    src_box: Optional[Tuple[float, float, float, float]] = None,
                    blur: float = 0.0,
                    circle: bool = False) -> Rect:
        """
        Draw `image` (or its `src_box` region) scaled into `rect`.

        Parts falling outside the surface or the active clip are dropped.
        With `circle`, the drawn image is masked to its inscribed ellipse.
        Returns the integer rect actually covered.
        """
        left, top, right, bottom = rect.to_box()
        size = (right - left, bottom - top)
        drawn = scale_image(image, size, src_box=src_box, blur=blur)

        if circle:
            mask = Image.new('L', size, 0)
            ImageDraw.Draw(mask).ellipse((0, 0, size[0] - 1, size[1] - 1), fill=255)
            drawn.putalpha(ImageChops.multiply(drawn.getchannel('A'), mask))

        layer = Image.new('RGBA', self.size, (0, 0, 0, 0))
        layer.paste(drawn, (left, top))
        self._blend(layer)

        return Rect(left, top, size[0], size[1])

    def fill_rect(self, rect: Rect, color: ColorLike) -> None:
        """Fill a rectangle with a solid color, honouring the clip."""
        visible = rect.intersect(self.bounds)
        if visible.is_empty:
            return

        layer = Image.new('RGBA', self.size, (0, 0, 0, 0))
        box = (
            int(round(visible.x)),
            int(round(visible.y)),
            int(round(visible.right)),
            int(round(visible.bottom)),
        )
        layer.paste(parse_color(color), box)
        self._blend(layer)

    def draw_text(self, text: str, center_x: float, center_y: float, font, color: ColorLike) -> Rect:
        """Draw text centered on a point; returns the covered rect."""
        layer = Image.new('RGBA', self.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
        x = center_x - (left + right) / 2
        y = center_y - (top + bottom) / 2
        draw.text((x, y), text, font=font, fill=parse_color(color))
        self._blend(layer)
        return Rect(x + left, y + top, right - left, bottom - top)

    def read_pixels(self, rect: Optional[Rect] = None) -> np.ndarray:
        """Copy of the RGBA pixels in `rect` (whole surface by default), shape (h, w, 4)."""
        if rect is None:
            return np.array(self.image)
        return np.array(self.image.crop(rect.to_box()))

    def write_pixels(self, pixels: np.ndarray, x: int, y: int) -> None:
        """Replace pixels at (x, y) without blending."""
        patch = Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8))
        self.image.paste(patch, (int(x), int(y)))

    def crop(self, rect: Rect) -> Image.Image:
        return self.image.crop(rect.to_box())

    def to_png_bytes(self) -> bytes:
        buffer = io.BytesIO()
        self.image.save(buffer, format='PNG', compress_level=6)
        return buffer.getvalue()
