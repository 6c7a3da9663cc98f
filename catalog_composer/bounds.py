"""
Content bounds module for the catalog compositing engine.

This module handles:
- Detecting the tight box of content pixels (alpha or white-background mode)
- Converting pixel boxes to 0..1 boxes relative to their own image and back
- Merging several normalized boxes so repeated renders share one crop
"""

from dataclasses import dataclass
from typing import Callable, Optional, Union

import numpy as np
from PIL import Image
from loguru import logger

from .errors import BatchCancelledError, BoundsNotFoundError
from .geometry import Rect, absolute_to_relative, relative_to_absolute


ALPHA_MODE = 'alpha'
WHITE_MODE = 'white'

DEFAULT_ALPHA_THRESHOLD = 10
DEFAULT_WHITE_THRESHOLD = 248

# Rows scanned between cancellation checks
SCAN_BAND_ROWS = 512


@dataclass(frozen=True)
class ContentBounds:
    """Content box in source-pixel units."""
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def to_rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)

    def to_box(self):
        return self.x, self.y, self.right, self.bottom


@dataclass(frozen=True)
class NormalizedBounds:
    """Content box as fractions of the owning image's width and height."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def contains(self, other: "NormalizedBounds", tolerance: float = 1e-9) -> bool:
        return (self.x <= other.x + tolerance and self.y <= other.y + tolerance
                and self.right >= other.right - tolerance
                and self.bottom >= other.bottom - tolerance)


FULL_BOUNDS = NormalizedBounds(0.0, 0.0, 1.0, 1.0)


def _as_rgba_array(image: Union[Image.Image, np.ndarray]) -> np.ndarray:
    if isinstance(image, Image.Image):
        if image.mode != 'RGBA':
            image = image.convert('RGBA')
        return np.asarray(image)
    return image


def _white_mask(band: np.ndarray, threshold: int) -> np.ndarray:
    return ((band[..., 0] >= threshold)
            & (band[..., 1] >= threshold)
            & (band[..., 2] >= threshold))


def _content_mask(band: np.ndarray, mode: str, threshold: int) -> np.ndarray:
    if mode == ALPHA_MODE:
        return band[..., 3] > threshold

    white = _white_mask(band, threshold)
    # Fully transparent pixels never count, whatever their RGB
    return ~white & (band[..., 3] > 0)


def detect_content_bounds(image: Union[Image.Image, np.ndarray],
                          mode: str = ALPHA_MODE,
                          threshold: Optional[int] = None,
                          padding: int = 0,
                          cancel: Optional[Callable[[], bool]] = None) -> Optional[ContentBounds]:
    """
    Tight bounding box of content pixels, or None when nothing qualifies.

    Modes:
    - alpha: alpha > threshold (default 10)
    - white: not white (any of r, g, b below threshold, default 248) and not fully transparent

    `padding` grows (positive) or shrinks (negative) the box on every side,
    clamped to the image. `cancel` is polled between row bands.
    """
    if mode not in (ALPHA_MODE, WHITE_MODE):
        raise ValueError(f"Unknown bounds mode: {mode}")
    if threshold is None:
        threshold = DEFAULT_ALPHA_THRESHOLD if mode == ALPHA_MODE else DEFAULT_WHITE_THRESHOLD

    pixels = _as_rgba_array(image)
    height, width = pixels.shape[:2]
    if width * height <= 1:
        logger.debug(f"Image too small for bounds detection: {width}x{height}")
        return None

    row_hits = np.zeros(height, dtype=bool)
    col_hits = np.zeros(width, dtype=bool)

    for start in range(0, height, SCAN_BAND_ROWS):
        if cancel is not None and cancel():
            raise BatchCancelledError("Batch cancelled during bounds detection")
        band_mask = _content_mask(pixels[start:start + SCAN_BAND_ROWS], mode, threshold)
        row_hits[start:start + band_mask.shape[0]] = band_mask.any(axis=1)
        col_hits |= band_mask.any(axis=0)

    rows = np.flatnonzero(row_hits)
    if rows.size == 0:
        return None
    cols = np.flatnonzero(col_hits)

    min_x, max_x = int(cols[0]), int(cols[-1])
    min_y, max_y = int(rows[0]), int(rows[-1])

    if padding:
        min_x, max_x = _pad_interval(min_x, max_x, padding, width)
        min_y, max_y = _pad_interval(min_y, max_y, padding, height)

    return ContentBounds(min_x, min_y, max_x - min_x + 1, max_y - min_y + 1)


def _pad_interval(lo: int, hi: int, padding: int, limit: int):
    new_lo = max(0, lo - padding)
    new_hi = min(limit - 1, hi + padding)
    if new_hi < new_lo:
        # Over-shrunk: keep the single middle pixel
        mid = (lo + hi) // 2
        return mid, mid
    return new_lo, new_hi


def compute_alpha_bounds(image, threshold: int = DEFAULT_ALPHA_THRESHOLD, padding: int = 0,
                         cancel: Optional[Callable[[], bool]] = None) -> Optional[ContentBounds]:
    """Bounds of a cutout image (alpha above threshold)."""
    return detect_content_bounds(image, ALPHA_MODE, threshold, padding, cancel)


def compute_white_bg_bounds(image, threshold: int = DEFAULT_WHITE_THRESHOLD, padding: int = 0,
                            cancel: Optional[Callable[[], bool]] = None) -> Optional[ContentBounds]:
    """Bounds of a photo shot on a plain white backdrop."""
    return detect_content_bounds(image, WHITE_MODE, threshold, padding, cancel)


def require_content_bounds(image,
                           mode: str = ALPHA_MODE,
                           threshold: Optional[int] = None,
                           padding: int = 0) -> ContentBounds:
    """Like detect_content_bounds, but raises BoundsNotFoundError instead of returning None."""
    bounds = detect_content_bounds(image, mode, threshold, padding)
    if bounds is None:
        height, width = _as_rgba_array(image).shape[:2]
        if threshold is None:
            threshold = DEFAULT_ALPHA_THRESHOLD if mode == ALPHA_MODE else DEFAULT_WHITE_THRESHOLD
        raise BoundsNotFoundError(mode, threshold, (width, height))
    return bounds


def white_backdrop_ratio(image,
                        threshold: int = DEFAULT_WHITE_THRESHOLD,
                        sample_step: int = 1000) -> float:
    """Share of every `sample_step`-th pixel that is near-white (all of r, g, b at or above threshold)."""
    samples = _as_rgba_array(image).reshape(-1, 4)[::sample_step]
    if samples.shape[0] == 0:
        return 0.0
    return float(_white_mask(samples, threshold).mean())


def _clamp01(value: float) -> float:
    return min(1.0, max(0.0, value))


def normalize(bounds: ContentBounds, width: int, height: int) -> NormalizedBounds:
    """Express a pixel box as fractions of its image size."""
    rel = absolute_to_relative(bounds.to_rect(), width, height)
    x = _clamp01(rel.x)
    y = _clamp01(rel.y)
    return NormalizedBounds(x, y, min(rel.width, 1.0 - x), min(rel.height, 1.0 - y))


def denormalize(nbounds: NormalizedBounds, width: int, height: int) -> ContentBounds:
    """Apply a normalized box to an image of the given size."""
    x = min(int(round(nbounds.x * width)), width - 1)
    y = min(int(round(nbounds.y * height)), height - 1)
    w = max(1, min(int(round(nbounds.width * width)), width - x))
    h = max(1, min(int(round(nbounds.height * height)), height - y))
    return ContentBounds(x, y, w, h)


def merge(a: Optional[NormalizedBounds], b: Optional[NormalizedBounds]) -> Optional[NormalizedBounds]:
    """Smallest box enclosing both inputs, clamped to [0, 1]."""
    if a is None:
        return b
    if b is None:
        return a

    x0 = _clamp01(min(a.x, b.x))
    y0 = _clamp01(min(a.y, b.y))
    x1 = _clamp01(max(a.right, b.right))
    y1 = _clamp01(max(a.bottom, b.bottom))
    return NormalizedBounds(x0, y0, x1 - x0, y1 - y0)


def place_bounds(nbounds: NormalizedBounds, container: Rect) -> Rect:
    """Map normalized bounds onto the rect an image was drawn into."""
    return relative_to_absolute(Rect(nbounds.x, nbounds.y, nbounds.width, nbounds.height), container)


class BoundsAccumulator:
    """
    Running union of the device bounds published during one batch.

    Only ever widens; a new batch must start from a fresh (or reset) accumulator.
    """

    def __init__(self):
        self._current: Optional[NormalizedBounds] = None
        self.publish_count = 0

    @property
    def current(self) -> Optional[NormalizedBounds]:
        return self._current

    def publish(self, nbounds: NormalizedBounds) -> NormalizedBounds:
        self._current = merge(self._current, nbounds)
        self.publish_count += 1
        logger.debug(f"Published bounds #{self.publish_count}: {self._current}")
        return self._current

    def reset(self) -> None:
        self._current = None
        self.publish_count = 0
