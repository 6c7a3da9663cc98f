"""
Coordinate helpers for canvas placement.

All functions are pure; drawing lives in the surface module.
"""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class Rect:
    """A position and size on a canvas, in (possibly fractional) pixels."""
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

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def intersect(self, other: "Rect") -> "Rect":
        """Overlap of two rects; zero-sized when they do not touch."""
        x0 = max(self.x, other.x)
        y0 = max(self.y, other.y)
        x1 = min(self.right, other.right)
        y1 = min(self.bottom, other.bottom)
        return Rect(x0, y0, max(0.0, x1 - x0), max(0.0, y1 - y0))

    def to_box(self) -> Tuple[int, int, int, int]:
        """Round to an integer (left, top, right, bottom) box."""
        left = int(round(self.x))
        top = int(round(self.y))
        right = max(left + 1, int(round(self.right)))
        bottom = max(top + 1, int(round(self.bottom)))
        return left, top, right, bottom

    def __repr__(self) -> str:
        return f"Rect({self.x:.1f}, {self.y:.1f}, {self.width:.1f}, {self.height:.1f})"


def fit_rect(image_width: float,
             image_height: float,
             target_width: float,
             target_height: float,
             mode: str = 'contain') -> Rect:
    """
    Fit an image into a target area, centered.

    Modes:
    - contain: whole image visible, letterboxed
    - cover: fills the target, overflow is cropped by the caller
    """
    scale = calculate_scale(image_width, image_height, target_width, target_height,
                            'fit' if mode == 'contain' else 'fill')
    width = image_width * scale
    height = image_height * scale

    return Rect(center_offset(width, target_width), center_offset(height, target_height), width, height)


def center_offset(content_size: float, container_size: float) -> float:
    return (container_size - content_size) / 2


def calculate_scale(source_width: float,
                    source_height: float,
                    target_width: float,
                    target_height: float,
                    mode: str = 'fit') -> float:
    """Scale factor keeping aspect ratio ('fit' shows everything, 'fill' covers)."""
    scale_x = target_width / source_width
    scale_y = target_height / source_height
    return min(scale_x, scale_y) if mode == 'fit' else max(scale_x, scale_y)


def relative_to_absolute(rel: Rect, container: Rect) -> Rect:
    """Map a 0..1 rect onto a container rect in canvas space."""
    return Rect(
        container.x + rel.x * container.width,
        container.y + rel.y * container.height,
        rel.width * container.width,
        rel.height * container.height,
    )


def absolute_to_relative(rect: Rect, container_width: float, container_height: float) -> Rect:
    return Rect(
        rect.x / container_width,
        rect.y / container_height,
        rect.width / container_width,
        rect.height / container_height,
    )


def clamp_rect(rect: Rect, min_x: float, min_y: float, max_x: float, max_y: float) -> Rect:
    """Shift and shrink a rect so it stays inside the given limits."""
    x = max(min_x, min(rect.x, max_x - rect.width))
    y = max(min_y, min(rect.y, max_y - rect.height))
    width = min(rect.width, max_x - x)
    height = min(rect.height, max_y - y)
    return Rect(x, y, width, height)


def symmetric_crop(source_size: float, visible_size: float) -> Optional[Tuple[float, float]]:
    """
    Source interval kept when `visible_size` source units fit the slot.

    Returns (start, length) or None when nothing overflows.
    """
    if visible_size >= source_size:
        return None
    start = (source_size - visible_size) / 2
    return start, visible_size
