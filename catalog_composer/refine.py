"""
Alpha refinement for background cutouts.

Automated cutouts often punch tiny holes into solid regions (inside a logo,
along thin bezels). A morphological closing on the alpha channel, dilate then
erode with the same square kernel, seals those holes without growing the
silhouette; a small multiplicative boost then firms up faint interior alpha.
"""

import cv2
import numpy as np
from loguru import logger

from .geometry import Rect
from .surface import RasterSurface


def close_alpha(alpha: np.ndarray, radius: int = 1) -> np.ndarray:
    """Closing of a uint8 alpha plane with a (2r+1)x(2r+1) square kernel."""
    if radius <= 0:
        return alpha.copy()

    size = 2 * radius + 1
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (size, size))
    # Pixels outside the plane are ignored by both passes
    dilated = cv2.dilate(alpha, kernel)
    return cv2.erode(dilated, kernel)


def boost_alpha(alpha: np.ndarray, boost: float) -> np.ndarray:
    if boost == 1.0:
        return alpha
    boosted = np.rint(alpha.astype(np.float32) * boost)
    return np.clip(boosted, 0, 255).astype(np.uint8)


def refine_alpha(surface: RasterSurface,
                 region_x: int,
                 region_y: int,
                 region_w: int,
                 region_h: int,
                 radius: int = 1,
                 boost: float = 1.05) -> None:
    """Close holes in the alpha channel of a surface region, in place."""
    region = Rect(region_x, region_y, region_w, region_h).intersect(surface.bounds)
    if region.is_empty:
        logger.debug("Refine region is outside the surface, nothing to do")
        return

    left, top, right, bottom = region.to_box()
    pixels = surface.read_pixels(Rect(left, top, right - left, bottom - top))

    alpha = np.ascontiguousarray(pixels[..., 3])
    refined = boost_alpha(close_alpha(alpha, radius), boost)

    filled = int(np.count_nonzero((alpha == 0) & (refined > 0)))
    pixels[..., 3] = refined
    surface.write_pixels(pixels, left, top)

    logger.debug(f"Refined alpha in {right - left}x{bottom - top} region "
                 f"(radius={radius}, boost={boost}, filled {filled} px)")
