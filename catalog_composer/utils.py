"""
Utility functions for the catalog compositing engine
"""

import re
import time
from contextlib import contextmanager
from typing import Tuple, Union
from PIL import ImageColor
from loguru import logger


ColorLike = Union[str, Tuple[int, int, int], Tuple[int, int, int, int]]


def parse_color(color: ColorLike) -> Tuple[int, int, int, int]:
    """Parse '#000', 'black', (r, g, b) or (r, g, b, a) into an RGBA tuple"""
    if isinstance(color, str):
        rgb = ImageColor.getcolor(color, 'RGBA')
        return tuple(rgb)

    values = tuple(int(c) for c in color)
    if len(values) == 3:
        return values + (255,)
    if len(values) == 4:
        return values
    raise ValueError(f"Invalid color: {color!r}")


@contextmanager
def timed(name: str, slow_ms: float = 1000.0):
    """Log how long a block took; slow blocks are logged at warning level"""
    start = time.perf_counter()
    try:
        yield
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        if duration_ms > slow_ms:
            logger.warning(f"[perf] {name}: {duration_ms:.1f}ms")
        else:
            logger.debug(f"[perf] {name}: {duration_ms:.1f}ms")


def safe_filename(filename: str) -> str:
    """Generate safe filename by removing/replacing problematic characters"""
    safe_name = re.sub(r'[<>:"/\\|?*]', '_', filename)
    safe_name = re.sub(r'[\x00-\x1f\x7f]', '', safe_name)
    safe_name = safe_name.strip().strip('.')
    if len(safe_name) > 200:
        safe_name = safe_name[:200]

    return safe_name or 'unnamed_file'
