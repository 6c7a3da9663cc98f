"""
Layout engine module for the catalog compositing engine.

This module handles:
- Positioning the effect panel and the reference photo in side-by-side columns
- Centering a single subject, cropping it symmetrically when it overflows
- Pairing a protective-film piece with its subject without a visible seam
- Placing gutter, bottom-row and edge badges
- Picking the SKU label font size

Everything here is geometry; the composite module does the drawing.
"""

from typing import Callable, List, Optional, Tuple

from PIL import Image
from loguru import logger

from .catalog import BadgeSpec, EdgeBadgeSpec, SideBySideLayout, SingleCenteredLayout
from .config import AppConfig, get_config
from .geometry import Rect, center_offset, clamp_rect, symmetric_crop


SrcBox = Tuple[float, float, float, float]


class LayoutElement:
    """An element to be placed on the final canvas."""

    def __init__(self,
                 image: Optional[Image.Image],
                 element_type: str,
                 dest: Rect,
                 src_box: Optional[SrcBox] = None,
                 z_index: int = 0,
                 color: Optional[str] = None):
        self.image = image
        self.element_type = element_type  # 'left_panel', 'right_panel', 'subject', 'film', 'badge', 'divider'
        self.dest = dest
        self.src_box = src_box
        self.z_index = z_index
        self.color = color

    def __lt__(self, other):
        """Enable sorting by z_index."""
        return self.z_index < other.z_index

    def __repr__(self) -> str:
        return f"LayoutElement({self.element_type}, {self.dest}, src_box={self.src_box})"


def _full_box(image: Image.Image) -> SrcBox:
    return 0.0, 0.0, float(image.width), float(image.height)


class LayoutEngine:
    """Computes element placements for both layout kinds."""

    def __init__(self, config: Optional[AppConfig] = None):
        self.config = config or get_config()
        self.canvas_size = self.config.CANVAS_SIZE

    # Side-by-side

    def column_rects(self, layout: SideBySideLayout) -> Tuple[Rect, Rect, Rect]:
        """Left column, divider and right column rects."""
        size = self.canvas_size
        divider_width = layout.divider_width_ratio * size
        column_width = (size - divider_width) / 2
        left = Rect(0, 0, column_width, size)
        divider = Rect(column_width, 0, divider_width, size)
        right = Rect(column_width + divider_width, 0, column_width, size)
        return left, divider, right

    def place_left_panel(self, layout: SideBySideLayout, image: Image.Image, column: Rect) -> Rect:
        """
        Destination of the effect panel.

        A canvas-relative width (accessories) wins over column-relative sizing
        so small parts keep one real-world scale across photos.
        """
        size = self.canvas_size
        src_w, src_h = image.size

        if layout.left_width_canvas_ratio is not None:
            width = layout.left_width_canvas_ratio * size
            height = src_h * width / src_w
            if layout.left_canvas_offset_ratio_x is not None:
                x = layout.left_canvas_offset_ratio_x * size
            else:
                x = column.x + center_offset(width, column.width)
        elif layout.left_scale_mode == 'width':
            width = layout.left_width_ratio * column.width
            height = src_h * width / src_w
            x = column.x + center_offset(width, column.width)
        else:
            height = layout.left_height_ratio * size
            width = src_w * height / src_h
            if width > column.width:
                width = column.width
                height = src_h * width / src_w
            x = column.x + center_offset(width, column.width)

        y = center_offset(height, size)
        return Rect(x, y, width, height)

    def place_right_panel(self, layout: SideBySideLayout, image: Image.Image,
                          column: Rect) -> Tuple[Rect, SrcBox]:
        """Reference photo at its target height, overflow cropped symmetrically."""
        size = self.canvas_size
        src_w, src_h = image.size

        height = layout.right_height_ratio * size
        scale = height / src_h
        width = src_w * scale
        left, top, right, bottom = _full_box(image)

        x_crop = symmetric_crop(src_w, column.width / scale)
        if x_crop is not None:
            left, visible = x_crop
            right = left + visible
            width = column.width

        y_crop = symmetric_crop(src_h, size / scale)
        if y_crop is not None:
            top, visible = y_crop
            bottom = top + visible
            height = size

        x = column.x + center_offset(width, column.width)
        y = center_offset(height, size)
        return Rect(x, y, width, height), (left, top, right, bottom)

    def place_gutter_badges(self, badges: List[Tuple[BadgeSpec, Image.Image]]) -> List[LayoutElement]:
        """Badges centered on the column midline."""
        size = self.canvas_size
        elements = []
        for spec, image in badges:
            width = spec.width_ratio * size
            height = width * image.height / image.width
            dest = Rect(size / 2 - width / 2, spec.y_ratio * size - height / 2, width, height)
            elements.append(LayoutElement(image, 'badge', dest, z_index=30))
        return elements

    def place_center_badges(self, badges: List[Tuple[BadgeSpec, Image.Image]]) -> List[LayoutElement]:
        """A horizontally centered row, auto-spaced."""
        if not badges:
            return []

        size = self.canvas_size
        gap = self.config.CENTER_BADGE_GAP_RATIO * size
        widths = [spec.width_ratio * size for spec, _ in badges]
        total = sum(widths) + gap * (len(badges) - 1)

        elements = []
        x = (size - total) / 2
        for (spec, image), width in zip(badges, widths):
            height = width * image.height / image.width
            dest = Rect(x, spec.y_ratio * size - height / 2, width, height)
            elements.append(LayoutElement(image, 'badge', dest, z_index=30))
            x += width + gap
        return elements

    def plan_side_by_side(self,
                          layout: SideBySideLayout,
                          left: Optional[Image.Image],
                          right: Optional[Image.Image],
                          badges: List[Tuple[BadgeSpec, Image.Image]] = None,
                          center_badges: List[Tuple[BadgeSpec, Image.Image]] = None) -> List[LayoutElement]:
        """Elements for the two-column layout; a missing panel is omitted."""
        left_col, divider, right_col = self.column_rects(layout)
        elements: List[LayoutElement] = []

        if not divider.is_empty:
            elements.append(LayoutElement(None, 'divider', divider, z_index=5, color=layout.divider_color))

        if left is not None:
            dest = self.place_left_panel(layout, left, left_col)
            elements.append(LayoutElement(left, 'left_panel', dest, _full_box(left), z_index=10))

        if right is not None:
            dest, src_box = self.place_right_panel(layout, right, right_col)
            elements.append(LayoutElement(right, 'right_panel', dest, src_box, z_index=10))

        elements.extend(self.place_gutter_badges(badges or []))
        elements.extend(self.place_center_badges(center_badges or []))

        logger.debug(f"Planned side-by-side layout: {elements}")
        return sorted(elements)

    # Single-centered

    def place_subject(self, layout: SingleCenteredLayout, image: Image.Image) -> Tuple[Rect, SrcBox]:
        """
        Subject at its target height, centered plus offset.

        When wider than the canvas it is cropped symmetrically, never shrunk.
        """
        size = self.canvas_size
        src_w, src_h = image.size

        height = layout.target_height_ratio * size
        scale = height / src_h
        width = src_w * scale
        src_box = _full_box(image)

        x_crop = symmetric_crop(src_w, size / scale)
        if x_crop is not None:
            left, visible = x_crop
            src_box = (left, 0.0, left + visible, float(src_h))
            return Rect(0.0, center_offset(height, size), size, height), src_box

        x = center_offset(width, size) + layout.center_offset_ratio_x * size
        rect = clamp_rect(Rect(x, center_offset(height, size), width, height), 0, 0, size, size)
        return rect, src_box

    def place_film(self,
                   layout: SingleCenteredLayout,
                   subject: Rect,
                   film: Image.Image,
                   subject_cropped: bool) -> Tuple[Rect, Rect]:
        """
        Subject and film rects for the paired protective-film layout.

        The pieces overlap by at least the minimum overlap so no seam shows.
        If the pair fits, it is centered as one unit (plus offset); otherwise
        the subject keeps its place and the film is pushed against it.
        """
        size = self.canvas_size
        spec = layout.film

        film_height = subject.height * spec.height_ratio
        film_width = film.width * film_height / film.height
        overlap = spec.min_overlap_px if spec.min_overlap_px is not None else self.config.FILM_MIN_OVERLAP_PX
        overlap = max(0.0, min(float(overlap), film_width, subject.width))
        film_y = subject.y + (subject.height - film_height) / 2

        combined = subject.width + film_width - overlap
        if not subject_cropped and combined <= size:
            group_x = (size - combined) / 2 + layout.center_offset_ratio_x * size
            group_x = min(max(group_x, 0.0), size - combined)
            if spec.side == 'left':
                film_x = group_x
                subject_x = group_x + film_width - overlap
            else:
                subject_x = group_x
                film_x = subject_x + subject.width - overlap
            subject = Rect(subject_x, subject.y, subject.width, subject.height)
        else:
            if spec.side == 'left':
                film_x = subject.x - film_width + overlap
            else:
                film_x = subject.right - overlap

        return subject, Rect(film_x, film_y, film_width, film_height)

    def place_edge_badges(self, badges: List[Tuple[EdgeBadgeSpec, Image.Image]]) -> List[LayoutElement]:
        size = self.canvas_size
        margin = self.config.EDGE_BADGE_MARGIN_RATIO * size
        elements = []
        for spec, image in badges:
            width = spec.width_ratio * size
            height = width * image.height / image.width
            x = margin if spec.side == 'left' else size - margin - width
            dest = Rect(x, spec.y_ratio * size - height / 2, width, height)
            elements.append(LayoutElement(image, 'badge', dest, z_index=30))
        return elements

    def plan_single_centered(self,
                             layout: SingleCenteredLayout,
                             subject: Optional[Image.Image],
                             film: Optional[Image.Image] = None,
                             edge_badges: List[Tuple[EdgeBadgeSpec, Image.Image]] = None) -> List[LayoutElement]:
        """Elements for the single-subject layout."""
        elements: List[LayoutElement] = []

        if subject is not None:
            subject_rect, src_box = self.place_subject(layout, subject)
            cropped = src_box != _full_box(subject)

            if film is not None and layout.film is not None:
                subject_rect, film_rect = self.place_film(layout, subject_rect, film, cropped)
                elements.append(LayoutElement(film, 'film', film_rect, _full_box(film), z_index=20))

            elements.append(LayoutElement(subject, 'subject', subject_rect, src_box, z_index=10))

        elements.extend(self.place_edge_badges(edge_badges or []))

        logger.debug(f"Planned single-centered layout: {elements}")
        return sorted(elements)


def fit_font_size(text: str,
                  max_width: float,
                  measure: Callable[[str, int], float],
                  max_size: int = 40,
                  min_size: int = 12,
                  step: int = 2) -> int:
    """Largest font size (stepping down) whose rendered width fits; never below min_size."""
    size = max_size
    while size > min_size and measure(text, size) > max_width:
        size -= step
    return max(size, min_size)


def create_layout_engine(config: Optional[AppConfig] = None) -> LayoutEngine:
    """Factory function to create a LayoutEngine instance."""
    return LayoutEngine(config)
