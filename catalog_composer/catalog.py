"""
Product catalog definitions.

Each product declares how its composite is built: which device photo it uses,
whether the operator uploads a part photo, an optional overlay effect drawn
inside the device bounds, and one of two final layouts. Entries are immutable
once loaded.
"""

from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from loguru import logger

from .config import load_yaml_config
from .errors import ConfigurationError


Ratio = Annotated[float, Field(ge=0.0, le=1.0)]


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra='forbid')


class BadgeSpec(FrozenModel):
    """Decorative badge; sizes are fractions of the canvas"""
    src: str
    width_ratio: Ratio
    y_ratio: Ratio  # vertical position of the badge center


class EdgeBadgeSpec(BadgeSpec):
    side: Literal['left', 'right']


class OverlayArea(FrozenModel):
    """Rectangle relative to the device content bounds (0..1)"""
    x: Ratio
    y: Ratio
    width: Ratio
    height: Ratio

    @model_validator(mode='after')
    def _inside_bounds(self):
        if self.x + self.width > 1.0 + 1e-6 or self.y + self.height > 1.0 + 1e-6:
            raise ValueError("overlay area must lie inside the content bounds")
        return self


class CrackPoint(FrozenModel):
    """Decal center (relative to the overlay area) and size (relative to its width)"""
    x: Ratio
    y: Ratio
    size: Annotated[float, Field(gt=0.0, le=1.0)]


class FillOverlay(FrozenModel):
    """Optional solid fill, then zero or more circle-clipped decals"""
    kind: Literal['fill'] = 'fill'
    area: OverlayArea
    fill_color: Optional[str] = None
    decal_image: Optional[str] = None
    decals: List[CrackPoint] = []

    @model_validator(mode='after')
    def _decals_need_image(self):
        if self.decals and not self.decal_image:
            raise ValueError("decals require decal_image")
        return self


class IconOverlay(FrozenModel):
    """One icon centered in the overlay area"""
    kind: Literal['icon'] = 'icon'
    area: OverlayArea
    image: str
    width_ratio: Ratio = 0.5  # icon width relative to the area width


Overlay = Annotated[Union[FillOverlay, IconOverlay], Field(discriminator='kind')]


class SideBySideLayout(FrozenModel):
    """Two columns: processed panel on the left, reference photo on the right"""
    type: Literal['side-by-side'] = 'side-by-side'
    divider_color: str = '#e5e7eb'
    divider_width_ratio: Ratio = 0.0
    left_height_ratio: Ratio = 0.80
    left_scale_mode: Literal['height', 'width'] = 'height'
    left_width_ratio: Ratio = 0.52  # of the column width
    right_height_ratio: Ratio = 0.80
    # Canvas-relative width and offset; take precedence for accessory photos
    left_width_canvas_ratio: Optional[Ratio] = None
    left_canvas_offset_ratio_x: Optional[Ratio] = None
    left_white_crop: bool = False
    badges: List[BadgeSpec] = []         # stamped on the column midline
    center_badges: List[BadgeSpec] = []  # bottom row, horizontally centered


class FilmOverlaySpec(FrozenModel):
    """Protective film piece placed beside the subject"""
    image: str
    side: Literal['left', 'right'] = 'left'
    height_ratio: Annotated[float, Field(gt=0.0, le=2.0)] = 1.0  # of the subject height
    alpha_threshold: Optional[int] = None
    min_overlap_px: Optional[int] = None


class SingleCenteredLayout(FrozenModel):
    """One centered subject with optional edge badges"""
    type: Literal['single-centered'] = 'single-centered'
    target_height_ratio: Ratio = 0.8
    center_offset_ratio_x: Annotated[float, Field(ge=-0.5, le=0.5)] = 0.0
    edge_badges: List[EdgeBadgeSpec] = []
    film: Optional[FilmOverlaySpec] = None


Layout = Annotated[Union[SideBySideLayout, SingleCenteredLayout], Field(discriminator='type')]


class ProductSpec(FrozenModel):
    """One catalog entry"""
    id: str
    title: str
    title_cn: Optional[str] = None
    description: str = ''
    category: Literal['screen', 'hardware', 'protection', 'camera', 'audio', 'buttons', 'system']
    thumbnail: Optional[str] = None
    needs_part_image: bool = False
    default_part_image: Optional[str] = None
    use_model_side: Literal['front', 'back'] = 'front'
    overlay: Optional[Overlay] = None
    layout: Layout = Field(default_factory=SideBySideLayout)
    implemented: bool = True


def build_catalog(items: List[Dict]) -> Dict[str, ProductSpec]:
    """Validate raw catalog entries, keyed by id in declaration order"""
    products: Dict[str, ProductSpec] = {}

    for item in items:
        try:
            product = ProductSpec.model_validate(item)
        except ValidationError as e:
            logger.error(f"Error loading product {item.get('id', 'unknown')}: {e}")
            continue

        if product.id in products:
            raise ConfigurationError(
                f"Duplicate product id in catalog: {product.id}",
                details={'product_id': product.id},
                suggestions=["Give every catalog entry a unique id"]
            )
        products[product.id] = product

    return products


def load_catalog(path: str = "config/catalog.yaml") -> Dict[str, ProductSpec]:
    """Load the product catalog from YAML"""
    config_data = load_yaml_config(path)
    products = build_catalog(config_data.get("products", []))
    logger.info(f"Loaded {len(products)} product definitions from {path}")
    return products
