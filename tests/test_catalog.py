"""
Unit tests for catalog definitions and loading.
"""

import pytest
from pathlib import Path
from pydantic import ValidationError

from catalog_composer.catalog import (
    FillOverlay, IconOverlay, OverlayArea, ProductSpec, SideBySideLayout,
    SingleCenteredLayout, build_catalog, load_catalog,
)
from catalog_composer.errors import ConfigurationError


CATALOG_FILE = Path(__file__).parent.parent / "config" / "catalog.yaml"


def _entry(**kwargs):
    values = {'id': 'item', 'title': 'Item', 'category': 'screen'}
    values.update(kwargs)
    return values


class TestShippedCatalog:
    """Test the catalog shipped in config/."""

    @pytest.fixture(scope='class')
    def catalog(self):
        return load_catalog(str(CATALOG_FILE))

    def test_all_products_load(self, catalog):
        assert len(catalog) == 17
        assert list(catalog)[0] == 'screen-replacement'

    def test_layout_kinds(self, catalog):
        assert isinstance(catalog['screen-replacement'].layout, SideBySideLayout)
        assert isinstance(catalog['screen-protector-glass'].layout, SingleCenteredLayout)
        assert catalog['screen-protector-glass'].layout.film.side == 'left'

    def test_overlays(self, catalog):
        assert isinstance(catalog['screen-replacement'].overlay, FillOverlay)
        assert isinstance(catalog['no-power'].overlay, IconOverlay)

    def test_shared_badges(self, catalog):
        assert catalog['screen-replacement'].layout.badges == catalog['back-cover'].layout.badges
        assert len(catalog['screen-replacement'].layout.badges) == 2

    def test_accessory_products(self, catalog):
        assert catalog['charging-port'].default_part_image == '/assets/parts/charging-port.png'
        assert catalog['back-cover'].use_model_side == 'back'
        assert not catalog['screen-replacement'].needs_part_image


class TestBuildCatalog:
    """Test validation of catalog entries."""

    def test_declaration_order_is_kept(self):
        catalog = build_catalog([_entry(id='b'), _entry(id='a')])

        assert list(catalog) == ['b', 'a']

    def test_duplicate_id_raises(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_catalog([_entry(id='dup'), _entry(id='dup')])

        assert exc_info.value.details['product_id'] == 'dup'

    def test_invalid_entry_is_skipped(self):
        catalog = build_catalog([_entry(id='bad', category='nonsense'), _entry(id='good')])

        assert list(catalog) == ['good']

    def test_entries_are_frozen(self):
        product = ProductSpec(**_entry())

        with pytest.raises(ValidationError):
            product.title = 'Changed'

    def test_missing_file_is_empty_catalog(self, tmp_path):
        assert load_catalog(str(tmp_path / "missing.yaml")) == {}


class TestCatalogModels:

    def test_overlay_area_must_fit_bounds(self):
        with pytest.raises(ValidationError):
            OverlayArea(x=0.5, y=0.0, width=0.6, height=1.0)

    def test_decals_need_image(self):
        with pytest.raises(ValidationError):
            FillOverlay(area=OverlayArea(x=0, y=0, width=1, height=1), decals=[{'x': 0.5, 'y': 0.5, 'size': 0.2}])

    def test_layout_is_discriminated_by_type(self):
        product = ProductSpec(**_entry(layout={'type': 'single-centered', 'target_height_ratio': 0.7}))

        assert isinstance(product.layout, SingleCenteredLayout)
        assert product.layout.target_height_ratio == 0.7

    def test_default_layout_is_side_by_side(self):
        assert isinstance(ProductSpec(**_entry()).layout, SideBySideLayout)

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError):
            ProductSpec(**_entry(colour='red'))
